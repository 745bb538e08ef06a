"""Module to contain the main prospective surveillance loop: for every month of
the surveillance period, run the Kulldorff and the Bayesian scan statistics on
the counts of the most recent months."""

import logging
import time

import numpy as np
import pandas as pd

from OutbreakScan.aggregate import district_count_matrix
from OutbreakScan.bayes import bayes_step, check_relrisk_grid, default_relrisk_values, uniform_prior
from OutbreakScan.errors import DegenerateZone, InvalidConfiguration, MissingReferenceData
from OutbreakScan.scan import ReplicatePool, scan_step

SCAN_COLUMNS = [
    "time",
    "date",
    "score",
    "crit",
    "pval",
    "zone",
    "duration",
    "relrisk_in",
    "relrisk_out",
    "n_replicates",
    "error",
]

BAYES_COLUMNS = [
    "time",
    "date",
    "MLC_prob",
    "MLC_logBF",
    "MLC_zone",
    "MLC_duration",
    "outbreak_prob",
    "relrisk_MAP",
    "error",
]


def validate_surveillance_config(
    times,
    start: int,
    end: int,
    scan_length: int,
    n_mcsim: int,
    alpha: float,
    outbreak_prob: float,
    relrisk_values,
    relrisk_prior,
    pool_policy: str,
) -> np.ndarray:
    """Check all run parameters once, before the loop starts.

    Returns:
        The normalised relative risk prior.
    Raises:
        InvalidConfiguration: on the first malformed parameter.
    """
    times = list(times)
    if start not in times or end not in times or start > end:
        raise InvalidConfiguration(
            "Surveillance period [{}, {}] not within the data ({} to {})".format(
                start, end, times[0], times[-1]
            )
        )
    if scan_length < 1 or scan_length > len(times):
        raise InvalidConfiguration(
            "Scan window of {} months with {} months of data".format(scan_length, len(times))
        )
    if n_mcsim < 1:
        raise InvalidConfiguration("At least one Monte Carlo replicate is needed")
    if not 0 < alpha < 1:
        raise InvalidConfiguration("alpha must lie strictly between 0 and 1")
    if not 0 < outbreak_prob < 1:
        raise InvalidConfiguration("outbreak_prob must lie strictly between 0 and 1")
    # Validates the pool policy
    ReplicatePool(policy=pool_policy)
    return check_relrisk_grid(relrisk_values, relrisk_prior)


def observation_window(t: int, scan_length: int, first_period: int = 1) -> list:
    """Time periods max(first_period, t - scan_length + 1), ..., t. Near the
    start of the data the window holds fewer than `scan_length` periods."""
    return list(range(max(first_period, t - scan_length + 1), t + 1))


def window_arrays(count_mat: pd.DataFrame, pop_mat: pd.DataFrame, window: list) -> tuple:
    """Counts and population of the window as (periods x locations) arrays.

    Raises:
        MissingReferenceData: if the population of any cell is unknown.
    """
    counts = count_mat.loc[window].to_numpy(dtype=float)
    population = pop_mat.loc[window].to_numpy(dtype=float)
    if np.isnan(population).any() or population.sum() <= 0:
        raise MissingReferenceData(
            "Population missing for months {} to {}".format(window[0], window[-1])
        )
    return counts, population


def scan_surveillance(
    district_counts: pd.DataFrame,
    catalog,
    start: int,
    end: int = None,
    scan_length: int = 6,
    n_mcsim: int = 99,
    alpha: float = 1 / 60,
    outbreak_prob: float = 1e-7,
    relrisk_values: np.ndarray = None,
    relrisk_prior: np.ndarray = None,
    pool: ReplicatePool = None,
    pool_policy: str = "accumulate",
    seed: int = 2017,
) -> dict:
    """Run both scan statistics for each month t in [start, end], looking back at
    months max(t0, t - scan_length + 1) to t, where t0 is the first month of the
    data.

    The replicate pool and the relative risk prior are the only state carried
    from one month to the next. The posterior relative risk distribution of the
    Bayesian scan's most likely cluster at month t is the prior at month t + 1.
    A month whose scan fails (degenerate zones, missing population) is recorded
    with NaN values and the error name; the state is then carried over unchanged.

    Args:
        district_counts: DistrictPeriod table from `district_period_counts()`
        catalog: ZoneCatalog over the same locations
        start: First month of the surveillance period
        end: Last month, defaults to the last month of the data
        scan_length: Maximum number of months W in a scan window
        n_mcsim: Monte Carlo replicates per month
        alpha: Significance level of the critical value
        outbreak_prob: Prior probability of an outbreak in the Bayesian scan
        relrisk_values: Grid of outbreak relative risks, default 1.0 to 15.0 by 0.1
        relrisk_prior: Initial prior over `relrisk_values`, default uniform
        pool: Replicate pool to start from, e.g. from a previous run
        pool_policy: "accumulate" replicates over months or "reset" every month
        seed: Seed of the Monte Carlo random number generator. None gives results
              that are valid but not reproducible.
    Returns:
        dict with `scan` (ScanResult rows), `bayes` (BayesScanResult rows),
        `relrisk_posteriors` (month x relative risk posterior), and the final
        `pool` and `relrisk_prior`.
    """
    count_mat = district_count_matrix(district_counts, "count")
    pop_mat = district_count_matrix(district_counts, "population")
    times = list(count_mat.index)
    end = times[-1] if end is None else end

    relrisk_values = default_relrisk_values() if relrisk_values is None else np.asarray(relrisk_values, dtype=float)
    relrisk_prior = uniform_prior(relrisk_values) if relrisk_prior is None else relrisk_prior
    if pool is None:
        pool = ReplicatePool(policy=pool_policy)

    relrisk_prior = validate_surveillance_config(
        times,
        start,
        end,
        scan_length,
        n_mcsim,
        alpha,
        outbreak_prob,
        relrisk_values,
        relrisk_prior,
        pool.policy,
    )
    if catalog.n_locations != count_mat.shape[1]:
        raise InvalidConfiguration(
            "Zone catalog covers {} locations, data has {}".format(
                catalog.n_locations, count_mat.shape[1]
            )
        )

    dates = {}
    if "date" in district_counts.columns:
        dates = district_counts.drop_duplicates("time").set_index("time")["date"].to_dict()

    rng = np.random.default_rng(seed)

    t1 = time.perf_counter()
    logging.info(
        "Scanning months %d to %d over %d zones with a %d month window",
        start,
        end,
        len(catalog),
        scan_length,
    )

    scan_rows = []
    bayes_rows = []
    posteriors = []
    for t in range(start, end + 1):
        window = observation_window(t, scan_length, first_period=times[0])
        scan_row = {"time": t, "date": dates.get(t), "error": None}
        bayes_row = {"time": t, "date": dates.get(t), "error": None}

        try:
            counts, population = window_arrays(count_mat, pop_mat, window)
        except MissingReferenceData as err:
            logging.warning("Month %d skipped: %s", t, err)
            scan_row["error"] = bayes_row["error"] = type(err).__name__
            counts = None

        if counts is not None:
            try:
                result, pool = scan_step(
                    counts,
                    catalog,
                    pool,
                    population=population,
                    n_mcsim=n_mcsim,
                    alpha=alpha,
                    rng=rng,
                )
                scan_row.update(result)
            except DegenerateZone as err:
                logging.warning("Kulldorff scan skipped at month %d: %s", t, err)
                scan_row["error"] = type(err).__name__

            try:
                result, relrisk_prior = bayes_step(
                    counts,
                    catalog,
                    relrisk_prior,
                    relrisk_values=relrisk_values,
                    population=population,
                    outbreak_prob=outbreak_prob,
                )
                bayes_row.update(result)
            except DegenerateZone as err:
                logging.warning("Bayesian scan skipped at month %d: %s", t, err)
                bayes_row["error"] = type(err).__name__

        scan_rows.append(scan_row)
        bayes_rows.append(bayes_row)
        posteriors.append(relrisk_prior)

        logging.info(
            "Month %d: score %.3f, p-value %.3f, MLC posterior %.3g",
            t,
            scan_row.get("score", np.nan),
            scan_row.get("pval", np.nan),
            bayes_row.get("MLC_prob", np.nan),
        )

    t2 = time.perf_counter()
    logging.info("%d months scanned in %.2f seconds", end - start + 1, t2 - t1)

    relrisk_posteriors = pd.DataFrame(
        np.vstack(posteriors), index=pd.Index(range(start, end + 1), name="time"), columns=relrisk_values
    )

    return {
        "scan": pd.DataFrame(scan_rows, columns=SCAN_COLUMNS),
        "bayes": pd.DataFrame(bayes_rows, columns=BAYES_COLUMNS),
        "relrisk_posteriors": relrisk_posteriors,
        "pool": pool,
        "relrisk_prior": relrisk_prior,
    }
