"""Bayesian spatial scan statistic with negative binomial (Gamma-Poisson) counts,
after Neill et al. Outbreak windows W = Z x d multiply the relative risk of
their cells by an unknown factor m, whose prior distribution over a grid of
values is updated from one time step to the next."""

import numpy as np
import pandas as pd
from scipy.special import logsumexp

from OutbreakScan.errors import DegenerateZone, InvalidConfiguration
from OutbreakScan.likelihood import expected_counts, negbin_loglik, window_sums
from OutbreakScan.scan import most_likely_window


def default_relrisk_values() -> np.ndarray:
    """Relative risk support 1.0, 1.1, ..., 15.0."""
    return np.round(np.arange(10, 151) / 10, 1)


def uniform_prior(relrisk_values: np.ndarray) -> np.ndarray:
    return np.full(len(relrisk_values), 1 / len(relrisk_values))


def check_relrisk_grid(relrisk_values, relrisk_prior) -> np.ndarray:
    """Validate the relative risk grid and return the prior normalised to one.

    Raises:
        InvalidConfiguration: if the grid is empty, not strictly increasing or
                              not positive, or the prior does not match it.
    """
    values = np.asarray(relrisk_values, dtype=float)
    prior = np.asarray(relrisk_prior, dtype=float)

    if values.ndim != 1 or len(values) == 0:
        raise InvalidConfiguration("Relative risk grid must be a non-empty vector")
    if not np.all(np.isfinite(values)) or np.any(values <= 0):
        raise InvalidConfiguration("Relative risk values must be positive and finite")
    if np.any(np.diff(values) <= 0):
        raise InvalidConfiguration("Relative risk values must be strictly increasing")
    if prior.shape != values.shape:
        raise InvalidConfiguration(
            "Relative risk prior has {} entries for {} values".format(
                len(prior), len(values)
            )
        )
    if not np.all(np.isfinite(prior)) or np.any(prior < 0) or prior.sum() <= 0:
        raise InvalidConfiguration("Relative risk prior must be non-negative with positive mass")

    return prior / prior.sum()


def scan_bayes_negbin(
    counts: np.ndarray,
    catalog,
    population: np.ndarray = None,
    baselines: np.ndarray = None,
    outbreak_prob: float = 1e-7,
    alpha_null: float = 1.0,
    beta_null: float = 1.0,
    alpha_alt: float = None,
    beta_alt: float = None,
    relrisk_values: np.ndarray = None,
    relrisk_prior: np.ndarray = None,
) -> dict:
    """Bayesian scan over all zones of `catalog` and all durations of the window.

    Under the null, every cell count is NegBin with Gamma(alpha_null, beta_null)
    relative risk. Under the alternative H1(Z, d, m), cells outside the outbreak
    use Gamma(alpha_alt, beta_alt) and cells of zone Z in the d most recent
    periods have their mean further multiplied by m. The prior probability of an
    outbreak is split uniformly over windows and by `relrisk_prior` over m.
    All likelihoods are combined on the log scale.

    Args:
        counts: (periods x locations) counts, oldest period first
        catalog: ZoneCatalog
        population: population at risk, used to estimate baselines if none given
        baselines: expected counts, same shape as `counts`
        outbreak_prob: Prior probability that any outbreak is present
        alpha_null, beta_null: Gamma prior of the relative risk under the null
        alpha_alt, beta_alt: Gamma prior under the alternative (default: null ones)
        relrisk_values: Grid of outbreak relative risks m
        relrisk_prior: Prior probabilities of `relrisk_values`
    Returns:
        dict with the most likely cluster `MLC` (zone, duration, posterior,
        log_posterior, log_bayes_factor), `window_posteriors` (DataFrame sorted by
        posterior), `alt_posterior`, `null_posterior`, `relrisk_posterior` (for
        the MLC, sums to one) and `relrisk_MAP`.
    Raises:
        DegenerateZone: if counts occur where the expected count is zero.
    """
    counts = np.asarray(counts, dtype=float)
    assert counts.shape[1] == catalog.n_locations
    if not 0 < outbreak_prob < 1:
        raise InvalidConfiguration("outbreak_prob must lie strictly between 0 and 1")

    relrisk_values = default_relrisk_values() if relrisk_values is None else np.asarray(relrisk_values, dtype=float)
    relrisk_prior = uniform_prior(relrisk_values) if relrisk_prior is None else relrisk_prior
    relrisk_prior = check_relrisk_grid(relrisk_values, relrisk_prior)
    alpha_alt = alpha_null if alpha_alt is None else alpha_alt
    beta_alt = beta_null if beta_alt is None else beta_alt

    if baselines is None:
        baselines = expected_counts(counts, population)

    null_cells = negbin_loglik(counts, baselines, alpha_null, beta_null)
    loglik_null = null_cells.sum()
    if not np.isfinite(loglik_null):
        raise DegenerateZone("Cases observed in cells with zero expected count")

    out_cells = negbin_loglik(counts, baselines, alpha_alt, beta_alt)
    in_cells = negbin_loglik(counts, baselines, alpha_alt, beta_alt, relrisk_values[:, None, None])

    # (relrisks x periods x locations) -> (zones x durations x relrisks)
    cell_gain = in_cells - out_cells[None, :, :]
    zone_gain = np.stack(
        [window_sums(gain, catalog.membership) for gain in cell_gain], axis=-1
    )
    loglik_alt = out_cells.sum() + zone_gain

    n_zones, n_durations = zone_gain.shape[:2]
    with np.errstate(divide="ignore"):
        log_relrisk_prior = np.log(relrisk_prior)
    log_window_prior = np.log(outbreak_prob) - np.log(n_zones * n_durations)

    log_joint = loglik_alt + log_window_prior + log_relrisk_prior
    log_null_joint = loglik_null + np.log1p(-outbreak_prob)
    log_evidence = np.logaddexp(logsumexp(log_joint), log_null_joint)

    window_log_posterior = logsumexp(log_joint, axis=-1) - log_evidence
    window_log_bf = logsumexp(loglik_alt + log_relrisk_prior, axis=-1) - loglik_null

    zone, duration_idx = most_likely_window(window_log_posterior)

    mlc_joint = log_joint[zone, duration_idx]
    relrisk_posterior = np.exp(mlc_joint - logsumexp(mlc_joint))
    relrisk_posterior /= relrisk_posterior.sum()

    window_posteriors = pd.DataFrame(
        {
            "zone": np.repeat(np.arange(n_zones), n_durations),
            "duration": np.tile(np.arange(1, n_durations + 1), n_zones),
            "log_posterior": window_log_posterior.ravel(),
            "log_bayes_factor": window_log_bf.ravel(),
        }
    )
    window_posteriors["posterior"] = np.exp(window_posteriors["log_posterior"])
    window_posteriors = window_posteriors.sort_values(
        "log_posterior", ascending=False, kind="mergesort"
    ).reset_index(drop=True)

    alt_posterior = float(np.exp(logsumexp(log_joint) - log_evidence))

    return {
        "MLC": {
            "zone": int(zone),
            "duration": int(duration_idx) + 1,
            "log_posterior": float(window_log_posterior[zone, duration_idx]),
            "posterior": float(np.exp(window_log_posterior[zone, duration_idx])),
            "log_bayes_factor": float(window_log_bf[zone, duration_idx]),
        },
        "window_posteriors": window_posteriors,
        "alt_posterior": alt_posterior,
        "null_posterior": float(np.exp(log_null_joint - log_evidence)),
        "relrisk_posterior": relrisk_posterior,
        "relrisk_MAP": float(relrisk_values[np.argmax(relrisk_posterior)]),
    }


def bayes_step(
    counts: np.ndarray,
    catalog,
    relrisk_prior: np.ndarray,
    relrisk_values: np.ndarray = None,
    population: np.ndarray = None,
    outbreak_prob: float = 1e-7,
) -> tuple:
    """One time step of the sequential Bayesian scan. The relative risk prior
    goes in and the MLC's relative risk posterior comes out, ready to be the
    prior of the next step.

    Returns:
        BayesScanResult dict and the relative risk posterior.
    """
    bayscan = scan_bayes_negbin(
        counts,
        catalog,
        population=population,
        outbreak_prob=outbreak_prob,
        relrisk_values=relrisk_values,
        relrisk_prior=relrisk_prior,
    )
    mlc = bayscan["MLC"]
    result = {
        "MLC_prob": mlc["posterior"],
        "MLC_logBF": mlc["log_bayes_factor"],
        "MLC_zone": mlc["zone"],
        "MLC_duration": mlc["duration"],
        "outbreak_prob": bayscan["alt_posterior"],
        "relrisk_MAP": bayscan["relrisk_MAP"],
    }
    return result, bayscan["relrisk_posterior"]
