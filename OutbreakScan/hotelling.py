"""Hotelling's T^2 control chart for multivariate (state-level) monthly counts,
computed over an expanding window of history."""

import logging

import numpy as np
import pandas as pd
from scipy.stats import f

from OutbreakScan.errors import InvalidConfiguration, SingularCovariance


def hotelling_t2(history: np.ndarray, current: np.ndarray) -> float:
    """T^2 = (x - mean)' S^-1 (x - mean) for the observation `current`, with mean
    and sample covariance S estimated from the rows of `history`.

    Args:
        history: (n x p) array of past observations
        current: length p observation vector
    Returns:
        T^2 statistic (non-negative)
    Raises:
        SingularCovariance: if n <= p, or the covariance matrix can not be inverted.
    """
    history = np.asarray(history, dtype=float)
    current = np.asarray(current, dtype=float)
    n, p = history.shape

    if n <= p:
        raise SingularCovariance(
            "Insufficient history: {} observations for {} dimensions".format(n, p)
        )

    means = history.mean(axis=0)
    cov = np.cov(history, rowvar=False)
    v = current - means
    try:
        t2 = float(v @ np.linalg.solve(cov, v))
    except np.linalg.LinAlgError as err:
        raise SingularCovariance(
            "Covariance matrix of {} observations is singular".format(n)
        ) from err

    # Rounding error only
    return max(t2, 0.0)


def t2_critical_value(p: int, n: int, alpha: float) -> float:
    """Critical value F^-1(1 - alpha; p, n) * p (n - 1) / (n - p)."""
    if n <= p:
        raise SingularCovariance(
            "Insufficient history: {} observations for {} dimensions".format(n, p)
        )
    return float(f.ppf(1 - alpha, p, n) * (p * (n - 1)) / (n - p))


def t2_pvalue(t2: float, p: int, n: int) -> float:
    """Upper tail probability of the scaled statistic T^2 (n - p) / (p (n - 1))."""
    return float(f.sf(t2 * (n - p) / (p * (n - 1)), p, n))


def hotelling_surveillance(
    count_matrix: pd.DataFrame,
    start: int,
    end: int = None,
    alpha: float = 1 / 36,
    include_current: bool = True,
) -> pd.DataFrame:
    """Compute T^2, its critical value and p-value for each time step in
    [start, end] of a (time x state) count matrix. The window at step t holds
    the rows 1..t (`include_current`) or 1..t-1 (prospective variant, the
    current month is compared against past months only).

    Steps with too little history to invert the covariance are kept with NaN
    statistics and the error recorded.

    Args:
        count_matrix: Time x state counts, e.g. from `state_count_matrix()`,
                      indexed by 1-based time period
        start: First time step of the surveillance period
        end: Last time step, defaults to the last row
        alpha: Significance level of the critical value
        include_current: Whether the current month enters the mean and covariance
    Returns:
        T2Result dataframe with columns time, obs, crit, pval, n, error.
    """
    times = list(count_matrix.index)
    end = times[-1] if end is None else end
    if start not in times or end not in times or start > end:
        raise InvalidConfiguration(
            "Surveillance period [{}, {}] not within the data ({} to {})".format(
                start, end, times[0], times[-1]
            )
        )
    if not 0 < alpha < 1:
        raise InvalidConfiguration("alpha must lie strictly between 0 and 1")

    values = count_matrix.to_numpy(dtype=float)
    p = values.shape[1]

    rows = []
    for t in range(start, end + 1):
        pos = times.index(t)
        history = values[: pos + 1] if include_current else values[:pos]
        n = len(history)

        row = {"time": t, "obs": np.nan, "crit": np.nan, "pval": np.nan, "n": n, "error": None}
        try:
            t2 = hotelling_t2(history, values[pos])
            row["obs"] = t2
            row["crit"] = t2_critical_value(p, n, alpha)
            row["pval"] = t2_pvalue(t2, p, n)
        except SingularCovariance as err:
            logging.warning("Hotelling T2 skipped at time %d: %s", t, err)
            row["error"] = type(err).__name__
        rows.append(row)

    logging.info("Hotelling T2 computed for %d time steps", len(rows))
    return pd.DataFrame(rows, columns=["time", "obs", "crit", "pval", "n", "error"])
