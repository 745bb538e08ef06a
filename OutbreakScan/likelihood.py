"""Contains all functionality required to score a space-time window W = Z x d
(zone Z over the d most recent periods). The frequentist score is Kulldorff's
log likelihood ratio for population-based Poisson counts; the Bayesian scan
uses Gamma-Poisson (negative binomial) marginal likelihoods of each cell."""

import numpy as np
from scipy.special import xlogy
from scipy.stats import nbinom


def expected_counts(counts: np.ndarray, population: np.ndarray = None) -> np.ndarray:
    """Expected counts b_it under the null hypothesis of no cluster, conditional
    on the total count C of the window.

    Args:
        counts: (periods x locations) observed counts
        population: (periods x locations) population at risk. If None, counts
                    are assumed independent in space and time and
                    b_it = (row total * column total) / C.
    Returns:
        Array of expected counts with the same shape as `counts`, summing to C.
    """
    counts = np.asarray(counts, dtype=float)
    total = counts.sum()

    if population is not None:
        population = np.asarray(population, dtype=float)
        return total * population / population.sum()

    if total == 0:
        return np.zeros_like(counts)
    return np.outer(counts.sum(axis=1), counts.sum(axis=0)) / total


def window_sums(values: np.ndarray, membership: np.ndarray) -> np.ndarray:
    """Sum `values` over every zone and every duration.

    Args:
        values: (periods x locations) array, rows ordered oldest first
        membership: (zones x locations) 0/1 matrix of a ZoneCatalog
    Returns:
        (zones x durations) array; entry [z, d - 1] is the sum over the
        locations of zone z during the d most recent periods.
    """
    recent_first = np.asarray(values, dtype=float)[::-1]
    cumulative = np.cumsum(recent_first, axis=0)
    return membership @ cumulative.T


def poisson_score(c_in, b_in, c_tot: float):
    """Kulldorff's log likelihood ratio for an elevated rate inside a window.
    Windows with zero expected count inside (or nothing left outside) are
    degenerate and score -inf.

    Args:
        c_in: Observed count(s) inside the window
        b_in: Expected count(s) inside the window
        c_tot: Total observed count of the scanned data
    Returns:
        Score(s), 0 where c_in <= b_in.
    """
    c_in = np.asarray(c_in, dtype=float)
    b_in = np.asarray(b_in, dtype=float)
    c_out = c_tot - c_in
    b_out = c_tot - b_in

    degenerate = (b_in <= 0) | (b_out <= 0) | np.isclose(b_out, 0)

    with np.errstate(divide="ignore", invalid="ignore"):
        score = xlogy(c_in, c_in / b_in) + xlogy(c_out, c_out / b_out)

    score = np.where(c_in > b_in, score, 0.0)
    return np.where(degenerate, -np.inf, score)


def relative_risks(c_in, b_in, c_tot: float) -> tuple:
    """Relative risk inside and outside a window, c/b."""
    with np.errstate(divide="ignore", invalid="ignore"):
        relrisk_in = np.divide(c_in, b_in)
        relrisk_out = np.divide(c_tot - c_in, c_tot - b_in)
    return relrisk_in, relrisk_out


def negbin_loglik(
    counts: np.ndarray, baselines: np.ndarray, alpha: float, beta: float, relrisk=1.0
) -> np.ndarray:
    """Log marginal likelihood of each cell count when c ~ Po(m * q * b) and the
    relative risk q ~ Gamma(alpha, beta), i.e. c ~ NegBin(alpha, beta / (beta + m b)).

    Args:
        counts: Observed counts
        baselines: Expected counts, same shape as `counts`
        alpha: Gamma shape
        beta: Gamma rate
        relrisk: Outbreak relative risk m. Scalar or array broadcastable against
                 `counts` (e.g. shape (n, 1, 1) to evaluate a grid of values).
    Returns:
        Array of log probabilities.
    """
    mean_scale = np.asarray(relrisk, dtype=float) * np.asarray(baselines, dtype=float)
    return nbinom.logpmf(np.asarray(counts), alpha, beta / (beta + mean_scale))
