"""Module to contain the frequentist (Kulldorff) space-time scan statistic and
its Monte Carlo randomisation testing."""

import numpy as np

from OutbreakScan.errors import DegenerateZone, InvalidConfiguration
from OutbreakScan.likelihood import (
    expected_counts,
    poisson_score,
    relative_risks,
    window_sums,
)

POOL_POLICIES = ("accumulate", "reset")


def empirical_pvalue(observed: float, replicates: np.ndarray) -> float:
    """Monte Carlo p-value (1 + #{replicates >= observed}) / (1 + N)."""
    replicates = np.asarray(replicates, dtype=float)
    return (1 + np.count_nonzero(replicates >= observed)) / (1 + len(replicates))


def critical_value(replicates: np.ndarray, alpha: float) -> float:
    """The (1 - alpha) sample quantile of the replicate scores, using the
    median-unbiased order statistic interpolation (Hyndman & Fan type 8)."""
    return float(np.quantile(replicates, 1 - alpha, method="median_unbiased"))


class ReplicatePool:
    """Append-only record of Monte Carlo replicate scores shared by the time steps
    of a surveillance run. With the "accumulate" policy the reference
    distribution at step t holds every replicate drawn at steps 1..t; with
    "reset" it only holds the replicates of step t. Appending returns a new
    pool and leaves this one untouched."""

    def __init__(self, replicates=(), policy: str = "accumulate") -> None:
        if policy not in POOL_POLICIES:
            raise InvalidConfiguration(
                "Unknown replicate pool policy '{}'. Use one of {}".format(
                    policy, POOL_POLICIES
                )
            )
        self.policy = policy
        self.replicates = np.array(replicates, dtype=float)
        self.replicates.setflags(write=False)

    def __len__(self):
        return len(self.replicates)

    def append(self, new_replicates) -> "ReplicatePool":
        """Pool including `new_replicates`, according to the pool policy."""
        if self.policy == "reset":
            return ReplicatePool(new_replicates, policy=self.policy)
        return ReplicatePool(
            np.concatenate([self.replicates, np.asarray(new_replicates, dtype=float)]),
            policy=self.policy,
        )

    def pvalue(self, observed: float) -> float:
        return empirical_pvalue(observed, self.replicates)

    def critical_value(self, alpha: float) -> float:
        return critical_value(self.replicates, alpha)


def most_likely_window(scores: np.ndarray) -> tuple:
    """Index (zone, duration - 1) of the highest scoring window. Ties go to the
    lowest zone index, then to the shortest duration.

    Raises:
        DegenerateZone: if no window has a finite score.
    """
    if not np.isfinite(scores).any():
        raise DegenerateZone("No zone has a positive expected count in this window")
    # argmax returns the first maximum in row-major (zone, duration) order
    return np.unravel_index(np.argmax(scores), scores.shape)


def window_scores(counts: np.ndarray, baselines: np.ndarray, membership: np.ndarray) -> tuple:
    """Kulldorff scores of every (zone, duration) window.

    Returns:
        scores, observed and expected counts inside each window (all
        zones x durations), and the total count.
    """
    c_tot = float(np.sum(counts))
    c_in = window_sums(counts, membership)
    b_in = window_sums(baselines, membership)
    return poisson_score(c_in, b_in, c_tot), c_in, b_in, c_tot


def max_score(counts: np.ndarray, population: np.ndarray, membership: np.ndarray) -> float:
    """Highest window score of a data set, 0 if all windows are degenerate."""
    scores, _, _, _ = window_scores(counts, expected_counts(counts, population), membership)
    finite = scores[np.isfinite(scores)]
    return float(finite.max()) if finite.size else 0.0


def simulate_counts(baselines: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Redistribute the total count over all cells proportionally to their
    expected counts, i.e. draw from Multinomial(C, b / C)."""
    total = int(round(baselines.sum()))
    if total == 0:
        return np.zeros(baselines.shape, dtype=int)
    probs = (baselines / baselines.sum()).ravel()
    return rng.multinomial(total, probs).reshape(baselines.shape)


def scan_pb_poisson(
    counts: np.ndarray,
    catalog,
    population: np.ndarray = None,
    n_mcsim: int = 99,
    rng: np.random.Generator = None,
) -> dict:
    """Population-based Poisson space-time scan statistic (Kulldorff) over all
    zones of `catalog` and all durations of the counts window.

    Args:
        counts: (periods x locations) counts, oldest period first
        catalog: ZoneCatalog
        population: (periods x locations) population at risk, optional
        n_mcsim: Number of Monte Carlo replicates of the maximum score
        rng: numpy random Generator used for the replicates
    Returns:
        dict with the most likely cluster `MLC` (zone, duration, score,
        observed, expected, relrisk_in, relrisk_out), the full `scores`
        array and the `replicates` array of maximum scores.
    Raises:
        DegenerateZone: if every window has zero expected count.
    """
    counts = np.asarray(counts, dtype=float)
    rng = np.random.default_rng() if rng is None else rng
    assert counts.shape[1] == catalog.n_locations

    baselines = expected_counts(counts, population)
    scores, c_in, b_in, c_tot = window_scores(counts, baselines, catalog.membership)
    zone, duration_idx = most_likely_window(scores)

    relrisk_in, relrisk_out = relative_risks(
        c_in[zone, duration_idx], b_in[zone, duration_idx], c_tot
    )

    replicates = np.array(
        [
            max_score(simulate_counts(baselines, rng), population, catalog.membership)
            for _ in range(n_mcsim)
        ]
    )

    return {
        "MLC": {
            "zone": int(zone),
            "duration": int(duration_idx) + 1,
            "score": float(scores[zone, duration_idx]),
            "observed": float(c_in[zone, duration_idx]),
            "expected": float(b_in[zone, duration_idx]),
            "relrisk_in": float(relrisk_in),
            "relrisk_out": float(relrisk_out),
        },
        "scores": scores,
        "replicates": replicates,
    }


def scan_step(
    counts: np.ndarray,
    catalog,
    pool: ReplicatePool,
    population: np.ndarray = None,
    n_mcsim: int = 99,
    alpha: float = 1 / 60,
    rng: np.random.Generator = None,
) -> tuple:
    """One time step of prospective scanning: score the current window, add its
    replicates to the pool and judge the observed score against the pool.

    Returns:
        ScanResult dict and the updated ReplicatePool.
    """
    scan = scan_pb_poisson(counts, catalog, population=population, n_mcsim=n_mcsim, rng=rng)
    pool = pool.append(scan["replicates"])

    mlc = scan["MLC"]
    result = {
        "score": mlc["score"],
        "crit": pool.critical_value(alpha),
        "pval": pool.pvalue(mlc["score"]),
        "zone": mlc["zone"],
        "duration": mlc["duration"],
        "relrisk_in": mlc["relrisk_in"],
        "relrisk_out": mlc["relrisk_out"],
        "n_replicates": len(pool),
    }
    return result, pool
