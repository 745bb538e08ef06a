"""Online detection of an emerging space-time cluster in a point pattern of
events (Assuncao & Correa, 2009). Each event k is a candidate start of a
circular cluster of fixed radius centred at its location; a Shiryaev-Roberts
(or CUSUM) statistic sums the evidence over candidates as events arrive and
raises an alarm once it crosses a threshold, which plays the role of the
average run length ARL0 under the null."""

import logging

import numpy as np
import pandas as pd
from scipy.special import logsumexp

from OutbreakScan.errors import InvalidConfiguration


def stcd(
    x: np.ndarray,
    y: np.ndarray,
    t: np.ndarray,
    radius: float,
    epsilon: float,
    threshold: float,
    area_a: float = -1,
    area_a_cap_bk: np.ndarray = -1,
    cusum: bool = False,
) -> dict:
    """Space-time cluster detection over time-ordered events.

    For event n and each candidate start k <= n the likelihood ratio is
        L(k, n) = (1 + epsilon)^N(k, n) * exp(-epsilon * mu(k, n))
    where N(k, n) counts events k..n within `radius` of event k and mu(k, n) is
    its expectation under no clustering: (n - k + 1) * (events up to n within the
    circle) / n when areas are not given, or (n - k + 1) * |A & B_k| / |A|.
    R(n) = sum_k L(k, n), or max_k L(k, n) with `cusum`.

    Circle membership is held as a dense (events x events) boolean matrix, so
    memory grows with the square of the number of events. Filter the events
    (by type and date range, see `detect_cluster()`) before running on large
    data sets.

    Args:
        x, y: Event coordinates
        t: Event times, non-decreasing
        radius: Radius of the candidate cluster circles
        epsilon: Relative change of intensity inside a cluster
        threshold: Alarm threshold for R(n)
        area_a: Area of the observation region A, or -1 to condition on counts
        area_a_cap_bk: Area of A intersected with each circle, or -1
        cusum: Use the CUSUM rather than the Shiryaev-Roberts statistic
    Returns:
        dict with `R` (statistic after each event), `idx_fa` (0-based index of
        the first event with R above the threshold) and `idx_cc` (index of the
        event where the detected cluster starts); both None if no alarm.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    t = np.asarray(t, dtype=float)

    if not len(x) == len(y) == len(t):
        raise InvalidConfiguration("x, y and t must have the same length")
    if np.any(np.diff(t) < 0):
        raise InvalidConfiguration("Events must be ordered in time")
    if radius <= 0 or epsilon <= 0 or threshold <= 0:
        raise InvalidConfiguration("radius, epsilon and threshold must be positive")

    n_events = len(t)
    use_areas = area_a > 0
    if use_areas:
        area_a_cap_bk = np.broadcast_to(np.asarray(area_a_cap_bk, dtype=float), (n_events,))
        if np.any(area_a_cap_bk < 0):
            raise InvalidConfiguration("area_a_cap_bk is needed when area_a is given")

    # inside[k, j]: event j lies in the circle centred at event k
    inside = (x[:, None] - x[None, :]) ** 2 + (y[:, None] - y[None, :]) ** 2 <= radius ** 2
    before_k = np.array([inside[k, :k].sum() for k in range(n_events)])

    log_growth = np.log1p(epsilon)
    circle_count = np.zeros(n_events)
    R = np.zeros(n_events)
    idx_fa = None
    idx_cc = None

    for n in range(n_events):
        circle_count += inside[:, n]
        k = np.arange(n + 1)

        cylinder_count = circle_count[: n + 1] - before_k[: n + 1]
        events_since_k = n - k + 1
        if use_areas:
            mu = events_since_k * area_a_cap_bk[: n + 1] / area_a
        else:
            mu = events_since_k * circle_count[: n + 1] / (n + 1)

        log_lr = cylinder_count * log_growth - epsilon * mu
        with np.errstate(over="ignore"):
            R[n] = np.exp(log_lr.max() if cusum else logsumexp(log_lr))

        if idx_fa is None and R[n] > threshold:
            idx_fa = n
            idx_cc = int(np.argmax(log_lr))

    return {"R": R, "idx_fa": idx_fa, "idx_cc": idx_cc}


def detect_cluster(
    cases: pd.DataFrame,
    radius: float = 75,
    epsilon: float = 0.2,
    threshold: float = 30,
    case_type: str = None,
    start_date: str = None,
    end_date: str = None,
    cusum: bool = False,
) -> dict:
    """Prepare case events for `stcd()` and map the alarm back to dates, locations
    and districts.

    Args:
        cases: Case events with `time`, `x`, `y`, `tile` and `date` columns
               (see `add_case_dates()`), plus `type` if `case_type` is given
        radius, epsilon, threshold, cusum: as in `stcd()`
        case_type: Keep only events of this type
        start_date: Keep events on or after this date
        end_date: Keep events before this date
    Returns:
        dict with the filtered time-ordered `events`, the `R` statistic, and if a
        cluster was detected its `onset_date`, `detection_date`, `center_x`,
        `center_y`, `center_tile` and the 0-based `idx_cc` / `idx_fa`.
    """
    assert set(["time", "x", "y", "tile", "date"]) <= set(cases.columns)

    keep = pd.Series(True, index=cases.index)
    if case_type is not None:
        keep &= cases["type"] == case_type
    if start_date is not None:
        keep &= cases["date"] >= pd.Timestamp(start_date)
    if end_date is not None:
        keep &= cases["date"] < pd.Timestamp(end_date)

    events = cases[keep].sort_values("time", kind="mergesort").reset_index(drop=True)
    logging.info(
        "Running space-time cluster detection on %d events (radius %s, epsilon %s, threshold %s)",
        len(events),
        radius,
        epsilon,
        threshold,
    )

    res = stcd(
        events["x"].to_numpy(),
        events["y"].to_numpy(),
        events["time"].to_numpy(),
        radius=radius,
        epsilon=epsilon,
        threshold=threshold,
        cusum=cusum,
    )

    detection = {
        "events": events,
        "R": res["R"],
        "idx_fa": res["idx_fa"],
        "idx_cc": res["idx_cc"],
        "onset_date": None,
        "detection_date": None,
        "center_x": None,
        "center_y": None,
        "center_tile": None,
    }

    if res["idx_fa"] is None:
        logging.info("No cluster detected")
        return detection

    onset = events.iloc[res["idx_cc"]]
    detection.update(
        {
            "onset_date": onset["date"],
            "detection_date": events.iloc[res["idx_fa"]]["date"],
            "center_x": float(onset["x"]),
            "center_y": float(onset["y"]),
            "center_tile": onset["tile"],
        }
    )
    logging.info(
        "Cluster starting %s in district %s detected on %s",
        detection["onset_date"],
        detection["center_tile"],
        detection["detection_date"],
    )
    return detection
