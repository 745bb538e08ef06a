"""Module to contain functionality for summarising the monthly results of the
detection methods: alarms, the most likely cluster over the whole period and
how the detected clusters move from month to month."""

import numpy as np
import pandas as pd

from OutbreakScan.aggregate import district_incidence
from OutbreakScan.zones import zone_overlap


def alarms(results: pd.DataFrame, statistic: str = "score", critical: str = "crit") -> pd.DataFrame:
    """Rows of a result table whose statistic exceeds its critical value.
    Months recorded with an error never raise an alarm."""
    assert set([statistic, critical]) <= set(results.columns)
    return results[results[statistic] > results[critical]]


def first_alarm(results: pd.DataFrame, statistic: str = "score", critical: str = "crit"):
    """Time of the first alarm, or None."""
    alarm_df = alarms(results, statistic, critical)
    if alarm_df.empty:
        return None
    return alarm_df["time"].iloc[0]


def zone_overlap_series(scan_results: pd.DataFrame, catalog, zone_column: str = "zone") -> pd.Series:
    """Overlap between the most likely clusters of consecutive months, indexed by
    the later month. NaN where either month has no cluster."""
    zones = scan_results[zone_column].to_numpy()
    overlaps = []
    for previous, current in zip(zones[:-1], zones[1:]):
        if pd.isnull(previous) or pd.isnull(current):
            overlaps.append(np.nan)
        else:
            overlaps.append(zone_overlap(catalog[int(previous)], catalog[int(current)]))
    return pd.Series(overlaps, index=scan_results["time"].iloc[1:].to_numpy(), name="overlap")


def most_likely_cluster(
    scan_results: pd.DataFrame,
    catalog,
    district_counts: pd.DataFrame,
    score_column: str = "score",
    zone_column: str = "zone",
) -> pd.DataFrame:
    """Label every district as in or out of the highest scoring cluster of the
    whole surveillance period, alongside its incidence per 100,000.

    Returns:
        One row per district with tile, location, count, population, incidence,
        state, MLC (bool) and MLC_in_state (district shares a state with the
        cluster).
    """
    scored = scan_results.dropna(subset=[score_column])
    if scored.empty:
        raise ValueError("No month has a scan result")

    best = scored.loc[scored[score_column].idxmax()]
    zone = catalog[int(best[zone_column])]

    cluster_df = district_incidence(district_counts)
    cluster_df["state"] = cluster_df["tile"].astype(str).str[:2]
    # Zones hold 0-based locations
    cluster_df["MLC"] = (cluster_df["location"] - 1).isin(zone)
    cluster_states = set(cluster_df.loc[cluster_df["MLC"], "state"])
    cluster_df["MLC_in_state"] = cluster_df["state"].isin(cluster_states)
    return cluster_df


def relrisk_posterior_frame(
    relrisk_posteriors: pd.DataFrame, initial_prior: np.ndarray = None
) -> pd.DataFrame:
    """Long table of the relative risk distribution after every month, preceded by
    the initial prior (time 0, uniform unless given)."""
    values = relrisk_posteriors.columns.to_numpy(dtype=float)
    if initial_prior is None:
        initial_prior = np.full(len(values), 1 / len(values))

    first_time = relrisk_posteriors.index.min() - 1
    wide = pd.concat(
        [
            pd.DataFrame([initial_prior], index=[first_time], columns=relrisk_posteriors.columns),
            relrisk_posteriors,
        ]
    )
    wide.index.name = "time"
    return wide.reset_index().melt(
        id_vars="time", var_name="relrisk", value_name="probability"
    ).astype({"relrisk": float})
