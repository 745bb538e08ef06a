"""Test the prospective surveillance loop"""

import numpy as np
import pandas as pd
import pytest

from OutbreakScan.aggregate import district_period_counts
from OutbreakScan.errors import InvalidConfiguration
from OutbreakScan.scan import ReplicatePool
from OutbreakScan.surveillance import (
    BAYES_COLUMNS,
    SCAN_COLUMNS,
    observation_window,
    scan_surveillance,
)
from OutbreakScan.zones import ZoneCatalog


def surveillance_checks(res: dict, start: int, end: int) -> None:
    """One row per month in both tables; valid p-values and relative risk
    posteriors for every month."""
    scan_df = res["scan"]
    bayes_df = res["bayes"]
    times = list(range(start, end + 1))

    assert list(scan_df.columns) == SCAN_COLUMNS
    assert list(bayes_df.columns) == BAYES_COLUMNS
    assert list(scan_df["time"]) == times
    assert list(bayes_df["time"]) == times

    ok = scan_df[scan_df["error"].isnull()]
    assert ((ok["pval"] > 0) & (ok["pval"] <= 1)).all()
    assert (ok["duration"] >= 1).all()

    posteriors = res["relrisk_posteriors"]
    assert list(posteriors.index) == times
    np.testing.assert_allclose(posteriors.sum(axis=1), 1)
    np.testing.assert_allclose(res["relrisk_prior"], posteriors.iloc[-1])


def test_observation_window() -> None:
    assert observation_window(10, 6) == [5, 6, 7, 8, 9, 10]
    assert observation_window(3, 6) == [1, 2, 3]
    assert observation_window(1, 1) == [1]


def test_window_clipped_to_data(cases, district_setup, catalog) -> None:
    """Data starting after period 1 gives shorter windows at first, not an error."""
    grid, _ = district_setup
    late_grid = grid[grid["BLOCK"] >= 13]
    late_cases = cases[cases["BLOCK"] >= 13]
    late_counts = district_period_counts(late_cases, late_grid)

    res = scan_surveillance(late_counts, catalog, start=15, end=20, n_mcsim=3)
    surveillance_checks(res, 15, 20)

    scan_df = res["scan"]
    assert scan_df["error"].isnull().all()
    assert (scan_df.loc[scan_df["time"] == 15, "duration"] <= 3).all()
    assert list(scan_df["n_replicates"]) == [3, 6, 9, 12, 15, 18]

    assert observation_window(15, 6, first_period=13) == [13, 14, 15]


def test_scan_surveillance(district_counts, catalog) -> None:
    res = scan_surveillance(
        district_counts, catalog, start=19, end=24, scan_length=3, n_mcsim=9, seed=1
    )
    surveillance_checks(res, 19, 24)

    scan_df = res["scan"]
    assert scan_df["error"].isnull().all()
    assert list(scan_df["n_replicates"]) == [9, 18, 27, 36, 45, 54]
    assert len(res["pool"]) == 54
    assert scan_df["date"].iloc[0] == pd.Timestamp("2003-07-01")
    assert scan_df["zone"].between(0, len(catalog) - 1).all()


def test_reset_pool(district_counts, catalog) -> None:
    res = scan_surveillance(
        district_counts,
        catalog,
        start=21,
        end=24,
        scan_length=3,
        n_mcsim=9,
        pool_policy="reset",
    )
    assert (res["scan"]["n_replicates"] == 9).all()


def test_pool_carried_between_runs(district_counts, catalog) -> None:
    first = scan_surveillance(district_counts, catalog, start=20, end=21, n_mcsim=5)
    second = scan_surveillance(
        district_counts, catalog, start=22, end=23, n_mcsim=5, pool=first["pool"]
    )
    assert list(second["scan"]["n_replicates"]) == [15, 20]
    assert isinstance(second["pool"], ReplicatePool)


def test_reproducible(district_counts, catalog) -> None:
    runs = [
        scan_surveillance(district_counts, catalog, start=22, end=24, n_mcsim=9, seed=11)
        for _ in range(2)
    ]
    pd.testing.assert_frame_equal(runs[0]["scan"], runs[1]["scan"])
    pd.testing.assert_frame_equal(runs[0]["bayes"], runs[1]["bayes"])


def test_empty_month_recorded(district_counts, catalog) -> None:
    """A month without any case can not be scanned; the loop records it and
    carries on with the same replicate pool."""
    quiet = district_counts.copy()
    quiet.loc[quiet["time"] == 20, "count"] = 0

    res = scan_surveillance(quiet, catalog, start=19, end=21, scan_length=1, n_mcsim=9)
    surveillance_checks(res, 19, 21)

    scan_df = res["scan"].set_index("time")
    assert scan_df.loc[20, "error"] == "DegenerateZone"
    assert np.isnan(scan_df.loc[20, "score"])
    assert scan_df.loc[19, "n_replicates"] == 9
    assert scan_df.loc[21, "n_replicates"] == 18


def test_initial_prior(district_counts, catalog) -> None:
    values = np.array([1.0, 2.0, 4.0])
    res = scan_surveillance(
        district_counts,
        catalog,
        start=24,
        n_mcsim=3,
        relrisk_values=values,
        relrisk_prior=[2, 1, 1],
    )
    assert list(res["relrisk_posteriors"].columns) == [1.0, 2.0, 4.0]
    assert res["bayes"]["relrisk_MAP"].isin(values).all()


def test_invalid_configuration(district_counts, catalog) -> None:
    with pytest.raises(InvalidConfiguration):
        scan_surveillance(district_counts, catalog, start=19, scan_length=25)
    with pytest.raises(InvalidConfiguration):
        scan_surveillance(district_counts, catalog, start=0)
    with pytest.raises(InvalidConfiguration):
        scan_surveillance(district_counts, catalog, start=20, end=19)
    with pytest.raises(InvalidConfiguration):
        scan_surveillance(district_counts, catalog, start=20, n_mcsim=0)
    with pytest.raises(InvalidConfiguration):
        scan_surveillance(district_counts, catalog, start=20, pool_policy="never")
    with pytest.raises(InvalidConfiguration):
        scan_surveillance(district_counts, catalog, start=20, relrisk_prior=np.ones(3))
    with pytest.raises(InvalidConfiguration):
        scan_surveillance(district_counts, ZoneCatalog([[0]], n_locations=3), start=20)
