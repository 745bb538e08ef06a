"""Test the full prospective analysis on synthetic data"""

import pandas as pd
import pytest

from OutbreakScan import ProspectiveAnalysis
from OutbreakScan.errors import InvalidConfiguration
from OutbreakScan.results import (
    alarms,
    first_alarm,
    relrisk_posterior_frame,
    zone_overlap_series,
)


@pytest.fixture(scope="module")
def analysis(cases, district_setup) -> ProspectiveAnalysis:
    grid, coords = district_setup
    model = ProspectiveAnalysis(
        cases,
        grid,
        coords,
        t2_start=13,
        t2_end=24,
        n_mcsim=9,
        k_nearest=4,
        stcd_start="2002-01-01",
        stcd_end="2004-01-01",
    )
    model.run()
    return model


def test_results_before_run(cases, district_setup) -> None:
    grid, coords = district_setup
    model = ProspectiveAnalysis(cases, grid, coords, t2_start=13, t2_end=24)
    with pytest.raises(TypeError):
        model.scan_alarms()
    with pytest.raises(TypeError):
        model.run_hotelling()


def test_invalid_settings(cases, district_setup) -> None:
    grid, coords = district_setup
    with pytest.raises(InvalidConfiguration):
        ProspectiveAnalysis(cases, grid, coords, t2_start=24, t2_end=13)
    with pytest.raises(InvalidConfiguration):
        ProspectiveAnalysis(cases, grid, coords, k_nearest=0)


def test_analysis_results(analysis) -> None:
    times = list(range(13, 25))

    assert list(analysis.t2_results["time"]) == times
    assert list(analysis.scan_results["time"]) == times
    assert list(analysis.bayes_results["time"]) == times
    assert "date" in analysis.t2_results.columns

    # Three states, so every month from the fifth has enough history
    assert analysis.t2_results["error"].isnull().all()
    assert len(analysis.catalog) >= analysis.district_counts["location"].nunique()

    assert list(analysis.scan_results["n_replicates"]) == [9 * (i + 1) for i in range(12)]
    assert len(analysis.stcd_result["R"]) == len(analysis.stcd_result["events"])
    assert (analysis.stcd_result["events"]["type"] == "B").all()


def test_alarms(analysis) -> None:
    scan_alarms = analysis.scan_alarms()
    assert (scan_alarms["score"] > scan_alarms["crit"]).all()

    t2_alarms = analysis.t2_alarms()
    assert (t2_alarms["obs"] > t2_alarms["crit"]).all()

    first = first_alarm(analysis.scan_results)
    if first is not None:
        assert first == scan_alarms["time"].iloc[0]


def test_alarms_skip_errors() -> None:
    results = pd.DataFrame(
        {"time": [1, 2, 3], "score": [5.0, None, 1.0], "crit": [2.0, 2.0, None]}
    )
    assert list(alarms(results)["time"]) == [1]
    assert first_alarm(results) == 1
    assert first_alarm(results.iloc[1:]) is None


def test_most_likely_cluster(analysis) -> None:
    cluster_df = analysis.most_likely_cluster()

    assert len(cluster_df) == 15
    assert cluster_df["MLC"].any()
    assert (cluster_df.loc[cluster_df["MLC"], "MLC_in_state"]).all()
    assert cluster_df["incidence"].ge(0).all()
    assert cluster_df["count"].sum() == analysis.district_counts["count"].sum()


def test_zone_overlap_series(analysis) -> None:
    overlap = zone_overlap_series(analysis.scan_results, analysis.catalog)
    assert list(overlap.index) == list(range(14, 25))
    assert overlap.between(0, 1).all()


def test_relrisk_distributions(analysis) -> None:
    long_df = analysis.relrisk_distributions()

    assert list(long_df.columns) == ["time", "relrisk", "probability"]
    assert long_df["time"].min() == 12
    sums = long_df.groupby("time")["probability"].sum()
    assert sums.to_numpy() == pytest.approx(1)
    assert len(long_df) == 13 * 141

    explicit = relrisk_posterior_frame(analysis.relrisk_posteriors)
    pd.testing.assert_frame_equal(long_df, explicit)


def test_model_settings(analysis) -> None:
    settings = analysis.model_settings()
    assert settings["scan_start"] == 13
    assert settings["scan_end"] == 24
    assert settings["k_nearest"] == 4
    assert "cases" not in settings
    assert "dated_cases" not in settings
    assert "scan_results" not in settings


def test_input_cases_untouched(analysis, cases) -> None:
    """The dated copy of the cases is kept apart from the input."""
    assert analysis.cases is cases
    assert "day" in analysis.dated_cases.columns
    assert len(analysis.dated_cases) == len(cases)
