"""Test the synthetic data generators"""

import pandas as pd

from OutbreakScan.synthetic import (
    add_outbreak,
    month_day_range,
    select_districts,
    synthetic_cases,
)


def cases_checks(cases: pd.DataFrame) -> None:
    assert list(cases.columns) == ["id", "type", "time", "x", "y", "tile", "BLOCK"]
    assert cases["time"].is_monotonic_increasing
    assert list(cases["id"]) == list(range(1, len(cases) + 1))


def test_district_grid(district_setup) -> None:
    grid, coords = district_setup
    assert len(coords) == 15
    assert len(grid) == 15 * 24
    assert set(coords["tile"].str[:2]) == {"01", "02", "03"}
    assert grid.groupby("tile")["BLOCK"].nunique().eq(24).all()


def test_month_day_range() -> None:
    assert month_day_range(1) == (1, 31)
    assert month_day_range(2) == (32, 59)


def test_synthetic_cases(district_setup) -> None:
    """Cases fall in their month and near their district."""
    grid, coords = district_setup
    cases = synthetic_cases(grid, coords, seed=3)
    cases_checks(cases)

    first_day, last_day = month_day_range(5)
    may = cases[cases["BLOCK"] == 5]
    assert (may["time"] > first_day - 1).all()
    assert (may["time"] <= last_day).all()


def test_select_districts(district_setup) -> None:
    _, coords = district_setup
    nearest = select_districts(coords, k=2, center_x=300, center_y=0)
    assert list(nearest["tile"]) == ["02001", "02002"]


def test_add_outbreak(district_setup) -> None:
    grid, coords = district_setup
    background = synthetic_cases(grid, coords, seed=3)
    outbreak = add_outbreak(
        background, grid, coords, ["02001"], start_block=10, end_block=12, extra_rate=1e-4
    )
    cases_checks(outbreak)

    extra = len(outbreak) - len(background)
    assert extra > 0
    before = background[(background["tile"] == "02001") & background["BLOCK"].between(10, 12)]
    after = outbreak[(outbreak["tile"] == "02001") & outbreak["BLOCK"].between(10, 12)]
    assert len(after) - len(before) == extra
