"""Fixtures for testing the outbreak detection methods."""

import numpy as np
import pandas as pd
import pytest

from OutbreakScan.aggregate import add_case_dates, district_period_counts
from OutbreakScan.synthetic import add_outbreak, synthetic_cases, synthetic_district_grid
from OutbreakScan.zones import ZoneCatalog, zone_catalog


@pytest.fixture(scope="module")
def district_setup():
    """Three states of five districts over two years."""
    return synthetic_district_grid(n_states=3, districts_per_state=5, n_periods=24, seed=0)


@pytest.fixture(scope="module")
def cases(district_setup) -> pd.DataFrame:
    """Background cases plus an outbreak in two neighbouring districts of state 02
    during the last four months."""
    grid, coords = district_setup
    background = synthetic_cases(grid, coords, rate=2e-6, seed=0)
    outbreak = add_outbreak(
        background, grid, coords, ["02001", "02002"], start_block=21, end_block=24, extra_rate=2e-5
    )
    return add_case_dates(outbreak)


@pytest.fixture(scope="module")
def district_counts(cases, district_setup) -> pd.DataFrame:
    grid, _ = district_setup
    return district_period_counts(cases, grid)


@pytest.fixture(scope="module")
def catalog(district_setup) -> ZoneCatalog:
    _, coords = district_setup
    return zone_catalog(coords, k=4)


@pytest.fixture(scope="function")
def line_catalog() -> ZoneCatalog:
    """Zones over four locations on a line at x = 0, 1, 3, 6:
    ({0}, {0, 1}, {1}, {2}, {1, 2}, {3}, {2, 3})."""
    coords = pd.DataFrame({"location": [1, 2, 3, 4], "x": [0.0, 1.0, 3.0, 6.0], "y": 0.0})
    return zone_catalog(coords, k=2)


@pytest.fixture(scope="function")
def outbreak_counts() -> np.ndarray:
    """Two months over four locations, with 30 cases at location 0 in the latest month."""
    return np.array([[1, 1, 1, 1], [30, 1, 1, 1]], dtype=float)


@pytest.fixture(scope="function")
def equal_population() -> np.ndarray:
    return np.full((2, 4), 1000.0)
