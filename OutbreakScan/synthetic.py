"""Synthetic district grids, case events and outbreaks, for trying out the
detection methods where the truth is known."""

import logging

import numpy as np
import pandas as pd

from OutbreakScan.aggregate import period_dates


def synthetic_district_grid(
    n_states: int = 3,
    districts_per_state: int = 5,
    n_periods: int = 48,
    seed: int = 0,
) -> tuple:
    """Create a reference grid of districts laid out state by state, with random
    areas and population densities.

    Args:
        n_states: Number of states (tile prefixes "01", "02", ...)
        districts_per_state: Number of districts in each state
        n_periods: Number of monthly periods (BLOCK 1..n_periods)
        seed: Seed for the random areas and densities
    Returns:
        district_grid: one row per (tile, BLOCK) with area and popdensity
        district_coords: one row per district with tile, location, x, y (km)
    """
    rng = np.random.default_rng(seed)

    tiles = []
    xs = []
    ys = []
    for s in range(n_states):
        for d in range(districts_per_state):
            tiles.append("{:02d}{:03d}".format(s + 1, d + 1))
            # States are 300 km apart, districts 60 km apart within a state
            xs.append(300.0 * s + 60.0 * (d % 3))
            ys.append(60.0 * (d // 3))

    n_districts = len(tiles)
    area = rng.uniform(500, 2000, n_districts)
    popdensity = rng.uniform(100, 400, n_districts)

    district_grid = pd.DataFrame(
        {
            "tile": np.repeat(tiles, n_periods),
            "BLOCK": np.tile(np.arange(1, n_periods + 1), n_districts),
            "area": np.repeat(area, n_periods),
            "popdensity": np.repeat(popdensity, n_periods),
        }
    )
    district_coords = pd.DataFrame(
        {"tile": tiles, "location": np.arange(1, n_districts + 1), "x": xs, "y": ys}
    )
    return district_grid, district_coords


def month_day_range(block: int, origin: str = "2001-12-31", first_year: int = 2002) -> tuple:
    """First and last day index (days after `origin`) of monthly period `block`."""
    dates = period_dates(pd.Series([block, block + 1]), first_year=first_year)["date"]
    first_day = (dates.iloc[0] - pd.Timestamp(origin)).days
    last_day = (dates.iloc[1] - pd.Timestamp(origin)).days - 1
    return first_day, last_day


def synthetic_cases(
    district_grid: pd.DataFrame,
    district_coords: pd.DataFrame,
    rate: float = 2e-6,
    types: tuple = ("B", "C"),
    spread: float = 10.0,
    seed: int = 0,
) -> pd.DataFrame:
    """Draw Poisson case counts for every district and month at a constant
    incidence `rate` per person and month, and scatter them in time within the
    month and in space around the district centroid.

    Returns:
        Case events with id, type, time, x, y, tile and BLOCK columns, ordered
        in time.
    """
    rng = np.random.default_rng(seed)

    grid = district_grid.merge(district_coords[["tile", "x", "y"]], on="tile", how="left")
    population = (grid["popdensity"] * grid["area"]).astype(int)
    n_cases = rng.poisson(rate * population)

    frames = []
    for (_, row), n in zip(grid.iterrows(), n_cases):
        if n == 0:
            continue
        frames.append(_scatter_cases(row, n, types, spread, rng))

    return _finalise_cases(frames)


def _scatter_cases(row, n: int, types: tuple, spread: float, rng) -> pd.DataFrame:
    first_day, last_day = month_day_range(int(row["BLOCK"]))
    return pd.DataFrame(
        {
            "type": rng.choice(list(types), n),
            "time": rng.uniform(first_day - 1, last_day, n),
            "x": row["x"] + rng.normal(0, spread, n),
            "y": row["y"] + rng.normal(0, spread, n),
            "tile": row["tile"],
            "BLOCK": int(row["BLOCK"]),
        }
    )


def _finalise_cases(frames: list) -> pd.DataFrame:
    columns = ["id", "type", "time", "x", "y", "tile", "BLOCK"]
    if not frames:
        return pd.DataFrame(columns=columns)
    cases = pd.concat(frames, ignore_index=True)
    cases = cases.sort_values("time", kind="mergesort").reset_index(drop=True)
    cases["id"] = np.arange(1, len(cases) + 1)
    return cases[columns]


def select_districts(
    district_coords: pd.DataFrame, k: int, center_x: float, center_y: float
) -> pd.DataFrame:
    """The k districts whose centroids are closest to (center_x, center_y)."""
    coords = district_coords.copy()
    coords["dist"] = (coords["x"] - center_x) ** 2 + (coords["y"] - center_y) ** 2
    return coords.sort_values("dist", kind="mergesort").head(k)


def add_outbreak(
    cases: pd.DataFrame,
    district_grid: pd.DataFrame,
    district_coords: pd.DataFrame,
    outbreak_tiles,
    start_block: int,
    end_block: int,
    extra_rate: float = 1e-5,
    case_type: str = "B",
    spread: float = 10.0,
    seed: int = 1,
) -> pd.DataFrame:
    """Add outbreak cases to the districts `outbreak_tiles` during months
    start_block..end_block, at `extra_rate` cases per person and month on top of
    the background.

    Returns:
        Case events including the outbreak cases, ordered in time and renumbered.
    """
    rng = np.random.default_rng(seed)

    affected = district_grid[
        district_grid["tile"].isin(list(outbreak_tiles))
        & district_grid["BLOCK"].between(start_block, end_block)
    ].merge(district_coords[["tile", "x", "y"]], on="tile", how="left")

    population = (affected["popdensity"] * affected["area"]).astype(int)
    n_cases = rng.poisson(extra_rate * population)

    frames = [cases.drop(columns=["id"])]
    for (_, row), n in zip(affected.iterrows(), n_cases):
        if n > 0:
            frames.append(_scatter_cases(row, n, (case_type,), spread, rng))

    logging.info(
        "Added %d outbreak cases in %d districts during months %d to %d",
        int(n_cases.sum()),
        len(set(outbreak_tiles)),
        start_block,
        end_block,
    )
    return _finalise_cases(frames)
