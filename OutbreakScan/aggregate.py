"""Module to turn raw case events into the monthly district- and state-level
count tables used by all detection methods."""

import logging

import numpy as np
import pandas as pd

from OutbreakScan.errors import MissingReferenceData


def add_case_dates(cases: pd.DataFrame, origin: str = "2001-12-31") -> pd.DataFrame:
    """Derive calendar columns from the continuous event time. The exact start
    date of the data is unknown, so day 1 is taken as the day after `origin`.

    Args:
        cases: Case events with a continuous `time` column (days)
        origin: Date corresponding to time zero
    Returns:
        Copy of `cases` with `day`, `date`, `year` and `month` columns added.
    """
    assert set(["time"]) <= set(cases.columns)

    copy_df = cases.copy()
    copy_df["day"] = np.ceil(copy_df["time"]).astype(int)
    copy_df["date"] = pd.Timestamp(origin) + pd.to_timedelta(copy_df["day"], unit="D")
    copy_df["year"] = copy_df["date"].dt.year.astype(int)
    copy_df["month"] = copy_df["date"].dt.month.astype(int)
    return copy_df


def period_dates(time: pd.Series, first_year: int = 2002) -> pd.DataFrame:
    """Map monthly period indices (1 = January of `first_year`) to year, month
    and the first day of the month."""
    year = first_year + (time - 1) // 12
    month = (time - 1) % 12 + 1
    date = pd.to_datetime(pd.DataFrame({"year": year, "month": month, "day": 1}))
    return pd.DataFrame({"year": year, "month": month, "date": date})


def _check_district_grid(district_grid: pd.DataFrame) -> None:
    """Raise `MissingReferenceData` if the reference grid lacks covariates or
    is not a complete district x period grid."""

    incomplete = district_grid[district_grid[["area", "popdensity"]].isnull().any(axis=1)]
    if not incomplete.empty:
        raise MissingReferenceData(
            "Districts without area/population density: {}".format(
                sorted(incomplete["tile"].unique())
            )
        )

    if district_grid.duplicated(["tile", "BLOCK"]).any():
        raise MissingReferenceData("District grid has duplicated (tile, BLOCK) rows")

    n_periods = district_grid["BLOCK"].nunique()
    periods_per_tile = district_grid.groupby("tile")["BLOCK"].nunique()
    short_tiles = periods_per_tile[periods_per_tile < n_periods]
    if not short_tiles.empty:
        raise MissingReferenceData(
            "Districts missing from some periods of the grid: {}".format(
                sorted(short_tiles.index)
            )
        )


def district_period_counts(
    cases: pd.DataFrame, district_grid: pd.DataFrame, first_year: int = 2002
) -> pd.DataFrame:
    """Count cases per district and month, joined onto the district reference
    grid so that every district has exactly one row per month. Months without
    cases get a count of zero.

    Args:
        cases: Case events with `tile` and `BLOCK` columns
        district_grid: Reference grid with one row per (`tile`, `BLOCK`), carrying
                       `area` and `popdensity`
        first_year: Calendar year of period 1
    Returns:
        DistrictPeriod table sorted by (location, time) with columns tile,
        location, time, area, popdensity, population, count, total_pop, year,
        month and date.
    Raises:
        MissingReferenceData: if a case falls in a district or period absent
                              from the grid, or the grid lacks covariates.
    """
    assert set(["tile", "BLOCK"]) <= set(cases.columns)
    assert set(["tile", "BLOCK", "area", "popdensity"]) <= set(district_grid.columns)

    grid = district_grid[["tile", "BLOCK", "area", "popdensity"]].copy()
    grid["tile"] = grid["tile"].astype(str)
    _check_district_grid(grid)

    counts = cases[["tile", "BLOCK"]].copy()
    counts["tile"] = counts["tile"].astype(str)
    counts = counts.groupby(["tile", "BLOCK"]).size().rename("count").reset_index()

    # Cases must land somewhere on the grid; an inner join would silently drop them
    check = counts.merge(grid[["tile", "BLOCK"]], how="left", on=["tile", "BLOCK"], indicator=True)
    orphans = check[check["_merge"] == "left_only"]
    if not orphans.empty:
        missing_tiles = sorted(set(orphans["tile"]) - set(grid["tile"]))
        raise MissingReferenceData(
            "{} cases in districts/periods missing from the reference grid. "
            "Missing districts: {}".format(int(orphans["count"].sum()), missing_tiles)
        )

    tile_location = pd.DataFrame({"tile": pd.unique(grid["tile"])})
    tile_location["location"] = np.arange(1, len(tile_location) + 1)
    grid = grid.merge(tile_location, how="left", on="tile")

    grid["population"] = (grid["popdensity"] * grid["area"]).astype(int)

    # Population is constant across time, so any single period gives the total
    first_block = grid["BLOCK"].min()
    total_pop = grid.loc[grid["BLOCK"] == first_block, "population"].sum()

    district_df = grid.merge(counts, how="left", on=["tile", "BLOCK"])
    district_df["count"] = district_df["count"].fillna(0).astype(int)
    district_df["total_pop"] = total_pop
    district_df = district_df.rename(columns={"BLOCK": "time"})
    district_df = district_df.sort_values(["location", "time"]).reset_index(drop=True)

    dates = period_dates(district_df["time"], first_year=first_year)
    district_df = pd.concat([district_df, dates], axis=1)

    logging.info(
        "Aggregated %d cases to %d districts over %d months",
        len(cases),
        len(tile_location),
        district_df["time"].nunique(),
    )

    return district_df[
        [
            "tile",
            "location",
            "time",
            "area",
            "popdensity",
            "population",
            "count",
            "total_pop",
            "year",
            "month",
            "date",
        ]
    ]


def state_period_counts(district_counts: pd.DataFrame) -> pd.DataFrame:
    """Aggregate district counts to state level, where the state is given by the
    first two characters of the district tile ID.

    Args:
        district_counts: DistrictPeriod table from `district_period_counts()`
    Returns:
        StatePeriod table with summed area, population and count per
        (state, time, date).
    """
    assert set(["tile", "time", "date", "area", "population", "count"]) <= set(
        district_counts.columns
    )

    state_df = district_counts.copy()
    state_df["state"] = state_df["tile"].astype(str).str[:2]
    state_df = (
        state_df.groupby(["state", "time", "date"])[["area", "population", "count"]]
        .sum()
        .reset_index()
    )
    state_df["popdensity"] = state_df["population"] / state_df["area"]
    state_df["total_pop"] = district_counts["population"][
        district_counts["time"] == district_counts["time"].min()
    ].sum()

    return state_df


def state_count_matrix(state_counts: pd.DataFrame) -> pd.DataFrame:
    """Time x state matrix of counts, rows ordered by time."""
    assert set(["state", "time", "count"]) <= set(state_counts.columns)
    return state_counts.pivot(index="time", columns="state", values="count").sort_index()


def district_count_matrix(
    district_counts: pd.DataFrame, value: str = "count"
) -> pd.DataFrame:
    """Time x location matrix of `value` (count or population), rows ordered
    by time and columns by location."""
    assert set(["location", "time", value]) <= set(district_counts.columns)
    return (
        district_counts.pivot(index="time", columns="location", values=value)
        .sort_index()
        .sort_index(axis=1)
    )


def district_incidence(district_counts: pd.DataFrame) -> pd.DataFrame:
    """Total cases and incidence per 100,000 people for each district over the
    whole period."""
    incidence = (
        district_counts.groupby(["tile", "location"])
        .agg(count=("count", "sum"), population=("population", "first"))
        .reset_index()
    )
    incidence["incidence"] = incidence["count"] * 100000 / incidence["population"]
    return incidence
