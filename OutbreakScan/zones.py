"""Module to build the catalog of candidate zones (spatial clusters) scanned over
by the scan statistics. Zones are the sets of k nearest neighbours of each
district, for every k up to a maximum."""

import logging

import numpy as np
import pandas as pd
from sklearn.neighbors import NearestNeighbors

from OutbreakScan.errors import InvalidConfiguration


class ZoneCatalog:
    """Fixed, read-only collection of zones. Zone i is a frozenset of 0-based
    district (location) indices; `membership` is the matching zone x location
    0/1 matrix."""

    def __init__(self, zones, n_locations: int) -> None:
        self.zones = tuple(frozenset(int(l) for l in zone) for zone in zones)
        self.n_locations = n_locations

        if not self.zones:
            raise InvalidConfiguration("Zone catalog is empty")
        for zone in self.zones:
            if not zone or min(zone) < 0 or max(zone) >= n_locations:
                raise InvalidConfiguration(
                    "Zone {} is empty or refers to unknown locations".format(sorted(zone))
                )

        membership = np.zeros((len(self.zones), n_locations))
        for i, zone in enumerate(self.zones):
            membership[i, sorted(zone)] = 1.0
        membership.setflags(write=False)
        self.membership = membership

    def __len__(self):
        return len(self.zones)

    def __getitem__(self, i):
        return self.zones[i]

    def __iter__(self):
        return iter(self.zones)

    def __str__(self):
        sizes = [len(zone) for zone in self.zones]
        return "{} zones over {} locations (sizes {} to {})".format(
            len(self.zones), self.n_locations, min(sizes), max(sizes)
        )


def coords_to_knn(coords: np.ndarray, k: int = 15) -> np.ndarray:
    """For each location, the indices of its k nearest locations (itself
    first) by Euclidean distance.

    Args:
        coords: (n_locations x 2) array of centroid coordinates
        k: Number of neighbours, including the location itself
    Returns:
        (n_locations x k) integer array of neighbour indices
    """
    coords = np.asarray(coords, dtype=float)
    n_locations = coords.shape[0]
    if not 1 <= k <= n_locations:
        raise InvalidConfiguration(
            "k = {} nearest neighbours requested for {} locations".format(k, n_locations)
        )

    nbrs = NearestNeighbors(n_neighbors=k).fit(coords)
    _, indices = nbrs.kneighbors(coords)

    # Coincident centroids can push a location out of first place
    knn = np.empty((n_locations, k), dtype=int)
    for i in range(n_locations):
        others = [j for j in indices[i] if j != i]
        knn[i] = [i] + others[: k - 1]
    return knn


def knn_zones(knn: np.ndarray) -> tuple:
    """Zones made of each location together with its j - 1 nearest neighbours,
    for j = 1, ..., k. Duplicate zones are dropped, keeping first occurrences.

    Args:
        knn: Output of `coords_to_knn()`
    Returns:
        Tuple of frozensets of location indices
    """
    seen = set()
    zones = []
    for row in np.asarray(knn):
        for j in range(1, len(row) + 1):
            zone = frozenset(int(l) for l in row[:j])
            if zone not in seen:
                seen.add(zone)
                zones.append(zone)
    return tuple(zones)


def zone_catalog(district_coords: pd.DataFrame, k: int = 15) -> ZoneCatalog:
    """Build the zone catalog from district centroids.

    Args:
        district_coords: one row per district with `location` (1-based), `x`, `y`
        k: Maximum number of districts in a zone
    Returns:
        ZoneCatalog indexed by 0-based location (location - 1)
    """
    assert set(["location", "x", "y"]) <= set(district_coords.columns)

    coords = district_coords.sort_values("location")[["x", "y"]].to_numpy()
    catalog = ZoneCatalog(knn_zones(coords_to_knn(coords, k=k)), n_locations=len(coords))
    logging.info("Zone catalog built: %s", catalog)
    return catalog


def zone_overlap(zone_1, zone_2) -> float:
    """Jaccard overlap |Z1 & Z2| / |Z1 | Z2| between two zones."""
    zone_1, zone_2 = set(zone_1), set(zone_2)
    return len(zone_1 & zone_2) / len(zone_1 | zone_2)
