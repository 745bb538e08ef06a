"""Test the construction of the zone catalog"""

import numpy as np
import pandas as pd
import pytest

from OutbreakScan.errors import InvalidConfiguration
from OutbreakScan.zones import ZoneCatalog, coords_to_knn, knn_zones, zone_catalog, zone_overlap


def catalog_checks(catalog: ZoneCatalog, k: int) -> None:
    """Zones are unique, non-empty and no larger than k, and every location is a
    zone on its own."""
    assert len(set(catalog.zones)) == len(catalog)
    assert all(1 <= len(zone) <= k for zone in catalog)
    for location in range(catalog.n_locations):
        assert frozenset([location]) in catalog.zones

    assert catalog.membership.shape == (len(catalog), catalog.n_locations)
    np.testing.assert_array_equal(
        catalog.membership.sum(axis=1), [len(zone) for zone in catalog]
    )


def test_coords_to_knn_self_first() -> None:
    coords = np.array([[0.0, 0.0], [1.0, 0.0], [3.0, 0.0], [6.0, 0.0]])
    knn = coords_to_knn(coords, k=3)
    assert knn.shape == (4, 3)
    np.testing.assert_array_equal(knn[:, 0], np.arange(4))
    np.testing.assert_array_equal(knn[0], [0, 1, 2])
    np.testing.assert_array_equal(knn[3], [3, 2, 1])


def test_coincident_centroids() -> None:
    """Locations sharing a centroid still come first in their own row."""
    coords = np.array([[0.0, 0.0], [0.0, 0.0], [5.0, 5.0]])
    knn = coords_to_knn(coords, k=2)
    np.testing.assert_array_equal(knn[:, 0], [0, 1, 2])
    assert set(knn[0]) == {0, 1}
    assert set(knn[1]) == {0, 1}


def test_knn_zones(line_catalog) -> None:
    """Zones keep the order in which they are first found."""
    assert line_catalog.zones == (
        frozenset([0]),
        frozenset([0, 1]),
        frozenset([1]),
        frozenset([2]),
        frozenset([1, 2]),
        frozenset([3]),
        frozenset([2, 3]),
    )
    catalog_checks(line_catalog, k=2)


def test_zone_catalog(catalog) -> None:
    catalog_checks(catalog, k=4)
    assert catalog.n_locations == 15
    assert not catalog.membership.flags.writeable


def test_invalid_k_raises() -> None:
    coords = np.zeros((3, 2))
    with pytest.raises(InvalidConfiguration):
        coords_to_knn(coords, k=4)
    with pytest.raises(InvalidConfiguration):
        coords_to_knn(coords, k=0)


def test_invalid_zone_raises() -> None:
    with pytest.raises(InvalidConfiguration):
        ZoneCatalog([[0, 5]], n_locations=3)
    with pytest.raises(InvalidConfiguration):
        ZoneCatalog([], n_locations=3)


def test_knn_zones_deduplicates() -> None:
    knn = np.array([[0, 1], [1, 0]])
    assert knn_zones(knn) == (frozenset([0]), frozenset([0, 1]), frozenset([1]))


def test_zone_catalog_orders_by_location() -> None:
    """Zone indices refer to location - 1 whatever the row order of the input."""
    coords = pd.DataFrame({"location": [2, 1], "x": [10.0, 0.0], "y": [0.0, 0.0]})
    catalog = zone_catalog(coords, k=1)
    assert catalog.zones == (frozenset([0]), frozenset([1]))


def test_zone_overlap() -> None:
    assert zone_overlap({0, 1}, {1, 2}) == pytest.approx(1 / 3)
    assert zone_overlap({0}, {0}) == 1
    assert zone_overlap({0}, {1}) == 0
