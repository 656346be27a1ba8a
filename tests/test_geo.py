import math

import pytest

from geoquest.core.geo import EARTH_RADIUS_M, GeoPoint, destination_point, haversine_m

GRAND_CENTRAL = GeoPoint(lat=40.7527, lon=-73.9772)
TIMES_SQUARE = GeoPoint(lat=40.758, lon=-73.9855)


def test_haversine_zero_and_symmetric():
    assert haversine_m(GRAND_CENTRAL, GRAND_CENTRAL) == 0
    assert haversine_m(GRAND_CENTRAL, TIMES_SQUARE) == haversine_m(TIMES_SQUARE, GRAND_CENTRAL)


def test_haversine_grand_central_to_times_square():
    # ~0.0053 deg north and ~0.0083 deg west at 40.75N.
    d = haversine_m(GRAND_CENTRAL, TIMES_SQUARE)
    assert 900 < d < 930


def test_haversine_antipodal_points_do_not_raise():
    d = haversine_m(GeoPoint(lat=0.0, lon=0.0), GeoPoint(lat=0.0, lon=180.0))
    assert d == pytest.approx(math.pi * EARTH_RADIUS_M)

    d2 = haversine_m(GeoPoint(lat=45.0, lon=10.0), GeoPoint(lat=-45.0, lon=-170.0))
    assert d2 == pytest.approx(math.pi * EARTH_RADIUS_M, rel=1e-9)


def test_destination_point_lands_at_requested_distance():
    for bearing in (0.0, 1.0, math.pi, 5.5):
        pt = destination_point(GRAND_CENTRAL, bearing, 1500)
        assert haversine_m(GRAND_CENTRAL, pt) == pytest.approx(1500, abs=1e-6)


def test_destination_point_due_north_keeps_longitude():
    pt = destination_point(GRAND_CENTRAL, 0.0, 1000)
    assert pt.lon == pytest.approx(GRAND_CENTRAL.lon)
    assert pt.lat > GRAND_CENTRAL.lat


def test_destination_point_wraps_longitude_across_antimeridian():
    pt = destination_point(GeoPoint(lat=0.0, lon=179.999), math.pi / 2, 1000)
    assert -180 <= pt.lon <= 180
    assert pt.lon < 0
