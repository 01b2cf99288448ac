import math

import pytest

from nearmatch.services.geo import (
    Coordinate,
    GeoBounds,
    bearing_degrees,
    distance_meters,
    format_distance,
    parse_bounds,
    validate_coordinate,
)

SEOUL_CITY_HALL = Coordinate(37.5665, 126.9780)
BUSAN_STATION = Coordinate(35.1151, 129.0415)


@pytest.mark.parametrize(
    "c",
    [SEOUL_CITY_HALL, Coordinate(0.0, 0.0), Coordinate(-89.9, 179.9), Coordinate(90.0, -180.0)],
)
def test_distance_to_self_is_zero(c):
    assert distance_meters(c, c) == 0


def test_distance_is_symmetric():
    assert distance_meters(SEOUL_CITY_HALL, BUSAN_STATION) == distance_meters(BUSAN_STATION, SEOUL_CITY_HALL)


def test_distance_seoul_busan_is_about_330km():
    assert distance_meters(SEOUL_CITY_HALL, BUSAN_STATION) == pytest.approx(330_000, rel=0.02)


def test_one_degree_of_latitude_is_about_111km():
    d = distance_meters(Coordinate(0.0, 0.0), Coordinate(1.0, 0.0))
    assert d == pytest.approx(6_371_000 * math.pi / 180, rel=1e-9)


def test_antipodal_points_do_not_blow_up():
    d = distance_meters(Coordinate(0.0, 0.0), Coordinate(0.0, 180.0))
    assert d == pytest.approx(math.pi * 6_371_000)


def test_bearing_cardinal_directions():
    origin = Coordinate(0.0, 0.0)
    assert bearing_degrees(origin, Coordinate(1.0, 0.0)) == pytest.approx(0.0)
    assert bearing_degrees(origin, Coordinate(0.0, 1.0)) == pytest.approx(90.0)
    assert bearing_degrees(origin, Coordinate(-1.0, 0.0)) == pytest.approx(180.0)
    assert bearing_degrees(origin, Coordinate(0.0, -1.0)) == pytest.approx(270.0)


@pytest.mark.parametrize(
    "c,ok",
    [
        (Coordinate(37.5, 127.0), True),
        (Coordinate(90.0, 180.0), True),
        (Coordinate(-90.0, -180.0), True),
        (Coordinate(90.0001, 0.0), False),
        (Coordinate(0.0, -180.5), False),
        (Coordinate(float("nan"), 0.0), False),
    ],
)
def test_validate_coordinate_ranges(c, ok):
    assert validate_coordinate(c) is ok


def test_validate_coordinate_with_operating_region():
    korea = GeoBounds(33.0, 124.0, 39.0, 132.0)
    assert validate_coordinate(SEOUL_CITY_HALL, korea)
    assert not validate_coordinate(Coordinate(0.0, 0.0), korea)
    # 경계 위도 포함
    assert validate_coordinate(Coordinate(33.0, 124.0), korea)


def test_parse_bounds_normalises_swapped_corners():
    b = parse_bounds("39, 132, 33, 124")
    assert b == GeoBounds(33.0, 124.0, 39.0, 132.0)


def test_parse_bounds_empty_means_unrestricted():
    assert parse_bounds(None) is None
    assert parse_bounds("  ") is None


def test_parse_bounds_rejects_wrong_arity():
    with pytest.raises(ValueError):
        parse_bounds("1,2,3")


@pytest.mark.parametrize(
    "meters,text",
    [(0, "0m"), (849.6, "850m"), (1000, "1.0km"), (1234, "1.2km"), (15_500, "15.5km")],
)
def test_format_distance(meters, text):
    assert format_distance(meters) == text
