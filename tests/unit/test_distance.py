"""Tests for distance and delivery estimate helpers."""

import math

import pytest

from src.modules.catalog.application.distance import (
    distance_to_record,
    estimated_delivery_range_minutes,
    format_delivery_range,
    haversine_km,
    parse_coordinates,
)
from src.modules.catalog.domain.entities import Restaurant

BRAZZAVILLE = (-4.2634, 15.2429)
POINTE_NOIRE = (-4.7692, 11.8664)


def test_same_point_is_zero() -> None:
    assert haversine_km(*BRAZZAVILLE, *BRAZZAVILLE) == 0


def test_known_distance() -> None:
    # Brazzaville -> Pointe-Noire, roughly 380 km great-circle
    km = haversine_km(*BRAZZAVILLE, *POINTE_NOIRE)
    assert 370 < km < 390
    assert math.isclose(km, haversine_km(*POINTE_NOIRE, *BRAZZAVILLE))


@pytest.mark.parametrize(
    ("km", "expected"),
    [
        (0, (15, 20)),
        (2.5, (15, 25)),
        (5, (20, 30)),
        (10, (30, 40)),
        (0.25, (15, 21)),
    ],
)
def test_delivery_range(km: float, expected: tuple[int, int]) -> None:
    assert estimated_delivery_range_minutes(km) == expected


def test_delivery_range_without_coordinates() -> None:
    assert estimated_delivery_range_minutes(None) == (20, 30)


def test_parse_coordinates_uses_altitude_as_latitude() -> None:
    record = Restaurant.model_validate(
        {"id": 1, "altitude": "-4.2634", "longitude": "15.2429"}
    )
    assert parse_coordinates(record) == BRAZZAVILLE


@pytest.mark.parametrize(
    "payload",
    [
        {"id": 1},
        {"id": 1, "altitude": "abc", "longitude": "15.2"},
        {"id": 1, "altitude": 120, "longitude": 15.2},
        {"id": 1, "altitude": -4.2, "longitude": 200},
    ],
)
def test_parse_coordinates_rejects_unusable(payload: dict) -> None:
    assert parse_coordinates(Restaurant.model_validate(payload)) is None


def test_distance_to_record() -> None:
    record = Restaurant.model_validate(
        {"id": 1, "altitude": BRAZZAVILLE[0], "longitude": BRAZZAVILLE[1]}
    )
    assert distance_to_record(*BRAZZAVILLE, record) == 0
    assert distance_to_record(None, None, record) is None
    assert distance_to_record(*BRAZZAVILLE, Restaurant(id="2")) is None


def test_format_delivery_range() -> None:
    assert format_delivery_range((15, 20)) == "15-20 min"
