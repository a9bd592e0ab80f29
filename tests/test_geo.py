"""Tests for coordinate validation and delivery radius"""

import pytest

from app.core.geo import haversine_km, validate_coordinates, within_radius

BUSINESS = (33.8938, 35.5018)


def test_haversine_same_point():
    assert haversine_km(*BUSINESS, *BUSINESS) == 0.0


def test_haversine_north_of_business():
    """Test a point 0.0719 degrees north is about 8 km away"""
    assert haversine_km(*BUSINESS, 33.9657, 35.5018) == pytest.approx(8.0, abs=0.1)


@pytest.mark.parametrize(
    "latitude, longitude, valid",
    [
        (33.9, 35.5, True),
        (-90, 180, True),
        (91, 0, False),
        (0, -181, False),
        ("33.9", 35.5, False),
        (True, 35.5, False),
        (float("nan"), 35.5, False),
        (None, 35.5, False),
    ],
)
def test_validate_coordinates(latitude, longitude, valid):
    """Test coordinate range and type checks"""
    assert validate_coordinates(latitude, longitude) is valid


def test_within_radius():
    """Test radius check returns the rounded distance"""
    inside, distance = within_radius(*BUSINESS, 5, 33.9657, 35.5018)
    assert inside is False
    assert distance == pytest.approx(8.0, abs=0.1)

    inside, distance = within_radius(*BUSINESS, 5, 33.8950, 35.5020)
    assert inside is True
    assert distance < 1


def test_within_radius_unconfigured():
    """Test every point is inside when the business has no radius"""
    assert within_radius(None, None, 5, 1.0, 1.0) == (True, None)
    assert within_radius(*BUSINESS, None, 1.0, 1.0) == (True, None)
