"""
BOUNDS + PRESSURE LEVEL TESTS

Closed numeric ranges and the deterministic DPI → level buckets.
"""
import math

import pytest

from domain.bounds import is_bounded_number, printable
from exceptions import BoundsViolation
from models import PressureLevel
from pressure_state_service import derive_level


class TestBoundedNumber:

    @pytest.mark.parametrize("value", [0, 0.0, 0.5, 1, 1.0])
    def test_inside_closed_interval(self, value):
        assert is_bounded_number(value, (0.0, 1.0))

    @pytest.mark.parametrize("value", [-0.0001, 1.0001, 2, -1])
    def test_outside_interval(self, value):
        assert not is_bounded_number(value, (0.0, 1.0))

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite_rejected(self, value):
        assert not is_bounded_number(value, (0.0, 1.0))

    @pytest.mark.parametrize("value", [True, False, "0.5", None, [0.5]])
    def test_non_numbers_rejected(self, value):
        """bool is an int subclass but never a valid measurement"""
        assert not is_bounded_number(value, (0.0, 1.0))

    def test_printable_keeps_numbers(self):
        assert printable(1.5) == 1.5
        assert printable(7) == 7

    def test_printable_stringifies_the_rest(self):
        assert printable(math.nan) == "nan"
        assert printable(math.inf) == "inf"
        assert printable(None) == "None"


class TestDeriveLevel:
    """dpi < 25 LOW, < 50 MODERATE, < 75 HIGH, else CRITICAL"""

    @pytest.mark.parametrize("dpi,level", [
        (0, PressureLevel.LOW),
        (24.999, PressureLevel.LOW),
        (25, PressureLevel.MODERATE),
        (49.9, PressureLevel.MODERATE),
        (50, PressureLevel.HIGH),
        (74.99, PressureLevel.HIGH),
        (75, PressureLevel.CRITICAL),
        (100, PressureLevel.CRITICAL),
    ])
    def test_bucket_boundaries(self, dpi, level):
        assert derive_level(dpi) == level

    @pytest.mark.parametrize("dpi", [-1, 100.01, math.nan, math.inf, "50", None])
    def test_out_of_range_raises(self, dpi):
        with pytest.raises(BoundsViolation) as exc_info:
            derive_level(dpi)
        assert exc_info.value.message == "DPI must be between 0 and 100."
        assert exc_info.value.details["field"] == "dpi"
        assert exc_info.value.details["bounds"] == [0, 100]

    def test_deterministic(self):
        assert all(derive_level(42) == PressureLevel.MODERATE for _ in range(5))
