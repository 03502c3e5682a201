"""
Resource vector arithmetic and amount coercion.
"""

import math

import pytest

from gatewars.models import ResourceKind, ResourceVector
from gatewars.models.state_models import as_amount


class TestAsAmount:
    @pytest.mark.parametrize("raw", [None, "abc", math.nan, math.inf, -math.inf, True, object()])
    def test_unusable_values_count_as_zero(self, raw):
        assert as_amount(raw) == 0.0

    def test_numeric_strings_are_accepted(self):
        assert as_amount("12.5") == 12.5


class TestResourceVector:
    def test_from_mapping_drops_unknown_keys(self):
        vec = ResourceVector.from_mapping({"naquadah": 5, "unobtainium": 99, "people": "3"})
        assert vec == ResourceVector(naquadah=5, people=3)

    def test_from_mapping_of_none_is_zero(self):
        assert ResourceVector.from_mapping(None) == ResourceVector()

    def test_get_accepts_enum_and_string(self):
        vec = ResourceVector(trinium=7)
        assert vec.get(ResourceKind.TRINIUM) == 7
        assert vec.get("trinium") == 7

    def test_minus_never_goes_negative(self):
        vec = ResourceVector(naquadah=10, deuterium=5).minus(ResourceVector(naquadah=25, deuterium=1))
        assert vec.naquadah == 0
        assert vec.deuterium == 4

    def test_covers_and_shortfall(self):
        stock = ResourceVector(naquadah=100, deuterium=10)
        cost = ResourceVector(naquadah=50, deuterium=20)
        assert not stock.covers(cost)
        assert stock.shortfall(cost) == ["deuterium"]
        assert stock.covers(ResourceVector(naquadah=100))

    def test_floored_returns_whole_units(self):
        assert ResourceVector(naquadah=10.9, people=-2).floored() == {
            "naquadah": 10,
            "deuterium": 0,
            "trinium": 0,
            "people": 0,
        }
