"""Tests for unit price resolution."""

import pytest
from storefront.pricing import first_price, resolve_unit_price


class TestResolveUnitPrice:
    def test_zero_and_missing_candidates_do_not_mask_base_price(self):
        assert resolve_unit_price({"offerPrice": None, "effectivePrice": 0, "basePrice": 1200}) == 1200

    def test_offer_price_wins(self):
        assert resolve_unit_price({"offerPrice": 899, "sellingPrice": 950, "basePrice": 1000}) == 899

    def test_snake_case_fields(self):
        assert resolve_unit_price({"selling_price": 49.99}) == 49.99

    def test_variant_always_beats_product(self):
        product = {"offerPrice": 10}
        variant = {"basePrice": 25}
        assert resolve_unit_price(product, variant) == 25

    def test_variant_without_price_falls_back_to_product(self):
        assert resolve_unit_price({"price": 15}, {"name": "Red"}) == 15

    def test_floor_is_zero(self):
        assert resolve_unit_price({"name": "Free sample"}) == 0.0
        assert resolve_unit_price() == 0.0

    def test_numeric_strings_are_accepted(self):
        assert resolve_unit_price({"price": "19.5"}) == 19.5

    def test_rounded_to_cents(self):
        assert resolve_unit_price({"price": 10.005001}) == 10.01

    @pytest.mark.parametrize("value", [True, "abc", float("nan"), float("inf"), -5, [], {}])
    def test_unusable_values_are_skipped(self, value):
        assert first_price({"offerPrice": value, "basePrice": 7}) == 7

    def test_non_dict_payload(self):
        assert first_price(None) is None
        assert first_price([1, 2]) is None
