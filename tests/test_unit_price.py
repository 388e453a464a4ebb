import pytest

from catalog_pricing.engine.unit_price import MISSING_CONTENT, calculate_unit_price


def test_price_per_liter_from_content():
    price, warning = calculate_unit_price(23.80, net_content_ml=250)
    assert warning is None
    assert price.unit == "L"
    assert price.value == pytest.approx(95.20)
    assert price.formatted == "€95.20/L"


def test_content_takes_precedence_over_weight():
    price, _ = calculate_unit_price(10.0, net_content_ml=500, weight_g=200)
    assert price.unit == "L"
    assert price.value == pytest.approx(20.0)


def test_price_per_kg_from_weight():
    price, warning = calculate_unit_price(23.80, weight_g=500)
    assert warning is None
    assert price.formatted == "€47.60/kg"


def test_missing_content_and_weight_warns():
    price, warning = calculate_unit_price(23.80)
    assert warning == MISSING_CONTENT
    assert price.unit is None
    assert price.formatted == ""


def test_zero_content_falls_through_to_weight():
    price, _ = calculate_unit_price(12.0, net_content_ml=0, weight_g=1000)
    assert price.unit == "kg"
    assert price.value == pytest.approx(12.0)
