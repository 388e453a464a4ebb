import pytest

from catalog_pricing.engine.channels import (
    aggregate_surcharges,
    calculate_amazon,
    calculate_own_store,
    resolve_shipping,
)
from catalog_pricing.engine.context import build_fee_schedule
from catalog_pricing.engine.models import ProductLine, Surcharge, SurchargeType
from catalog_pricing.engine.records import ProductCostInputs


@pytest.fixture
def fees(fee_tables):
    return build_fee_schedule(fee_tables)


@pytest.fixture
def basic(default_context):
    return default_context.parameters.for_line(ProductLine.BASIC)


class TestSurcharges:

    def test_fixed_first_then_compounding_percentages(self):
        surcharges = [
            Surcharge('Energy', SurchargeType.PCT_OF_BASE, pct=10),
            Surcharge('Toll', SurchargeType.FIXED_PER_SHIPMENT, amount=0.5),
            Surcharge('Peak', SurchargeType.PCT_OF_BASE, pct=5),
        ]
        cost = aggregate_surcharges(4.0, surcharges)
        expected_total = ((4.0 + 0.5) * 1.10) * 1.05
        assert cost.total == pytest.approx(expected_total)
        assert cost.surcharges == pytest.approx(expected_total - 4.0)
        assert cost.base_rate == 4.0

    def test_inactive_and_monthly_variable_are_skipped(self):
        surcharges = [
            Surcharge('Old', SurchargeType.FIXED_PER_SHIPMENT, amount=9.0, active=False),
            Surcharge('Fuel', SurchargeType.MONTHLY_VARIABLE, pct=20),
        ]
        cost = aggregate_surcharges(4.0, surcharges)
        assert cost.surcharges == 0.0

    def test_resolve_shipping_by_zone_and_weight(self, fees):
        cost, warning = resolve_shipping(ProductCostInputs(sku='A', weight_g=1500), fees)
        assert warning is None
        assert cost.base_rate == 6.0
        assert cost.total == pytest.approx(6.5 * 1.1)

    def test_no_weight_means_no_shipping(self, fees):
        cost, warning = resolve_shipping(ProductCostInputs(sku='A'), fees)
        assert cost.total == 0.0
        assert warning is None

    def test_unknown_zone_warns(self, fees):
        cost, warning = resolve_shipping(ProductCostInputs(sku='A', weight_g=300, dhl_zone='AT'), fees)
        assert cost.total == 0.0
        assert "zone AT" in warning


class TestOwnStore:

    def test_margin_at_uvp(self, fees, basic):
        result = calculate_own_store(ProductCostInputs(sku='A'), basic, 23.80, 10.0, fees)
        # ad 8 + returns 2 + loyalty 0.7 + payment 2.5 = 13.2% of gross
        assert result.total_channel_costs == pytest.approx(23.80 * 0.132)
        assert result.contribution_margin == pytest.approx(23.80 - 10.0 - 23.80 * 0.132)
        assert result.margin_pct == pytest.approx(44.7832, abs=1e-3)
        assert not result.guardrail_passed

    def test_shipping_is_included(self, fees, basic):
        inputs = ProductCostInputs(sku='A', weight_g=500)
        result = calculate_own_store(inputs, basic, 50.0, 10.0, fees)
        assert result.fees['shipping'] == 4.0
        assert result.fees['shipping_surcharges'] == pytest.approx(4.5 * 1.1 - 4.0)

    def test_sku_overrides_line_percentages(self, fees, basic):
        inputs = ProductCostInputs(sku='A', ad_pct=0, returns_pct=0, loyalty_pct=0, payment_pct=0)
        result = calculate_own_store(inputs, basic, 20.0, 10.0, fees)
        assert result.total_channel_costs == 0.0
        assert result.margin_pct == pytest.approx(50.0)
        assert result.guardrail_passed

    def test_zero_gross_has_zero_margin_pct(self, fees, basic):
        result = calculate_own_store(ProductCostInputs(sku='A'), basic, 0.0, 0.0, fees)
        assert result.margin_pct == 0.0


class TestAmazon:

    def test_high_referral_above_threshold(self, fees, basic):
        inputs = ProductCostInputs(sku='A', amazon_tier_key='Std_Parcel')
        result = calculate_amazon(inputs, basic, 23.80, 10.0, fees)
        assert result.fees['referral'] == pytest.approx(23.80 * 0.15)
        assert result.fees['fulfillment'] == pytest.approx(3.30)
        assert 'platform' not in result.fees
        assert result.warnings == []

    def test_referral_minimum_fee(self, fees, basic):
        result = calculate_amazon(ProductCostInputs(sku='A'), basic, 2.0, 0.5, fees)
        # 8% of 2.00 is below the 0.30 minimum
        assert result.fees['referral'] == pytest.approx(0.30)

    def test_missing_tier_warns_and_continues(self, fees, basic):
        inputs = ProductCostInputs(sku='HM-9', amazon_tier_key='Std_XL')
        result = calculate_amazon(inputs, basic, 23.80, 10.0, fees)
        assert result.fees['fulfillment'] == 0.0
        assert result.warnings == ["Missing tier data for TierKey: Std_XL (SKU: HM-9)"]

    def test_platform_fee_when_configured(self, fee_tables, basic):
        fee_tables['channels'][1]['Platform_Pct'] = '2'
        fees = build_fee_schedule(fee_tables)
        result = calculate_amazon(ProductCostInputs(sku='A'), basic, 50.0, 10.0, fees)
        assert result.fees['platform'] == pytest.approx(1.0)

    def test_referral_override(self, fees, basic):
        inputs = ProductCostInputs(sku='A', referral_pct=10)
        result = calculate_amazon(inputs, basic, 50.0, 10.0, fees)
        assert result.fees['referral'] == pytest.approx(5.0)
