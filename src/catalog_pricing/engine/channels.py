"""
Channel pricing - revenue, fees and contribution margin per sales channel.

OwnStore (direct-to-consumer, shipped via DHL) and Amazon FBA (marketplace).
Both use the same guardrail: contribution margin as a share of gross revenue
must reach the configured minimum.
"""
import logging
from typing import Iterable, Optional

from .models import (
    Channel,
    ChannelFeeSchedule,
    ChannelResult,
    LineSettings,
    ShippingCost,
    Surcharge,
    SurchargeType,
)
from .records import ProductCostInputs

logger = logging.getLogger(__name__)

DEFAULT_GUARDRAIL_PCT = 45.0


def aggregate_surcharges(base_rate: float, surcharges: Iterable[Surcharge]) -> ShippingCost:
    """
    Apply carrier surcharges on top of a base rate.

    All fixed surcharges are added first; percentage surcharges then compound,
    in order, on the running total. Monthly-variable surcharges are reconciled
    out of band and never priced per shipment.
    """
    active = [s for s in surcharges if s.active]
    running_total = base_rate

    for surcharge in active:
        if surcharge.type == SurchargeType.FIXED_PER_SHIPMENT:
            running_total += surcharge.amount

    for surcharge in active:
        if surcharge.type == SurchargeType.PCT_OF_BASE:
            running_total += running_total * surcharge.pct / 100

    return ShippingCost(base_rate=base_rate, surcharges=running_total - base_rate)


def resolve_shipping(
    inputs: ProductCostInputs,
    fees: ChannelFeeSchedule,
) -> tuple[ShippingCost, Optional[str]]:
    """Look up the DHL rate by zone and weight; returns (cost, warning)."""
    if not inputs.weight_g:
        return ShippingCost(), None

    zone = inputs.dhl_zone or fees.default_zone
    rate = fees.carrier_rate(zone, inputs.weight_g)
    if rate is None:
        return ShippingCost(), (
            f"No DHL rate for zone {zone} and weight {inputs.weight_g:g} g (SKU: {inputs.sku})"
        )
    return aggregate_surcharges(rate.base_rate, fees.surcharges), None


def _margin(
    channel: Channel,
    gross: float,
    full_cost: float,
    fees: dict[str, float],
    min_margin_pct: float,
) -> ChannelResult:
    total_costs = sum(fees.values())
    contribution = gross - full_cost - total_costs
    margin_pct = (contribution / gross) * 100 if gross else 0.0
    return ChannelResult(
        channel=channel,
        gross_revenue=gross,
        fees=fees,
        total_channel_costs=total_costs,
        net_revenue=gross - total_costs,
        contribution_margin=contribution,
        margin_pct=margin_pct,
        guardrail_passed=margin_pct >= min_margin_pct,
    )


def own_store_pct(inputs: ProductCostInputs, line: LineSettings) -> dict[str, float]:
    """Percent-of-gross cost rates for the direct channel (SKU override → line value)."""
    return {
        'ad': inputs.ad_pct if inputs.ad_pct is not None else line.ad_pct,
        'returns': inputs.returns_pct if inputs.returns_pct is not None else line.returns_pct,
        'loyalty': inputs.loyalty_pct if inputs.loyalty_pct is not None else line.loyalty_pct,
        'payment': inputs.payment_pct if inputs.payment_pct is not None else line.payment_pct,
    }


def amazon_pct(inputs: ProductCostInputs, line: LineSettings) -> dict[str, float]:
    """Percent-of-gross cost rates for the marketplace; the platform absorbs payment."""
    return {
        'ad': inputs.ad_pct if inputs.ad_pct is not None else line.ad_pct,
        'returns': inputs.returns_pct if inputs.returns_pct is not None else line.returns_pct,
    }


def calculate_own_store(
    inputs: ProductCostInputs,
    line: LineSettings,
    uvp_inc: float,
    full_cost: float,
    fees: ChannelFeeSchedule,
    min_margin_pct: float = DEFAULT_GUARDRAIL_PCT,
) -> ChannelResult:
    """Direct-to-consumer channel at UVP gross."""
    gross = uvp_inc
    pct = own_store_pct(inputs, line)
    costs = {name: gross * rate / 100 for name, rate in pct.items()}

    shipping, warning = resolve_shipping(inputs, fees)
    costs['shipping'] = shipping.base_rate
    costs['shipping_surcharges'] = shipping.surcharges

    result = _margin(Channel.OWN_STORE, gross, full_cost, costs, min_margin_pct)
    if warning:
        result.warnings.append(warning)
    return result


def calculate_amazon(
    inputs: ProductCostInputs,
    line: LineSettings,
    uvp_inc: float,
    full_cost: float,
    fees: ChannelFeeSchedule,
    min_margin_pct: float = DEFAULT_GUARDRAIL_PCT,
) -> ChannelResult:
    """Marketplace channel: tiered referral fee with a minimum, plus size-tier fulfillment."""
    gross = uvp_inc
    warnings = []

    referral_pct = (
        inputs.referral_pct if inputs.referral_pct is not None
        else fees.referral.pct_for(gross)
    )

    fulfillment_fee = 0.0
    if inputs.amazon_tier_key:
        tier = fees.size_tier(inputs.amazon_tier_key)
        if tier is None:
            message = (
                f"Missing tier data for TierKey: {inputs.amazon_tier_key} (SKU: {inputs.sku})"
            )
            warnings.append(message)
            logger.warning(f"[Amazon] {message}")
        else:
            fulfillment_fee = tier.total_fee

    costs = {
        'referral': max(gross * referral_pct / 100, fees.referral.min_fee),
        'fulfillment': fulfillment_fee,
    }
    for name, rate in amazon_pct(inputs, line).items():
        costs[name] = gross * rate / 100
    if fees.platform_pct:
        costs['platform'] = gross * fees.platform_pct / 100

    result = _margin(Channel.AMAZON_FBA, gross, full_cost, costs, min_margin_pct)
    result.warnings.extend(warnings)
    return result
