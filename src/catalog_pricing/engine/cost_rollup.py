"""
Cost Roll-Up - landed cost per unit.

Full cost = FX-buffered factory price + eight overhead components + expected gift cost.
"""
from .models import CostRollUp, PricingParameters
from .records import ProductCostInputs

MISSING_FACTORY_PRICE = "Missing factory price data"


def factory_price_unit(inputs: ProductCostInputs, params: PricingParameters) -> float:
    """
    Resolve the FX-buffered factory price per unit.

    Priority: manual unit price → carton total ÷ units per carton → legacy cost.
    Returns 0 when none is present.
    """
    fx_pct = inputs.fx_buffer_pct if inputs.fx_buffer_pct is not None else params.fx_buffer_pct
    fx_factor = 1 + fx_pct / 100

    if inputs.factory_price_manual:
        return inputs.factory_price_manual * fx_factor

    if inputs.carton_total and inputs.units_per_carton:
        return (inputs.carton_total / inputs.units_per_carton) * fx_factor

    if inputs.legacy_factory_cost:
        return inputs.legacy_factory_cost * fx_factor

    return 0.0


def gift_expected_cost(inputs: ProductCostInputs) -> float:
    """Expected gift cost per unit: (cost × (1 − funding%) + shipping) × attach rate."""
    if not inputs.gift_sku or not inputs.gift_attach_rate:
        return 0.0

    gift_cost = inputs.gift_cost or 0.0
    funding_pct = inputs.gift_funding_pct or 0.0
    shipping_increment = inputs.gift_shipping_increment or 0.0

    net_gift_cost = gift_cost * (1 - funding_pct / 100) + shipping_increment
    return net_gift_cost * inputs.gift_attach_rate


def build_cost_rollup(inputs: ProductCostInputs, params: PricingParameters) -> CostRollUp:
    """Roll up the full landed cost. Gift cost is part of full cost."""
    warnings = []

    factory = factory_price_unit(inputs, params)
    if factory == 0:
        warnings.append(MISSING_FACTORY_PRICE)

    components = sum(inputs.overhead_components().values())
    gift = gift_expected_cost(inputs)

    return CostRollUp(
        factory_price_unit=factory,
        components_total=components,
        gift_expected_cost=gift,
        full_cost=factory + components + gift,
        warnings=warnings,
    )
