"""
Pricing Engine v3 - per-SKU pricing breakdown with traceability.

Composes the calculators in strict dependency order:
1. Cost roll-up (factory price, overheads, gift cost)
2. UVP net/inc from the line's target margin (or a manual gross UVP)
3. Grundpreis from the VAT-inclusive UVP
4. B2C floor price
5. Channel breakdowns (OwnStore, Amazon FBA) with guardrails
6. Guardrail minimum prices per channel (fixed-point solver)
7. Floor-protected partner prices

Business-data gaps become warnings on a best-effort result. Malformed numbers
and impossible configuration raise.
"""
import logging
import math
from typing import Mapping, Optional, Union

from .channels import (
    amazon_pct,
    calculate_amazon,
    calculate_own_store,
    own_store_pct,
)
from .cost_rollup import build_cost_rollup
from .guardrail_solver import Solved, solve_guardrail_net
from .models import (
    Channel,
    ChannelResult,
    PartnerTier,
    PricingBreakdown,
    PricingContext,
    UvpAction,
    UvpAutotune,
)
from .partner import TIER_LABELS, calculate_partner_prices
from .records import ProductCostInputs, ProductRecord, normalize_line
from .unit_price import calculate_unit_price
from .uvp import floor_net_price, solve_uvp

logger = logging.getLogger(__name__)

ENGINE_VERSION = "v3"

# Required UVP increase up to which raising the UVP is recommended over bundling
RAISE_UVP_LIMIT = 0.25

# Consumer prices end in .99
CONSUMER_ROUND_TO = 0.99

OUTPUT_COLUMNS = (
    'FullCost_EUR',
    'Gift_Cost_Expected_Unit',
    'UVP_Net',
    'UVP_Inc',
    'Grundpreis',
    'Grundpreis_Unit',
    'Floor_B2C_Net',
    'PostChannel_Margin_Pct',
    'Guardrail_OK',
    'Guardrail_OwnStore_Inc',
    'Guardrail_Amazon_FBA_Inc',
    'UVP_vs_Floor_Flag',
    'UVP_Inc_99',
    'Autotune_Pct_Increase',
    'Net_Dealer_Basic',
    'Net_Dealer_Plus',
    'Net_Stand',
    'Net_Distributor',
    'Pricing_Engine_Version',
)


class PricingEngine:
    """
    Core pricing engine. Stateless apart from the immutable context it was built with,
    so one instance can price any number of rows.
    """

    def __init__(self, context: PricingContext):
        self.context = context

    def calculate_row(self, row: Mapping[str, object]) -> PricingBreakdown:
        """Price a header-keyed product row."""
        return self.calculate(ProductRecord.from_mapping(row))

    def calculate(self, product: Union[ProductRecord, ProductCostInputs]) -> PricingBreakdown:
        """
        Calculate the full pricing breakdown for one SKU.

        Args:
            product: Parsed product record (or bare inputs)

        Returns:
            PricingBreakdown with channels, partners, guardrails, warnings and trace
        """
        inputs = product.inputs if isinstance(product, ProductRecord) else product
        params = self.context.parameters

        line, line_name = normalize_line(inputs.line)
        line_settings = params.for_line(line)

        # Step 1: cost roll-up (gift cost included before any margin or floor math)
        cost = build_cost_rollup(inputs, params)

        # Step 2: UVP
        vat_pct = inputs.vat_pct if inputs.vat_pct is not None else params.vat_pct
        uvp = solve_uvp(
            cost.full_cost,
            line_settings.target_margin_pct,
            vat_pct,
            manual_uvp_inc=inputs.manual_uvp_inc,
        )

        # Step 3: Grundpreis from the gross price
        unit_price, unit_warning = calculate_unit_price(
            uvp.uvp_inc, inputs.net_content_ml, inputs.weight_g
        )

        # Step 4: floor
        floor_net = floor_net_price(cost.full_cost, line_settings)

        breakdown = PricingBreakdown(
            sku=inputs.sku,
            name=inputs.name,
            line=line_name,
            cost=cost,
            uvp=uvp,
            unit_price=unit_price,
            floor_net=floor_net,
        )
        if line is None:
            breakdown.add_warning(f"Unknown product line '{line_name}', using default pricing row")
        for warning in cost.warnings:
            breakdown.add_warning(warning)
        if unit_warning:
            breakdown.add_warning(unit_warning)

        breakdown.add_trace("Line", f"Pricing row for {line_name}",
                            f"margin {line_settings.target_margin_pct:g}%, floor ×{line_settings.floor_multiplier:g}")
        breakdown.add_trace("Factory Price", "FX-buffered factory price per unit", f"€{cost.factory_price_unit:.4f}")
        breakdown.add_trace("Full Cost", "Factory + overheads + gift", f"€{cost.full_cost:.4f}")
        if uvp.manual_override:
            breakdown.add_trace("UVP", "Manual gross UVP, net derived by removing VAT", f"€{uvp.uvp_net:.2f}")
        else:
            breakdown.add_trace("UVP", f"Full cost / (1 − {uvp.target_margin_pct:g}%)", f"€{uvp.uvp_net:.2f}")
        breakdown.add_trace("UVP Inc", f"UVP net × (1 + {vat_pct:g}% VAT)", f"€{uvp.uvp_inc:.2f}")
        if unit_price.unit:
            breakdown.add_trace("Grundpreis", "Gross price per reference unit", unit_price.formatted)
        breakdown.add_trace("Floor", f"Full cost × {line_settings.floor_multiplier:g}", f"€{floor_net:.2f}")

        # Step 5: channels
        threshold = self.context.guardrail_min_margin_pct
        fees = self.context.fees
        own_store = calculate_own_store(
            inputs, line_settings, uvp.uvp_inc, cost.full_cost, fees, threshold
        )
        amazon = calculate_amazon(
            inputs, line_settings, uvp.uvp_inc, cost.full_cost, fees, threshold
        )
        for result in (own_store, amazon):
            breakdown.channels[result.channel] = result
            for warning in result.warnings:
                breakdown.add_warning(warning)
            breakdown.add_trace(
                "Channel", f"{result.channel.value} contribution margin", f"{result.margin_pct:.1f}%"
            )
            if not result.guardrail_passed:
                breakdown.add_guardrail(
                    f"{result.channel.value} margin {result.margin_pct:.1f}% "
                    f"below {threshold:g}% threshold"
                )

        # Step 6: guardrail minimum prices
        self._solve_channel_minimums(breakdown, inputs, line_settings, vat_pct)

        # Step 7: partners
        breakdown.partners = calculate_partner_prices(
            uvp.uvp_net, floor_net, self.context.partner_tiers
        )
        for tier, price in breakdown.partners.items():
            breakdown.add_trace("Partner", f"{TIER_LABELS[tier]} net price", f"€{price.net_price:.2f}")
            if price.floor_protected:
                breakdown.add_guardrail(f"{TIER_LABELS[tier]} price limited by floor protection")

        logger.debug(
            f"Priced {breakdown.sku}: UVP €{uvp.uvp_inc:.2f}, "
            f"{len(breakdown.guardrails)} guardrails, {len(breakdown.warnings)} warnings"
        )
        return breakdown

    def _solve_channel_minimums(self, breakdown, inputs, line_settings, vat_pct):
        """Record each channel's guardrail minimum gross and classify the UVP against them."""
        ctx = self.context
        own_store = breakdown.channels[Channel.OWN_STORE]
        amazon = breakdown.channels[Channel.AMAZON_FBA]

        if inputs.referral_pct is not None:
            override = inputs.referral_pct
            referral_pct_for = lambda gross: override
        else:
            referral_pct_for = ctx.fees.referral.pct_for

        plans = (
            (own_store, sum(own_store_pct(inputs, line_settings).values()),
             own_store.fees['shipping'] + own_store.fees['shipping_surcharges'],
             lambda gross: 0.0),
            (amazon, sum(amazon_pct(inputs, line_settings).values()) + ctx.fees.platform_pct,
             amazon.fees['fulfillment'],
             referral_pct_for),
        )

        minimums = []
        unsatisfiable = False
        for result, variable_pct, fixed_fees, pct_for in plans:
            solved = solve_guardrail_net(
                full_cost=breakdown.full_cost,
                fixed_fees=fixed_fees,
                variable_pct=variable_pct,
                target_margin_pct=ctx.guardrail_min_margin_pct,
                vat_pct=vat_pct,
                referral_pct_for=pct_for,
                seed_gross=breakdown.uvp.uvp_inc,
                epsilon=ctx.solver_epsilon,
                max_iterations=ctx.solver_max_iterations,
            )
            if isinstance(solved, Solved):
                result.guardrail_min_gross = solved.gross
                minimums.append(solved.gross)
                breakdown.add_trace(
                    "Guardrail Min", f"{result.channel.value} minimum gross price", f"€{solved.gross:.2f}"
                )
                if not solved.converged:
                    breakdown.add_warning(
                        f"{result.channel.value} guardrail price did not converge "
                        f"after {solved.iterations} iterations"
                    )
            else:
                unsatisfiable = True
                breakdown.add_guardrail(
                    f"No price satisfies the {result.channel.value} guardrail: {solved.reason}"
                )

        breakdown.autotune = autotune_uvp(breakdown.uvp.uvp_inc, minimums, unsatisfiable)
        breakdown.add_trace("UVP Check", "UVP against channel guardrail minimums", breakdown.uvp_action.value)
        if breakdown.autotune.raised_uvp_inc is not None:
            breakdown.add_trace(
                "UVP Autotune",
                f"Raise gross UVP by {breakdown.autotune.pct_increase:.1f}%",
                f"€{breakdown.autotune.raised_uvp_inc:.2f}",
            )

    def explain(self, breakdown: PricingBreakdown) -> str:
        """Render a human-readable explanation of one breakdown."""
        rule = "─" * 50
        out = [
            "═" * 50,
            f"Pricing Breakdown: {breakdown.sku}",
            breakdown.name,
            "═" * 50,
            "",
            "FACTORY & COST",
            rule,
            f"Factory Price (Unit, Final): €{breakdown.cost.factory_price_unit:.4f}",
            f"Overhead Components:         €{breakdown.cost.components_total:.4f}",
        ]
        if breakdown.cost.gift_expected_cost > 0:
            out.append(f"Gift Expected Cost:          €{breakdown.cost.gift_expected_cost:.4f}")
        out += [
            f"TOTAL FULL COST:             €{breakdown.full_cost:.4f}",
            "",
            "UVP",
            rule,
            f"Product Line: {breakdown.line}",
            f"UVP Net:  €{breakdown.uvp.uvp_net:.2f}",
            f"UVP Inc:  €{breakdown.uvp.uvp_inc:.2f} (with {breakdown.uvp.vat_pct:g}% VAT)",
            f"Grundpreis: {breakdown.unit_price.formatted or 'n/a'}",
            f"Floor Net:  €{breakdown.floor_net:.2f}",
            "",
            "CHANNELS",
            rule,
        ]
        for result in breakdown.channels.values():
            out.append(f"{result.channel.value}:")
            out.append(f"  Gross Revenue:     €{result.gross_revenue:.2f}")
            for name, amount in result.fees.items():
                out.append(f"  - {name:<17}€{amount:.2f}")
            out.append(f"  Net Revenue:       €{result.net_revenue:.2f}")
            out.append(
                f"  Margin:            €{result.contribution_margin:.2f} ({result.margin_pct:.1f}%)"
            )
            out.append(f"  Guardrail:         {'PASS' if result.guardrail_passed else 'FAIL'}")
            if result.guardrail_min_gross is not None:
                out.append(f"  Minimum Gross:     €{result.guardrail_min_gross:.2f}")
        out.append(f"UVP check: {breakdown.uvp_action.value}")
        if breakdown.autotune.raised_uvp_inc is not None:
            out.append(
                f"  Raise UVP Inc to €{breakdown.autotune.raised_uvp_inc:.2f} "
                f"(+{breakdown.autotune.pct_increase:.1f}%)"
            )
        out += ["", "PARTNER PRICING", rule]
        for tier, price in breakdown.partners.items():
            line = f"{TIER_LABELS[tier]:<15}€{price.net_price:.2f}"
            if price.floor_protected:
                line += " (floor)"
            if price.bonus:
                line += f" + bonus €{price.bonus:.2f}"
            out.append(line)
        if breakdown.guardrails:
            out += ["", "GUARDRAILS", rule]
            out += [f"• {g}" for g in breakdown.guardrails]
        if breakdown.warnings:
            out += ["", "WARNINGS", rule]
            out += [f"• {w}" for w in breakdown.warnings]
        return "\n".join(out)


def classify_uvp(uvp_inc: float, minimums: list[float], unsatisfiable: bool = False) -> UvpAction:
    """OK when UVP meets every channel minimum; otherwise raise it (≤25%) or bundle."""
    if unsatisfiable:
        return UvpAction.BUNDLE_RECOMMENDED
    if not minimums:
        return UvpAction.OK
    required = max(minimums)
    if uvp_inc >= required:
        return UvpAction.OK
    if uvp_inc <= 0:
        return UvpAction.BUNDLE_RECOMMENDED
    if required / uvp_inc - 1 <= RAISE_UVP_LIMIT:
        return UvpAction.RAISE_UVP
    return UvpAction.BUNDLE_RECOMMENDED


def round_consumer(price: float) -> float:
    """Smallest .99 price point at or above `price`."""
    rounded = round(math.floor(price) + CONSUMER_ROUND_TO, 2)
    if rounded < price:
        rounded += 1
    return rounded


def autotune_uvp(uvp_inc: float, minimums: list[float], unsatisfiable: bool = False) -> UvpAutotune:
    """
    Classify the gross UVP and work out the adjustment.

    RAISE_UVP carries the raised .99 price and its increase over the current
    UVP. BUNDLE_RECOMMENDED carries the increase the highest channel minimum
    would need. Unsatisfiable channels have no target, so no increase is given.
    """
    action = classify_uvp(uvp_inc, minimums, unsatisfiable)
    if action == UvpAction.OK or unsatisfiable or uvp_inc <= 0:
        return UvpAutotune(action)
    required = max(minimums)
    if action == UvpAction.RAISE_UVP:
        raised = round_consumer(required)
        return UvpAutotune(action, raised_uvp_inc=raised, pct_increase=(raised / uvp_inc - 1) * 100)
    return UvpAutotune(action, pct_increase=(required / uvp_inc - 1) * 100)


def _money(value: Optional[float]) -> str:
    return "" if value is None else f"{value:.2f}"


def output_fields(breakdown: PricingBreakdown) -> dict[str, str]:
    """Cell values for the computed columns, rounded to cents."""
    own_store: Optional[ChannelResult] = breakdown.channels.get(Channel.OWN_STORE)
    amazon: Optional[ChannelResult] = breakdown.channels.get(Channel.AMAZON_FBA)
    partners = breakdown.partners

    def partner_net(tier):
        price = partners.get(tier)
        return _money(price.net_price if price else None)

    return {
        'FullCost_EUR': _money(breakdown.full_cost),
        'Gift_Cost_Expected_Unit': _money(breakdown.cost.gift_expected_cost),
        'UVP_Net': _money(breakdown.uvp.uvp_net),
        'UVP_Inc': _money(breakdown.uvp.uvp_inc),
        'Grundpreis': breakdown.unit_price.formatted,
        'Grundpreis_Unit': breakdown.unit_price.unit or "",
        'Floor_B2C_Net': _money(breakdown.floor_net),
        'PostChannel_Margin_Pct': _money(own_store.margin_pct if own_store else None),
        'Guardrail_OK': "TRUE" if breakdown.guardrails_passed else "FALSE",
        'Guardrail_OwnStore_Inc': _money(own_store.guardrail_min_gross if own_store else None),
        'Guardrail_Amazon_FBA_Inc': _money(amazon.guardrail_min_gross if amazon else None),
        'UVP_vs_Floor_Flag': "OK" if breakdown.uvp.uvp_net >= breakdown.floor_net else "RAISE_UVP",
        'UVP_Inc_99': _money(breakdown.autotune.raised_uvp_inc),
        'Autotune_Pct_Increase': _money(breakdown.autotune.pct_increase),
        'Net_Dealer_Basic': partner_net(PartnerTier.DEALER_BASIC),
        'Net_Dealer_Plus': partner_net(PartnerTier.DEALER_PLUS),
        'Net_Stand': partner_net(PartnerTier.STAND_PARTNER),
        'Net_Distributor': partner_net(PartnerTier.DISTRIBUTOR),
        'Pricing_Engine_Version': ENGINE_VERSION,
    }
