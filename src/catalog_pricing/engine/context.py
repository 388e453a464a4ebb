"""
Pricing context construction.

Turns the raw parameter, partner tier and fee tables (header-keyed rows) into
one immutable PricingContext. Runs once per job; every row is priced against
the same snapshot.
"""
import logging
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from ..config.settings import Settings, get_settings
from ..errors import ConfigurationError, MalformedInputError
from .models import (
    CarrierRate,
    ChannelFeeSchedule,
    LineSettings,
    PartnerTier,
    PartnerTierTerms,
    PricingContext,
    PricingParameters,
    ProductLine,
    ReferralSchedule,
    ReferralTier,
    SizeTier,
    Surcharge,
    SurchargeType,
)
from .partner import DEFAULT_PARTNER_TIERS
from .records import FX_BUFFER_FLOOR_PCT, parse_bool, parse_optional_float, parse_optional_str

logger = logging.getLogger(__name__)

Row = Mapping[str, object]

DEFAULT_VAT_PCT = 19.0
DEFAULT_FX_BUFFER_PCT = 3.0
DEFAULT_RETURNS_PCT = 2.0
DEFAULT_LOYALTY_PCT = 0.7
DEFAULT_PAYMENT_PCT = 2.5

# line -> (target margin %, floor multiplier, ad %)
LINE_DEFAULTS: dict[ProductLine, tuple[float, float, float]] = {
    ProductLine.PREMIUM: (75.0, 2.5, 13.0),
    ProductLine.PROFESSIONAL: (62.0, 2.4, 10.0),
    ProductLine.BASIC: (50.0, 2.1, 8.0),
    ProductLine.TOOLS: (48.0, 1.8, 6.0),
}

# Used for lines that are not in the table
DEFAULT_ROW = (50.0, 2.1, 10.0)

DEFAULT_REFERRAL_LOW_PCT = 8.0
DEFAULT_REFERRAL_HIGH_PCT = 15.0
DEFAULT_REFERRAL_THRESHOLD = 10.0
DEFAULT_REFERRAL_MIN_FEE = 0.30
DEFAULT_DHL_ZONE = "DE_1"


def parse_param_table(rows: Sequence[Row]) -> dict[str, float]:
    """ParamKey → numeric Value. Non-numeric values are skipped."""
    params = {}
    for row in rows:
        key = parse_optional_str(row.get('ParamKey'))
        if not key:
            continue
        try:
            value = parse_optional_float(row.get('Value'), key)
        except MalformedInputError:
            logger.debug(f"Skipping non-numeric parameter {key}={row.get('Value')!r}")
            continue
        if value is not None:
            params[key] = value
    return params


def build_parameters(rows: Sequence[Row]) -> PricingParameters:
    """Build the enum-keyed line table from Pricing_Params rows."""
    params = parse_param_table(rows)

    def line_settings(suffix: Optional[str], defaults: tuple[float, float, float]) -> LineSettings:
        margin, floor, ad = defaults
        if suffix is None:
            return LineSettings(
                target_margin_pct=margin,
                floor_multiplier=floor,
                ad_pct=ad,
                returns_pct=params.get('RETURNS_PCT', DEFAULT_RETURNS_PCT),
                loyalty_pct=params.get('LOYALTY_PCT', DEFAULT_LOYALTY_PCT),
                payment_pct=params.get('PAYMENT_PCT', DEFAULT_PAYMENT_PCT),
            )
        return LineSettings(
            target_margin_pct=params.get(f'TARGET_MARGIN_{suffix}_PCT', margin),
            floor_multiplier=params.get(f'FLOOR_MULTIPLIER_{suffix}', floor),
            ad_pct=params.get(f'AD_PCT_{suffix}', ad),
            returns_pct=params.get(
                f'RETURNS_PCT_{suffix}', params.get('RETURNS_PCT', DEFAULT_RETURNS_PCT)
            ),
            loyalty_pct=params.get(
                f'LOYALTY_PCT_{suffix}', params.get('LOYALTY_PCT', DEFAULT_LOYALTY_PCT)
            ),
            payment_pct=params.get(
                f'PAYMENT_PCT_{suffix}', params.get('PAYMENT_PCT', DEFAULT_PAYMENT_PCT)
            ),
        )

    lines = {
        line: line_settings(line.value.upper(), defaults)
        for line, defaults in LINE_DEFAULTS.items()
    }

    fx_buffer_pct = params.get('FX_BUFFER_PCT', DEFAULT_FX_BUFFER_PCT)
    if fx_buffer_pct <= FX_BUFFER_FLOOR_PCT:
        raise ConfigurationError(
            f"FX_BUFFER_PCT must be above {FX_BUFFER_FLOOR_PCT:g}, got {fx_buffer_pct:g}"
        )

    return PricingParameters(
        vat_pct=params.get('VAT_DEFAULT_PCT', DEFAULT_VAT_PCT),
        fx_buffer_pct=fx_buffer_pct,
        lines=MappingProxyType(lines),
        default_line=line_settings(None, DEFAULT_ROW),
    )


def build_partner_tiers(rows: Sequence[Row]) -> tuple[PartnerTierTerms, ...]:
    """Partner_Tiers rows override the default fractions tier by tier."""
    overrides = {}
    for row in rows:
        name = parse_optional_str(row.get('Tier'))
        if not name:
            continue
        try:
            tier = PartnerTier(name)
        except ValueError:
            logger.warning(f"Ignoring unknown partner tier '{name}'")
            continue
        overrides[tier] = row

    tiers = []
    for default in DEFAULT_PARTNER_TIERS:
        row = overrides.get(default.tier)
        if row is None:
            tiers.append(default)
            continue
        fraction = parse_optional_float(row.get('Fraction'), f"{default.tier.value}.Fraction")
        bonus = parse_optional_float(
            row.get('Bonus_Fraction'), f"{default.tier.value}.Bonus_Fraction"
        )
        tiers.append(PartnerTierTerms(
            tier=default.tier,
            fraction=fraction if fraction is not None else default.fraction,
            bonus_fraction=bonus if bonus is not None else default.bonus_fraction,
        ))
    return tuple(tiers)


def _find_channel(rows: Sequence[Row], *channel_ids: str) -> Optional[Row]:
    for channel_id in channel_ids:
        for row in rows:
            if parse_optional_str(row.get('ChannelID')) == channel_id:
                return row
    return None


def _number(row: Optional[Row], column: str, default: float) -> float:
    if row is None:
        return default
    value = parse_optional_float(row.get(column), column)
    return default if value is None else value


def build_fee_schedule(tables: Mapping[str, Sequence[Row]]) -> ChannelFeeSchedule:
    """
    Build the channel fee schedule from the fee tables.

    Expected keys: "channels", "amazon_tiers", "dhl_matrix", "dhl_surcharges".
    Malformed numbers raise MalformedInputError.
    """
    channels = tables.get('channels', [])
    amazon = _find_channel(channels, 'Amazon_FBA', 'Amazon_FBM')
    own_store = _find_channel(channels, 'OwnStore')

    threshold = _number(amazon, 'Referral_Threshold_EUR', DEFAULT_REFERRAL_THRESHOLD)
    high_pct = _number(amazon, 'Referral_Pct_High', DEFAULT_REFERRAL_HIGH_PCT)
    referral = ReferralSchedule(
        tiers=(
            ReferralTier(max_gross=threshold, pct=_number(amazon, 'Referral_Pct_Low', DEFAULT_REFERRAL_LOW_PCT)),
            ReferralTier(max_gross=None, pct=high_pct),
        ),
        min_fee=_number(amazon, 'Referral_Min_EUR', DEFAULT_REFERRAL_MIN_FEE),
        fallback_pct=high_pct,
    )

    size_tiers = {}
    for row in tables.get('amazon_tiers', []):
        key = parse_optional_str(row.get('TierKey'))
        if not key:
            continue
        size_tiers[key] = SizeTier(
            tier_key=key,
            fee=_number(row, 'FBA_Fee_EUR', 0.0),
            surcharge=_number(row, 'FBA_Surcharge_2025_EUR', 0.0),
        )

    rates = []
    for row in tables.get('dhl_matrix', []):
        zone = parse_optional_str(row.get('Zone'))
        if not zone:
            continue
        rates.append(CarrierRate(
            zone=zone,
            weight_min_g=_number(row, 'Weight_Min_g', 0.0),
            weight_max_g=_number(row, 'Weight_Max_g', 0.0),
            base_rate=_number(row, 'Base_Rate_EUR', 0.0),
        ))

    surcharges = []
    for row in tables.get('dhl_surcharges', []):
        key = parse_optional_str(row.get('SurchargeKey')) or "unnamed"
        raw_type = parse_optional_str(row.get('Type'))
        try:
            surcharge_type = SurchargeType(raw_type)
        except ValueError:
            raise MalformedInputError(
                f"DHL surcharge {key} Type", raw_type, "unknown surcharge type"
            ) from None
        active = row.get('Active')
        surcharges.append(Surcharge(
            key=key,
            type=surcharge_type,
            amount=_number(row, 'Amount_EUR', 0.0),
            pct=_number(row, 'Pct_Of_Base', 0.0),
            active=True if active is None or str(active).strip() == '' else parse_bool(active),
        ))

    return ChannelFeeSchedule(
        referral=referral,
        platform_pct=_number(amazon, 'Platform_Pct', 0.0),
        size_tiers=MappingProxyType(size_tiers),
        carrier_rates=tuple(rates),
        surcharges=tuple(surcharges),
        default_zone=(own_store and parse_optional_str(own_store.get('DHL_Zone'))) or DEFAULT_DHL_ZONE,
    )


def build_context(
    param_rows: Sequence[Row],
    partner_tier_rows: Sequence[Row] = (),
    fee_tables: Optional[Mapping[str, Sequence[Row]]] = None,
    settings: Optional[Settings] = None,
) -> PricingContext:
    """Assemble the full pricing context once per run."""
    settings = settings or get_settings()
    context = PricingContext(
        parameters=build_parameters(param_rows),
        fees=build_fee_schedule(fee_tables or {}),
        partner_tiers=build_partner_tiers(partner_tier_rows),
        guardrail_min_margin_pct=settings.guardrail_min_margin_pct,
        solver_epsilon=settings.solver_epsilon,
        solver_max_iterations=settings.solver_max_iterations,
    )
    logger.info(
        f"Pricing context built: VAT {context.parameters.vat_pct}%, "
        f"FX buffer {context.parameters.fx_buffer_pct}%, "
        f"{len(context.fees.carrier_rates)} DHL rates, "
        f"{len(context.fees.surcharges)} surcharges, "
        f"{len(context.fees.size_tiers)} size tiers"
    )
    return context
