"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation. Context types
(parameters, fee schedules, partner terms) are frozen: they are built once per
run and shared by every row priced against them.
"""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class ProductLine(str, Enum):
    PREMIUM = "Premium"
    PROFESSIONAL = "Professional"
    BASIC = "Basic"
    TOOLS = "Tools"


class Channel(str, Enum):
    OWN_STORE = "OwnStore"
    AMAZON_FBA = "Amazon_FBA"


class SurchargeType(str, Enum):
    FIXED_PER_SHIPMENT = "Fixed_Per_Shipment"
    PCT_OF_BASE = "Pct_Of_Base"
    MONTHLY_VARIABLE = "Monthly_Variable"


class PartnerTier(str, Enum):
    DEALER_BASIC = "DealerBasic"
    DEALER_PLUS = "DealerPlus"
    STAND_PARTNER = "StandPartner"
    DISTRIBUTOR = "Distributor"


class UvpAction(str, Enum):
    OK = "OK"
    RAISE_UVP = "RAISE_UVP"
    BUNDLE_RECOMMENDED = "BUNDLE_RECOMMENDED"


# ── Pricing context ──────────────────────────────────────

@dataclass(frozen=True)
class LineSettings:
    """Per-line margin, floor and channel cost percentages."""
    target_margin_pct: float
    floor_multiplier: float
    ad_pct: float
    returns_pct: float
    loyalty_pct: float
    payment_pct: float


@dataclass(frozen=True)
class PricingParameters:
    """VAT, FX buffer and the enum-keyed line table (with its default row)."""
    vat_pct: float
    fx_buffer_pct: float
    lines: Mapping[ProductLine, LineSettings]
    default_line: LineSettings

    def for_line(self, line: Optional[ProductLine]) -> LineSettings:
        """Settings for a line; unknown lines (None) use the default row."""
        if line is None:
            return self.default_line
        return self.lines.get(line, self.default_line)


@dataclass(frozen=True)
class ReferralTier:
    """Referral percentage applying up to (and including) max_gross; None = no upper limit."""
    max_gross: Optional[float]
    pct: float


@dataclass(frozen=True)
class ReferralSchedule:
    """Tiered marketplace referral fee."""
    tiers: tuple[ReferralTier, ...]
    min_fee: float = 0.0
    fallback_pct: float = 15.0

    def pct_for(self, gross: float) -> float:
        """Resolve the referral percentage for a VAT-inclusive price."""
        for tier in self.tiers:
            if tier.max_gross is None or gross <= tier.max_gross:
                return tier.pct
        return self.fallback_pct


@dataclass(frozen=True)
class SizeTier:
    """Marketplace fulfillment size tier."""
    tier_key: str
    fee: float
    surcharge: float = 0.0

    @property
    def total_fee(self) -> float:
        return self.fee + self.surcharge


@dataclass(frozen=True)
class CarrierRate:
    """DHL base rate for a zone and an inclusive weight band."""
    zone: str
    weight_min_g: float
    weight_max_g: float
    base_rate: float

    def covers(self, zone: str, weight_g: float) -> bool:
        return self.zone == zone and self.weight_min_g <= weight_g <= self.weight_max_g


@dataclass(frozen=True)
class Surcharge:
    """A carrier surcharge line."""
    key: str
    type: SurchargeType
    amount: float = 0.0
    pct: float = 0.0
    active: bool = True


@dataclass(frozen=True)
class ChannelFeeSchedule:
    """Everything channel pricing needs besides the product itself."""
    referral: ReferralSchedule
    platform_pct: float = 0.0
    size_tiers: Mapping[str, SizeTier] = field(default_factory=lambda: MappingProxyType({}))
    carrier_rates: tuple[CarrierRate, ...] = ()
    surcharges: tuple[Surcharge, ...] = ()
    default_zone: str = "DE_1"

    def size_tier(self, tier_key: str) -> Optional[SizeTier]:
        return self.size_tiers.get(tier_key)

    def carrier_rate(self, zone: str, weight_g: float) -> Optional[CarrierRate]:
        for rate in self.carrier_rates:
            if rate.covers(zone, weight_g):
                return rate
        return None


@dataclass(frozen=True)
class PartnerTierTerms:
    """UVP fraction for a partner tier; bonus_fraction is tracked outside the net price."""
    tier: PartnerTier
    fraction: float
    bonus_fraction: float = 0.0


@dataclass(frozen=True)
class PricingContext:
    """One consistent snapshot of everything needed to price any SKU."""
    parameters: PricingParameters
    fees: ChannelFeeSchedule
    partner_tiers: tuple[PartnerTierTerms, ...]
    guardrail_min_margin_pct: float = 45.0
    solver_epsilon: float = 0.01
    solver_max_iterations: int = 5


# ── Results ──────────────────────────────────────────────

@dataclass
class TraceStep:
    """A single step in the pricing calculation trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class CostRollUp:
    """Landed cost per unit."""
    factory_price_unit: float
    components_total: float
    gift_expected_cost: float
    full_cost: float
    warnings: list[str] = field(default_factory=list)


@dataclass
class UvpResult:
    uvp_net: float
    uvp_inc: float
    vat_pct: float
    target_margin_pct: Optional[float] = None  # None when a manual UVP was used
    manual_override: bool = False


@dataclass
class UvpAutotune:
    """UVP checked against the channel guardrail minimums."""
    action: UvpAction = UvpAction.OK
    raised_uvp_inc: Optional[float] = None  # .99 consumer price, RAISE_UVP only
    pct_increase: Optional[float] = None  # vs. the current gross UVP


@dataclass
class UnitPrice:
    """Grundpreis: VAT-inclusive price per liter or per kilogram."""
    value: float
    unit: Optional[str] = None  # "L", "kg" or None when not computable

    @property
    def formatted(self) -> str:
        if self.unit is None:
            return ""
        return f"€{self.value:.2f}/{self.unit}"


@dataclass
class ShippingCost:
    base_rate: float = 0.0
    surcharges: float = 0.0

    @property
    def total(self) -> float:
        return self.base_rate + self.surcharges


@dataclass
class ChannelResult:
    """Revenue, fee and margin breakdown for one sales channel."""
    channel: Channel
    gross_revenue: float
    fees: dict[str, float]
    total_channel_costs: float
    net_revenue: float
    contribution_margin: float
    margin_pct: float
    guardrail_passed: bool
    guardrail_min_gross: Optional[float] = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class PartnerPrice:
    tier: PartnerTier
    fraction: float
    net_price: float
    floor_protected: bool
    bonus: float = 0.0


@dataclass
class PricingBreakdown:
    """Complete pricing result for one SKU."""
    sku: str
    name: str
    line: str
    cost: CostRollUp
    uvp: UvpResult
    unit_price: UnitPrice
    floor_net: float
    channels: dict[Channel, ChannelResult] = field(default_factory=dict)
    partners: dict[PartnerTier, PartnerPrice] = field(default_factory=dict)
    autotune: UvpAutotune = field(default_factory=UvpAutotune)
    guardrails: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    @property
    def full_cost(self) -> float:
        return self.cost.full_cost

    @property
    def uvp_action(self) -> UvpAction:
        return self.autotune.action

    @property
    def guardrails_passed(self) -> bool:
        return all(c.guardrail_passed for c in self.channels.values())

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace for this SKU."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        if warning not in self.warnings:
            self.warnings.append(warning)

    def add_guardrail(self, message: str):
        if message not in self.guardrails:
            self.guardrails.append(message)

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """JSON-friendly view with currency values rounded to cents."""
        return {
            "sku": self.sku,
            "name": self.name,
            "line": self.line,
            "factory_price_unit": round(self.cost.factory_price_unit, 2),
            "gift_expected_cost": round(self.cost.gift_expected_cost, 2),
            "full_cost": round(self.cost.full_cost, 2),
            "uvp_net": round(self.uvp.uvp_net, 2),
            "uvp_inc": round(self.uvp.uvp_inc, 2),
            "grundpreis": round(self.unit_price.value, 2),
            "grundpreis_unit": self.unit_price.unit,
            "grundpreis_formatted": self.unit_price.formatted,
            "floor_net": round(self.floor_net, 2),
            "channels": {
                channel.value: {
                    "gross_revenue": round(result.gross_revenue, 2),
                    "fees": {k: round(v, 2) for k, v in result.fees.items()},
                    "total_channel_costs": round(result.total_channel_costs, 2),
                    "net_revenue": round(result.net_revenue, 2),
                    "contribution_margin": round(result.contribution_margin, 2),
                    "margin_pct": round(result.margin_pct, 2),
                    "guardrail_passed": result.guardrail_passed,
                    "guardrail_min_gross": (
                        round(result.guardrail_min_gross, 2)
                        if result.guardrail_min_gross is not None else None
                    ),
                }
                for channel, result in self.channels.items()
            },
            "partners": {
                tier.value: {
                    "net_price": round(price.net_price, 2),
                    "floor_protected": price.floor_protected,
                    "bonus": round(price.bonus, 2),
                }
                for tier, price in self.partners.items()
            },
            "uvp_action": self.uvp_action.value,
            "uvp_inc_99": (
                round(self.autotune.raised_uvp_inc, 2)
                if self.autotune.raised_uvp_inc is not None else None
            ),
            "uvp_pct_increase": (
                round(self.autotune.pct_increase, 2)
                if self.autotune.pct_increase is not None else None
            ),
            "guardrails": list(self.guardrails),
            "warnings": list(self.warnings),
        }
