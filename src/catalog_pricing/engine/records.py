"""
Typed product record - the boundary between header-keyed store rows and the engine.

Known pricing columns are parsed into ProductCostInputs; every other column is
kept verbatim in an ordered side-table so user-added data survives a round trip.
"""
import math
from dataclasses import dataclass, field, fields
from typing import Mapping, Optional

from ..errors import MalformedInputError
from .models import ProductLine


def parse_bool(value: str) -> bool:
    """Parse a boolean from a table cell."""
    return str(value).strip().lower() in ('true', '1', 'yes', 'on', 'wahr')


def parse_optional_str(value) -> Optional[str]:
    """Parse optional string (empty = None)."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_optional_float(value, column: str = "value") -> Optional[float]:
    """
    Parse an optional number from a table cell.

    Empty cells are None. Anything else that is not a finite number raises
    MalformedInputError.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        text = str(value).strip()
        if text == '':
            return None
        try:
            number = float(text)
        except ValueError:
            raise MalformedInputError(column, value) from None
    if math.isnan(number) or math.isinf(number):
        raise MalformedInputError(column, value, "not a finite number")
    return number


_LINE_ALIASES = {
    'pro': ProductLine.PROFESSIONAL,
    'prem': ProductLine.PREMIUM,
}


def normalize_line(raw: Optional[str]) -> tuple[Optional[ProductLine], str]:
    """
    Map a free-text line name onto ProductLine.

    Returns (line, display_name). A missing line means Basic; an unrecognised
    line returns (None, raw) so the caller can fall back to the default row.
    """
    if not raw or not raw.strip():
        return ProductLine.BASIC, ProductLine.BASIC.value
    key = raw.strip().lower()
    if key in _LINE_ALIASES:
        line = _LINE_ALIASES[key]
        return line, line.value
    for line in ProductLine:
        if line.value.lower() == key:
            return line, line.value
    return None, raw.strip()


@dataclass
class ProductCostInputs:
    """Per-SKU inputs the engine understands."""
    sku: str = ""
    name: str = ""
    line: Optional[str] = None

    # Factory price, in priority order
    factory_price_manual: Optional[float] = None
    carton_total: Optional[float] = None
    units_per_carton: Optional[float] = None
    legacy_factory_cost: Optional[float] = None
    fx_buffer_pct: Optional[float] = None

    # The eight per-unit overhead components
    shipping_inbound: Optional[float] = None
    epr_lucid: Optional[float] = None
    gs1: Optional[float] = None
    retail_packaging: Optional[float] = None
    qc_pif: Optional[float] = None
    operations: Optional[float] = None
    marketing: Optional[float] = None
    box_cost: Optional[float] = None

    # Gift attach
    gift_sku: Optional[str] = None
    gift_cost: Optional[float] = None
    gift_attach_rate: Optional[float] = None
    gift_funding_pct: Optional[float] = None
    gift_shipping_increment: Optional[float] = None

    # Content for Grundpreis and shipping
    net_content_ml: Optional[float] = None
    weight_g: Optional[float] = None

    # Overrides
    vat_pct: Optional[float] = None
    manual_uvp_inc: Optional[float] = None
    ad_pct: Optional[float] = None
    returns_pct: Optional[float] = None
    loyalty_pct: Optional[float] = None
    payment_pct: Optional[float] = None
    referral_pct: Optional[float] = None
    amazon_tier_key: Optional[str] = None
    dhl_zone: Optional[str] = None

    def overhead_components(self) -> dict[str, float]:
        """The eight named overhead components, missing values as 0."""
        return {
            column: getattr(self, attr) or 0.0
            for attr, column in OVERHEAD_COLUMNS.items()
        }


# attribute -> column(s); the first non-empty column wins
FIELD_COLUMNS: dict[str, tuple[str, ...]] = {
    'sku': ('SKU',),
    'name': ('Name',),
    'line': ('Line',),
    'factory_price_manual': ('FactoryPriceUnit_Manual',),
    'carton_total': ('TotalFactoryPriceCarton',),
    'units_per_carton': ('UnitsPerCarton',),
    'legacy_factory_cost': ('Factory_Cost_EUR',),
    'fx_buffer_pct': ('FX_BufferPct',),
    'shipping_inbound': ('Shipping_Inbound_per_unit',),
    'epr_lucid': ('EPR_LUCID_per_unit',),
    'gs1': ('GS1_per_unit',),
    'retail_packaging': ('Retail_Packaging_per_unit',),
    'qc_pif': ('QC_PIF_per_unit',),
    'operations': ('Operations_per_unit',),
    'marketing': ('Marketing_per_unit',),
    'box_cost': ('Box_Cost_Per_Unit',),
    'gift_sku': ('Gift_SKU',),
    'gift_cost': ('Gift_SKU_Cost',),
    'gift_attach_rate': ('Gift_Attach_Rate',),
    'gift_funding_pct': ('Gift_Funding_Pct',),
    'gift_shipping_increment': ('Gift_Shipping_Increment',),
    'net_content_ml': ('Net_Content_ml', 'Content_ml'),
    'weight_g': ('Weight_g',),
    'vat_pct': ('VAT%',),
    'manual_uvp_inc': ('Manual_UVP_Inc',),
    'ad_pct': ('Ad_Pct',),
    'returns_pct': ('Returns_Pct',),
    'loyalty_pct': ('Loyalty_Pct',),
    'payment_pct': ('Payment_Pct',),
    'referral_pct': ('Amazon_Referral_Pct',),
    'amazon_tier_key': ('Amazon_TierKey',),
    'dhl_zone': ('DHL_Zone',),
}

OVERHEAD_COLUMNS: dict[str, str] = {
    'shipping_inbound': 'Shipping_Inbound_per_unit',
    'epr_lucid': 'EPR_LUCID_per_unit',
    'gs1': 'GS1_per_unit',
    'retail_packaging': 'Retail_Packaging_per_unit',
    'qc_pif': 'QC_PIF_per_unit',
    'operations': 'Operations_per_unit',
    'marketing': 'Marketing_per_unit',
    'box_cost': 'Box_Cost_Per_Unit',
}

TEXT_FIELDS = {'sku', 'name', 'line', 'gift_sku', 'amazon_tier_key', 'dhl_zone'}

# Cost inputs that can never be negative
NON_NEGATIVE_FIELDS = {
    'factory_price_manual', 'carton_total', 'units_per_carton', 'legacy_factory_cost',
    'gift_cost', 'gift_attach_rate', 'gift_funding_pct', 'gift_shipping_increment',
    *OVERHEAD_COLUMNS.keys(),
}

# Fractions and percentages with an upper bound
MAX_VALUES = {
    'gift_funding_pct': 100.0,
    'gift_attach_rate': 1.0,
}

# At -100% or below the buffered factory price is no longer positive
FX_BUFFER_FLOOR_PCT = -100.0


def check_range(name: str, column: str, raw, value: float) -> None:
    """Raise MalformedInputError if a parsed cost input is out of range."""
    if value < 0 and name in NON_NEGATIVE_FIELDS:
        raise MalformedInputError(column, raw, "must not be negative")
    if name in MAX_VALUES and value > MAX_VALUES[name]:
        raise MalformedInputError(column, raw, f"must not exceed {MAX_VALUES[name]:g}")
    if name == 'fx_buffer_pct' and value <= FX_BUFFER_FLOOR_PCT:
        raise MalformedInputError(column, raw, f"must be above {FX_BUFFER_FLOOR_PCT:g}")

KNOWN_COLUMNS = frozenset(c for cols in FIELD_COLUMNS.values() for c in cols)


@dataclass
class ProductRecord:
    """Typed inputs plus the untouched remainder of the row."""
    inputs: ProductCostInputs
    extras: dict[str, str] = field(default_factory=dict)

    @property
    def sku(self) -> str:
        return self.inputs.sku

    @classmethod
    def from_mapping(cls, row: Mapping[str, object]) -> 'ProductRecord':
        """Parse a header-keyed row. Raises MalformedInputError on bad numbers."""
        values = {}
        for f in fields(ProductCostInputs):
            raw = None
            column = FIELD_COLUMNS[f.name][0]
            for candidate in FIELD_COLUMNS[f.name]:
                cell = row.get(candidate)
                if cell is not None and str(cell).strip() != '':
                    raw, column = cell, candidate
                    break
            if f.name in TEXT_FIELDS:
                parsed = parse_optional_str(raw)
                if f.name in ('sku', 'name'):
                    parsed = parsed or ""
            else:
                parsed = parse_optional_float(raw, column)
                if parsed is not None:
                    check_range(f.name, column, raw, parsed)
            values[f.name] = parsed

        extras = {
            str(k): "" if v is None else str(v)
            for k, v in row.items()
            if k not in KNOWN_COLUMNS
        }
        return cls(inputs=ProductCostInputs(**values), extras=extras)

    @classmethod
    def from_values(cls, headers: list[str], values: list[str]) -> 'ProductRecord':
        """Parse a header-ordered row as returned by the table store."""
        padded = list(values) + [""] * (len(headers) - len(values))
        return cls.from_mapping(dict(zip(headers, padded)))
