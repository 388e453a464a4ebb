"""
Grundpreis - statutory unit price disclosure (€/L or €/kg).

Always computed from the VAT-inclusive price.
"""
from typing import Optional

from .models import UnitPrice

MISSING_CONTENT = "Cannot calculate Grundpreis - missing Net_Content_ml/Content_ml or Weight_g"


def calculate_unit_price(
    uvp_inc: float,
    net_content_ml: Optional[float] = None,
    weight_g: Optional[float] = None,
) -> tuple[UnitPrice, Optional[str]]:
    """
    Price per liter when net content is known, else per kilogram when weight is known.

    Returns (unit_price, warning); warning is None when a unit price was computed.
    """
    if net_content_ml and net_content_ml > 0:
        return UnitPrice(value=uvp_inc / (net_content_ml / 1000), unit="L"), None

    if weight_g and weight_g > 0:
        return UnitPrice(value=uvp_inc / (weight_g / 1000), unit="kg"), None

    return UnitPrice(value=0.0), MISSING_CONTENT
