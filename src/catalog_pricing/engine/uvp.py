"""
UVP (recommended retail price) and B2C floor price.
"""
from typing import Optional

from ..errors import ConfigurationError
from .models import LineSettings, UvpResult


def solve_uvp(
    full_cost: float,
    target_margin_pct: float,
    vat_pct: float,
    manual_uvp_inc: Optional[float] = None,
) -> UvpResult:
    """
    Solve UVP net/inc from full cost and target margin.

    uvp_net = full_cost / (1 − margin/100); uvp_inc = uvp_net × (1 + VAT/100).
    A positive manual gross UVP skips the margin solve; net is derived by removing VAT.
    """
    vat_factor = 1 + vat_pct / 100

    if manual_uvp_inc and manual_uvp_inc > 0:
        return UvpResult(
            uvp_net=manual_uvp_inc / vat_factor,
            uvp_inc=manual_uvp_inc,
            vat_pct=vat_pct,
            manual_override=True,
        )

    if target_margin_pct >= 100:
        raise ConfigurationError(
            f"Target margin {target_margin_pct}% must be below 100%"
        )

    uvp_net = full_cost / (1 - target_margin_pct / 100)
    return UvpResult(
        uvp_net=uvp_net,
        uvp_inc=uvp_net * vat_factor,
        vat_pct=vat_pct,
        target_margin_pct=target_margin_pct,
    )


def floor_net_price(full_cost: float, line: LineSettings) -> float:
    """Minimum permissible net price: full cost × the line's floor multiplier."""
    return full_cost * line.floor_multiplier
