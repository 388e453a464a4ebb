"""
Partner (B2B) pricing with floor protection.

Each tier's net price is MAX(UVP net × tier fraction, floor net). The stand
partner bonus is computed from UVP and kept apart from the net price.
"""
from typing import Iterable

from .models import PartnerPrice, PartnerTier, PartnerTierTerms

DEFAULT_PARTNER_TIERS: tuple[PartnerTierTerms, ...] = (
    PartnerTierTerms(PartnerTier.DEALER_BASIC, 0.60),
    PartnerTierTerms(PartnerTier.DEALER_PLUS, 0.50),
    PartnerTierTerms(PartnerTier.STAND_PARTNER, 0.70, bonus_fraction=0.05),
    PartnerTierTerms(PartnerTier.DISTRIBUTOR, 0.40),
)

TIER_LABELS = {
    PartnerTier.DEALER_BASIC: "Dealer Basic",
    PartnerTier.DEALER_PLUS: "Dealer Plus",
    PartnerTier.STAND_PARTNER: "Stand Partner",
    PartnerTier.DISTRIBUTOR: "Distributor",
}


def partner_price(terms: PartnerTierTerms, uvp_net: float, floor_net: float) -> PartnerPrice:
    net_price = max(uvp_net * terms.fraction, floor_net)
    return PartnerPrice(
        tier=terms.tier,
        fraction=terms.fraction,
        net_price=net_price,
        floor_protected=net_price == floor_net,
        bonus=uvp_net * terms.bonus_fraction,
    )


def calculate_partner_prices(
    uvp_net: float,
    floor_net: float,
    tiers: Iterable[PartnerTierTerms] = DEFAULT_PARTNER_TIERS,
) -> dict[PartnerTier, PartnerPrice]:
    """Floor-protected net price for every partner tier."""
    return {terms.tier: partner_price(terms, uvp_net, floor_net) for terms in tiers}
