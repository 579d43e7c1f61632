"""
Role-based price resolution.

Products carry a base `price` and a `prices` map keyed by tier
(standard / primary / secondary). A user's role picks the tier:

    primary    -> prices.primary
    secondary  -> prices.secondary
    registered -> prices.standard
    admin      -> prices.standard (admins never see a discount)

A missing tier falls back to the standard tier, then to the base price,
then to 0. Tier prices are not checked against the base price.
"""
import math
from typing import Any, Mapping, Optional

STANDARD_TIER = "standard"
DISCOUNT_TIERS = ("primary", "secondary")

TIER_LABELS = {
    "admin": "Regular",
    "primary": "Primary",
    "secondary": "Secondary",
}


def tier_for_role(role: Optional[str]) -> str:
    if role in DISCOUNT_TIERS:
        return role
    return STANDARD_TIER


def _usable(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return float(value)


def _tier_prices(product: Mapping[str, Any]) -> Mapping[str, Any]:
    prices = product.get("prices") or {}
    if "registered" in prices and STANDARD_TIER not in prices:
        prices = {**prices, STANDARD_TIER: prices["registered"]}
    return prices


def resolve_price(product: Mapping[str, Any], role: Optional[str]) -> float:
    """Return the unit price `role` pays for `product`."""
    prices = _tier_prices(product)
    tier = tier_for_role(role)
    for candidate in (prices.get(tier), prices.get(STANDARD_TIER), product.get("price")):
        price = _usable(candidate)
        if price is not None:
            return price
    return 0.0


def regular_price(product: Mapping[str, Any]) -> float:
    return resolve_price(product, None)


def price_tier_info(product: Mapping[str, Any], role: Optional[str]) -> dict:
    display_price = resolve_price(product, role)
    base = _usable(product.get("price"))
    regular = base if base is not None else regular_price(product)
    return {
        "display_price": display_price,
        "regular_price": regular,
        "has_different_price": display_price != regular,
        "tier": TIER_LABELS.get(role, "Standard"),
        "savings": round(regular - display_price, 2),
    }
