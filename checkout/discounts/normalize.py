"""
Normalisation des montants de réduction renvoyés par le backend.
Formes acceptées:
  - objet {"amount" | "value" | "discount": N} (éventuellement sous la clé "discount")
  - nombre brut
  - absent => dérivé de (sous-total avant coupon - total après coupon)
Unités:
  - N > 10000 => unités mineures (øre), divisé par 100
  - N <= 10000 => unités d'affichage (DKK), sauf si le total relu après coupon montre
    une réduction plus proche de la lecture en øre (cas {"amount": 2500} sur 500,00 DKK => 25,00)
  - Sans total relu: unités d'affichage, plafonnées (la réduction croît avec N)
Arrondi au demi-DKK le plus proche, plafonné au sous-total, résultat en øre.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from checkout.errors import UnexpectedResponseShapeError

MINOR_UNIT_THRESHOLD = 10000
_AMOUNT_KEYS = ("amount", "value", "discount")


def _number(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except ArithmeticError:
            return None
    return None

def extract_raw_discount(response: Any) -> Optional[Decimal]:
    """Montant brut tel que renvoyé, ou None si la réponse n'en porte pas."""
    if response is None:
        return None
    direct = _number(response)
    if direct is not None:
        return direct
    if not isinstance(response, dict):
        raise UnexpectedResponseShapeError(f"Unrecognized discount response shape: {type(response).__name__}")
    data = response.get("data") if isinstance(response.get("data"), dict) else response
    nested = data.get("discount")
    if isinstance(nested, dict):
        for key in _AMOUNT_KEYS:
            found = _number(nested.get(key))
            if found is not None:
                return found
    for key in _AMOUNT_KEYS + ("couponDiscount", "discountAmount"):
        value = data.get(key)
        if isinstance(value, dict):
            value = value.get("amount")
        found = _number(value)
        if found is not None:
            return found
    return None

def round_to_half_unit(display_amount: Decimal) -> Decimal:
    return (display_amount * 2).quantize(Decimal(1), rounding=ROUND_HALF_UP) / 2

def _closest_to_observed(raw: Decimal, subtotal_minor: int, total_minor: int) -> Decimal:
    """Lecture (DKK ou øre) la plus proche de la réduction constatée sur la commande."""
    subtotal_display = Decimal(subtotal_minor) / 100
    observed = Decimal(subtotal_minor - total_minor) / 100
    if observed <= 0:
        return raw
    as_display = min(raw, subtotal_display)
    as_minor = min(raw / 100, subtotal_display)
    if abs(as_minor - observed) < abs(as_display - observed):
        return raw / 100
    return raw

def normalize_discount(
    response: Any,
    *,
    subtotal_minor: int,
    total_minor: Optional[int] = None,
) -> int:
    """Réduction normalisée en øre, jamais négative, jamais supérieure au sous-total."""
    subtotal_minor = max(int(subtotal_minor or 0), 0)
    raw = extract_raw_discount(response)
    if raw is None:
        if total_minor is None:
            return 0
        display = Decimal(subtotal_minor - int(total_minor)) / 100
    elif raw > MINOR_UNIT_THRESHOLD:
        display = raw / 100
    else:
        display = raw
        if total_minor is not None:
            display = _closest_to_observed(raw, subtotal_minor, int(total_minor))

    discount_minor = int(round_to_half_unit(display) * 100)
    return min(max(discount_minor, 0), subtotal_minor)
