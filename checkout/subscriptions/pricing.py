"""
Vérification de prix (fonctions pures, sans effet de bord).
- Prix attendu d'un premier mois partiel: round(mensuel × jours restants / jours du mois)
- Comparaison avec le prix renvoyé par le backend, tolérance d'arrondi en øre
- Arrondi "half up" (0.5 => supérieur), comme l'arrondi utilisé pour l'affichage
"""
import calendar
import math
from dataclasses import dataclass
from datetime import date
from fractions import Fraction
from typing import Any, Optional

from checkout.config import PRICE_TOLERANCE_MINOR_UNITS

# Au-delà d'un jour d'écart, la date de début demandée a été ignorée par le backend
MAX_START_DELAY_DAYS = 1


@dataclass(frozen=True)
class PricingExpectation:
    amount_in_minor_units: int
    days_remaining: int
    days_in_month: int
    monthly_price: int


@dataclass(frozen=True)
class VerificationResult:
    is_correct: bool
    start_date_correct: bool
    price_correct: bool
    price_difference: Optional[int]
    order_price_minor_units: Optional[int]
    expected_price_minor_units: Optional[int]
    days_until_start: int = 0


def round_half_up(value: Fraction) -> int:
    return math.floor(value + Fraction(1, 2))

def days_remaining_in_month(day: date) -> int:
    return calendar.monthrange(day.year, day.month)[1] - day.day + 1

def expected_partial_month_price(monthly_price: int, start_date: date) -> PricingExpectation:
    days_in_month = calendar.monthrange(start_date.year, start_date.month)[1]
    remaining = days_remaining_in_month(start_date)
    amount = round_half_up(Fraction(int(monthly_price) * remaining, days_in_month))
    return PricingExpectation(
        amount_in_minor_units=amount,
        days_remaining=remaining,
        days_in_month=days_in_month,
        monthly_price=int(monthly_price),
    )

def calculate_expected_partial_month_price(product_id: Any, start_date: date, catalog) -> Optional[PricingExpectation]:
    """
    Prix attendu pour un produit du catalogue pré-chargé.
    Retour None si le produit (ou son prix) est introuvable: "non vérifiable", pas "prix faux".
    """
    monthly = catalog.monthly_price(product_id) if catalog is not None else None
    if not monthly:
        return None
    return expected_partial_month_price(monthly, start_date)

def _reported_item(order, product_id: Any):
    items = list(getattr(order, "subscription_items", None) or [])
    if not items:
        return None
    wanted = str(product_id).rsplit("-", 1)[-1]
    for item in reversed(items):
        if item.product_id is not None and str(item.product_id) == wanted:
            return item
    return items[-1]

def verify_subscription_pricing(
    order,
    product_id: Any,
    expected: Optional[PricingExpectation],
    today: date,
    tolerance: int = PRICE_TOLERANCE_MINOR_UNITS,
) -> VerificationResult:
    """
    Compare l'état de la commande à l'attendu.
    - start_date_correct: début de la période initiale au plus 1 jour après aujourd'hui
    - price_correct: |prix commande - attendu| <= tolérance (vrai si pas d'attendu ou prix absent)
    """
    item = _reported_item(order, product_id)
    reported_start = None
    if item is not None:
        reported_start = item.initial_period_start or item.start_date
    days_until_start = (reported_start - today).days if reported_start else 0
    start_ok = days_until_start <= MAX_START_DELAY_DAYS

    order_price = item.price if item is not None and item.price is not None else getattr(order, "price", None)
    expected_amount = expected.amount_in_minor_units if expected else None
    if expected_amount is None or order_price is None:
        difference = None
        price_ok = True
    else:
        difference = order_price - expected_amount
        price_ok = abs(difference) <= tolerance

    return VerificationResult(
        is_correct=start_ok and price_ok,
        start_date_correct=start_ok,
        price_correct=price_ok,
        price_difference=difference,
        order_price_minor_units=order_price,
        expected_price_minor_units=expected_amount,
        days_until_start=days_until_start,
    )
