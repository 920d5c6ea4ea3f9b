"""
Catalogue pré-chargé: table de lookup utilisée par la vérification de prix.
- Les identifiants front ont la forme "membership-134" / "punch-12"; le backend attend 134 / 12.
- Les prix sont en unités mineures (øre): priceWithInterval.price.amount = 46900 => 469,00 DKK.
"""
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

MEMBERSHIP = "membership"
VALUE_CARD = "punch"


def parse_product_id(product_id: Any) -> Any:
    """
    "membership-134" -> 134, "134" -> 134, 134 -> 134.
    - Une chaîne non numérique sans tiret est renvoyée telle quelle
    - "membership-abc" => ValueError (format invalide)
    """
    if isinstance(product_id, bool) or product_id is None or product_id == "":
        raise ValueError(f"Missing or invalid product ID: {product_id!r}")
    if isinstance(product_id, int):
        return product_id
    text = str(product_id).strip()
    if "-" in text:
        tail = text.rsplit("-", 1)[-1]
        if not tail.isdigit():
            raise ValueError(f'Invalid product ID format: {text}. Expected "membership-<number>" or a numeric ID.')
        return int(tail)
    return int(text) if text.isdigit() else text


def is_value_card_plan(product_id: Any) -> bool:
    """"punch-12" sélectionné comme formule: carte à points, pas un abonnement."""
    return isinstance(product_id, str) and product_id.strip().startswith(f"{VALUE_CARD}-")


def _amount(value: Any) -> Optional[int]:
    if isinstance(value, dict):
        value = value.get("amount")
    if isinstance(value, bool) or value is None:
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return None


class CatalogProduct(BaseModel):
    id: Any
    kind: str = MEMBERSHIP
    name: str = ""
    price: Optional[int] = Field(default=None, description="Prix mensuel (abonnement) ou prix unitaire, en øre")
    currency: str = "DKK"
    interval_unit: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any], kind: str = MEMBERSHIP) -> "CatalogProduct":
        pwi = data.get("priceWithInterval") or {}
        price = _amount(pwi.get("price")) or _amount(data.get("price")) or _amount(data.get("amount"))
        raw_price = data.get("price") if isinstance(data.get("price"), dict) else {}
        currency = (pwi.get("price") or {}).get("currency") or raw_price.get("currency") or data.get("currency") or "DKK"
        return cls(
            id=data.get("id"),
            kind=kind,
            name=str(data.get("name") or ""),
            price=price,
            currency=currency,
            interval_unit=((pwi.get("interval") or {}).get("unit") or ("MONTH" if kind == MEMBERSHIP else None)),
        )


class Catalog:
    """
    Lookup par identifiant (accepte "membership-134", "punch-12", "134" ou 134).
    - Abonnements et cartes à points ont des espaces d'ids distincts côté backend
    - Sans préfixe explicite, les abonnements sont prioritaires
    """

    def __init__(self, products: Iterable[CatalogProduct] = ()):
        self._by_kind: Dict[str, Dict[Any, CatalogProduct]] = {MEMBERSHIP: {}, VALUE_CARD: {}}
        for p in products:
            self.add(p)

    def add(self, product: CatalogProduct) -> None:
        self._by_kind.setdefault(product.kind, {})[parse_product_id(product.id)] = product

    def get(self, product_id: Any, kind: Optional[str] = None) -> Optional[CatalogProduct]:
        if kind is None and isinstance(product_id, str) and product_id.startswith(f"{VALUE_CARD}-"):
            kind = VALUE_CARD
        try:
            key = parse_product_id(product_id)
        except ValueError:
            return None
        kinds = [kind] if kind else [MEMBERSHIP, VALUE_CARD]
        for k in kinds:
            product = self._by_kind.get(k, {}).get(key)
            if product is not None:
                return product
        return None

    def monthly_price(self, product_id: Any) -> Optional[int]:
        product = self.get(product_id, MEMBERSHIP)
        return product.price if product else None

    def products(self, kind: Optional[str] = None) -> List[CatalogProduct]:
        kinds = [kind] if kind else list(self._by_kind)
        return [p for k in kinds for p in self._by_kind.get(k, {}).values()]

    def __len__(self) -> int:
        return sum(len(v) for v in self._by_kind.values())
