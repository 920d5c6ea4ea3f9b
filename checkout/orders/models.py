"""
Modèle de commande normalisé à partir des réponses de l'API backend.
- Montants en unités mineures (øre), qu'ils arrivent en {"amount": N} ou en nombre brut
- Dates ISO tronquées au jour ("2026-10-21T00:00:00" -> date(2026, 10, 21))
- `raw` conserve la réponse d'origine pour le diagnostic
"""
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def money_minor(value: Any) -> Optional[int]:
    if isinstance(value, dict):
        value = value.get("amount")
    if isinstance(value, bool) or value is None:
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return None

def parse_day(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None

def _first(data: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if data.get(k) is not None:
            return data[k]
    return None

def _product_ref(data: Dict[str, Any], *keys: str) -> Any:
    ref = _first(data, *keys)
    if isinstance(ref, dict):
        return ref.get("id")
    return ref


class SubscriptionItem(BaseModel):
    id: Optional[Any] = None
    product_id: Optional[Any] = None
    start_date: Optional[date] = None
    initial_period_start: Optional[date] = None
    initial_period_end: Optional[date] = None
    price: Optional[int] = None
    recurring_price: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "SubscriptionItem":
        period = data.get("initialPaymentPeriod") or {}
        return cls(
            id=data.get("id"),
            product_id=_product_ref(data, "subscriptionProduct", "product", "productId"),
            start_date=parse_day(data.get("startDate")),
            initial_period_start=parse_day(period.get("start")),
            initial_period_end=parse_day(period.get("end")),
            price=money_minor(_first(data, "price", "initialPrice", "amount")),
            recurring_price=money_minor(_first(data, "recurringPrice", "monthlyPrice")),
        )


class ValueCardItem(BaseModel):
    id: Optional[Any] = None
    product_id: Optional[Any] = None
    quantity: int = 1
    total_price: Optional[int] = None  # quantité déjà incluse

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ValueCardItem":
        return cls(
            id=data.get("id"),
            product_id=_product_ref(data, "valueCardProduct", "product", "productId"),
            quantity=int(data.get("quantity") or 1),
            total_price=money_minor(_first(data, "totalPrice", "price", "amount")),
        )


class ArticleItem(BaseModel):
    id: Optional[Any] = None
    product_id: Optional[Any] = None
    price: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ArticleItem":
        return cls(
            id=data.get("id"),
            product_id=_product_ref(data, "articleProduct", "product", "productId"),
            price=money_minor(_first(data, "price", "amount")),
        )


class Order(BaseModel):
    id: Optional[Any] = None
    number: Optional[str] = None
    business_unit: Optional[Any] = None
    customer_id: Optional[Any] = None
    subscription_items: List[SubscriptionItem] = Field(default_factory=list)
    value_card_items: List[ValueCardItem] = Field(default_factory=list)
    article_items: List[ArticleItem] = Field(default_factory=list)
    price: Optional[int] = None
    subtotal: Optional[int] = None
    coupon_code: Optional[str] = None
    coupon_discount: Optional[int] = None
    preliminary: bool = False
    left_to_pay: Optional[int] = None
    status_id: Optional[int] = None
    status_name: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_api(cls, payload: Any) -> "Order":
        data = payload.get("data") if isinstance(payload, dict) and isinstance(payload.get("data"), dict) else payload
        data = data if isinstance(data, dict) else {}
        status = data.get("orderStatus") if isinstance(data.get("orderStatus"), dict) else {}
        coupon_code = data.get("couponCode")
        coupons = data.get("coupons")
        if not coupon_code and isinstance(coupons, list) and coupons:
            first = coupons[0]
            coupon_code = first.get("code") if isinstance(first, dict) else str(first)
        left = data.get("leftToPay")
        customer = data.get("customer")
        number = data.get("number")
        return cls(
            id=_first(data, "id", "orderId"),
            number=str(number) if number is not None else None,
            business_unit=_product_ref(data, "businessUnit"),
            customer_id=customer.get("id") if isinstance(customer, dict) else customer,
            subscription_items=[SubscriptionItem.from_api(i) for i in data.get("subscriptionItems") or [] if isinstance(i, dict)],
            value_card_items=[ValueCardItem.from_api(i) for i in data.get("valueCardItems") or [] if isinstance(i, dict)],
            article_items=[ArticleItem.from_api(i) for i in data.get("articleItems") or [] if isinstance(i, dict)],
            price=money_minor(_first(data, "price", "total", "totalAmount")),
            subtotal=money_minor(_first(data, "subtotal", "priceBeforeDiscount", "subTotal")),
            coupon_code=coupon_code,
            coupon_discount=money_minor(_first(data, "couponDiscount", "discountAmount")),
            preliminary=bool(data.get("preliminary")),
            left_to_pay=money_minor(left),
            status_id=status.get("id"),
            status_name=status.get("name"),
            raw=data,
        )

    @property
    def subscription_item(self) -> Optional[SubscriptionItem]:
        return self.subscription_items[-1] if self.subscription_items else None

    def items_subtotal(self) -> int:
        total = 0
        for s in self.subscription_items:
            total += s.price or 0
        for v in self.value_card_items:
            total += v.total_price or 0
        for a in self.article_items:
            total += a.price or 0
        return total

    def pre_discount_subtotal(self) -> Optional[int]:
        if self.subtotal is not None:
            return self.subtotal
        items = self.items_subtotal()
        if items:
            return items
        return self.price
