"""
Module 'orders' (feature-first): création idempotente de la commande, lignes, snapshot de session.
"""
from .models import Order, SubscriptionItem, ValueCardItem, ArticleItem, money_minor
from .service import (
    ensure_order_created,
    refresh_order,
    add_value_cards,
    add_articles,
    persist_order_snapshot,
    restore_order_snapshot,
    clear_stored_order_data,
    on_page_load,
)

__all__ = [
    # models
    "Order",
    "SubscriptionItem",
    "ValueCardItem",
    "ArticleItem",
    "money_minor",
    # services
    "ensure_order_created",
    "refresh_order",
    "add_value_cards",
    "add_articles",
    "persist_order_snapshot",
    "restore_order_snapshot",
    "clear_stored_order_data",
    "on_page_load",
]
