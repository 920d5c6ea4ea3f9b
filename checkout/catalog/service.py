import logging
from typing import Any, Optional

from checkout.errors import BackendAPIError
from checkout.infra.api_client import BackendClient
from .models import MEMBERSHIP, VALUE_CARD, Catalog, CatalogProduct
from . import repository

logger = logging.getLogger(__name__)

async def load_catalog(api: BackendClient, business_unit: Optional[Any] = None) -> Catalog:
    """
    Charge abonnements + cartes à points pour une salle.
    - Une liste en échec est journalisée et ignorée: le catalogue partiel reste utilisable,
      la vérification de prix renverra simplement "non vérifiable" pour les produits absents.
    """
    catalog = Catalog()
    try:
        for item in await repository.fetch_subscriptions(api, business_unit):
            if item.get("id") is not None:
                catalog.add(CatalogProduct.from_api(item, MEMBERSHIP))
    except BackendAPIError:
        logger.exception("catalog.service.load_catalog subscriptions failed business_unit=%s", business_unit)
    try:
        for item in await repository.fetch_value_cards(api):
            if item.get("id") is not None:
                catalog.add(CatalogProduct.from_api(item, VALUE_CARD))
    except BackendAPIError:
        logger.exception("catalog.service.load_catalog value cards failed")
    return catalog
