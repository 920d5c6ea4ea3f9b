"""
Module 'catalog' (feature-first): produits (abonnements, cartes à points) en lecture seule.
"""
from .models import Catalog, CatalogProduct, parse_product_id
from .service import load_catalog

__all__ = ["Catalog", "CatalogProduct", "parse_product_id", "load_catalog"]
