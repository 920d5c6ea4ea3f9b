"""
Module 'auth' (feature-first): tokens d'accès du backend pour une session de checkout.
"""
from .models import AuthTokens, tokens_from_payload
from .service import TokenManager

__all__ = ["AuthTokens", "tokens_from_payload", "TokenManager"]
