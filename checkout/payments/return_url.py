"""
URL de retour après paiement.
- Base: override configuré (PUBLIC_BASE_URL), sinon origine HTTPS de la requête,
  sinon fallback production en local (localhost / 127.0.0.1) ou sans origine
- Une origine http:// distante est forcée en https://
- Puis chemin + ?payment=return&orderId=<id>
"""
import re
from typing import Any, Optional
from urllib.parse import urlencode, urlparse

from checkout import config

LOCAL_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}

def resolve_return_base(origin: Optional[str] = None, override: Optional[str] = None) -> str:
    override = config.PUBLIC_BASE_URL if override is None else override
    if override:
        return override.rstrip("/")
    if not origin:
        return config.PRODUCTION_RETURN_BASE_URL
    parsed = urlparse(origin)
    if not parsed.hostname or parsed.hostname in LOCAL_HOSTS:
        return config.PRODUCTION_RETURN_BASE_URL
    return re.sub(r"^http://", "https://", f"{parsed.scheme}://{parsed.netloc}")

def build_return_url(order_id: Any, origin: Optional[str] = None, path: Optional[str] = None, override: Optional[str] = None) -> str:
    base = resolve_return_base(origin, override)
    path = path or config.CHECKOUT_RETURN_PATH or "/"
    if not path.startswith("/"):
        path = "/" + path
    return f"{base}{path}?{urlencode({'payment': 'return', 'orderId': order_id})}"

def strip_email_tag(email: Optional[str]) -> Optional[str]:
    """"jane+gym@example.com" => "jane@example.com" (reçu envoyé à l'adresse réelle)."""
    if not email or "@" not in email:
        return email
    local, _, domain = email.strip().partition("@")
    return f"{local.split('+', 1)[0]}@{domain}"
