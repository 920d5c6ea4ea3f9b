# checkout.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du service de checkout.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise l'URL de l'API backend (schéma, slash final) et la langue envoyée
- Expose les URLs de retour après paiement (override, fallback production)
- Paramètre le stockage de session (Redis ou mémoire) et le rate limiting client
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _env_int(name: str, default: int) -> int:
    raw = _clean_env(os.getenv(name, ""))
    try:
        return int(raw) if raw else default
    except ValueError:
        return default

def _env_float(name: str, default: float) -> float:
    raw = _clean_env(os.getenv(name, ""))
    try:
        return float(raw) if raw else default
    except ValueError:
        return default

# API backend (commandes, produits, paiement, auth)
# - API_BASE_URL peut être fourni sans schéma: on préfixe en https:// si nécessaire
API_BASE_URL = _clean_env(os.getenv("API_BASE_URL") or "https://api-join.boulders.dk")
if API_BASE_URL and not API_BASE_URL.startswith("http"):
    API_BASE_URL = "https://" + API_BASE_URL
if API_BASE_URL.endswith("/"):
    API_BASE_URL = API_BASE_URL.rstrip("/")

API_LANGUAGE = _clean_env(os.getenv("API_LANGUAGE") or "da-DK")
API_TIMEOUT_SECONDS = _env_float("API_TIMEOUT_SECONDS", 30.0)

# URLs de retour après paiement
# - PUBLIC_BASE_URL: override explicite de l'origine utilisée dans returnUrl
# - PRODUCTION_RETURN_BASE_URL: utilisé en local / HTTP sans origine exploitable
PUBLIC_BASE_URL = _clean_env(os.getenv("PUBLIC_BASE_URL") or "").rstrip("/")
PRODUCTION_RETURN_BASE_URL = _clean_env(os.getenv("PRODUCTION_RETURN_BASE_URL") or "https://join.boulders.dk").rstrip("/")
CHECKOUT_RETURN_PATH = _clean_env(os.getenv("CHECKOUT_RETURN_PATH") or "/")

# Stockage de session (snapshot commande, client, tokens)
SESSION_REDIS_URL = _clean_env(os.getenv("SESSION_REDIS_URL") or "")
SESSION_TTL_SECONDS = _env_int("SESSION_TTL_SECONDS", 24 * 60 * 60)

# Rate limiting côté client: délai par défaut si le serveur ne fournit pas retryAfter
DEFAULT_RATE_LIMIT_RETRY_MS = _env_int("DEFAULT_RATE_LIMIT_RETRY_MS", 15 * 60 * 1000)

# Vérification de prix: tolérance d'arrondi (unités mineures, øre)
PRICE_TOLERANCE_MINOR_UNITS = _env_int("PRICE_TOLERANCE_MINOR_UNITS", 100)

# CORS / hôtes
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]
