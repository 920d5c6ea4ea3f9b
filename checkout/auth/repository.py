from typing import Any

from checkout.infra.api_client import BackendClient

# --- Auth (/api/auth/*) ---

async def auth_login(api: BackendClient, email: str, password: str) -> Any:
    """Connexion: le backend attend `username` (l'email) et `password`."""
    return await api.post(
        "/api/auth/login",
        {"username": email, "password": password},
        authenticated=False,
        operation="Login",
    )

async def auth_validate(api: BackendClient) -> Any:
    return await api.get("/api/auth/validate", operation="Token validation")

async def auth_refresh(api: BackendClient, refresh_token: str) -> Any:
    return await api.post(
        "/api/auth/refresh",
        {"refreshToken": refresh_token},
        authenticated=False,
        operation="Token refresh",
    )

