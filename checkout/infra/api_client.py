"""
Client HTTP de l'API backend (httpx.AsyncClient partagé).
- Un seul AsyncClient par process (pool de connexions), créé à la demande et fermé au shutdown.
- BackendClient: vue "par session" qui ajoute Accept-Language et le Bearer de la session.
- Toute réponse non-2xx lève BackendAPIError (status, texte, payload JSON si lisible).
"""
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from checkout.config import API_BASE_URL, API_LANGUAGE, API_TIMEOUT_SECONDS
from checkout.errors import BackendAPIError

logger = logging.getLogger(__name__)

TokenGetter = Callable[[], Awaitable[Optional[str]]]

_http_client: Optional[httpx.AsyncClient] = None

def get_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(base_url=API_BASE_URL, timeout=API_TIMEOUT_SECONDS)
    return _http_client

def set_http_client(client: Optional[httpx.AsyncClient]) -> None:
    """Remplace le client global (tests: httpx.MockTransport)."""
    global _http_client
    _http_client = client

async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None

def unwrap_data(payload: Any) -> Any:
    """Retire l'enveloppe {"success": ..., "data": {...}} si présente."""
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload

def _parse_body(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, ValueError):
        return None


class BackendClient:
    """
    Accès à l'API backend pour une session de checkout.
    - http: AsyncClient partagé (défaut: get_http_client())
    - token_getter: coroutine renvoyant le token d'accès courant (ou None)
    """

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        *,
        token_getter: Optional[TokenGetter] = None,
        language: str = API_LANGUAGE,
    ):
        self._http = http
        self._token_getter = token_getter
        self.language = language

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http or get_http_client()

    async def _headers(self, authenticated: bool) -> Dict[str, str]:
        headers = {
            "Accept-Language": self.language,
            "Content-Type": "application/json",
        }
        if authenticated and self._token_getter is not None:
            token = await self._token_getter()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        authenticated: bool = True,
        operation: str = "request",
    ) -> Any:
        headers = await self._headers(authenticated)
        response = await self.http.request(method, path, json=json_body, params=params, headers=headers)
        if response.status_code >= 400:
            body = response.text
            logger.warning("infra.api_client.request failed op=%s method=%s path=%s status=%s", operation, method, path, response.status_code)
            raise BackendAPIError(response.status_code, body, _parse_body(response), operation=operation)
        return _parse_body(response)

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, json_body: Any = None, **kwargs) -> Any:
        return await self.request("POST", path, json_body=json_body, **kwargs)

    async def put(self, path: str, json_body: Any = None, **kwargs) -> Any:
        return await self.request("PUT", path, json_body=json_body, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)
