from typing import Any, Dict, Optional

# Marge avant expiration: on rafraîchit 5 minutes avant l'échéance
EXPIRY_BUFFER_MS = 5 * 60 * 1000

class AuthTokens:
    def __init__(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_at: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.expires_at = expires_at
        self.metadata = metadata or {}

    def is_expired(self, now_ms: int) -> bool:
        if not self.expires_at:
            return False
        return now_ms >= (self.expires_at - EXPIRY_BUFFER_MS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": self.expires_at,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["AuthTokens"]:
        if not data or not data.get("accessToken"):
            return None
        return cls(
            access_token=data["accessToken"],
            refresh_token=data.get("refreshToken"),
            expires_at=data.get("expiresAt"),
            metadata=data.get("metadata") or {},
        )

def _first(payload: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if payload.get(k) is not None:
            return payload[k]
    return None

def tokens_from_payload(
    payload: Any,
    *,
    now_ms: int,
    email: Optional[str] = None,
    fallback_refresh_token: Optional[str] = None,
) -> Optional[AuthTokens]:
    """
    Normalise une réponse login/refresh en AuthTokens.
    - Payload sous `data` ou au premier niveau, clés camelCase ou snake_case
    - expiresAt absent mais expiresIn (secondes) présent => expiresAt = now + expiresIn
    - Retourne None si access ou refresh token manquant
    """
    data = payload.get("data") if isinstance(payload, dict) and isinstance(payload.get("data"), dict) else payload
    if not isinstance(data, dict):
        return None
    access = _first(data, "accessToken", "access_token")
    refresh = _first(data, "refreshToken", "refresh_token") or fallback_refresh_token
    if not access or not refresh:
        return None
    expires_at = _first(data, "expiresAt", "expires_at")
    expires_in = _first(data, "expiresIn", "expires_in")
    if not expires_at and expires_in:
        try:
            expires_at = now_ms + int(float(expires_in) * 1000)
        except (TypeError, ValueError):
            expires_at = now_ms
    metadata = {
        "username": _first(data, "username", "userName"),
        "email": data.get("email") or email,
        "roles": data.get("roles") or [],
        "tokenType": _first(data, "tokenType", "token_type"),
        "expiresIn": expires_in,
    }
    return AuthTokens(access, refresh, int(expires_at) if expires_at else None, metadata)
