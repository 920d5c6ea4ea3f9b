"""
Cas d'usage 'auth': cycle de vie des tokens d'une session de checkout.
- Persistance dans le stockage de session (clé boulders_auth_tokens)
- Login / refresh / validation gouvernés par le RetryGovernor (429 => cooldown)
- Échec de refresh hors 429 => tokens effacés (retour à l'étape d'authentification)
"""
import logging
import time
from typing import Callable, Optional

from checkout.errors import AuthenticationError, BackendAPIError, RateLimitedError
from checkout.infra.session_storage import TOKENS_KEY
from checkout.utils.rate_limit import RetryGovernor
from .models import AuthTokens, tokens_from_payload
from . import repository

logger = logging.getLogger(__name__)

def _now_ms() -> int:
    return int(time.time() * 1000)


class TokenManager:
    def __init__(
        self,
        storage,
        session_id: str,
        api,
        governor: RetryGovernor,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.storage = storage
        self.session_id = session_id
        self.api = api
        self.governor = governor
        self._clock = clock or _now_ms
        self._tokens: Optional[AuthTokens] = None
        self._loaded = False

    async def load(self) -> Optional[AuthTokens]:
        if not self._loaded:
            self._tokens = AuthTokens.from_dict(await self.storage.get_json(self.session_id, TOKENS_KEY))
            self._loaded = True
        return self._tokens

    async def save(self, tokens: AuthTokens) -> None:
        self._tokens = tokens
        self._loaded = True
        await self.storage.set_json(self.session_id, TOKENS_KEY, tokens.to_dict())

    async def clear(self) -> None:
        self._tokens = None
        self._loaded = True
        await self.storage.delete(self.session_id, TOKENS_KEY)

    async def get_access_token(self) -> Optional[str]:
        tokens = await self.load()
        return tokens.access_token if tokens else None

    async def is_authenticated(self) -> bool:
        return bool(await self.get_access_token())

    async def is_token_expired(self) -> bool:
        tokens = await self.load()
        return bool(tokens and tokens.is_expired(self._clock()))

    async def login(self, email: str, password: str) -> AuthTokens:
        """
        Connexion:
        - Cooldown actif => RateLimitedError sans appel réseau
        - Réponse sans tokens => AuthenticationError
        """
        try:
            payload = await self.governor.governed("login", lambda: repository.auth_login(self.api, email, password))
        except BackendAPIError as e:
            logger.exception("auth.service.login failed sid=%s status=%s", self.session_id, e.status)
            raise AuthenticationError("Login failed. Please check your email and password.", status_code=401) from e
        tokens = tokens_from_payload(payload, now_ms=self._clock(), email=email)
        if tokens is None:
            logger.warning("auth.service.login no tokens in response sid=%s", self.session_id)
            raise AuthenticationError("Login failed: no session returned by the server.")
        await self.save(tokens)
        logger.info("auth.service.login ok sid=%s", self.session_id)
        return tokens

    async def refresh(self) -> Optional[AuthTokens]:
        tokens = await self.load()
        if not tokens or not tokens.refresh_token:
            return None
        try:
            payload = await self.governor.governed(
                "refresh", lambda: repository.auth_refresh(self.api, tokens.refresh_token)
            )
        except RateLimitedError:
            raise
        except BackendAPIError:
            logger.exception("auth.service.refresh failed sid=%s", self.session_id)
            await self.clear()
            raise
        fresh = tokens_from_payload(
            payload,
            now_ms=self._clock(),
            email=tokens.metadata.get("email"),
            fallback_refresh_token=tokens.refresh_token,
        )
        if fresh is not None:
            await self.save(fresh)
        return fresh

    async def ensure_valid_token(self) -> Optional[str]:
        if await self.is_token_expired():
            await self.refresh()
        return await self.get_access_token()

    async def validate_on_load(self) -> bool:
        """
        Revalide les tokens persistés (rechargement de page / retour de paiement).
        - Token expiré => refresh
        - 401 à la validation => tentative de refresh, sinon tokens effacés
        """
        tokens = await self.load()
        if not tokens:
            return False
        if tokens.is_expired(self._clock()):
            try:
                return await self.refresh() is not None
            except BackendAPIError:
                return False
        try:
            await self.governor.governed("validate", lambda: repository.auth_validate(self.api))
            return True
        except BackendAPIError as e:
            if e.status != 401:
                logger.exception("auth.service.validate_on_load failed sid=%s", self.session_id)
                return True
            try:
                return await self.refresh() is not None
            except BackendAPIError:
                return False
