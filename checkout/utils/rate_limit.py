"""
Gouverneur de rate limiting côté client.
- Une fenêtre de "cooldown" par classe d'opération (login, validate, refresh, coupon).
- Sur une réponse 429, extrait le délai serveur ("retryAfter": N secondes) ou applique le défaut.
- Avant une requête gouvernée, court-circuite avec un message d'attente au lieu d'appeler le réseau.
"""
import re
import time
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from checkout.config import DEFAULT_RATE_LIMIT_RETRY_MS
from checkout.errors import BackendAPIError, RateLimitedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRY_AFTER_RE = re.compile(r'"retryAfter"\s*:\s*(\d+)', re.IGNORECASE)

def _now_ms() -> int:
    return int(time.time() * 1000)

def _error_text(error: Any) -> str:
    if isinstance(error, BackendAPIError):
        return f"{error.message} {error.body}"
    return str(error or "")

def is_rate_limit_error(error: Any) -> bool:
    if error is None:
        return False
    if getattr(error, "status", None) == 429:
        return True
    message = _error_text(error)
    return "429" in message or "too many requests" in message.lower()

def get_retry_delay_ms(error: Any, default_ms: int = DEFAULT_RATE_LIMIT_RETRY_MS) -> int:
    """
    Délai de retry en millisecondes:
    - `"retryAfter": N` (secondes) dans le message/corps => max(N*1000, 1000)
    - sinon default_ms (15 minutes par défaut)
    """
    payload = getattr(error, "payload", None)
    if isinstance(payload, dict):
        raw = payload.get("retryAfter")
        if raw is None and isinstance(payload.get("error"), dict):
            raw = payload["error"].get("retryAfter")
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return max(int(raw) * 1000, 1000)
    match = _RETRY_AFTER_RE.search(_error_text(error))
    if match:
        return max(int(match.group(1)) * 1000, 1000)
    return default_ms


class RetryGovernor:
    """
    État de retry (cooldown) par classe d'opération, propre à une session.
    - clock: fonction renvoyant l'heure courante en ms (injectable pour les tests)
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None, default_ms: int = DEFAULT_RATE_LIMIT_RETRY_MS):
        self._clock = clock or _now_ms
        self._default_ms = default_ms
        self._cooldown_until: Dict[str, int] = {}

    def remaining_ms(self, operation: str) -> int:
        until = self._cooldown_until.get(operation)
        if until is None:
            return 0
        return max(until - self._clock(), 0)

    def check(self, operation: str) -> None:
        remaining = self.remaining_ms(operation)
        if remaining > 0:
            logger.info("utils.rate_limit.check blocked op=%s remaining_ms=%s", operation, remaining)
            raise RateLimitedError(operation, remaining)

    def record_rate_limit(self, operation: str, error: Any) -> int:
        delay = get_retry_delay_ms(error, self._default_ms)
        self._cooldown_until[operation] = self._clock() + delay
        logger.warning("utils.rate_limit.record op=%s retry_after_ms=%s", operation, delay)
        return delay

    def reset(self, operation: str) -> None:
        self._cooldown_until.pop(operation, None)

    def snapshot(self) -> Dict[str, int]:
        return dict(self._cooldown_until)

    async def governed(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Exécute fn() sous contrôle du cooldown.
        - Cooldown actif => RateLimitedError sans appel réseau
        - 429 => enregistre le cooldown puis RateLimitedError
        - Succès => remet le cooldown à zéro
        """
        self.check(operation)
        try:
            result = await fn()
        except BackendAPIError as e:
            if is_rate_limit_error(e):
                delay = self.record_rate_limit(operation, e)
                raise RateLimitedError(operation, delay) from e
            raise
        self.reset(operation)
        return result
