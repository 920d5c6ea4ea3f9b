"""
Politique de réparation déclarative (boucle bornée de "défaire puis refaire").
- Une stratégie = nom + transformation du payload + délai avant nouvelle tentative
- Chaque tentative: prepare (ex: supprimer la ligne précédente), attente, execute, prédicat de succès
- StrategyAbandoned levée par prepare => stratégie sautée (ex: 403 à la suppression)
- Exception listée dans retry_on (prepare ou execute) => tentative en échec, stratégie suivante
- S'arrête à la première tentative réussie; au plus max_attempts tentatives
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Type

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]


class StrategyAbandoned(Exception):
    pass


@dataclass(frozen=True)
class RepairStrategy:
    name: str
    transform: Callable[[Payload], Payload]
    delay_seconds: float = 0.0


@dataclass(frozen=True)
class RetryPolicy:
    strategies: Sequence[RepairStrategy]
    success_predicate: Callable[[Any], bool]
    max_attempts: int = 4
    retry_on: Tuple[Type[BaseException], ...] = ()


@dataclass
class RepairOutcome:
    success: bool
    attempts: int = 0
    strategy: Optional[str] = None
    result: Any = None
    history: List[Dict[str, Any]] = field(default_factory=list)


async def run_policy(
    policy: RetryPolicy,
    base_payload: Payload,
    *,
    execute: Callable[[RepairStrategy, Payload], Awaitable[Any]],
    sleep: Callable[[float], Awaitable[None]],
    prepare: Optional[Callable[[RepairStrategy], Awaitable[None]]] = None,
) -> RepairOutcome:
    outcome = RepairOutcome(success=False)
    for strategy in list(policy.strategies)[: policy.max_attempts]:
        outcome.attempts += 1
        try:
            if prepare is not None:
                await prepare(strategy)
        except StrategyAbandoned as e:
            logger.warning("subscriptions.repair.run_policy abandoned strategy=%s reason=%s", strategy.name, e)
            outcome.history.append({"strategy": strategy.name, "status": "abandoned", "reason": str(e)})
            continue
        except policy.retry_on as e:
            logger.warning("subscriptions.repair.run_policy prepare error strategy=%s error=%s", strategy.name, e)
            outcome.history.append({"strategy": strategy.name, "status": "error", "reason": str(e)})
            continue
        if strategy.delay_seconds:
            await sleep(strategy.delay_seconds)
        try:
            result = await execute(strategy, strategy.transform(dict(base_payload)))
        except policy.retry_on as e:
            logger.warning("subscriptions.repair.run_policy execute error strategy=%s error=%s", strategy.name, e)
            outcome.history.append({"strategy": strategy.name, "status": "error", "reason": str(e)})
            continue
        outcome.result = result
        ok = bool(policy.success_predicate(result))
        outcome.history.append({"strategy": strategy.name, "status": "fixed" if ok else "failed"})
        logger.info("subscriptions.repair.run_policy attempt=%s strategy=%s ok=%s", outcome.attempts, strategy.name, ok)
        if ok:
            outcome.success = True
            outcome.strategy = strategy.name
            return outcome
    return outcome


# --- Variantes de payload pour l'attachement d'abonnement ---

def identical(payload: Payload) -> Payload:
    return payload

def datetime_start(payload: Payload) -> Payload:
    """startDate "2026-10-21" => "2026-10-21T00:00:00"."""
    start = payload.get("startDate")
    if isinstance(start, str) and len(start) == 10:
        payload["startDate"] = f"{start}T00:00:00"
    elif isinstance(start, date):
        payload["startDate"] = f"{start.isoformat()}T00:00:00"
    return payload

def minimal_fields(payload: Payload) -> Payload:
    return {k: payload[k] for k in ("subscriptionProduct", "businessUnit", "startDate") if k in payload}


def subscription_repair_strategies() -> List[RepairStrategy]:
    return [
        RepairStrategy("identical", identical, 1.0),
        RepairStrategy("date-format", datetime_start, 2.0),
        RepairStrategy("minimal", minimal_fields, 2.0),
        RepairStrategy("identical-long-wait", identical, 5.0),
    ]
