"""
Single-flight: les appels concurrents pour une même clé partagent une seule exécution.
- Le premier appelant démarre la coroutine et enregistre la tâche en cours.
- Les suivants reçoivent la même tâche tant qu'elle n'est pas terminée.
- La clé est libérée à la fin (succès ou échec); le résultat est mis en cache par l'appelant.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    def __init__(self):
        self._lock = asyncio.Lock()
        self._inflight: Dict[Hashable, "asyncio.Future"] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    def _forget(self, key: Hashable, task: "asyncio.Future") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.ensure_future(fn())
                self._inflight[key] = task
                task.add_done_callback(lambda t, k=key: self._forget(k, t))
            else:
                logger.info("utils.single_flight.do joining in-flight key=%s", key)
        # shield: l'annulation d'un appelant n'annule pas l'opération partagée
        return await asyncio.shield(task)
