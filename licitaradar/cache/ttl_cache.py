"""Process-local TTL caches.

Two independent caches sit in front of the AI provider and the storage
queries:

- ViabilityCache: control number -> bool verdict (24h)
- ResultSetCache: query signature -> list of records (1h)

Both are advisory: they are never the system of record and a miss only
costs a repeated call. Callers depend on the TTLCache protocol so a shared
key-value store can be swapped in without touching calling code.
"""

import hashlib
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Protocol, TypeVar

from licitaradar.core.logging import get_logger

logger = get_logger("cache")

K = TypeVar("K")
V = TypeVar("V")

Clock = Callable[[], float]


class TTLCache(Protocol[K, V]):
    """Capability interface: get / set / delete / expire / clear."""

    def get(self, key: K) -> Optional[V]: ...

    def set(self, key: K, value: V) -> None: ...

    def delete(self, key: K) -> None: ...

    def expire(self) -> int: ...

    def clear(self) -> None: ...


@dataclass
class CacheEntry(Generic[V]):
    """Cached value with its insertion time."""

    value: V
    stored_at: float


class InMemoryTTLCache(Generic[K, V]):
    """Dict-backed TTL cache with explicit per-entry timestamps."""

    def __init__(self, ttl_seconds: float, clock: Optional[Clock] = None, name: str = "cache"):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = float(ttl_seconds)
        self._clock = clock or time.monotonic
        self._entries: Dict[K, CacheEntry[V]] = {}
        self._name = name

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def _is_expired(self, entry: CacheEntry[V], now: float) -> bool:
        return (now - entry.stored_at) > self._ttl

    def get(self, key: K) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            logger.debug("[%s] Entrada expirada: %s", self._name, key)
            return None
        return entry.value

    def set(self, key: K, value: V) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def delete(self, key: K) -> None:
        self._entries.pop(key, None)

    def expire(self) -> int:
        """Drop every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        stale = [k for k, e in self._entries.items() if self._is_expired(e, now)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
        logger.info("[%s] Cache limpo", self._name)


class ViabilityCache:
    """Per-record viability verdicts.

    ``get`` returns ``None`` when the record was never classified (or the
    verdict expired), which is distinct from a stored ``False``.
    """

    def __init__(self, backend: TTLCache[str, bool]):
        self._backend = backend

    @classmethod
    def in_memory(cls, ttl_seconds: float = 24 * 60 * 60, clock: Optional[Clock] = None):
        return cls(InMemoryTTLCache(ttl_seconds, clock=clock, name="viabilidade"))

    def get(self, control_number: str) -> Optional[bool]:
        return self._backend.get(control_number)

    def set(self, control_number: str, is_viable: bool) -> None:
        self._backend.set(control_number, bool(is_viable))

    def expire(self) -> int:
        return self._backend.expire()

    def clear(self) -> None:
        self._backend.clear()


class ResultSetCache:
    """Full result sets keyed by a query signature."""

    def __init__(self, backend: TTLCache[str, List[Any]]):
        self._backend = backend

    @classmethod
    def in_memory(cls, ttl_seconds: float = 60 * 60, clock: Optional[Clock] = None):
        return cls(InMemoryTTLCache(ttl_seconds, clock=clock, name="resultados"))

    def get(self, signature: str) -> Optional[List[Any]]:
        result = self._backend.get(signature)
        if result is not None:
            logger.debug("Resultado encontrado no cache: %s", signature[:12])
        return result

    def set(self, signature: str, results: List[Any]) -> None:
        self._backend.set(signature, list(results))
        logger.debug("Resultado salvo no cache: %s (%d itens)", signature[:12], len(results))

    def expire(self) -> int:
        """Drop stale result sets; returns how many were removed."""
        return self._backend.expire()

    def clear(self) -> None:
        self._backend.clear()


def query_signature(**params: Any) -> str:
    """Stable signature for a set of query parameters.

    Key order and ``None`` values do not change the signature.
    """
    cleaned = {k: v for k, v in params.items() if v is not None}
    payload = json.dumps(cleaned, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
