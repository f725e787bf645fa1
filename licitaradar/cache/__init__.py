"""In-process TTL caches for viability verdicts and result sets."""

from licitaradar.cache.ttl_cache import (
    InMemoryTTLCache,
    ResultSetCache,
    TTLCache,
    ViabilityCache,
    query_signature,
)

__all__ = [
    "InMemoryTTLCache",
    "ResultSetCache",
    "TTLCache",
    "ViabilityCache",
    "query_signature",
]
