"""In-memory cache for formula calculation results."""

import hashlib
import math
from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

import orjson

from dosecalc.core.config import settings
from dosecalc.core.exceptions import ConfigurationError
from dosecalc.core.logging import get_logger

logger = get_logger(__name__)


def _tag_non_finite(value: Any) -> Any:
    """Replace NaN and infinities with tagged objects; orjson writes them all as null."""
    if isinstance(value, float) and not math.isfinite(value):
        return {"__float__": "nan" if math.isnan(value) else ("inf" if value > 0 else "-inf")}
    if isinstance(value, Mapping):
        return {key: _tag_non_finite(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_tag_non_finite(item) for item in value]
    return value


@dataclass
class CacheStats:
    """Hit/miss counters of a cache instance."""

    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class CalculationCache:
    """Bounded cache of calculation results keyed by fingerprint.

    Each formula engine owns one instance; there is no process-wide cache.
    Entries never expire. A new formula text or any change in the context
    yields a new fingerprint, so stale entries are simply never looked up
    again. When full, the oldest entry is evicted first.

    Not safe for concurrent mutation from several threads.
    """

    KEY_PREFIX = "calc"

    def __init__(self, max_size: Optional[int] = None) -> None:
        """Initialize an empty cache.

        Args:
            max_size: Maximum number of entries (default from settings)

        Raises:
            ConfigurationError: If max_size is not positive

        """
        max_size = settings.formula_cache_max_size if max_size is None else max_size
        if max_size <= 0:
            raise ConfigurationError("formula_cache_max_size", "must be a positive integer")

        self.max_size = max_size
        self._entries: OrderedDict[str, Any] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def generate_cache_key(
        self,
        expression: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> Optional[str]:
        """Generate the fingerprint of an (expression, context) pair.

        Key order inside the context does not matter; any change in a value
        does, including between NaN and the infinities. Returns None for contexts that cannot be serialized, which
        callers treat as uncacheable.

        Args:
            expression: Formula text
            context: Effective variable context

        Returns:
            Cache key string, or None

        """
        try:
            payload = orjson.dumps(
                [expression, _tag_non_finite(context or {})],
                option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
            )
        except (TypeError, RecursionError) as e:
            # orjson.JSONEncodeError is a TypeError; self-referencing contexts recurse
            logger.warning(f"Context not serializable, skipping cache: {e}")
            return None

        return f"{self.KEY_PREFIX}:{hashlib.sha256(payload).hexdigest()}"

    def get(self, key: str) -> Optional[Any]:
        """Get a cached result.

        Args:
            key: Cache key

        Returns:
            Cached result or None if not cached

        """
        result = self._entries.get(key)
        if result is None:
            self._misses += 1
            logger.debug(f"Cache miss: {key}")
            return None

        self._hits += 1
        logger.debug(f"Cache hit: {key}")
        return result

    def set(self, key: str, result: Any) -> None:
        """Store a result, evicting the oldest entry when full.

        Args:
            key: Cache key
            result: Result to cache

        """
        if key in self._entries:
            self._entries[key] = result
            return

        while len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Cache evicted: {evicted}")

        self._entries[key] = result

    def clear(self) -> None:
        """Remove all entries; statistics are kept."""
        count = len(self._entries)
        self._entries.clear()
        logger.debug(f"Cache cleared: {count} entries")

    def stats(self) -> CacheStats:
        """Return current size and hit/miss counters."""
        return CacheStats(
            size=len(self._entries),
            max_size=self.max_size,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )

    def __len__(self) -> int:
        return len(self._entries)
