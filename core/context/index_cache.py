"""
Version Index Cache

Per-version chunk sets with a BM25 keyword index, held in a bounded LRU
keyed by version id. The cache only saves rebuild work: an empty cache is
always valid.
"""

import re
import time
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from rank_bm25 import BM25Okapi

from config.constants import INDEX_CACHE_MAX_VERSIONS, INDEX_CACHE_TTL_SECONDS
from config.logging_config import get_logger
from core.models import Chunk

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall(text.lower())


@dataclass
class VersionIndex:
    """Chunks of one version plus the keyword index built over them"""
    version_id: str
    chunks: List[Chunk]
    bm25: Optional[BM25Okapi] = None
    token_sets: List[set] = field(default_factory=list)

    @classmethod
    def build(cls, version_id: str, chunks: List[Chunk]) -> 'VersionIndex':
        tokenized = [tokenize(c.text) for c in chunks]
        # BM25Okapi cannot be built over an empty corpus
        bm25 = BM25Okapi(tokenized) if tokenized else None
        return cls(
            version_id=version_id,
            chunks=list(chunks),
            bm25=bm25,
            token_sets=[set(tokens) for tokens in tokenized],
        )

    def search(self, query: str, top_k: int) -> List[Tuple[Chunk, float]]:
        """
        Chunks sharing at least one term with the query, best score first.
        Ties keep document order.
        """
        if self.bm25 is None or top_k <= 0:
            return []
        query_tokens = tokenize(query)
        if not query_tokens:
            return []

        scores = self.bm25.get_scores(query_tokens)
        query_set = set(query_tokens)
        matches = [
            (i, float(scores[i]))
            for i, tokens in enumerate(self.token_sets)
            if tokens & query_set
        ]
        matches.sort(key=lambda item: (-item[1], item[0]))
        return [(self.chunks[i], score) for i, score in matches[:top_k]]


@dataclass
class IndexCacheStats:
    """Cache statistics"""
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": f"{self.hit_rate:.1%}",
            "size": self.size,
            "max_size": self.max_size,
        }


@dataclass
class _Entry:
    value: VersionIndex
    expires_at: Optional[float] = None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return time.time() > self.expires_at


class VersionIndexCache:
    """
    Thread-safe LRU of VersionIndex objects keyed by version id.

    Features:
    - Least recently used entries evicted beyond max_versions
    - Optional TTL per entry
    - Hit/miss/eviction statistics
    """

    def __init__(
        self,
        max_versions: int = INDEX_CACHE_MAX_VERSIONS,
        ttl_seconds: Optional[int] = INDEX_CACHE_TTL_SECONDS,
    ):
        if max_versions < 1:
            raise ValueError("max_versions must be at least 1")
        self.max_versions = max_versions
        self.ttl_seconds = ttl_seconds
        self._cache: "OrderedDict[str, _Entry]" = OrderedDict()
        self._lock = threading.RLock()
        self._stats = IndexCacheStats(max_size=max_versions)

    def get(self, version_id: str) -> Optional[VersionIndex]:
        with self._lock:
            entry = self._cache.get(version_id)
            if entry is None:
                self._stats.misses += 1
                return None

            if entry.is_expired:
                del self._cache[version_id]
                self._stats.misses += 1
                return None

            # Move to end (most recently used)
            self._cache.move_to_end(version_id)
            self._stats.hits += 1
            return entry.value

    def put(self, index: VersionIndex) -> None:
        with self._lock:
            expires_at = time.time() + self.ttl_seconds if self.ttl_seconds else None
            if index.version_id in self._cache:
                self._cache.move_to_end(index.version_id)
            self._cache[index.version_id] = _Entry(index, expires_at)

            while len(self._cache) > self.max_versions:
                evicted, _ = self._cache.popitem(last=False)
                self._stats.evictions += 1
                logger.debug(f"Evicted index for version {evicted}")

    def get_or_build(self, version_id: str, loader) -> VersionIndex:
        """Return the cached index or build one from loader(version_id) -> List[Chunk]"""
        index = self.get(version_id)
        if index is None:
            index = VersionIndex.build(version_id, loader(version_id))
            self.put(index)
        return index

    def clear(self) -> int:
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            return count

    def __contains__(self, version_id: Any) -> bool:
        with self._lock:
            entry = self._cache.get(version_id)
            return entry is not None and not entry.is_expired

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def stats(self) -> IndexCacheStats:
        with self._lock:
            self._stats.size = len(self._cache)
            return self._stats
