"""In-memory cache for LLM responses keyed by content hash."""

from __future__ import annotations

import base64
import hashlib
import logging
import threading
import zlib
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from repomaint.analyzers.llm_client import LLMResponse

logger = logging.getLogger(__name__)


def content_hash(text: str) -> str:
    """Fingerprint text for use as a cache key component.

    Args:
        text: Arbitrary text, may be empty.

    Returns:
        First 16 characters of the base64 SHA-256 digest. If SHA-256 is not
        available from hashlib, a CRC32 hex digest is returned instead.
    """
    data = text.encode("utf-8")
    try:
        digest = hashlib.new("sha256", data).digest()
    except ValueError:
        return format(zlib.crc32(data), "x")
    return base64.b64encode(digest).decode("ascii")[:16]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    """A cached response and its lifetime."""

    response: LLMResponse
    created_at: datetime
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at and bool(self.response.content)


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache occupancy and effectiveness."""

    total_entries: int
    total_repositories: int
    hits: int
    misses: int
    hit_rate: float  # 0.0 - 1.0
    ttl: timedelta
    max_per_repository: int
    max_total: int

    def __str__(self) -> str:
        return (
            f"CacheStats(entries={self.total_entries}, repos={self.total_repositories}, "
            f"hits={self.hits}, misses={self.misses}, hit_rate={self.hit_rate:.1%})"
        )


class ResponseCache:
    """TTL + LRU cache for LLM responses.

    Entries are addressed by ``owner/repo:hash``. Each repository keeps its
    own access order; the least recently used entry of a repository is
    evicted first when that repository exceeds its bound. When the whole
    cache exceeds its bound, the repositories holding the most entries give
    up their oldest entries first.

    All public methods are safe to call from multiple threads.
    """

    def __init__(
        self,
        ttl: timedelta = timedelta(hours=24),
        max_entries_per_repository: int = 50,
        max_total_entries: int = 1000,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl: How long an entry stays valid after it is stored.
            max_entries_per_repository: LRU bound for each repository.
            max_total_entries: Bound across all repositories.
            clock: Returns the current time; injectable for tests.
        """
        if max_entries_per_repository < 1 or max_total_entries < 1:
            raise ValueError("cache limits must be positive")
        self.ttl = ttl
        self.max_entries_per_repository = max_entries_per_repository
        self.max_total_entries = max_total_entries
        self._clock = clock

        self._lock = threading.RLock()
        self._entries: dict[str, CacheEntry] = {}
        # repo id -> keys, least recently used first
        self._lru: dict[str, OrderedDict[str, None]] = {}
        self._hits = 0
        self._misses = 0

    @classmethod
    def create_default(cls) -> ResponseCache:
        """24 hour TTL, 50 entries per repository, 1000 in total."""
        return cls()

    @staticmethod
    def _repo_id(owner: str, repo: str) -> str:
        return f"{owner}/{repo}"

    @classmethod
    def _key(cls, owner: str, repo: str, digest: str) -> str:
        return f"{cls._repo_id(owner, repo)}:{digest}"

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, owner: str, repo: str, digest: str) -> LLMResponse | None:
        """Look up a cached response.

        A miss also sweeps every expired entry out of the cache.

        Returns:
            The stored response, or None if absent or expired.
        """
        key = self._key(owner, repo, digest)
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None or not entry.is_valid(now):
                self._misses += 1
                self._purge_expired(now)
                logger.debug(f"Cache miss for {key}")
                return None

            self._touch(self._repo_id(owner, repo), key)
            self._hits += 1
            logger.debug(f"Cache hit for {key} (age: {now - entry.created_at})")
            return entry.response

    def put(self, owner: str, repo: str, digest: str, response: LLMResponse | None) -> None:
        """Store a response, evicting old entries as needed.

        Responses without content are ignored.
        """
        if response is None or not response.content:
            logger.debug(f"Not caching empty response for {owner}/{repo}")
            return

        repo_id = self._repo_id(owner, repo)
        key = self._key(owner, repo, digest)
        with self._lock:
            now = self._clock()
            self._entries[key] = CacheEntry(
                response=response,
                created_at=now,
                expires_at=now + self.ttl,
            )
            self._touch(repo_id, key)
            self._enforce_repository_limit(repo_id)
            self._enforce_total_limit()
            logger.debug(f"Cached {len(response.content)} chars for {key}")

    def contains(self, owner: str, repo: str, digest: str) -> bool:
        """Check for a valid entry without touching stats or LRU order."""
        with self._lock:
            entry = self._entries.get(self._key(owner, repo, digest))
            return entry is not None and entry.is_valid(self._clock())

    def clear_repository(self, owner: str, repo: str) -> None:
        repo_id = self._repo_id(owner, repo)
        with self._lock:
            keys = self._lru.pop(repo_id, None) or {}
            for key in keys:
                self._entries.pop(key, None)
            logger.debug(f"Cleared {len(keys)} cache entries for {repo_id}")

    def clear_all(self) -> None:
        """Drop every entry and reset hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self._lru.clear()
            self._hits = 0
            self._misses = 0

    def reset_stats(self) -> None:
        with self._lock:
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = round(self._hits / total, 4) if total else 0.0
            return CacheStats(
                total_entries=len(self._entries),
                total_repositories=len(self._lru),
                hits=self._hits,
                misses=self._misses,
                hit_rate=hit_rate,
                ttl=self.ttl,
                max_per_repository=self.max_entries_per_repository,
                max_total=self.max_total_entries,
            )

    def maintenance(self) -> None:
        """Sweep expired entries and enforce both size limits."""
        with self._lock:
            self._purge_expired(self._clock())
            for repo_id in list(self._lru):
                self._enforce_repository_limit(repo_id)
            self._enforce_total_limit()

    # --- internals, caller holds the lock ---

    def _touch(self, repo_id: str, key: str) -> None:
        queue = self._lru.setdefault(repo_id, OrderedDict())
        queue[key] = None
        queue.move_to_end(key)

    def _evict_oldest(self, repo_id: str) -> None:
        queue = self._lru[repo_id]
        key, _ = queue.popitem(last=False)
        self._entries.pop(key, None)
        if not queue:
            del self._lru[repo_id]

    def _enforce_repository_limit(self, repo_id: str) -> None:
        evicted = 0
        while repo_id in self._lru and len(self._lru[repo_id]) > self.max_entries_per_repository:
            self._evict_oldest(repo_id)
            evicted += 1
        if evicted:
            logger.debug(f"LRU eviction for {repo_id}: removed {evicted} entries")

    def _enforce_total_limit(self) -> None:
        excess = len(self._entries) - self.max_total_entries
        if excess <= 0:
            return

        largest_first = sorted(self._lru, key=lambda r: len(self._lru[r]), reverse=True)
        removed = 0
        for repo_id in largest_first:
            while removed < excess and repo_id in self._lru:
                self._evict_oldest(repo_id)
                removed += 1
            if removed >= excess:
                break
        logger.debug(f"Global eviction removed {removed} entries (limit {self.max_total_entries})")

    def _purge_expired(self, now: datetime) -> None:
        expired = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
        if not expired:
            return
        for key in expired:
            del self._entries[key]
            repo_id = key.split(":", 1)[0]
            queue = self._lru.get(repo_id)
            if queue is not None:
                queue.pop(key, None)
                if not queue:
                    del self._lru[repo_id]
        logger.debug(f"Purged {len(expired)} expired cache entries")
