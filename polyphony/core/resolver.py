"""Stream URL resolution with an expiry-aware, single-flight cache."""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from polyphony.errors import NotFoundError, ProviderError, StreamResolutionError
from polyphony.models import ProviderId, ResolvedStream, StreamQuality
from polyphony.providers.base import ProviderAdapter

logger = logging.getLogger("polyphony.resolver")

CacheKey = Tuple[str, ProviderId, StreamQuality]


@dataclass
class StreamUrlCacheEntry:
    """Resolved URL with the time it was obtained and its lifetime."""

    url: str
    obtained_at: float  # epoch seconds
    ttl: float  # seconds

    @property
    def expires_at(self) -> float:
        return self.obtained_at + self.ttl

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


@dataclass
class ResolverStats:
    hits: int = 0
    misses: int = 0
    upstream_calls: int = 0
    evictions: int = 0


class StreamUrlResolver:
    """Resolves play requests to provider stream URLs.

    Entries are keyed by ``(track_id, provider, quality)`` and never served at
    or past their expiry. Concurrent requests for one key share a single
    upstream call; requests for different keys never wait on each other.
    """

    def __init__(
        self,
        adapters: Dict[ProviderId, ProviderAdapter],
        default_ttl: float = 600,
        max_entries: int = 512,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize resolver.

        Args:
            adapters: Provider adapters keyed by provider id
            default_ttl: Lifetime in seconds when a provider declares none
            max_entries: Cache size; the oldest entries are evicted first
            clock: Epoch clock, injectable for tests
        """
        self.adapters = dict(adapters)
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[CacheKey, StreamUrlCacheEntry] = {}
        self._in_flight: Dict[CacheKey, Future] = {}
        self._stats = ResolverStats()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> ResolverStats:
        with self._lock:
            return replace(self._stats)

    @staticmethod
    def make_key(track_id: Any, provider: Any, quality: Any) -> CacheKey:
        return (str(track_id), ProviderId.parse(provider), StreamQuality(quality))

    def get_entry(self, track_id: Any, provider: Any, quality: Any) -> Optional[StreamUrlCacheEntry]:
        """Cached entry for a key, fresh or not."""
        with self._lock:
            return self._entries.get(self.make_key(track_id, provider, quality))

    def resolve(
        self,
        track_id: Any,
        provider: Any,
        quality: Any = StreamQuality.LOSSLESS,
    ) -> ResolvedStream:
        """Resolve a playable URL, from cache when still fresh.

        Raises:
            StreamResolutionError: The provider failed; ``provider_error``
                carries the originating :class:`ProviderError`
        """
        key = self.make_key(track_id, provider, quality)

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_fresh(self._clock()):
                self._stats.hits += 1
                logger.debug(f"Stream cache HIT for {key[1].value}:{key[0]} ({key[2].value})")
                return self._resolved(key, entry, is_cached=True)

            self._stats.misses += 1
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future

        if not owner:
            logger.debug(f"Waiting on in-flight resolution of {key[1].value}:{key[0]}")
            # Raises the owner's error for a failed resolution
            entry = future.result()
            return self._resolved(key, entry, is_cached=True)

        logger.debug(f"Stream cache MISS for {key[1].value}:{key[0]} ({key[2].value})")
        try:
            entry = self._fetch(key)
        except Exception as e:
            with self._lock:
                del self._in_flight[key]
            future.set_exception(e)
            raise

        with self._lock:
            self._entries[key] = entry
            self._evict()
            del self._in_flight[key]
        future.set_result(entry)
        return self._resolved(key, entry, is_cached=False)

    def _fetch(self, key: CacheKey) -> StreamUrlCacheEntry:
        track_id, provider, quality = key
        adapter = self.adapters.get(provider)
        if adapter is None:
            error = NotFoundError(provider.value, "no adapter registered for this provider")
            logger.error(f"Cannot resolve {provider.value}:{track_id}: {error.message}")
            raise StreamResolutionError(track_id, provider.value, error)

        obtained_at = self._clock()
        with self._lock:
            self._stats.upstream_calls += 1
        try:
            grant = adapter.resolve_stream_url(track_id, quality)
        except ProviderError as e:
            logger.error(f"Failed to resolve {provider.value}:{track_id} ({e.kind}): {e.message}")
            raise StreamResolutionError(track_id, provider.value, e) from e

        ttl = grant.ttl if grant.ttl is not None else self.default_ttl
        logger.debug(f"Resolved {provider.value}:{track_id} ({quality.value}), valid for {ttl}s")
        return StreamUrlCacheEntry(url=grant.url, obtained_at=obtained_at, ttl=ttl)

    def _evict(self) -> None:
        while len(self._entries) > self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k].obtained_at)
            del self._entries[oldest]
            self._stats.evictions += 1
            logger.debug(f"Evicted stream cache entry {oldest[1].value}:{oldest[0]}")

    @staticmethod
    def _resolved(key: CacheKey, entry: StreamUrlCacheEntry, is_cached: bool) -> ResolvedStream:
        track_id, provider, quality = key
        return ResolvedStream(
            stream_url=entry.url,
            is_cached=is_cached,
            provider=provider,
            track_id=track_id,
            quality=quality,
            expires_at=datetime.fromtimestamp(entry.expires_at, tz=timezone.utc),
        )

    def invalidate(self, track_id: Any, provider: Any, quality: Optional[Any] = None) -> int:
        """Drop cached URLs for a track; every quality unless one is given."""
        track_id = str(track_id)
        provider = ProviderId.parse(provider)
        with self._lock:
            keys = [
                k
                for k in self._entries
                if k[0] == track_id
                and k[1] == provider
                and (quality is None or k[2] == StreamQuality(quality))
            ]
            for k in keys:
                del self._entries[k]
        return len(keys)

    def purge_expired(self) -> int:
        """Remove entries past their expiry."""
        with self._lock:
            now = self._clock()
            expired = [k for k, entry in self._entries.items() if not entry.is_fresh(now)]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.debug(f"Purged {len(expired)} expired stream cache entries")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Stream URL cache cleared")
