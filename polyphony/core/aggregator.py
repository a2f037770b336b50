"""Concurrent fan-out search across provider adapters."""

import logging
import math
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Dict, Iterable, List, Optional

from polyphony.errors import AggregateSearchError, NetworkError, ProviderError, SearchCancelledError
from polyphony.models import ProviderId, SearchResults, SearchType
from polyphony.providers.base import ProviderAdapter

logger = logging.getLogger("polyphony.aggregator")


def _timed_search(
    started: Future,
    adapter: ProviderAdapter,
    query: str,
    search_type: SearchType,
    offset: int,
    limit: int,
) -> SearchResults:
    # The provider's timeout runs from here, not from submission
    started.set_result(time.monotonic())
    start = time.perf_counter()
    try:
        return adapter.search(query, search_type, offset, limit)
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        logger.debug(f"{adapter.display_name} search '{query}' took {elapsed_ms:.1f}ms")


class PendingSearch:
    """Handle on an in-flight aggregate search.

    Provider calls run on the aggregator's executor. Each call is timed from
    the moment a worker picks it up, so time spent queued behind other calls
    does not count against it. :meth:`result` buffers every provider's page
    and merges them in priority order, so arrival order never leaks into the
    merged results.
    """

    def __init__(
        self,
        query: str,
        search_type: SearchType,
        offset: int,
        limit: int,
        futures: Dict[ProviderId, Future],
        timeout: float,
        starts: Dict[ProviderId, Future],
    ):
        self.query = query
        self.search_type = search_type
        self.offset = offset
        self.limit = limit
        self.timeout = timeout
        self._futures = futures
        self._starts = starts
        self._cancel_signal: Future = Future()
        self._cancel_lock = threading.Lock()
        self._result_lock = threading.Lock()
        self._outcome: Optional[SearchResults] = None
        self._error: Optional[Exception] = None

    @property
    def providers(self) -> List[ProviderId]:
        return list(self._futures)

    @property
    def cancelled(self) -> bool:
        return self._cancel_signal.done()

    def cancel(self) -> None:
        """Cancel the search; late provider results are discarded."""
        with self._cancel_lock:
            if self._cancel_signal.done():
                return
            self._cancel_signal.set_result(None)
        for future in self._futures.values():
            future.cancel()
        logger.debug(f"Cancelled search '{self.query}'")

    def done(self) -> bool:
        return self.cancelled or all(f.done() for f in self._futures.values())

    def result(self) -> SearchResults:
        """Wait for every provider (or its timeout) and merge the pages.

        Raises:
            SearchCancelledError: The search was cancelled
            AggregateSearchError: Every queried provider failed
        """
        with self._result_lock:
            if self._outcome is None and self._error is None:
                self._collect()
            if self._error is not None:
                raise self._error
            return self._outcome

    def _collect(self) -> None:
        pending = dict(self._futures)
        while pending and not self._cancel_signal.done():
            now = time.monotonic()
            deadlines = []
            for provider in list(pending):
                started = self._starts[provider]
                if pending[provider].done():
                    del pending[provider]
                elif started.done():
                    deadline = started.result() + self.timeout
                    if deadline <= now:
                        del pending[provider]
                    else:
                        deadlines.append(deadline)
            if not pending:
                break

            # Queued calls have no deadline yet; wake up when one of them starts
            waitables = set(pending.values()) | {self._cancel_signal}
            waitables.update(self._starts[p] for p in pending if not self._starts[p].done())
            wait(
                waitables,
                timeout=min(deadlines) - now if deadlines else None,
                return_when=FIRST_COMPLETED,
            )

        if self._cancel_signal.done():
            self._error = SearchCancelledError(f"Search '{self.query}' was cancelled")
            return

        pages: Dict[ProviderId, SearchResults] = {}
        errors: Dict[ProviderId, Exception] = {}
        for provider, future in self._futures.items():
            if not future.done():
                future.cancel()
                errors[provider] = NetworkError(provider.value, f"timed out after {self.timeout}s")
                logger.warning(f"{provider.display_name} search timed out after {self.timeout}s")
                continue
            if future.cancelled():
                # Executor shut down before the call started
                errors[provider] = NetworkError(provider.value, "search was not started")
                continue

            error = future.exception()
            if error is None:
                pages[provider] = future.result()
            elif isinstance(error, ProviderError):
                errors[provider] = error
                logger.warning(f"{provider.display_name} search failed ({error.kind}): {error.message}")
            else:
                errors[provider] = error
                logger.warning(
                    f"{provider.display_name} search failed unexpectedly: {error}",
                    exc_info=error,
                )

        if not pages:
            self._error = AggregateSearchError({p.value: e for p, e in errors.items()})
            return

        self._outcome = self._merge(pages, errors)

    def _merge(
        self,
        pages: Dict[ProviderId, SearchResults],
        errors: Dict[ProviderId, Exception],
    ) -> SearchResults:
        merged = SearchResults(offset=self.offset, limit=self.limit)
        # self._futures preserves the priority order
        for provider in self._futures:
            page = pages.get(provider)
            if page is None:
                continue
            merged.tracks.extend(page.tracks)
            merged.albums.extend(page.albums)
            merged.playlists.extend(page.playlists)
            merged.total += page.total
            merged.providers.append(provider)

        merged.tracks = merged.tracks[: self.limit]
        merged.albums = merged.albums[: self.limit]
        merged.playlists = merged.playlists[: self.limit]
        merged.failed_providers = {p.value: str(e) for p, e in errors.items()}

        logger.debug(
            f"Search '{self.query}': {len(merged.tracks)} tracks, {len(merged.albums)} albums, "
            f"{len(merged.playlists)} playlists from {len(merged.providers)} providers "
            f"({len(errors)} failed), total {merged.total}"
        )
        return merged


class Aggregator:
    """Fans a search out to every enabled provider adapter in parallel."""

    def __init__(
        self,
        adapters: Dict[ProviderId, ProviderAdapter],
        priority: Optional[Iterable[Any]] = None,
        timeout: float = 5.0,
        max_workers: int = 4,
        default_limit: int = 20,
    ):
        """Initialize aggregator.

        Args:
            adapters: Provider adapters keyed by provider id
            priority: Merge order; providers not listed follow in registration order
            timeout: Per-provider timeout in seconds, counted from the start of each call
            max_workers: Size of the shared search thread pool
            default_limit: Page size used when a search gives none
        """
        self.adapters = dict(adapters)
        self.priority = [ProviderId.parse(p) for p in (priority or [])]
        self.timeout = timeout
        self.default_limit = default_limit
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="polyphony-search"
        )

    def ordered_providers(self, providers: Optional[Iterable[Any]] = None) -> List[ProviderId]:
        """Providers to query, in merge order."""
        registered = list(self.adapters)
        if providers is None:
            selected = registered
        else:
            selected = []
            for value in providers:
                provider = ProviderId.parse(value)
                if provider not in self.adapters:
                    logger.warning(f"No adapter registered for provider '{value}' - skipping")
                elif provider not in selected:
                    selected.append(provider)

        def rank(provider: ProviderId) -> tuple:
            if provider in self.priority:
                return (0, self.priority.index(provider))
            return (1, registered.index(provider))

        return sorted(selected, key=rank)

    def submit(
        self,
        query: str,
        search_type: SearchType = SearchType.ALL,
        offset: int = 0,
        limit: Optional[int] = None,
        providers: Optional[Iterable[Any]] = None,
    ) -> PendingSearch:
        """Start an aggregate search without waiting for it."""
        search_type = SearchType(search_type)
        limit = self.default_limit if limit is None else limit
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        if offset < 0:
            raise ValueError(f"offset must not be negative, got {offset}")

        selected = self.ordered_providers(providers)
        if not selected:
            raise ValueError("No providers selected for search")

        # The aggregator page is split evenly between providers
        count = len(selected)
        per_provider_limit = math.ceil(limit / count)
        per_provider_offset = offset // count

        logger.debug(
            f"Searching '{query}' ({search_type.value}) on "
            f"{', '.join(p.value for p in selected)}: {per_provider_limit} each at offset {per_provider_offset}"
        )
        starts = {provider: Future() for provider in selected}
        futures = {
            provider: self._executor.submit(
                _timed_search,
                starts[provider],
                self.adapters[provider],
                query,
                search_type,
                per_provider_offset,
                per_provider_limit,
            )
            for provider in selected
        }
        return PendingSearch(query, search_type, offset, limit, futures, self.timeout, starts)

    def search(
        self,
        query: str,
        search_type: SearchType = SearchType.ALL,
        offset: int = 0,
        limit: Optional[int] = None,
        providers: Optional[Iterable[Any]] = None,
    ) -> SearchResults:
        """Search every selected provider and merge the results."""
        return self.submit(query, search_type, offset, limit, providers).result()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)


class SearchSession:
    """Runs searches where a newer query supersedes the one in flight."""

    def __init__(self, aggregator: Aggregator):
        self.aggregator = aggregator
        self._current: Optional[PendingSearch] = None
        self._lock = threading.Lock()

    def search(self, query: str, **kwargs: Any) -> SearchResults:
        """Search, cancelling any previous search still running.

        The superseded caller receives :class:`SearchCancelledError`.
        """
        pending = self.aggregator.submit(query, **kwargs)
        with self._lock:
            previous, self._current = self._current, pending
        if previous is not None:
            previous.cancel()

        try:
            return pending.result()
        finally:
            with self._lock:
                if self._current is pending:
                    self._current = None

    def cancel(self) -> None:
        with self._lock:
            pending, self._current = self._current, None
        if pending is not None:
            pending.cancel()
