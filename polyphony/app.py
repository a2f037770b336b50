"""Main Polyphony application class."""

import logging
import random
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel

from polyphony.config import PolyphonyConfig, load_config
from polyphony.core.aggregator import Aggregator, SearchSession
from polyphony.core.queue import LoopMode, NowPlaying, PlaybackQueue, PlayMode
from polyphony.core.resolver import StreamUrlResolver
from polyphony.core.store import QueueStore
from polyphony.errors import EmptyQueueError, NotFoundError
from polyphony.models import (
    AudioOutputInfo,
    PlaylistSearchResult,
    ProviderId,
    ResolvedStream,
    SearchResults,
    SearchType,
    StreamQuality,
    Track,
)
from polyphony.providers import CredentialsSource, ProviderAdapter, create_adapters

logger = logging.getLogger("polyphony")


class PlaybackState(BaseModel):
    """Current track together with the URL to hand to audio playback."""

    now_playing: NowPlaying
    stream: ResolvedStream


class Polyphony:
    """Main Polyphony application wiring providers, search, streams and the queue."""

    def __init__(
        self,
        config_path: Optional[str] = None,
        config: Optional[PolyphonyConfig] = None,
        adapters: Optional[Dict[ProviderId, ProviderAdapter]] = None,
        credentials: Optional[CredentialsSource] = None,
        store: Optional[QueueStore] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize Polyphony.

        Args:
            config_path: Path to polyphony.yaml; defaults are used when omitted
            config: Ready configuration, takes precedence over config_path
            adapters: Provider adapters; built from config when omitted
            credentials: Auth collaborator; seeded from config when omitted
            store: Queue snapshot store; a SQLite store at queue.db_path when omitted
            rng: Random source for shuffling
            clock: Epoch clock for stream URL expiry
        """
        self.config = config or load_config(config_path)

        if adapters is None:
            adapters = create_adapters(self.config, credentials)
        self.adapters = dict(adapters)

        search = self.config.search
        self.aggregator = Aggregator(
            self.adapters,
            priority=search.priority,
            timeout=search.provider_timeout,
            max_workers=search.max_workers,
            default_limit=search.default_limit,
        )
        self.searches = SearchSession(self.aggregator)

        self.resolver = StreamUrlResolver(
            self.adapters,
            default_ttl=self.config.stream_cache.default_ttl,
            max_entries=self.config.stream_cache.max_entries,
            clock=clock,
        )

        self._rng = rng
        self.queue = PlaybackQueue(rng=rng, repeat_count=self.config.queue.repeat_count)
        self.store = store if store is not None else QueueStore(self.config.queue.db_path)
        self.stream_quality = StreamQuality(self.config.queue.stream_quality)
        self.output_info: Optional[AudioOutputInfo] = None

        logger.info(
            f"Polyphony ready with {len(self.adapters)} providers: "
            f"{', '.join(p.value for p in self.aggregator.ordered_providers()) or 'none'}"
        )

    def adapter(self, provider: Any) -> ProviderAdapter:
        """Adapter for a provider id.

        Raises:
            NotFoundError: The provider is not configured
        """
        provider_id = ProviderId.parse(provider)
        adapter = self.adapters.get(provider_id)
        if adapter is None:
            raise NotFoundError(provider_id.value, f"provider '{provider}' is not configured")
        return adapter

    def providers_status(self) -> List[Dict[str, Any]]:
        """Configured providers in search priority order."""
        return [
            {
                "provider": provider.value,
                "name": self.adapters[provider].display_name,
                "authenticated": self.adapters[provider].is_authenticated(),
                "full_tracks": self.adapters[provider].supports_full_tracks,
                "requires_premium": self.adapters[provider].requires_premium,
            }
            for provider in self.aggregator.ordered_providers()
        ]

    # Search

    def search(
        self,
        query: str,
        search_type: SearchType = SearchType.ALL,
        offset: int = 0,
        limit: Optional[int] = None,
        providers: Optional[Iterable[Any]] = None,
    ) -> SearchResults:
        """Aggregate search; a newer call cancels one still running."""
        return self.searches.search(
            query,
            search_type=search_type,
            offset=offset,
            limit=limit,
            providers=providers,
        )

    def search_playlists(
        self,
        query: str,
        offset: int = 0,
        limit: Optional[int] = None,
        providers: Optional[Iterable[Any]] = None,
    ) -> List[PlaylistSearchResult]:
        return self.search(query, SearchType.PLAYLIST, offset, limit, providers).playlists

    # Playback

    def play_album(
        self,
        provider: Any,
        album_id: str,
        play_mode: PlayMode = PlayMode.NORMAL,
        loop_mode: Optional[LoopMode] = None,
        repeat_count: Optional[int] = None,
    ) -> PlaybackState:
        """Load an album into the queue and resolve its first track."""
        album = self.adapter(provider).get_album_tracks(album_id)
        logger.info(f"Playing album '{album.title}' by {album.artist} ({len(album.tracks)} tracks)")
        self.queue.load(
            album.tracks,
            play_mode=play_mode,
            loop_mode=loop_mode or self.config.queue.default_loop_mode,
            repeat_count=repeat_count,
            playlist_id=album.id,
            playlist_name=album.title,
            playlist_source=ProviderId.parse(provider).value,
        )
        return self._play()

    def play_playlist(
        self,
        provider: Any,
        playlist_id: str,
        play_mode: PlayMode = PlayMode.NORMAL,
        loop_mode: Optional[LoopMode] = None,
        repeat_count: Optional[int] = None,
        name: Optional[str] = None,
    ) -> PlaybackState:
        """Load a provider playlist into the queue and resolve its first track."""
        tracks = self.adapter(provider).get_playlist_tracks(playlist_id)
        logger.info(f"Playing playlist {name or playlist_id} ({len(tracks)} tracks)")
        self.queue.load(
            tracks,
            play_mode=play_mode,
            loop_mode=loop_mode or self.config.queue.default_loop_mode,
            repeat_count=repeat_count,
            playlist_id=playlist_id,
            playlist_name=name,
            playlist_source=ProviderId.parse(provider).value,
        )
        return self._play()

    def play_tracks(
        self,
        tracks: Iterable[Union[Track, str]],
        play_mode: PlayMode = PlayMode.NORMAL,
        loop_mode: Optional[LoopMode] = None,
        repeat_count: Optional[int] = None,
        name: Optional[str] = None,
    ) -> PlaybackState:
        """Load selected tracks (e.g. from search results) and start playing."""
        self.queue.load(
            tracks,
            play_mode=play_mode,
            loop_mode=loop_mode or self.config.queue.default_loop_mode,
            repeat_count=repeat_count,
            playlist_name=name,
        )
        return self._play()

    def current(self) -> Optional[PlaybackState]:
        if self.queue.is_empty:
            return None
        return self._play()

    def next(self) -> Optional[PlaybackState]:
        """Advance the queue; None once playback has ended."""
        if self.queue.advance() is None:
            return None
        return self._play()

    def previous(self) -> Optional[PlaybackState]:
        if self.queue.previous() is None:
            return None
        return self._play()

    def stop(self) -> None:
        """Stop playback and drop the persisted queue."""
        queue_id = self.queue.id
        self.queue.stop()
        self.output_info = None
        self.store.delete(queue_id)

    def _play(self) -> PlaybackState:
        if self.queue.is_empty:
            raise EmptyQueueError("Nothing to play: the queue is empty")
        track = self.queue.current_track()
        stream = self.resolver.resolve(track.id, track.source, self.stream_quality)
        logger.debug(
            f"Now playing {track} [{track.formatted_source}] "
            f"({'cached' if stream.is_cached else 'fresh'} URL)"
        )
        return PlaybackState(now_playing=self.queue.now_playing, stream=stream)

    def stream_url(
        self,
        track_id: str,
        provider: Any,
        quality: Optional[StreamQuality] = None,
    ) -> ResolvedStream:
        return self.resolver.resolve(track_id, provider, quality or self.stream_quality)

    def report_output_info(self, info: Union[AudioOutputInfo, Dict[str, Any]]) -> AudioOutputInfo:
        """Record the output format reported by audio playback, as reported."""
        if not isinstance(info, AudioOutputInfo):
            info = AudioOutputInfo(**info)
        self.output_info = info
        if info.has_info:
            logger.debug(f"Audio output: {info.formatted()}")
        return info

    # Persistence

    def save_queue(self) -> str:
        """Persist the queue snapshot; returns the queue id."""
        self.store.save(self.queue.to_snapshot())
        return self.queue.id

    def restore_queue(self, queue_id: Optional[str] = None) -> Optional[NowPlaying]:
        """Replace the queue with a stored snapshot (the latest when no id is given).

        Listeners subscribed to the previous queue are not carried over.
        """
        snapshot = self.store.load(queue_id) if queue_id else self.store.latest()
        if snapshot is None:
            logger.debug(f"No stored queue to restore{f' for {queue_id}' if queue_id else ''}")
            return None
        self.queue = PlaybackQueue.from_snapshot(snapshot, rng=self._rng)
        logger.info(f"Restored queue {self.queue.id} ({len(self.queue)} tracks)")
        return self.queue.now_playing

    def shutdown(self) -> None:
        """Cancel any running search and stop the search workers."""
        self.searches.cancel()
        self.aggregator.shutdown(wait=False)
        logger.info("Polyphony shut down")
