"""Search aggregation, stream resolution and playback queue engine."""

from polyphony.core.aggregator import Aggregator, PendingSearch, SearchSession
from polyphony.core.queue import LoopMode, NowPlaying, PlaybackQueue, PlayMode, QueueSnapshot
from polyphony.core.resolver import StreamUrlCacheEntry, StreamUrlResolver
from polyphony.core.store import QueueStore

__all__ = [
    "Aggregator",
    "LoopMode",
    "NowPlaying",
    "PendingSearch",
    "PlayMode",
    "PlaybackQueue",
    "QueueSnapshot",
    "QueueStore",
    "SearchSession",
    "StreamUrlCacheEntry",
    "StreamUrlResolver",
]
