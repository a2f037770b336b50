"""Playback queue state machine.

A queue is either empty or loaded. When loaded, ``track_order`` holds the
ids in play order and ``current_index`` always points into it. Every
transition recomputes the denormalized :class:`NowPlaying` view from
``track_order[current_index]`` and hands it to subscribed listeners.
"""

import logging
import random
import uuid
from collections import Counter
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from polyphony.errors import EmptyQueueError, QueueError
from polyphony.models import ProviderId, Track

logger = logging.getLogger("polyphony.queue")

Listener = Callable[[Optional["NowPlaying"]], None]


class PlayMode(str, Enum):
    NORMAL = "normal"
    SHUFFLE = "shuffle"


class LoopMode(str, Enum):
    ONCE = "once"
    REPEAT = "repeat"  # restart ``repeat_count`` times, then stop
    INFINITE = "infinite"

    def next(self) -> "LoopMode":
        order = list(LoopMode)
        return order[(order.index(self) + 1) % len(order)]


class NowPlaying(BaseModel):
    """Display fields of the current track, derived from the queue."""

    track_id: str
    index: int
    title: str
    artist: str
    album: str = ""
    duration: Optional[int] = None
    source: ProviderId = ProviderId.UNKNOWN
    cover_url: Optional[str] = None

    @classmethod
    def from_track(cls, track: Track, index: int) -> "NowPlaying":
        return cls(
            track_id=track.id,
            index=index,
            title=track.title,
            artist=track.artist,
            album=track.album,
            duration=track.duration,
            source=track.source,
            cover_url=track.cover_url,
        )

    @property
    def formatted_source(self) -> str:
        return self.source.display_name


class QueueSnapshot(BaseModel):
    """Flat persistence record of a queue."""

    id: str
    playlist_id: Optional[str] = None
    playlist_name: Optional[str] = None
    playlist_source: Optional[str] = None
    play_mode: PlayMode = PlayMode.NORMAL
    order_mode: PlayMode = PlayMode.NORMAL
    loop_mode: LoopMode = LoopMode.ONCE
    repeat_count: int = 1
    repeats_done: int = 0
    track_order: List[str] = Field(default_factory=list)
    load_order: List[str] = Field(default_factory=list)
    current_track_index: Optional[int] = None
    added_at: datetime

    # Denormalized current track, for readers that skip the catalog
    current_track_id: Optional[str] = None
    current_track_title: Optional[str] = None
    current_track_artist: Optional[str] = None
    current_track_album: Optional[str] = None
    current_track_duration: Optional[int] = None
    current_track_cover_url: Optional[str] = None
    current_track_source: Optional[str] = None

    tracks: List[Dict[str, Any]] = Field(default_factory=list)


class PlaybackQueue:
    """Ordered/shuffled track sequence with loop policy and current position."""

    def __init__(
        self,
        queue_id: Optional[str] = None,
        rng: Optional[random.Random] = None,
        repeat_count: int = 1,
    ):
        """Create an empty queue.

        Args:
            queue_id: Identifier; generated when omitted
            rng: Random source used for shuffling
            repeat_count: Restarts allowed under ``LoopMode.REPEAT``
        """
        self.id = queue_id or uuid.uuid4().hex
        self._rng = rng or random.Random()
        self.play_mode = PlayMode.NORMAL
        self.loop_mode = LoopMode.ONCE
        self.repeat_count = repeat_count
        self.repeats_done = 0
        self.playlist_id: Optional[str] = None
        self.playlist_name: Optional[str] = None
        self.playlist_source: Optional[str] = None
        self.added_at = datetime.now(timezone.utc)
        self.track_order: List[str] = []
        self.current_index: Optional[int] = None
        self._order_mode = PlayMode.NORMAL
        self._load_order: List[str] = []
        self._tracks: Dict[str, Track] = {}
        self._now_playing: Optional[NowPlaying] = None
        self._listeners: List[Listener] = []

    def __len__(self) -> int:
        return len(self.track_order)

    @property
    def is_empty(self) -> bool:
        return self.current_index is None

    @property
    def now_playing(self) -> Optional[NowPlaying]:
        return self._now_playing

    @property
    def current_track_id(self) -> Optional[str]:
        if self.is_empty:
            return None
        return self.track_order[self.current_index]

    @property
    def load_order(self) -> List[str]:
        return list(self._load_order)

    def current_track(self) -> Track:
        """The current track.

        Raises:
            EmptyQueueError: Nothing is loaded
        """
        if self.is_empty:
            raise EmptyQueueError()
        return self.track(self.track_order[self.current_index])

    def track(self, track_id: str) -> Track:
        """Catalog entry for an id; bare ids get placeholder display fields."""
        return self._tracks.get(track_id) or Track.from_record({"id": track_id})

    def tracks(self) -> List[Track]:
        """Tracks in play order."""
        return [self.track(track_id) for track_id in self.track_order]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with the new :class:`NowPlaying` after each transition."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Transitions

    def load(
        self,
        tracks: Iterable[Union[Track, str]],
        play_mode: PlayMode = PlayMode.NORMAL,
        loop_mode: LoopMode = LoopMode.ONCE,
        repeat_count: Optional[int] = None,
        playlist_id: Optional[str] = None,
        playlist_name: Optional[str] = None,
        playlist_source: Optional[str] = None,
    ) -> Optional[NowPlaying]:
        """Replace the queue contents and start at the first track."""
        ids, catalog = self._split(tracks)

        self.id = uuid.uuid4().hex
        self.added_at = datetime.now(timezone.utc)
        self.play_mode = PlayMode(play_mode)
        self.loop_mode = LoopMode(loop_mode)
        if repeat_count is not None:
            self.repeat_count = repeat_count
        self.repeats_done = 0
        self.playlist_id = playlist_id
        self.playlist_name = playlist_name
        self.playlist_source = playlist_source
        self._tracks = catalog
        self._load_order = list(ids)
        self._order_mode = self.play_mode

        if not ids:
            logger.debug("Loaded an empty track list; queue stays empty")
            return self._set_empty()

        self.track_order = list(ids)
        if self.play_mode == PlayMode.SHUFFLE:
            self._rng.shuffle(self.track_order)
        self.current_index = 0

        logger.info(
            f"Loaded queue {self.id} with {len(ids)} tracks "
            f"({self.play_mode.value}, loop {self.loop_mode.value})"
        )
        return self._transition()

    def advance(self) -> Optional[NowPlaying]:
        """Move to the next track, applying the loop policy at the end."""
        if self.is_empty:
            return None

        at_end = self.current_index + 1 >= len(self.track_order)
        restart = at_end and (
            self.loop_mode == LoopMode.INFINITE
            or (self.loop_mode == LoopMode.REPEAT and self.repeats_done < self.repeat_count)
        )
        # A pending play mode change reorders whatever is still to come
        self._apply_pending_play_mode(0 if restart else self.current_index + 1)

        if not at_end:
            self.current_index += 1
        elif restart:
            if self.loop_mode == LoopMode.REPEAT:
                self.repeats_done += 1
                logger.debug(f"Queue {self.id} repeat {self.repeats_done}/{self.repeat_count}")
            self.current_index = 0
        else:
            logger.info(f"Queue {self.id} finished")
            return self._set_empty()

        return self._transition()

    def previous(self) -> Optional[NowPlaying]:
        """Move to the previous track; stays on the first one."""
        if self.is_empty:
            return None
        self.current_index = max(0, self.current_index - 1)
        return self._transition()

    def reshuffle(self) -> Optional[NowPlaying]:
        """Re-randomize the tracks after the current one."""
        if self.is_empty:
            return None
        start = self.current_index + 1
        upcoming = self.track_order[start:]
        self._rng.shuffle(upcoming)
        self.track_order[start:] = upcoming
        return self._transition()

    def toggle_play_mode(self) -> PlayMode:
        """Flip normal/shuffle; the order changes on the next advance."""
        if self.play_mode == PlayMode.NORMAL:
            return self.set_play_mode(PlayMode.SHUFFLE)
        return self.set_play_mode(PlayMode.NORMAL)

    def set_play_mode(self, play_mode: PlayMode) -> PlayMode:
        self.play_mode = PlayMode(play_mode)
        return self.play_mode

    def toggle_loop_mode(self) -> LoopMode:
        """Cycle once -> repeat -> infinite -> once."""
        return self.set_loop_mode(self.loop_mode.next())

    def set_loop_mode(self, loop_mode: LoopMode, repeat_count: Optional[int] = None) -> LoopMode:
        loop_mode = LoopMode(loop_mode)
        if loop_mode != self.loop_mode:
            self.repeats_done = 0
        self.loop_mode = loop_mode
        if repeat_count is not None:
            self.repeat_count = repeat_count
        return self.loop_mode

    def enqueue(self, tracks: Iterable[Union[Track, str]]) -> Optional[NowPlaying]:
        """Append tracks; an empty queue starts playing the first of them."""
        ids, catalog = self._split(tracks)
        if not ids:
            return self._now_playing

        self._tracks.update(catalog)
        self._load_order.extend(ids)
        self.track_order.extend(ids)
        if self.is_empty:
            self.current_index = 0
        logger.debug(f"Enqueued {len(ids)} tracks; queue now holds {len(self.track_order)}")
        return self._transition()

    def remove(self, index: int) -> Optional[NowPlaying]:
        """Remove the track at a play-order position.

        Removing the current track makes the following one current.
        """
        self._check_index(index)
        track_id = self.track_order.pop(index)
        self._load_order.remove(track_id)
        if track_id not in self.track_order:
            self._tracks.pop(track_id, None)

        if not self.track_order:
            return self._set_empty()
        if index < self.current_index:
            self.current_index -= 1
        self.current_index = min(self.current_index, len(self.track_order) - 1)
        return self._transition()

    def move(self, from_index: int, to_index: int) -> Optional[NowPlaying]:
        """Reorder one track; the current track keeps playing."""
        self._check_index(from_index)
        self._check_index(to_index)
        track_id = self.track_order.pop(from_index)
        self.track_order.insert(to_index, track_id)

        current = self.current_index
        if from_index == current:
            self.current_index = to_index
        elif from_index < current <= to_index:
            self.current_index = current - 1
        elif to_index <= current < from_index:
            self.current_index = current + 1
        return self._transition()

    def jump_to(self, index: int) -> Optional[NowPlaying]:
        self._check_index(index)
        self.current_index = index
        return self._transition()

    def stop(self) -> None:
        """End playback; the queue becomes empty."""
        if not self.is_empty:
            logger.info(f"Stopped queue {self.id}")
        self._set_empty()

    clear = stop

    # Persistence

    def to_snapshot(self) -> QueueSnapshot:
        now = self._now_playing
        return QueueSnapshot(
            id=self.id,
            playlist_id=self.playlist_id,
            playlist_name=self.playlist_name,
            playlist_source=self.playlist_source,
            play_mode=self.play_mode,
            order_mode=self._order_mode,
            loop_mode=self.loop_mode,
            repeat_count=self.repeat_count,
            repeats_done=self.repeats_done,
            track_order=list(self.track_order),
            load_order=list(self._load_order),
            current_track_index=self.current_index,
            added_at=self.added_at,
            current_track_id=now.track_id if now else None,
            current_track_title=now.title if now else None,
            current_track_artist=now.artist if now else None,
            current_track_album=now.album if now else None,
            current_track_duration=now.duration if now else None,
            current_track_cover_url=now.cover_url if now else None,
            current_track_source=now.source.value if now else None,
            tracks=[track.to_record() for track in self._tracks.values()],
        )

    @classmethod
    def from_snapshot(cls, snapshot: QueueSnapshot, rng: Optional[random.Random] = None) -> "PlaybackQueue":
        """Rebuild a queue; the current-track view is recomputed, not trusted.

        Raises:
            QueueError: The snapshot breaks the index invariant
        """
        order = list(snapshot.track_order)
        index = snapshot.current_track_index
        if order and (index is None or not 0 <= index < len(order)):
            raise QueueError(f"Snapshot index {index} is outside a queue of {len(order)} tracks")
        if not order and index is not None:
            raise QueueError(f"Snapshot of an empty queue has current index {index}")
        load_order = list(snapshot.load_order) or list(order)
        if Counter(order) != Counter(load_order):
            raise QueueError("Snapshot play order and load order hold different tracks")

        queue = cls(queue_id=snapshot.id, rng=rng, repeat_count=snapshot.repeat_count)
        queue.playlist_id = snapshot.playlist_id
        queue.playlist_name = snapshot.playlist_name
        queue.playlist_source = snapshot.playlist_source
        queue.play_mode = snapshot.play_mode
        queue._order_mode = snapshot.order_mode
        queue.loop_mode = snapshot.loop_mode
        queue.repeats_done = snapshot.repeats_done
        queue.added_at = snapshot.added_at
        queue.track_order = order
        queue.current_index = index
        queue._load_order = load_order
        queue._tracks = {
            track.id: track for track in (Track.from_record(r) for r in snapshot.tracks)
        }
        queue._refresh()
        return queue

    def to_record(self) -> Dict[str, Any]:
        """JSON-safe flat record."""
        return self.to_snapshot().model_dump(mode="json")

    @classmethod
    def from_record(cls, record: Dict[str, Any], rng: Optional[random.Random] = None) -> "PlaybackQueue":
        return cls.from_snapshot(QueueSnapshot.model_validate(record), rng=rng)

    # Internals

    @staticmethod
    def _split(tracks: Iterable[Union[Track, str]]):
        ids: List[str] = []
        catalog: Dict[str, Track] = {}
        for item in tracks:
            if isinstance(item, Track):
                catalog[item.id] = item
                ids.append(item.id)
            else:
                ids.append(str(item))
        return ids, catalog

    def _check_index(self, index: int) -> None:
        if self.is_empty:
            raise EmptyQueueError()
        if not 0 <= index < len(self.track_order):
            raise QueueError(f"Index {index} is outside a queue of {len(self.track_order)} tracks")

    def _apply_pending_play_mode(self, start: int) -> None:
        if self.play_mode == self._order_mode:
            return
        upcoming = self.track_order[start:]
        if self.play_mode == PlayMode.SHUFFLE:
            self._rng.shuffle(upcoming)
        else:
            # Restore load order for the same tracks
            remaining = Counter(upcoming)
            upcoming = []
            for track_id in self._load_order:
                if remaining[track_id]:
                    remaining[track_id] -= 1
                    upcoming.append(track_id)
        self.track_order[start:] = upcoming
        self._order_mode = self.play_mode

    def _set_empty(self) -> Optional[NowPlaying]:
        self.track_order = []
        self.current_index = None
        self.repeats_done = 0
        self._load_order = []
        self._tracks = {}
        return self._transition()

    def _refresh(self) -> None:
        if self.is_empty:
            self._now_playing = None
        else:
            self._now_playing = NowPlaying.from_track(self.current_track(), self.current_index)

    def _transition(self) -> Optional[NowPlaying]:
        self._refresh()
        for listener in list(self._listeners):
            listener(self._now_playing)
        return self._now_playing
