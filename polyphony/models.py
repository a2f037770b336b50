"""Data models for Polyphony."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

QUALITY_SEPARATOR = " • "


class ProviderId(str, Enum):
    """Known streaming providers."""

    QOBUZ = "qobuz"
    SPOTIFY = "spotify"
    TIDAL = "tidal"
    APPLE_MUSIC = "apple_music"
    YOUTUBE_MUSIC = "youtube_music"
    DEEZER = "deezer"
    SERVER = "server"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "ProviderId":
        """Map any value onto a provider id, falling back to ``unknown``."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.UNKNOWN
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES.get(self, "Streaming")


_DISPLAY_NAMES = {
    ProviderId.QOBUZ: "Qobuz",
    ProviderId.SPOTIFY: "Spotify",
    ProviderId.TIDAL: "Tidal",
    ProviderId.APPLE_MUSIC: "Apple Music",
    ProviderId.YOUTUBE_MUSIC: "YouTube Music",
    ProviderId.DEEZER: "Deezer",
    ProviderId.SERVER: "Server",
}


def format_source(raw: Optional[str]) -> str:
    """Human readable label for a raw source string.

    Unrecognised sources are shown upper-cased; an empty source reads
    "Streaming".

    Examples:
        >>> format_source("apple_music")
        'Apple Music'
        >>> format_source("soundcloud")
        'SOUNDCLOUD'
        >>> format_source(None)
        'Streaming'
    """
    provider = ProviderId.parse(raw)
    if provider is not ProviderId.UNKNOWN:
        return provider.display_name
    return raw.strip().upper() if raw and raw.strip() else "Streaming"


class SearchType(str, Enum):
    """What an aggregate search should look for."""

    TRACK = "track"
    ALBUM = "album"
    PLAYLIST = "playlist"
    ALL = "all"


class StreamQuality(str, Enum):
    """Requested stream quality tier."""

    HI_RES = "hi_res"
    LOSSLESS = "lossless"
    LOSSY = "lossy"
    PREVIEW = "preview"


def _format_facets(
    bitrate: Optional[int], sample_rate: Optional[int], bit_depth: Optional[int]
) -> List[str]:
    parts = []
    if bitrate is not None:
        parts.append(f"{bitrate} kbps")
    if sample_rate is not None and bit_depth is not None:
        parts.append(f"{sample_rate / 1000:.1f}kHz/{bit_depth}bit")
    elif sample_rate is not None:
        parts.append(f"{sample_rate / 1000:.1f}kHz")
    elif bit_depth is not None:
        parts.append(f"{bit_depth}bit")
    return parts


class AudioQuality(BaseModel):
    """Quality facets reported by a provider. Providers report subsets."""

    bitrate: Optional[int] = None  # kbps
    sample_rate: Optional[int] = None  # Hz
    bit_depth: Optional[int] = None  # bits
    label: Optional[str] = None  # opaque provider label, e.g. "lossless"

    def formatted(self) -> str:
        """Format quality for display.

        Numeric facets win over the opaque label, which is only used when no
        numeric facet is known.

        Examples:
            >>> AudioQuality(bitrate=1411, sample_rate=44100, bit_depth=16).formatted()
            '1411 kbps • 44.1kHz/16bit'
            >>> AudioQuality(label="lossless").formatted()
            'lossless'
        """
        parts = _format_facets(self.bitrate, self.sample_rate, self.bit_depth)
        if not parts and self.label:
            parts.append(self.label)
        return QUALITY_SEPARATOR.join(parts)

    def is_empty(self) -> bool:
        return (
            self.bitrate is None
            and self.sample_rate is None
            and self.bit_depth is None
            and not self.label
        )


class Track(BaseModel):
    """Normalized track model shared by every provider."""

    id: str
    title: str
    artist: str
    album: str = ""
    duration: Optional[int] = None  # seconds
    source: ProviderId = ProviderId.UNKNOWN
    quality: AudioQuality = Field(default_factory=AudioQuality)
    cover_url: Optional[str] = None

    # Ephemeral; never part of a persisted record
    stream_url: Optional[str] = None

    @field_validator("source", mode="before")
    @classmethod
    def _coerce_source(cls, value: Any) -> ProviderId:
        return ProviderId.parse(value)

    def __str__(self) -> str:
        return f"{self.artist} - {self.title}"

    @property
    def formatted_duration(self) -> str:
        if self.duration is None:
            return ""
        minutes, seconds = divmod(self.duration, 60)
        return f"{minutes:02d}:{seconds:02d}"

    @property
    def formatted_quality(self) -> str:
        return self.quality.formatted()

    @property
    def formatted_source(self) -> str:
        return self.source.display_name

    def to_record(self) -> Dict[str, Any]:
        """Flat, JSON-safe record without the ephemeral stream URL."""
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration": self.duration,
            "source": self.source.value,
            "cover_url": self.cover_url,
            "quality": self.quality.label,
            "bitrate": self.quality.bitrate,
            "sample_rate": self.quality.sample_rate,
            "bit_depth": self.quality.bit_depth,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Track":
        """Build a track from a flat record, tolerating missing display fields."""
        return cls(
            id=str(record.get("id") or ""),
            title=str(record.get("title") or "Unknown Title"),
            artist=str(record.get("artist") or "Unknown Artist"),
            album=str(record.get("album") or "Unknown Album"),
            duration=record.get("duration"),
            source=record.get("source"),
            cover_url=record.get("cover_url"),
            quality=AudioQuality(
                bitrate=record.get("bitrate"),
                sample_rate=record.get("sample_rate"),
                bit_depth=record.get("bit_depth"),
                label=record.get("quality"),
            ),
        )


class Album(BaseModel):
    """Normalized album. ``tracks`` is empty when only metadata was fetched."""

    id: str
    title: str
    artist: str
    release_date: Optional[str] = None
    cover_url: Optional[str] = None
    tracks: List[Track] = Field(default_factory=list)
    source: Optional[ProviderId] = None

    @field_validator("source", mode="before")
    @classmethod
    def _coerce_source(cls, value: Any) -> Optional[ProviderId]:
        return None if value is None else ProviderId.parse(value)


class PlaylistSearchResult(BaseModel):
    """Playlist entry returned by a playlist search."""

    id: str
    name: str
    description: Optional[str] = None
    owner: str = "Unknown"
    source: ProviderId = ProviderId.UNKNOWN
    cover_url: Optional[str] = None
    track_count: int = 0
    is_public: bool = True
    external_url: Optional[str] = None
    is_placeholder: bool = False

    @field_validator("source", mode="before")
    @classmethod
    def _coerce_source(cls, value: Any) -> ProviderId:
        return ProviderId.parse(value)

    @property
    def formatted_source(self) -> str:
        return self.source.display_name

    @classmethod
    def placeholder(cls, source: Any = None, reason: str = "") -> "PlaylistSearchResult":
        """Marked stand-in for a playlist entry that could not be decoded."""
        millis = int(datetime.now().timestamp() * 1000)
        return cls(
            id=f"error_{millis}_{uuid.uuid4().hex[:8]}",
            name="Error Loading Playlist",
            description=f"Failed to load playlist data{': ' + reason if reason else ''}",
            owner="Unknown",
            source=source,
            track_count=0,
            is_public=False,
            is_placeholder=True,
        )


class SearchResults(BaseModel):
    """Search page. ``total`` may exceed the local list sizes."""

    tracks: List[Track] = Field(default_factory=list)
    albums: List[Album] = Field(default_factory=list)
    playlists: List[PlaylistSearchResult] = Field(default_factory=list)
    total: int = 0
    offset: int = 0
    limit: int = 0

    # Aggregator bookkeeping
    providers: List[ProviderId] = Field(default_factory=list)
    failed_providers: Dict[str, str] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.tracks or self.albums or self.playlists)


class ResolvedStream(BaseModel):
    """Playable URL handed to the audio playback collaborator."""

    stream_url: str
    is_cached: bool
    provider: ProviderId
    track_id: str
    quality: StreamQuality
    expires_at: datetime


class AudioOutputInfo(BaseModel):
    """Real-time output format reported back by the playback collaborator.

    Stored and displayed as reported; never validated or corrected.
    """

    output_bitrate: Optional[int] = None
    output_sample_rate: Optional[int] = None
    output_bit_depth: Optional[int] = None
    format: Optional[str] = None
    codec: Optional[str] = None

    @property
    def has_info(self) -> bool:
        return (
            self.output_bitrate is not None
            or self.output_sample_rate is not None
            or self.format is not None
        )

    def formatted(self) -> str:
        parts = _format_facets(
            self.output_bitrate, self.output_sample_rate, self.output_bit_depth
        )
        if self.format:
            parts.append(self.format.upper())
        return QUALITY_SEPARATOR.join(parts)
