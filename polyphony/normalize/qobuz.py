"""Qobuz payload normalization."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from polyphony.models import Album, AudioQuality, PlaylistSearchResult, ProviderId, SearchResults, Track
from polyphony.normalize import (
    as_id,
    collect,
    decode_items,
    first,
    optional_int,
    playlists_or_placeholders,
)

PROVIDER = ProviderId.QOBUZ

# CD baseline for authenticated sessions; MP3 for anonymous ones
AUTHENTICATED_QUALITY = AudioQuality(bitrate=1411, sample_rate=44100, bit_depth=16, label="lossless")
ANONYMOUS_QUALITY = AudioQuality(bitrate=320, label="lossless")


def _image(payload: Dict[str, Any]) -> Optional[str]:
    image = payload.get("image")
    if isinstance(image, dict):
        return image.get("large") or image.get("small") or image.get("thumbnail")
    return None


def _name(payload: Any, default: str) -> str:
    if isinstance(payload, dict) and payload.get("name"):
        return payload["name"]
    return default


def track_quality(payload: Dict[str, Any], authenticated: bool) -> AudioQuality:
    """Quality facets for a track.

    Authenticated sessions stream the maximum the track offers, so the
    reported hi-res facets are used when present and the CD baseline when not.
    Anonymous sessions are capped at MP3 320.
    """
    if not authenticated:
        return ANONYMOUS_QUALITY.model_copy()

    bit_depth = optional_int(payload.get("maximum_bit_depth"))
    sampling_khz = payload.get("maximum_sampling_rate")
    if bit_depth is None or sampling_khz is None:
        return AUTHENTICATED_QUALITY.model_copy()

    sample_rate = int(round(float(sampling_khz) * 1000))
    label = "hi_res" if payload.get("hires") or bit_depth > 16 else "lossless"
    return AudioQuality(
        bitrate=sample_rate * bit_depth * 2 // 1000,
        sample_rate=sample_rate,
        bit_depth=bit_depth,
        label=label,
    )


def track_from_payload(payload: Dict[str, Any], authenticated: bool = False, album: Optional[Dict[str, Any]] = None) -> Track:
    """Map a Qobuz track object onto :class:`Track`.

    ``album`` supplies album context for tracks nested in an album payload,
    which omit their own ``album`` key.
    """
    album_payload = payload.get("album") or album or {}
    title = payload["title"]
    if payload.get("version"):
        title = f"{title} ({payload['version']})"

    return Track(
        id=as_id(payload["id"]),
        title=title,
        artist=_name(payload.get("performer"), _name(album_payload.get("artist"), "Unknown Artist")),
        album=album_payload.get("title") or "Unknown Album",
        duration=optional_int(payload.get("duration")),
        source=PROVIDER,
        quality=track_quality(payload, authenticated),
        cover_url=_image(album_payload),
    )


def _release_date(payload: Dict[str, Any]) -> Optional[str]:
    if payload.get("release_date_original"):
        return str(payload["release_date_original"])
    released_at = payload.get("released_at")
    if released_at is None:
        return None
    # Unix seconds; negative for releases before 1970
    return datetime.fromtimestamp(int(released_at), tz=timezone.utc).date().isoformat()


def album_from_payload(payload: Dict[str, Any], authenticated: bool = False) -> Album:
    """Map a Qobuz album object onto :class:`Album`.

    Search results carry no track list; ``album/get`` responses do.
    """
    tracks_payload = payload.get("tracks") or {}
    tracks = collect(
        decode_items(
            tracks_payload.get("items"),
            lambda item: track_from_payload(item, authenticated, album=payload),
        ),
        "track",
        PROVIDER,
    )
    return Album(
        id=as_id(payload["id"]),
        title=payload["title"],
        artist=_name(payload.get("artist"), "Unknown Artist"),
        release_date=_release_date(payload),
        cover_url=_image(payload),
        tracks=tracks,
        source=PROVIDER,
    )


def playlist_from_payload(payload: Dict[str, Any]) -> PlaylistSearchResult:
    """Map a Qobuz playlist object onto :class:`PlaylistSearchResult`."""
    owner = payload.get("owner") or payload.get("creator")
    cover = _image(payload) or first(payload.get("images300")) or first(payload.get("images"))
    return PlaylistSearchResult(
        id=as_id(payload["id"]),
        name=payload["name"],
        description=payload.get("description") or None,
        owner=_name(owner, "Unknown"),
        source=PROVIDER,
        cover_url=cover,
        track_count=optional_int(payload.get("tracks_count")) or 0,
        is_public=bool(payload.get("is_public", False)),
        external_url=payload.get("url"),
    )


def _container(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    container = payload.get(key)
    return container if isinstance(container, dict) else {}


def search_from_payload(payload: Dict[str, Any], authenticated: bool = False) -> SearchResults:
    """Map a ``catalog/search`` response onto :class:`SearchResults`.

    ``total`` is the sum of the totals of every container present.
    """
    tracks = _container(payload, "tracks")
    albums = _container(payload, "albums")
    playlists = _container(payload, "playlists")

    paging = tracks or albums or playlists
    total = sum(optional_int(c.get("total")) or 0 for c in (tracks, albums, playlists))

    return SearchResults(
        tracks=collect(
            decode_items(tracks.get("items"), lambda item: track_from_payload(item, authenticated)),
            "track",
            PROVIDER,
        ),
        albums=collect(
            decode_items(albums.get("items"), lambda item: album_from_payload(item, authenticated)),
            "album",
            PROVIDER,
        ),
        playlists=playlists_or_placeholders(
            decode_items(playlists.get("items"), playlist_from_payload), PROVIDER
        ),
        total=total,
        offset=optional_int(paging.get("offset")) or 0,
        limit=optional_int(paging.get("limit")) or 0,
        providers=[PROVIDER],
    )
