"""Spotify Web API payload normalization."""

from typing import Any, Dict, List, Optional

from polyphony.models import Album, AudioQuality, PlaylistSearchResult, ProviderId, SearchResults, Track
from polyphony.normalize import (
    as_id,
    collect,
    decode_items,
    first,
    optional_int,
    playlists_or_placeholders,
)

PROVIDER = ProviderId.SPOTIFY

# The Web API only serves 30 second MP3 previews
PREVIEW_QUALITY = AudioQuality(bitrate=160, sample_rate=44100, label="preview")


def _first_artist(artists: Optional[List[Dict[str, Any]]]) -> str:
    artist = first(artists)
    if isinstance(artist, dict) and artist.get("name"):
        return artist["name"]
    return "Unknown Artist"


def _cover(images: Any) -> Optional[str]:
    image = first(images)
    return image.get("url") if isinstance(image, dict) else None


def _duration(payload: Dict[str, Any]) -> Optional[int]:
    duration_ms = optional_int(payload.get("duration_ms"))
    return None if duration_ms is None else duration_ms // 1000


def track_from_payload(payload: Dict[str, Any], album: Optional[Dict[str, Any]] = None) -> Track:
    """Map a Spotify track object onto :class:`Track`.

    Simplified tracks (album track listings) have no ``album`` key; ``album``
    supplies that context.
    """
    album_payload = payload.get("album") or album or {}
    return Track(
        id=as_id(payload["id"]),
        title=payload["name"],
        artist=_first_artist(payload.get("artists")),
        album=album_payload.get("name") or "Unknown Album",
        duration=_duration(payload),
        source=PROVIDER,
        quality=PREVIEW_QUALITY.model_copy(),
        cover_url=_cover(album_payload.get("images")),
        stream_url=payload.get("preview_url"),
    )


def album_from_payload(payload: Dict[str, Any]) -> Album:
    """Map a Spotify album object onto :class:`Album`."""
    tracks_payload = payload.get("tracks") or {}
    tracks = collect(
        decode_items(
            tracks_payload.get("items"),
            lambda item: track_from_payload(item, album=payload),
        ),
        "track",
        PROVIDER,
    )
    return Album(
        id=as_id(payload["id"]),
        title=payload["name"],
        artist=_first_artist(payload.get("artists")),
        release_date=payload.get("release_date"),
        cover_url=_cover(payload.get("images")),
        tracks=tracks,
        source=PROVIDER,
    )


def playlist_from_payload(payload: Dict[str, Any]) -> PlaylistSearchResult:
    """Map a Spotify simplified playlist onto :class:`PlaylistSearchResult`.

    Spotify returns ``null`` entries in playlist searches; those raise here
    and become placeholders upstream.
    """
    owner = payload.get("owner") or {}
    tracks = payload.get("tracks") or {}
    external = payload.get("external_urls") or {}
    return PlaylistSearchResult(
        id=as_id(payload["id"]),
        name=payload["name"],
        description=payload.get("description") or None,
        owner=owner.get("display_name") or "Unknown",
        source=PROVIDER,
        cover_url=_cover(payload.get("images")),
        track_count=optional_int(tracks.get("total")) or 0,
        is_public=bool(payload.get("public")),
        external_url=external.get("spotify"),
    )


def playlist_item_track(item: Dict[str, Any]) -> Optional[Track]:
    """Track of a playlist item, or None for removed/local entries."""
    track = item.get("track")
    if not track or track.get("id") is None:
        return None
    return track_from_payload(track)


def search_from_payload(payload: Dict[str, Any]) -> SearchResults:
    """Map a ``/search`` response onto :class:`SearchResults`."""
    containers = {
        key: payload.get(key) if isinstance(payload.get(key), dict) else {}
        for key in ("tracks", "albums", "playlists")
    }
    tracks, albums, playlists = containers["tracks"], containers["albums"], containers["playlists"]
    paging = tracks or albums or playlists
    total = sum(optional_int(c.get("total")) or 0 for c in containers.values())

    return SearchResults(
        tracks=collect(decode_items(tracks.get("items"), track_from_payload), "track", PROVIDER),
        albums=collect(decode_items(albums.get("items"), album_from_payload), "album", PROVIDER),
        playlists=playlists_or_placeholders(
            decode_items(playlists.get("items"), playlist_from_payload), PROVIDER
        ),
        total=total,
        offset=optional_int(paging.get("offset")) or 0,
        limit=optional_int(paging.get("limit")) or 0,
        providers=[PROVIDER],
    )
