"""Polyphony - streaming aggregation and playback queue engine."""

__version__ = "0.1.0"

from polyphony.app import PlaybackState, Polyphony
from polyphony.config import PolyphonyConfig
from polyphony.models import Album, PlaylistSearchResult, ProviderId, SearchResults, Track

__all__ = [
    "Album",
    "PlaybackState",
    "PlaylistSearchResult",
    "Polyphony",
    "PolyphonyConfig",
    "ProviderId",
    "SearchResults",
    "Track",
]
