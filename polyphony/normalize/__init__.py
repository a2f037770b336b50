"""Result normalization shared by all providers.

Provider payloads are decoded item by item. Each item yields a tagged
outcome, either :class:`Decoded` or :class:`DecodeFailure`, so that one bad
entry never fails a whole batch. Failed playlist entries become marked
placeholders; failed tracks and albums are dropped with a warning.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, List, Optional, TypeVar, Union

from polyphony.errors import MalformedPayloadError
from polyphony.models import PlaylistSearchResult, ProviderId

logger = logging.getLogger("polyphony.normalize")

T = TypeVar("T")

# Errors that mark a single payload item as malformed. pydantic's
# ValidationError is a ValueError subclass; AttributeError covers items that
# are not objects at all.
DECODE_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


@dataclass(frozen=True)
class Decoded(Generic[T]):
    value: T
    ok = True


@dataclass(frozen=True)
class DecodeFailure:
    raw: Any
    reason: str
    ok = False


DecodeOutcome = Union[Decoded[T], DecodeFailure]


def decode_item(raw: Any, decoder: Callable[[Any], T]) -> "DecodeOutcome[T]":
    """Decode one payload item into a tagged outcome."""
    try:
        return Decoded(decoder(raw))
    except DECODE_ERRORS as e:
        return DecodeFailure(raw, f"{type(e).__name__}: {e}")


def decode_items(items: Optional[Iterable[Any]], decoder: Callable[[Any], T]) -> List["DecodeOutcome[T]"]:
    """Decode every item of a payload list. ``None`` decodes to nothing."""
    if items is None:
        return []
    return [decode_item(raw, decoder) for raw in items]


def collect(outcomes: List["DecodeOutcome[T]"], kind: str, provider: ProviderId) -> List[T]:
    """Keep decoded values, logging and dropping failures."""
    values = []
    for outcome in outcomes:
        if outcome.ok:
            values.append(outcome.value)
        else:
            logger.warning(f"Skipping malformed {provider.value} {kind}: {outcome.reason}")
    return values


def playlists_or_placeholders(
    outcomes: List["DecodeOutcome[PlaylistSearchResult]"], provider: ProviderId
) -> List[PlaylistSearchResult]:
    """Keep decoded playlists, replacing failures with marked placeholders."""
    playlists = []
    for outcome in outcomes:
        if outcome.ok:
            playlists.append(outcome.value)
        else:
            logger.warning(f"Malformed {provider.value} playlist replaced by placeholder: {outcome.reason}")
            playlists.append(PlaylistSearchResult.placeholder(provider, outcome.reason))
    return playlists


def decode_one(raw: Any, decoder: Callable[[Any], T], provider: ProviderId, kind: str) -> T:
    """Decode a single required record, raising MalformedPayloadError on failure."""
    outcome = decode_item(raw, decoder)
    if not outcome.ok:
        raise MalformedPayloadError(provider.value, f"malformed {kind}: {outcome.reason}")
    return outcome.value


def as_id(value: Any) -> str:
    """Provider ids may be strings or numbers; both become strings.

    Examples:
        >>> as_id(12345)
        '12345'
        >>> as_id("abc")
        'abc'
    """
    if value is None or isinstance(value, bool) or value == "":
        raise ValueError("missing id")
    if isinstance(value, (int, str)):
        return str(value)
    raise TypeError(f"unsupported id type {type(value).__name__}")


def optional_int(value: Any) -> Optional[int]:
    """Coerce numeric payload values, leaving missing ones as None."""
    if value is None or value == "":
        return None
    return int(value)


def first(items: Any) -> Optional[Any]:
    """First element of a payload list, or None when absent or empty."""
    if isinstance(items, list) and items:
        return items[0]
    return None
