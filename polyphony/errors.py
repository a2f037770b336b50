"""Error taxonomy for Polyphony."""

from typing import Dict, Optional


class PolyphonyError(Exception):
    """Base class for all Polyphony errors."""


class ConfigError(PolyphonyError):
    """Raised when a configuration file cannot be parsed or validated."""


class ProviderError(PolyphonyError):
    """A provider adapter call failed.

    Attributes:
        provider: Provider id that raised the error
        kind: One of ``network``, ``rate_limited``, ``auth_expired``,
            ``not_found`` or ``malformed``
    """

    kind = "network"

    def __init__(self, provider: str, message: str = ""):
        self.provider = provider
        self.message = message or self.kind.replace("_", " ")
        super().__init__(f"{provider}: {self.message}")


class NetworkError(ProviderError):
    """Transient transport failure (connection error, timeout, 5xx)."""

    kind = "network"


class RateLimitedError(ProviderError):
    """Provider refused the call because of rate limiting."""

    kind = "rate_limited"

    def __init__(self, provider: str, message: str = "", retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(provider, message)


class AuthExpiredError(ProviderError):
    """Credentials are missing, expired, or could not be refreshed.

    The caller must re-authenticate through the auth collaborator and retry.
    """

    kind = "auth_expired"


class NotFoundError(ProviderError):
    """Requested track, album, playlist or stream does not exist."""

    kind = "not_found"


class MalformedPayloadError(ProviderError):
    """Provider answered with a payload that could not be decoded."""

    kind = "malformed"


class StreamResolutionError(PolyphonyError):
    """A stream URL could not be resolved; wraps the originating provider error."""

    def __init__(self, track_id: str, provider: str, provider_error: ProviderError):
        self.track_id = track_id
        self.provider = provider
        self.provider_error = provider_error
        super().__init__(
            f"Failed to resolve stream for {provider}:{track_id} ({provider_error.kind}): "
            f"{provider_error.message}"
        )


class QueueError(PolyphonyError):
    """Invalid playback queue operation."""


class EmptyQueueError(QueueError):
    """Operation requires a loaded queue but the queue is empty."""

    def __init__(self, message: str = "Playback queue is empty"):
        super().__init__(message)


class AggregateSearchError(PolyphonyError):
    """Every queried provider failed during an aggregate search."""

    def __init__(self, errors: Dict[str, Exception]):
        self.errors = dict(errors)
        details = ", ".join(f"{name}: {err}" for name, err in self.errors.items())
        super().__init__(f"Search failed on all services: {details}")


class SearchCancelledError(PolyphonyError):
    """The search was cancelled before it completed."""
