"""Abstract base class for streaming provider adapters."""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel

from polyphony.errors import (
    AuthExpiredError,
    MalformedPayloadError,
    NetworkError,
    NotFoundError,
    ProviderError,
    RateLimitedError,
)
from polyphony.models import Album, PlaylistSearchResult, ProviderId, SearchResults, SearchType, StreamQuality, Track

logger = logging.getLogger("polyphony.providers")


class Credentials(BaseModel):
    """Credentials handed to an adapter by the auth collaborator."""

    username: Optional[str] = None
    password: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    app_id: Optional[str] = None
    secret: Optional[str] = None


class AuthResult(BaseModel):
    """Outcome of an authentication or token refresh."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    user_id: Optional[str] = None


class StreamGrant(BaseModel):
    """Stream URL issued by a provider, with its declared lifetime if any."""

    url: str
    ttl: Optional[float] = None  # seconds


class CredentialsSource(ABC):
    """Boundary to the external auth/session collaborator."""

    @abstractmethod
    def get(self, provider: ProviderId) -> Credentials:
        """Current credentials for a provider (empty when none are known)."""
        pass

    @abstractmethod
    def store(self, provider: ProviderId, result: AuthResult) -> None:
        """Persist tokens obtained by an authentication or refresh."""
        pass


class StaticCredentials(CredentialsSource):
    """In-memory credentials, seeded from configuration."""

    def __init__(self, credentials: Optional[Dict[ProviderId, Credentials]] = None):
        self._credentials: Dict[ProviderId, Credentials] = dict(credentials or {})
        self._lock = threading.Lock()

    def get(self, provider: ProviderId) -> Credentials:
        with self._lock:
            return self._credentials.get(provider, Credentials()).model_copy()

    def store(self, provider: ProviderId, result: AuthResult) -> None:
        with self._lock:
            current = self._credentials.get(provider, Credentials())
            updates = {
                "access_token": result.access_token or current.access_token,
                "refresh_token": result.refresh_token or current.refresh_token,
                "expires_at": result.expires_at,
            }
            self._credentials[provider] = current.model_copy(update=updates)


def error_for_status(
    provider: str,
    status: int,
    message: str = "",
    retry_after: Optional[Any] = None,
) -> ProviderError:
    """Map an HTTP status onto the provider error taxonomy."""
    if status in (401, 403):
        return AuthExpiredError(provider, message or f"HTTP {status}")
    if status == 404:
        return NotFoundError(provider, message or "HTTP 404")
    if status == 429:
        try:
            seconds = float(retry_after) if retry_after is not None else None
        except (TypeError, ValueError):
            seconds = None
        return RateLimitedError(provider, message or "HTTP 429", retry_after=seconds)
    return NetworkError(provider, message or f"HTTP {status}")


class ProviderAdapter(ABC):
    """Common capability contract for every streaming service."""

    provider_id: ProviderId = ProviderId.UNKNOWN
    supports_full_tracks = False
    requires_premium = False

    def __init__(self, config: Dict[str, Any], credentials: Optional[CredentialsSource] = None):
        """Initialize adapter with configuration."""
        self.config = config
        self.credentials = credentials or StaticCredentials()

    @property
    def display_name(self) -> str:
        return self.provider_id.display_name

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether enough configuration exists to attempt any call."""
        pass

    @abstractmethod
    def search(
        self,
        query: str,
        search_type: SearchType = SearchType.ALL,
        offset: int = 0,
        limit: int = 20,
    ) -> SearchResults:
        """Search the provider catalog.

        Returns this provider's page only; totals are provider totals.
        """
        pass

    @abstractmethod
    def search_playlists(self, query: str, offset: int = 0, limit: int = 20) -> List[PlaylistSearchResult]:
        """Search playlists."""
        pass

    @abstractmethod
    def resolve_stream_url(self, track_id: str, quality: StreamQuality = StreamQuality.LOSSLESS) -> StreamGrant:
        """Resolve a time-bounded, provider-specific stream URL."""
        pass

    @abstractmethod
    def fetch_metadata(self, track_id: str) -> Track:
        """Get full metadata for a track."""
        pass

    @abstractmethod
    def get_album_tracks(self, album_id: str) -> Album:
        """Get an album together with its track list."""
        pass

    @abstractmethod
    def get_playlist_tracks(self, playlist_id: str, offset: int = 0, limit: int = 100) -> List[Track]:
        """Get tracks of a playlist."""
        pass

    @abstractmethod
    def authenticate(self, credentials: Credentials) -> AuthResult:
        """Authenticate with the service and store the resulting tokens."""
        pass

    @abstractmethod
    def is_authenticated(self) -> bool:
        """Whether user credentials are currently available."""
        pass

    def _credentials(self) -> Credentials:
        return self.credentials.get(self.provider_id)


class HttpProviderAdapter(ProviderAdapter):
    """Adapter talking JSON over HTTP with requests."""

    base_url = ""

    def __init__(
        self,
        config: Dict[str, Any],
        credentials: Optional[CredentialsSource] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        user_agent: str = "polyphony/0.1",
    ):
        super().__init__(config, credentials)
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = user_agent
        self.session = session
        self.timeout = timeout

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Perform a request and decode its JSON body, mapping every failure."""
        provider = self.provider_id.value
        url = f"{self.base_url}/{endpoint}"

        try:
            response = self.session.request(
                method,
                url,
                params=params,
                data=data,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise NetworkError(provider, f"timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise NetworkError(provider, str(e)) from e

        if not response.ok:
            raise error_for_status(
                provider,
                response.status_code,
                f"{endpoint}: HTTP {response.status_code} {response.text[:200]}".strip(),
                retry_after=response.headers.get("Retry-After"),
            )

        try:
            return response.json()
        except ValueError as e:
            logger.debug(f"Undecodable {provider} response from {endpoint}: {response.text[:200]}")
            raise MalformedPayloadError(provider, f"{endpoint}: invalid JSON") from e
