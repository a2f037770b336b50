"""Spotify provider adapter for Polyphony.

The Web API only exposes 30 second previews, so this adapter resolves
``preview_url`` as the stream URL. User tokens come from the auth
collaborator; an expired token is refreshed before the call. Without a user
token the adapter falls back to the client-credentials flow.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import requests
import spotipy
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyClientCredentials, SpotifyOAuth, SpotifyOauthError

from polyphony.errors import AuthExpiredError, MalformedPayloadError, NetworkError, NotFoundError
from polyphony.models import Album, PlaylistSearchResult, ProviderId, SearchResults, SearchType, StreamQuality, Track
from polyphony.normalize import collect, decode_items, decode_one
from polyphony.normalize import spotify as normalize
from polyphony.providers.base import (
    AuthResult,
    Credentials,
    CredentialsSource,
    ProviderAdapter,
    StreamGrant,
    error_for_status,
)

logger = logging.getLogger("polyphony.providers.spotify")

MAX_PAGE_SIZE = 50
TOKEN_LIFETIME = timedelta(hours=1)

SEARCH_TYPES = {
    SearchType.TRACK: "track",
    SearchType.ALBUM: "album",
    SearchType.PLAYLIST: "playlist",
    SearchType.ALL: "track,album",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SpotifyAdapter(ProviderAdapter):
    """Adapter for the Spotify Web API (OAuth token or client credentials)."""

    provider_id = ProviderId.SPOTIFY
    supports_full_tracks = False
    requires_premium = False

    def __init__(
        self,
        config: Dict[str, Any],
        credentials: Optional[CredentialsSource] = None,
        timeout: float = 10.0,
        client_factory: Optional[Callable[..., spotipy.Spotify]] = None,
        clock: Callable[[], datetime] = _now,
    ):
        """Initialize Spotify adapter.

        Args:
            config: Dict with 'client_id', 'client_secret', 'redirect_uri', 'url_ttl'
            credentials: Source of user access/refresh tokens
            timeout: Per-request timeout in seconds
            client_factory: Builds spotipy clients; defaults to spotipy.Spotify
            clock: Timezone-aware clock used for token expiry
        """
        super().__init__(config, credentials)
        self.client_id = config.get("client_id")
        self.client_secret = config.get("client_secret")
        self.redirect_uri = config.get("redirect_uri") or "http://127.0.0.1:8888/callback"
        self.url_ttl = config.get("url_ttl")
        self.timeout = timeout
        self._client_factory = client_factory or spotipy.Spotify
        self._clock = clock
        self._client: Optional[spotipy.Spotify] = None
        self._client_token: Optional[str] = None
        self._lock = threading.Lock()

    def is_configured(self) -> bool:
        creds = self._credentials()
        return bool(creds.access_token or (self.client_id and self.client_secret))

    def is_authenticated(self) -> bool:
        return bool(self._credentials().access_token)

    def _refresh(self, creds: Credentials) -> Credentials:
        """Refresh an expired user token, reporting failure as AuthExpired."""
        provider = self.provider_id.value
        if not creds.refresh_token or not (self.client_id and self.client_secret):
            raise AuthExpiredError(provider, "Spotify token expired and cannot be refreshed")

        oauth = SpotifyOAuth(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uri=self.redirect_uri,
            open_browser=False,
            requests_timeout=self.timeout,
            cache_handler=MemoryCacheHandler(),
        )
        try:
            token_info = oauth.refresh_access_token(creds.refresh_token)
        except (SpotifyOauthError, spotipy.SpotifyException, requests.RequestException) as e:
            raise AuthExpiredError(provider, f"Spotify token refresh failed: {e}") from e

        expires_at = token_info.get("expires_at")
        result = AuthResult(
            access_token=token_info.get("access_token"),
            refresh_token=token_info.get("refresh_token") or creds.refresh_token,
            expires_at=(
                datetime.fromtimestamp(expires_at, tz=timezone.utc)
                if expires_at
                else self._clock() + TOKEN_LIFETIME
            ),
        )
        if not result.access_token:
            raise AuthExpiredError(provider, "Spotify token refresh returned no access token")

        self.credentials.store(self.provider_id, result)
        logger.info("Refreshed Spotify access token")
        return self._credentials()

    def _get_client(self) -> spotipy.Spotify:
        creds = self._credentials()
        if creds.access_token and creds.expires_at and creds.expires_at <= self._clock():
            creds = self._refresh(creds)

        with self._lock:
            if creds.access_token:
                if self._client is None or self._client_token != creds.access_token:
                    self._client = self._client_factory(
                        auth=creds.access_token,
                        requests_timeout=self.timeout,
                        retries=0,
                        status_retries=0,
                    )
                    self._client_token = creds.access_token
                return self._client

            if not (self.client_id and self.client_secret):
                raise AuthExpiredError(self.provider_id.value, "Spotify credentials are not configured")

            if self._client is None or self._client_token is not None:
                auth_manager = SpotifyClientCredentials(
                    client_id=self.client_id,
                    client_secret=self.client_secret,
                    requests_timeout=self.timeout,
                    cache_handler=MemoryCacheHandler(),
                )
                self._client = self._client_factory(
                    auth_manager=auth_manager,
                    requests_timeout=self.timeout,
                    retries=0,
                    status_retries=0,
                )
                self._client_token = None
            return self._client

    def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        """Invoke a spotipy client method, mapping failures onto the taxonomy."""
        provider = self.provider_id.value
        client = self._get_client()
        try:
            return getattr(client, method)(*args, **kwargs)
        except spotipy.SpotifyException as e:
            headers = e.headers or {}
            raise error_for_status(
                provider,
                e.http_status,
                f"{method}: {e.msg}",
                retry_after=headers.get("Retry-After"),
            ) from e
        except SpotifyOauthError as e:
            raise AuthExpiredError(provider, f"{method}: {e}") from e
        except requests.Timeout as e:
            raise NetworkError(provider, f"{method}: timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise NetworkError(provider, f"{method}: {e}") from e

    def search(
        self,
        query: str,
        search_type: SearchType = SearchType.ALL,
        offset: int = 0,
        limit: int = 20,
    ) -> SearchResults:
        search_type = SearchType(search_type)
        payload = self._call(
            "search",
            q=query,
            limit=max(1, min(limit, MAX_PAGE_SIZE)),
            offset=offset,
            type=SEARCH_TYPES[search_type],
        )
        if not isinstance(payload, dict):
            raise MalformedPayloadError(self.provider_id.value, "search response is not an object")

        results = normalize.search_from_payload(payload)
        logger.debug(
            f"Spotify search '{query}' ({search_type.value}): {len(results.tracks)} tracks, "
            f"{len(results.albums)} albums, {len(results.playlists)} playlists of {results.total}"
        )
        return results

    def search_playlists(self, query: str, offset: int = 0, limit: int = 20) -> List[PlaylistSearchResult]:
        return self.search(query, SearchType.PLAYLIST, offset, limit).playlists

    def resolve_stream_url(self, track_id: str, quality: StreamQuality = StreamQuality.PREVIEW) -> StreamGrant:
        # Only previews exist, whatever quality was asked for
        payload = self._call("track", track_id)
        url = payload.get("preview_url") if isinstance(payload, dict) else None
        if not url:
            raise NotFoundError(self.provider_id.value, f"No preview URL available for track {track_id}")
        return StreamGrant(url=url, ttl=self.url_ttl)

    def fetch_metadata(self, track_id: str) -> Track:
        payload = self._call("track", track_id)
        return decode_one(payload, normalize.track_from_payload, self.provider_id, "track")

    def get_album_tracks(self, album_id: str) -> Album:
        payload = self._call("album", album_id)
        return decode_one(payload, normalize.album_from_payload, self.provider_id, "album")

    def get_playlist_tracks(self, playlist_id: str, offset: int = 0, limit: int = 100) -> List[Track]:
        payload = self._call(
            "playlist_items",
            playlist_id,
            limit=max(1, min(limit, 100)),
            offset=offset,
        )
        items = payload.get("items") if isinstance(payload, dict) else None
        tracks = collect(decode_items(items, normalize.playlist_item_track), "track", self.provider_id)
        return [track for track in tracks if track is not None]

    def authenticate(self, credentials: Credentials) -> AuthResult:
        # The OAuth browser flow happens elsewhere; tokens arrive here ready-made
        if not credentials.access_token:
            raise AuthExpiredError(
                self.provider_id.value,
                "Spotify requires OAuth2 tokens. Please use the web authentication flow.",
            )
        result = AuthResult(
            access_token=credentials.access_token,
            refresh_token=credentials.refresh_token,
            expires_at=credentials.expires_at or self._clock() + TOKEN_LIFETIME,
        )
        self.credentials.store(self.provider_id, result)
        logger.info("Stored Spotify user tokens")
        return result
