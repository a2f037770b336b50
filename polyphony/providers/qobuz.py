"""Qobuz provider adapter for Polyphony."""

import hashlib
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from polyphony.errors import AuthExpiredError, MalformedPayloadError, NotFoundError
from polyphony.models import Album, PlaylistSearchResult, ProviderId, SearchResults, SearchType, StreamQuality, Track
from polyphony.normalize import collect, decode_items, decode_one
from polyphony.normalize import qobuz as normalize
from polyphony.providers.base import (
    AuthResult,
    Credentials,
    CredentialsSource,
    HttpProviderAdapter,
    StreamGrant,
)

logger = logging.getLogger("polyphony.providers.qobuz")

API_URL = "https://www.qobuz.com/api.json/0.2"

FORMAT_IDS = {
    StreamQuality.HI_RES: "27",  # FLAC up to 24 bit / 192 kHz
    StreamQuality.LOSSLESS: "6",  # FLAC 16 bit / 44.1 kHz
    StreamQuality.LOSSY: "5",  # MP3 320
    StreamQuality.PREVIEW: "5",
}
ANONYMOUS_FORMAT_ID = "5"

SEARCH_TYPES = {
    SearchType.TRACK: "tracks",
    SearchType.ALBUM: "albums",
    SearchType.PLAYLIST: "playlists",
}


def sign_file_url_request(track_id: str, format_id: str, intent: str, timestamp: str, secret: str) -> str:
    """Signature required by ``track/getFileUrl``.

    Examples:
        >>> len(sign_file_url_request("1", "27", "stream", "1700000000", "s"))
        32
    """
    payload = f"trackgetFileUrlformat_id{format_id}intent{intent}track_id{track_id}{timestamp}{secret}"
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


class QobuzAdapter(HttpProviderAdapter):
    """Adapter for the Qobuz catalog (app id + user auth token)."""

    provider_id = ProviderId.QOBUZ
    base_url = API_URL
    supports_full_tracks = True
    requires_premium = True

    def __init__(
        self,
        config: Dict[str, Any],
        credentials: Optional[CredentialsSource] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        user_agent: str = "polyphony/0.1",
        clock: Callable[[], float] = time.time,
    ):
        """Initialize Qobuz adapter.

        Args:
            config: Dict with 'app_id', 'secret' and optional 'url_ttl'
            credentials: Source of the user auth token
            session: Optional requests session
            timeout: Per-request timeout in seconds
            user_agent: User-Agent header for a session created here
            clock: Epoch clock used for request timestamps
        """
        super().__init__(config, credentials, session, timeout, user_agent)
        self.app_id = config.get("app_id")
        self.secret = config.get("secret")
        self.url_ttl = config.get("url_ttl")
        self._clock = clock

    def is_configured(self) -> bool:
        return bool(self.app_id)

    def _user_token(self) -> Optional[str]:
        return self._credentials().access_token

    def is_authenticated(self) -> bool:
        return bool(self._user_token())

    def _api(self, endpoint: str, params: Dict[str, Any], signed: bool = False) -> Any:
        if not self.app_id:
            raise AuthExpiredError(self.provider_id.value, "Qobuz app_id is not configured")

        query = {key: str(value) for key, value in params.items()}
        query["app_id"] = self.app_id

        if signed:
            if not self.secret:
                raise AuthExpiredError(self.provider_id.value, "Qobuz app secret is not configured")
            timestamp = str(int(self._clock()))
            query["request_ts"] = timestamp
            query["request_sig"] = sign_file_url_request(
                query["track_id"], query["format_id"], query.get("intent", "stream"), timestamp, self.secret
            )

        token = self._user_token()
        if token:
            query["user_auth_token"] = token

        return self._request("GET", endpoint, params=query)

    def search(
        self,
        query: str,
        search_type: SearchType = SearchType.ALL,
        offset: int = 0,
        limit: int = 20,
    ) -> SearchResults:
        search_type = SearchType(search_type)
        params: Dict[str, Any] = {"query": query, "limit": limit, "offset": offset}
        # Without a type Qobuz searches every kind
        if search_type in SEARCH_TYPES:
            params["type"] = SEARCH_TYPES[search_type]

        payload = self._api("catalog/search", params)
        if not isinstance(payload, dict):
            raise MalformedPayloadError(self.provider_id.value, "search response is not an object")

        results = normalize.search_from_payload(payload, self.is_authenticated())
        logger.debug(
            f"Qobuz search '{query}' ({search_type.value}): {len(results.tracks)} tracks, "
            f"{len(results.albums)} albums, {len(results.playlists)} playlists of {results.total}"
        )
        return results

    def search_playlists(self, query: str, offset: int = 0, limit: int = 20) -> List[PlaylistSearchResult]:
        return self.search(query, SearchType.PLAYLIST, offset, limit).playlists

    def resolve_stream_url(self, track_id: str, quality: StreamQuality = StreamQuality.LOSSLESS) -> StreamGrant:
        format_id = FORMAT_IDS[StreamQuality(quality)]
        if not self.is_authenticated():
            format_id = ANONYMOUS_FORMAT_ID

        payload = self._api(
            "track/getFileUrl",
            {"track_id": track_id, "format_id": format_id, "intent": "stream"},
            signed=True,
        )
        url = payload.get("url") if isinstance(payload, dict) else None
        if not url:
            raise NotFoundError(self.provider_id.value, f"no stream available for track {track_id}")

        logger.debug(f"Resolved Qobuz stream for {track_id} (format {format_id})")
        return StreamGrant(url=url, ttl=self.url_ttl)

    def fetch_metadata(self, track_id: str) -> Track:
        payload = self._api("track/get", {"track_id": track_id})
        authenticated = self.is_authenticated()
        return decode_one(
            payload,
            lambda item: normalize.track_from_payload(item, authenticated),
            self.provider_id,
            "track",
        )

    def get_album_tracks(self, album_id: str) -> Album:
        payload = self._api("album/get", {"album_id": album_id})
        authenticated = self.is_authenticated()
        return decode_one(
            payload,
            lambda item: normalize.album_from_payload(item, authenticated),
            self.provider_id,
            "album",
        )

    def get_playlist_tracks(self, playlist_id: str, offset: int = 0, limit: int = 100) -> List[Track]:
        payload = self._api(
            "playlist/get",
            {"playlist_id": playlist_id, "extra": "tracks", "offset": offset, "limit": limit},
        )
        tracks = (payload.get("tracks") or {}) if isinstance(payload, dict) else {}
        authenticated = self.is_authenticated()
        # Entries without an id are unavailable in the user's region
        items = [item for item in tracks.get("items") or [] if not isinstance(item, dict) or item.get("id") is not None]
        return collect(
            decode_items(items, lambda item: normalize.track_from_payload(item, authenticated)),
            "track",
            self.provider_id,
        )

    def authenticate(self, credentials: Credentials) -> AuthResult:
        if not credentials.username or not credentials.password:
            raise AuthExpiredError(self.provider_id.value, "Username and password required for Qobuz")

        payload = self._api(
            "user/login",
            {"username": credentials.username, "password": credentials.password},
        )

        def _decode(item: Dict[str, Any]) -> AuthResult:
            # Qobuz tokens don't expire
            return AuthResult(
                access_token=item["user_auth_token"],
                user_id=str(item["user"]["id"]),
            )

        result = decode_one(payload, _decode, self.provider_id, "login response")
        self.credentials.store(self.provider_id, result)
        logger.info(f"Authenticated with Qobuz as user {result.user_id}")
        return result
