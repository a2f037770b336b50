"""Unit tests for the Qobuz adapter with a mocked HTTP session."""

import unittest
from unittest.mock import Mock

import requests

from polyphony.errors import (
    AuthExpiredError,
    MalformedPayloadError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
)
from polyphony.models import ProviderId, SearchType, StreamQuality
from polyphony.providers.base import AuthResult, Credentials, StaticCredentials
from polyphony.providers.qobuz import QobuzAdapter, sign_file_url_request

CONFIG = {"app_id": "798273057", "secret": "s3cret", "url_ttl": 300}


def make_response(payload=None, status=200, headers=None, text=""):
    response = Mock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.headers = headers or {}
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


class TestQobuzAdapter(unittest.TestCase):
    """Test Qobuz adapter requests and error mapping."""

    def setUp(self):
        self.session = Mock()
        self.credentials = StaticCredentials(
            {ProviderId.QOBUZ: Credentials(access_token="user-token")}
        )
        self.adapter = QobuzAdapter(
            CONFIG,
            self.credentials,
            session=self.session,
            clock=lambda: 1700000000.5,
        )

    def last_params(self):
        return self.session.request.call_args.kwargs["params"]

    def test_is_configured_needs_app_id(self):
        self.assertTrue(self.adapter.is_configured())
        self.assertFalse(QobuzAdapter({}, session=self.session).is_configured())

    def test_search_tracks(self):
        self.session.request.return_value = make_response(
            {"tracks": {"total": 1, "offset": 0, "limit": 5, "items": [{"id": 1, "title": "So What"}]}}
        )
        results = self.adapter.search("so what", SearchType.TRACK, offset=0, limit=5)

        method, url = self.session.request.call_args.args
        self.assertEqual(method, "GET")
        self.assertTrue(url.endswith("/catalog/search"))
        params = self.last_params()
        self.assertEqual(params["type"], "tracks")
        self.assertEqual(params["query"], "so what")
        self.assertEqual(params["app_id"], "798273057")
        self.assertEqual(params["user_auth_token"], "user-token")
        self.assertEqual(results.tracks[0].id, "1")
        self.assertEqual(results.providers, [ProviderId.QOBUZ])

    def test_search_all_omits_type(self):
        self.session.request.return_value = make_response({})
        self.adapter.search("miles", "all")
        self.assertNotIn("type", self.last_params())

    def test_resolve_stream_url_is_signed(self):
        self.session.request.return_value = make_response({"url": "https://streaming.qobuz.com/file"})
        grant = self.adapter.resolve_stream_url("123", StreamQuality.HI_RES)

        params = self.last_params()
        self.assertEqual(params["format_id"], "27")
        self.assertEqual(params["request_ts"], "1700000000")
        self.assertEqual(
            params["request_sig"],
            sign_file_url_request("123", "27", "stream", "1700000000", "s3cret"),
        )
        self.assertEqual(grant.url, "https://streaming.qobuz.com/file")
        self.assertEqual(grant.ttl, 300)

    def test_anonymous_stream_is_capped(self):
        adapter = QobuzAdapter(CONFIG, session=self.session, clock=lambda: 1700000000)
        self.session.request.return_value = make_response({"url": "https://streaming.qobuz.com/sample"})
        adapter.resolve_stream_url("123", StreamQuality.HI_RES)
        self.assertEqual(self.last_params()["format_id"], "5")
        self.assertNotIn("user_auth_token", self.last_params())

    def test_missing_stream_url_is_not_found(self):
        self.session.request.return_value = make_response({"sample": True})
        with self.assertRaises(NotFoundError):
            self.adapter.resolve_stream_url("123")

    def test_missing_secret_is_auth_expired(self):
        adapter = QobuzAdapter({"app_id": "1"}, self.credentials, session=self.session)
        with self.assertRaises(AuthExpiredError):
            adapter.resolve_stream_url("123")
        self.session.request.assert_not_called()

    def test_status_mapping(self):
        cases = [
            (401, AuthExpiredError),
            (403, AuthExpiredError),
            (404, NotFoundError),
            (429, RateLimitedError),
            (500, NetworkError),
        ]
        for status, error in cases:
            with self.subTest(status=status):
                self.session.request.return_value = make_response(status=status)
                with self.assertRaises(error) as ctx:
                    self.adapter.fetch_metadata("1")
                self.assertEqual(ctx.exception.provider, "qobuz")

    def test_rate_limit_retry_after(self):
        self.session.request.return_value = make_response(status=429, headers={"Retry-After": "3"})
        with self.assertRaises(RateLimitedError) as ctx:
            self.adapter.search("x")
        self.assertEqual(ctx.exception.retry_after, 3.0)
        self.assertEqual(ctx.exception.kind, "rate_limited")

    def test_timeout_is_network_error(self):
        self.session.request.side_effect = requests.Timeout("slow")
        with self.assertRaises(NetworkError):
            self.adapter.search("x")

    def test_invalid_json_is_malformed(self):
        self.session.request.return_value = make_response(ValueError("Expecting value"))
        with self.assertRaises(MalformedPayloadError):
            self.adapter.search("x")

    def test_malformed_track_metadata(self):
        self.session.request.return_value = make_response({"title": "no id"})
        with self.assertRaises(MalformedPayloadError):
            self.adapter.fetch_metadata("1")

    def test_playlist_tracks_skip_unavailable(self):
        self.session.request.return_value = make_response(
            {"tracks": {"items": [{"id": 1, "title": "A"}, {"id": None, "title": "gone"}, {"id": 2, "title": "B"}]}}
        )
        tracks = self.adapter.get_playlist_tracks("42")
        self.assertEqual([t.id for t in tracks], ["1", "2"])

    def test_authenticate_stores_token(self):
        credentials = StaticCredentials()
        adapter = QobuzAdapter(CONFIG, credentials, session=self.session)
        self.session.request.return_value = make_response(
            {"user_auth_token": "fresh-token", "user": {"id": 99}}
        )
        result = adapter.authenticate(Credentials(username="user", password="pass"))

        self.assertIsInstance(result, AuthResult)
        self.assertEqual(result.user_id, "99")
        self.assertTrue(adapter.is_authenticated())
        self.assertEqual(credentials.get(ProviderId.QOBUZ).access_token, "fresh-token")

    def test_authenticate_requires_password(self):
        with self.assertRaises(AuthExpiredError):
            self.adapter.authenticate(Credentials(username="user"))


if __name__ == "__main__":
    unittest.main()
