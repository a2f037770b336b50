"""Integration tests for the Polyphony application object."""

import os
import random
import tempfile
import unittest

from polyphony.app import Polyphony
from polyphony.config import PolyphonyConfig
from polyphony.core.queue import LoopMode
from polyphony.core.store import QueueStore
from polyphony.errors import EmptyQueueError, NotFoundError
from polyphony.models import Album, PlaylistSearchResult, ProviderId, SearchResults, SearchType
from tests.fakes import FakeAdapter, make_track


class TestPolyphony(unittest.TestCase):
    """Test the search, playback and persistence flow over fake providers."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.store = QueueStore(os.path.join(self.tmpdir.name, "queue.db"))
        self.album = Album(
            id="al1",
            title="Kind of Blue",
            artist="Miles Davis",
            tracks=[make_track("t1"), make_track("t2")],
        )
        self.qobuz = FakeAdapter(
            ProviderId.QOBUZ,
            SearchResults(tracks=[make_track("q1")], total=1, providers=[ProviderId.QOBUZ]),
            albums={"al1": self.album, "empty": Album(id="empty", title="Empty", artist="Nobody")},
        )
        self.spotify = FakeAdapter(
            ProviderId.SPOTIFY,
            SearchResults(tracks=[make_track("s1", ProviderId.SPOTIFY)], total=1, providers=[ProviderId.SPOTIFY]),
        )
        self.config = PolyphonyConfig()
        self.apps = []
        self.app = self.make_app()

    def tearDown(self):
        for app in self.apps:
            app.shutdown()
        self.tmpdir.cleanup()

    def make_app(self):
        app = Polyphony(
            config=self.config,
            adapters={ProviderId.QOBUZ: self.qobuz, ProviderId.SPOTIFY: self.spotify},
            store=self.store,
            rng=random.Random(1),
        )
        self.apps.append(app)
        return app

    def test_search(self):
        results = self.app.search("so what")
        self.assertEqual([t.id for t in results.tracks], ["q1", "s1"])
        self.assertEqual(results.total, 2)

    def test_search_playlists(self):
        self.spotify.results = SearchResults(
            playlists=[PlaylistSearchResult(id="p1", name="Focus", source="spotify")],
            total=1,
            providers=[ProviderId.SPOTIFY],
        )
        playlists = self.app.search_playlists("focus", providers=["spotify"])

        self.assertEqual([p.name for p in playlists], ["Focus"])
        self.assertEqual(self.spotify.search_calls[0][1], SearchType.PLAYLIST)
        self.assertEqual(self.qobuz.search_calls, [])

    def test_providers_status(self):
        status = self.app.providers_status()
        self.assertEqual([s["provider"] for s in status], ["qobuz", "spotify"])
        self.assertEqual(status[0]["name"], "Qobuz")

    def test_unknown_provider(self):
        with self.assertRaises(NotFoundError):
            self.app.adapter("deezer")

    def test_play_album(self):
        state = self.app.play_album("qobuz", "al1")

        self.assertEqual(state.now_playing.track_id, "t1")
        self.assertEqual(state.now_playing.index, 0)
        self.assertIn("/t1/lossless", state.stream.stream_url)
        self.assertFalse(state.stream.is_cached)
        self.assertEqual(self.app.queue.playlist_name, "Kind of Blue")
        self.assertEqual(self.app.queue.playlist_source, "qobuz")

    def test_current_reuses_cached_url(self):
        first = self.app.play_album("qobuz", "al1")
        again = self.app.current()
        self.assertTrue(again.stream.is_cached)
        self.assertEqual(again.stream.stream_url, first.stream.stream_url)
        self.assertEqual(len(self.qobuz.resolve_calls), 1)

    def test_next_until_the_end(self):
        self.app.play_album("qobuz", "al1")
        self.assertEqual(self.app.next().now_playing.track_id, "t2")
        self.assertIsNone(self.app.next())
        self.assertIsNone(self.app.current())
        self.assertIsNone(self.app.previous())

    def test_default_loop_mode_from_config(self):
        self.config.queue.default_loop_mode = "infinite"
        app = self.make_app()
        app.play_album("qobuz", "al1")
        self.assertEqual(app.queue.loop_mode, LoopMode.INFINITE)
        app.next()
        self.assertEqual(app.next().now_playing.track_id, "t1")

    def test_empty_album(self):
        with self.assertRaises(EmptyQueueError):
            self.app.play_album("qobuz", "empty")

    def test_missing_album(self):
        with self.assertRaises(NotFoundError):
            self.app.play_album("qobuz", "missing")

    def test_tracks_resolve_through_their_provider(self):
        state = self.app.play_tracks([make_track("s1", ProviderId.SPOTIFY), make_track("q1")])
        self.assertTrue(state.stream.stream_url.startswith("https://spotify.example/s1/"))
        self.assertEqual(state.now_playing.formatted_source, "Spotify")
        self.assertEqual(self.app.next().now_playing.source, ProviderId.QOBUZ)

    def test_play_playlist(self):
        state = self.app.play_playlist("spotify", "pl", name="Focus")
        self.assertEqual(state.now_playing.track_id, "pl-0")
        self.assertEqual(len(self.app.queue), 3)
        self.assertEqual(self.app.queue.playlist_name, "Focus")

    def test_save_and_restore(self):
        self.app.play_album("qobuz", "al1")
        self.app.next()
        queue_id = self.app.save_queue()

        other = self.make_app()
        now = other.restore_queue()

        self.assertEqual(other.queue.id, queue_id)
        self.assertEqual(now.track_id, "t2")
        self.assertEqual(now.title, "Title t2")
        self.assertEqual(other.current().now_playing.track_id, "t2")

    def test_restore_without_snapshot(self):
        self.assertIsNone(self.app.restore_queue())
        self.assertIsNone(self.app.restore_queue("missing"))

    def test_stop_drops_stored_queue(self):
        self.app.play_album("qobuz", "al1")
        queue_id = self.app.save_queue()
        self.app.stop()
        self.assertTrue(self.app.queue.is_empty)
        self.assertIsNone(self.store.load(queue_id))

    def test_report_output_info(self):
        info = self.app.report_output_info({"output_sample_rate": 96000, "output_bit_depth": 24, "format": "flac"})
        self.assertIs(self.app.output_info, info)
        self.assertTrue(info.has_info)
        self.assertIn("FLAC", info.formatted())


if __name__ == "__main__":
    unittest.main()
