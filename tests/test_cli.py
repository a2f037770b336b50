"""Tests for the command-line interface."""

import os
import tempfile
import unittest
from unittest.mock import patch

from typer.testing import CliRunner

from polyphony import __version__
from polyphony.app import Polyphony
from polyphony.cli import app
from polyphony.config import PolyphonyConfig
from polyphony.core.store import QueueStore
from polyphony.errors import AggregateSearchError, NetworkError
from polyphony.models import Album, ProviderId, SearchResults
from tests.fakes import FakeAdapter, make_track

runner = CliRunner()


class TestCli(unittest.TestCase):
    """Test command output and failure exit codes."""

    def test_version(self):
        result = runner.invoke(app, ["version"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn(__version__, result.output)

    @patch("polyphony.cli.Polyphony")
    def test_search_prints_tracks(self, mock_polyphony):
        mock_polyphony.return_value.search.return_value = SearchResults(
            tracks=[make_track("1", title="So What", artist="Miles Davis")],
            total=1,
            providers=[ProviderId.QOBUZ],
            failed_providers={"spotify": "timed out after 5.0s"},
        )

        result = runner.invoke(app, ["search", "so what", "-p", "qobuz", "-n", "5"])

        self.assertEqual(result.exit_code, 0)
        self.assertIn("So What", result.output)
        self.assertIn("spotify", result.output)
        kwargs = mock_polyphony.return_value.search.call_args.kwargs
        self.assertEqual(kwargs["providers"], ["qobuz"])
        self.assertEqual(kwargs["limit"], 5)

    @patch("polyphony.cli.Polyphony")
    def test_search_failure_exits_non_zero(self, mock_polyphony):
        mock_polyphony.return_value.search.side_effect = AggregateSearchError(
            {"qobuz": NetworkError("qobuz", "down")}
        )
        result = runner.invoke(app, ["search", "x"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Search failed", result.output)

    @patch("polyphony.cli.Polyphony")
    def test_queue_stop(self, mock_polyphony):
        result = runner.invoke(app, ["queue", "stop"])
        self.assertEqual(result.exit_code, 0)
        mock_polyphony.return_value.restore_queue.assert_called_once_with()
        mock_polyphony.return_value.stop.assert_called_once_with()



class TestQueueCommands(unittest.TestCase):
    """Test queue commands against a stored queue and fake providers."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.store = QueueStore(os.path.join(self.tmpdir.name, "queue.db"))
        album = Album(
            id="al1",
            title="Kind of Blue",
            artist="Miles Davis",
            tracks=[make_track("t1"), make_track("t2"), make_track("t3")],
        )
        opens_unplayable = Album(
            id="al2",
            title="Sketches",
            artist="Miles Davis",
            tracks=[make_track("t2"), make_track("t3")],
        )
        self.qobuz = FakeAdapter(
            ProviderId.QOBUZ,
            albums={"al1": album, "al2": opens_unplayable},
            missing_streams=["t2"],
        )
        self.apps = []
        patcher = patch("polyphony.cli.Polyphony", side_effect=self.make_app)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        for polyphony in self.apps:
            polyphony.shutdown()
        self.tmpdir.cleanup()

    def make_app(self, config_path=None):
        polyphony = Polyphony(config=PolyphonyConfig(), adapters={ProviderId.QOBUZ: self.qobuz}, store=self.store)
        self.apps.append(polyphony)
        return polyphony

    def test_next_skips_past_unplayable_track(self):
        self.assertEqual(runner.invoke(app, ["queue", "play", "qobuz", "al1"]).exit_code, 0)

        failed = runner.invoke(app, ["queue", "next"])
        self.assertEqual(failed.exit_code, 1)
        self.assertEqual(self.store.latest().current_track_index, 1)

        result = runner.invoke(app, ["queue", "next"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Title t3", result.output)
        self.assertEqual(self.store.latest().current_track_index, 2)

    def test_prev_keeps_position_when_stream_fails(self):
        runner.invoke(app, ["queue", "play", "qobuz", "al1"])
        runner.invoke(app, ["queue", "next"])
        runner.invoke(app, ["queue", "next"])

        result = runner.invoke(app, ["queue", "prev"])
        self.assertEqual(result.exit_code, 1)
        self.assertEqual(self.store.latest().current_track_index, 1)

    def test_play_stores_queue_when_first_track_fails(self):
        failed = runner.invoke(app, ["queue", "play", "qobuz", "al2"])
        self.assertEqual(failed.exit_code, 1)
        self.assertEqual(self.store.latest().track_order, ["t2", "t3"])

        result = runner.invoke(app, ["queue", "next"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Title t3", result.output)

    def test_play_missing_album_stores_nothing(self):
        result = runner.invoke(app, ["queue", "play", "qobuz", "missing"])
        self.assertEqual(result.exit_code, 1)
        self.assertEqual(self.store.list_ids(), [])

    def test_next_without_stored_queue(self):
        result = runner.invoke(app, ["queue", "next"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Nothing queued", result.output)
        self.assertEqual(self.store.list_ids(), [])

    def test_prev_without_stored_queue(self):
        result = runner.invoke(app, ["queue", "prev"])
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(self.store.list_ids(), [])


if __name__ == "__main__":
    unittest.main()
