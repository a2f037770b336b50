"""Unit tests for the SQLite queue snapshot store."""

import os
import tempfile
import unittest

from polyphony.core.queue import PlaybackQueue
from polyphony.core.store import QueueStore
from tests.fakes import make_track


class TestQueueStore(unittest.TestCase):
    """Test saving, loading and deleting queue snapshots."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.store = QueueStore(os.path.join(self.tmpdir.name, "queue.db"))

    def tearDown(self):
        self.tmpdir.cleanup()

    def make_queue(self, *ids):
        queue = PlaybackQueue()
        queue.load([make_track(i) for i in ids])
        return queue

    def test_save_and_load(self):
        queue = self.make_queue("a", "b")
        queue.advance()
        self.store.save(queue.to_snapshot())

        snapshot = self.store.load(queue.id)

        self.assertEqual(snapshot, queue.to_snapshot())
        restored = PlaybackQueue.from_snapshot(snapshot)
        self.assertEqual(restored.current_track_id, "b")

    def test_missing_queue(self):
        self.assertIsNone(self.store.load("missing"))
        self.assertIsNone(self.store.latest())

    def test_save_replaces_existing(self):
        queue = self.make_queue("a", "b")
        self.store.save(queue.to_snapshot())
        queue.advance()
        self.store.save(queue.to_snapshot())

        self.assertEqual(self.store.list_ids(), [queue.id])
        self.assertEqual(self.store.load(queue.id).current_track_index, 1)

    def test_latest(self):
        first = self.make_queue("a")
        second = self.make_queue("b")
        self.store.save(first.to_snapshot())
        self.store.save(second.to_snapshot())
        self.assertEqual(self.store.latest().id, second.id)

    def test_delete_and_clear(self):
        first = self.make_queue("a")
        second = self.make_queue("b")
        self.store.save(first.to_snapshot())
        self.store.save(second.to_snapshot())

        self.assertTrue(self.store.delete(first.id))
        self.assertFalse(self.store.delete(first.id))
        self.assertEqual(self.store.list_ids(), [second.id])

        self.store.clear()
        self.assertEqual(self.store.list_ids(), [])

    def test_store_survives_reopen(self):
        queue = self.make_queue("a")
        self.store.save(queue.to_snapshot())
        reopened = QueueStore(self.store.db_path)
        self.assertEqual(reopened.load(queue.id).track_order, ["a"])


if __name__ == "__main__":
    unittest.main()
