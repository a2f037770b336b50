"""SQLite persistence for playback queue snapshots."""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from polyphony.core.queue import QueueSnapshot

logger = logging.getLogger("polyphony.store")


class QueueStore:
    """Stores queue snapshots as JSON records keyed by queue id."""

    def __init__(self, db_path: str):
        """Initialize store with database path."""
        self.db_path = db_path
        logger.debug(f"Initializing queue store at: {db_path}")
        self._initialize_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _initialize_db(self) -> None:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS queue_snapshots (
                        queue_id TEXT PRIMARY KEY,
                        data TEXT NOT NULL,
                        updated_at TIMESTAMP NOT NULL
                    )
                """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_queue_snapshots_updated
                    ON queue_snapshots(updated_at)
                """
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize queue store: {e}")
            raise

    def save(self, snapshot: QueueSnapshot) -> None:
        """Insert or replace the snapshot for its queue id."""
        data = json.dumps(snapshot.model_dump(mode="json"))
        updated_at = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                "REPLACE INTO queue_snapshots (queue_id, data, updated_at) VALUES (?, ?, ?)",
                (snapshot.id, data, updated_at),
            )
            conn.commit()
        logger.debug(f"Saved queue snapshot {snapshot.id} ({len(snapshot.track_order)} tracks)")

    def load(self, queue_id: str) -> Optional[QueueSnapshot]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM queue_snapshots WHERE queue_id = ?", (queue_id,)
            ).fetchone()
        if row is None:
            logger.debug(f"No queue snapshot stored for {queue_id}")
            return None
        return QueueSnapshot.model_validate(json.loads(row[0]))

    def latest(self) -> Optional[QueueSnapshot]:
        """Most recently saved snapshot."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM queue_snapshots ORDER BY updated_at DESC, rowid DESC LIMIT 1"
            ).fetchone()
        if row is None:
            return None
        return QueueSnapshot.model_validate(json.loads(row[0]))

    def list_ids(self) -> List[str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT queue_id FROM queue_snapshots ORDER BY updated_at DESC"
            ).fetchall()
        return [row[0] for row in rows]

    def delete(self, queue_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM queue_snapshots WHERE queue_id = ?", (queue_id,))
            conn.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.debug(f"Deleted queue snapshot {queue_id}")
        return deleted

    def clear(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM queue_snapshots")
            conn.commit()
        logger.info("Queue store cleared")
