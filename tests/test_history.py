"""Unit tests for the session history log."""

import unittest
import tempfile
from datetime import datetime, timedelta
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tracking.history import CompletedSession, SessionHistory
from tracking.store import StateStore
import config


class TestCompletedSession(unittest.TestCase):

    def test_duration_string(self):
        self.assertEqual(CompletedSession(1500, True).duration_string, "25m")
        self.assertEqual(CompletedSession(3900, True).duration_string, "1h 5m")
        self.assertEqual(CompletedSession(45, False).duration_string, "0m")

    def test_date_string(self):
        now = datetime(2025, 11, 13, 18, 0, 0)
        today = CompletedSession(60, True, date=datetime(2025, 11, 13, 8, 0, 0))
        yesterday = CompletedSession(60, True, date=datetime(2025, 11, 12, 23, 0, 0))
        older = CompletedSession(60, True, date=datetime(2025, 11, 8, 12, 0, 0))
        self.assertEqual(today.date_string(now), "Today")
        self.assertEqual(yesterday.date_string(now), "Yesterday")
        self.assertEqual(older.date_string(now), "5 days ago")

    def test_ids_are_unique(self):
        self.assertNotEqual(CompletedSession(60, True).id, CompletedSession(60, True).id)

    def test_round_trip(self):
        session = CompletedSession(1200, False, breaks_taken=2, date=datetime(2025, 11, 13, 9, 0))
        data = session.to_dict()
        self.assertEqual(data["duration"], 1200)
        self.assertEqual(data["breaksTaken"], 2)
        self.assertEqual(CompletedSession.from_dict(data), session)


class TestSessionHistory(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.store = StateStore(Path(self.tmpdir.name))

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_empty_history(self):
        history = SessionHistory(self.store)
        self.assertEqual(history.sessions, [])
        self.assertEqual(history.total_sessions, 0)
        self.assertEqual(history.success_rate, 0)

    def test_most_recent_first_and_persisted(self):
        history = SessionHistory(self.store)
        first = CompletedSession(1500, True)
        second = CompletedSession(600, False)
        history.add(first)
        history.add(second)

        reloaded = SessionHistory(self.store)
        self.assertEqual(reloaded.sessions, [second, first])

    def test_success_rate(self):
        history = SessionHistory(self.store)
        for completed in (True, True, False):
            history.add(CompletedSession(600, completed))
        self.assertEqual(history.total_sessions, 3)
        self.assertEqual(history.success_rate, 66)

    def test_malformed_records_skipped(self):
        good = CompletedSession(600, True, date=datetime.now() - timedelta(days=1))
        self.store.set(config.STATE_KEY_HISTORY, [good.to_dict(), {"id": "broken"}])
        history = SessionHistory(self.store)
        self.assertEqual(history.sessions, [good])

    def test_non_list_history_ignored(self):
        self.store.set(config.STATE_KEY_HISTORY, {"not": "a list"})
        self.assertEqual(SessionHistory(self.store).sessions, [])


if __name__ == '__main__':
    unittest.main()
