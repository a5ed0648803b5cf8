"""Tests for the single-instance lock."""

import os
import sys
import tempfile
import unittest
from pathlib import Path

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from instance_lock import InstanceLock


class TestInstanceLock(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.lock_file = Path(self.tmpdir.name) / "nested" / ".clast_instance.lock"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_acquire_writes_pid(self):
        lock = InstanceLock(self.lock_file)
        self.assertTrue(lock.acquire())
        self.assertTrue(lock.is_acquired)
        self.assertEqual(lock.existing_pid(), os.getpid())
        lock.release()
        self.assertFalse(lock.is_acquired)

    def test_second_holder_rejected(self):
        first = InstanceLock(self.lock_file)
        second = InstanceLock(self.lock_file)
        self.assertTrue(first.acquire())
        try:
            self.assertFalse(second.acquire())
            self.assertEqual(second.existing_pid(), os.getpid())
        finally:
            first.release()
        self.assertTrue(second.acquire())
        second.release()

    def test_context_manager(self):
        with InstanceLock(self.lock_file) as lock:
            self.assertTrue(lock.is_acquired)
        self.assertFalse(lock.is_acquired)

    def test_release_without_acquire(self):
        InstanceLock(self.lock_file).release()

    def test_existing_pid_without_file(self):
        self.assertIsNone(InstanceLock(self.lock_file).existing_pid())


if __name__ == "__main__":
    unittest.main()
