"""
Unit tests for DebugDiscovery.

Tests:
1. Listing debug logs newest first
2. The latest symlink
3. Missing directory
"""

import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "src"))

from rehoboam.discovery.debug_logs import DebugDiscovery


class TestDebugDiscovery(unittest.TestCase):
    """Test scanning the debug directory."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.debug_dir = Path(self.temp_dir) / ".claude" / "debug"
        self.debug_dir.mkdir(parents=True)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def write_log(self, name, content, mtime):
        path = self.debug_dir / name
        path.write_text(content)
        os.utime(path, (mtime, mtime))
        return path

    def test_newest_first(self):
        """Test logs are sorted by modification time."""
        self.write_log("old.txt", "a", 1_000_000)
        self.write_log("new.txt", "bbb", 2_000_000)
        self.write_log("notes.md", "ignored", 3_000_000)

        entries = DebugDiscovery(self.temp_dir).scan_debug_logs()

        self.assertEqual([e.session_id for e in entries], ["new", "old"])
        self.assertEqual(entries[0].size_bytes, 3)

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks not supported")
    def test_latest_symlink(self):
        """Test the symlink target is flagged and the link itself skipped."""
        self.write_log("one.txt", "a", 1_000_000)
        target = self.write_log("two.txt", "b", 2_000_000)
        os.symlink(target, self.debug_dir / "latest")

        entries = DebugDiscovery(self.temp_dir).scan_debug_logs()

        self.assertEqual(len(entries), 2)
        latest = [e.session_id for e in entries if e.is_latest]
        self.assertEqual(latest, ["two"])

    def test_missing_directory(self):
        shutil.rmtree(self.debug_dir)
        self.assertEqual(DebugDiscovery(self.temp_dir).scan_debug_logs(), [])

    def test_to_dict(self):
        self.write_log("s.txt", "x", 1_000_000)
        data = DebugDiscovery(self.temp_dir).scan_debug_logs()[0].to_dict()
        self.assertEqual(data["session_id"], "s")
        self.assertFalse(data["is_latest"])


if __name__ == "__main__":
    unittest.main()
