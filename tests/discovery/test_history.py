"""
Unit tests for HistoryDiscovery.

Tests:
1. Line parsing with alternate key names
2. Malformed lines skipped
3. Newest-first ordering and the entry cap
"""

import json
import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "src"))

from rehoboam.discovery.history import (
    MAX_HISTORY_ENTRIES,
    HistoryDiscovery,
    parse_history_line,
)


class TestParseHistoryLine(unittest.TestCase):
    """Test single line parsing."""

    def test_full_entry(self):
        line = json.dumps({
            "display": "fix the tests",
            "timestamp": 1700000000000,
            "project": "/home/dev/app",
            "sessionId": "abc",
            "pastedContents": {"1": "text"},
        })
        entry = parse_history_line(line)

        self.assertEqual(entry.display, "fix the tests")
        self.assertEqual(entry.timestamp, 1700000000000)
        self.assertEqual(entry.project, "/home/dev/app")
        self.assertEqual(entry.session_id, "abc")
        self.assertTrue(entry.has_pasted)

    def test_alternate_keys(self):
        """Test older key names are accepted."""
        entry = parse_history_line(json.dumps({"text": "hi", "ts": 5, "cwd": "/p", "session_id": "s"}))
        self.assertEqual((entry.display, entry.timestamp, entry.project, entry.session_id), ("hi", 5, "/p", "s"))
        self.assertFalse(entry.has_pasted)

    def test_defaults(self):
        entry = parse_history_line("{}")
        self.assertEqual(entry.display, "")
        self.assertEqual(entry.timestamp, 0)

    def test_malformed(self):
        self.assertIsNone(parse_history_line(""))
        self.assertIsNone(parse_history_line("not json"))
        self.assertIsNone(parse_history_line("[1, 2]"))


class TestHistoryDiscovery(unittest.TestCase):
    """Test scanning the history file."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.data_dir = Path(self.temp_dir) / ".claude"
        self.data_dir.mkdir()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def write_history(self, lines):
        (self.data_dir / "history.jsonl").write_text("\n".join(lines) + "\n")

    def test_missing_file(self):
        self.assertEqual(HistoryDiscovery(self.temp_dir).scan_history(), [])

    def test_newest_first(self):
        """Test entries are sorted by timestamp, newest first, skipping bad lines."""
        self.write_history([
            json.dumps({"display": "old", "timestamp": 1}),
            "{broken",
            json.dumps({"display": "new", "timestamp": 3}),
            json.dumps({"display": "mid", "timestamp": 2}),
        ])
        entries = HistoryDiscovery(self.temp_dir).scan_history()
        self.assertEqual([e.display for e in entries], ["new", "mid", "old"])

    def test_cap(self):
        """Test at most MAX_HISTORY_ENTRIES entries are returned."""
        self.write_history([
            json.dumps({"display": str(i), "timestamp": i})
            for i in range(MAX_HISTORY_ENTRIES + 20)
        ])
        entries = HistoryDiscovery(self.temp_dir).scan_history()
        self.assertEqual(len(entries), MAX_HISTORY_ENTRIES)
        self.assertEqual(entries[0].display, str(MAX_HISTORY_ENTRIES + 19))


if __name__ == "__main__":
    unittest.main()
