"""
Unit tests for CompletionDetector.

Tests:
1. Promise tag detection
2. Case-insensitive stop word detection
3. Precedence of the promise tag
"""

import os
import sys
import unittest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "src"))

from rehoboam.loop.detector import PROMISE_TAG, CompletionDetector
from rehoboam.loop.models import CompletionReason


class TestPromiseDetection(unittest.TestCase):
    """Test promise tag detection."""

    def setUp(self):
        self.detector = CompletionDetector(stop_word="DONE")

    def test_exact_tag(self):
        """Test the exact tag is found with its position."""
        content = "Work finished.\n<promise>COMPLETE</promise>"
        result = self.detector.detect(content)

        self.assertTrue(result.found)
        self.assertEqual(result.reason, CompletionReason.PROMISE_TAG)
        self.assertEqual(result.matched_text, PROMISE_TAG)
        self.assertEqual(result.position, content.index("<promise>"))

    def test_other_promise_text(self):
        """Test a promise with different text is not completion."""
        self.assertFalse(self.detector.has_promise("<promise>LATER</promise>"))

    def test_empty_content(self):
        """Test empty content is not completion."""
        self.assertFalse(self.detector.detect("").found)

    def test_promise_before_stop_word(self):
        """Test the promise tag wins when both are present."""
        result = self.detector.detect("DONE <promise>COMPLETE</promise>")
        self.assertEqual(result.reason, CompletionReason.PROMISE_TAG)


class TestStopWordDetection(unittest.TestCase):
    """Test stop word detection."""

    def test_case_insensitive(self):
        """Test stop word matches in any case."""
        detector = CompletionDetector(stop_word="finished")
        result = detector.detect("The task is FINISHED.")

        self.assertTrue(result.found)
        self.assertEqual(result.reason, CompletionReason.STOP_WORD_SEEN)
        self.assertEqual(result.matched_text, "FINISHED")
        self.assertEqual(result.position, 12)

    def test_unanchored(self):
        """Test stop word matches as a plain substring."""
        detector = CompletionDetector(stop_word="done")
        self.assertTrue(detector.has_stop_word("abandoned"))

    def test_not_found(self):
        """Test content without the stop word."""
        detector = CompletionDetector(stop_word="DONE")
        self.assertFalse(detector.detect("still working").found)

    def test_casefold(self):
        """Test full case folding, not just lowercasing."""
        detector = CompletionDetector(stop_word="STRASSE")
        self.assertTrue(detector.has_stop_word("Straße"))

    def test_empty_stop_word_rejected(self):
        """Test an empty stop word is rejected."""
        with self.assertRaises(ValueError):
            CompletionDetector(stop_word="")


if __name__ == "__main__":
    unittest.main()
