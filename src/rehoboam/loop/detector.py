"""
Completion detection for Rehoboam loops.

Scans progress.md for the signals an agent writes when it is done: the
literal ``<promise>COMPLETE</promise>`` tag, or the loop's stop word.
"""

from dataclasses import dataclass
from typing import Optional

from .models import CompletionReason

PROMISE_TAG = "<promise>COMPLETE</promise>"


@dataclass
class DetectionResult:
    """Result of completion detection."""
    found: bool
    reason: Optional[CompletionReason] = None
    matched_text: Optional[str] = None
    position: Optional[int] = None  # Start position of match in content


class CompletionDetector:
    """Detects completion signals in progress content.

    The promise tag is matched exactly and checked first. The stop word is a
    case-insensitive substring anywhere in the content, with no anchoring.

    Example:
        detector = CompletionDetector(stop_word="finished")
        result = detector.detect("The task is FINISHED.")
        assert result.reason == CompletionReason.STOP_WORD_SEEN
    """

    def __init__(self, stop_word: str, promise_tag: str = PROMISE_TAG):
        if not stop_word:
            raise ValueError("stop_word must be non-empty")
        self.stop_word = stop_word
        self.promise_tag = promise_tag
        self._folded_stop_word = stop_word.casefold()

    def detect(self, content: str) -> DetectionResult:
        if not content:
            return DetectionResult(found=False)

        promise_result = self._detect_promise(content)
        if promise_result.found:
            return promise_result

        return self._detect_stop_word(content)

    def has_stop_word(self, content: str) -> bool:
        return self._detect_stop_word(content).found

    def has_promise(self, content: str) -> bool:
        return self._detect_promise(content).found

    def _detect_promise(self, content: str) -> DetectionResult:
        position = content.find(self.promise_tag)
        if position == -1:
            return DetectionResult(found=False)
        return DetectionResult(
            found=True,
            reason=CompletionReason.PROMISE_TAG,
            matched_text=self.promise_tag,
            position=position,
        )

    def _detect_stop_word(self, content: str) -> DetectionResult:
        folded = content.casefold()
        position = folded.find(self._folded_stop_word)
        if position == -1:
            return DetectionResult(found=False)
        # casefold can change lengths (e.g. "ß"), so only report a slice when it lines up
        matched = None
        if len(folded) == len(content):
            matched = content[position:position + len(self.stop_word)]
        return DetectionResult(
            found=True,
            reason=CompletionReason.STOP_WORD_SEEN,
            matched_text=matched,
            position=position,
        )
