"""
Progress judging for Rehoboam loops.

After an iteration that did not write the stop word, the judge reads
progress.md against anchor.md and decides whether the loop should go on:

    complete   progress reads as finished, or covers the anchor's requirements
    stalled    progress says the agent is blocked
    continue   anything else

Separately, ``is_stalled`` flags a loop whose last iterations all failed the
same way.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .workspace import ANCHOR_FILE, PROGRESS_FILE, Workspace

logger = logging.getLogger(__name__)

COMPLETION_INDICATORS = (
    "all tasks completed",
    "implementation complete",
    "successfully implemented",
    "task is done",
    "work is complete",
    "finished implementing",
    "all requirements met",
    "nothing left to do",
    "ready for review",
    "all tests pass",
)

STALL_INDICATORS = (
    "blocked by",
    "need clarification",
    "cannot proceed",
    "stuck on",
    "waiting for",
    "unclear requirements",
    "need more information",
    "error persists",
)

STALL_WINDOW = 5
MIN_PROGRESS_WORDS = 200
MIN_COVERAGE = 0.7
MAX_KEYWORDS = 10
MIN_KEYWORD_LENGTH = 5


class JudgeDecision(Enum):
    CONTINUE = "continue"
    COMPLETE = "complete"
    STALLED = "stalled"


@dataclass
class JudgeVerdict:
    """Outcome of judging one iteration's progress."""
    decision: JudgeDecision
    confidence: float
    explanation: str

    def to_dict(self) -> dict:
        return {
            "decision": self.decision.value,
            "confidence": self.confidence,
            "explanation": self.explanation,
        }


def requirement_keywords(anchor: str) -> list[str]:
    """Words of five or more characters from the anchor's list items, first ten."""
    keywords = []
    for line in anchor.lower().splitlines():
        if not line.startswith(("- ", "* ", "1.")):
            continue
        for word in line.split():
            if len(word) >= MIN_KEYWORD_LENGTH:
                keywords.append(word)
    return keywords[:MAX_KEYWORDS]


def judge_progress(anchor: str, progress: str) -> JudgeVerdict:
    """Judge progress text against the anchor.

    Completion phrases win over stall phrases. Without either, a long
    progress note that mentions most requirement keywords counts as done.
    """
    folded = progress.lower()

    for indicator in COMPLETION_INDICATORS:
        if indicator in folded:
            return JudgeVerdict(JudgeDecision.COMPLETE, 0.8, f"Found completion indicator: '{indicator}'")

    for indicator in STALL_INDICATORS:
        if indicator in folded:
            return JudgeVerdict(JudgeDecision.STALLED, 0.7, f"Found stall indicator: '{indicator}'")

    keywords = requirement_keywords(anchor)
    if keywords:
        coverage = sum(1 for k in keywords if k in folded) / len(keywords)
        if len(progress.split()) > MIN_PROGRESS_WORDS and coverage > MIN_COVERAGE:
            return JudgeVerdict(
                JudgeDecision.COMPLETE,
                coverage * 0.8,
                f"Progress covers {coverage * 100:.0f}% of requirement keywords",
            )

    return JudgeVerdict(JudgeDecision.CONTINUE, 0.5, "No completion or stall indicators found")


def is_stalled(outcomes: Sequence[Optional[str]], window: int = STALL_WINDOW) -> bool:
    """True if the last ``window`` iterations failed with the same error key.

    ``outcomes`` holds one entry per iteration: the normalized error key of a
    failed iteration, or None for one that ran cleanly.
    """
    if len(outcomes) < window:
        return False
    recent = list(outcomes[-window:])
    return recent[-1] is not None and all(o == recent[-1] for o in recent)


class LoopJudge:
    """Judges a workspace's progress.

    Example:
        verdict = LoopJudge(workspace).evaluate()
        if verdict.decision == JudgeDecision.STALLED:
            print(verdict.explanation)
    """

    def __init__(self, workspace: Workspace):
        self.workspace = workspace

    def evaluate(self) -> JudgeVerdict:
        verdict = judge_progress(self.workspace.read(ANCHOR_FILE), self.workspace.read(PROGRESS_FILE))
        if verdict.decision == JudgeDecision.STALLED:
            logger.warning(f"Loop looks stalled: {verdict.explanation}")
        else:
            logger.debug(f"Judge: {verdict.decision.value} ({verdict.confidence:.2f}) {verdict.explanation}")
        return verdict
