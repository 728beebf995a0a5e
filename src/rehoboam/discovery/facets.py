"""
Aggregates per-session quality facets from ``usage-data/facets/*.json``
into counts of outcomes, helpfulness, satisfaction, friction, session
types, success patterns and goal categories.
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .paths import agent_data_dir, as_count

logger = logging.getLogger(__name__)

OUTCOMES = ("fully_achieved", "mostly_achieved", "partially_achieved", "not_achieved")
TOP_N = 10


@dataclass
class SessionQuality:
    """Aggregated session quality; count lists are sorted by count, descending."""
    total_sessions: int = 0
    outcomes: list[int] = field(default_factory=lambda: [0] * 5)  # OUTCOMES order, then other
    helpfulness: list[tuple[str, int]] = field(default_factory=list)
    top_categories: list[tuple[str, int]] = field(default_factory=list)
    satisfaction: list[tuple[str, int]] = field(default_factory=list)
    friction: list[tuple[str, int]] = field(default_factory=list)
    session_types: list[tuple[str, int]] = field(default_factory=list)
    success_patterns: list[tuple[str, int]] = field(default_factory=list)

    @property
    def achieved_rate(self) -> Optional[float]:
        """Share of sessions fully or mostly achieved."""
        rated = sum(self.outcomes)
        if not rated:
            return None
        return (self.outcomes[0] + self.outcomes[1]) / rated

    def to_dict(self) -> dict:
        return {
            "total_sessions": self.total_sessions,
            "outcomes": dict(zip((*OUTCOMES, "other"), self.outcomes)),
            "achieved_rate": self.achieved_rate,
            "helpfulness": dict(self.helpfulness),
            "top_categories": dict(self.top_categories),
            "satisfaction": dict(self.satisfaction),
            "friction": dict(self.friction),
            "session_types": dict(self.session_types),
            "success_patterns": dict(self.success_patterns),
        }


def _sorted_counts(counter: Counter, limit: Optional[int] = None) -> list[tuple[str, int]]:
    # Counter.most_common keeps insertion order among equal counts
    return counter.most_common(limit)


def _add_object_counts(counter: Counter, value) -> None:
    if isinstance(value, dict):
        for name, count in value.items():
            counter[name] += as_count(count) if isinstance(count, (int, float)) else 1


class FacetDiscovery:
    """Aggregates facet files."""

    def __init__(self, home: Optional[Union[str, Path]] = None):
        self.facets_dir = agent_data_dir(home) / "usage-data" / "facets"

    def scan_facets(self) -> SessionQuality:
        if not self.facets_dir.is_dir():
            return SessionQuality()

        try:
            paths = sorted(self.facets_dir.glob("*.json"))
        except OSError as e:
            logger.warning(f"Cannot list {self.facets_dir}: {e}")
            return SessionQuality()

        total = 0
        outcomes = [0] * 5
        helpfulness, categories, satisfaction = Counter(), Counter(), Counter()
        friction, session_types, success = Counter(), Counter(), Counter()

        for path in paths:
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                continue
            if not isinstance(data, dict):
                continue

            total += 1
            outcome = data.get("outcome")
            if isinstance(outcome, str):
                outcomes[OUTCOMES.index(outcome) if outcome in OUTCOMES else 4] += 1
            if isinstance(data.get("claude_helpfulness"), str):
                helpfulness[data["claude_helpfulness"]] += 1
            _add_object_counts(categories, data.get("goal_categories"))
            _add_object_counts(satisfaction, data.get("user_satisfaction_counts"))
            _add_object_counts(friction, data.get("friction_counts"))
            if isinstance(data.get("session_type"), str):
                session_types[data["session_type"]] += 1
            if isinstance(data.get("primary_success"), str):
                success[data["primary_success"]] += 1

        return SessionQuality(
            total_sessions=total,
            outcomes=outcomes,
            helpfulness=_sorted_counts(helpfulness),
            top_categories=_sorted_counts(categories, TOP_N),
            satisfaction=_sorted_counts(satisfaction),
            friction=_sorted_counts(friction, TOP_N),
            session_types=_sorted_counts(session_types),
            success_patterns=_sorted_counts(success),
        )
