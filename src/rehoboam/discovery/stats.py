"""
Scanner for ``stats-cache.json``: the pre-computed usage statistics the
agent tool maintains (daily activity, token usage per model, session
counts and the hourly distribution of activity).
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .paths import agent_data_dir, as_count

logger = logging.getLogger(__name__)


@dataclass
class DailyActivity:
    date: str
    messages: int = 0
    sessions: int = 0
    tool_calls: int = 0


@dataclass
class ModelUsage:
    model: str
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_creation: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input + self.output + self.cache_read + self.cache_creation


@dataclass
class LongestSession:
    session_id: str
    duration_ms: int = 0
    message_count: int = 0
    timestamp: Optional[str] = None


@dataclass
class StatsCache:
    """Parsed stats cache; all fields empty when the file is unavailable."""
    last_computed_date: str = ""
    daily_activity: list[DailyActivity] = field(default_factory=list)
    model_usage: list[ModelUsage] = field(default_factory=list)
    total_sessions: int = 0
    total_messages: int = 0
    longest_session: Optional[LongestSession] = None
    first_session_date: str = ""
    hour_counts: list[int] = field(default_factory=lambda: [0] * 24)

    @property
    def busiest_hour(self) -> Optional[int]:
        if not any(self.hour_counts):
            return None
        return max(range(24), key=lambda hour: self.hour_counts[hour])

    def to_dict(self) -> dict:
        return {
            "last_computed_date": self.last_computed_date,
            "total_sessions": self.total_sessions,
            "total_messages": self.total_messages,
            "first_session_date": self.first_session_date,
            "days_active": len(self.daily_activity),
            "models": {m.model: m.total_tokens for m in self.model_usage},
            "longest_session": self.longest_session.session_id if self.longest_session else None,
            "busiest_hour": self.busiest_hour,
        }


def _str(value) -> str:
    return value if isinstance(value, str) else ""


def parse_stats(data: dict) -> StatsCache:
    """Build a StatsCache from the decoded JSON object."""
    daily = []
    for item in data.get("dailyActivity") or []:
        if isinstance(item, dict) and isinstance(item.get("date"), str):
            daily.append(DailyActivity(
                date=item["date"],
                messages=as_count(item.get("messageCount")),
                sessions=as_count(item.get("sessionCount")),
                tool_calls=as_count(item.get("toolCallCount")),
            ))

    # modelUsage is an object keyed by model name
    usage = []
    model_usage = data.get("modelUsage")
    if isinstance(model_usage, dict):
        for model, item in model_usage.items():
            item = item if isinstance(item, dict) else {}
            usage.append(ModelUsage(
                model=model,
                input=as_count(item.get("inputTokens")),
                output=as_count(item.get("outputTokens")),
                cache_read=as_count(item.get("cacheReadInputTokens")),
                cache_creation=as_count(item.get("cacheCreationInputTokens")),
            ))

    longest = None
    raw_longest = data.get("longestSession")
    if isinstance(raw_longest, dict) and isinstance(raw_longest.get("sessionId"), str):
        timestamp = raw_longest.get("timestamp")
        longest = LongestSession(
            session_id=raw_longest["sessionId"],
            duration_ms=as_count(raw_longest.get("duration")),
            message_count=as_count(raw_longest.get("messageCount")),
            timestamp=timestamp if isinstance(timestamp, str) else None,
        )

    # hourCounts is an object with keys "0".."23"
    hours = [0] * 24
    hour_counts = data.get("hourCounts")
    if isinstance(hour_counts, dict):
        for key, value in hour_counts.items():
            try:
                hour = int(key)
            except ValueError:
                continue
            if 0 <= hour < 24:
                hours[hour] = as_count(value)

    return StatsCache(
        last_computed_date=_str(data.get("lastComputedDate")),
        daily_activity=daily,
        model_usage=usage,
        total_sessions=as_count(data.get("totalSessions")),
        total_messages=as_count(data.get("totalMessages")),
        longest_session=longest,
        first_session_date=_str(data.get("firstSessionDate")),
        hour_counts=hours,
    )


class StatsDiscovery:
    """Reads the stats cache."""

    def __init__(self, home: Optional[Union[str, Path]] = None):
        self.path = agent_data_dir(home) / "stats-cache.json"

    def scan_stats(self) -> StatsCache:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return StatsCache()
        except (OSError, ValueError) as e:
            logger.warning(f"Cannot read stats cache {self.path}: {e}")
            return StatsCache()
        if not isinstance(data, dict):
            return StatsCache()
        return parse_stats(data)
