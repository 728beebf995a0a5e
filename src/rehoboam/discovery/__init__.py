"""
Read-only scanners over the agent tool's per-user data directory
(``~/.claude``). Every scanner returns an empty aggregate when its files
are missing or unreadable.
"""

from .debug_logs import DebugDiscovery, DebugLogEntry
from .facets import FacetDiscovery, SessionQuality
from .history import HistoryDiscovery, HistoryEntry
from .paths import agent_data_dir
from .stats import DailyActivity, LongestSession, ModelUsage, StatsCache, StatsDiscovery
from .teams import TeamConfig, TeamDiscovery, TeamMember

__all__ = [
    "DailyActivity",
    "DebugDiscovery",
    "DebugLogEntry",
    "FacetDiscovery",
    "HistoryDiscovery",
    "HistoryEntry",
    "LongestSession",
    "ModelUsage",
    "SessionQuality",
    "StatsCache",
    "StatsDiscovery",
    "TeamConfig",
    "TeamDiscovery",
    "TeamMember",
    "agent_data_dir",
]
