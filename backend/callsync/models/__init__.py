"""Models package initialization."""

from callsync.models.agent_log import AgentLog, AgentLogLevel
from callsync.models.call import Call
from callsync.models.project import Project

__all__ = [
    # Project
    "Project",
    # Call
    "Call",
    # Audit
    "AgentLog",
    "AgentLogLevel",
]
