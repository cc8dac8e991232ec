"""
teamctl: coordinate independent agent processes through file-backed
mailboxes and a shared task graph.
"""

from teamctl.errors import (
    CorruptStateError,
    LockTimeoutError,
    NotFoundError,
    NotInitializedError,
    ProcessError,
    TeamCtlError,
    WaitTimeoutError,
)
from teamctl.orchestrator import AgentHandle, TeamController

__version__ = "0.1.0"

__all__ = [
    "TeamController",
    "AgentHandle",
    "TeamCtlError",
    "NotFoundError",
    "LockTimeoutError",
    "WaitTimeoutError",
    "ProcessError",
    "NotInitializedError",
    "CorruptStateError",
]
