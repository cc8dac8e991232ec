"""
Exception types raised by teamctl.

Blocking waits raise ``WaitTimeoutError``; that is an expected outcome, not a
crash, and callers are expected to handle it.
"""

from pathlib import Path
from typing import Optional


class TeamCtlError(Exception):
    """Base class for all teamctl errors."""


class NotFoundError(TeamCtlError, LookupError):
    """A task or team does not exist on disk."""


class LockTimeoutError(TeamCtlError):
    """A mailbox lock could not be acquired within the retry budget."""

    def __init__(self, path: Path, attempts: int):
        super().__init__(f"Could not lock {path} after {attempts} attempts")
        self.path = path
        self.attempts = attempts


class WaitTimeoutError(TeamCtlError, TimeoutError):
    """A blocking receive or task wait passed its deadline."""


class ProcessError(TeamCtlError):
    """The process manager failed to spawn, query or kill an agent."""


class NotInitializedError(TeamCtlError):
    """A controller method was called before ``init()``."""


class CorruptStateError(TeamCtlError, ValueError):
    """A JSON document on disk could not be parsed."""

    def __init__(self, path: Path, reason: Optional[str] = None):
        msg = f"Corrupt JSON in {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.path = path
