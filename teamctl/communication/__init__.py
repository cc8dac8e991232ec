"""
Mailbox communication for teamctl.

File-backed per-agent inboxes, message classification and inbox polling.
"""

from .protocol import InboxMessage, StructuredMessage, classify
from .mailbox import MailboxStore
from .poller import InboxPoller, PollEvent
from .events import EventEmitter

__all__ = [
    "InboxMessage",
    "StructuredMessage",
    "classify",
    "MailboxStore",
    "InboxPoller",
    "PollEvent",
    "EventEmitter",
]
