"""
Message protocol definitions for mailbox traffic.

A mailbox holds ``InboxMessage`` entries whose ``text`` is either plain text
or a JSON-encoded structured message tagged by ``type``. ``classify`` turns
an entry into one of the ``StructuredMessage`` models below.
"""

import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


def now_iso() -> str:
    """UTC timestamp in the same shape as JavaScript's toISOString()."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_ms() -> int:
    return int(time.time() * 1000)


class InboxMessage(BaseModel):
    """
    One entry of an agent's mailbox file.
    """

    sender: str = Field(..., alias="from", description="Name of the sending agent")
    text: str = Field(..., description="Plain text or a JSON-encoded structured message")
    timestamp: str = Field(default_factory=now_iso)
    read: bool = False
    summary: Optional[str] = Field(default=None, description="Short human-readable preview")
    color: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class StructuredMessage(BaseModel):
    """
    Base of all parsed payloads. Unknown ``type`` values are kept as
    instances of this class with every field preserved.
    """

    type: str

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @property
    def is_signal(self) -> bool:
        return isinstance(self.type, str) and self.type in SIGNAL_TYPES

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class PlainTextMessage(StructuredMessage):
    type: Literal["plain_text"] = "plain_text"
    text: str = ""


class TaskAssignmentMessage(StructuredMessage):
    type: Literal["task_assignment"] = "task_assignment"
    task_id: Optional[str] = Field(default=None, alias="taskId")
    subject: Optional[str] = None
    description: Optional[str] = None
    assigned_by: Optional[str] = Field(default=None, alias="assignedBy")
    timestamp: Optional[str] = None


class ShutdownRequestMessage(StructuredMessage):
    type: Literal["shutdown_request"] = "shutdown_request"
    request_id: Optional[str] = Field(default=None, alias="requestId")
    sender: Optional[str] = Field(default=None, alias="from")
    reason: Optional[str] = None
    timestamp: Optional[str] = None


class ShutdownApprovedMessage(StructuredMessage):
    type: Literal["shutdown_approved"] = "shutdown_approved"
    request_id: Optional[str] = Field(default=None, alias="requestId")
    sender: Optional[str] = Field(default=None, alias="from")
    timestamp: Optional[str] = None
    pane_id: Optional[str] = Field(default=None, alias="paneId")
    backend_type: Optional[str] = Field(default=None, alias="backendType")


class IdleNotificationMessage(StructuredMessage):
    type: Literal["idle_notification"] = "idle_notification"
    sender: Optional[str] = Field(default=None, alias="from")
    timestamp: Optional[str] = None
    idle_reason: Optional[str] = Field(default=None, alias="idleReason")


class PlanApprovalRequestMessage(StructuredMessage):
    type: Literal["plan_approval_request"] = "plan_approval_request"
    request_id: Optional[str] = Field(default=None, alias="requestId")
    sender: Optional[str] = Field(default=None, alias="from")
    plan_content: Optional[str] = Field(default=None, alias="planContent")
    timestamp: Optional[str] = None


class PlanApprovalResponseMessage(StructuredMessage):
    type: Literal["plan_approval_response"] = "plan_approval_response"
    request_id: Optional[str] = Field(default=None, alias="requestId")
    sender: Optional[str] = Field(default=None, alias="from")
    approved: Optional[bool] = None
    feedback: Optional[str] = None
    timestamp: Optional[str] = None


class PermissionRequestMessage(StructuredMessage):
    type: Literal["permission_request"] = "permission_request"
    request_id: Optional[str] = Field(default=None, alias="requestId")
    sender: Optional[str] = Field(default=None, alias="from")
    tool_name: Optional[str] = Field(default=None, alias="toolName")
    description: Optional[str] = None
    input: Optional[Any] = None
    timestamp: Optional[str] = None


class PermissionResponseMessage(StructuredMessage):
    type: Literal["permission_response"] = "permission_response"
    request_id: Optional[str] = Field(default=None, alias="requestId")
    sender: Optional[str] = Field(default=None, alias="from")
    approved: Optional[bool] = None
    timestamp: Optional[str] = None


MESSAGE_TYPES: Dict[str, Type[StructuredMessage]] = {
    "plain_text": PlainTextMessage,
    "task_assignment": TaskAssignmentMessage,
    "shutdown_request": ShutdownRequestMessage,
    "shutdown_approved": ShutdownApprovedMessage,
    "idle_notification": IdleNotificationMessage,
    "plan_approval_request": PlanApprovalRequestMessage,
    "plan_approval_response": PlanApprovalResponseMessage,
    "permission_request": PermissionRequestMessage,
    "permission_response": PermissionResponseMessage,
}

# Status-only messages; a blocking receive does not treat them as a reply
SIGNAL_TYPES = frozenset({"idle_notification", "shutdown_approved"})


def classify(entry: Union[InboxMessage, str]) -> StructuredMessage:
    """
    Parse a mailbox entry's text into a structured message.

    Anything that is not a JSON object with a ``type`` key becomes a
    PlainTextMessage carrying the original text. Never raises.
    """
    text = entry.text if isinstance(entry, InboxMessage) else entry
    try:
        data = json.loads(text)
    except (TypeError, ValueError, RecursionError):
        return PlainTextMessage(text=text)
    if not isinstance(data, dict) or "type" not in data:
        return PlainTextMessage(text=text)

    tag = data["type"]
    model = MESSAGE_TYPES.get(tag) if isinstance(tag, str) else None
    if model is not None:
        try:
            return model.model_validate(data)
        except (ValidationError, RecursionError):
            pass
    try:
        return StructuredMessage.model_validate(data)
    except (ValidationError, RecursionError):
        return StructuredMessage.model_construct(**data)
