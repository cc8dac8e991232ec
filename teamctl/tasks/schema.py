# teamctl/tasks/schema.py

from __future__ import annotations
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
import re


class TaskStatus(str, Enum):
    """Built-in statuses. Teams may use other status strings as well."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Task(BaseModel):
    """
    A unit of work in a team's task graph, stored as tasks/<team>/<id>.json.
    """
    id: str = Field(..., description="Positive integer id, unique within the team e.g. '7'")
    subject: str = Field(..., description="Short human-readable title")
    description: str = Field("", description="What needs to be done")
    active_form: Optional[str] = Field(
        None, alias="activeForm", description="Progress label shown while the task is worked on"
    )
    owner: Optional[str] = Field(None, description="Name of the agent that owns the task")
    status: str = Field(TaskStatus.PENDING.value, description="pending, in_progress, completed or custom")
    blocks: List[str] = Field(default_factory=list, description="Ids of tasks this task blocks")
    blocked_by: List[str] = Field(
        default_factory=list, alias="blockedBy", description="Ids of tasks blocking this task"
    )
    metadata: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        json_schema_extra={
            "example": {
                "id": "1",
                "subject": "Write the parser",
                "description": "Parse the config file into Settings",
                "activeForm": "Writing the parser",
                "owner": "worker1",
                "status": "pending",
                "blocks": ["2"],
                "blockedBy": [],
            }
        },
    )

    @field_validator("id", mode="before")
    @classmethod
    def id_format(cls, v: Any) -> str:
        v = str(v)
        if not re.fullmatch(r"[1-9]\d*", v):
            raise ValueError("Task id must be a positive integer (e.g. '7')")
        return v

    @field_validator("status", mode="before")
    @classmethod
    def status_value(cls, v: Any) -> Any:
        return v.value if isinstance(v, Enum) else v

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
