"""
Team registry records, stored as teams/<team>/config.json.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from teamctl.communication.protocol import now_ms


class TeamMember(BaseModel):
    agent_id: str = Field(..., alias="agentId", description="'<name>@<team>'")
    name: str
    agent_type: str = Field("general-purpose", alias="agentType")
    model: Optional[str] = None
    joined_at: int = Field(default_factory=now_ms, alias="joinedAt", description="Epoch milliseconds")
    tmux_pane_id: str = Field("", alias="tmuxPaneId")
    cwd: str = ""
    subscriptions: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class TeamConfig(BaseModel):
    name: str
    description: Optional[str] = None
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    lead_agent_id: str = Field(..., alias="leadAgentId")
    lead_session_id: str = Field("", alias="leadSessionId")
    members: List[TeamMember] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def member(self, name: str) -> Optional[TeamMember]:
        for m in self.members:
            if m.name == name:
                return m
        return None

    def to_dict(self):
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
