from .schema import TeamConfig, TeamMember
from .manager import TeamManager

__all__ = ["TeamConfig", "TeamMember", "TeamManager"]
