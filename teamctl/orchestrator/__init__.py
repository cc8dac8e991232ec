"""
Coordination of agent teams: the controller and per-agent handles.
"""

from .agent_handle import AgentHandle
from .controller import TeamController

__all__ = ["AgentHandle", "TeamController"]
