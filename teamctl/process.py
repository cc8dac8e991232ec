"""
Process manager interface used by the controller to run agent processes.

The controller treats a ProcessManager as an opaque capability; any
failure it raises is surfaced to callers as ProcessError.
"""

import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from teamctl.errors import ProcessError


class AgentConfig(BaseModel):
    """What a process manager needs to start one agent."""
    name: str
    team_name: str
    agent_type: str = "general-purpose"
    model: Optional[str] = None
    cwd: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)
    command: Optional[List[str]] = Field(
        default=None, description="Overrides the manager's default command"
    )


@dataclass
class ProcessHandle:
    name: str
    pid: Optional[int]
    process: Any = None


class ProcessManager(ABC):
    @abstractmethod
    def spawn(self, config: AgentConfig) -> ProcessHandle:
        ...

    @abstractmethod
    def is_running(self, handle: ProcessHandle) -> bool:
        ...

    @abstractmethod
    def kill(self, handle: ProcessHandle) -> None:
        ...


class SubprocessManager(ProcessManager):
    """
    Runs each agent as a detached child process. Team and agent identity
    are passed through TEAMCTL_* environment variables.
    """

    def __init__(self, command: Optional[List[str]] = None, kill_timeout: float = 5.0):
        if command is None:
            from teamctl.config import get_settings
            command = get_settings().agent_command
        self.command = list(command)
        self.kill_timeout = kill_timeout

    def spawn(self, config: AgentConfig) -> ProcessHandle:
        cmd = list(config.command or self.command)
        env = {
            **os.environ,
            "TEAMCTL_TEAM": config.team_name,
            "TEAMCTL_AGENT": config.name,
            "TEAMCTL_AGENT_TYPE": config.agent_type,
            **config.env,
        }
        if config.model:
            env["TEAMCTL_AGENT_MODEL"] = config.model
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=config.cwd or None,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise ProcessError(f"Failed to spawn agent '{config.name}': {e}") from e
        return ProcessHandle(name=config.name, pid=proc.pid, process=proc)

    def is_running(self, handle: ProcessHandle) -> bool:
        proc = handle.process
        return proc is not None and proc.poll() is None

    def kill(self, handle: ProcessHandle) -> None:
        proc = handle.process
        if proc is None or proc.poll() is not None:
            return
        try:
            proc.terminate()
            try:
                proc.wait(timeout=self.kill_timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait(timeout=self.kill_timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ProcessError(f"Failed to kill agent '{handle.name}': {e}") from e
