"""
Per-agent proxy over a TeamController.
"""

import time
from typing import TYPE_CHECKING, Iterator, Optional

from teamctl.communication.protocol import InboxMessage
from teamctl.errors import WaitTimeoutError

if TYPE_CHECKING:
    from teamctl.orchestrator.controller import TeamController


class AgentHandle:
    """
    Convenience wrapper bound to one agent name. Every call delegates to
    the controller that created it.
    """

    def __init__(self, controller: "TeamController", name: str, pid: Optional[int] = None):
        self.controller = controller
        self.name = name
        self.pid = pid

    def __repr__(self) -> str:
        return f"AgentHandle(name={self.name!r}, pid={self.pid!r})"

    def send(self, message: str, summary: Optional[str] = None) -> None:
        self.controller.send(self.name, message, summary)

    def receive(self, **opts) -> str:
        """Wait for a reply from this agent; multiple entries are joined by newlines."""
        messages = self.controller.receive(self.name, **opts)
        return "\n".join(m.text for m in messages)

    def ask(self, question: str, **opts) -> str:
        """Send `question`, then wait for the reply."""
        self.send(question)
        return self.receive(**opts)

    @property
    def is_running(self) -> bool:
        return self.controller.is_agent_running(self.name)

    def shutdown(self) -> str:
        """Ask the agent to shut down gracefully. Returns the request id."""
        return self.controller.send_shutdown_request(self.name)

    def kill(self) -> None:
        self.controller.kill_agent(self.name)

    def events(self, poll_interval: float = 0.5, timeout: float = 0) -> Iterator[InboxMessage]:
        """
        Yield entries from this agent as they arrive. Stops after `timeout`
        seconds (0 = never) or once the agent is no longer running.
        """
        deadline = time.monotonic() + timeout if timeout > 0 else None
        while deadline is None or time.monotonic() < deadline:
            try:
                messages = self.controller.receive(
                    self.name, timeout=poll_interval, poll_interval=poll_interval
                )
            except WaitTimeoutError:
                messages = []
            for message in messages:
                yield message
            if not self.is_running:
                return
