"""
Team controller: the coordinating process for a team of agents.

The controller owns its own inbox (named after ``controller_name``) and a
background InboxPoller over it. Every polled batch is

1. appended to an in-memory receive backlog consumed by ``receive`` and
   ``receive_any``, and
2. published as named events (``idle``, ``shutdown:approved``,
   ``plan:approval_request``, ``permission:request``, ``message``).

The mailbox read flag is only ever flipped by the poller, so each entry is
seen at most once by the event path and at most once by the receive path.
"""

import threading
import time
import uuid
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from teamctl.communication.events import EventEmitter
from teamctl.communication.mailbox import MailboxStore
from teamctl.communication.poller import InboxPoller, PollEvent
from teamctl.communication.protocol import (
    InboxMessage,
    PermissionResponseMessage,
    PlanApprovalResponseMessage,
    ShutdownRequestMessage,
    StructuredMessage,
    TaskAssignmentMessage,
    now_iso,
    now_ms,
)
from teamctl.config import Settings, get_settings
from teamctl.diagnostics import ToolVersionChecker
from teamctl.errors import NotFoundError, NotInitializedError, ProcessError, WaitTimeoutError
from teamctl.orchestrator.agent_handle import AgentHandle
from teamctl.process import AgentConfig, ProcessHandle, ProcessManager, SubprocessManager
from teamctl.tasks.manager import TaskManager
from teamctl.tasks.schema import Task, TaskStatus
from teamctl.team.manager import TeamManager
from teamctl.team.schema import TeamMember
from teamctl.utils.logger import create_logger

# Structured message type -> controller event name; anything else is "message"
EVENT_FOR_TYPE = {
    "idle_notification": "idle",
    "shutdown_approved": "shutdown:approved",
    "plan_approval_request": "plan:approval_request",
    "permission_request": "permission:request",
}


class TeamController:
    """
    Coordinates agents through their mailboxes and the team's task graph.

    Usage::

        with TeamController("build-team") as ctrl:
            worker = ctrl.spawn_agent("worker1", prompt="Run the tests")
            ctrl.create_task("Fix flaky test", owner="worker1")
            reply = worker.receive(timeout=120)
    """

    def __init__(
        self,
        team_name: Optional[str] = None,
        settings: Optional[Settings] = None,
        process_manager: Optional[ProcessManager] = None,
        version_checker: Optional[ToolVersionChecker] = None,
        log_level: Optional[str] = None,
        description: Optional[str] = None,
        cwd: Optional[str] = None,
    ):
        self.settings = settings or get_settings()
        self.team_name = team_name or f"team-{uuid.uuid4().hex[:8]}"
        self.name = self.settings.controller_name
        self.description = description
        self.cwd = cwd
        self.log = create_logger(log_level or self.settings.log_level)

        home = self.settings.teamctl_home
        self.team = TeamManager(self.team_name, home=home, settings=self.settings, logger=self.log)
        self.tasks = TaskManager(self.team_name, home=home, settings=self.settings, logger=self.log)
        self.mailbox = MailboxStore(home=home, settings=self.settings, logger=self.log)
        self.poller = InboxPoller(
            self.team_name,
            self.name,
            self.mailbox,
            logger=self.log,
            poll_interval=self.settings.poll_interval,
        )
        self.poller.on_messages(self._handle_batch)
        self.events = EventEmitter(logger=self.log)

        self._process_manager = process_manager
        self.version_checker = version_checker or ToolVersionChecker(
            self.settings.agent_binary, self.settings.min_agent_version
        )
        self._agents: Dict[str, ProcessHandle] = {}

        self._backlog: Deque[PollEvent] = deque()
        self._backlog_cond = threading.Condition()
        self._backlog_overflowed = False
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> "TeamController":
        """Create (or reuse) the team, seed the task store and start polling."""
        if self._initialized:
            return self
        if self.team.exists():
            self.log.info(f'Reusing existing team "{self.team_name}"')
        else:
            self.team.create(description=self.description, cwd=self.cwd)
        self.tasks.init()
        self.poller.start()
        self._initialized = True
        return self

    def shutdown(self, destroy_team: bool = False) -> None:
        """Stop polling, kill spawned agents and optionally delete the team."""
        self.poller.stop()
        for name in list(self._agents):
            try:
                self.kill_agent(name)
            except ProcessError as e:
                self.log.warn(f"Failed to kill agent {name}:", str(e))
        if destroy_team:
            self.team.destroy()
        self._initialized = False

    def __enter__(self) -> "TeamController":
        return self.init()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _ensure_ready(self) -> None:
        if not self._initialized:
            raise NotInitializedError("Controller not initialized; call init() first")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, handler: Callable[..., Any]) -> Callable[..., Any]:
        return self.events.on(event, handler)

    def off(self, event: str, handler: Callable[..., Any]) -> None:
        self.events.off(event, handler)

    def _handle_batch(self, batch: List[PollEvent]) -> None:
        limit = self.settings.receive_backlog_limit
        with self._backlog_cond:
            self._backlog.extend(batch)
            overflow = len(self._backlog) - limit
            if overflow > 0:
                # Warn once per fill; receive calls that drain the backlog re-arm it
                report = self.log.debug if self._backlog_overflowed else self.log.warn
                report(f"Receive backlog full, dropping {overflow} oldest message(s)")
                self._backlog_overflowed = True
                for _ in range(overflow):
                    self._backlog.popleft()
            self._backlog_cond.notify_all()

        for event in batch:
            agent_name = event.raw.sender
            tag = event.parsed.type
            name = EVENT_FOR_TYPE.get(tag) if isinstance(tag, str) else None
            if name == "idle":
                self.events.emit(name, agent_name)
            elif name is not None:
                self.events.emit(name, agent_name, event.parsed)
            else:
                self.events.emit("message", agent_name, event.parsed)

    # ------------------------------------------------------------------
    # Outbound messages
    # ------------------------------------------------------------------

    def send(self, agent_name: str, text: str, summary: Optional[str] = None) -> None:
        """Write plain text from the controller into `agent_name`'s inbox."""
        self._ensure_ready()
        self.mailbox.write(
            self.team_name,
            agent_name,
            InboxMessage(sender=self.name, text=text, summary=summary),
        )

    def broadcast(self, text: str, summary: Optional[str] = None) -> None:
        """Send `text` to every team member except the controller."""
        self._ensure_ready()
        for member in self.team.get_config().members:
            if member.name != self.name:
                self.send(member.name, text, summary)

    def _send_structured(self, agent_name: str, message: StructuredMessage) -> None:
        self.send(agent_name, message.to_json())

    def send_shutdown_request(self, agent_name: str, reason: Optional[str] = None) -> str:
        """Ask an agent to shut down. Returns the request id."""
        request_id = f"shutdown-{now_ms()}@{agent_name}"
        self._send_structured(
            agent_name,
            ShutdownRequestMessage(
                request_id=request_id, sender=self.name, reason=reason, timestamp=now_iso()
            ),
        )
        self.log.debug(f"Sent shutdown request {request_id}")
        return request_id

    def send_plan_approval(
        self, agent_name: str, request_id: str, approved: bool, feedback: Optional[str] = None
    ) -> None:
        self._send_structured(
            agent_name,
            PlanApprovalResponseMessage(
                request_id=request_id,
                sender=self.name,
                approved=approved,
                feedback=feedback,
                timestamp=now_iso(),
            ),
        )

    def send_permission_response(self, agent_name: str, request_id: str, approved: bool) -> None:
        self._send_structured(
            agent_name,
            PermissionResponseMessage(
                request_id=request_id, sender=self.name, approved=approved, timestamp=now_iso()
            ),
        )

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(
        self,
        subject: str,
        description: str = "",
        active_form: Optional[str] = None,
        owner: Optional[str] = None,
        status: str = TaskStatus.PENDING.value,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Create a task; if it has an owner, notify the owner. Returns the id."""
        self._ensure_ready()
        task_id = self.tasks.create(
            subject=subject,
            description=description,
            active_form=active_form,
            owner=owner,
            status=status,
            metadata=metadata,
        )
        if owner:
            self._send_assignment(self.tasks.get(task_id))
        return task_id

    def assign_task(self, task_id: str, agent_name: str) -> Task:
        self._ensure_ready()
        task = self.tasks.update(task_id, owner=agent_name)
        self._send_assignment(task)
        return task

    def _send_assignment(self, task: Task) -> None:
        self._send_structured(
            task.owner,
            TaskAssignmentMessage(
                task_id=task.id,
                subject=task.subject,
                description=task.description,
                assigned_by=self.name,
                timestamp=now_iso(),
            ),
        )

    # ------------------------------------------------------------------
    # Blocking receive
    # ------------------------------------------------------------------

    def _take(self, match: Callable[[PollEvent], bool], first_only: bool = False) -> Tuple[List[PollEvent], List[PollEvent]]:
        """
        Remove matching entries from the backlog, split into (content, signals).
        With `first_only`, stop after the first content entry; later entries stay.
        """
        content: List[PollEvent] = []
        signals: List[PollEvent] = []
        with self._backlog_cond:
            remaining: Deque[PollEvent] = deque()
            while self._backlog:
                event = self._backlog.popleft()
                if (first_only and content) or not match(event):
                    remaining.append(event)
                elif event.parsed.is_signal:
                    signals.append(event)
                else:
                    content.append(event)
            self._backlog = remaining
            if len(remaining) < self.settings.receive_backlog_limit:
                self._backlog_overflowed = False
        return content, signals

    def _wait_for_backlog(self, seconds: float) -> None:
        with self._backlog_cond:
            self._backlog_cond.wait(timeout=seconds)

    def receive(
        self,
        agent_name: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        all_messages: bool = False,
    ) -> List[InboxMessage]:
        """
        Block until `agent_name` sends content, and return it.

        Idle notifications and shutdown approvals are signals, not replies:
        they are only returned (the latest one, alone) when the timeout
        passes without any content. With `all_messages`, keep collecting
        content until the timeout and return everything collected.

        Raises:
            WaitTimeoutError: nothing at all arrived from the agent in time
        """
        self._ensure_ready()
        timeout = self.settings.receive_timeout if timeout is None else timeout
        interval = self.settings.receive_poll_interval if poll_interval is None else poll_interval
        deadline = time.monotonic() + timeout

        collected: List[InboxMessage] = []
        fallback: Optional[InboxMessage] = None
        while True:
            self.poller.poll()
            content, signals = self._take(lambda e: e.raw.sender == agent_name)
            if signals:
                fallback = signals[-1].raw
            collected.extend(e.raw for e in content)
            if collected and not all_messages:
                return collected
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self._wait_for_backlog(min(interval, remaining))

        if collected:
            return collected
        if fallback is not None:
            self.log.debug(f"No content from {agent_name}; returning signal message")
            return [fallback]
        raise WaitTimeoutError(f"Timeout waiting for message from '{agent_name}' after {timeout}s")

    def receive_any(
        self, timeout: Optional[float] = None, poll_interval: Optional[float] = None
    ) -> InboxMessage:
        """
        Block until any agent sends content and return the first such entry.
        Idle notifications and shutdown approvals are discarded.

        Raises:
            WaitTimeoutError: no content arrived in time
        """
        self._ensure_ready()
        timeout = self.settings.receive_timeout if timeout is None else timeout
        interval = self.settings.receive_poll_interval if poll_interval is None else poll_interval
        deadline = time.monotonic() + timeout

        while True:
            self.poller.poll()
            content, _ = self._take(lambda e: True, first_only=True)
            if content:
                return content[0].raw
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise WaitTimeoutError(f"Timeout waiting for any message after {timeout}s")
            self._wait_for_backlog(min(interval, remaining))

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    @property
    def process_manager(self) -> ProcessManager:
        if self._process_manager is None:
            self._process_manager = SubprocessManager(self.settings.agent_command)
        return self._process_manager

    def spawn_agent(
        self,
        name: str,
        agent_type: str = "general-purpose",
        model: Optional[str] = None,
        cwd: Optional[str] = None,
        prompt: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> AgentHandle:
        """Register `name` as a team member, start its process and optionally brief it."""
        self._ensure_ready()
        member = TeamMember(
            agent_id=f"{name}@{self.team_name}",
            name=name,
            agent_type=agent_type,
            model=model,
            cwd=cwd or self.cwd or "",
        )
        self.team.add_member(member)
        config = AgentConfig(
            name=name,
            team_name=self.team_name,
            agent_type=agent_type,
            model=model,
            cwd=cwd or self.cwd,
            env=env or {},
        )
        try:
            handle = self.process_manager.spawn(config)
        except Exception as e:
            self.team.remove_member(name)
            if isinstance(e, ProcessError):
                raise
            raise ProcessError(f"Failed to spawn agent '{name}': {e}") from e

        self._agents[name] = handle
        self.log.info(f'Spawned agent "{name}"', f"pid={handle.pid}")
        if prompt:
            self.send(name, prompt)
        self.events.emit("agent:spawned", name, handle.pid)
        return AgentHandle(self, name, handle.pid)

    def agent(self, name: str) -> AgentHandle:
        """Handle for an existing team member."""
        self._ensure_ready()
        if self.team.get_config().member(name) is None:
            raise NotFoundError(f'Agent "{name}" is not a member of team "{self.team_name}"')
        handle = self._agents.get(name)
        return AgentHandle(self, name, handle.pid if handle else None)

    def kill_agent(self, name: str) -> None:
        """Force-stop an agent spawned by this controller and drop it from the team."""
        handle = self._agents.pop(name, None)
        if handle is None:
            self.log.debug(f'No running agent "{name}" to kill')
            return
        try:
            self.process_manager.kill(handle)
        except ProcessError:
            raise
        except Exception as e:
            raise ProcessError(f"Failed to kill agent '{name}': {e}") from e
        finally:
            if self.team.exists():
                self.team.remove_member(name)
        self.events.emit("agent:exited", name)

    def is_agent_running(self, name: str) -> bool:
        handle = self._agents.get(name)
        if handle is None:
            return False
        try:
            return self.process_manager.is_running(handle)
        except ProcessError:
            raise
        except Exception as e:
            raise ProcessError(f"Failed to query agent '{name}': {e}") from e

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def get_agent_version(self) -> Optional[str]:
        return self.version_checker.get_version()

    def verify_compatibility(self) -> Dict[str, Any]:
        return self.version_checker.verify_compatibility()
