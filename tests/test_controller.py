# tests/test_controller.py

import json
import time
from unittest.mock import MagicMock

import pytest

from teamctl.communication.protocol import InboxMessage, now_iso
from teamctl.errors import NotFoundError, NotInitializedError, ProcessError, WaitTimeoutError
from teamctl.orchestrator.controller import TeamController
from teamctl.process import ProcessHandle, ProcessManager
from teamctl.team.schema import TeamMember


class FakeProcessManager(ProcessManager):
    def __init__(self, fail_spawn=False):
        self.fail_spawn = fail_spawn
        self.spawned = []
        self.killed = []
        self._next_pid = 1000

    def spawn(self, config):
        if self.fail_spawn:
            raise OSError("no such binary")
        self._next_pid += 1
        self.spawned.append(config)
        return ProcessHandle(name=config.name, pid=self._next_pid)

    def is_running(self, handle):
        return handle.name not in self.killed

    def kill(self, handle):
        self.killed.append(handle.name)


class FakeVersionChecker:
    def get_version(self):
        return "2.1.5"

    def verify_compatibility(self):
        return {"compatible": True, "version": "2.1.5", "minimum": "2.1.0"}


@pytest.fixture
def processes():
    return FakeProcessManager()


@pytest.fixture
def ctrl(settings, processes):
    controller = TeamController(
        "test-ctrl",
        settings=settings,
        process_manager=processes,
        version_checker=FakeVersionChecker(),
        log_level="silent",
    )
    controller.init()
    yield controller
    controller.shutdown(destroy_team=True)


def _inbox(ctrl, agent):
    return ctrl.mailbox.read_all(ctrl.team_name, agent)


def _to_controller(ctrl, sender, text):
    ctrl.mailbox.write(ctrl.team_name, "controller", InboxMessage(sender=sender, text=text))


def _structured(type_, **fields):
    return json.dumps({"type": type_, "timestamp": now_iso(), **fields})


# ----------------------------------------------------------------------
# Setup and outbound messages
# ----------------------------------------------------------------------

def test_initializes_with_a_team(ctrl):
    config = ctrl.team.get_config()
    assert config.name == "test-ctrl"
    assert [m.name for m in config.members] == ["controller"]
    assert ctrl.poller.running


def test_init_is_idempotent(ctrl):
    assert ctrl.init() is ctrl


def test_reuses_existing_team(ctrl, settings, processes):
    ctrl.create_task("one")
    again = TeamController("test-ctrl", settings=settings, process_manager=processes, log_level="silent")
    again.init()
    try:
        assert again.create_task("two") == "2"
    finally:
        again.shutdown()


def test_requires_init(settings):
    fresh = TeamController("uninit", settings=settings, log_level="silent")
    with pytest.raises(NotInitializedError, match="not initialized"):
        fresh.send("agent", "hello")
    with pytest.raises(NotInitializedError):
        fresh.receive("agent", timeout=0.1)


def test_context_manager(settings, processes):
    with TeamController("ctx", settings=settings, process_manager=processes, log_level="silent") as c:
        assert c.poller.running
    assert not c.poller.running


def test_send(ctrl):
    ctrl.send("worker1", "Hello worker", "greeting")
    inbox = _inbox(ctrl, "worker1")
    assert len(inbox) == 1
    assert inbox[0].text == "Hello worker"
    assert inbox[0].sender == "controller"
    assert inbox[0].summary == "greeting"


def test_broadcast_skips_controller(ctrl):
    for name in ("w1", "w2"):
        ctrl.team.add_member(TeamMember(agent_id=f"{name}@test-ctrl", name=name, cwd="/tmp"))

    ctrl.broadcast("Everyone listen up", "announcement")

    for name in ("w1", "w2"):
        inbox = _inbox(ctrl, name)
        assert [m.text for m in inbox] == ["Everyone listen up"]
        assert inbox[0].summary == "announcement"
    assert _inbox(ctrl, "controller") == []


def test_create_task(ctrl):
    task_id = ctrl.create_task("Test task", "A test")
    assert task_id == "1"
    task = ctrl.tasks.get(task_id)
    assert task.status == "pending"
    assert task.blocks == [] and task.blocked_by == []


def test_create_task_with_owner_sends_assignment(ctrl):
    task_id = ctrl.create_task("Assigned task", "Do this", owner="worker1")
    assert ctrl.tasks.get(task_id).owner == "worker1"

    inbox = _inbox(ctrl, "worker1")
    assert len(inbox) == 1
    parsed = json.loads(inbox[0].text)
    assert parsed["type"] == "task_assignment"
    assert parsed["taskId"] == task_id
    assert parsed["subject"] == "Assigned task"
    assert parsed["assignedBy"] == "controller"


def test_assign_task(ctrl):
    task_id = ctrl.create_task("Unassigned", "Later")
    assert _inbox(ctrl, "worker2") == []

    task = ctrl.assign_task(task_id, "worker2")
    assert task.owner == "worker2"
    assert ctrl.tasks.get(task_id).owner == "worker2"
    parsed = json.loads(_inbox(ctrl, "worker2")[0].text)
    assert parsed["type"] == "task_assignment"
    assert parsed["description"] == "Later"


def test_shutdown_request(ctrl):
    request_id = ctrl.send_shutdown_request("worker1")
    parsed = json.loads(_inbox(ctrl, "worker1")[0].text)
    assert parsed["type"] == "shutdown_request"
    assert parsed["from"] == "controller"
    assert parsed["requestId"] == request_id
    assert request_id.startswith("shutdown-") and request_id.endswith("@worker1")


@pytest.mark.parametrize("approved,feedback", [(True, "Looks great"), (False, "Needs rework")])
def test_plan_approval(ctrl, approved, feedback):
    ctrl.send_plan_approval("coder", "plan-abc", approved, feedback)
    parsed = json.loads(_inbox(ctrl, "coder")[0].text)
    assert parsed["type"] == "plan_approval_response"
    assert parsed["requestId"] == "plan-abc"
    assert parsed["approved"] is approved
    assert parsed["feedback"] == feedback


@pytest.mark.parametrize("approved", [True, False])
def test_permission_response(ctrl, approved):
    ctrl.send_permission_response("worker1", "perm-42", approved)
    parsed = json.loads(_inbox(ctrl, "worker1")[0].text)
    assert parsed["type"] == "permission_response"
    assert parsed["requestId"] == "perm-42"
    assert parsed["approved"] is approved


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------

def test_idle_event(ctrl):
    seen = []
    ctrl.on("idle", seen.append)
    _to_controller(ctrl, "worker1", _structured("idle_notification", **{"from": "worker1", "idleReason": "available"}))
    ctrl.poller.poll()
    assert seen == ["worker1"]


def test_shutdown_approved_event(ctrl):
    seen = []
    ctrl.on("shutdown:approved", lambda name, msg: seen.append((name, msg)))
    _to_controller(
        ctrl,
        "worker1",
        _structured("shutdown_approved", requestId="shutdown-123@worker1", paneId="pane-1", backendType="tmux"),
    )
    ctrl.poller.poll()
    name, msg = seen[0]
    assert name == "worker1"
    assert msg.request_id == "shutdown-123@worker1"
    assert msg.pane_id == "pane-1"


def test_plan_and_permission_request_events(ctrl):
    plans, perms = [], []
    ctrl.on("plan:approval_request", lambda name, msg: plans.append((name, msg)))
    ctrl.on("permission:request", lambda name, msg: perms.append((name, msg)))
    _to_controller(ctrl, "coder", _structured("plan_approval_request", requestId="plan-789", planContent="Step 1: Research"))
    _to_controller(ctrl, "worker1", _structured("permission_request", requestId="perm-456", toolName="Write", description="Write to /tmp/foo.txt"))
    ctrl.poller.poll()

    assert plans[0][0] == "coder"
    assert "Step 1" in plans[0][1].plan_content
    assert perms[0][0] == "worker1"
    assert perms[0][1].tool_name == "Write"


def test_message_event_for_everything_else(ctrl):
    seen = []
    ctrl.on("message", lambda name, msg: seen.append((name, msg)))
    _to_controller(ctrl, "worker1", "Just a plain message")
    _to_controller(ctrl, "worker1", _structured("custom_status", progress=50))
    ctrl.poller.poll()

    assert [(n, m.type) for n, m in seen] == [("worker1", "plain_text"), ("worker1", "custom_status")]
    assert seen[0][1].text == "Just a plain message"


def test_exactly_one_event_per_entry(ctrl):
    counts = {}
    for event in ("idle", "shutdown:approved", "plan:approval_request", "permission:request", "message"):
        ctrl.on(event, lambda *args, _e=event: counts.__setitem__(_e, counts.get(_e, 0) + 1))
    _to_controller(ctrl, "w", _structured("idle_notification"))
    _to_controller(ctrl, "w", _structured("shutdown_approved"))
    _to_controller(ctrl, "w", "text")
    ctrl.poller.poll()
    assert counts == {"idle": 1, "shutdown:approved": 1, "message": 1}


def test_off_unregisters(ctrl):
    seen = []
    ctrl.on("message", lambda name, msg: seen.append(name))
    handler = ctrl.on("message", lambda name, msg: seen.append("second"))
    ctrl.off("message", handler)
    _to_controller(ctrl, "worker1", "hi")
    ctrl.poller.poll()
    assert seen == ["worker1"]


# ----------------------------------------------------------------------
# Blocking receive
# ----------------------------------------------------------------------

def test_receive_plain_text(ctrl):
    _to_controller(ctrl, "worker1", "Hello controller")
    messages = ctrl.receive("worker1", timeout=1, poll_interval=0.05)
    assert [m.text for m in messages] == ["Hello controller"]


def test_receive_skips_signal_when_content_present(ctrl):
    _to_controller(ctrl, "worker1", _structured("shutdown_approved", requestId="sd-1"))
    _to_controller(ctrl, "worker1", "Actual content")
    messages = ctrl.receive("worker1", timeout=1, poll_interval=0.05)
    assert [m.text for m in messages] == ["Actual content"]


def test_receive_falls_back_to_idle(ctrl):
    _to_controller(ctrl, "worker1", _structured("idle_notification", idleReason="turn_ended"))
    messages = ctrl.receive("worker1", timeout=0.3, poll_interval=0.05)
    assert len(messages) == 1
    assert json.loads(messages[0].text)["type"] == "idle_notification"


def test_receive_falls_back_to_shutdown_approved(ctrl):
    _to_controller(ctrl, "worker1", _structured("shutdown_approved", requestId="sd-1"))
    messages = ctrl.receive("worker1", timeout=0.3, poll_interval=0.05)
    assert len(messages) == 1
    assert json.loads(messages[0].text)["type"] == "shutdown_approved"


def test_receive_times_out(ctrl):
    start = time.monotonic()
    with pytest.raises(WaitTimeoutError, match="Timeout"):
        ctrl.receive("worker1", timeout=0.2, poll_interval=0.05)
    assert time.monotonic() - start < 1.0


def test_receive_all_collects_until_timeout(ctrl):
    _to_controller(ctrl, "worker1", "Msg A")
    _to_controller(ctrl, "worker1", "Msg B")
    messages = ctrl.receive("worker1", timeout=0.3, poll_interval=0.05, all_messages=True)
    assert [m.text for m in messages] == ["Msg A", "Msg B"]


def test_receive_filters_by_sender_and_keeps_others(ctrl):
    _to_controller(ctrl, "worker1", "From worker1")
    _to_controller(ctrl, "worker2", "From worker2")

    first = ctrl.receive("worker1", timeout=1, poll_interval=0.05)
    assert [(m.sender, m.text) for m in first] == [("worker1", "From worker1")]

    second = ctrl.receive("worker2", timeout=1, poll_interval=0.05)
    assert [m.text for m in second] == ["From worker2"]


def test_receive_sees_messages_already_polled_in_background(ctrl):
    _to_controller(ctrl, "worker1", "early")
    ctrl.poller.poll()
    assert [m.text for m in ctrl.receive("worker1", timeout=1, poll_interval=0.05)] == ["early"]


def test_receive_does_not_return_a_message_twice(ctrl):
    _to_controller(ctrl, "worker1", "once")
    ctrl.receive("worker1", timeout=1, poll_interval=0.05)
    with pytest.raises(WaitTimeoutError):
        ctrl.receive("worker1", timeout=0.2, poll_interval=0.05)


def test_receive_any(ctrl):
    _to_controller(ctrl, "worker2", "Any message")
    msg = ctrl.receive_any(timeout=1, poll_interval=0.05)
    assert msg.text == "Any message"
    assert msg.sender == "worker2"


def test_receive_any_skips_idle(ctrl):
    _to_controller(ctrl, "worker1", _structured("idle_notification", idleReason="available"))
    _to_controller(ctrl, "worker2", "Real message")
    msg = ctrl.receive_any(timeout=1, poll_interval=0.05)
    assert msg.text == "Real message"


def test_receive_any_only_idle_times_out(ctrl):
    _to_controller(ctrl, "worker1", _structured("idle_notification"))
    with pytest.raises(WaitTimeoutError):
        ctrl.receive_any(timeout=0.2, poll_interval=0.05)


def test_receive_any_returns_one_at_a_time(ctrl):
    _to_controller(ctrl, "worker1", "first")
    _to_controller(ctrl, "worker2", "second")
    assert ctrl.receive_any(timeout=1, poll_interval=0.05).text == "first"
    assert ctrl.receive_any(timeout=1, poll_interval=0.05).text == "second"


def test_receive_any_times_out(ctrl):
    with pytest.raises(WaitTimeoutError, match="Timeout"):
        ctrl.receive_any(timeout=0.2, poll_interval=0.05)


def test_backlog_limit_drops_oldest(settings, processes):
    limited = settings.model_copy(update={"receive_backlog_limit": 2})
    with TeamController("small", settings=limited, process_manager=processes, log_level="silent") as c:
        for text in ("a", "b", "c"):
            _to_controller(c, "w", text)
        c.poller.poll()
        assert [m.text for m in c.receive("w", timeout=0.2, poll_interval=0.05, all_messages=True)] == ["b", "c"]



def test_backlog_overflow_warns_once_per_fill(settings, processes):
    limited = settings.model_copy(update={"receive_backlog_limit": 2})
    with TeamController("noisy", settings=limited, process_manager=processes, log_level="silent") as c:
        c.log = MagicMock()
        for batch in (["a", "b", "c"], ["d"], ["e"]):
            for text in batch:
                _to_controller(c, "w", text)
            c.poller.poll()
        assert c.log.warn.call_count == 1
        assert c.log.debug.call_count >= 2

        c.receive("w", timeout=0.2, poll_interval=0.05, all_messages=True)
        for text in ("f", "g", "h"):
            _to_controller(c, "w", text)
        c.poller.poll()
        assert c.log.warn.call_count == 2


# ----------------------------------------------------------------------
# Agents and diagnostics
# ----------------------------------------------------------------------

def test_spawn_agent(ctrl, processes):
    spawned = []
    ctrl.on("agent:spawned", lambda name, pid: spawned.append((name, pid)))

    handle = ctrl.spawn_agent("worker1", agent_type="tester", model="fast", prompt="Run the tests")

    assert handle.name == "worker1"
    assert handle.pid == 1001
    assert processes.spawned[0].team_name == "test-ctrl"
    assert processes.spawned[0].agent_type == "tester"
    assert ctrl.team.get_config().member("worker1").model == "fast"
    assert [m.text for m in _inbox(ctrl, "worker1")] == ["Run the tests"]
    assert spawned == [("worker1", 1001)]
    assert ctrl.is_agent_running("worker1")


def test_spawn_failure_raises_process_error(settings):
    c = TeamController("failing", settings=settings, process_manager=FakeProcessManager(fail_spawn=True), log_level="silent")
    c.init()
    try:
        with pytest.raises(ProcessError, match="worker1"):
            c.spawn_agent("worker1")
        assert c.team.get_config().member("worker1") is None
    finally:
        c.shutdown()


def test_kill_agent(ctrl, processes):
    exited = []
    ctrl.on("agent:exited", exited.append)
    ctrl.spawn_agent("worker1")
    ctrl.kill_agent("worker1")
    assert processes.killed == ["worker1"]
    assert not ctrl.is_agent_running("worker1")
    assert ctrl.team.get_config().member("worker1") is None
    assert exited == ["worker1"]


def test_shutdown_kills_spawned_agents(settings, processes):
    c = TeamController("bye", settings=settings, process_manager=processes, log_level="silent").init()
    c.spawn_agent("a")
    c.spawn_agent("b")
    c.shutdown(destroy_team=True)
    assert sorted(processes.killed) == ["a", "b"]
    assert not c.team.exists()


def test_is_agent_running_unknown(ctrl):
    assert ctrl.is_agent_running("nonexistent") is False


def test_agent_handle_lookup(ctrl):
    ctrl.spawn_agent("worker1")
    assert ctrl.agent("worker1").pid == 1001
    with pytest.raises(NotFoundError):
        ctrl.agent("stranger")


def test_diagnostics(ctrl):
    assert ctrl.get_agent_version() == "2.1.5"
    result = ctrl.verify_compatibility()
    assert result["compatible"] is True
    assert result["version"] == "2.1.5"
