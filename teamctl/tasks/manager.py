# teamctl/tasks/manager.py

import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from teamctl.config import Settings, get_settings
from teamctl.errors import CorruptStateError, NotFoundError, WaitTimeoutError
from teamctl.paths import task_path, tasks_dir
from teamctl.tasks.schema import Task, TaskStatus
from teamctl.utils.fs import read_json, write_json
from teamctl.utils.logger import TeamLogger, silent_logger

UPDATABLE_FIELDS = frozenset(
    {"subject", "description", "active_form", "owner", "status", "blocks", "blocked_by", "metadata"}
)


class TaskManager:
    """
    One JSON file per task under tasks/<team>/. Ids come from an in-memory
    counter seeded by init() with (highest id on disk + 1), so numbering
    resumes across restarts and is never reused within a process.

    Task files are not locked; a single coordinator process is expected to
    own writes for a team.
    """

    def __init__(
        self,
        team_name: str,
        home: Optional[Path] = None,
        settings: Optional[Settings] = None,
        logger: Optional[TeamLogger] = None,
    ):
        self.team_name = team_name
        self.settings = settings or get_settings()
        self.home = Path(home) if home is not None else Path(self.settings.teamctl_home)
        self.log = logger or silent_logger
        self.tasks_dir = tasks_dir(team_name, self.home)
        self._next_id = 1
        self._id_lock = threading.Lock()
        self._initialized = False

    def init(self) -> None:
        """Create the task directory and seed the id counter from it."""
        self.tasks_dir.mkdir(parents=True, exist_ok=True)
        ids = [int(p.stem) for p in self.tasks_dir.glob("*.json") if p.stem.isdigit()]
        with self._id_lock:
            # never move backwards within this process
            self._next_id = max(self._next_id, max(ids, default=0) + 1)
        self._initialized = True

    def _allocate_id(self) -> str:
        with self._id_lock:
            task_id = str(self._next_id)
            self._next_id += 1
        return task_id

    def _path(self, task_id: str) -> Path:
        return task_path(self.team_name, task_id, self.home)

    def _write(self, task: Task) -> None:
        write_json(self._path(task.id), task.to_dict(), indent=4)

    def _read(self, path: Path) -> Task:
        data = read_json(path)
        try:
            return Task.model_validate(data)
        except ValidationError as e:
            raise CorruptStateError(path, str(e)) from e

    def create(
        self,
        subject: str,
        description: str = "",
        active_form: Optional[str] = None,
        owner: Optional[str] = None,
        status: str = TaskStatus.PENDING.value,
        blocks: Optional[Iterable[str]] = None,
        blocked_by: Optional[Iterable[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Persist a new task and return its id."""
        if not self._initialized:
            self.init()
        task = Task(
            id=self._allocate_id(),
            subject=subject,
            description=description,
            active_form=active_form,
            owner=owner,
            status=status or TaskStatus.PENDING.value,
            blocks=list(blocks or []),
            blocked_by=list(blocked_by or []),
            metadata=metadata,
        )
        self._write(task)
        self.log.debug(f"Created task #{task.id}: {subject}")
        return task.id

    def get(self, task_id: str) -> Task:
        """
        Raises:
            NotFoundError: if no task with this id is stored
            CorruptStateError: if the task file is malformed
        """
        path = self._path(str(task_id))
        if not path.exists():
            raise NotFoundError(f"Task #{task_id} not found")
        return self._read(path)

    def update(self, task_id: str, **updates: Any) -> Task:
        """Merge the given fields into the task and persist it."""
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update task field(s): {', '.join(sorted(unknown))}")
        task = self.get(task_id)
        merged = Task.model_validate({**task.model_dump(), **updates})
        self._write(merged)
        self.log.debug(f"Updated task #{task_id}: status={merged.status}")
        return merged

    def add_blocks(self, task_id: str, blocked_task_ids: Iterable[str]) -> None:
        """
        Record that `task_id` blocks each of `blocked_task_ids`, and mirror
        the relation into each blocked task's blocked_by list.
        """
        task = self.get(task_id)
        to_add: List[str] = []
        for blocked_id in (str(b) for b in blocked_task_ids):
            if blocked_id not in task.blocks and blocked_id not in to_add:
                to_add.append(blocked_id)
        if not to_add:
            return
        task.blocks.extend(to_add)
        self._write(task)

        for blocked_id in to_add:
            blocked = self.get(blocked_id)
            if task.id not in blocked.blocked_by:
                blocked.blocked_by.append(task.id)
                self._write(blocked)

    def list(self) -> List[Task]:
        """All tasks of the team, ordered by numeric id."""
        if not self.tasks_dir.exists():
            return []
        tasks = [self._read(p) for p in self.tasks_dir.glob("*.json")]
        return sorted(tasks, key=lambda t: int(t.id))

    def delete(self, task_id: str) -> None:
        path = self._path(str(task_id))
        if path.exists():
            path.unlink()
            self.log.debug(f"Deleted task #{task_id}")

    def wait_for(
        self,
        task_id: str,
        target_status: str = TaskStatus.COMPLETED.value,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> Task:
        """
        Block until the task reaches `target_status`.

        Raises:
            WaitTimeoutError: if the status is not reached within `timeout` seconds
        """
        if isinstance(target_status, TaskStatus):
            target_status = target_status.value
        timeout = self.settings.task_wait_timeout if timeout is None else timeout
        interval = self.settings.task_poll_interval if poll_interval is None else poll_interval
        deadline = time.monotonic() + timeout

        while True:
            task = self.get(task_id)
            if task.status == target_status:
                return task
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise WaitTimeoutError(
                    f'Timeout waiting for task #{task_id} to reach "{target_status}"'
                )
            time.sleep(min(interval, remaining))
