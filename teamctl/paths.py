"""
Canonical file locations for teams, inboxes and tasks.

Layout under ``teamctl_home``::

    teams/<team>/config.json
    teams/<team>/inboxes/<agent>.json
    tasks/<team>/<task id>.json
"""

from pathlib import Path
from typing import Optional

from teamctl.config import get_settings


def _home(home: Optional[Path]) -> Path:
    return Path(home) if home is not None else Path(get_settings().teamctl_home)


def _component(value: str, kind: str) -> str:
    # Names become file names, so they must not escape their directory
    if not value or value in (".", "..") or "/" in value or "\\" in value or "\0" in value:
        raise ValueError(f"Invalid {kind} name: {value!r}")
    return value


def teams_dir(home: Optional[Path] = None) -> Path:
    return _home(home) / "teams"


def team_dir(team_name: str, home: Optional[Path] = None) -> Path:
    return teams_dir(home) / _component(team_name, "team")


def team_config_path(team_name: str, home: Optional[Path] = None) -> Path:
    return team_dir(team_name, home) / "config.json"


def inboxes_dir(team_name: str, home: Optional[Path] = None) -> Path:
    return team_dir(team_name, home) / "inboxes"


def inbox_path(team_name: str, agent_name: str, home: Optional[Path] = None) -> Path:
    return inboxes_dir(team_name, home) / f"{_component(agent_name, 'agent')}.json"


def tasks_base_dir(home: Optional[Path] = None) -> Path:
    return _home(home) / "tasks"


def tasks_dir(team_name: str, home: Optional[Path] = None) -> Path:
    return tasks_base_dir(home) / _component(team_name, "team")


def task_path(team_name: str, task_id: str, home: Optional[Path] = None) -> Path:
    return tasks_dir(team_name, home) / f"{_component(str(task_id), 'task')}.json"
