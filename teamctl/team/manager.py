import os
import shutil
import uuid
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from teamctl.config import Settings, get_settings
from teamctl.errors import CorruptStateError, NotFoundError
from teamctl.paths import inboxes_dir, tasks_dir, team_config_path, team_dir
from teamctl.team.schema import TeamConfig, TeamMember
from teamctl.utils.fs import ensure_dir, read_json, write_json
from teamctl.utils.logger import TeamLogger, silent_logger


class TeamManager:
    """
    Creates, mutates and destroys a team's config.json and directories.
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
        self.session_id = str(uuid.uuid4())
        self.log = logger or silent_logger
        self.config_path = team_config_path(team_name, self.home)

    @property
    def lead_name(self) -> str:
        return self.settings.controller_name

    def create(self, description: Optional[str] = None, cwd: Optional[str] = None) -> TeamConfig:
        """
        Create the team directories and a config whose only member is the lead.
        """
        ensure_dir(team_dir(self.team_name, self.home))
        ensure_dir(inboxes_dir(self.team_name, self.home))
        ensure_dir(tasks_dir(self.team_name, self.home))

        lead_agent_id = f"{self.lead_name}@{self.team_name}"
        config = TeamConfig(
            name=self.team_name,
            description=description,
            lead_agent_id=lead_agent_id,
            lead_session_id=self.session_id,
            members=[
                TeamMember(
                    agent_id=lead_agent_id,
                    name=self.lead_name,
                    agent_type="controller",
                    cwd=cwd or os.getcwd(),
                )
            ],
        )
        self._write(config)
        self.log.info(f'Team "{self.team_name}" created')
        return config

    def add_member(self, member: TeamMember) -> None:
        """Add `member`, replacing any existing member with the same name."""
        config = self.get_config()
        config.members = [m for m in config.members if m.name != member.name]
        config.members.append(member)
        self._write(config)
        self.log.debug(f'Added member "{member.name}" to team')

    def remove_member(self, name: str) -> None:
        config = self.get_config()
        config.members = [m for m in config.members if m.name != name]
        self._write(config)
        self.log.debug(f'Removed member "{name}" from team')

    def get_config(self) -> TeamConfig:
        if not self.config_path.exists():
            raise NotFoundError(f'Team "{self.team_name}" does not exist (no config.json)')
        data = read_json(self.config_path)
        try:
            return TeamConfig.model_validate(data)
        except ValidationError as e:
            raise CorruptStateError(self.config_path, str(e)) from e

    def exists(self) -> bool:
        return self.config_path.exists()

    def destroy(self) -> None:
        """Remove the team and task directories. Safe to call repeatedly."""
        for path in (team_dir(self.team_name, self.home), tasks_dir(self.team_name, self.home)):
            if path.exists():
                shutil.rmtree(path, ignore_errors=True)
        self.log.info(f'Team "{self.team_name}" destroyed')

    def _write(self, config: TeamConfig) -> None:
        write_json(self.config_path, config.to_dict(), indent=2)
