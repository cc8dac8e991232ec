from __future__ import annotations
from pathlib import Path
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
import yaml

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"  # Allow extra fields from config files
    )

    teamctl_home: Path = Field(default_factory=lambda: Path.home() / ".claude")
    controller_name: str = "controller"
    log_level: str = Field(default="info", description="debug, info, warn, error or silent")

    # Polling
    poll_interval: float = Field(0.5, description="Background inbox poll period in seconds")
    receive_timeout: float = 300.0
    receive_poll_interval: float = 0.5
    receive_backlog_limit: int = Field(
        1000, description="Max polled entries kept in memory for blocking receive calls"
    )
    task_wait_timeout: float = 300.0
    task_poll_interval: float = 1.0

    # Mailbox locking
    lock_retries: int = 5
    lock_min_wait: float = 0.05
    lock_max_wait: float = 0.5
    lock_stale_after: float = Field(
        10.0, description="Seconds after which a held mailbox lock is presumed abandoned"
    )
    mailbox_retain_read: Optional[int] = Field(
        None, description="Keep at most this many read entries per mailbox (None = keep all)"
    )

    # External agent process
    agent_command: List[str] = Field(default_factory=lambda: ["claude"])
    agent_binary: str = "claude"
    min_agent_version: str = "2.1.0"

def _load_yaml(path: Path | None):
    if path and path.exists():
        with open(path, "r") as fh:
            return yaml.safe_load(fh) or {}
    return {}

@lru_cache
def get_settings(config_path: Path | None = None) -> Settings:
    file_vals = _load_yaml(config_path or Path(".teamctl.yml"))
    return Settings(**file_vals)
