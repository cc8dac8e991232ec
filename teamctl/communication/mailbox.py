"""
Durable per-agent mailboxes stored as JSON arrays on disk.

Every mutation happens under an exclusive FileLock on the mailbox, so
concurrent writers from any number of processes are serialized. Reads
through ``read_all`` take no lock and are best-effort.
"""

from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from teamctl.communication.protocol import InboxMessage
from teamctl.config import Settings, get_settings
from teamctl.errors import CorruptStateError
from teamctl.paths import inbox_path
from teamctl.utils.fs import ensure_dir, lock_from_settings, read_json, write_json
from teamctl.utils.logger import TeamLogger, silent_logger


class MailboxStore:
    """
    Append/read/mark-read operations over ``teams/<team>/inboxes/<agent>.json``.
    """

    def __init__(
        self,
        home: Optional[Path] = None,
        settings: Optional[Settings] = None,
        logger: Optional[TeamLogger] = None,
    ):
        self.settings = settings or get_settings()
        self.home = Path(home) if home is not None else Path(self.settings.teamctl_home)
        self.log = logger or silent_logger

    def path(self, team_name: str, agent_name: str) -> Path:
        return inbox_path(team_name, agent_name, self.home)

    def _load(self, path: Path) -> List[InboxMessage]:
        data = read_json(path, empty=[])
        if not isinstance(data, list):
            raise CorruptStateError(path, "mailbox is not a JSON array")
        try:
            return [InboxMessage.model_validate(item) for item in data]
        except ValidationError as e:
            raise CorruptStateError(path, str(e)) from e

    def _save(self, path: Path, messages: List[InboxMessage]) -> None:
        write_json(path, [m.to_dict() for m in messages], indent=2)

    def write(self, team_name: str, agent_name: str, message: InboxMessage) -> None:
        """
        Append `message` to the agent's mailbox as unread.

        Raises:
            LockTimeoutError: if the mailbox lock could not be acquired
            CorruptStateError: if the existing mailbox is not valid JSON
        """
        path = self.path(team_name, agent_name)
        ensure_dir(path.parent)
        with lock_from_settings(path, self.settings):
            messages = self._load(path) if path.exists() else []
            messages.append(message.model_copy(update={"read": False}))
            self._save(path, messages)
        self.log.debug(f"Wrote message to inbox {agent_name}", message.sender)

    def read_all(self, team_name: str, agent_name: str) -> List[InboxMessage]:
        """All entries in append order; an absent mailbox is empty."""
        path = self.path(team_name, agent_name)
        if not path.exists():
            return []
        return self._load(path)

    def read_unread(self, team_name: str, agent_name: str) -> List[InboxMessage]:
        """
        Return the entries not yet read, in append order, and mark every
        entry in the mailbox as read. The file is left untouched when there
        is nothing new.
        """
        path = self.path(team_name, agent_name)
        if not path.exists():
            return []

        with lock_from_settings(path, self.settings):
            messages = self._load(path)
            unread = [m for m in messages if not m.read]
            if not unread:
                return []
            for m in messages:
                m.read = True
            retain = self.settings.mailbox_retain_read
            if retain is not None:
                messages = _prune_read(messages, retain, keep=unread)
            self._save(path, messages)
        return unread

    def compact(self, team_name: str, agent_name: str, keep_read: int = 0) -> int:
        """
        Drop all but the newest `keep_read` read entries. Unread entries are
        never removed. Returns the number of entries dropped.
        """
        path = self.path(team_name, agent_name)
        if not path.exists():
            return 0
        with lock_from_settings(path, self.settings):
            messages = self._load(path)
            kept = _prune_read(messages, keep_read)
            dropped = len(messages) - len(kept)
            if dropped:
                self._save(path, kept)
        if dropped:
            self.log.debug(f"Compacted inbox {agent_name}: dropped {dropped} read entries")
        return dropped


def _prune_read(
    messages: List[InboxMessage], keep_read: int, keep: Optional[List[InboxMessage]] = None
) -> List[InboxMessage]:
    protected = {id(m) for m in keep or []}
    read_ids = [id(m) for m in messages if m.read and id(m) not in protected]
    excess = set(read_ids[: max(len(read_ids) - max(keep_read, 0), 0)])
    return [m for m in messages if id(m) not in excess]
