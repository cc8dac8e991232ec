"""
Background and on-demand polling of one agent's mailbox.
"""

import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from teamctl.communication.mailbox import MailboxStore
from teamctl.communication.protocol import InboxMessage, PlainTextMessage, StructuredMessage, classify
from teamctl.utils.logger import TeamLogger, silent_logger


@dataclass
class PollEvent:
    """A newly read mailbox entry together with its classified payload."""
    raw: InboxMessage
    parsed: StructuredMessage


BatchHandler = Callable[[List[PollEvent]], None]


class InboxPoller:
    """
    Turns newly unread entries of one mailbox into PollEvent batches and
    hands each batch to every registered handler.

    ``poll()`` may be called directly; ``start()`` runs it periodically on a
    daemon thread until ``stop()``. Polls are serialized, so handlers see
    batches in mailbox order.
    """

    def __init__(
        self,
        team_name: str,
        agent_name: str,
        mailbox: MailboxStore,
        logger: Optional[TeamLogger] = None,
        poll_interval: float = 0.5,
    ):
        self.team_name = team_name
        self.agent_name = agent_name
        self.mailbox = mailbox
        self.poll_interval = poll_interval
        self._log = logger or silent_logger
        self._handlers: List[BatchHandler] = []
        self._poll_lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def on_messages(self, handler: BatchHandler) -> None:
        """Register a handler called with every non-empty batch."""
        self._handlers.append(handler)

    @property
    def running(self) -> bool:
        return self._thread is not None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._log.debug(
            f'Starting inbox poller for "{self.agent_name}" (interval={self.poll_interval}s)'
        )
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(self._stop_event,),
            daemon=True,
            name=f"inbox-poller-{self.agent_name}",
        )
        self._thread.start()

    def stop(self) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout=max(self.poll_interval * 4, 1.0))
        self._thread = None
        self._log.debug(f'Stopped inbox poller for "{self.agent_name}"')

    def poll(self) -> List[PollEvent]:
        """
        Read and classify new entries, then dispatch them. Returns the batch
        (empty when nothing arrived, in which case no handler is called).

        Raises:
            LockTimeoutError, CorruptStateError: from the mailbox read
        """
        with self._poll_lock:
            unread = self.mailbox.read_unread(self.team_name, self.agent_name)
            if not unread:
                return []

            events = [PollEvent(raw=m, parsed=self._classify(m)) for m in unread]
            for handler in list(self._handlers):
                try:
                    handler(events)
                except Exception as e:
                    self._log.error("Inbox handler error:", str(e))
            return events

    def _classify(self, message: InboxMessage) -> StructuredMessage:
        # Entries are already marked read at this point; failures degrade to plain text
        try:
            return classify(message)
        except Exception as e:
            self._log.warn(f"Could not classify message from {message.sender}:", str(e))
            return PlainTextMessage(text=message.text)

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.poll_interval):
            try:
                self.poll()
            except Exception as e:
                self._log.error("Inbox poll error:", str(e))
