"""
Leveled console logger used across teamctl.

Output goes to stderr as ``[teamctl:<level>] message extra...``.
"""

from typing import Any, Dict, Optional

from rich.console import Console

LEVELS: Dict[str, int] = {
    "debug": 0,
    "info": 1,
    "warn": 2,
    "error": 3,
    "silent": 4,
}

_STYLES = {
    "debug": "dim",
    "info": "cyan",
    "warn": "yellow",
    "error": "bold red",
}


class TeamLogger:
    """Logger with a fixed threshold; messages below it are dropped."""

    def __init__(self, level: str = "info", console: Optional[Console] = None):
        if level not in LEVELS:
            raise ValueError(f"Unknown log level '{level}' (expected one of {', '.join(LEVELS)})")
        self.level = level
        self.threshold = LEVELS[level]
        self.console = console or Console(stderr=True, highlight=False)

    def _log(self, level: str, msg: str, args: tuple) -> None:
        if LEVELS[level] < self.threshold:
            return
        line = " ".join([f"[teamctl:{level}]", msg, *(str(a) for a in args)])
        self.console.print(line, style=_STYLES[level], markup=False)

    def debug(self, msg: str, *args: Any) -> None:
        self._log("debug", msg, args)

    def info(self, msg: str, *args: Any) -> None:
        self._log("info", msg, args)

    def warn(self, msg: str, *args: Any) -> None:
        self._log("warn", msg, args)

    def error(self, msg: str, *args: Any) -> None:
        self._log("error", msg, args)


def create_logger(level: str = "info") -> TeamLogger:
    return TeamLogger(level)


silent_logger = TeamLogger("silent")
