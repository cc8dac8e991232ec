"""
Version and compatibility checks for the external agent binary.
"""

import re
import shutil
import subprocess
from typing import Any, Dict, Optional, Tuple

_VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")


def parse_version(text: str) -> Optional[Tuple[int, int, int]]:
    match = _VERSION_RE.search(text or "")
    if not match:
        return None
    return tuple(int(part) for part in match.groups())


class ToolVersionChecker:
    """
    Reports the installed version of `binary` (via `<binary> --version`)
    and whether it meets `min_version`. The lookup runs once and is cached.
    """

    def __init__(self, binary: str = "claude", min_version: str = "2.1.0", timeout: float = 10.0):
        self.binary = binary
        self.min_version = min_version
        self.timeout = timeout
        self._checked = False
        self._version: Optional[str] = None

    def get_version(self) -> Optional[str]:
        if self._checked:
            return self._version
        self._checked = True
        path = shutil.which(self.binary)
        if path is None:
            return None
        try:
            result = subprocess.run(
                [path, "--version"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired):
            return None
        parsed = parse_version(result.stdout) or parse_version(result.stderr)
        if parsed:
            self._version = ".".join(str(p) for p in parsed)
        return self._version

    def verify_compatibility(self) -> Dict[str, Any]:
        version = self.get_version()
        minimum = parse_version(self.min_version)
        current = parse_version(version) if version else None
        return {
            "compatible": bool(current and minimum and current >= minimum),
            "version": version,
            "minimum": self.min_version,
        }
