"""
Latency extraction from `ping` output.

Linux/BSD report `time=23.4 ms`; Windows reports `time=12ms` or, for sub-
millisecond replies, `time<1ms`. The bound form returns the bound itself.
Output with no recognizable token yields None: the host may have answered,
but the latency is unknown.
"""

import enum
import re
import sys
from typing import Optional


class PlatformFamily(str, enum.Enum):
    POSIX = "posix"
    WINDOWS = "windows"

    @classmethod
    def current(cls) -> "PlatformFamily":
        return cls.WINDOWS if sys.platform.startswith("win") else cls.POSIX


_POSIX_TIME_RE = re.compile(r"time\s*[=<]\s*(\d+(?:\.\d+)?)\s*ms", re.IGNORECASE)
_WINDOWS_TIME_RE = re.compile(r"time\s*[=<]\s*(\d+)\s*ms", re.IGNORECASE)


def parse_ping_output(raw_output: str, platform: PlatformFamily) -> Optional[float]:
    """Return the first reported round-trip time in milliseconds, or None."""
    if not raw_output:
        return None

    if platform == PlatformFamily.WINDOWS:
        match = _WINDOWS_TIME_RE.search(raw_output)
        return float(match.group(1)) if match else None

    match = _POSIX_TIME_RE.search(raw_output)
    return float(match.group(1)) if match else None
