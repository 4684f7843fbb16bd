"""
utils.py — Utility functions for stream_watcher
"""

import asyncio
import datetime as dt
import os
import re
from enum import Enum
from typing import List, NamedTuple, Optional, Sequence

# Substrings streamlink prints when the OAuth token is rejected.
# Matching is case-sensitive; streamlink reports "error: Unauthorized".
UNAUTHORIZED_MARKERS = ("Unauthorized", "unauthorized")

TOKEN_RE = re.compile(r"(Authorization=OAuth\s+)\S+")


class Clock:
    """Wall clock and sleeper used by the supervisor.

    Tests replace this with a fake that advances time on ``sleep`` instead
    of blocking.
    """

    def now(self) -> dt.datetime:
        return dt.datetime.now()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


def date_stamp(when: dt.datetime) -> str:
    """Daily bucket used for watch logs, e.g. ``20240131``."""
    return when.strftime("%Y%m%d")


def datetime_stamp(when: dt.datetime) -> str:
    """Second-level stamp used for video files, e.g. ``20240131_204501``."""
    return when.strftime("%Y%m%d_%H%M%S")


def minute_stamp(when: dt.datetime) -> str:
    """Minute-level bucket used for download logs, e.g. ``20240131_2045``."""
    return when.strftime("%Y%m%d_%H%M")


def log_timestamp(when: dt.datetime) -> str:
    return when.strftime("%Y/%m/%d %H:%M:%S")


def expand_home(path: str) -> str:
    """Expand a leading ``~`` to the user's home directory."""
    return os.path.expanduser(path)


def twitch_url(channel: str) -> str:
    return f"https://www.twitch.tv/{channel.strip()}"


def build_streamlink_cmd(
    channel: str, token: Optional[str] = None, extra_args: Sequence[str] = ()
) -> List[str]:
    """Build the streamlink command that resolves the channel's playable URL.

    Args:
        channel: The Twitch channel login name
        token: Optional OAuth token, passed as an API authorization header
        extra_args: Additional streamlink options placed before the URL

    Returns:
        The argument list for the resolver process
    """
    cmd = ["streamlink", *extra_args]
    if token:
        cmd += ["--twitch-api-header", f"Authorization=OAuth {token}"]
    cmd += ["--stream-url", twitch_url(channel), "best"]
    return cmd


def build_ffmpeg_cmd(url: str, output_path) -> List[str]:
    """Build the ffmpeg command copying the stream to disk without re-encoding."""
    return ["ffmpeg", "-i", url, "-c", "copy", str(output_path)]


def hide_token(cmd: Sequence[str]) -> str:
    """Render a command for logging with any OAuth token masked."""
    return " ".join(TOKEN_RE.sub(r"\1HIDDEN_TOKEN", part) for part in cmd)


class ProbeStatus(Enum):
    LIVE = "live"
    OFFLINE = "offline"
    CREDENTIAL_INVALID = "credential_invalid"


class ProbeResult(NamedTuple):
    status: ProbeStatus
    url: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.status is ProbeStatus.LIVE


def is_unauthorized(text: str) -> bool:
    return any(marker in text for marker in UNAUTHORIZED_MARKERS)


def classify_probe_output(returncode: int, stdout: str, stderr: str) -> ProbeResult:
    """Classify a finished resolver run.

    The unauthorized marker wins over the exit code: streamlink may exit 0
    or nonzero when the token is rejected. A nonzero exit without the marker
    means the channel is offline. A zero exit with output yields the
    playable URL on the last non-empty stdout line.

    Args:
        returncode: Exit code of the resolver process
        stdout: Decoded standard output
        stderr: Decoded standard error

    Returns:
        The classified ProbeResult
    """
    if is_unauthorized(stdout) or is_unauthorized(stderr):
        return ProbeResult(ProbeStatus.CREDENTIAL_INVALID)
    if returncode != 0:
        return ProbeResult(ProbeStatus.OFFLINE)
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    if not lines:
        return ProbeResult(ProbeStatus.OFFLINE)
    return ProbeResult(ProbeStatus.LIVE, lines[-1])
