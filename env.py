"""
env.py — Environment-sourced configuration for stream_watcher

Values are read once at startup into an immutable Settings object which is
handed to every component. A ``.env`` file in the working directory is loaded
first; variables already present in the environment take precedence.
"""

import logging
import math
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple

from dotenv import find_dotenv, load_dotenv

from utils import expand_home

logger = logging.getLogger("stream_watcher")

SCRIPT_DIR = Path(__file__).parent.resolve()
DEFAULT_INTERVAL = 55  # seconds
DEFAULT_RETENTION_DAYS = 3
REQUIRED_TOOLS = ("streamlink", "ffmpeg")
EXIT_FILE_NAME = "exit"


@dataclass(frozen=True)
class Settings:
    channel: str
    base_dir: Path = SCRIPT_DIR
    video_dir: Optional[Path] = None
    interval: float = DEFAULT_INTERVAL
    auth_token: Optional[str] = None
    discord_webhook_url: Optional[str] = None
    discord_mention_target_id: Optional[str] = None
    retention_days: float = DEFAULT_RETENTION_DAYS
    log_level: str = "INFO"
    streamlink_args: Tuple[str, ...] = field(default_factory=tuple)
    validate_token: bool = True

    def __post_init__(self):
        if self.video_dir is None:
            object.__setattr__(self, "video_dir", self.base_dir / "downloads")

    @property
    def log_dir(self) -> Path:
        return self.base_dir / "logs"

    @property
    def exit_file(self) -> Path:
        return self.base_dir / EXIT_FILE_NAME

    @property
    def has_token(self) -> bool:
        return bool(self.auth_token)


def _positive_float(raw: Optional[str], default: float, name: str) -> float:
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} is not a number, using {default}")
        return default
    if not math.isfinite(value) or value <= 0:
        logger.warning(f"{name}={raw!r} must be a positive number, using {default}")
        return default
    return value


def _log_level(raw: Optional[str]) -> str:
    name = (_optional(raw) or "INFO").upper()
    if not isinstance(logging.getLevelName(name), int):
        logger.warning(f"LOG_LEVEL={raw!r} is not a logging level, using INFO")
        return "INFO"
    return name


def _flag(raw: Optional[str], default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


def _optional(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def load_settings(
    channel: str, environ: Optional[Mapping[str, str]] = None, dotenv: bool = True
) -> Settings:
    """Build Settings for a channel from the environment.

    Args:
        channel: The Twitch channel login name supplied on the command line
        environ: Mapping to read from; defaults to ``os.environ``
        dotenv: If True, load ``.env`` into the process environment first

    Returns:
        The immutable Settings for this run
    """
    if environ is None:
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True), override=False)
        environ = os.environ

    base_raw = _optional(environ.get("BASE_DIR"))
    base_dir = Path(expand_home(base_raw)).resolve() if base_raw else SCRIPT_DIR

    video_raw = _optional(environ.get("VIDEO_DIR"))
    video_dir = Path(expand_home(video_raw)) if video_raw else base_dir / "downloads"

    return Settings(
        channel=channel.strip(),
        base_dir=base_dir,
        video_dir=video_dir,
        interval=_positive_float(environ.get("INTERVAL"), DEFAULT_INTERVAL, "INTERVAL"),
        auth_token=_optional(environ.get("TWITCH_AUTH_TOKEN")),
        discord_webhook_url=_optional(environ.get("DISCORD_WEBHOOK_URL")),
        discord_mention_target_id=_optional(environ.get("DISCORD_MENTION_TARGET_ID")),
        retention_days=_positive_float(
            environ.get("LOG_RETENTION_DAYS"),
            DEFAULT_RETENTION_DAYS,
            "LOG_RETENTION_DAYS",
        ),
        log_level=_log_level(environ.get("LOG_LEVEL")),
        streamlink_args=tuple(shlex.split(environ.get("STREAMLINK_ARGS") or "")),
        validate_token=_flag(environ.get("VALIDATE_TOKEN"), True),
    )
