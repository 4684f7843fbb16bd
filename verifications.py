"""
verifications.py — Startup verification functions for stream_watcher
"""

import logging
import shutil
from pathlib import Path
from typing import Iterable, List

from env import REQUIRED_TOOLS, Settings

# Setup logger
logger = logging.getLogger("stream_watcher")


def command_exists(cmd: str) -> bool:
    """Check whether ``cmd`` resolves on PATH."""
    return shutil.which(cmd) is not None


def missing_tools(tools: Iterable[str] = REQUIRED_TOOLS) -> List[str]:
    return [tool for tool in tools if not command_exists(tool)]


def verify_tools(tools: Iterable[str] = REQUIRED_TOOLS) -> bool:
    """Verify that the external resolver and capture tools are installed.

    Returns:
        bool: True if every tool was found, False otherwise
    """
    missing = missing_tools(tools)
    for tool in missing:
        logger.error(f"{tool} is not installed or not in PATH.")
    return not missing


def _verify_directory(path: Path, description: str) -> bool:
    """Create ``path`` if needed and check that it is writable.

    Write permission is tested by creating and deleting a temporary file.
    """
    if not path.exists():
        try:
            path.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created {description} at {path}")
        except OSError as e:
            logger.error(f"Cannot create {description} at {path}: {e}")
            return False

    test_file = path / ".write_test"
    try:
        test_file.write_text("test")
        test_file.unlink()
    except OSError as e:
        logger.error(f"No write permission for {description} at {path}: {e}")
        return False
    return True


def verify_paths(settings: Settings) -> bool:
    """Verify the video output and log directories.

    Returns:
        bool: True if both directories exist and are writable, False otherwise
    """
    directories = [
        (settings.video_dir, "video output directory"),
        (settings.log_dir, "log directory"),
    ]
    return all(_verify_directory(path, description) for path, description in directories)


def verify_token(settings: Settings) -> bool:
    """Warn when no OAuth token is configured. Never blocks startup."""
    if not settings.has_token:
        logger.warning(
            "TWITCH_AUTH_TOKEN is not set in `.env`. You may get ads screen in your recordings."
        )
        return False
    return True
