"""
logs.py — Per-channel watch/download log files for stream_watcher
"""

import logging
from pathlib import Path
from typing import Optional

from utils import Clock, date_stamp, log_timestamp, minute_stamp

logger = logging.getLogger("stream_watcher")

WATCH = "watch"
DOWNLOAD = "download"
SECONDS_PER_DAY = 60 * 60 * 24


class LogManager:
    """Writes timestamped lines to the channel's rotating log files.

    Watch logs are bucketed per calendar day, so one file collects all of a
    day's poll cycles. Download logs are bucketed per minute of capture
    start, which in practice gives one file per capture session. Every line
    is mirrored to the ``stream_watcher`` logger for the console.
    """

    def __init__(
        self,
        log_dir: Path,
        channel: str,
        has_token: bool = False,
        clock: Optional[Clock] = None,
    ):
        self.log_dir = Path(log_dir)
        self.channel = channel
        self.token_status = "(auth: yes)" if has_token else "(auth: no)"
        self.clock = clock or Clock()

    def path_for(self, kind: str) -> Path:
        """Resolve the log file for ``kind`` at the current clock time."""
        now = self.clock.now()
        if kind == WATCH:
            name = f"{self.channel}_watch_{date_stamp(now)}.log"
        elif kind == DOWNLOAD:
            name = f"{self.channel}_download_{minute_stamp(now)}.log"
        else:
            raise ValueError(f"Unknown log kind: {kind!r}")
        return self.log_dir / name

    def format_line(self, message: str, level: str = "INFO") -> str:
        return (
            f"[{level.upper()}] {log_timestamp(self.clock.now())} "
            f"{self.token_status}: {message}"
        )

    def append(self, kind: str, message: str, level: str = "INFO") -> Path:
        """Append one line to the ``kind`` log and echo it to the console.

        Args:
            kind: ``watch`` or ``download``
            message: The message text
            level: Level name written in the line and used for the console

        Returns:
            The path of the target file; a failed write is logged, not raised
        """
        path = self.path_for(kind)
        line = self.format_line(message, level)
        logger.log(
            logging.getLevelName(level.upper()), f"{self.token_status}: {message}"
        )
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as lf:
                lf.write(line + "\n")
        except OSError as e:
            logger.warning(f"Failed to write log file {path}: {e}")
        return path

    def watch(self, message: str, level: str = "INFO") -> Path:
        return self.append(WATCH, message, level)

    def download(self, message: str, level: str = "INFO") -> Path:
        return self.append(DOWNLOAD, message, level)

    def prune(self, retention_days: float) -> int:
        """Delete log files older than ``retention_days``.

        Files exactly at the threshold are kept. A file that cannot be
        stat'ed or deleted is skipped with a warning; the rest are still
        processed.

        Args:
            retention_days: Maximum age in days, measured from mtime

        Returns:
            Number of files removed
        """
        if not self.log_dir.is_dir():
            return 0

        now = self.clock.now().timestamp()
        removed = 0
        for entry in self.log_dir.iterdir():
            try:
                age_days = (now - entry.stat().st_mtime) / SECONDS_PER_DAY
                if age_days > retention_days:
                    entry.unlink()
                    removed += 1
                    logger.debug(f"Pruned old log file {entry.name}")
            except OSError as e:
                logger.warning(f"Failed to stat or delete log file: {entry} ({e})")
        return removed
