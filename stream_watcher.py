#!/usr/bin/env python3
"""
stream_watcher.py — Twitch live watcher that records a single channel with ffmpeg

Polls the channel with streamlink every INTERVAL seconds. When it is live the
resolved stream is copied to disk by ffmpeg; the loop waits for the capture
to end before probing again. Create a file named ``exit`` in the base
directory to stop at the top of the next cycle.
"""

import asyncio
import datetime as dt
import logging
import subprocess
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from api import build_notifier
from env import Settings, load_settings
from logs import LogManager
from utils import (
    Clock,
    ProbeResult,
    ProbeStatus,
    build_ffmpeg_cmd,
    build_streamlink_cmd,
    classify_probe_output,
    datetime_stamp,
    hide_token,
)
from verifications import verify_paths, verify_token, verify_tools

INVALID_TOKEN_MESSAGE = "Twitch OAuth token is invalid. Please check your .env."
USAGE = "No username provided. Usage: stream-watcher <twitch_username>"

# ───── logging setup ───── #
logger = logging.getLogger("stream_watcher")


def setup_logging(level: str = "INFO") -> None:
    """Attach the console handler to the ``stream_watcher`` logger once."""
    logger.setLevel(level)
    if not logger.handlers:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(ch)


# ───── external processes ───── #
class ProcessRunner:
    """Spawns the external resolver and capture tools."""

    async def run(self, cmd: Sequence[str]) -> Tuple[int, str, str]:
        """Run ``cmd`` to completion and collect its output.

        Returns:
            Tuple of (returncode, stdout, stderr)
        """
        proc = await asyncio.create_subprocess_exec(
            *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
        )
        out, err = await proc.communicate()
        return (
            proc.returncode,
            out.decode(errors="replace"),
            err.decode(errors="replace"),
        )

    async def run_logged(self, cmd: Sequence[str], log_path: Path) -> int:
        """Run ``cmd`` with its stderr appended straight to ``log_path``.

        Output never passes through Python, so captures lasting hours do not
        grow memory.
        """
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "ab") as log_fh:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=log_fh,
            )
            return await proc.wait()


class LivenessProber:
    """Asks streamlink whether the channel is live."""

    def __init__(self, settings: Settings, runner: Optional[ProcessRunner] = None):
        self.settings = settings
        self.runner = runner or ProcessRunner()

    def command(self) -> List[str]:
        return build_streamlink_cmd(
            self.settings.channel,
            self.settings.auth_token,
            self.settings.streamlink_args,
        )

    async def probe(self) -> ProbeResult:
        cmd = self.command()
        logger.debug(f"Running: {hide_token(cmd)}")
        try:
            returncode, out, err = await self.runner.run(cmd)
        except OSError as e:
            logger.warning(f"Failed to run streamlink: {e}")
            return ProbeResult(ProbeStatus.OFFLINE)
        result = classify_probe_output(returncode, out, err)
        logger.debug(f"Probe for {self.settings.channel}: {result.status.value}")
        return result


class CaptureRunner:
    """Copies a resolved stream to disk with ffmpeg."""

    def __init__(self, runner: Optional[ProcessRunner] = None):
        self.runner = runner or ProcessRunner()

    async def capture(self, url: str, output_path: Path, log_path: Path) -> int:
        """Record ``url`` into ``output_path`` until ffmpeg exits.

        Args:
            url: The playable stream URL returned by the prober
            output_path: Destination video file
            log_path: File that receives ffmpeg's diagnostic output

        Returns:
            ffmpeg's exit code; -1 if it could not be started
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            return await self.runner.run_logged(
                build_ffmpeg_cmd(url, output_path), log_path
            )
        except OSError as e:
            logger.error(f"Failed to start ffmpeg: {e}")
            return -1


# ───── Supervisor ───── #
class State(Enum):
    STARTUP = "startup"
    PROBING = "probing"
    CAPTURING = "capturing"
    SLEEPING = "sleeping"
    TERMINATING = "terminating"


@dataclass
class CaptureSession:
    url: str
    output_path: Path
    log_path: Path
    started_at: dt.datetime
    returncode: Optional[int] = None

    @property
    def status(self) -> str:
        if self.returncode is None:
            return "pending"
        if self.returncode == 0:
            return "success"
        if self.returncode < 0:
            return "signal"
        return "non-zero"


class Supervisor:
    """Drives the probe → capture → sleep cycle for one channel.

    Only one capture is ever in flight: the loop awaits its completion before
    sleeping and probing again. The exit file is checked at the top of each
    cycle, so a capture that is running when it appears is left to finish.
    """

    def __init__(
        self,
        settings: Settings,
        prober=None,
        capture_runner=None,
        notifier=None,
        log_manager: Optional[LogManager] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings
        self.clock = clock or Clock()
        self.prober = prober or LivenessProber(settings)
        self.capture_runner = capture_runner or CaptureRunner()
        self.notifier = notifier or build_notifier(settings)
        self.log = log_manager or LogManager(
            settings.log_dir, settings.channel, settings.has_token, self.clock
        )
        self.state = State.STARTUP
        self.session: Optional[CaptureSession] = None
        self.last_session: Optional[CaptureSession] = None

    @property
    def channel(self) -> str:
        return self.settings.channel

    async def notify(self, message: str) -> None:
        try:
            await self.notifier.send(message)
        except Exception as e:
            logger.warning(f"Failed to send Discord notification: {e}")

    async def _credential_invalid(self) -> int:
        await self.notify(INVALID_TOKEN_MESSAGE)
        self.log.watch(INVALID_TOKEN_MESSAGE, level="ERROR")
        return 1

    def _terminate(self, code: int) -> int:
        self.state = State.TERMINATING
        logger.info(f"Stopping watcher for {self.channel} (exit code {code})")
        return code

    async def startup(self) -> Optional[int]:
        """Run the startup checks.

        Returns:
            An exit code if the run must stop, None to enter the loop
        """
        self.state = State.STARTUP
        verify_token(self.settings)
        if not verify_paths(self.settings):
            logger.error("Exiting due to file system permission/access errors.")
            return 1

        if self.settings.has_token and self.settings.validate_token:
            result = await self.prober.probe()
            if result.status is ProbeStatus.CREDENTIAL_INVALID:
                return await self._credential_invalid()
            logger.info("Twitch OAuth token accepted")
        return None

    async def record(self, url: str) -> CaptureSession:
        """Capture the live stream and log how it ended."""
        self.state = State.CAPTURING
        started = self.clock.now()
        output_path = self.settings.video_dir / f"{self.channel}_{datetime_stamp(started)}.mp4"
        log_path = self.log.download(f"Recording {self.channel} to {output_path}")
        session = CaptureSession(url, output_path, log_path, started)
        self.session = session

        try:
            session.returncode = await self.capture_runner.capture(
                url, output_path, log_path
            )
        finally:
            self.session = None
            self.last_session = session

        if session.returncode == 0:
            self.log.watch("Download completed.")
        else:
            self.log.watch(
                f"Download failed with exit code {session.returncode}.", level="WARNING"
            )
        return session

    async def cycle(self) -> Optional[int]:
        """One pass through the Probing state and, if live, Capturing.

        Returns:
            An exit code if the run must stop, None to keep cycling
        """
        self.state = State.PROBING
        self.log.prune(self.settings.retention_days)

        if self.settings.exit_file.exists():
            self.log.watch("Exit file detected, aborting.")
            return 0

        result = await self.prober.probe()
        if result.status is ProbeStatus.CREDENTIAL_INVALID:
            return await self._credential_invalid()
        if not result.is_live:
            self.log.watch(f"{self.channel} is offline.")
            return None

        message = f"{self.channel} is online! Starting download..."
        self.log.watch(message)
        await self.notify(message)
        await self.record(result.url)
        return None

    async def run(self, max_cycles: Optional[int] = None) -> int:
        """Run until the exit file appears or the credential is rejected.

        Args:
            max_cycles: Stop with code 0 after this many cycles. None runs forever.

        Returns:
            The process exit code
        """
        code = await self.startup()
        if code is not None:
            return self._terminate(code)

        logger.info(
            f"Watching {self.channel} every {self.settings.interval:g}s, saving to {self.settings.video_dir}"
        )
        cycles = 0
        while True:
            try:
                code = await self.cycle()
            except Exception:
                logger.exception(f"{self.channel} cycle failure")
                code = None
            if code is not None:
                return self._terminate(code)

            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                return self._terminate(0)

            self.state = State.SLEEPING
            await self.clock.sleep(self.settings.interval)


def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point.

    Reads the channel from the command line, loads settings from the
    environment, verifies that streamlink and ffmpeg are installed and runs
    the supervisor until it terminates.

    Returns:
        The process exit code
    """
    argv = sys.argv[1:] if argv is None else argv
    if not argv or not argv[0].strip():
        print(USAGE, file=sys.stderr)
        return 1

    settings = load_settings(argv[0])
    setup_logging(settings.log_level)

    if not verify_tools():
        return 1

    sup = Supervisor(settings)
    try:
        return asyncio.run(sup.run())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        return 0


if __name__ == "__main__":
    sys.exit(main())
