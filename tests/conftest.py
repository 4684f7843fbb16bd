import datetime as dt
from pathlib import Path

import pytest

from env import Settings
from utils import ProbeResult, ProbeStatus

OFFLINE = ProbeResult(ProbeStatus.OFFLINE)
INVALID = ProbeResult(ProbeStatus.CREDENTIAL_INVALID)


def live(url="https://example/stream"):
    return ProbeResult(ProbeStatus.LIVE, url)


class FakeClock:
    def __init__(self, start=None):
        self.current = start or dt.datetime(2024, 1, 31, 20, 45, 1)
        self.sleeps = []

    def now(self):
        return self.current

    def advance(self, seconds):
        self.current += dt.timedelta(seconds=seconds)

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.advance(seconds)


class FakeProber:
    """Returns queued results in order, repeating the last one."""

    def __init__(self, *results, on_probe=None):
        self.results = list(results) or [OFFLINE]
        self.calls = 0
        self.on_probe = on_probe

    async def probe(self):
        self.calls += 1
        if self.on_probe:
            self.on_probe(self.calls)
        index = min(self.calls, len(self.results)) - 1
        result = self.results[index]
        if isinstance(result, Exception):
            raise result
        return result


class FakeCaptureRunner:
    """Writes a stand-in video file and returns a canned exit code."""

    def __init__(self, clock, *codes, duration=600, on_capture=None):
        self.clock = clock
        self.codes = list(codes) or [0]
        self.duration = duration
        self.on_capture = on_capture
        self.calls = []

    async def capture(self, url, output_path, log_path):
        self.calls.append((url, Path(output_path), Path(log_path)))
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_bytes(b"\x00")
        with open(log_path, "a", encoding="utf-8") as lf:
            lf.write("ffmpeg version n6.1\n")
        if self.on_capture:
            self.on_capture(len(self.calls))
        self.clock.advance(self.duration)
        return self.codes[min(len(self.calls), len(self.codes)) - 1]


class RecordingNotifier:
    def __init__(self, fail=False):
        self.messages = []
        self.fail = fail

    async def send(self, message):
        self.messages.append(message)
        if self.fail:
            raise RuntimeError("webhook down")
        return True


class FakeRunner:
    """Stands in for ProcessRunner."""

    def __init__(self, returncode=0, stdout="", stderr="", exc=None, logged_code=0):
        self.result = (returncode, stdout, stderr)
        self.exc = exc
        self.logged_code = logged_code
        self.commands = []

    async def run(self, cmd):
        self.commands.append(list(cmd))
        if self.exc:
            raise self.exc
        return self.result

    async def run_logged(self, cmd, log_path):
        self.commands.append(list(cmd))
        if self.exc:
            raise self.exc
        return self.logged_code


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(channel="foo", base_dir=tmp_path, interval=1)


def watch_lines(settings):
    lines = []
    for path in sorted(settings.log_dir.glob(f"{settings.channel}_watch_*.log")):
        lines += path.read_text(encoding="utf-8").splitlines()
    return lines


def download_logs(settings):
    return sorted(settings.log_dir.glob(f"{settings.channel}_download_*.log"))
