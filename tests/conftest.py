"""Shared fixtures: fake clock, recording device and runner factory."""

import io
import os
import pytest

from udoscript.core.config import DeviceConfig, EngineConfig
from udoscript.device.writer import RecordingWriter
from udoscript.runner import Runner


class FakeClock:
    """Monotonic clock that only moves when slept on."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def writer():
    return RecordingWriter()


@pytest.fixture
def environ():
    """Isolated environment; PATH is kept so child processes can be found."""
    return {"PATH": os.environ.get("PATH", "/usr/bin:/bin")}


@pytest.fixture
def config():
    return EngineConfig(device=DeviceConfig(settle_time=0.5))


@pytest.fixture
def runner(config, writer, environ, clock):
    """Runner on a recording device with captured `echo` output."""
    output = io.StringIO()
    runner = Runner(
        config,
        writer=writer,
        environ=environ,
        output=output,
        clock=clock,
        sleeper=clock.sleep,
    )
    runner.output_text = output.getvalue
    yield runner
    runner.close()


def _script_stream(text: str) -> io.StringIO:
    lines = [line.strip() for line in text.strip().splitlines()]
    return io.StringIO("\n".join(lines) + "\n")


@pytest.fixture
def script():
    """Build a script stream from indented test text."""
    return _script_stream
