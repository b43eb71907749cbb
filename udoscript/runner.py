"""
Runner - entry points for running commands and scripts.

Owns the device handle for the whole process: the device is created on first
use by any run and destroyed once by `close()`.
"""

import os
import time
from enum import Enum
from pathlib import Path
from typing import IO, Iterable, MutableMapping, Optional, Union
from dataclasses import dataclass
import structlog

from .core.clock import Clock, Sleeper
from .core.config import EngineConfig
from .core.errors import ScriptError
from .device.actions import DeviceActions
from .device.handle import InputDevice
from .device.uinput import UInputWriter
from .device.writer import EventWriter, RecordingWriter
from .script.context import ExecutionContext, open_script


logger = structlog.get_logger()


class RunStatus(Enum):
    """Outcome of a run."""
    SUCCESS = "success"
    SCRIPT_ERROR = "script_error"   # Recoverable, the next run may proceed
    FATAL = "fatal"                 # Device failure


@dataclass
class RunResult:
    """Result of a command or script run."""
    status: RunStatus
    error: Optional[ScriptError] = None
    duration_ms: float = 0

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCESS


ScriptSource = Union[str, Path, IO[bytes], IO[str], Iterable[str]]


class Runner:
    """
    Runs commands and scripts against one shared virtual device.

    Usage:
        with Runner(config) as runner:
            result = runner.run_script("demo.udo")
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        writer: Optional[EventWriter] = None,
        environ: Optional[MutableMapping[str, str]] = None,
        output: Optional[IO[str]] = None,
        clock: Clock = time.monotonic,
        sleeper: Sleeper = time.sleep,
    ):
        """
        Initialize the runner.

        Args:
            config: Engine configuration, defaults when omitted
            writer: Event sink; a recording writer in dry-run mode, the
                UINPUT device otherwise
            environ: Environment for expansions and child processes
            output: Stream for `echo`, stdout when omitted
            clock: Monotonic clock
            sleeper: Sleep function
        """
        self.config = config or EngineConfig()
        if writer is None:
            if self.config.dry_run:
                writer = RecordingWriter(dry_run_log=True)
            else:
                writer = UInputWriter(self.config.device.path)
        self.writer = writer
        self.environ = environ if environ is not None else os.environ
        self.output = output
        self.clock = clock
        self.sleeper = sleeper

        self.device = InputDevice(self.config.device, writer, clock=clock, sleeper=sleeper)
        self.actions = DeviceActions(
            self.device,
            key_delay=self.config.key_delay,
            clock=clock,
            sleeper=sleeper,
        )
        self._closed = False

    def _context(self, name: str) -> ExecutionContext:
        return ExecutionContext(
            self.actions,
            self.config,
            environ=self.environ,
            name=name,
            output=self.output,
            clock=self.clock,
            sleeper=self.sleeper,
        )

    def _result(self, start: float, error: Optional[ScriptError] = None) -> RunResult:
        duration_ms = (time.monotonic() - start) * 1000
        if error is None:
            return RunResult(status=RunStatus.SUCCESS, duration_ms=duration_ms)
        status = RunStatus.FATAL if error.fatal else RunStatus.SCRIPT_ERROR
        logger.error("run_failed", error=str(error), **error.to_dict())
        return RunResult(status=status, error=error, duration_ms=duration_ms)

    def run_command(self, argv: list[str]) -> RunResult:
        """Run one command given as words, e.g. `["key", "KEY_A"]`."""
        start = time.monotonic()
        try:
            self._context("command").run_command(list(argv))
        except ScriptError as e:
            return self._result(start, e)
        return self._result(start)

    def run_script(self, source: ScriptSource, name: Optional[str] = None) -> RunResult:
        """
        Run a script.

        Args:
            source: Path (`-` is standard input) or an open stream
            name: Source name used in error messages

        Returns:
            RunResult with status and error, if any
        """
        start = time.monotonic()
        try:
            if isinstance(source, (str, Path)):
                context = self._context(name or str(source))
                with open_script(source) as stream:
                    context.run_stream(stream)
            else:
                self._context(name or "-").run_stream(source)
        except ScriptError as e:
            return self._result(start, e)
        return self._result(start)

    def close(self) -> None:
        """Destroy the device, if it was created."""
        if self._closed:
            return
        self._closed = True
        self.device.close()

    def __enter__(self) -> "Runner":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
