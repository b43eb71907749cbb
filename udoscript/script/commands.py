"""Generic commands: sleep, exec, echo and set."""

import subprocess
import sys
import time
from typing import MutableMapping, Optional, Sequence, TextIO
import structlog

from ..core.clock import Clock, Sleeper, sleep_for
from ..core.errors import ProcessError, RangeError


logger = structlog.get_logger()


class GenericCommands:
    """
    Commands that do not touch the input device.

    The environment mapping is shared with the execution context so that
    `set` is visible to later expansions and child processes.
    """

    def __init__(
        self,
        environ: MutableMapping[str, str],
        output: Optional[TextIO] = None,
        clock: Clock = time.monotonic,
        sleeper: Sleeper = time.sleep,
    ):
        self.environ = environ
        self.output = output
        self.clock = clock
        self.sleeper = sleeper

    def sleep(self, seconds: float) -> None:
        logger.info("sleeping", seconds=seconds)
        sleep_for(seconds, self.clock, self.sleeper)

    def echo(self, args: Sequence[str]) -> None:
        stream = self.output if self.output is not None else sys.stdout
        stream.write(" ".join(args) + "\n")
        stream.flush()

    def set(self, name: str, value: Optional[str] = None) -> None:
        """Set an environment variable, or remove it when no value is given."""
        if not name or "=" in name or "\0" in name:
            raise RangeError(f"set: error for name '{name}': invalid variable name", value=name)
        if value is None:
            self.environ.pop(name, None)
            logger.debug("variable_unset", name=name)
        else:
            self.environ[name] = value
            logger.debug("variable_set", name=name, value=value)

    def exec(self, argv: Sequence[str], detach: bool = False) -> int:
        """
        Run a child process with the current environment.

        A detached child is started in a new session and not waited for.

        Returns:
            Child PID
        """
        command = argv[0]
        logger.info("exec_starting", command=command, detach=detach)
        try:
            process = subprocess.Popen(
                list(argv),
                env=dict(self.environ),
                start_new_session=detach,
            )
        except OSError as e:
            raise ProcessError(f"exec: cannot execute command '{command}': {e}", command=command)

        logger.info("exec_started", command=command, pid=process.pid)
        if detach:
            return process.pid

        returncode = process.wait()
        logger.info("exec_finished", command=command, pid=process.pid, returncode=returncode)
        if returncode != 0:
            raise ProcessError(
                f"exec: command '{command}' failed with status {returncode}",
                command=command,
                returncode=returncode,
            )
        return process.pid
