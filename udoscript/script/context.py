"""
Execution context - control flow for one script or command run.

Lines are executed as they are read. A `loop` collects its body into a
scratch buffer up to the matching `end` and then replays the buffer; an
`if` with a false condition skips lines, looking only at their first word,
up to its `else` or `end`.
"""

import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Callable, Iterable, Iterator, MutableMapping, Optional, Union
from dataclasses import dataclass, field
import structlog

from ..core.clock import Clock, Sleeper
from ..core.config import EngineConfig
from ..core.errors import (
    ControlFlowError,
    ErrorCategory,
    RangeError,
    ScriptError,
)
from ..device.actions import DeviceActions, PacketItem
from ..device.tables import find_axis, find_key
from .commands import GenericCommands
from .evaluator import ConditionEvaluator
from .lexer import ScriptLine, first_word, read_lines, split_words
from .values import parse_absolute, parse_duration, parse_positive, parse_relative
from .verbs import BLOCK_CLOSER, BLOCK_OPENERS, CommandInvocation, Opcode, bind


logger = structlog.get_logger()

LOOP_COUNT_VAR = "UDOSCRIPT_LOOP_COUNT"
LOOP_RTIME_VAR = "UDOSCRIPT_LOOP_RTIME"
UNBOUNDED = "*"

PSEUDO_KEYDOWN = "KEYDOWN"
PSEUDO_KEYUP = "KEYUP"
PSEUDO_SYNC = "SYNC"


class ScratchBuffer:
    """Stored body of one loop, replayed by index."""

    def __init__(self):
        self._lines: list[ScriptLine] = []
        self.cursor = 0

    def __len__(self) -> int:
        return len(self._lines)

    def append(self, line: ScriptLine) -> None:
        self._lines.append(line)

    def rewind(self) -> None:
        self.cursor = 0

    def truncate(self) -> None:
        self._lines.clear()
        self.cursor = 0

    def __iter__(self) -> Iterator[ScriptLine]:
        while self.cursor < len(self._lines):
            line = self._lines[self.cursor]
            self.cursor += 1
            yield line


@dataclass
class LoopFrame:
    """An active loop: remaining iterations (None = unbounded) and deadline."""
    remaining: Optional[int]
    deadline: Optional[float]
    lineno: Optional[int] = None
    buffer: ScratchBuffer = field(default_factory=ScratchBuffer)


@dataclass
class CondFrame:
    """An active `if` block."""
    lineno: Optional[int] = None
    else_seen: bool = False


Frame = Union[LoopFrame, CondFrame]


class LoopBreak(Exception):
    """Raised by `break`, caught by the enclosing loop replays."""

    def __init__(self, levels: int):
        super().__init__(levels)
        self.levels = levels


class ScriptExit(Exception):
    """Raised by `exit`, ends the current script successfully."""


@contextmanager
def open_script(path: Union[str, Path]):
    """Open a script file in binary mode; `-` is standard input."""
    if str(path) == "-":
        yield sys.stdin.buffer
        return
    try:
        stream = open(path, "rb")
    except OSError as e:
        raise ScriptError(
            f"{path}: cannot open script file: {e.strerror or e}",
            category=ErrorCategory.LOOKUP,
            context={"path": str(path)},
        )
    with stream:
        yield stream


class ExecutionContext:
    """
    Executes script lines against the device and the environment.

    One context is created per script or command run. Sub-scripts get a
    child context sharing the device actions, environment and config.
    """

    def __init__(
        self,
        actions: DeviceActions,
        config: EngineConfig,
        environ: Optional[MutableMapping[str, str]] = None,
        name: str = "-",
        output: Optional[IO[str]] = None,
        clock: Clock = time.monotonic,
        sleeper: Sleeper = time.sleep,
        parent: Optional["ExecutionContext"] = None,
    ):
        self.actions = actions
        self.config = config
        self.environ = environ if environ is not None else os.environ
        self.name = name
        self.output = output
        self.clock = clock
        self.sleeper = sleeper
        self.parent = parent
        self.script_depth = parent.script_depth + 1 if parent else 0

        self.stack: list[Frame] = []
        self.evaluator = ConditionEvaluator(max_depth=config.max_expression_depth)
        self.commands = GenericCommands(self.environ, output=output, clock=clock, sleeper=sleeper)

        # Omitting state: the conditional frame that started it, and the
        # nesting level of blocks opened inside the omitted lines
        self._omit_frame: Optional[CondFrame] = None
        self._omit_nesting = 0

        self._handlers: dict[Opcode, Callable[[CommandInvocation, Iterator[ScriptLine]], None]] = {
            Opcode.OPEN: self._do_open,
            Opcode.INPUT: self._do_input,
            Opcode.KEYDOWN: self._do_keydown,
            Opcode.KEYUP: self._do_keyup,
            Opcode.KEY: self._do_key,
            Opcode.MOVE: self._do_move,
            Opcode.WHEEL: self._do_wheel,
            Opcode.POSITION: self._do_position,
            Opcode.LOOP: self._do_loop,
            Opcode.IF: self._do_if,
            Opcode.ELSE: self._do_else,
            Opcode.BREAK: self._do_break,
            Opcode.END: self._do_end,
            Opcode.EXIT: self._do_exit,
            Opcode.SCRIPT: self._do_script,
            Opcode.SLEEP: self._do_sleep,
            Opcode.EXEC: self._do_exec,
            Opcode.ECHO: self._do_echo,
            Opcode.SET: self._do_set,
        }

    # Entry points

    def run(self, lines: Iterable[ScriptLine]) -> None:
        """Execute script lines, then check that every block was closed."""
        logger.info("script_started", source=self.name, depth=self.script_depth)
        try:
            self._execute_stream(iter(lines))
        except ScriptExit:
            logger.info("script_exited", source=self.name)
            self._reset()
        except ScriptError:
            self._reset()
            raise
        self.finish()
        logger.info("script_finished", source=self.name)

    def run_stream(self, stream) -> None:
        self.run(read_lines(stream))

    def run_command(self, words: list[str]) -> None:
        """Execute one already split command line."""
        if words:
            try:
                self._dispatch(words, None, iter(()))
            except ScriptExit:
                self._reset()
            except ScriptError as e:
                self._reset()
                raise e.locate(self.name, None)
        self.finish()

    def finish(self) -> None:
        """Teardown check: the control-flow stack must be empty."""
        if self.stack:
            frame = self.stack[-1]
            depth = len(self.stack)
            self._reset()
            kind = "loop" if isinstance(frame, LoopFrame) else "if"
            error = ControlFlowError(f"{kind} was not terminated, depth {depth}", depth=depth)
            raise error.locate(self.name, frame.lineno)

    def _reset(self) -> None:
        self.stack.clear()
        self._omit_frame = None
        self._omit_nesting = 0
        self._update_loop_env()

    # Line processing

    def _execute_stream(self, lines: Iterator[ScriptLine]) -> None:
        for line in lines:
            if self._omit_frame is not None:
                self._omit(line)
                continue
            try:
                words = split_words(line.text, line.lineno, self.config.shell, self.environ)
                if not words:
                    continue
                self._dispatch(words, line.lineno, lines)
            except ScriptError as e:
                raise e.locate(self.name, line.lineno)

    def _dispatch(self, words: list[str], lineno: Optional[int], lines: Iterator[ScriptLine]) -> None:
        invocation = bind(words, lineno)
        logger.debug("command_dispatched", verb=invocation.name, args=invocation.args, line=lineno)
        self._handlers[invocation.verb.opcode](invocation, lines)

    def _omit(self, line: ScriptLine) -> None:
        try:
            word = first_word(line.text)
        except ScriptError as e:
            raise e.locate(self.name, line.lineno)
        if word in BLOCK_OPENERS:
            self._omit_nesting += 1
        elif word == BLOCK_CLOSER:
            if self._omit_nesting > 0:
                self._omit_nesting -= 1
            else:
                self.stack.pop()
                self._omit_frame = None
                logger.debug("omit_finished", line=line.lineno, at="end")
        elif word == "else" and self._omit_nesting == 0:
            frame = self._omit_frame
            if frame.else_seen:
                raise ControlFlowError("else: mismatched context").locate(self.name, line.lineno)
            frame.else_seen = True
            self._omit_frame = None
            logger.debug("omit_finished", line=line.lineno, at="else")

    def _start_omitting(self, frame: CondFrame) -> None:
        self._omit_frame = frame
        self._omit_nesting = 0

    def _push(self, frame: Frame, verb: str) -> None:
        if len(self.stack) >= self.config.max_control_depth:
            raise ControlFlowError(
                f"{verb}: too many levels (max {self.config.max_control_depth})",
                depth=len(self.stack),
            )
        self.stack.append(frame)

    # Loops

    def _loop_frames(self) -> list[LoopFrame]:
        return [frame for frame in self.stack if isinstance(frame, LoopFrame)]

    def _innermost_loop(self) -> Optional[LoopFrame]:
        context: Optional[ExecutionContext] = self
        while context is not None:
            loops = context._loop_frames()
            if loops:
                return loops[-1]
            context = context.parent
        return None

    def _update_loop_env(self) -> None:
        """Publish the innermost loop's remaining count and time."""
        frame = self._innermost_loop()
        if frame is None:
            self.environ.pop(LOOP_COUNT_VAR, None)
            self.environ.pop(LOOP_RTIME_VAR, None)
            return
        count = UNBOUNDED if frame.remaining is None else str(frame.remaining)
        if frame.deadline is None:
            rtime = UNBOUNDED
        else:
            rtime = f"{max(frame.deadline - self.clock(), 0.0):.3f}"
        self.environ[LOOP_COUNT_VAR] = count
        self.environ[LOOP_RTIME_VAR] = rtime

    def _collect(self, frame: LoopFrame, lines: Iterator[ScriptLine]) -> None:
        """Store raw lines up to the `end` matching the loop."""
        nesting = 0
        for line in lines:
            try:
                word = first_word(line.text)
            except ScriptError as e:
                raise e.locate(self.name, line.lineno)
            if word in BLOCK_OPENERS:
                nesting += 1
            elif word == BLOCK_CLOSER:
                if nesting == 0:
                    return
                nesting -= 1
            frame.buffer.append(line)
        raise ControlFlowError("loop was not terminated", depth=len(self.stack))

    def _do_loop(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        count: Optional[int] = None
        run_time: Optional[float] = None
        if inv.args:
            count = parse_positive(inv.args[0], inv.name, "loop counter")
        time_text = inv.args[1] if len(inv.args) > 1 else None
        if inv.option("time") is not None:
            if time_text is not None:
                raise RangeError(f"{inv.name}: run time given twice", value=inv.option("time"))
            time_text = inv.option("time")
        if time_text is not None:
            run_time = parse_duration(time_text, inv.name, "run time")
        if count is None and run_time is None:
            raise RangeError(f"{inv.name}: either counter or time should be specified")

        now = self.clock()
        frame = LoopFrame(
            remaining=count,
            deadline=now + run_time if run_time is not None else None,
            lineno=inv.lineno,
        )
        self._push(frame, inv.name)
        self._collect(frame, lines)
        logger.info("loop_started", count=count, run_time=run_time, lines=len(frame.buffer), line=inv.lineno)
        self._replay(frame)

    def _replay(self, frame: LoopFrame) -> None:
        base = len(self.stack)
        iterations = 0
        while True:
            self._update_loop_env()
            frame.buffer.rewind()
            try:
                self._execute_stream(iter(frame.buffer))
            except LoopBreak as brk:
                del self.stack[base - 1:]
                self._omit_frame = None
                frame.buffer.truncate()
                self._update_loop_env()
                logger.info("loop_broken", iterations=iterations + 1, line=frame.lineno)
                brk.levels -= 1
                if brk.levels > 0:
                    raise
                return

            iterations += 1
            if frame.remaining is not None:
                frame.remaining -= 1
            count_done = frame.remaining is not None and frame.remaining <= 0
            time_done = frame.deadline is not None and self.clock() >= frame.deadline
            if count_done or time_done:
                break
            logger.debug("loop_continued", remaining=frame.remaining, iteration=iterations)

        self.stack.pop()
        frame.buffer.truncate()
        self._update_loop_env()
        logger.info("loop_finished", iterations=iterations, line=frame.lineno)

    def _do_break(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        levels = parse_positive(inv.args[0], inv.name, "loop depth") if inv.args else 1
        available = len(self._loop_frames())
        if levels > available:
            raise ControlFlowError(f"{inv.name}: mismatched context", depth=available)
        logger.debug("loop_break", levels=levels)
        raise LoopBreak(levels)

    # Conditionals

    def _do_if(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        result = self.evaluator.evaluate(inv.args, inv.name)
        logger.info("condition_evaluated", result=result, line=inv.lineno)
        frame = CondFrame(lineno=inv.lineno)
        self._push(frame, inv.name)
        if not result:
            self._start_omitting(frame)

    def _do_else(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        frame = self.stack[-1] if self.stack else None
        if not isinstance(frame, CondFrame) or frame.else_seen:
            raise ControlFlowError(f"{inv.name}: mismatched context", depth=len(self.stack))
        # The true branch ran, skip the false one
        frame.else_seen = True
        self._start_omitting(frame)

    def _do_end(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        if not self.stack or not isinstance(self.stack[-1], CondFrame):
            raise ControlFlowError(f"{inv.name}: mismatched context", depth=len(self.stack))
        self.stack.pop()

    def _do_exit(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        raise ScriptExit()

    # Sub-scripts

    def _do_script(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        path = inv.args[0]
        if self.script_depth + 1 > self.config.max_script_depth:
            raise ControlFlowError(
                f"{inv.name}: too many nested scripts (max {self.config.max_script_depth})",
                depth=self.script_depth,
            )
        child = ExecutionContext(
            self.actions,
            self.config,
            environ=self.environ,
            name=path,
            output=self.output,
            clock=self.clock,
            sleeper=self.sleeper,
            parent=self,
        )
        with open_script(path) as stream:
            child.run_stream(stream)

    # Device verbs

    def _do_open(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        self.actions.open()

    def _parse_packet_item(self, verb: str, text: str) -> PacketItem:
        name, sep, value = text.partition("=")
        if name.upper() == PSEUDO_SYNC:
            return PacketItem("sync")
        if not sep:
            raise RangeError(f"{verb}: missing separator in '{text}'", value=text)
        if name.upper() == PSEUDO_KEYDOWN:
            return PacketItem("keydown", find_key(value, verb))
        if name.upper() == PSEUDO_KEYUP:
            return PacketItem("keyup", find_key(value, verb))
        code, is_absolute = find_axis(name, verb)
        if is_absolute:
            return PacketItem("absolute", code, parse_absolute(value, verb))
        return PacketItem("relative", code, parse_relative(value, verb))

    def _do_input(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        items = [self._parse_packet_item(inv.name, arg) for arg in inv.args]
        self.actions.packet(items, verb=inv.name)

    def _do_keydown(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        self.actions.keydown([find_key(arg, inv.name) for arg in inv.args])

    def _do_keyup(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        self.actions.keyup([find_key(arg, inv.name) for arg in inv.args])

    def _do_key(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        repeat = run_time = delay = None
        if inv.option("repeat") is not None:
            repeat = parse_positive(inv.option("repeat"), inv.name, "repeat value")
        if inv.option("time") is not None:
            run_time = parse_duration(inv.option("time"), inv.name, "run time value")
        if inv.option("delay") is not None:
            delay = parse_duration(inv.option("delay"), inv.name, "delay value")
        codes = [find_key(arg, inv.name) for arg in inv.args]
        self.actions.tap(codes, repeat=repeat, run_time=run_time, delay=delay)

    def _do_move(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        deltas = [parse_relative(arg, inv.name) for arg in inv.args]
        self.actions.move(deltas, alternate=inv.flag("r"), verb=inv.name)

    def _do_wheel(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        self.actions.wheel(parse_relative(inv.args[0], inv.name), horizontal=inv.flag("h"), verb=inv.name)

    def _do_position(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        percents = [parse_absolute(arg, inv.name) for arg in inv.args]
        self.actions.position(percents, alternate=inv.flag("r"), verb=inv.name)

    # Generic verbs

    def _do_sleep(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        self.commands.sleep(parse_duration(inv.args[0], inv.name))

    def _do_exec(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        self.commands.exec(inv.args, detach=inv.flag("detach"))

    def _do_echo(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        self.commands.echo(inv.args)

    def _do_set(self, inv: CommandInvocation, lines: Iterator[ScriptLine]) -> None:
        self.commands.set(inv.args[0], inv.args[1] if len(inv.args) > 1 else None)
