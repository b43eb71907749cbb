"""
Verb table and argument binding.

The table is static: every verb, its positional argument bounds and the
options it accepts. Binding a split line against it yields a
`CommandInvocation`, or the error that dispatch would report.
"""

from enum import Enum
from typing import Optional, Sequence
from dataclasses import dataclass, field

from ..core.errors import ArityError, UnknownCommandError, UnknownOptionError
from .values import to_float


class Opcode(Enum):
    """Verb operation codes."""
    OPEN = "open"
    INPUT = "input"
    KEYDOWN = "keydown"
    KEYUP = "keyup"
    KEY = "key"
    MOVE = "move"
    WHEEL = "wheel"
    POSITION = "position"
    LOOP = "loop"
    IF = "if"
    ELSE = "else"
    BREAK = "break"
    END = "end"
    EXIT = "exit"
    SCRIPT = "script"
    SLEEP = "sleep"
    EXEC = "exec"
    ECHO = "echo"
    SET = "set"


# Options taking a value; any other option is a flag
VALUE_OPTIONS = frozenset({"repeat", "time", "delay"})

# Verbs that open or close a block
BLOCK_OPENERS = frozenset({"loop", "if"})
BLOCK_CLOSER = "end"


@dataclass(frozen=True)
class VerbDescriptor:
    """Static description of a verb."""
    name: str
    opcode: Opcode
    min_args: int
    max_args: Optional[int]       # None means unbounded
    options: frozenset = frozenset()
    usage: str = ""
    description: str = ""

    @property
    def accepts_options(self) -> bool:
        return bool(self.options)


@dataclass
class CommandInvocation:
    """A verb bound to its option values and positional arguments."""
    verb: VerbDescriptor
    options: dict[str, Optional[str]] = field(default_factory=dict)
    args: list[str] = field(default_factory=list)
    lineno: Optional[int] = None

    @property
    def name(self) -> str:
        return self.verb.name

    def flag(self, name: str) -> bool:
        return name in self.options

    def option(self, name: str) -> Optional[str]:
        return self.options.get(name)


def _verb(name, opcode, min_args, max_args, options=(), usage="", description=""):
    return VerbDescriptor(name, opcode, min_args, max_args, frozenset(options), usage, description)


VERBS: tuple[VerbDescriptor, ...] = (
    _verb("open", Opcode.OPEN, 0, 0,
          usage="",
          description="Initialize the virtual input device."),
    _verb("input", Opcode.INPUT, 1, None,
          usage="<axis>=<value>...",
          description="Generate a packet of input values."),
    _verb("keydown", Opcode.KEYDOWN, 1, None,
          usage="<key>...",
          description="Press down specified keys."),
    _verb("keyup", Opcode.KEYUP, 1, None,
          usage="<key>...",
          description="Release specified keys."),
    _verb("key", Opcode.KEY, 1, None, ("repeat", "time", "delay"),
          usage="[-repeat <N>] [-time <seconds>] [-delay <seconds>] <key>...",
          description="Press down and release specified keys."),
    _verb("move", Opcode.MOVE, 1, 3, ("r",),
          usage="[-r] <delta-x> [<delta-y> [<delta-z>]]",
          description="Move pointer by specified delta."),
    _verb("wheel", Opcode.WHEEL, 1, 1, ("h",),
          usage="[-h] <delta>",
          description="Move wheel by specified delta."),
    _verb("position", Opcode.POSITION, 1, 3, ("r",),
          usage="[-r] <pos-x> [<pos-y> [<pos-z>]]",
          description="Move pointer to specified absolute position."),
    _verb("loop", Opcode.LOOP, 0, 2, ("time",),
          usage="[-time <seconds>] [<N> [<seconds>]]",
          description="Repeat a block of commands."),
    _verb("if", Opcode.IF, 1, None,
          usage="<condition>",
          description="Execute a block of commands under condition."),
    _verb("else", Opcode.ELSE, 0, 0),
    _verb("break", Opcode.BREAK, 0, 1,
          usage="[<n>]",
          description="Break from one or more loops."),
    _verb("end", Opcode.END, 0, 0),
    _verb("exit", Opcode.EXIT, 0, 0,
          usage="",
          description="Finish executing current script."),
    _verb("script", Opcode.SCRIPT, 1, 1,
          usage="<filename>",
          description="Execute commands from specified file."),
    _verb("sleep", Opcode.SLEEP, 1, 1,
          usage="<seconds>",
          description="Sleep for specified time."),
    _verb("exec", Opcode.EXEC, 1, None, ("detach",),
          usage="[-detach] <command> [<arg>...]",
          description="Execute specified command."),
    _verb("echo", Opcode.ECHO, 0, None,
          usage="<arg>...",
          description="Print specified arguments to standard output."),
    _verb("set", Opcode.SET, 1, 2,
          usage="<var-name> [<value>]",
          description="Set or unset an environment variable."),
)

VERB_TABLE: dict[str, VerbDescriptor] = {verb.name: verb for verb in VERBS}


def find_verb(name: str) -> VerbDescriptor:
    verb = VERB_TABLE.get(name)
    if verb is None:
        raise UnknownCommandError(f"unrecognized command '{name}'", verb=name)
    return verb


def _ends_options(token: str) -> bool:
    return token == "--" or not token.startswith("-") or len(token) == 1 or to_float(token) is not None


def bind(words: Sequence[str], lineno: Optional[int] = None) -> CommandInvocation:
    """
    Resolve a split line into a command invocation.

    Options are only consumed for verbs that accept any; the option run ends
    at the first non-option word, a numeric word or `--` (which is dropped).

    Raises:
        UnknownCommandError: Verb not in the table
        UnknownOptionError: Option not accepted or given twice
        ArityError: Positional count outside the verb's bounds
    """
    verb = find_verb(words[0])
    invocation = CommandInvocation(verb=verb, lineno=lineno)
    rest = list(words[1:])

    i = 0
    if verb.accepts_options:
        while i < len(rest) and not _ends_options(rest[i]):
            name = rest[i][1:]
            if name not in verb.options:
                raise UnknownOptionError(f"{verb.name}: unrecognized option {rest[i]}", option=rest[i])
            if name in invocation.options:
                raise UnknownOptionError(f"{verb.name}: duplicate option {rest[i]}", option=rest[i])
            if name in VALUE_OPTIONS:
                if i + 1 >= len(rest):
                    raise ArityError(f"{verb.name}: missing parameter for option {rest[i]}")
                invocation.options[name] = rest[i + 1]
                i += 2
            else:
                invocation.options[name] = None
                i += 1
        if i < len(rest) and rest[i] == "--":
            i += 1

    invocation.args = rest[i:]
    count = len(invocation.args)
    if count < verb.min_args:
        raise ArityError(f"{verb.name}: not enough arguments")
    if verb.max_args is not None and count > verb.max_args:
        raise ArityError(f"{verb.name}: too many arguments")
    return invocation
