"""Script interpretation: line reading, verbs, conditions and control flow."""

from .lexer import ScriptLine, read_lines, split_words
from .verbs import VERB_TABLE, CommandInvocation, Opcode, VerbDescriptor, bind, find_verb
from .evaluator import ConditionEvaluator
from .commands import GenericCommands
from .context import (
    LOOP_COUNT_VAR,
    LOOP_RTIME_VAR,
    CondFrame,
    ExecutionContext,
    LoopFrame,
    ScratchBuffer,
    open_script,
)

__all__ = [
    "ScriptLine",
    "read_lines",
    "split_words",
    "VERB_TABLE",
    "CommandInvocation",
    "Opcode",
    "VerbDescriptor",
    "bind",
    "find_verb",
    "ConditionEvaluator",
    "GenericCommands",
    "LOOP_COUNT_VAR",
    "LOOP_RTIME_VAR",
    "CondFrame",
    "ExecutionContext",
    "LoopFrame",
    "ScratchBuffer",
    "open_script",
]
