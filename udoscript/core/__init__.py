"""Core engine components."""

from .config import ConfigLoader, DeviceConfig, EngineConfig
from .logging import configure_logging
from .errors import (
    ScriptError,
    ParseError,
    UnknownCommandError,
    UnknownOptionError,
    ArityError,
    UnknownKeyError,
    UnknownAxisError,
    InvalidExpressionError,
    RangeError,
    DeviceSetupError,
    DeviceIOError,
    ControlFlowError,
    ProcessError,
    ConfigError,
)

__all__ = [
    "ConfigLoader",
    "DeviceConfig",
    "EngineConfig",
    "configure_logging",
    "ScriptError",
    "ParseError",
    "UnknownCommandError",
    "UnknownOptionError",
    "ArityError",
    "UnknownKeyError",
    "UnknownAxisError",
    "InvalidExpressionError",
    "RangeError",
    "DeviceSetupError",
    "DeviceIOError",
    "ControlFlowError",
    "ProcessError",
    "ConfigError",
]
