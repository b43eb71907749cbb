"""Script engine error definitions."""

from typing import Optional, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for classification."""
    MEDIUM = "medium"     # Script error, the current script is aborted
    HIGH = "high"         # Configuration error, nothing was run
    CRITICAL = "critical" # Device failure, the run is fatal


class ErrorCategory(Enum):
    """Error categories for routing and reporting."""
    SYNTAX = "syntax"             # Quoting, expansion, expressions
    LOOKUP = "lookup"             # Unknown command, option, key or axis
    VALIDATION = "validation"     # Argument count or value out of range
    CONTROL_FLOW = "control_flow" # Mismatched blocks, bad break
    DEVICE = "device"             # UINPUT setup or write failure
    PROCESS = "process"           # Child process failure
    CONFIG = "config"             # Configuration loading


class ScriptError(Exception):
    """Base exception for all script engine errors."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.VALIDATION,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.category = category
        self.context = context or {}

    @property
    def fatal(self) -> bool:
        """Whether the error should stop the whole run, not just a script."""
        return self.severity == ErrorSeverity.CRITICAL

    def locate(self, source: str, lineno: Optional[int]) -> "ScriptError":
        """Attach the script position, keeping the innermost one."""
        self.context.setdefault("source", source)
        if lineno is not None:
            self.context.setdefault("line", lineno)
        return self

    def __str__(self) -> str:
        source = self.context.get("source")
        line = self.context.get("line")
        if source is not None and line is not None:
            return f"{source}:{line}: {self.message}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context,
        }


class ParseError(ScriptError):
    """Bad quoting or failed shell expansion in a script line."""

    def __init__(self, message: str, lineno: Optional[int] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.SYNTAX)
        super().__init__(message, **kwargs)
        if lineno is not None:
            self.context["line"] = lineno


class UnknownCommandError(ScriptError):
    """Verb not found in the verb table."""

    def __init__(self, message: str, verb: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.LOOKUP)
        super().__init__(message, **kwargs)
        self.context["verb"] = verb


class UnknownOptionError(ScriptError):
    """Option not accepted by a verb, or given twice."""

    def __init__(self, message: str, option: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.LOOKUP)
        super().__init__(message, **kwargs)
        self.context["option"] = option


class ArityError(ScriptError):
    """Wrong number of positional arguments."""


class UnknownKeyError(ScriptError):
    """Key or button name not found."""

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.LOOKUP)
        super().__init__(message, **kwargs)
        self.context["key"] = key


class UnknownAxisError(ScriptError):
    """Axis name not found."""

    def __init__(self, message: str, axis: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.LOOKUP)
        super().__init__(message, **kwargs)
        self.context["axis"] = axis


class InvalidExpressionError(ScriptError):
    """Condition expression cannot be evaluated."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.SYNTAX)
        super().__init__(message, **kwargs)


class RangeError(ScriptError):
    """Value outside the interval accepted by a command."""

    def __init__(self, message: str, value: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.context["value"] = value


class DeviceSetupError(ScriptError):
    """Virtual device could not be created."""

    def __init__(self, message: str, device: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.CRITICAL)
        kwargs.setdefault("category", ErrorCategory.DEVICE)
        super().__init__(message, **kwargs)
        self.context["device"] = device


class DeviceIOError(ScriptError):
    """Event could not be written to the virtual device."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.CRITICAL)
        kwargs.setdefault("category", ErrorCategory.DEVICE)
        super().__init__(message, **kwargs)


class ControlFlowError(ScriptError):
    """Mismatched if/else/end/break, or an unterminated block."""

    def __init__(self, message: str, depth: Optional[int] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.CONTROL_FLOW)
        super().__init__(message, **kwargs)
        if depth is not None:
            self.context["depth"] = depth


class ProcessError(ScriptError):
    """Child process could not be started or failed."""

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        returncode: Optional[int] = None,
        **kwargs
    ):
        kwargs.setdefault("category", ErrorCategory.PROCESS)
        super().__init__(message, **kwargs)
        self.context["command"] = command
        self.context["returncode"] = returncode


class ConfigError(ScriptError):
    """Configuration loading or validation error."""

    def __init__(self, message: str, config_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.CONFIG)
        super().__init__(message, **kwargs)
        self.context["config_path"] = config_path
