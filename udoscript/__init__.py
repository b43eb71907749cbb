"""
udoscript - scripted keyboard, mouse and gamepad input through Linux UINPUT.

Scripts are line-oriented: input verbs (`key`, `move`, `position`, ...),
control flow (`loop`, `if`/`else`, `break`, `end`, `exit`) and a few generic
commands (`sleep`, `exec`, `echo`, `set`).
"""

from .core import ConfigLoader, DeviceConfig, EngineConfig, ScriptError, configure_logging
from .runner import Runner, RunResult, RunStatus

__version__ = "0.1.0"

__all__ = [
    "ConfigLoader",
    "DeviceConfig",
    "EngineConfig",
    "ScriptError",
    "configure_logging",
    "Runner",
    "RunResult",
    "RunStatus",
]
