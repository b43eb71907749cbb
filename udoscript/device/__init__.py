"""Virtual input device: name tables, event writers, handle and actions."""

from .tables import KEYS, REL_AXES, ABS_AXES, find_key, find_axis
from .writer import (
    AbsInfo,
    DeviceCapabilities,
    DeviceIdentity,
    EventWriter,
    InputEvent,
    RecordingWriter,
)
from .uinput import UInputWriter
from .handle import InputDevice, build_capabilities, scale_absolute
from .actions import DeviceActions, PacketItem, tap_count

__all__ = [
    "KEYS",
    "REL_AXES",
    "ABS_AXES",
    "find_key",
    "find_axis",
    "AbsInfo",
    "DeviceCapabilities",
    "DeviceIdentity",
    "EventWriter",
    "InputEvent",
    "RecordingWriter",
    "UInputWriter",
    "InputDevice",
    "build_capabilities",
    "scale_absolute",
    "DeviceActions",
    "PacketItem",
    "tap_count",
]
