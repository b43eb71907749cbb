"""Linux input event codes and name lookup tables.

Codes come from `evdev.ecodes`, generated from `linux/input-event-codes.h`.
Names are matched case-insensitively, keys may also be given as numeric codes.
"""

from typing import Optional

from evdev import ecodes

from ..core.errors import UnknownAxisError, UnknownKeyError


EV_SYN = ecodes.EV_SYN
EV_KEY = ecodes.EV_KEY
EV_REL = ecodes.EV_REL
EV_ABS = ecodes.EV_ABS

SYN_REPORT = ecodes.SYN_REPORT

INPUT_PROP_POINTER = ecodes.INPUT_PROP_POINTER
INPUT_PROP_DIRECT = ecodes.INPUT_PROP_DIRECT

KEY_MAX = ecodes.KEY_MAX

BTN_LEFT = ecodes.BTN_LEFT
BTN_TOOL_PEN = ecodes.BTN_TOOL_PEN
BTN_TOOL_QUADTAP = ecodes.BTN_TOOL_QUADTAP

ABS_MAX_VALUE = 1000000


def _codes(*names: str) -> dict[str, int]:
    return {name: ecodes.ecodes[name] for name in names}


REL_AXES: dict[str, int] = _codes(
    # Mouse, touchpad, gamepad left stick
    "REL_X", "REL_Y", "REL_Z",
    # Gamepad right stick
    "REL_RX", "REL_RY", "REL_RZ",
    "REL_DIAL", "REL_MISC",
    # Wheels, paired with their high-resolution axes
    "REL_WHEEL", "REL_HWHEEL",
)

REL_WHEEL_HI_RES = ecodes.REL_WHEEL_HI_RES
REL_HWHEEL_HI_RES = ecodes.REL_HWHEEL_HI_RES

# Low-resolution axis → (high-resolution axis, factor)
HIRES_AXES: dict[int, tuple[int, int]] = {
    ecodes.REL_WHEEL: (REL_WHEEL_HI_RES, 120),
    ecodes.REL_HWHEEL: (REL_HWHEEL_HI_RES, 120),
}

ABS_AXES: dict[str, int] = _codes(
    "ABS_X", "ABS_Y", "ABS_Z",
    "ABS_RX", "ABS_RY", "ABS_RZ",
    "ABS_THROTTLE", "ABS_RUDDER", "ABS_WHEEL", "ABS_GAS", "ABS_BRAKE",
    # Analog gamepad controls
    "ABS_HAT0X", "ABS_HAT0Y", "ABS_HAT1X", "ABS_HAT1Y",
    "ABS_HAT2X", "ABS_HAT2Y", "ABS_HAT3X", "ABS_HAT3Y",
    # Digitizer
    "ABS_PRESSURE", "ABS_DISTANCE", "ABS_TILT_X", "ABS_TILT_Y", "ABS_TOOL_WIDTH",
    "ABS_VOLUME", "ABS_PROFILE", "ABS_MISC",
)

# Main and alternative (-r / -h) axis sets used by move, position and wheel
MAIN_REL_AXES = (
    (ecodes.REL_X, ecodes.REL_Y, ecodes.REL_Z),
    (ecodes.REL_RX, ecodes.REL_RY, ecodes.REL_RZ),
)
MAIN_ABS_AXES = (
    (ecodes.ABS_X, ecodes.ABS_Y, ecodes.ABS_Z),
    (ecodes.ABS_RX, ecodes.ABS_RY, ecodes.ABS_RZ),
)
MAIN_WHEEL_AXES = (ecodes.REL_WHEEL, ecodes.REL_HWHEEL)

KEYS: dict[str, int] = {
    name: code
    for name, code in ecodes.ecodes.items()
    if name.startswith(("KEY_", "BTN_"))
    and name not in ("KEY_MAX", "KEY_CNT")
    and 0 <= code <= KEY_MAX
}

_KEYS_FOLDED = {name.upper(): code for name, code in KEYS.items()}
_REL_FOLDED = {name.upper(): code for name, code in REL_AXES.items()}
_ABS_FOLDED = {name.upper(): code for name, code in ABS_AXES.items()}


def _parse_code(text: str) -> int:
    # C-style: a leading zero means octal
    if len(text) > 1 and text[0] == "0" and text[1].isdigit():
        return int(text, 8)
    return int(text, 0)


def find_key(name: str, verb: Optional[str] = None) -> int:
    """Convert a key/button name or numeric code (decimal, 0x hex, 0 octal) to its code."""
    prefix = f"{verb}: " if verb else ""
    if name[:1].isdigit():
        try:
            code = _parse_code(name)
        except ValueError:
            code = -1
        if 0 <= code <= KEY_MAX:
            return code
        raise UnknownKeyError(f"{prefix}unrecognized key '{name}'", key=name)
    code = _KEYS_FOLDED.get(name.upper())
    if code is None:
        raise UnknownKeyError(f"{prefix}unrecognized key '{name}'", key=name)
    return code


def find_axis(
    name: str,
    verb: Optional[str] = None,
    relative: bool = True,
    absolute: bool = True,
) -> tuple[int, bool]:
    """Convert an axis name to `(code, is_absolute)`."""
    folded = name.upper()
    if absolute and folded in _ABS_FOLDED:
        return _ABS_FOLDED[folded], True
    if relative and folded in _REL_FOLDED:
        return _REL_FOLDED[folded], False
    prefix = f"{verb}: " if verb else ""
    raise UnknownAxisError(f"{prefix}unrecognized axis '{name}'", axis=name)
