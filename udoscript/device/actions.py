"""
Device Actions - High-level input verbs built from device primitives.

Each action emits a complete packet: events followed by exactly one
synchronization, except `keydown`/`keyup` which synchronize after every key
and `tap` which does so after every press and release.
"""

import time
from typing import Optional, Sequence
from dataclasses import dataclass
import structlog

from ..core.clock import Clock, Sleeper, sleep_for
from .handle import InputDevice
from .tables import MAIN_ABS_AXES, MAIN_REL_AXES, MAIN_WHEEL_AXES


logger = structlog.get_logger()


@dataclass(frozen=True)
class PacketItem:
    """One element of an `input` packet."""
    kind: str          # keydown, keyup, relative, absolute or sync
    code: int = 0
    value: float = 0.0


def tap_count(repeat: Optional[int], run_time: Optional[float], delay: float) -> int:
    """Number of press/release cycles for `key`.

    A run time caps the count at `run_time / delay` cycles; at least one cycle
    is always performed.
    """
    count = repeat or 0
    if run_time:
        limit = int(run_time / delay)
        if count == 0 or limit < count:
            count = limit
    return max(count, 1)


class DeviceActions:
    """
    Input verb handlers on top of an `InputDevice`.

    Keeps no state of its own besides the default key delay; the device
    handle owns the open/closed state.
    """

    def __init__(
        self,
        device: InputDevice,
        key_delay: float = 0.05,
        clock: Clock = time.monotonic,
        sleeper: Sleeper = time.sleep,
    ):
        """
        Initialize device actions.

        Args:
            device: Device handle shared by all execution contexts
            key_delay: Default pause after each `key` press/release cycle
            clock: Monotonic clock used for sleeps
            sleeper: Sleep function used for sleeps
        """
        self.device = device
        self.key_delay = key_delay
        self.clock = clock
        self.sleeper = sleeper

    def open(self) -> None:
        self.device.open()

    def keydown(self, codes: Sequence[int]) -> None:
        for code in codes:
            self.device.key(code, True, sync=True)

    def keyup(self, codes: Sequence[int]) -> None:
        for code in codes:
            self.device.key(code, False, sync=True)

    def tap(
        self,
        codes: Sequence[int],
        repeat: Optional[int] = None,
        run_time: Optional[float] = None,
        delay: Optional[float] = None,
    ) -> int:
        """
        Press all keys in order, release them in reverse order, then pause.

        Returns:
            Number of cycles performed
        """
        if delay is None:
            delay = self.key_delay
        count = tap_count(repeat, run_time, delay)
        logger.info("key_tap", keys=len(codes), count=count, delay=delay)

        for _ in range(count):
            for code in codes:
                self.device.key(code, True, sync=True)
            for code in reversed(codes):
                self.device.key(code, False, sync=True)
            sleep_for(delay, self.clock, self.sleeper)
        return count

    def move(self, deltas: Sequence[float], alternate: bool = False, verb: str = "move") -> None:
        """Relative move along X/Y/Z, or RX/RY/RZ when `alternate`."""
        axes = MAIN_REL_AXES[1 if alternate else 0]
        for axis, delta in zip(axes, deltas):
            self.device.relative(axis, delta, verb=verb)
        self.device.sync()

    def wheel(self, delta: float, horizontal: bool = False, verb: str = "wheel") -> None:
        axis = MAIN_WHEEL_AXES[1 if horizontal else 0]
        self.device.relative(axis, delta, sync=True, verb=verb)

    def position(self, percents: Sequence[float], alternate: bool = False, verb: str = "position") -> None:
        """Absolute position on X/Y/Z, or RX/RY/RZ when `alternate`."""
        axes = MAIN_ABS_AXES[1 if alternate else 0]
        for axis, percent in zip(axes, percents):
            self.device.absolute(axis, percent, verb=verb)
        self.device.sync()

    def packet(self, items: Sequence[PacketItem], verb: str = "input") -> None:
        """Emit arbitrary events as one packet."""
        for item in items:
            if item.kind == "keydown":
                self.device.key(item.code, True)
            elif item.kind == "keyup":
                self.device.key(item.code, False)
            elif item.kind == "relative":
                self.device.relative(item.code, item.value, verb=verb)
            elif item.kind == "absolute":
                self.device.absolute(item.code, item.value, verb=verb)
            elif item.kind == "sync":
                self.device.sync()
            else:
                raise ValueError(f"Unknown packet item kind: {item.kind}")
        self.device.sync()
