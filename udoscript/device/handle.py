"""Virtual input device handle: lazy setup and primitive events."""

import time
from typing import Optional
import structlog

from ..core.clock import Clock, Sleeper, sleep_for
from ..core.config import DeviceConfig
from ..core.errors import DeviceIOError, DeviceSetupError, RangeError
from .tables import (
    ABS_AXES,
    ABS_MAX_VALUE,
    BTN_TOOL_PEN,
    BTN_TOOL_QUADTAP,
    EV_ABS,
    EV_KEY,
    EV_REL,
    EV_SYN,
    HIRES_AXES,
    INPUT_PROP_DIRECT,
    INPUT_PROP_POINTER,
    KEY_MAX,
    REL_AXES,
    SYN_REPORT,
)
from .writer import AbsInfo, DeviceCapabilities, DeviceIdentity, EventWriter, InputEvent


logger = structlog.get_logger()

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

ABS_TEMPLATE = AbsInfo(minimum=0, maximum=ABS_MAX_VALUE)


def build_capabilities(config: DeviceConfig) -> DeviceCapabilities:
    """Collect event classes, keys and axes in declaration order."""
    caps = DeviceCapabilities(
        event_types=[EV_KEY, EV_REL, EV_ABS],
        properties=[INPUT_PROP_POINTER, INPUT_PROP_DIRECT],
    )

    # libinput treats a device with tool buttons as a tablet
    skip_tools = config.has_quirk("libinput")
    for key in range(KEY_MAX):
        if skip_tools and BTN_TOOL_PEN <= key <= BTN_TOOL_QUADTAP:
            continue
        caps.keys.append(key)

    caps.rel_axes.extend(REL_AXES.values())
    caps.rel_axes.extend(hi for hi, _ in HIRES_AXES.values())

    caps.abs_axes.extend((axis, ABS_TEMPLATE) for axis in ABS_AXES.values())
    return caps


def scale_absolute(percent: float, verb: Optional[str] = None) -> int:
    """Convert a percentage of the axis range to an axis value."""
    if not 0.0 <= percent <= 100.0:
        prefix = f"{verb}: " if verb else ""
        raise RangeError(f"{prefix}value is out of range: {percent:g}", value=str(percent))
    return int(ABS_MAX_VALUE * (percent / 100.0))


class InputDevice:
    """
    The emulated input device.

    Created lazily by the first primitive or an explicit `open()`, destroyed
    by `close()`. Primitives never synchronize unless asked to; callers frame
    packets with `sync()`.
    """

    def __init__(
        self,
        config: DeviceConfig,
        writer: EventWriter,
        clock: Clock = time.monotonic,
        sleeper: Sleeper = time.sleep,
    ):
        self.config = config
        self.writer = writer
        self.clock = clock
        self.sleeper = sleeper
        self.sysname: Optional[str] = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        """Create the device unless already created."""
        if self._open:
            return

        capabilities = build_capabilities(self.config)
        identity = DeviceIdentity(
            name=self.config.name,
            bus=self.config.bus,
            vendor=self.config.vendor,
            product=self.config.product,
            version=self.config.version,
        )
        try:
            self.writer.create(capabilities, identity)
        except OSError as e:
            logger.error("device_setup_failed", device=self.config.path, error=str(e))
            raise DeviceSetupError(
                f"UINPUT: device {self.config.path} setup error: {e}",
                device=self.config.path,
            )
        self._open = True

        self.sysname = self.writer.sysname()
        logger.info(
            "device_opened",
            device=self.config.path,
            sysname=self.sysname,
            quirks=self.config.quirks,
        )
        logger.debug("device_settling", seconds=self.config.settle_time)
        sleep_for(self.config.settle_time, self.clock, self.sleeper)

    def close(self) -> None:
        """Destroy the device, if created."""
        if not self._open:
            return
        self._open = False
        try:
            self.writer.destroy()
        except OSError as e:
            logger.warning("device_close_failed", error=str(e))
        else:
            logger.info("device_closed", sysname=self.sysname)

    def _emit(self, event_type: int, code: int, value: int) -> None:
        logger.debug("event_emitted", type=event_type, code=f"0x{code:03X}", value=value)
        try:
            self.writer.write(InputEvent(event_type, code, value))
        except OSError as e:
            raise DeviceIOError(f"UINPUT write error: {e}")

    def sync(self) -> None:
        """Emit a synchronization event closing the current frame."""
        self.open()
        self._emit(EV_SYN, SYN_REPORT, 0)

    def key(self, code: int, pressed: bool, sync: bool = False) -> None:
        self.open()
        self._emit(EV_KEY, code, 1 if pressed else 0)
        if sync:
            self._emit(EV_SYN, SYN_REPORT, 0)

    def relative(self, axis: int, delta: float, sync: bool = False, verb: Optional[str] = None) -> None:
        """Move a relative axis; wheels also report on their hi-res axis.

        Both values must fit the 32-bit event value, checked before anything
        is emitted.
        """
        events = [(axis, delta)]
        paired = HIRES_AXES.get(axis)
        if paired is not None:
            hi_axis, factor = paired
            events.append((hi_axis, delta * factor))
        for _, value in events:
            if not INT32_MIN <= value <= INT32_MAX:
                prefix = f"{verb}: " if verb else ""
                raise RangeError(f"{prefix}value is out of range: {delta:g}", value=str(delta))
        self.open()
        for code, value in events:
            self._emit(EV_REL, code, int(value))
        if sync:
            self._emit(EV_SYN, SYN_REPORT, 0)

    def absolute(self, axis: int, percent: float, sync: bool = False, verb: Optional[str] = None) -> None:
        """Set an absolute axis to a percentage of its range."""
        value = scale_absolute(percent, verb)
        self.open()
        self._emit(EV_ABS, axis, value)
        if sync:
            self._emit(EV_SYN, SYN_REPORT, 0)
