"""Event writer backed by the Linux UINPUT device through python-evdev."""

import os
from typing import Optional
import structlog
from evdev import AbsInfo as EvdevAbsInfo
from evdev import UInput, UInputError, ecodes

from .writer import DeviceCapabilities, DeviceIdentity, EventWriter, InputEvent


logger = structlog.get_logger()


class UInputWriter(EventWriter):
    """Creates a virtual device with `evdev.UInput`.

    evdev reports setup problems as `UInputError`; they are re-raised as
    `OSError` like every other writer failure.
    """

    def __init__(self, path: str = "/dev/uinput"):
        self.path = path
        self._uinput: Optional[UInput] = None

    def create(self, capabilities: DeviceCapabilities, identity: DeviceIdentity) -> None:
        events = {
            ecodes.EV_KEY: list(capabilities.keys),
            ecodes.EV_REL: list(capabilities.rel_axes),
            ecodes.EV_ABS: [
                (axis, EvdevAbsInfo(
                    value=info.value,
                    min=info.minimum,
                    max=info.maximum,
                    fuzz=info.fuzz,
                    flat=info.flat,
                    resolution=info.resolution,
                ))
                for axis, info in capabilities.abs_axes
            ],
        }
        # Only declare the event classes the capability set asks for
        events = {ev: codes for ev, codes in events.items() if ev in capabilities.event_types}
        logger.debug(
            "uinput_creating",
            devnode=self.path,
            keys=len(capabilities.keys),
            rel_axes=len(capabilities.rel_axes),
            abs_axes=len(capabilities.abs_axes),
        )
        try:
            self._uinput = UInput(
                events=events,
                name=identity.name,
                vendor=identity.vendor,
                product=identity.product,
                version=identity.version,
                bustype=identity.bus,
                devnode=self.path,
                input_props=list(capabilities.properties),
            )
        except UInputError as e:
            raise OSError(str(e)) from e

    def write(self, event: InputEvent) -> None:
        if self._uinput is None:
            raise OSError("device is not created")
        if event.is_sync:
            self._uinput.syn()
        else:
            self._uinput.write(event.type, event.code, event.value)

    def destroy(self) -> None:
        if self._uinput is None:
            return
        try:
            self._uinput.close()
        finally:
            self._uinput = None

    def sysname(self) -> Optional[str]:
        device = getattr(self._uinput, "device", None)
        if device is None:
            return None
        return os.path.basename(device.path)
