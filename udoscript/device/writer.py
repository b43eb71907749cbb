"""Event writer interface and the recording writer used for tests and dry runs."""

from typing import Optional
from dataclasses import dataclass, field
import structlog

from .tables import EV_ABS, EV_KEY, EV_REL, EV_SYN


logger = structlog.get_logger()


@dataclass(frozen=True)
class AbsInfo:
    """Absolute axis range template."""
    minimum: int = 0
    maximum: int = 0
    fuzz: int = 0
    flat: int = 0
    resolution: int = 0
    value: int = 0


@dataclass(frozen=True)
class DeviceIdentity:
    """Emulated device name and ID."""
    name: str
    bus: int
    vendor: int
    product: int
    version: int


@dataclass
class DeviceCapabilities:
    """Everything declared to the kernel before the device is created.

    Lists keep declaration order.
    """
    event_types: list[int] = field(default_factory=list)
    properties: list[int] = field(default_factory=list)
    keys: list[int] = field(default_factory=list)
    rel_axes: list[int] = field(default_factory=list)
    abs_axes: list[tuple[int, AbsInfo]] = field(default_factory=list)


@dataclass(frozen=True)
class InputEvent:
    """A single emitted event."""
    type: int
    code: int
    value: int

    @property
    def is_sync(self) -> bool:
        return self.type == EV_SYN


class EventWriter:
    """Low-level sink for device creation and event writes.

    Implementations raise `OSError` on failure; the device handle maps those
    to device errors.
    """

    def create(self, capabilities: DeviceCapabilities, identity: DeviceIdentity) -> None:
        raise NotImplementedError

    def write(self, event: InputEvent) -> None:
        raise NotImplementedError

    def destroy(self) -> None:
        raise NotImplementedError

    def sysname(self) -> Optional[str]:
        return None


_TYPE_NAMES = {EV_SYN: "syn", EV_KEY: "key", EV_REL: "rel", EV_ABS: "abs"}


class RecordingWriter(EventWriter):
    """Keeps capabilities and events in memory.

    Used as the device in dry-run mode (events are logged, nothing is
    created) and as the fake device in tests.
    """

    def __init__(self, dry_run_log: bool = False):
        self.dry_run_log = dry_run_log
        self.capabilities: Optional[DeviceCapabilities] = None
        self.identity: Optional[DeviceIdentity] = None
        self.events: list[InputEvent] = []
        self.created = 0
        self.destroyed = 0

    def create(self, capabilities: DeviceCapabilities, identity: DeviceIdentity) -> None:
        self.capabilities = capabilities
        self.identity = identity
        self.created += 1
        if self.dry_run_log:
            logger.info("dry_run_device_created", name=identity.name)

    def write(self, event: InputEvent) -> None:
        self.events.append(event)
        if self.dry_run_log:
            logger.info(
                "dry_run_event",
                type=_TYPE_NAMES.get(event.type, event.type),
                code=f"0x{event.code:03X}",
                value=event.value,
            )

    def destroy(self) -> None:
        self.destroyed += 1

    def sysname(self) -> Optional[str]:
        return "dry-run" if self.dry_run_log else None

    def frames(self) -> list[list[InputEvent]]:
        """Split recorded events into frames terminated by a sync event."""
        result: list[list[InputEvent]] = []
        current: list[InputEvent] = []
        for event in self.events:
            current.append(event)
            if event.is_sync:
                result.append(current)
                current = []
        if current:
            result.append(current)
        return result

    def clear(self) -> None:
        self.events.clear()
