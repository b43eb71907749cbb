"""Tests for the device layer: tables, handle, writers and actions."""

from types import SimpleNamespace

import pytest
from evdev import AbsInfo as EvdevAbsInfo
from evdev import UInputError

from udoscript.core.config import DeviceConfig
from udoscript.core.errors import DeviceIOError, DeviceSetupError, RangeError, UnknownAxisError, UnknownKeyError
from udoscript.device.actions import DeviceActions, PacketItem, tap_count
from udoscript.device import uinput
from udoscript.device.handle import InputDevice, build_capabilities, scale_absolute
from udoscript.device.tables import (
    ABS_AXES,
    BTN_TOOL_PEN,
    BTN_TOOL_QUADTAP,
    EV_ABS,
    EV_KEY,
    EV_REL,
    EV_SYN,
    KEY_MAX,
    REL_AXES,
    REL_HWHEEL_HI_RES,
    REL_WHEEL_HI_RES,
    find_axis,
    find_key,
)
from udoscript.device.writer import DeviceIdentity, InputEvent, RecordingWriter


KEY_A = 30
KEY_LEFTSHIFT = 42
SYN = InputEvent(EV_SYN, 0, 0)


class FailingWriter(RecordingWriter):
    """Recording writer that fails on create or on write."""

    def __init__(self, fail_create=False, fail_write=False):
        super().__init__()
        self.fail_create = fail_create
        self.fail_write = fail_write

    def create(self, capabilities, identity):
        if self.fail_create:
            raise PermissionError(13, "Permission denied")
        super().create(capabilities, identity)

    def write(self, event):
        if self.fail_write:
            raise OSError(5, "Input/output error")
        super().write(event)


@pytest.fixture
def device(writer, clock):
    return InputDevice(DeviceConfig(settle_time=0.5), writer, clock=clock, sleeper=clock.sleep)


@pytest.fixture
def actions(device, clock):
    return DeviceActions(device, key_delay=0.05, clock=clock, sleeper=clock.sleep)


class TestTables:
    """Test name lookups."""

    def test_find_key_by_name(self):
        assert find_key("KEY_A") == KEY_A
        assert find_key("key_a") == KEY_A
        assert find_key("BTN_LEFT") == 0x110

    def test_find_key_by_code(self):
        assert find_key("30") == 30
        assert find_key("0x1E") == 30
        assert find_key("0o36") == 30
        assert find_key("036") == 30
        assert find_key("0") == 0

    def test_unknown_key(self):
        with pytest.raises(UnknownKeyError) as exc_info:
            find_key("KEY_NOPE", verb="key")
        assert str(exc_info.value) == "key: unrecognized key 'KEY_NOPE'"
        with pytest.raises(UnknownKeyError):
            find_key(str(KEY_MAX + 1))
        with pytest.raises(UnknownKeyError):
            find_key("12abc")
        with pytest.raises(UnknownKeyError):
            find_key("09")

    def test_find_axis(self):
        assert find_axis("REL_X") == (REL_AXES["REL_X"], False)
        assert find_axis("abs_x") == (ABS_AXES["ABS_X"], True)
        with pytest.raises(UnknownAxisError):
            find_axis("REL_NOPE")
        with pytest.raises(UnknownAxisError):
            find_axis("ABS_X", absolute=False)


class TestCapabilities:
    """Test the declared capability set."""

    def test_declaration_order(self):
        caps = build_capabilities(DeviceConfig())

        assert caps.event_types == [EV_KEY, EV_REL, EV_ABS]
        assert caps.properties == [0x00, 0x01]
        assert caps.rel_axes[-2:] == [REL_WHEEL_HI_RES, REL_HWHEEL_HI_RES]
        assert set(caps.rel_axes[:-2]) == set(REL_AXES.values())

    def test_libinput_quirk_excludes_tool_buttons(self):
        caps = build_capabilities(DeviceConfig(quirks=["libinput"]))

        assert BTN_TOOL_PEN not in caps.keys
        assert BTN_TOOL_QUADTAP not in caps.keys
        assert BTN_TOOL_PEN - 1 in caps.keys
        assert BTN_TOOL_QUADTAP + 1 in caps.keys
        assert len(caps.keys) == KEY_MAX - 16

    def test_all_keys_without_quirks(self):
        caps = build_capabilities(DeviceConfig(quirks=[]))
        assert caps.keys == list(range(KEY_MAX))

    def test_shared_absolute_template(self):
        caps = build_capabilities(DeviceConfig())

        assert [axis for axis, _ in caps.abs_axes] == list(ABS_AXES.values())
        templates = {info for _, info in caps.abs_axes}
        assert len(templates) == 1
        template = templates.pop()
        assert (template.minimum, template.maximum) == (0, 1000000)


class TestInputDevice:
    """Test device lifetime and primitives."""

    def test_lazy_open(self, device, writer, clock):
        assert not device.is_open
        device.key(KEY_A, True)

        assert device.is_open
        assert writer.created == 1
        assert writer.identity.bus == 0x06
        assert clock.sleeps == [0.5]

    def test_open_is_idempotent(self, device, writer, clock):
        device.open()
        device.open()
        device.sync()

        assert writer.created == 1
        assert clock.sleeps == [0.5]

    def test_setup_failure(self, clock):
        writer = FailingWriter(fail_create=True)
        device = InputDevice(DeviceConfig(), writer, clock=clock, sleeper=clock.sleep)

        with pytest.raises(DeviceSetupError) as exc_info:
            device.open()
        assert exc_info.value.fatal
        assert not device.is_open
        assert clock.sleeps == []

    def test_write_failure(self, clock):
        writer = FailingWriter(fail_write=True)
        device = InputDevice(DeviceConfig(), writer, clock=clock, sleeper=clock.sleep)

        with pytest.raises(DeviceIOError):
            device.sync()

    def test_close(self, device, writer):
        device.close()
        assert writer.destroyed == 0

        device.open()
        device.close()
        device.close()
        assert writer.destroyed == 1
        assert not device.is_open

    def test_key_primitive(self, device, writer):
        device.key(KEY_A, True)
        device.key(KEY_A, False, sync=True)

        assert writer.events == [InputEvent(EV_KEY, KEY_A, 1), InputEvent(EV_KEY, KEY_A, 0), SYN]

    def test_absolute_scaling(self, device, writer):
        device.absolute(ABS_AXES["ABS_X"], 25)
        device.absolute(ABS_AXES["ABS_Y"], 100)
        device.absolute(ABS_AXES["ABS_Z"], 0, sync=True)

        assert [e.value for e in writer.events] == [250000, 1000000, 0, 0]

    def test_absolute_out_of_range(self, device, writer):
        with pytest.raises(RangeError):
            device.absolute(ABS_AXES["ABS_X"], 100.0001)
        with pytest.raises(RangeError):
            device.absolute(ABS_AXES["ABS_X"], -1)
        assert writer.events == []

    def test_scale_absolute(self):
        assert scale_absolute(25) == 250000
        assert scale_absolute(100) == 1000000
        with pytest.raises(RangeError):
            scale_absolute(100.0001, verb="position")

    def test_wheel_hires_pairing(self, device, writer):
        """The hi-res value follows the wheel value, both before the sync."""
        device.relative(REL_AXES["REL_WHEEL"], 1, sync=True)

        assert writer.events == [
            InputEvent(EV_REL, REL_AXES["REL_WHEEL"], 1),
            InputEvent(EV_REL, REL_WHEEL_HI_RES, 120),
            SYN,
        ]

    def test_horizontal_wheel_pairing(self, device, writer):
        device.relative(REL_AXES["REL_HWHEEL"], -2)
        assert writer.events[-1] == InputEvent(EV_REL, REL_HWHEEL_HI_RES, -240)

    def test_relative_without_pairing(self, device, writer):
        device.relative(REL_AXES["REL_X"], -7)
        assert writer.events == [InputEvent(EV_REL, REL_AXES["REL_X"], -7)]

    def test_relative_out_of_range(self, device):
        with pytest.raises(RangeError):
            device.relative(REL_AXES["REL_X"], 2 ** 31)

    @pytest.mark.parametrize("delta", [20000000, -20000000, 17895698])
    def test_wheel_hires_value_out_of_range(self, device, writer, delta):
        """A wheel delta whose hi-res value leaves 32 bits emits nothing."""
        with pytest.raises(RangeError):
            device.relative(REL_AXES["REL_WHEEL"], delta, sync=True)
        assert writer.events == []
        assert not device.is_open

    def test_wheel_hires_value_at_limit(self, device, writer):
        device.relative(REL_AXES["REL_WHEEL"], 17895697)
        assert writer.events[-1] == InputEvent(EV_REL, REL_WHEEL_HI_RES, 2147483640)

    def test_large_delta_on_plain_axis(self, device, writer):
        device.relative(REL_AXES["REL_X"], 20000000)
        assert writer.events == [InputEvent(EV_REL, REL_AXES["REL_X"], 20000000)]


class TestDeviceActions:
    """Test high-level input verbs."""

    def test_keydown_syncs_after_each_key(self, actions, writer):
        actions.keydown([KEY_LEFTSHIFT, KEY_A])

        assert writer.frames() == [
            [InputEvent(EV_KEY, KEY_LEFTSHIFT, 1), SYN],
            [InputEvent(EV_KEY, KEY_A, 1), SYN],
        ]

    def test_keyup(self, actions, writer):
        actions.keyup([KEY_A])
        assert writer.events == [InputEvent(EV_KEY, KEY_A, 0), SYN]

    def test_tap_releases_in_reverse_order(self, actions, writer, clock):
        count = actions.tap([KEY_LEFTSHIFT, KEY_A])

        assert count == 1
        keys = [(e.code, e.value) for e in writer.events if e.type == EV_KEY]
        assert keys == [(KEY_LEFTSHIFT, 1), (KEY_A, 1), (KEY_A, 0), (KEY_LEFTSHIFT, 0)]
        assert len(writer.frames()) == 4
        assert clock.sleeps == [0.5, 0.05]

    def test_tap_repeat_and_delay(self, actions, writer, clock):
        count = actions.tap([KEY_A], repeat=3, delay=0.2)

        assert count == 3
        assert len(writer.frames()) == 6
        assert clock.sleeps[1:] == [0.2, 0.2, 0.2]

    def test_tap_count(self):
        assert tap_count(None, None, 0.05) == 1
        assert tap_count(5, None, 0.05) == 5
        assert tap_count(None, 1.0, 0.25) == 4
        assert tap_count(10, 1.0, 0.25) == 4
        assert tap_count(2, 1.0, 0.25) == 2
        assert tap_count(None, 0.1, 0.25) == 1

    def test_move_one_sync(self, actions, writer):
        actions.move([5, -3])

        assert writer.events == [
            InputEvent(EV_REL, REL_AXES["REL_X"], 5),
            InputEvent(EV_REL, REL_AXES["REL_Y"], -3),
            SYN,
        ]

    def test_move_alternate_axes(self, actions, writer):
        actions.move([1, 2, 3], alternate=True)
        codes = [e.code for e in writer.events if e.type == EV_REL]
        assert codes == [REL_AXES["REL_RX"], REL_AXES["REL_RY"], REL_AXES["REL_RZ"]]

    def test_wheel(self, actions, writer):
        actions.wheel(1)
        actions.wheel(-1, horizontal=True)

        assert writer.frames() == [
            [InputEvent(EV_REL, REL_AXES["REL_WHEEL"], 1), InputEvent(EV_REL, REL_WHEEL_HI_RES, 120), SYN],
            [InputEvent(EV_REL, REL_AXES["REL_HWHEEL"], -1), InputEvent(EV_REL, REL_HWHEEL_HI_RES, -120), SYN],
        ]

    def test_position(self, actions, writer):
        actions.position([50, 25], alternate=True)

        assert writer.events == [
            InputEvent(EV_ABS, ABS_AXES["ABS_RX"], 500000),
            InputEvent(EV_ABS, ABS_AXES["ABS_RY"], 250000),
            SYN,
        ]

    def test_packet(self, actions, writer):
        actions.packet([
            PacketItem("keydown", KEY_A),
            PacketItem("relative", REL_AXES["REL_X"], 4),
            PacketItem("sync"),
            PacketItem("absolute", ABS_AXES["ABS_X"], 10),
            PacketItem("keyup", KEY_A),
        ])

        assert writer.frames() == [
            [InputEvent(EV_KEY, KEY_A, 1), InputEvent(EV_REL, REL_AXES["REL_X"], 4), SYN],
            [InputEvent(EV_ABS, ABS_AXES["ABS_X"], 100000), InputEvent(EV_KEY, KEY_A, 0), SYN],
        ]

    def test_explicit_open(self, actions, writer):
        actions.open()
        assert writer.created == 1
        assert writer.events == []


class FakeUInput:
    """Stands in for `evdev.UInput`, recording its arguments and calls."""

    fail = False

    def __init__(self, **kwargs):
        if self.fail:
            raise UInputError("/dev/uinput cannot be opened for writing")
        self.kwargs = kwargs
        self.calls = []
        self.closed = False
        self.device = SimpleNamespace(path="/dev/input/event7")

    def write(self, etype, code, value):
        self.calls.append((etype, code, value))

    def syn(self):
        self.calls.append("syn")

    def close(self):
        self.closed = True


class TestUInputWriter:
    """Test the mapping onto evdev's UInput."""

    @pytest.fixture
    def fake_uinput(self, monkeypatch):
        monkeypatch.setattr(uinput, "UInput", FakeUInput)
        monkeypatch.setattr(FakeUInput, "fail", False)
        return FakeUInput

    @pytest.fixture
    def identity(self):
        return DeviceIdentity(name="udoscript-test", bus=0x06, vendor=0x1234, product=0x5678, version=2)

    def test_create(self, fake_uinput, identity):
        writer = uinput.UInputWriter("/dev/uinput-test")
        caps = build_capabilities(DeviceConfig())

        writer.create(caps, identity)

        kwargs = writer._uinput.kwargs
        assert kwargs["devnode"] == "/dev/uinput-test"
        assert kwargs["name"] == "udoscript-test"
        assert (kwargs["bustype"], kwargs["vendor"], kwargs["product"], kwargs["version"]) == (0x06, 0x1234, 0x5678, 2)
        assert kwargs["input_props"] == caps.properties
        assert set(kwargs["events"]) == {EV_KEY, EV_REL, EV_ABS}
        assert kwargs["events"][EV_KEY] == caps.keys
        assert kwargs["events"][EV_REL] == caps.rel_axes
        axis, info = kwargs["events"][EV_ABS][0]
        assert axis == ABS_AXES["ABS_X"]
        assert info == EvdevAbsInfo(value=0, min=0, max=1000000, fuzz=0, flat=0, resolution=0)
        assert writer.sysname() == "event7"

    def test_write_and_sync(self, fake_uinput, identity):
        writer = uinput.UInputWriter()
        writer.create(build_capabilities(DeviceConfig()), identity)

        writer.write(InputEvent(EV_KEY, KEY_A, 1))
        writer.write(SYN)

        assert writer._uinput.calls == [(EV_KEY, KEY_A, 1), "syn"]

    def test_write_before_create(self):
        with pytest.raises(OSError):
            uinput.UInputWriter().write(SYN)

    def test_destroy(self, fake_uinput, identity):
        writer = uinput.UInputWriter()
        writer.create(build_capabilities(DeviceConfig()), identity)
        created = writer._uinput

        writer.destroy()
        writer.destroy()

        assert created.closed
        assert writer.sysname() is None

    def test_setup_failure_becomes_device_error(self, fake_uinput, clock, monkeypatch):
        monkeypatch.setattr(FakeUInput, "fail", True)
        device = InputDevice(DeviceConfig(), uinput.UInputWriter(), clock=clock, sleeper=clock.sleep)

        with pytest.raises(DeviceSetupError) as exc_info:
            device.open()
        assert "cannot be opened" in str(exc_info.value)
        assert not device.is_open
