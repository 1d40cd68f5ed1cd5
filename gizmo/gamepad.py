"""Reading a gamepad and turning its state into control values."""

from __future__ import annotations

import logging
import os
import struct
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass
from typing import Any, Optional, Protocol

AXIS_MIN = -32768
AXIS_MAX = 32768
OUT_MIN = 0
OUT_MAX = 255
IDLE_AXIS = 127
EXPECTED_AXES = 6
EXPECTED_BUTTONS = 12
UNINITIALIZED_THRESHOLD = -32700

_BUTTON_BITS = {
    "button_x": 0,
    "button_a": 1,
    "button_b": 2,
    "button_y": 3,
    "button_l_shoulder": 4,
    "button_r_shoulder": 5,
    "button_lt": 6,
    "button_rt": 7,
    "button_back": 8,
    "button_start": 9,
    "button_left_stick": 10,
    "button_right_stick": 11,
}

_WIRE_NAMES = {
    "axis_lx": "AxisLX",
    "axis_ly": "AxisLY",
    "axis_rx": "AxisRX",
    "axis_ry": "AxisRY",
    "axis_dx": "AxisDX",
    "axis_dy": "AxisDY",
    "button_back": "ButtonBack",
    "button_start": "ButtonStart",
    "button_left_stick": "ButtonLeftStick",
    "button_right_stick": "ButtonRightStick",
    "button_x": "ButtonX",
    "button_y": "ButtonY",
    "button_a": "ButtonA",
    "button_b": "ButtonB",
    "button_l_shoulder": "ButtonLShoulder",
    "button_r_shoulder": "ButtonRShoulder",
    "button_lt": "ButtonLT",
    "button_rt": "ButtonRT",
}


class GamepadError(Exception):
    """Raised when a gamepad cannot be used."""


class Joystick(Protocol):
    def axis_count(self) -> int: ...

    def button_count(self) -> int: ...

    def read(self) -> tuple[Sequence[int], int]: ...

    def close(self) -> None: ...


@dataclass
class Values:
    """Control values sent to the robot."""

    axis_lx: int = 0
    axis_ly: int = 0
    axis_rx: int = 0
    axis_ry: int = 0
    axis_dx: int = 0
    axis_dy: int = 0
    button_back: bool = False
    button_start: bool = False
    button_left_stick: bool = False
    button_right_stick: bool = False
    button_x: bool = False
    button_y: bool = False
    button_a: bool = False
    button_b: bool = False
    button_l_shoulder: bool = False
    button_r_shoulder: bool = False
    button_lt: bool = False
    button_rt: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {_WIRE_NAMES[key]: value for key, value in asdict(self).items()}


def _tdiv(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def map_range(x: int, x_min: int, x_max: int, o_min: int, o_max: int) -> int:
    """Linearly rescale *x* from one integer range to another."""
    return _tdiv((x - x_min) * (o_max - o_min), x_max - x_min) + o_min


def idle_gamepad() -> Values:
    """Values for a gamepad with every stick centred and nothing pressed."""
    return Values(
        axis_lx=IDLE_AXIS,
        axis_ly=IDLE_AXIS,
        axis_rx=IDLE_AXIS,
        axis_ry=IDLE_AXIS,
        axis_dx=IDLE_AXIS,
        axis_dy=IDLE_AXIS,
    )


def values_from_state(axes: Sequence[int], buttons: int) -> Values:
    """Convert raw axis readings and a button bitmask into control values."""
    if len(axes) < EXPECTED_AXES:
        raise ValueError(f"expected {EXPECTED_AXES} axes, got {len(axes)}")
    lx, ly, rx, ry, dx, dy = (map_range(a, AXIS_MIN, AXIS_MAX, OUT_MIN, OUT_MAX) for a in axes[:6])
    pressed = {name: bool(buttons & (1 << bit)) for name, bit in _BUTTON_BITS.items()}
    return Values(axis_lx=lx, axis_ly=ly, axis_rx=rx, axis_ry=ry, axis_dx=dx, axis_dy=dy, **pressed)


class _LinuxJoystick:
    """A joystick read through the Linux ``/dev/input/jsN`` interface."""

    _EVENT = struct.Struct("=IhBB")
    _JS_EVENT_BUTTON = 0x01
    _JS_EVENT_AXIS = 0x02
    _JS_EVENT_INIT = 0x80
    _JSIOCGAXES = 0x80016A11
    _JSIOCGBUTTONS = 0x80016A12

    def __init__(self, jsid: int) -> None:
        import fcntl

        self._fd = os.open(f"/dev/input/js{jsid}", os.O_RDONLY | os.O_NONBLOCK)
        try:
            buf = bytearray(1)
            fcntl.ioctl(self._fd, self._JSIOCGAXES, buf, True)
            self._axis_count = buf[0]
            fcntl.ioctl(self._fd, self._JSIOCGBUTTONS, buf, True)
            self._button_count = buf[0]
        except OSError:
            os.close(self._fd)
            raise
        self._axes = [0] * self._axis_count
        self._buttons = 0

    def axis_count(self) -> int:
        return self._axis_count

    def button_count(self) -> int:
        return self._button_count

    def read(self) -> tuple[list[int], int]:
        while True:
            try:
                chunk = os.read(self._fd, self._EVENT.size * 64)
            except BlockingIOError:
                break
            if not chunk:
                break
            usable = len(chunk) - len(chunk) % self._EVENT.size
            for _, value, kind, number in self._EVENT.iter_unpack(chunk[:usable]):
                kind &= ~self._JS_EVENT_INIT
                if kind == self._JS_EVENT_AXIS and number < len(self._axes):
                    self._axes[number] = value
                elif kind == self._JS_EVENT_BUTTON:
                    if value:
                        self._buttons |= 1 << number
                    else:
                        self._buttons &= ~(1 << number)
        return list(self._axes), self._buttons

    def close(self) -> None:
        os.close(self._fd)


class JSController:
    """Fetches state from a bound joystick."""

    def __init__(
        self,
        opener: Optional[Callable[[int], Joystick]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._opener = opener if opener is not None else _LinuxJoystick
        self._log = (
            logger.getChild("gamepad-controller") if logger is not None else logging.getLogger(__name__)
        )
        self._id = 0
        self._first_event = False
        self._controller: Optional[Joystick] = None

    def bind_controller(self, jsid: int) -> None:
        """Attach to joystick *jsid*; it must have 6 axes and 12 buttons."""
        js = self._opener(jsid)
        self._controller = js
        self._id = jsid
        axes, buttons = js.axis_count(), js.button_count()
        if axes != EXPECTED_AXES or buttons != EXPECTED_BUTTONS:
            self._log.error("Wrong joystick counts! axis=%d buttons=%d", axes, buttons)
            raise GamepadError("bad joystick config")
        self._log.info("Successfully bound controller jsid=%d", jsid)

    def get_state(self) -> Values:
        """Poll the joystick; idle values are returned until it first reports real data."""
        if self._controller is None:
            raise GamepadError("no controller bound")
        axes, buttons = self._controller.read()
        if not self._first_event:
            if axes and axes[0] < UNINITIALIZED_THRESHOLD:
                return idle_gamepad()
            self._first_event = True
            self._log.info("First event fired, releasing idle status")
        return values_from_state(axes, buttons)

    def rebind(self) -> None:
        """Bind again to the joystick this controller was bound to."""
        self.bind_controller(self._id)

    def close(self) -> None:
        """Release the joystick."""
        if self._controller is not None:
            self._controller.close()
            self._controller = None