"""Robot telemetry gauges exported in the Prometheus text format."""

from __future__ import annotations

import json
import logging
import math
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional, Union

from .gssconfig import _as_bool, _as_int, _lookup, _require_mapping

DEFAULT_BROKER = "mqtt://127.0.0.1:1883"
FLUSH_INTERVAL = 10.0
ZOMBIE_AGE = 10.0
CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1

_INT_FIELDS = (
    "ControlFrameAge",
    "ControlFramesReceived",
    "VBat",
    "VBatM",
    "VBatB",
    "WatchdogRemaining",
    "RSSI",
    "WifiReconnects",
)
_BOOL_FIELDS = (
    "WatchdogOK",
    "PwrBoard",
    "PwrPico",
    "PwrGPIO",
    "PwrServo",
    "PwrMainA",
    "PwrMainB",
    "PwrPixels",
)


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


class GaugeVec:
    """A gauge partitioned by the value of one label."""

    def __init__(
        self,
        namespace: str,
        subsystem: str,
        name: str,
        help_text: str,
        label: str = "team",
    ) -> None:
        self.name = "_".join(part for part in (namespace, subsystem, name) if part)
        self.help_text = help_text
        self.label = label
        self._values: dict[str, float] = {}
        self._lock = threading.Lock()

    def set(self, label_value: str, value: float) -> None:
        """Set the gauge for *label_value*."""
        with self._lock:
            self._values[label_value] = float(value)

    def get(self, label_value: str) -> float:
        """Return the gauge for *label_value*; raise KeyError if it is unset."""
        with self._lock:
            return self._values[label_value]

    def delete(self, label_value: str) -> bool:
        """Remove the gauge for *label_value*, reporting whether it existed."""
        with self._lock:
            return self._values.pop(label_value, None) is not None

    def expose(self) -> str:
        """Render this gauge in the Prometheus text format; empty if it has no samples."""
        with self._lock:
            samples = sorted(self._values.items())
        if not samples:
            return ""
        lines = [
            f"# HELP {self.name} {_escape_help(self.help_text)}",
            f"# TYPE {self.name} gauge",
        ]
        lines.extend(
            f'{self.name}{{{self.label}="{_escape_label(lv)}"}} {_format_value(v)}'
            for lv, v in samples
        )
        return "\n".join(lines) + "\n"


def _decode_report(data: Union[bytes, str]) -> dict[str, Any]:
    text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
    obj = json.loads(text)
    if obj is None:
        obj = {}
    obj = _require_mapping(obj, "report")
    report: dict[str, Any] = {}
    for key in _INT_FIELDS:
        value = _as_int(_lookup(obj, key), key)
        if not _INT32_MIN <= value <= _INT32_MAX:
            raise ValueError(f"field {key}: {value} overflows a 32-bit integer")
        report[key] = value
    for key in _BOOL_FIELDS:
        report[key] = _as_bool(_lookup(obj, key), key)
    return report


def _split_bind(bind: str) -> tuple[str, int]:
    host, sep, port = bind.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"bad bind address: {bind!r}")
    return host.strip("[]"), int(port)


class Metrics:
    """Holds the robot gauges and keeps them free of disconnected robots."""

    def __init__(self, logger: Optional[logging.Logger] = None, broker: str = DEFAULT_BROKER) -> None:
        self._log = logger.getChild("metrics") if logger is not None else logging.getLogger(__name__)
        self.broker = broker
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._last_seen: dict[str, float] = {}
        self._server: Optional[ThreadingHTTPServer] = None
        self._serving = threading.Event()
        self._flusher: Optional[threading.Thread] = None

        def gauge(name: str, help_text: str) -> GaugeVec:
            return GaugeVec("gizmo", "robot", name, help_text, "team")

        self.robot_rssi = gauge("rssi", "WiFi signal strength as measured by the system processor.")
        self.robot_wifi_reconnects = gauge("wifi_reconnects", "Number of reconnects since last boot")
        self.robot_vbat = gauge("battery_voltage", "Robot Battery volage.")
        self.robot_power_board = gauge("power_board", "General logic power available.")
        self.robot_power_pico = gauge("power_pico", "Pico power supply available.")
        self.robot_power_gpio = gauge("power_gpio", "GPIO power supply available.")
        self.robot_power_servo = gauge("power_servo", "Servo power available.")
        self.robot_power_bus_a = gauge("power_bus_a", "Motor Bus A power available.")
        self.robot_power_bus_b = gauge("power_bus_b", "Motor Bus B power available.")
        self.robot_power_pixels = gauge("power_pixels", "Student Pixel power available.")
        self.robot_watchdog_ok = gauge("watchdog_ok", "Watchdog has been fed and is alive.")
        self.robot_watchdog_lifetime = gauge(
            "watchdog_remaining_seconds", "Watchdog lifetime remaining since last feed."
        )
        self.robot_control_frames = gauge(
            "control_frames", "Count of control frames received since power on."
        )
        self.robot_control_frame_age = gauge(
            "control_frame_age_seconds", "Time since last control frame was received"
        )
        self.robot_last_interaction = gauge(
            "last_interaction", "Timestamp of the last mqtt metrics push"
        )

        self._gauges = [
            self.robot_rssi,
            self.robot_wifi_reconnects,
            self.robot_vbat,
            self.robot_power_board,
            self.robot_power_pico,
            self.robot_power_gpio,
            self.robot_power_servo,
            self.robot_power_bus_a,
            self.robot_power_bus_b,
            self.robot_power_pixels,
            self.robot_watchdog_ok,
            self.robot_watchdog_lifetime,
            self.robot_control_frames,
            self.robot_control_frame_age,
            self.robot_last_interaction,
        ]

    def parse_report(self, team: str, data: Union[bytes, str]) -> None:
        """Update the gauges for *team* from a JSON status report."""
        try:
            stats = _decode_report(data)
        except ValueError as exc:
            self._log.warning("Bad stats report team=%s error=%s", team, exc)
            raise

        # Same conversion the Gizmo uses to drive its battery LED.
        scale = stats["VBatM"] / 100000
        voltage = scale * stats["VBat"] + scale

        self.robot_rssi.set(team, stats["RSSI"])
        self.robot_wifi_reconnects.set(team, stats["WifiReconnects"])
        self.robot_vbat.set(team, voltage)
        self.robot_watchdog_lifetime.set(team, stats["WatchdogRemaining"] / 1000)
        self.robot_control_frame_age.set(team, stats["ControlFrameAge"] / 1000)
        self.robot_control_frames.set(team, stats["ControlFramesReceived"])

        self.robot_power_board.set(team, float(stats["PwrBoard"]))
        self.robot_power_pico.set(team, float(stats["PwrPico"]))
        self.robot_power_gpio.set(team, float(stats["PwrGPIO"]))
        self.robot_power_servo.set(team, float(stats["PwrServo"]))
        self.robot_power_bus_a.set(team, float(stats["PwrMainA"]))
        self.robot_power_bus_b.set(team, float(stats["PwrMainB"]))
        self.robot_power_pixels.set(team, float(stats["PwrPixels"]))
        self.robot_watchdog_ok.set(team, float(stats["WatchdogOK"]))

        now = time.time()
        self.robot_last_interaction.set(team, now)
        with self._lock:
            self._last_seen[team] = now

    def mqtt_callback(self, topic: str, payload: Union[bytes, str]) -> None:
        """Handle a report published on ``robot/<team>/stats``."""
        parts = topic.split("/")
        if len(parts) < 2:
            raise ValueError(f"topic has no team component: {topic!r}")
        self._log.debug("Called back team=%s", parts[1])
        self.parse_report(parts[1], payload)

    def delete_zombie_robot(self, team: str) -> None:
        """Remove the gauges of a robot that is no longer connected."""
        for g in self._gauges:
            if g is not self.robot_last_interaction:
                g.delete(team)

    def flush_zombies(self, now: Optional[float] = None) -> list[str]:
        """Delete robots not heard from for more than ten seconds; return their teams."""
        if now is None:
            now = time.time()
        with self._lock:
            stale = [team for team, seen in self._last_seen.items() if now - seen > ZOMBIE_AGE]
            for team in stale:
                del self._last_seen[team]
        for team in stale:
            self.delete_zombie_robot(team)
        return stale

    def start_flusher(self) -> None:
        """Flush zombie robots every ten seconds in a background thread."""

        def run() -> None:
            while not self._stop.wait(FLUSH_INTERVAL):
                self.flush_zombies()

        self._flusher = threading.Thread(target=run, name="metrics-flusher", daemon=True)
        self._flusher.start()

    def shutdown(self) -> None:
        """Stop the flusher and the built-in web server."""
        self._stop.set()
        server = self._server
        if server is not None and self._serving.is_set():
            server.shutdown()

    def expose(self) -> str:
        """Render every gauge in the Prometheus text format."""
        return "".join(g.expose() for g in sorted(self._gauges, key=lambda g: g.name))

    def builtin_webserver(self, bind: str) -> None:
        """Serve ``/metrics`` on *bind* (``host:port``) until :meth:`shutdown`."""
        host, port = _split_bind(bind)
        metrics = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:  # noqa: N802
                if self.path.split("?", 1)[0] != "/metrics":
                    self.send_error(404)
                    return
                body = metrics.expose().encode("utf-8")
                self.send_response(200)
                self.send_header("Content-Type", CONTENT_TYPE)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, fmt: str, *args: Any) -> None:
                metrics._log.debug(fmt, *args)

        server = ThreadingHTTPServer((host, port), Handler)
        server.daemon_threads = True
        if self._stop.is_set():
            server.server_close()
            return
        self._server = server
        self._serving.set()
        try:
            server.serve_forever(poll_interval=0.1)
        finally:
            self._serving.clear()
            server.server_close()