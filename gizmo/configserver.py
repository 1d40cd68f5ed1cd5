"""Serial service that hands configuration to Gizmo boards as they are plugged in."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Optional

import serial
from serial.tools import list_ports

from .gssconfig import Config, _encode

GIZMO_VID = 0x2E8A
GIZMO_PID = 0xF00A
BAUD_RATE = 9600
HANDSHAKE = "GIZMO_REQUEST_CONFIG"
SCAN_INTERVAL = 5.0
SETTLE_TIME = 5.0

Provider = Callable[[], Config]


class ConfigServer:
    """Watches serial ports and uploads a config to each Gizmo that asks for one.

    The provider may block, for example to prompt an operator; the
    server waits for it.
    """

    def __init__(
        self,
        provider: Provider,
        logger: Optional[logging.Logger] = None,
        oneshot: bool = False,
        interval: float = SCAN_INTERVAL,
    ) -> None:
        self.provider = provider
        self.oneshot = oneshot
        self.interval = interval
        self._log = logger if logger is not None else logging.getLogger(__name__)
        self._stop = threading.Event()

    def serve(self) -> None:
        """Scan for Gizmos every interval until stopped or a oneshot cycle ends."""
        while not self._stop.wait(self.interval):
            if self.scan_once():
                return

    def scan_once(self) -> bool:
        """Check attached ports once; return True when the server should stop."""
        for port in list_ports.comports():
            self._log.info("Found a port! port=%s", port.device)
            if port.vid is None:
                # A Gizmo is always attached over USB.
                continue
            if port.vid == GIZMO_VID and port.pid == GIZMO_PID:
                self.install_config(port.device)
            if self.oneshot:
                self._stop.set()
                return True
        return False

    def install_config(self, name: str) -> bool:
        """Wait for the handshake on port *name*, then send the config; report success."""
        try:
            port = serial.Serial(
                name,
                baudrate=BAUD_RATE,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
            )
        except (serial.SerialException, OSError) as exc:
            self._log.error("Could not open port port=%s error=%s", name, exc)
            return False

        with port:
            while True:
                line = port.readline()
                if not line:
                    break
                text = line.rstrip(b"\n").rstrip(b"\r").decode("utf-8", errors="replace")
                if text == HANDSHAKE:
                    break

            try:
                payload = _encode(self.provider().to_dict()).encode("utf-8")
                port.write(payload)
            except (serial.SerialException, OSError, TypeError, ValueError) as exc:
                self._log.error("Error serializing configuration error=%s", exc)
                return False

            try:
                port.flush()
            except (serial.SerialException, OSError) as exc:
                self._log.error("Error draining port port=%s error=%s", name, exc)
                return False

        self._log.info("Upload complete")
        if not self.oneshot:
            self._stop.wait(SETTLE_TIME)
        return True

    def stop(self) -> None:
        """Ask :meth:`serve` to return."""
        self._stop.set()