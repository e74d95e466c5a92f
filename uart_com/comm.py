from __future__ import annotations

import os
from typing import Optional

import serial

from .config import Config, resolve_baud_rate
from .errors import ConfigurationError
from .framer import END, Framer
from .log import Log, get_log
from .marker_reader import MarkerReader, ReadResult


def open_serial_port(path: str, baud_rate: int, log: Optional[Log] = None) -> serial.Serial:
    """
    Open a serial device for raw 8N1 communication without flow control.
    The port is non-blocking (``timeout=0``) and its input buffer is flushed.
    Args:
        path (str): Device path (e.g. /dev/ttyUSB0)
        baud_rate (int): Requested baud rate; unsupported values become 115200
        log (Log, optional): Diagnostic sink
    Returns:
        serial.Serial: Open port
    Raises:
        ConfigurationError: If the device cannot be opened or is not a tty
    """
    log = log or get_log("comm")
    speed = resolve_baud_rate(baud_rate, log)
    log.trace(f"open_serial_port: opening {path} at {speed} baud")
    try:
        port = serial.Serial(
            port=path,
            baudrate=speed,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=0,
            write_timeout=0,
            xonxoff=False,
            rtscts=False,
            dsrdtr=False,
        )
    except (serial.SerialException, OSError, ValueError) as e:
        log.error(f"Failed to open device serial path {path}: {e}")
        raise ConfigurationError(f"cannot open {path}: {e}") from e

    if not os.isatty(port.fileno()):
        port.close()
        log.error(f"The given device path is not a tty: {path}")
        raise ConfigurationError(f"{path} is not a tty")

    port.reset_input_buffer()
    return port


class Comm:
    """
    One framed send/receive cycle against a serial device.
    Args:
        config (Config): Device path, baud rate and timeout
        log (Log, optional): Diagnostic sink shared with the framer and reader
        end_marker (bytes): Sequence that ends the device's reply
    """

    _serial: Optional[serial.Serial]

    def __init__(self, config: Config, log: Optional[Log] = None, *, end_marker: bytes = END) -> None:
        self.config = config
        self._log = log or get_log("comm")
        self._framer = Framer(log=self._log)
        self._reader = MarkerReader(log=self._log)
        self.end_marker = end_marker
        self._serial = None

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self) -> "Comm":
        if self.is_open:
            return self
        if not self.config.device_path:
            raise ConfigurationError("no device path configured")
        self._serial = open_serial_port(self.config.device_path, self.config.baud_rate, self._log)
        return self

    def close(self) -> None:
        """
        Close the serial port.
        """
        if self._serial is None:
            return
        try:
            self._serial.close()
        except (serial.SerialException, OSError) as e:
            self._log.warning(f"close: failed to close {self.config.device_path}: {e}")
        finally:
            self._serial = None

    def __enter__(self) -> "Comm":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def fileno(self) -> int:
        if self._serial is None:
            raise ValueError("port is not open")
        return self._serial.fileno()

    def send(self, payload: bytes) -> int:
        """
        Write one framed command.
        Returns:
            int: Number of bytes written
        """
        return self._framer.send(self, payload)

    def receive(self, timeout: Optional[float] = None) -> ReadResult:
        """
        Wait for a reply ending with the END marker.
        Args:
            timeout (float, optional): Seconds to wait (default: config.timeout)
        Returns:
            ReadResult: FOUND, TIMED_OUT or IO_ERROR with the accumulated bytes
        """
        if timeout is None:
            timeout = self.config.timeout
        return self._reader.read_until(self, self.end_marker, timeout)

    def request(self, payload: bytes, timeout: Optional[float] = None) -> ReadResult:
        """
        Send a command and wait for its reply.
        Raises:
            TransportWriteError: If the frame could not be written
            TransportReadError: If the reply could not be read
        """
        self.send(payload)
        return self.receive(timeout).raise_for_status()
