from __future__ import annotations

import os
import termios
import time
from typing import Any, Final, Optional, Union

from .errors import ConfigurationError, TransportWriteError
from .log import Log, get_log

Handle = Union[int, Any]

WOULD_BLOCK_BACKOFF: Final[float] = 0.001


def resolve_fd(handle: Handle, log: Log) -> int:
    """
    Turn a handle into a usable file descriptor.
    Args:
        handle: File descriptor or object with ``fileno()`` (e.g. serial.Serial)
        log (Log): Where to report an unusable handle
    Returns:
        int: Open file descriptor
    Raises:
        ConfigurationError: If the handle is negative, closed or has no descriptor
    """
    try:
        fd = handle if isinstance(handle, int) else handle.fileno()
    except (AttributeError, ValueError, OSError) as e:
        # closed files raise ValueError, closed pyserial ports raise SerialException (an OSError)
        log.error(f"Invalid device handle {handle!r}: {e}")
        raise ConfigurationError(f"invalid device handle: {e}") from e
    if fd < 0:
        log.error(f"Invalid device handle {fd}")
        raise ConfigurationError(f"invalid device handle: {fd}")
    try:
        os.fstat(fd)
    except OSError as e:
        log.error(f"Device handle {fd} is not open: {e}")
        raise ConfigurationError(f"device handle {fd} is not open") from e
    return fd


class Framer:
    """
    Wraps outbound payloads with START/END markers and writes them out.
    Frames are ``START + payload + END``: no length prefix, no escaping.
    A payload that itself contains END cannot be told apart by a reader.
    Args:
        log (Log, optional): Diagnostic sink
        start (bytes): Leading delimiter
        end (bytes): Trailing delimiter
    """
    START: Final[bytes] = b"[UART_COM][START]"
    END: Final[bytes] = b"[UART_COM][END]"

    def __init__(self, log: Optional[Log] = None, start: bytes = START, end: bytes = END) -> None:
        if not start or not end:
            raise ValueError("frame delimiters must not be empty")
        self.start = bytes(start)
        self.end = bytes(end)
        self._log = log or get_log("framer")

    def encode(self, payload: bytes) -> bytes:
        """
        Build a frame around ``payload`` (which may be empty).
        Args:
            payload (bytes): Command bytes
        Returns:
            bytes: START + payload + END
        """
        return self.start + bytes(payload or b"") + self.end

    def send(self, handle: Handle, payload: bytes) -> int:
        """
        Write one frame to ``handle`` and drain the output path.
        Args:
            handle: File descriptor or object with ``fileno()``
            payload (bytes): Command bytes
        Returns:
            int: Number of bytes written (the whole frame)
        Raises:
            ConfigurationError: If the handle is unusable
            TransportWriteError: If the frame could not be fully written
        """
        fd = resolve_fd(handle, self._log)
        frame = self.encode(payload)
        self._log.trace(f"send: writing {len(frame)} byte frame ({len(frame) - len(self.start) - len(self.end)} byte payload) to fd {fd}")

        view = memoryview(frame)
        written = 0
        while written < len(frame):
            try:
                n = os.write(fd, view[written:])
            except InterruptedError:
                continue
            except BlockingIOError:
                time.sleep(WOULD_BLOCK_BACKOFF)
                continue
            except OSError as e:
                remaining = len(frame) - written
                self._log.error(f"send: write failed on fd {fd} with {remaining} bytes unsent: {e}")
                raise TransportWriteError(f"write failed: {e}", remaining=remaining) from e
            written += n

        try:
            termios.tcdrain(fd)
        except termios.error as e:
            self._log.warning(f"send: could not drain fd {fd}: {e}")

        self._log.info(f"send: wrote {written} bytes")
        return written


def build_frame(payload: bytes) -> bytes:
    """Return ``START + payload + END`` using the default delimiters."""
    return Framer.START + bytes(payload or b"") + Framer.END


def send(handle: Handle, payload: bytes, log: Optional[Log] = None) -> int:
    """Send one frame with the default delimiters. See ``Framer.send``."""
    return Framer(log=log).send(handle, payload)


START = Framer.START
END = Framer.END
