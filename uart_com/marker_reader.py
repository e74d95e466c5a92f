"""
Reading a device reply up to the END marker.

The reader pulls bytes from a non-blocking handle into an accumulation buffer
until the marker shows up anywhere in what has arrived, or until a deadline
fixed at the start of the read expires. Whatever has accumulated is returned
in every case, so a slow or silent device still yields its partial output.

The only blocking call is the readiness wait (``select``), bounded by the
time left before the deadline.
"""

from __future__ import annotations

import os
import select
import time
from dataclasses import dataclass
from enum import Enum
from typing import Final, Optional

from .errors import TransportReadError
from .framer import END, WOULD_BLOCK_BACKOFF, Handle, resolve_fd
from .log import Log, get_log

INITIAL_CAPACITY: Final[int] = 512
CHUNK_SIZE: Final[int] = 512
# longest single readiness wait; select rejects timeouts past the platform time_t
MAX_WAIT: Final[float] = 86400.0


class ReadStatus(Enum):
    FOUND = "found"
    TIMED_OUT = "timed_out"
    IO_ERROR = "io_error"


@dataclass(frozen=True)
class ReadResult:
    """
    Outcome of one read.
    Fields:
        status: FOUND, TIMED_OUT or IO_ERROR
        data: Every byte accumulated, including anything after the marker
        eof: The device closed the stream before the marker arrived
        error: The OSError behind an IO_ERROR
    """
    status: ReadStatus
    data: bytes
    eof: bool = False
    error: Optional[BaseException] = None

    @property
    def found(self) -> bool:
        return self.status is ReadStatus.FOUND

    @property
    def timed_out(self) -> bool:
        return self.status is ReadStatus.TIMED_OUT

    def raise_for_status(self) -> "ReadResult":
        """Raise TransportReadError for IO_ERROR, otherwise return self."""
        if self.status is ReadStatus.IO_ERROR:
            raise TransportReadError(f"read failed after {len(self.data)} bytes: {self.error}")
        return self


class AccumulationBuffer:
    """
    Contiguous byte buffer with an explicit capacity.
    Capacity starts at ``initial_capacity``, doubles when more room is needed
    and never shrinks. The logical length never exceeds the capacity.
    """

    def __init__(self, initial_capacity: int = INITIAL_CAPACITY) -> None:
        if initial_capacity <= 0:
            raise ValueError("initial_capacity must be positive")
        self._buf = bytearray(initial_capacity)
        self._length = 0

    def __len__(self) -> int:
        return self._length

    @property
    def capacity(self) -> int:
        return len(self._buf)

    @property
    def spare(self) -> int:
        return len(self._buf) - self._length

    def reserve(self, n: int) -> None:
        """Grow (by doubling) until at least ``n`` bytes are free."""
        capacity = len(self._buf)
        while capacity - self._length < n:
            capacity *= 2
        if capacity > len(self._buf):
            self._buf.extend(bytes(capacity - len(self._buf)))

    def append(self, data: bytes) -> None:
        self.reserve(len(data))
        self._buf[self._length:self._length + len(data)] = data
        self._length += len(data)

    def read_from(self, fd: int) -> int:
        """
        Issue a single read into the free space.
        Returns:
            int: Bytes read (0 at end of stream)
        Raises:
            OSError: Whatever the read raised, including the transient ones
        """
        with memoryview(self._buf)[self._length:] as tail:
            n = os.readv(fd, [tail])
        self._length += n
        return n

    def find(self, marker: bytes, start: int = 0) -> int:
        return self._buf.find(marker, max(start, 0), self._length)

    def getvalue(self) -> bytes:
        return bytes(self._buf[:self._length])


class MarkerReader:
    """
    Reads from a handle until ``end_marker`` is seen or the timeout elapses.
    Args:
        log (Log, optional): Diagnostic sink
        chunk_size (int): Free space guaranteed before every read
        initial_capacity (int): Starting size of the accumulation buffer
    """

    def __init__(self, log: Optional[Log] = None, chunk_size: int = CHUNK_SIZE, initial_capacity: int = INITIAL_CAPACITY) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._log = log or get_log("marker_reader")
        self.chunk_size = chunk_size
        self.initial_capacity = initial_capacity

    def read_until(self, handle: Handle, end_marker: bytes = END, timeout: float = 5.0) -> ReadResult:
        """
        Accumulate bytes from ``handle`` until ``end_marker`` appears.
        Args:
            handle: File descriptor or object with ``fileno()``, ideally non-blocking
            end_marker (bytes): Sequence that ends the reply
            timeout (float): Seconds allowed for the whole read
        Returns:
            ReadResult: FOUND with all bytes once the marker is present;
                TIMED_OUT with partial bytes on deadline or end of stream;
                IO_ERROR with partial bytes on a hard failure
        Raises:
            ConfigurationError: If the handle is unusable
        """
        if not end_marker:
            raise ValueError("end_marker must not be empty")
        fd = resolve_fd(handle, self._log)
        buf = AccumulationBuffer(self.initial_capacity)
        deadline = time.monotonic() + timeout
        self._log.trace(f"read_until: waiting up to {timeout}s for {end_marker!r} on fd {fd}")

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return self._timed_out(buf)

            try:
                ready, _, _ = select.select([fd], [], [], min(remaining, MAX_WAIT))
            except InterruptedError:
                continue
            except (OSError, ValueError) as e:
                return self._io_error(buf, e)
            if not ready:
                return self._timed_out(buf)

            buf.reserve(self.chunk_size)
            previous = len(buf)
            try:
                n = buf.read_from(fd)
            except InterruptedError:
                continue
            except BlockingIOError:
                time.sleep(WOULD_BLOCK_BACKOFF)
                continue
            except OSError as e:
                return self._io_error(buf, e)

            if n == 0:
                self._log.warning(f"read_until: end of stream after {len(buf)} bytes, marker not seen")
                return ReadResult(ReadStatus.TIMED_OUT, buf.getvalue(), eof=True)

            self._log.trace(f"read_until: got {n} bytes ({len(buf)} total, capacity {buf.capacity})")
            if len(buf) >= len(end_marker):
                # only the new bytes plus a marker-sized overlap can hold a new match
                if buf.find(end_marker, previous - len(end_marker) + 1) >= 0:
                    self._log.info(f"read_until: marker found, {len(buf)} bytes received")
                    return ReadResult(ReadStatus.FOUND, buf.getvalue())

    def _timed_out(self, buf: AccumulationBuffer) -> ReadResult:
        self._log.warning(f"read_until: timed out with {len(buf)} bytes received")
        return ReadResult(ReadStatus.TIMED_OUT, buf.getvalue())

    def _io_error(self, buf: AccumulationBuffer, error: BaseException) -> ReadResult:
        self._log.error(f"read_until: I/O error after {len(buf)} bytes: {error}")
        return ReadResult(ReadStatus.IO_ERROR, buf.getvalue(), error=error)


def read_until(handle: Handle, end_marker: bytes = END, timeout: float = 5.0, log: Optional[Log] = None) -> ReadResult:
    """Read with the default buffer policy. See ``MarkerReader.read_until``."""
    return MarkerReader(log=log).read_until(handle, end_marker, timeout)
