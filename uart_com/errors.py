from __future__ import annotations


class UartComError(Exception):
    """Base class for all uart-com failures."""


class ConfigurationError(UartComError):
    """Bad handle, unopenable device or unusable configuration."""


class TransportWriteError(UartComError):
    """A frame could not be fully written to the device."""

    def __init__(self, message: str, *, remaining: int = 0) -> None:
        super().__init__(message)
        self.remaining = remaining


class TransportReadError(UartComError):
    """Non-recoverable failure while waiting for or reading the reply."""
