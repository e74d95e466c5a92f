from __future__ import annotations

import math
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Final, Optional, Tuple

from .errors import ConfigurationError
from .log import Log, get_log

SUPPORTED_BAUD_RATES: Final[Tuple[int, ...]] = (9600, 19200, 38400, 57600, 115200)
DEFAULT_BAUD_RATE: Final[int] = 115200
DEFAULT_TIMEOUT: Final[float] = 5.0
DEFAULT_LOG_FILE: Final[str] = "/tmp/error.log"


def resolve_baud_rate(baud_rate: int, log: Optional[Log] = None) -> int:
    """
    Map a requested baud rate onto the supported set.
    Unrecognized rates fall back to 115200.
    """
    if baud_rate in SUPPORTED_BAUD_RATES:
        return baud_rate
    (log or get_log("config")).warning(
        f"Unsupported baud rate {baud_rate}, falling back to {DEFAULT_BAUD_RATE} bauds"
    )
    return DEFAULT_BAUD_RATE


@dataclass(frozen=True)
class Config:
    """
    Settings for one send/receive cycle.
    Fields:
        device_path: Serial device (e.g. /dev/ttyUSB0)
        baud_rate: Requested line speed
        timeout: Seconds to wait for the END marker
        debug: Mirror log output to ``log_file`` and enable trace output
        log_file: Persistent log sink used in debug mode
    """
    device_path: Optional[str] = None
    baud_rate: int = DEFAULT_BAUD_RATE
    timeout: float = DEFAULT_TIMEOUT
    debug: bool = False
    log_file: str = DEFAULT_LOG_FILE

    def __post_init__(self) -> None:
        if self.baud_rate <= 0:
            raise ConfigurationError(f"Invalid baud rate: {self.baud_rate}")
        if math.isnan(self.timeout) or self.timeout < 0:
            raise ConfigurationError(f"Invalid timeout: {self.timeout}")

    @classmethod
    def from_mapping(cls, mapping: dict, **overrides: Any) -> "Config":
        """
        Build a Config from a parsed TOML mapping, with explicit overrides on top.
        ``None`` overrides are ignored so unset command-line options keep file values.
        """
        serial_cfg = mapping.get("serial", {})
        log_cfg = mapping.get("log", {})
        for section, value in (("serial", serial_cfg), ("log", log_cfg)):
            if not isinstance(value, dict):
                raise ConfigurationError(f"[{section}] must be a table, not {type(value).__name__}")
        debug = log_cfg.get("debug", False)
        if not isinstance(debug, bool):
            raise ConfigurationError(f"[log] debug must be true or false, not {debug!r}")
        try:
            config = cls(
                device_path=serial_cfg.get("device"),
                baud_rate=int(serial_cfg.get("baudrate", DEFAULT_BAUD_RATE)),
                timeout=float(serial_cfg.get("timeout", DEFAULT_TIMEOUT)),
                debug=debug,
                log_file=str(log_cfg.get("file", DEFAULT_LOG_FILE)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e
        return config.with_overrides(**overrides)

    def with_overrides(self, **overrides: Any) -> "Config":
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    @property
    def effective_baud_rate(self) -> int:
        return resolve_baud_rate(self.baud_rate)


def load_config_file(path: str | Path) -> dict:
    """
    Load a TOML configuration file.
    Args:
        path: Path to the file
    Returns:
        dict: Parsed TOML document
    Raises:
        ConfigurationError: If the file is missing, unreadable or not valid TOML
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file {path} not found") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read config {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Failed to parse config {path}: {e}") from e
