"""uart-com package.

Send a framed command to a UART device over pyserial and read its reply
up to the [UART_COM][END] marker.
"""

__all__ = [
    "Comm",
    "Config",
    "Framer",
    "MarkerReader",
    "ReadResult",
    "ReadStatus",
    "START",
    "END",
    "build_frame",
    "send",
    "read_until",
    "open_serial_port",
    "UartComError",
    "ConfigurationError",
    "TransportWriteError",
    "TransportReadError",
]

from .comm import Comm, open_serial_port
from .config import Config
from .errors import ConfigurationError, TransportReadError, TransportWriteError, UartComError
from .framer import END, START, Framer, build_frame, send
from .marker_reader import MarkerReader, ReadResult, ReadStatus, read_until

__version__ = "0.1.0"
