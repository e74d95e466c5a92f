from __future__ import annotations

from typing import Optional

import click

from .comm import Comm
from .config import Config, load_config_file
from .errors import UartComError
from .log import configure_logging, get_log
from .marker_reader import ReadResult

EXIT_FAILURE = 1
EXIT_USAGE = 2

EOL = {"none": b"", "cr": b"\r", "lf": b"\n", "crlf": b"\r\n"}


def _build_payload(string: Optional[str], hexstr: Optional[str], encoding: str, eol: str) -> Optional[bytes]:
    if string is not None and hexstr is not None:
        raise click.UsageError("Use only one of --command or --hex")
    if string is not None:
        try:
            payload = string.encode(encoding)
        except LookupError:
            raise click.UsageError(f"Unknown encoding: {encoding}")
    elif hexstr is not None:
        try:
            payload = bytes.fromhex(hexstr)
        except ValueError as e:
            raise click.UsageError(f"Invalid hex string: {e}")
    else:
        return None
    return payload + EOL[eol]


def _format_bytes(data: bytes) -> str:
    # Try to decode as string first, fall back to hex
    try:
        return repr(data.decode("utf-8"))
    except UnicodeDecodeError:
        return data.hex()


def _report(result: ReadResult) -> None:
    if result.found:
        click.echo(f"Received {len(result.data)} bytes:")
    elif result.eof:
        click.echo(f"Partial response ({len(result.data)} bytes, device closed the stream before the end marker):")
    else:
        click.echo(f"Partial response ({len(result.data)} bytes, timed out before the end marker):")
    if result.data:
        click.echo(f"  {_format_bytes(result.data)}")
    else:
        click.echo("  (empty)")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-p", "--port", "device", help="Path to serial device (e.g., /dev/ttyUSB0)")
@click.option("-b", "--baudrate", type=click.IntRange(min=1), help="Baud rate (9600, 19200, 38400, 57600, 115200)")
@click.option("-c", "--command", "string", help="Command string to send (mutually exclusive with --hex)")
@click.option("--hex", "hexstr", help="Hex command, e.g. '01 02 0a' or '01020a'")
@click.option("--eol", type=click.Choice(sorted(EOL)), default="none", show_default=True, help="Line ending appended to the command")
@click.option("--encoding", default="utf-8", show_default=True, help="Text encoding for string commands")
@click.option("-t", "--timeout", type=click.FloatRange(min=0), help="Seconds to wait for the end marker [default: 5.0]")
@click.option("-x", "--debug", is_flag=True, help="Enable debug mode (trace output, log mirrored to file)")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="TOML file with [serial] and [log] settings")
def main(device: Optional[str], baudrate: Optional[int], string: Optional[str], hexstr: Optional[str],
         eol: str, encoding: str, timeout: Optional[float], debug: bool,
         config_path: Optional[str]) -> None:
    """Send a framed command to a serial device and print its reply.

    The command is sent as [UART_COM][START]<command>[UART_COM][END] and the
    reply is read until [UART_COM][END] arrives or the timeout elapses.

    Examples:

      uart-com -p /dev/ttyUSB0 -b 115200 -c STATUS --eol crlf

      uart-com -p /dev/ttyUSB0 -b 9600 --hex "01 02 03" -t 2 -x
    """
    try:
        mapping = load_config_file(config_path) if config_path else {}
        # an unset -x keeps the config file's debug setting
        config = Config.from_mapping(mapping, device_path=device, baud_rate=baudrate, timeout=timeout, debug=debug or None)
    except UartComError as e:
        raise click.ClickException(str(e))

    payload = _build_payload(string, hexstr, encoding, eol)
    baud_given = baudrate is not None or "baudrate" in mapping.get("serial", {})
    if not config.device_path or not baud_given or payload is None:
        raise click.UsageError("Missing required -p, -b and/or -c")

    configure_logging(config)
    log = get_log("cli")

    click.echo("Info Used:")
    click.echo(f"  Device: {config.device_path}")
    click.echo(f"  Baud: {config.effective_baud_rate} bauds")
    click.echo(f"  Timeout: {config.timeout}s")
    click.echo(f"  Debug: {'on' if config.debug else 'off'}")

    try:
        with Comm(config) as c:
            written = c.send(payload)
            click.echo(f"Sent {written} bytes to {config.device_path}")
            click.echo("Waiting for response...")
            result = c.receive().raise_for_status()
    except UartComError as e:
        log.error(f"{type(e).__name__}: {e}")
        raise click.ClickException(str(e))

    _report(result)


if __name__ == "__main__":
    main()
