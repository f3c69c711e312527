"""Process configuration for the pyxap server."""

import argparse
from dataclasses import dataclass
from typing import Optional, Sequence

from pyxap.exceptions import ConfigurationError
from pyxap.protocol import DEFAULT_BAUDRATE, DEFAULT_READ_TIMEOUT, MAX_DEVICE_ID, DeviceType

DEFAULT_HTTP = "0.0.0.0:1776"
DEFAULT_PORT = "COM3"
DEFAULT_HEARTBEAT_MS = 1000


@dataclass
class XapConfig:
    http_host: str = "0.0.0.0"
    http_port: int = 1776
    port: str = DEFAULT_PORT
    baudrate: int = DEFAULT_BAUDRATE
    device_id: int = 0
    device_type: DeviceType = DeviceType.XAP800
    heartbeat: float = DEFAULT_HEARTBEAT_MS / 1000
    read_timeout: float = DEFAULT_READ_TIMEOUT
    inputs: Optional[int] = None
    outputs: Optional[int] = None
    verbose: bool = False

    def validate(self):
        if not (0 <= self.device_id <= MAX_DEVICE_ID):
            raise ConfigurationError(f"invalid device id {self.device_id}, must be 0-{MAX_DEVICE_ID}")
        if self.heartbeat <= 0:
            raise ConfigurationError("heartbeat interval must be positive")
        if self.read_timeout <= 0:
            raise ConfigurationError("read timeout must be positive")
        for name, count in (("inputs", self.inputs), ("outputs", self.outputs)):
            if count is not None and count < 0:
                raise ConfigurationError(f"{name} must not be negative")
        if (self.inputs is None and self.device_type.inputs < 0) or \
                (self.outputs is None and self.device_type.outputs < 0):
            raise ConfigurationError(
                f"{self.device_type.name} needs explicit --inputs and --outputs"
            )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve XAP audio mixer state over HTTP")
    parser.add_argument("--http", default=DEFAULT_HTTP, help=f"HTTP address (default: {DEFAULT_HTTP})")
    parser.add_argument("-p", "--port", default=DEFAULT_PORT,
                        help=f"Serial port or pyserial URL (default: {DEFAULT_PORT})")
    parser.add_argument("-b", "--baud", type=int, default=DEFAULT_BAUDRATE,
                        help=f"Serial baud rate (default: {DEFAULT_BAUDRATE})")
    parser.add_argument("--id", type=int, default=0, help="Device ID 0-7 (default: 0)")
    parser.add_argument("--type", default=DeviceType.XAP800.name,
                        help="Device type: " + ", ".join(t.name for t in DeviceType))
    parser.add_argument("--hb", type=int, default=DEFAULT_HEARTBEAT_MS,
                        help=f"Heartbeat interval in ms (default: {DEFAULT_HEARTBEAT_MS})")
    parser.add_argument("--timeout", type=float, default=DEFAULT_READ_TIMEOUT,
                        help=f"Serial read timeout in seconds (default: {DEFAULT_READ_TIMEOUT})")
    parser.add_argument("--inputs", type=int, default=None,
                        help="Input channels to provision (default: device type capability)")
    parser.add_argument("--outputs", type=int, default=None,
                        help="Output channels to provision (default: device type capability)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    return parser


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ConfigurationError(f"invalid HTTP address {address!r}, expected HOST:PORT")
    try:
        return host or "0.0.0.0", int(port)
    except ValueError:
        raise ConfigurationError(f"invalid HTTP port in {address!r}") from None


def parse_config(argv: Optional[Sequence[str]] = None) -> XapConfig:
    """Parse command line arguments into a validated XapConfig."""
    args = build_arg_parser().parse_args(list(argv) if argv is not None else None)
    http_host, http_port = _split_address(args.http)
    config = XapConfig(
        http_host=http_host,
        http_port=http_port,
        port=args.port,
        baudrate=args.baud,
        device_id=args.id,
        device_type=DeviceType.parse(args.type),
        heartbeat=args.hb / 1000,
        read_timeout=args.timeout,
        inputs=args.inputs,
        outputs=args.outputs,
        verbose=args.verbose,
    )
    config.validate()
    return config
