import asyncio
import logging
from enum import Enum, IntEnum
from typing import Optional

import serial
import serial_asyncio

from pyxap.exceptions import (
    ConfigurationError,
    InvalidResponseError,
    DeviceError,
    NoResponseError,
    TransportError,
)

# XAP requests are single ASCII lines addressed by device type and id:
# #50 GAIN 3 I -12.000000 A\r\n  sets input 3 of XAP800 #0 to -12dB
# The device echoes the command with its current value:
# #50 GAIN 3 I -12.00 A\r\n
# or reports a failure in the same frame:
# #50 ERROR bad channel\r\n
FRAME_START = ord("#")
FRAME_END = ord("\n")
FRAME_NULL = 0x00
FRAME_TERMINATOR = "\r\n"
# '#' + type digit + id digit
HEADER_LENGTH = 3
ERROR_MARKER = "ERROR "

# Responses longer than this without a terminator are cut off here
RECEIVE_BUFFER_SIZE = 128

MAX_DEVICE_ID = 7
DEFAULT_BAUDRATE = 38400
DEFAULT_READ_TIMEOUT = 1.0

# Command vocabulary
CMD_VERSION = "VER"
CMD_UID = "UID"
CMD_MUTE = "MUTE"
CMD_LABEL = "LABEL"
CMD_GAIN = "GAIN"
CMD_LEVEL = "LVL"

# Number of space separated tokens in each echoed response
# MUTE 3 I 1
# LABEL 3 I Podium x
# GAIN 3 I -12.00 A
# LVL 3 I A -40.50
RESPONSE_TOKEN_COUNTS = {
    CMD_MUTE: 4,
    CMD_LABEL: 5,
    CMD_GAIN: 5,
    CMD_LEVEL: 5,
}

# Gain and level are reported for the absolute ("A") scale
ABSOLUTE = "A"


class DeviceType(IntEnum):
    """Hardware model. The value is the type digit used on the wire."""
    PSR1212 = 4
    XAP800 = 5
    XAPTH2 = 6
    XAP400 = 7

    @property
    def inputs(self) -> int:
        """Input channels the model has, -1 if unknown."""
        return _CHANNEL_COUNTS[self][0]

    @property
    def outputs(self) -> int:
        """Output channels the model has, -1 if unknown."""
        return _CHANNEL_COUNTS[self][1]

    @classmethod
    def parse(cls, name: str) -> "DeviceType":
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ConfigurationError(f"unknown device type {name!r}") from None


_CHANNEL_COUNTS = {
    DeviceType.PSR1212: (-1, -1),
    DeviceType.XAP800: (12, 12),
    DeviceType.XAPTH2: (0, 0),
    DeviceType.XAP400: (8, 9),
}


class Group(str, Enum):
    """Channel direction, sent as its wire letter."""
    INPUT = "I"
    OUTPUT = "O"

    @property
    def label(self) -> str:
        return "input" if self is Group.INPUT else "output"

    @classmethod
    def parse(cls, text: str) -> "Group":
        key = text.strip().upper()
        for group in cls:
            if key in (group.value, group.label.upper()):
                return group
        raise ValueError(f"unknown channel group {text!r}")


def encode_command(device_type: DeviceType, device_id: int, command: str, *args: str) -> bytes:
    """Build the request frame for ``command``.

    Arguments are joined with single spaces in order; an empty string is a
    valid placeholder and asks the device for the current value.
    """
    if not (0 <= device_id <= MAX_DEVICE_ID):
        raise ConfigurationError(f"Invalid device id {device_id}, must be 0-{MAX_DEVICE_ID}")
    parts = [f"#{int(device_type)}{device_id} {command}"]
    parts.extend(args)
    return (" ".join(parts) + FRAME_TERMINATOR).encode("ascii")


class ResponseReader:
    """Accumulates received bytes until one response frame is terminated.

    A frame ends at a newline after the ``#`` marker, at a NUL byte, at a
    zero-length read (the link timed out) or when the buffer is full.
    """

    def __init__(self, capacity: int = RECEIVE_BUFFER_SIZE):
        self._capacity = capacity
        self._buffer = bytearray()
        self._start = -1
        self._complete = False

    @property
    def complete(self) -> bool:
        return self._complete

    def feed(self, chunk: bytes) -> bool:
        """Add a chunk from the link. Returns True once the frame is terminated."""
        if self._complete:
            return True
        if not chunk:
            self._complete = True
            return True
        for byte in chunk:
            if len(self._buffer) >= self._capacity:
                break
            self._buffer.append(byte)
            if byte == FRAME_START and self._start < 0:
                self._start = len(self._buffer) - 1
            elif byte == FRAME_NULL:
                # NUL is a terminator, not payload
                self._buffer.pop()
                self._complete = True
                return True
            elif byte == FRAME_END and self._start >= 0:
                self._complete = True
                return True
        if len(self._buffer) >= self._capacity:
            self._complete = True
        return self._complete

    def payload(self) -> str:
        """Return the trimmed text after the frame header.

        Raises NoResponseError when no frame start was seen and DeviceError
        when the payload carries an ``ERROR`` report.
        """
        if self._start < 0:
            raise NoResponseError()
        text = self._buffer[self._start + HEADER_LENGTH:].decode("ascii", errors="replace").strip()
        index = text.find(ERROR_MARKER)
        if index >= 0:
            raise DeviceError(text[index + len(ERROR_MARKER):])
        return text


def decode_response(data: bytes, capacity: int = RECEIVE_BUFFER_SIZE) -> str:
    """Decode a complete response as if the link went quiet after ``data``."""
    reader = ResponseReader(capacity)
    if not reader.feed(data):
        reader.feed(b"")
    return reader.payload()


def parse_fields(payload: str, command: str) -> list[str]:
    """Split an echoed response into its positional tokens."""
    fields = payload.split(" ")
    if len(fields) != RESPONSE_TOKEN_COUNTS[command]:
        raise InvalidResponseError()
    return fields


def parse_number(token: str) -> float:
    try:
        return float(token)
    except ValueError:
        raise InvalidResponseError(f"invalid response: not a number {token!r}") from None


def strip_echo(payload: str, command: str) -> str:
    """Remove the echoed command word from an identity response."""
    prefix = command + " "
    if payload.startswith(prefix):
        return payload[len(prefix):].strip()
    return payload


class XapLink(asyncio.Protocol):
    """Byte level half-duplex link to the device.

    Received data is queued in arrival order; ``read`` hands it out one
    chunk at a time and returns ``b""`` when nothing arrives in time.
    The link knows nothing about frames.
    """

    def __init__(self):
        self._logger = logging.getLogger(__name__)
        self._transport = None
        self._chunks: asyncio.Queue = asyncio.Queue()
        self._lost_reason: Optional[str] = None
        self.port_name: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self._transport is not None and not self._transport.is_closing()

    def connection_made(self, transport):
        """Method from asyncio.Protocol"""
        self._transport = transport
        self._lost_reason = None
        serial_port = transport.get_extra_info("serial")
        if serial_port is not None:
            self.port_name = serial_port.name
        self._logger.info(f"Serial link opened: {self.port_name}")

    def data_received(self, data):
        """Method from asyncio.Protocol"""
        self._chunks.put_nowait(bytes(data))

    def connection_lost(self, exc):
        """Method from asyncio.Protocol"""
        self._transport = None
        self._lost_reason = str(exc) if exc else "serial link closed"
        if exc:
            self._logger.error(f"Serial link lost: {exc}")
        else:
            self._logger.info(f"Serial link closed: {self.port_name}")
        # Wake a reader waiting for data
        self._chunks.put_nowait(None)

    def write(self, data: bytes):
        if not self.connected:
            raise TransportError(self._lost_reason or "serial link is not open")
        try:
            self._transport.write(data)
        except OSError as e:
            raise TransportError(f"write failed: {e}") from e

    async def read(self, timeout: float) -> bytes:
        """Return the next received chunk, or b"" if none arrives in ``timeout``."""
        if self._chunks.empty() and self._lost_reason is not None:
            raise TransportError(self._lost_reason)
        try:
            chunk = await asyncio.wait_for(self._chunks.get(), timeout)
        except asyncio.TimeoutError:
            return b""
        if chunk is None:
            self._chunks.put_nowait(None)
            raise TransportError(self._lost_reason or "serial link closed")
        return chunk

    def discard(self) -> int:
        """Drop unread data left over from earlier exchanges."""
        discarded = 0
        while not self._chunks.empty():
            chunk = self._chunks.get_nowait()
            if chunk is None:
                self._chunks.put_nowait(None)
                break
            discarded += len(chunk)
        return discarded

    def close(self):
        if self._transport is not None:
            self._transport.close()


async def open_serial_link(port: str, baudrate: int = DEFAULT_BAUDRATE) -> XapLink:
    """Open ``port`` (a device path or any pyserial URL) as an XapLink."""
    loop = asyncio.get_running_loop()
    try:
        _, link = await serial_asyncio.create_serial_connection(
            loop, XapLink, port, baudrate=baudrate
        )
    except (OSError, serial.SerialException) as e:
        raise TransportError(f"cannot open {port}: {e}") from e
    return link
