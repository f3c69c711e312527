"""XAP device and channel state.

This module contains the device abstraction built on the serial link:
- Device identity (type, id, firmware version, serial number)
- A single serialized request/response exchange (``Device.send``)
- Channel objects caching label, mute, gain and level
- The heartbeat task that keeps levels of unmuted channels fresh

Cached values always hold what the device last returned; nothing is
written to the cache from the requested value alone."""

import asyncio
import logging
from asyncio import Task
from typing import Any, Iterator, Optional

from pyxap.exceptions import ChannelNotFoundError, ConfigurationError, XapError
from pyxap.listener import DeviceListener, MultiplexingListener
from pyxap.protocol import (
    ABSOLUTE,
    CMD_GAIN,
    CMD_LABEL,
    CMD_LEVEL,
    CMD_MUTE,
    CMD_UID,
    CMD_VERSION,
    DEFAULT_BAUDRATE,
    DEFAULT_READ_TIMEOUT,
    FRAME_TERMINATOR,
    MAX_DEVICE_ID,
    DeviceType,
    Group,
    ResponseReader,
    encode_command,
    open_serial_link,
    parse_fields,
    parse_number,
    strip_echo,
)


class Channel:
    """One input or output slot of a device with its last known state."""

    def __init__(self, number: int, group: Group, device: 'Device'):
        self._number = number
        self._group = group
        self._device = device

        # State: last values returned by the device
        self._label: str = ""
        self._muted: bool = False
        self._gain: float = 0.0
        self._level: float = 0.0

        # Held by every operation that writes the cached fields
        self._lock = asyncio.Lock()

    @property
    def number(self) -> int:
        """Channel number, starting at 1 within its group."""
        return self._number

    @property
    def group(self) -> Group:
        return self._group

    @property
    def label(self) -> str:
        return self._label

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def gain(self) -> float:
        return self._gain

    @property
    def level(self) -> float:
        return self._level

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self._label,
            "muted": self._muted,
            "gain": self._gain,
            "level": self._level,
        }

    async def update(self):
        """Refresh mute, gain and label in that order, stopping at the first failure."""
        async with self._lock:
            await self._query_mute("")
            await self._query_gain("")
            await self._query_label()

    async def mute(self, mute: bool) -> bool:
        """Mute or unmute the channel. Returns the state the device reports."""
        async with self._lock:
            return await self._query_mute("1" if mute else "0")

    async def set_gain(self, value: float) -> float:
        """Set the gain. Returns the gain the device reports."""
        async with self._lock:
            return await self._query_gain(f"{value:f}")

    async def query_level(self) -> float:
        async with self._lock:
            return await self._query_level()

    async def heartbeat(self):
        """Refresh the cached level."""
        await self.query_level()

    async def _query_mute(self, value: str) -> bool:
        response = await self._device.send(CMD_MUTE, str(self._number), self._group.value, value)
        fields = parse_fields(response, CMD_MUTE)
        self._muted = fields[3] == "1"
        self._device._multiplex_callback.mute_received(self._group, self._number, self._muted)
        return self._muted

    async def _query_gain(self, value: str) -> float:
        if value == "":
            args = (str(self._number), self._group.value, "")
        else:
            args = (str(self._number), self._group.value, value, ABSOLUTE)
        response = await self._device.send(CMD_GAIN, *args)
        fields = parse_fields(response, CMD_GAIN)
        self._gain = parse_number(fields[3])
        self._device._multiplex_callback.gain_received(self._group, self._number, self._gain)
        return self._gain

    async def _query_label(self) -> str:
        response = await self._device.send(CMD_LABEL, str(self._number), self._group.value, "")
        fields = parse_fields(response, CMD_LABEL)
        self._label = fields[3]
        self._device._multiplex_callback.label_received(self._group, self._number, self._label)
        return self._label

    async def _query_level(self) -> float:
        response = await self._device.send(CMD_LEVEL, str(self._number), self._group.value, ABSOLUTE, "")
        fields = parse_fields(response, CMD_LEVEL)
        self._level = parse_number(fields[4])
        self._device._multiplex_callback.level_received(self._group, self._number, self._level)
        return self._level

    def __repr__(self) -> str:
        return f"<Channel {self._group.label} {self._number}>"


def _validate_device_id(device_id: int):
    if not (0 <= device_id <= MAX_DEVICE_ID):
        raise ConfigurationError(f"Invalid device id {device_id}, must be 0-{MAX_DEVICE_ID}")


def _channel_counts(device_type: DeviceType, inputs: Optional[int], outputs: Optional[int]) -> tuple[int, int]:
    """Resolve how many channels to provision, defaulting to the model's capability."""
    if inputs is None:
        inputs = device_type.inputs
    if outputs is None:
        outputs = device_type.outputs
    if inputs < 0 or outputs < 0:
        raise ConfigurationError(
            f"Channel counts for {device_type.name} are unknown, inputs and outputs must be given"
        )
    return inputs, outputs


class Device:
    """One XAP unit on a serial link.

    Use :meth:`open` (or :meth:`create` with an already open link) rather
    than the constructor: a Device is only handed out after its identity
    was read and every channel was refreshed once.

    All exchanges go through :meth:`send`, which keeps at most one command
    outstanding because the link is half-duplex and responses can only be
    matched to requests by order.
    """

    def __init__(self, link, device_id: int, device_type: DeviceType = DeviceType.XAP800,
                 read_timeout: float = DEFAULT_READ_TIMEOUT, listener: Optional[DeviceListener] = None):
        """Initialize device.

        Args:
            link: Open XapLink (or any object with write/read/discard/close)
            device_id: Device id set on the unit (0-7)
            device_type: Hardware model
            read_timeout: Seconds to wait for each chunk of a response
            listener: Optional listener for reported values
        """
        _validate_device_id(device_id)
        if read_timeout <= 0:
            raise ConfigurationError(f"Invalid read timeout {read_timeout}, must be positive")

        self._logger = logging.getLogger(__name__)
        self._link = link
        self._device_id = device_id
        self._device_type = device_type
        self._read_timeout = read_timeout

        # Identity, read once during creation
        self._version: Optional[str] = None
        self._uid: Optional[str] = None

        self._channels: dict[Group, tuple[Channel, ...]] = {Group.INPUT: (), Group.OUTPUT: ()}

        # One command in flight at a time
        self._lock = asyncio.Lock()

        self._heartbeat_time: Optional[float] = None
        self._heartbeat_task: Optional[Task[Any]] = None
        self._closed = False

        self._multiplex_callback = MultiplexingListener()
        if listener is not None:
            self._multiplex_callback.register_listener(listener)

    @classmethod
    async def open(cls, port: str, baudrate: int = DEFAULT_BAUDRATE, device_id: int = 0,
                   device_type: DeviceType = DeviceType.XAP800, inputs: Optional[int] = None,
                   outputs: Optional[int] = None, read_timeout: float = DEFAULT_READ_TIMEOUT,
                   listener: Optional[DeviceListener] = None) -> 'Device':
        """Open the serial port and create the device on it."""
        _validate_device_id(device_id)
        _channel_counts(device_type, inputs, outputs)
        link = await open_serial_link(port, baudrate)
        return await cls.create(link, device_id, device_type, inputs=inputs, outputs=outputs,
                                read_timeout=read_timeout, listener=listener)

    @classmethod
    async def create(cls, link, device_id: int, device_type: DeviceType = DeviceType.XAP800,
                     inputs: Optional[int] = None, outputs: Optional[int] = None,
                     read_timeout: float = DEFAULT_READ_TIMEOUT,
                     listener: Optional[DeviceListener] = None) -> 'Device':
        """Identify the device on ``link`` and provision its channels.

        Any failure closes the link and is raised; no partially built
        Device is returned.
        """
        try:
            inputs, outputs = _channel_counts(device_type, inputs, outputs)
            device = cls(link, device_id, device_type, read_timeout=read_timeout, listener=listener)
            await device._identify()
            await device._provision_channels(inputs, outputs)
        except BaseException as e:
            logging.getLogger(__name__).error(f"Device creation failed: {e}")
            link.close()
            raise
        device._multiplex_callback.connected(device)
        return device

    @property
    def device_id(self) -> int:
        return self._device_id

    @property
    def device_type(self) -> DeviceType:
        return self._device_type

    @property
    def version(self) -> Optional[str]:
        """Firmware version."""
        return self._version

    @property
    def uid(self) -> Optional[str]:
        """Hardware serial number."""
        return self._uid

    @property
    def channels(self) -> dict[Group, tuple[Channel, ...]]:
        return dict(self._channels)

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    def all_channels(self) -> Iterator[Channel]:
        for group in Group:
            yield from self._channels[group]

    def channel(self, group: Group, number: int) -> Channel:
        """Return channel ``number`` (1-based) of ``group``."""
        channels = self._channels.get(group, ())
        if not (1 <= number <= len(channels)):
            raise ChannelNotFoundError(
                f"Invalid {group.label} channel {number}, must be 1-{len(channels)}"
            )
        return channels[number - 1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "channels": {
                group.value: [channel.to_dict() for channel in self._channels[group]]
                for group in Group
            }
        }

    def register_listener(self, listener: DeviceListener):
        self._multiplex_callback.register_listener(listener)

    def unregister_listener(self, listener: DeviceListener):
        self._multiplex_callback.unregister_listener(listener)

    async def send(self, command: str, *args: str) -> str:
        """Send one command and return the payload of the device's response.

        Raises TransportError (or NoResponseError) when the exchange fails,
        DeviceError when the device reports an error.
        """
        async with self._lock:
            frame = encode_command(self._device_type, self._device_id, command, *args)
            stale = self._link.discard()
            if stale:
                self._logger.debug(f"Discarded {stale} stale bytes before {command}")

            self._logger.debug(f"Tx: {frame[:-len(FRAME_TERMINATOR)].decode('ascii')}")
            self._link.write(frame)

            reader = ResponseReader()
            while not reader.feed(await self._link.read(self._read_timeout)):
                pass
            payload = reader.payload()
            self._logger.debug(f"Rx: {payload}")
            return payload

    async def _identify(self):
        self._version = strip_echo(await self.send(CMD_VERSION), CMD_VERSION)
        self._uid = strip_echo(await self.send(CMD_UID), CMD_UID)
        self._logger.info(
            f"{self._device_type.name} #{self._device_id}: version {self._version}, uid {self._uid}"
        )

    async def _provision_channels(self, inputs: int, outputs: int):
        """Create the channels and refresh each one, failing if any refresh fails."""
        self._channels = {
            Group.INPUT: tuple(Channel(number, Group.INPUT, self) for number in range(1, inputs + 1)),
            Group.OUTPUT: tuple(Channel(number, Group.OUTPUT, self) for number in range(1, outputs + 1)),
        }
        channels = list(self.all_channels())
        results = await asyncio.gather(*(channel.update() for channel in channels), return_exceptions=True)

        failures = [(channel, result) for channel, result in zip(channels, results)
                    if isinstance(result, BaseException)]
        for channel, error in failures:
            self._logger.error(f"Initial update of {channel.group.label} {channel.number} failed: {error}")
        if failures:
            raise failures[0][1]
        self._logger.info(f"Provisioned {inputs} inputs and {outputs} outputs")

    # ========== Heartbeat ==========

    def start(self, heartbeat_time: float):
        """Start refreshing levels every ``heartbeat_time`` seconds."""
        if heartbeat_time <= 0:
            raise ConfigurationError(f"Invalid heartbeat interval {heartbeat_time}, must be positive")
        if self.heartbeat_running:
            self._logger.warning("Heartbeat already running")
            return
        self._heartbeat_time = heartbeat_time
        self._heartbeat_task = asyncio.get_running_loop().create_task(self._heartbeat())
        self._logger.info(f"Heartbeat started every {heartbeat_time}s")

    async def _heartbeat(self):
        """Refresh levels, then sleep. A slow link delays the next tick."""
        while True:
            try:
                await asyncio.sleep(self._heartbeat_time)
                await self.refresh_levels()
            except asyncio.CancelledError:
                self._logger.debug("Heartbeat cancelled")
                break
            except Exception as e:
                self._logger.error(f"Unexpected error in heartbeat: {e}", exc_info=True)

    async def refresh_levels(self):
        """Query the level of every unmuted channel, one after another.

        A failing channel is logged and reported to listeners; the sweep
        carries on with the next one.
        """
        for channel in self.all_channels():
            if channel.muted:
                continue
            try:
                await channel.heartbeat()
            except XapError as e:
                message = f"Heartbeat failed for {channel.group.label} {channel.number}: {e}"
                self._logger.warning(message)
                self._multiplex_callback.error(message)

    def close(self):
        """Stop the heartbeat and close the link."""
        if self._closed:
            return
        self._closed = True
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
        self._link.close()
        self._multiplex_callback.disconnected(self)

    def __repr__(self) -> str:
        return f"<Device {self._device_type.name} #{self._device_id}>"
