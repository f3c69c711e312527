"""Errors raised by pyxap.

Every failure of a device exchange is an :class:`XapError`; nothing in the
library retries or recovers, the caller decides.
"""


class XapError(Exception):
    """Base class for all pyxap errors."""


class TransportError(XapError):
    """The serial link failed to open, read or write, or was lost."""


class NoResponseError(TransportError):
    """No frame start marker was seen before the read terminated."""

    def __init__(self, message: str = "no response"):
        super().__init__(message)


class InvalidResponseError(XapError):
    """A response frame did not have the shape expected for its command."""

    def __init__(self, message: str = "invalid response"):
        super().__init__(message)


class DeviceError(XapError):
    """The device answered with ``ERROR <message>``."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(XapError):
    """Invalid startup parameters (device id, heartbeat, channel counts)."""


class DeviceNotFoundError(XapError):
    pass


class ChannelNotFoundError(XapError):
    pass
