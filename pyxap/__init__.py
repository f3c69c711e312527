"""pyxap Python Package

Python library for controlling XAP audio matrix mixers over a serial link.
"""

from pyxap.device import Channel, Device
from pyxap.protocol import DeviceType, Group

__all__ = ["Channel", "Device", "DeviceType", "Group"]
