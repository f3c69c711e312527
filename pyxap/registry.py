import logging
from typing import Iterator, Optional

from pyxap.device import Device
from pyxap.exceptions import DeviceNotFoundError

# Devices are addressed by a small slot number in request paths
MAX_SLOT = 8


class DeviceRegistry:
    """Slot to Device mapping, filled at startup and read-only afterwards."""

    def __init__(self):
        self._logger = logging.getLogger(__name__)
        self._devices: dict[int, Device] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, slot: int, device: Device):
        if self._frozen:
            raise RuntimeError("Device registry is frozen")
        if not (0 <= slot <= MAX_SLOT):
            raise DeviceNotFoundError("device id out of range")
        if slot in self._devices:
            raise RuntimeError(f"Slot {slot} already holds {self._devices[slot]!r}")
        self._devices[slot] = device
        self._logger.info(f"Registered {device!r} in slot {slot}")

    def freeze(self):
        self._frozen = True

    def get(self, slot: int) -> Device:
        if not (0 <= slot <= MAX_SLOT):
            raise DeviceNotFoundError("device id out of range")
        device: Optional[Device] = self._devices.get(slot)
        if device is None:
            raise DeviceNotFoundError(f"no device in slot {slot}")
        return device

    def __iter__(self) -> Iterator[Device]:
        return iter(self._devices.values())

    def __len__(self) -> int:
        return len(self._devices)

    def close(self):
        """Close every registered device."""
        for device in self._devices.values():
            device.close()
