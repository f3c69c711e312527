from abc import ABC
from typing import List
import logging

from pyxap.protocol import Group


class DeviceListener(ABC):
    """Observer for values a device reports.

    Every method is optional. Value callbacks fire each time the device
    returns a value that gets cached, whether or not it changed.
    """

    def connected(self, device):
        pass

    def disconnected(self, device):
        pass

    def label_received(self, group: Group, number: int, label: str):
        pass

    def mute_received(self, group: Group, number: int, muted: bool):
        pass

    def gain_received(self, group: Group, number: int, gain: float):
        pass

    def level_received(self, group: Group, number: int, level: float):
        pass

    def error(self, error_message: str):
        # By default, do nothing but can be overwritten to be notified of these messages.
        pass


class MultiplexingListener(DeviceListener):

    _listeners: List[DeviceListener]

    def __init__(self):
        self._listeners = []

    def connected(self, device):
        for listener in self._listeners:
            listener.connected(device)

    def disconnected(self, device):
        for listener in self._listeners:
            listener.disconnected(device)

    def label_received(self, group: Group, number: int, label: str):
        for listener in self._listeners:
            listener.label_received(group, number, label)

    def mute_received(self, group: Group, number: int, muted: bool):
        for listener in self._listeners:
            listener.mute_received(group, number, muted)

    def gain_received(self, group: Group, number: int, gain: float):
        for listener in self._listeners:
            listener.gain_received(group, number, gain)

    def level_received(self, group: Group, number: int, level: float):
        for listener in self._listeners:
            listener.level_received(group, number, level)

    def error(self, error_message: str):
        for listener in self._listeners:
            listener.error(error_message)

    def register_listener(self, listener: DeviceListener):
        self._listeners.append(listener)

    def unregister_listener(self, listener: DeviceListener):
        if listener in self._listeners:
            self._listeners.remove(listener)
        else:
            logging.info("Listener isn't registered")


class LoggingListener(DeviceListener):

    def __init__(self, logger = logging):
        self.logger = logger

    def connected(self, device):
        self.logger.info(f"Connected to {device.device_type.name} #{device.device_id} (version {device.version}, uid {device.uid})")

    def disconnected(self, device):
        self.logger.info(f"Disconnected from {device.device_type.name} #{device.device_id}")

    def label_received(self, group: Group, number: int, label: str):
        self.logger.info(f"{group.label.capitalize()} {number} label: {label}")

    def mute_received(self, group: Group, number: int, muted: bool):
        self.logger.info(f"{group.label.capitalize()} {number} muted: {muted}")

    def gain_received(self, group: Group, number: int, gain: float):
        self.logger.info(f"{group.label.capitalize()} {number} gain: {gain}")

    def level_received(self, group: Group, number: int, level: float):
        self.logger.debug(f"{group.label.capitalize()} {number} level: {level}")

    def error(self, error_message: str):
        self.logger.warning(f"Device error: {error_message}")
