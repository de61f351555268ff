""" Connecting and holding a whole set of devices at once
"""
import asyncio
import logging
from typing import NamedTuple, Tuple

from ..errors import DysonConnectionTimeout, DysonError, DysonTransportError
from . import catalog
from .device import DysonDevice

_LOGGER = logging.getLogger(__name__)


class ConnectReport(NamedTuple):
    total: int = 0
    connected: int = 0
    failed: int = 0
    # family codes that were skipped
    unsupported: Tuple[str, ...] = ()

    def __str__(self):
        text = f"{self.connected}/{self.total} devices connected"
        if self.failed:
            text += f", {self.failed} failed"
        if self.unsupported:
            text += f", {len(self.unsupported)} unsupported"
        return text


def troubleshooting_hints(identity, err):
    """ Suggestions worth logging after a failed connect
    """
    if isinstance(err, DysonConnectionTimeout):
        return [
            "Device may be offline or unreachable. Try:",
            "  - power cycling the device (unplug it for 10 seconds)",
            "  - making sure the device is on the same network",
            f"  - checking that {identity.host} is the right address",
        ]
    message = str(err).lower()
    if 'refused' in message and ('not authori' in message or 'password' in message):
        return ["Authentication failed. Fetch the local credential of the device again."]
    if isinstance(err, DysonTransportError):
        return [f"Connection to {identity.host}:{identity.port} failed. The device may have a different address."]
    return []


class DysonDeviceManager:
    """ Creates a DysonDevice per identity and connects them all
    """

    def __init__(self, identities, device_factory=DysonDevice):
        self._identities = list(identities)
        self._device_factory = device_factory
        self._devices = {}

    @property
    def devices(self):
        return list(self._devices.values())

    def get_device(self, serial):
        return self._devices.get(serial)

    async def connect_all(self) -> ConnectReport:
        """ Connects every supported device; failures are logged and counted, never raised
        """
        connected, failed, unsupported = 0, 0, []
        seen = set()
        identities = []
        for identity in self._identities:
            if identity.serial in seen:
                _LOGGER.warning(f"ignoring duplicate device {identity.serial}")
                continue
            seen.add(identity.serial)
            identities.append(identity)

        if not identities:
            _LOGGER.warning("No devices configured")

        for identity in identities:
            if not catalog.is_product_type_supported(identity.product_type):
                _LOGGER.warning(f"Skipping unsupported device type: {identity.product_type} ({identity.display_name})")
                unsupported.append(identity.product_type)
                continue
            if not identity.host:
                _LOGGER.warning(f"No host known for device {identity.serial} ({identity.display_name})")
                failed += 1
                continue

            device = self._device_factory(identity)
            device.on_error(lambda err, serial=identity.serial: _LOGGER.error(f"Device {serial} error: {err}"))
            try:
                await device.connect()
            except DysonError as err:
                _LOGGER.error(f"Failed to connect to {identity.display_name}: {err}")
                for hint in troubleshooting_hints(identity, err):
                    _LOGGER.error(f"  -> {hint}")
                failed += 1
                continue
            self._devices[identity.serial] = device
            connected += 1
            _LOGGER.info(f"Connected to {identity.display_name} ({identity.serial})")

        report = ConnectReport(len(identities), connected, failed, tuple(unsupported))
        _LOGGER.info(f"Connecting complete: {report}")
        return report

    async def disconnect_all(self):
        devices, self._devices = list(self._devices.values()), {}
        results = await asyncio.gather(*(device.disconnect() for device in devices), return_exceptions=True)
        for device, result in zip(devices, results):
            if isinstance(result, Exception):
                _LOGGER.error(f"Error disconnecting {device}: {result}")
        _LOGGER.info("All devices disconnected")
