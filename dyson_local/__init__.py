""" Local MQTT control of dyson air purifiers, fans, heaters and humidifiers
"""

from .control import DeviceIdentity, DeviceState, DysonDevice, DysonDeviceManager
from .errors import (
    DysonError, DysonConfigurationError, DysonTransportError, DysonConnectionTimeout, DysonNotConnectedError,
)


__all__ = [
    "DeviceIdentity",
    "DeviceState",
    "DysonDevice",
    "DysonDeviceManager",
    "DysonError",
    "DysonConfigurationError",
    "DysonTransportError",
    "DysonConnectionTimeout",
    "DysonNotConnectedError",
]
