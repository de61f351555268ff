""" All stuff to hold sessions with local dyson devices and keep their state
"""

from .model import (
    CapabilityProfile, DeviceIdentity, DeviceModel, DeviceSeries, DeviceSessionState, DeviceState,
    DEFAULT_CAPABILITIES,
)
from .device import DysonDevice
from .reconnect import DeviceReconnector, ReconnectPolicy
from .filters import FilterMonitor, FilterStatus
from .manager import ConnectReport, DysonDeviceManager


__all__ = [
    "CapabilityProfile",
    "DeviceIdentity",
    "DeviceModel",
    "DeviceSeries",
    "DeviceSessionState",
    "DeviceState",
    "DEFAULT_CAPABILITIES",
    "DysonDevice",
    "DeviceReconnector",
    "ReconnectPolicy",
    "FilterMonitor",
    "FilterStatus",
    "ConnectReport",
    "DysonDeviceManager",
]
