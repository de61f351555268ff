""" Value types describing the devices under control, their capabilities and their state
"""
from enum import Enum
from typing import NamedTuple, Optional

from ..const import DEFAULT_PORT
from ..mqtt.messenger import lead_dots_trail


class DeviceIdentity(NamedTuple):
    """ What is needed to find and log in to one device.

    Produced by the (external) cloud account login and local network discovery, or read from a device file.
    """
    # unique serial, also the MQTT username
    serial: str
    # family code, e.g. '438' - selects the capability profile
    product_type: str
    # local MQTT password
    credential: str
    # network address of the device, None until discovered
    host: Optional[str] = None
    port: int = DEFAULT_PORT
    name: Optional[str] = None

    @property
    def display_name(self):
        return self.name or f"Dyson {self.serial}"

    @property
    def secret(self):
        return lead_dots_trail(self.credential or '')

    def __str__(self):
        return f"{self.display_name} ({self.product_type}/{self.serial} @ {self.host or '?'}:{self.port})"


class DeviceState(NamedTuple):
    """ Immutable snapshot of the last known state of a device

    Apart from connected, every field stays None until the device reported it.
    Temperatures are in tenths of kelvin, filter life in hours.
    """
    connected: bool = False
    is_on: Optional[bool] = None
    # 1..10, -1 when the device chooses, 0 when the device sent something unreadable
    fan_speed: Optional[int] = None
    auto_mode: Optional[bool] = None
    oscillation: Optional[bool] = None
    oscillation_angle_start: Optional[int] = None
    oscillation_angle_end: Optional[int] = None
    night_mode: Optional[bool] = None
    continuous_monitoring: Optional[bool] = None
    front_airflow: Optional[bool] = None
    temperature: Optional[int] = None
    humidity: Optional[int] = None
    pm25: Optional[int] = None
    pm10: Optional[int] = None
    voc_index: Optional[int] = None
    no2_index: Optional[int] = None
    hepa_filter_life: Optional[int] = None
    carbon_filter_life: Optional[int] = None
    heating_enabled: Optional[bool] = None
    target_temperature: Optional[int] = None
    humidifier_enabled: Optional[bool] = None
    target_humidity: Optional[int] = None

    def merged(self, partial: dict) -> 'DeviceState':
        """ New snapshot: fields present in partial win, all others are kept
        """
        unknown = set(partial) - set(self._fields)
        if unknown:
            raise ValueError(f"Unknown state field(s): {', '.join(sorted(unknown))}")
        return self._replace(**{k: v for k, v in partial.items() if v is not None})

    def as_dict(self, skip_unknown=False):
        state = self._asdict()
        if skip_unknown:
            state = {k: v for k, v in state.items() if v is not None}
        return dict(state)


class CapabilityProfile(NamedTuple):
    """ Which actuators and sensors a device family physically has
    """
    fan: bool = False
    oscillation: bool = False
    auto_mode: bool = False
    night_mode: bool = False
    continuous_monitoring: bool = False
    front_airflow: bool = False
    temperature_sensor: bool = False
    humidity_sensor: bool = False
    air_quality_sensor: bool = False
    # older generation: single pact/vact readings only
    basic_air_quality_sensor: bool = False
    no2_sensor: bool = False
    heating: bool = False
    humidifier: bool = False
    hepa_filter: bool = False
    carbon_filter: bool = False

    def features(self):
        return [name for name, present in self._asdict().items() if present]


DEFAULT_CAPABILITIES = CapabilityProfile(
    fan=True,
    oscillation=True,
    auto_mode=True,
    night_mode=True,
    continuous_monitoring=True,
)


class DeviceSeries(Enum):
    PURE_COOL_LINK = 'pure-cool-link'
    PURE_COOL = 'pure-cool'
    HOT_COOL_LINK = 'hot-cool-link'
    HOT_COOL = 'hot-cool'
    HUMIDIFY_COOL = 'humidify-cool'
    BIG_QUIET = 'big-quiet'


class DeviceModel(NamedTuple):
    """ Catalog entry for one family code
    """
    product_type: str
    model_name: str
    model_code: str
    series: DeviceSeries
    capabilities: CapabilityProfile
    formaldehyde: bool = False

    @property
    def display_name(self):
        return f"{self.model_name} ({self.model_code})"


class DeviceSessionState(Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
