""" Reading the devices to talk to from a yml file

devices:
  - serial: XXX-EU-ABC1234A
    product_type: '438'
    credential: «local mqtt password»
    host: 192.168.1.20
    port: 1883          # optional
    name: Living room   # optional
"""
import logging

import yaml

from .const import DEFAULT_PORT
from .control.model import DeviceIdentity
from .errors import DysonConfigurationError

_LOGGER = logging.getLogger(__name__)

REQUIRED_FIELDS = ('serial', 'product_type', 'credential', 'host')


def identity_from_dict(entry: dict) -> DeviceIdentity:
    """ DeviceIdentity from one entry of the devices list; raises DysonConfigurationError when it is incomplete
    """
    if not isinstance(entry, dict):
        raise DysonConfigurationError(f"device entry should be a mapping, not {type(entry).__name__}")
    missing = [field for field in REQUIRED_FIELDS if not entry.get(field)]
    if missing:
        raise DysonConfigurationError(f"device entry is missing required field(s): {', '.join(missing)}")
    try:
        port = int(entry.get('port') or DEFAULT_PORT)
    except (TypeError, ValueError):
        raise DysonConfigurationError(f"device {entry['serial']} has an invalid port: {entry.get('port')!r}") from None
    return DeviceIdentity(
        serial=str(entry['serial']),
        # yaml reads an unquoted 438 as int
        product_type=str(entry['product_type']),
        credential=str(entry['credential']),
        host=str(entry['host']),
        port=port,
        name=entry.get('name'),
    )


def parse_device_identities(config) -> list:
    """ All valid identities in the loaded config; invalid entries are logged and skipped
    """
    if not isinstance(config, dict) or not isinstance(config.get('devices'), list):
        raise DysonConfigurationError("device config needs a top-level 'devices' list")
    identities = []
    for index, entry in enumerate(config['devices']):
        try:
            identities.append(identity_from_dict(entry))
        except DysonConfigurationError as err:
            _LOGGER.warning(f"Invalid device config #{index}: {err}")
    return identities


def load_device_identities(path) -> list:
    try:
        with open(path, 'r') as yml_devices:
            config = yaml.load(yml_devices, Loader=yaml.SafeLoader)
    except (OSError, yaml.YAMLError) as err:
        raise DysonConfigurationError(f"Cannot read device config {path}: {err}") from err
    identities = parse_device_identities(config)
    _LOGGER.info(f"read {len(identities)} device(s) from {path}")
    return identities
