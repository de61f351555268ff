""" Translates between normalized device values and the flat, string-keyed dyson wire format.

Every function in here is pure: no I/O and no module level state. Decoding never raises on
device input; whatever cannot be understood is simply left out of the result.

Wire conventions:
- booleans travel as "ON"/"OFF" (heat mode uses "HEAT"/"OFF")
- fan speed, oscillation angles and target humidity are zero padded to 4 digits
- temperatures are tenths of kelvin, e.g. "2952" for 22°C
- STATE-CHANGE messages carry [old, new] pairs instead of plain values
"""
import datetime
import json
import math
import re
from typing import Optional, Tuple

from ..const import (
    FAN_SPEED_AUTO, FAN_SPEED_MAX, FAN_SPEED_MIN, FILTER_MAX_HOURS, HUMIDITY_MAX, HUMIDITY_MIN,
    KELVIN_MULTIPLIER, KELVIN_OFFSET, KEY_CARBON_FILTER_PERCENT, KEY_CONTINUOUS_MONITORING, KEY_DATA,
    KEY_FAN_MODE, KEY_FAN_POWER, KEY_FAN_SPEED, KEY_FILTER_HOURS, KEY_FILTER_PERCENT, KEY_FRONT_AIRFLOW,
    KEY_HEAT_MODE, KEY_HEAT_TARGET, KEY_HUMIDIFY, KEY_HUMIDIFY_TARGET, KEY_HUMIDITY, KEY_MODE_REASON,
    KEY_MSG, KEY_NIGHT_MODE, KEY_NO2, KEY_OSCILLATION, KEY_OSCILLATION_END, KEY_OSCILLATION_START,
    KEY_PM10, KEY_PM25, KEY_PM25_LEGACY, KEY_PRODUCT_STATE, KEY_TEMPERATURE, KEY_TIME, KEY_VOC,
    KEY_VOC_LEGACY, MODE_REASON_APP, OSCILLATION_ANGLE_MAX, OSCILLATION_ANGLE_MIN, PAD_LENGTH,
    PERCENT_MAX, PERCENT_MIN, PERCENT_PER_SPEED_LEVEL, TARGET_CELSIUS_MAX, TARGET_CELSIUS_MIN,
    VALUE_AUTO, VALUE_FAN, VALUE_HEAT, VALUE_INIT, VALUE_OFF, VALUE_ON,
)
from .mqnames import DysonMQMessageType

_LEADING_INT = re.compile(r'\s*([+-]?\d+)')
_SENSOR_PLACEHOLDERS = (VALUE_INIT, VALUE_OFF)


def isotime(when=None):
    """ ISO-8601 UTC timestamp with millisecond precision, as the devices and their apps send it
    """
    when = when or datetime.datetime.now(datetime.timezone.utc)
    return when.strftime('%Y-%m-%dT%H:%M:%S.') + f"{when.microsecond // 1000:03d}Z"


def round_half_up(value) -> int:
    return int(math.floor(value + 0.5))


def clamp(value, lowest, highest):
    return max(lowest, min(highest, value))


def parse_int(value) -> Optional[int]:
    """ Leading integer of a wire value ("0005" -> 5, "12x" -> 12), None when there is none
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        return None
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def pad(value) -> str:
    return str(value).zfill(PAD_LENGTH)


def encode_switch(on) -> str:
    return VALUE_ON if on else VALUE_OFF


def encode_fan_speed(speed) -> str:
    """ 1..10 -> "0001".."0010", negative -> "AUTO"
    """
    if speed < 0:
        return VALUE_AUTO
    return pad(clamp(int(speed), FAN_SPEED_MIN, FAN_SPEED_MAX))


def decode_fan_speed(encoded) -> Tuple[int, bool]:
    """ "AUTO" -> (-1, True), "0005" -> (5, False); garbage decodes to (0, False)
    """
    if encoded == VALUE_AUTO:
        return FAN_SPEED_AUTO, True
    speed = parse_int(encoded)
    return (0 if speed is None else speed), False


def percent_to_speed(percent) -> int:
    if percent <= PERCENT_MIN:
        return FAN_SPEED_MIN
    return clamp(math.ceil(percent / PERCENT_PER_SPEED_LEVEL), FAN_SPEED_MIN, FAN_SPEED_MAX)


def speed_to_percent(speed) -> int:
    if speed < 0:
        return PERCENT_MAX
    return clamp(speed * PERCENT_PER_SPEED_LEVEL, PERCENT_MIN, PERCENT_MAX)


def encode_angle(angle) -> str:
    return pad(clamp(int(angle), OSCILLATION_ANGLE_MIN, OSCILLATION_ANGLE_MAX))


def encode_humidity(percent) -> str:
    return pad(clamp(round_half_up(percent), HUMIDITY_MIN, HUMIDITY_MAX))


def encode_temperature(celsius) -> str:
    """ Celsius -> tenths of kelvin, without padding
    """
    return str(round_half_up((celsius + KELVIN_OFFSET) * KELVIN_MULTIPLIER))


def decode_temperature(encoded) -> Optional[float]:
    """ tenths of kelvin (str or int) -> Celsius, unrounded
    """
    kelvin_tenths = parse_int(encoded)
    if kelvin_tenths is None:
        return None
    return kelvin_tenths / KELVIN_MULTIPLIER - KELVIN_OFFSET


def kelvin_tenths_to_celsius(kelvin_tenths) -> Optional[float]:
    """ For display: one decimal
    """
    celsius = decode_temperature(kelvin_tenths)
    if celsius is None:
        return None
    return round_half_up(celsius * 10) / 10


def clamp_target_celsius(celsius) -> int:
    return clamp(round_half_up(celsius), TARGET_CELSIUS_MIN, TARGET_CELSIUS_MAX)


def kelvin_tenths_to_target_celsius(kelvin_tenths) -> Optional[int]:
    """ For target setting: whole degrees within the range the heaters accept
    """
    celsius = decode_temperature(kelvin_tenths)
    if celsius is None:
        return None
    return clamp_target_celsius(celsius)


def percent_to_filter_hours(percent) -> int:
    return round_half_up(percent / 100 * FILTER_MAX_HOURS)


def encode_command(*, fan_power=None, fan_speed=None, fan_mode=None, oscillation=None,
                   oscillation_angle_start=None, oscillation_angle_end=None, night_mode=None,
                   continuous_monitoring=None, front_airflow=None, heating_mode=None,
                   target_temperature=None, humidifier_mode=None, target_humidity=None,
                   timestamp=None) -> dict:
    """ Builds a STATE-SET envelope holding only the fields that were passed.

    A negative fan_speed asks for automatic mode: it is sent as fmod=AUTO and fnsp is left out.
    humidifier_mode takes True/False or "AUTO".
    """
    data = {}
    if fan_power is not None:
        data[KEY_FAN_POWER] = encode_switch(fan_power)
    if fan_speed is not None:
        if fan_speed < 0:
            data[KEY_FAN_MODE] = VALUE_AUTO
        else:
            data[KEY_FAN_SPEED] = encode_fan_speed(fan_speed)
    if fan_mode is not None:
        data[KEY_FAN_MODE] = fan_mode
    if oscillation is not None:
        data[KEY_OSCILLATION] = encode_switch(oscillation)
    if oscillation_angle_start is not None:
        data[KEY_OSCILLATION_START] = encode_angle(oscillation_angle_start)
    if oscillation_angle_end is not None:
        data[KEY_OSCILLATION_END] = encode_angle(oscillation_angle_end)
    if night_mode is not None:
        data[KEY_NIGHT_MODE] = encode_switch(night_mode)
    if continuous_monitoring is not None:
        data[KEY_CONTINUOUS_MONITORING] = encode_switch(continuous_monitoring)
    if front_airflow is not None:
        data[KEY_FRONT_AIRFLOW] = encode_switch(front_airflow)
    if heating_mode is not None:
        data[KEY_HEAT_MODE] = VALUE_HEAT if heating_mode else VALUE_OFF
    if target_temperature is not None:
        data[KEY_HEAT_TARGET] = encode_temperature(target_temperature)
    if humidifier_mode is not None:
        data[KEY_HUMIDIFY] = VALUE_AUTO if humidifier_mode == VALUE_AUTO else encode_switch(humidifier_mode)
    if target_humidity is not None:
        data[KEY_HUMIDIFY_TARGET] = encode_humidity(target_humidity)

    return {
        KEY_MSG: DysonMQMessageType.STATE_SET.value,
        KEY_TIME: timestamp or isotime(),
        KEY_MODE_REASON: MODE_REASON_APP,
        KEY_DATA: data,
    }


def encode_request_state(timestamp=None) -> dict:
    return {
        KEY_MSG: DysonMQMessageType.REQUEST_CURRENT_STATE.value,
        KEY_TIME: timestamp or isotime(),
    }


def load_message(payload) -> Optional[dict]:
    """ The JSON object in payload (bytes, str or already parsed), None when it is not one
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode('utf8')
        except UnicodeDecodeError:
            return None
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            return None
    return payload if isinstance(payload, dict) else None


def decode_state(message) -> dict:
    """ Partial normalized state held by an inbound message; «product-state» is preferred over «data»
    """
    message = load_message(message)
    if message is None:
        return {}
    raw = message.get(KEY_PRODUCT_STATE) or message.get(KEY_DATA)
    if not isinstance(raw, dict):
        return {}
    return parse_raw_state(raw)


def _latest(raw, key):
    value = raw.get(key)
    # STATE-CHANGE sends [old, new]
    if isinstance(value, (list, tuple)):
        return value[-1] if value else None
    return value


def _sensor(raw, key):
    value = _latest(raw, key)
    if value is None or value in _SENSOR_PLACEHOLDERS:
        return None
    return parse_int(value)


def parse_raw_state(raw) -> dict:
    """ Normalizes a flat wire field map.

    Keys are processed in a fixed order and a later key overwrites an earlier one for the same field:
    - fpwr, then fmod (fan mode also implies power)
    - pact (legacy), then p25r: the current generation PM2.5 reading wins
    - vact (legacy), then va10: the current generation VOC reading wins
    - filf (hours), then fltf (percentage of 4300 hours)
    """
    state = {}

    fpwr = _latest(raw, KEY_FAN_POWER)
    if fpwr is not None:
        state['is_on'] = fpwr == VALUE_ON

    fnsp = _latest(raw, KEY_FAN_SPEED)
    if fnsp is not None:
        state['fan_speed'], state['auto_mode'] = decode_fan_speed(fnsp)

    fmod = _latest(raw, KEY_FAN_MODE)
    if fmod == VALUE_OFF:
        state['is_on'], state['auto_mode'] = False, False
    elif fmod == VALUE_AUTO:
        state['is_on'], state['auto_mode'] = True, True
    elif fmod == VALUE_FAN:
        state['is_on'], state['auto_mode'] = True, False

    for key, field in ((KEY_OSCILLATION, 'oscillation'),
                       (KEY_NIGHT_MODE, 'night_mode'),
                       (KEY_CONTINUOUS_MONITORING, 'continuous_monitoring'),
                       (KEY_FRONT_AIRFLOW, 'front_airflow')):
        value = _latest(raw, key)
        if value is not None:
            state[field] = value == VALUE_ON

    for key, field in ((KEY_OSCILLATION_START, 'oscillation_angle_start'),
                       (KEY_OSCILLATION_END, 'oscillation_angle_end'),
                       (KEY_HEAT_TARGET, 'target_temperature'),
                       (KEY_HUMIDIFY_TARGET, 'target_humidity'),
                       (KEY_FILTER_HOURS, 'hepa_filter_life')):
        value = parse_int(_latest(raw, key))
        if value is not None:
            state[field] = value

    for key, field in ((KEY_TEMPERATURE, 'temperature'),
                       (KEY_HUMIDITY, 'humidity'),
                       (KEY_PM25_LEGACY, 'pm25'),
                       (KEY_PM25, 'pm25'),
                       (KEY_PM10, 'pm10'),
                       (KEY_VOC_LEGACY, 'voc_index'),
                       (KEY_VOC, 'voc_index'),
                       (KEY_NO2, 'no2_index')):
        value = _sensor(raw, key)
        if value is not None:
            state[field] = value

    for key, field in ((KEY_FILTER_PERCENT, 'hepa_filter_life'),
                       (KEY_CARBON_FILTER_PERCENT, 'carbon_filter_life')):
        percent = parse_int(_latest(raw, key))
        if percent is not None:
            state[field] = percent_to_filter_hours(percent)

    hmod = _latest(raw, KEY_HEAT_MODE)
    if hmod is not None:
        state['heating_enabled'] = hmod == VALUE_HEAT

    hume = _latest(raw, KEY_HUMIDIFY)
    if hume is not None:
        state['humidifier_enabled'] = hume in (VALUE_ON, VALUE_AUTO)

    return state
