import paho.mqtt.client as mqtt

DEFAULT_PORT = 1883
MQTT_PROTOCOL = mqtt.MQTTv311
MQTT_TRANSPORT = 'tcp'
MQTT_QOS = 0
CLIENT_ID_PREFIX = 'dyson_local'

# seconds
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_KEEPALIVE = 30

POLLING_DEFAULT_SECONDS = 60
POLLING_MIN_SECONDS = 10
POLLING_MAX_SECONDS = 300

RECONNECT_MAX_ATTEMPTS = 5
RECONNECT_BASE_DELAY = 1.0
RECONNECT_MAX_DELAY = 30.0

# message envelope
KEY_MSG = 'msg'
KEY_TIME = 'time'
KEY_MODE_REASON = 'mode-reason'
KEY_DATA = 'data'
KEY_PRODUCT_STATE = 'product-state'
MODE_REASON_APP = 'LAPP'

# wire keys
KEY_FAN_POWER = 'fpwr'
KEY_FAN_SPEED = 'fnsp'
KEY_FAN_MODE = 'fmod'
KEY_OSCILLATION = 'oson'
KEY_OSCILLATION_START = 'oscs'
KEY_OSCILLATION_END = 'osce'
KEY_NIGHT_MODE = 'nmod'
KEY_CONTINUOUS_MONITORING = 'rhtm'
KEY_FRONT_AIRFLOW = 'ffoc'
KEY_HEAT_MODE = 'hmod'
KEY_HEAT_TARGET = 'hmax'
KEY_HUMIDIFY = 'hume'
KEY_HUMIDIFY_TARGET = 'humt'
KEY_TEMPERATURE = 'tact'
KEY_HUMIDITY = 'hact'
KEY_PM25_LEGACY = 'pact'
KEY_PM25 = 'p25r'
KEY_PM10 = 'p10r'
KEY_VOC_LEGACY = 'vact'
KEY_VOC = 'va10'
KEY_NO2 = 'noxl'
KEY_FILTER_HOURS = 'filf'
KEY_FILTER_PERCENT = 'fltf'
KEY_CARBON_FILTER_PERCENT = 'cflr'

# wire values
VALUE_ON = 'ON'
VALUE_OFF = 'OFF'
VALUE_AUTO = 'AUTO'
VALUE_FAN = 'FAN'
VALUE_HEAT = 'HEAT'
VALUE_INIT = 'INIT'

FAN_SPEED_MIN = 1
FAN_SPEED_MAX = 10
FAN_SPEED_AUTO = -1
FAN_SPEED_DEFAULT = 4

OSCILLATION_ANGLE_MIN = 45
OSCILLATION_ANGLE_MAX = 355

KELVIN_OFFSET = 273.15
KELVIN_MULTIPLIER = 10
TARGET_CELSIUS_MIN = 1
TARGET_CELSIUS_MAX = 37

HUMIDITY_MIN = 0
HUMIDITY_MAX = 100

FILTER_MAX_HOURS = 4300
FILTER_CHANGE_THRESHOLD = 10

PERCENT_MIN = 0
PERCENT_MAX = 100
PERCENT_PER_SPEED_LEVEL = 10

PAD_LENGTH = 4
