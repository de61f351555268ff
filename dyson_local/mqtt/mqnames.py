from enum import Enum
from typing import NamedTuple


class MQTTMethod(Enum):
    """ The possible methods to apply to a MQTT Topic
    """
    PUBLISH = 'publish'
    SUBSCRIBE = 'subscribe'


class DysonMQChannel(Enum):
    """ Last part of the dyson-mqtt-topic, following «product_type»/«serial»
    """
    # device -> client state broadcasts
    STATUS = ('status/current', MQTTMethod.SUBSCRIBE)
    # client -> device requests
    COMMAND = ('command', MQTTMethod.PUBLISH)

    @property
    def part(self):
        return self.value[0]

    @property
    def method(self):
        """ the allowed MQTTMethod for this channel
        """
        return self.value[1]


class DysonMQMessageType(Enum):
    """ The «msg» tag carried by every message envelope
    """
    STATE_SET = 'STATE-SET'
    REQUEST_CURRENT_STATE = 'REQUEST-CURRENT-STATE'
    CURRENT_STATE = 'CURRENT-STATE'
    STATE_CHANGE = 'STATE-CHANGE'
    ENVIRONMENTAL_CURRENT_SENSOR_DATA = 'ENVIRONMENTAL-CURRENT-SENSOR-DATA'

    @property
    def carries_state(self):
        """ True for the inbound types that hold state to be merged
        """
        return self in STATE_MESSAGE_TYPES

    @classmethod
    def lookup(cls, tag):
        """ The member for the «msg» tag, or None for anything unknown
        """
        try:
            return cls(tag)
        except ValueError:
            return None


STATE_MESSAGE_TYPES = frozenset((
    DysonMQMessageType.CURRENT_STATE,
    DysonMQMessageType.STATE_CHANGE,
    DysonMQMessageType.ENVIRONMENTAL_CURRENT_SENSOR_DATA,
))


class DysonMQEvent(Enum):
    """ Events raised by the DysonMessenger
    """
    CONNECT = 'connect'
    DISCONNECT = 'disconnect'
    MESSAGE = 'message'
    ERROR = 'error'
    CLOSE = 'close'
    RECONNECT = 'reconnect'


class DysonMQTopic(NamedTuple):
    """ Represents a topic to publish/subscribe to: «product_type»/«serial»/«channel»
    """
    product_type: str
    serial: str
    channel: DysonMQChannel

    def __repr__(self):
        return f"{type(self).__name__}({self.path})"

    @property
    def path(self):
        return '/'.join((self.product_type, self.serial, self.channel.part))

    @property
    def method(self):
        return self.channel.method

    def __str__(self):
        return f"MQTT «topic» {self.path}"
