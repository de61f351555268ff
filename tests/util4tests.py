import asyncio
import logging
import logging.config
import os
import random
import string
import sys
import yaml
import pytest
from dotenv import load_dotenv
import paho.mqtt.client as mqtt
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.reasoncodes import ReasonCode

from dyson_local.control import DeviceIdentity
from dyson_local.mqtt import DysonMessenger


log = logging.getLogger("tests")


def random_passwd(len=10):
    return ''.join(random.choices(string.digits + string.ascii_lowercase, k=len))


def random_serial():
    return f"{''.join(random.choices(string.ascii_uppercase, k=3))}-EU-{random_passwd(8).upper()}"


def make_identity(product_type='438', host='192.168.1.20', **kwargs):
    return DeviceIdentity(random_serial(), product_type, random_passwd(), host, **kwargs)


class FakeMQTTClient:
    """ Stands in for paho's mqtt.Client: every broker answer is given immediately, on the calling thread.

    connack is the name of the CONNACK reason code to answer with, None to never answer at all.
    """

    def __init__(self, connack='Success', suback='Granted QoS 0'):
        self.connack = connack
        self.suback = suback
        self.credentials = None
        self.connect_args = None
        self.connected = False
        self.loop_running = False
        self.published = []
        self.subscribed = []
        self.unsubscribed = []
        self._mid = 0
        self.on_connect = None
        self.on_connect_fail = None
        self.on_disconnect = None
        self.on_message = None
        self.on_subscribe = None
        self.on_unsubscribe = None
        self.on_publish = None

    def _next_mid(self):
        self._mid += 1
        return self._mid

    def username_pw_set(self, username, password=None):
        self.credentials = (username, password)

    def connect_async(self, host, port=1883, keepalive=60):
        self.connect_args = (host, port, keepalive)

    def loop_start(self):
        self.loop_running = True
        if self.connack is None:
            return mqtt.MQTT_ERR_SUCCESS
        reason_code = ReasonCode(PacketTypes.CONNACK, self.connack)
        self.connected = not reason_code.is_failure
        self.on_connect(self, None, mqtt.ConnectFlags(False), reason_code, None)
        return mqtt.MQTT_ERR_SUCCESS

    def loop_stop(self):
        self.loop_running = False
        return mqtt.MQTT_ERR_SUCCESS

    def disconnect(self, reasoncode=None, properties=None):
        was_connected, self.connected = self.connected, False
        if was_connected and self.on_disconnect is not None:
            self.on_disconnect(self, None, mqtt.DisconnectFlags(False),
                               ReasonCode(PacketTypes.DISCONNECT, 'Normal disconnection'), None)
        return mqtt.MQTT_ERR_SUCCESS

    def subscribe(self, topic, qos=0):
        mid = self._next_mid()
        self.subscribed.append(topic)
        self.on_subscribe(self, None, mid, [ReasonCode(PacketTypes.SUBACK, self.suback)], None)
        return mqtt.MQTT_ERR_SUCCESS, mid

    def unsubscribe(self, topic):
        mid = self._next_mid()
        self.unsubscribed.append(topic)
        self.on_unsubscribe(self, None, mid, [ReasonCode(PacketTypes.UNSUBACK, 'Success')], None)
        return mqtt.MQTT_ERR_SUCCESS, mid

    def publish(self, topic, payload=None, qos=0, retain=False):
        info = mqtt.MQTTMessageInfo(self._next_mid())
        self.published.append((topic, payload))
        self.on_publish(self, None, info.mid, ReasonCode(PacketTypes.PUBACK, 'Success'), None)
        return info

    # broker side

    def deliver(self, topic, payload):
        """ Simulates the device broadcasting payload (bytes, str) on topic
        """
        if isinstance(payload, str):
            payload = payload.encode('utf8')
        message = mqtt.MQTTMessage(topic=topic.encode('utf8'))
        message.payload = payload
        self.on_message(self, None, message)

    def drop_connection(self, reason='Unspecified error'):
        """ Simulates the broker going away
        """
        self.connected = False
        self.on_disconnect(self, None, mqtt.DisconnectFlags(False), ReasonCode(PacketTypes.DISCONNECT, reason), None)


class FakeClientFactory:
    """ client_factory for DysonMessenger, keeping every FakeMQTTClient it handed out.

    connacks lists the CONNACK answer of each next client, after which all clients accept.
    """

    def __init__(self, connacks=(), **kwargs):
        self.connacks = list(connacks)
        self.kwargs = kwargs
        self.clients = []
        self.client_ids = []

    def __call__(self, connection, client_id):
        connack = self.connacks.pop(0) if self.connacks else 'Success'
        client = FakeMQTTClient(connack=connack, **self.kwargs)
        client.username_pw_set(connection.serial, connection.credential)
        self.clients.append(client)
        self.client_ids.append(client_id)
        return client

    @property
    def last(self) -> FakeMQTTClient:
        return self.clients[-1]

    def messenger_factory(self, connection):
        return DysonMessenger(connection, client_factory=self)


async def settle(rounds=3):
    """ Lets the loop run the paho callbacks handed over to it
    """
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        assert asyncio.get_running_loop().time() < deadline, "condition not met in time"
        await asyncio.sleep(0.01)


def enable_test_logging():
    load_dotenv()
    if 'PYTEST_LOGCONF' in os.environ:
        logconf = os.environ['PYTEST_LOGCONF']
        with open(logconf, 'r') as yml_logconf:
            logging.config.dictConfig(yaml.load(yml_logconf, Loader=yaml.SafeLoader))
        log.info(f"Logging enabled according to config in {logconf}")


def run_single_test(testfile):
    enable_test_logging()
    log.info(
        f"Running tests in {testfile} " +
        "with -v(erbose) and -s(no stdout capturing) " +
        "and logging to stdout, level controlled by env var ${PYTEST_LOGCONF}")
    sys.exit(pytest.main(["-v", "-s",  testfile]))
