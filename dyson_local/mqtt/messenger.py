""" Handles the actual MQTT messaging towards the broker embedded in a dyson device

paho runs its network loop in a thread of its own. Every paho callback is handed over to the
asyncio loop that called connect(), so all events below are raised on that loop's thread.
"""
import asyncio
import json
import logging
import time
from typing import Any, NamedTuple

import paho.mqtt.client as mqtt

from ..const import (
    CLIENT_ID_PREFIX, DEFAULT_CONNECT_TIMEOUT, DEFAULT_KEEPALIVE, DEFAULT_PORT, MQTT_PROTOCOL,
    MQTT_QOS, MQTT_TRANSPORT,
)
from ..errors import DysonConnectionTimeout, DysonNotConnectedError, DysonTransportError
from . import codec
from .mqnames import DysonMQChannel, DysonMQEvent, DysonMQTopic

_LOGGER = logging.getLogger(__name__)


def lead_dots_trail(s, lead=2, dots=2, trail=3):
    """ shortened variant of s: int-lead chars from the start, followed by int-dots dots, completed with int-trail chars from the end
    """
    return f"{s[:lead]}{'.' * dots}{s[(-1 * trail):]}"


class DysonConnection(NamedTuple):
    """ Everything needed to open a session with the broker of one device
    """
    host: str
    serial: str
    credential: str
    product_type: str
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_CONNECT_TIMEOUT
    keepalive: int = DEFAULT_KEEPALIVE

    @classmethod
    def from_identity(cls, identity, **kwargs):
        return cls(identity.host, identity.serial, identity.credential, identity.product_type,
                   identity.port, **kwargs)

    def as_tuple(self):
        """ elements of this class as a tuple one can explode
        """
        return tuple(self)

    @property
    def secret(self):
        """ hidden variant of the credential - enough to recognise, not enough to become an issue by carelessly sharing in logs
        """
        return lead_dots_trail(self.credential)

    def __repr__(self):
        return f"{type(self).__name__}({self.host}, {self.serial}, {self.secret}, {self.product_type}, {self.port})"

    def __str__(self):
        return f"Connection to (host={self.host}, port={self.port}) as '{self.serial}' using credential '{self.secret}'"


class DysonMQMessage(NamedTuple):
    """ One inbound message; data is None when the payload is not JSON
    """
    topic: str
    payload: bytes
    data: Any = None


def default_client_factory(connection: DysonConnection, client_id: str) -> mqtt.Client:
    client = mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=MQTT_PROTOCOL,
        transport=MQTT_TRANSPORT,
        clean_session=True,
    )
    client.username_pw_set(connection.serial, connection.credential)
    return client


class DysonMessenger:
    """ Owns exactly one publish/subscribe session to a device.

    The messenger never retries on its own: a lost session is reported through the DISCONNECT
    event and it is up to the owner to call connect() again.
    """

    def __init__(self, connection: DysonConnection, client_factory=None):
        self._connection = connection
        self._client_factory = client_factory or default_client_factory
        self._client = None
        self._loop = None
        self._connect_future = None
        self._connected = False
        self._was_connected = False
        self._reconnect_attempts = 0
        self._subscriptions = set()
        self._pending = {}
        self._handlers = {event: [] for event in DysonMQEvent}

    def __str__(self):
        state = 'connected' if self._connected else 'not connected'
        return f"{type(self).__name__}({self._connection.product_type}/{self._connection.serial} @ {self._connection.host}, {state})"

    @property
    def connection(self) -> DysonConnection:
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    @property
    def subscriptions(self):
        return sorted(self._subscriptions)

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def topic(self, channel: DysonMQChannel) -> DysonMQTopic:
        return DysonMQTopic(self._connection.product_type, self._connection.serial, channel)

    @property
    def status_topic(self) -> str:
        return self.topic(DysonMQChannel.STATUS).path

    @property
    def command_topic(self) -> str:
        return self.topic(DysonMQChannel.COMMAND).path

    # event handling

    def add_handler(self, event: DysonMQEvent, handler):
        """ Registers handler for event, returns a function that unregisters it again
        """
        assert callable(handler), "handler must be callable"
        self._handlers[event].append(handler)

        def unregister():
            self.remove_handler(event, handler)
        return unregister

    def remove_handler(self, event: DysonMQEvent, handler):
        if handler in self._handlers[event]:
            self._handlers[event].remove(handler)

    def _emit(self, event: DysonMQEvent, *args):
        for handler in list(self._handlers[event]):
            try:
                handler(*args)
            except Exception:
                _LOGGER.exception(f"{event.value} handler {handler} failed")

    # session

    async def connect(self):
        """ Opens the session; resolves once the broker acknowledged it.

        raises DysonConnectionTimeout when no acknowledgement arrived in time and DysonTransportError
        when the broker refused or could not be reached. Either way the messenger is left clean.
        """
        if self.is_connected:
            return
        if self._connect_future is not None:
            raise DysonTransportError(f"A connection attempt to {self._connection.host} is already running")

        self._loop = asyncio.get_running_loop()
        if self._was_connected:
            self._reconnect_attempts += 1
            self._emit(DysonMQEvent.RECONNECT, self._reconnect_attempts)

        client_id = f"{CLIENT_ID_PREFIX}_{self._connection.serial}_{int(time.time() * 1000)}"
        client = self._client_factory(self._connection, client_id)
        client.on_connect = self._on_connect
        client.on_connect_fail = self._on_connect_fail
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.on_subscribe = self._on_subscribe
        client.on_unsubscribe = self._on_unsubscribe
        client.on_publish = self._on_publish
        self._client = client
        self._connect_future = future = self._loop.create_future()
        _LOGGER.info(f"connecting ({self._connection}) as client {client_id}")

        try:
            try:
                client.connect_async(self._connection.host, self._connection.port,
                                     keepalive=self._connection.keepalive)
                client.loop_start()
            except (OSError, ValueError) as err:
                await self._teardown(client)
                raise DysonTransportError(f"Failed to connect to {self._connection.host}: {err}") from err

            try:
                await asyncio.wait_for(future, self._connection.timeout)
            except asyncio.TimeoutError:
                await self._teardown(client)
                raise DysonConnectionTimeout(
                    f"Connection timeout after {self._connection.timeout}s to {self._connection.host}") from None
            except BaseException:
                await self._teardown(client)
                raise
        finally:
            if self._connect_future is future:
                self._connect_future = None

        self._was_connected = True
        self._reconnect_attempts = 0
        _LOGGER.info(f"Connected to {self._connection.product_type}/{self._connection.serial}")
        self._emit(DysonMQEvent.CONNECT)

    async def disconnect(self):
        """ Ends the session gracefully; safe to call at any time
        """
        client = self._client
        if client is None:
            return
        _LOGGER.info(f"disconnecting from {self._connection.host}")
        # a connect() still waiting for its acknowledgement fails right away
        future, self._connect_future = self._connect_future, None
        if future is not None and not future.done():
            future.set_exception(DysonTransportError(
                f"Connection to {self._connection.host} closed before it was acknowledged"))
        self._subscriptions.clear()
        self._was_connected = False
        self._reconnect_attempts = 0
        await self._teardown(client)
        self._emit(DysonMQEvent.CLOSE)

    async def _teardown(self, client):
        if client is self._client:
            self._client = None
            self._connected = False
            self._fail_pending(DysonTransportError("Connection closed"))
        client.disconnect()
        await self._loop.run_in_executor(None, client.loop_stop)

    def _loop_stopped(self, future):
        if not future.cancelled() and future.exception() is not None:
            _LOGGER.error(f"Stopping the network loop for {self._connection.host} failed: {future.exception()!r}")

    # operations

    def _ensure_connected(self):
        if not self.is_connected:
            raise DysonNotConnectedError(f"Not connected to MQTT broker at {self._connection.host}")
        return self._client

    async def subscribe(self, topic: str):
        client = self._ensure_connected()
        result, mid = client.subscribe(topic, qos=MQTT_QOS)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise DysonTransportError(f"Failed to subscribe to {topic}: {mqtt.error_string(result)}")
        await self._acknowledged(mid, f"subscribe to {topic}")
        self._subscriptions.add(topic)
        _LOGGER.debug(f"subscribed to {topic}")

    async def unsubscribe(self, topic: str):
        client = self._ensure_connected()
        result, mid = client.unsubscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise DysonTransportError(f"Failed to unsubscribe from {topic}: {mqtt.error_string(result)}")
        await self._acknowledged(mid, f"unsubscribe from {topic}")
        self._subscriptions.discard(topic)
        _LOGGER.debug(f"unsubscribed from {topic}")

    async def publish(self, topic: str, message):
        """ Sends message (str, or anything json serializable) and waits for paho to have it written
        """
        client = self._ensure_connected()
        payload = message if isinstance(message, str) else json.dumps(message)
        info = client.publish(topic, payload, qos=MQTT_QOS)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise DysonTransportError(f"Failed to publish to {topic}: {mqtt.error_string(info.rc)}")
        _LOGGER.debug(f"publishing to {topic}: {payload}")
        await self._acknowledged(info.mid, f"publish to {topic}")

    async def subscribe_to_status(self):
        await self.subscribe(self.status_topic)

    async def publish_command(self, message):
        await self.publish(self.command_topic, message)

    async def request_current_state(self):
        await self.publish_command(codec.encode_request_state())

    async def _acknowledged(self, mid, what):
        future = self._loop.create_future()
        self._pending[mid] = future
        try:
            failure = await future
        finally:
            self._pending.pop(mid, None)
        if failure:
            raise DysonTransportError(f"Failed to {what}: {failure}")

    def _fail_pending(self, error):
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    # paho callbacks, called from the paho network thread

    def _threadsafe(self, fn, *args):
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(fn, *args)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        self._threadsafe(self._handle_connect, client, reason_code)

    def _on_connect_fail(self, client, userdata):
        self._threadsafe(self._handle_connect_fail, client)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._threadsafe(self._handle_disconnect, client, reason_code)

    def _on_message(self, client, userdata, message):
        self._threadsafe(self._handle_message, client, message.topic, message.payload)

    def _on_subscribe(self, client, userdata, mid, reason_codes, properties=None):
        failed = [rc for rc in reason_codes if rc.is_failure]
        self._threadsafe(self._handle_ack, client, mid, str(failed[0]) if failed else None)

    def _on_unsubscribe(self, client, userdata, mid, reason_codes, properties=None):
        failed = [rc for rc in reason_codes if rc.is_failure]
        self._threadsafe(self._handle_ack, client, mid, str(failed[0]) if failed else None)

    def _on_publish(self, client, userdata, mid, reason_code, properties=None):
        self._threadsafe(self._handle_ack, client, mid, str(reason_code) if reason_code.is_failure else None)

    # the same callbacks, now on the asyncio loop

    def _handle_connect(self, client, reason_code):
        future = self._connect_future
        if client is not self._client or future is None or future.done():
            return
        if reason_code.is_failure:
            _LOGGER.error(f"Connection Failed - response .code={reason_code.value} .msg={reason_code}")
            future.set_exception(DysonTransportError(f"Connection refused by {self._connection.host}: {reason_code}"))
            return
        self._connected = True
        future.set_result(None)

    def _handle_connect_fail(self, client):
        future = self._connect_future
        if client is not self._client or future is None or future.done():
            return
        future.set_exception(DysonTransportError(
            f"Failed to connect to {self._connection.host}:{self._connection.port}"))

    def _handle_disconnect(self, client, reason_code):
        if client is not self._client or not self._connected:
            return
        _LOGGER.warning(f"Connection to {self._connection.host} lost ({reason_code})")
        self._client = None
        self._connected = False
        self._subscriptions.clear()
        self._fail_pending(DysonTransportError(f"Connection lost: {reason_code}"))
        # paho would otherwise start reconnecting by itself
        stopping = self._loop.run_in_executor(None, client.loop_stop)
        stopping.add_done_callback(self._loop_stopped)
        if reason_code.is_failure:
            self._emit(DysonMQEvent.ERROR, DysonTransportError(f"Connection to {self._connection.host} dropped: {reason_code}"))
        self._emit(DysonMQEvent.DISCONNECT)
        self._emit(DysonMQEvent.CLOSE)

    def _handle_message(self, client, topic, payload):
        if client is not self._client:
            return
        try:
            data = json.loads(payload)
        except ValueError:
            data = None
        _LOGGER.debug(f"received message ({topic} - {payload!r})")
        self._emit(DysonMQEvent.MESSAGE, DysonMQMessage(topic, payload, data))

    def _handle_ack(self, client, mid, failure):
        future = self._pending.get(mid)
        if client is not self._client or future is None or future.done():
            return
        future.set_result(failure)
