""" One live session with one dyson device: the only place where its DeviceState changes
"""
import asyncio
import logging

from ..const import (
    FAN_SPEED_DEFAULT, FAN_SPEED_MAX, FAN_SPEED_MIN, KEY_MSG, POLLING_DEFAULT_SECONDS, POLLING_MAX_SECONDS,
    POLLING_MIN_SECONDS, TARGET_CELSIUS_MAX, TARGET_CELSIUS_MIN, VALUE_AUTO, VALUE_FAN,
)
from ..errors import DysonConfigurationError, DysonError, DysonNotConnectedError, DysonTransportError
from ..mqtt import codec
from ..mqtt.messenger import DysonConnection, DysonMessenger
from ..mqtt.mqnames import DysonMQEvent, DysonMQMessageType
from . import catalog
from .model import DeviceIdentity, DeviceSessionState, DeviceState

_LOGGER = logging.getLogger(__name__)

# decoded fields only trusted when the device has the matching capability
FIELD_CAPABILITIES = {
    'oscillation': 'oscillation',
    'oscillation_angle_start': 'oscillation',
    'oscillation_angle_end': 'oscillation',
    'front_airflow': 'front_airflow',
    'temperature': 'temperature_sensor',
    'humidity': 'humidity_sensor',
    'pm25': 'air_quality_sensor',
    'pm10': 'air_quality_sensor',
    'voc_index': 'air_quality_sensor',
    'no2_index': 'no2_sensor',
    'heating_enabled': 'heating',
    'target_temperature': 'heating',
    'humidifier_enabled': 'humidifier',
    'target_humidity': 'humidifier',
    'hepa_filter_life': 'hepa_filter',
    'carbon_filter_life': 'carbon_filter',
}


class DysonDevice:
    """ Session with one device, parameterized by the capability profile of its family.

    Listeners registered through add_listener() get the complete DeviceState after every change,
    synchronously and in the order they registered.
    """

    def __init__(self, identity: DeviceIdentity, messenger_factory=DysonMessenger):
        model = catalog.get_device_model(identity.product_type)
        if model is None:
            raise DysonConfigurationError(
                f"Unsupported product type '{identity.product_type}' for device {identity.serial}")
        self._identity = identity
        self._model = model
        self._messenger_factory = messenger_factory
        self._messenger = None
        self._messenger_handlers = []
        self._session_state = DeviceSessionState.DISCONNECTED
        self._state = DeviceState()
        self._listeners = []
        self._error_handlers = []
        self._connection_lost_handlers = []
        self._polling_interval = POLLING_DEFAULT_SECONDS
        self._poller = None

    def __str__(self):
        return f"{self.name} [{self._model.display_name}, {self._identity.serial}]"

    @property
    def identity(self) -> DeviceIdentity:
        return self._identity

    @property
    def model(self):
        return self._model

    @property
    def capabilities(self):
        return self._model.capabilities

    @property
    def serial(self):
        return self._identity.serial

    @property
    def name(self):
        return self._identity.display_name

    @property
    def session_state(self) -> DeviceSessionState:
        return self._session_state

    @property
    def is_connected(self) -> bool:
        return self._session_state is DeviceSessionState.CONNECTED

    @property
    def polling_interval(self):
        return self._polling_interval

    def get_state(self) -> DeviceState:
        return self._state

    # observers

    def add_listener(self, listener):
        """ Registers listener(state: DeviceState), returns a function that unregisters it again
        """
        assert callable(listener), "argument to add_listener must be callable"
        self._listeners.append(listener)

        def unregister():
            self.remove_listener(listener)
        return unregister

    def remove_listener(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def on_error(self, ehfn):
        """ ehfn(error) is called for transport errors reported after the session was established
        """
        assert callable(ehfn), "argument to on_error must be callable"
        self._error_handlers.append(ehfn)

    def on_connection_lost(self, fn):
        """ fn(device) is called when the transport dropped the session without disconnect() being called.
        Returns a function that unregisters fn again.
        """
        assert callable(fn), "argument to on_connection_lost must be callable"
        self._connection_lost_handlers.append(fn)

        def unregister():
            if fn in self._connection_lost_handlers:
                self._connection_lost_handlers.remove(fn)
        return unregister

    def notify_error(self, err):
        self._call_all(self._error_handlers, err, what='error handler')

    def _call_all(self, handlers, *args, what='handler'):
        for handler in list(handlers):
            try:
                handler(*args)
            except Exception:
                _LOGGER.exception(f"{what} {handler} failed for {self}")

    def _update(self, partial):
        self._state = self._state.merged(partial)
        self._call_all(self._listeners, self._state, what='state listener')

    # session

    async def connect(self):
        """ Opens the session, subscribes to the status channel and asks for the current state.

        Any failure is raised unchanged, after the session was brought back to DISCONNECTED.
        """
        if self._session_state is DeviceSessionState.CONNECTED:
            return
        if self._session_state is DeviceSessionState.CONNECTING:
            raise DysonTransportError(f"{self} is already connecting")
        if not self._identity.host:
            raise DysonConfigurationError(f"No host known for device {self._identity.serial}")

        self._session_state = DeviceSessionState.CONNECTING
        messenger = self._messenger_factory(DysonConnection.from_identity(self._identity))
        self._messenger = messenger
        self._messenger_handlers = [
            messenger.add_handler(DysonMQEvent.MESSAGE, self._handle_message),
            messenger.add_handler(DysonMQEvent.DISCONNECT, self._handle_connection_lost),
            messenger.add_handler(DysonMQEvent.ERROR, self.notify_error),
        ]
        try:
            await messenger.connect()
            await messenger.subscribe_to_status()
            await messenger.request_current_state()
        except BaseException:
            # after a disconnect() the session may already belong to a newer connect()
            if self._messenger is messenger:
                await self._release_messenger()
                self._session_state = DeviceSessionState.DISCONNECTED
            raise
        if self._messenger is not messenger:
            await messenger.disconnect()
            raise DysonTransportError(f"Connecting {self} was cancelled by disconnect()")

        self._session_state = DeviceSessionState.CONNECTED
        _LOGGER.info(f"{self} connected")
        self._start_polling()
        self._update({'connected': True})

    async def disconnect(self):
        """ Ends the session; safe to call in any state
        """
        self._stop_polling()
        await self._release_messenger()
        self._session_state = DeviceSessionState.DISCONNECTED
        if self._state.connected:
            _LOGGER.info(f"{self} disconnected")
            self._update({'connected': False})

    async def _release_messenger(self):
        messenger, self._messenger = self._messenger, None
        self._drop_messenger_handlers()
        if messenger is not None:
            await messenger.disconnect()

    def _drop_messenger_handlers(self):
        for unregister in self._messenger_handlers:
            unregister()
        self._messenger_handlers = []

    def _handle_connection_lost(self):
        if self._session_state is not DeviceSessionState.CONNECTED:
            # a pending connect() fails on its own
            return
        _LOGGER.warning(f"{self} lost its connection")
        self._stop_polling()
        self._drop_messenger_handlers()
        self._messenger = None
        self._session_state = DeviceSessionState.DISCONNECTED
        self._update({'connected': False})
        self._call_all(self._connection_lost_handlers, self, what='connection-lost handler')

    def _handle_message(self, message):
        data = message.data
        if not isinstance(data, dict):
            return
        message_type = DysonMQMessageType.lookup(data.get(KEY_MSG))
        if message_type is None or not message_type.carries_state:
            return
        partial = self._trusted(codec.decode_state(data))
        if partial:
            self._update(partial)

    def _trusted(self, partial):
        capabilities = self._model.capabilities
        return {
            field: value for field, value in partial.items()
            if getattr(capabilities, FIELD_CAPABILITIES.get(field, ''), True)
        }

    # polling

    def set_polling_interval(self, seconds):
        """ Interval of the periodic state requests, kept within 10..300 seconds
        """
        self._polling_interval = codec.clamp(seconds, POLLING_MIN_SECONDS, POLLING_MAX_SECONDS)
        if self._poller is not None:
            loop = self._poller.get_loop()
            self._stop_polling()
            self._poller = loop.create_task(self._poll())

    def _start_polling(self):
        if self._poller is None:
            self._poller = asyncio.get_running_loop().create_task(self._poll())

    def _stop_polling(self):
        poller, self._poller = self._poller, None
        if poller is not None:
            poller.cancel()

    async def _poll(self):
        while True:
            await asyncio.sleep(self._polling_interval)
            try:
                await self.request_state()
            except DysonError as err:
                _LOGGER.debug(f"state poll for {self} failed: {err}")

    # commands

    async def _send(self, capability, **fields):
        messenger = self._messenger
        if self._session_state is not DeviceSessionState.CONNECTED or messenger is None:
            raise DysonNotConnectedError(f"Device {self._identity.serial} is not connected")
        if not getattr(self._model.capabilities, capability):
            _LOGGER.debug(f"{self} has no {capability} capability, sending {fields} anyway")
        await messenger.publish_command(codec.encode_command(**fields))

    async def request_state(self):
        messenger = self._messenger
        if self._session_state is not DeviceSessionState.CONNECTED or messenger is None:
            raise DysonNotConnectedError(f"Device {self._identity.serial} is not connected")
        await messenger.request_current_state()

    async def set_fan_power(self, on: bool):
        await self._send('fan', fan_power=on)

    async def set_fan_speed(self, speed: int):
        """ 1..10, anything negative hands the speed over to the device (auto mode)
        """
        if speed < 0:
            await self._send('auto_mode', fan_mode=VALUE_AUTO)
            return
        speed = codec.clamp(int(speed), FAN_SPEED_MIN, FAN_SPEED_MAX)
        await self._send('fan', fan_speed=speed, fan_mode=VALUE_FAN)

    async def set_fan_speed_percent(self, percent):
        await self.set_fan_speed(codec.percent_to_speed(percent))

    async def set_auto_mode(self, on: bool):
        if on:
            await self._send('auto_mode', fan_mode=VALUE_AUTO)
            return
        # leaving auto mode needs an explicit speed
        speed = self._state.fan_speed
        if speed is None or speed <= 0:
            speed = FAN_SPEED_DEFAULT
        await self._send('auto_mode', fan_mode=VALUE_FAN, fan_speed=speed)

    async def set_oscillation(self, on: bool):
        await self._send('oscillation', oscillation=on)

    async def set_oscillation_angles(self, start: int, end: int):
        start, end = sorted((start, end))
        await self._send('oscillation', oscillation_angle_start=start, oscillation_angle_end=end)

    async def set_night_mode(self, on: bool):
        await self._send('night_mode', night_mode=on)

    async def set_continuous_monitoring(self, on: bool):
        await self._send('continuous_monitoring', continuous_monitoring=on)

    async def set_jet_focus(self, on: bool):
        await self._send('front_airflow', front_airflow=on)

    async def set_heating(self, on: bool):
        await self._send('heating', heating_mode=on)

    async def set_target_temperature(self, celsius):
        celsius = codec.clamp(celsius, TARGET_CELSIUS_MIN, TARGET_CELSIUS_MAX)
        await self._send('heating', target_temperature=celsius)

    async def set_humidifier(self, on: bool):
        await self._send('humidifier', humidifier_mode=on)

    async def set_humidifier_auto(self):
        await self._send('humidifier', humidifier_mode=VALUE_AUTO)

    async def set_target_humidity(self, percent):
        await self._send('humidifier', target_humidity=percent)
