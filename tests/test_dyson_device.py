import asyncio
import json
import pytest
from util4tests import run_single_test, log, make_identity, FakeClientFactory, settle
from dyson_local.control import DeviceSessionState, DeviceState, DysonDevice
from dyson_local.errors import DysonConfigurationError, DysonNotConnectedError, DysonTransportError


def make_device(product_type='438', **kwargs):
    factory = FakeClientFactory(**kwargs)
    device = DysonDevice(make_identity(product_type), messenger_factory=factory.messenger_factory)
    return device, factory


def broadcast(device, factory, msg='CURRENT-STATE', key='product-state', **fields):
    topic = f"{device.identity.product_type}/{device.serial}/status/current"
    factory.last.deliver(topic, json.dumps({'msg': msg, 'time': '2024-03-01T12:00:00.000Z', key: fields}))


def last_command(factory):
    topic, payload = factory.last.published[-1]
    assert topic.endswith('/command')
    return json.loads(payload)


def test_state_merge_keeps_what_is_known():
    state = DeviceState().merged({'is_on': True, 'fan_speed': 5})
    merged = state.merged({'oscillation': True})
    assert merged.is_on is True
    assert merged.fan_speed == 5
    assert merged.oscillation is True
    assert state.oscillation is None, "snapshots never change"
    assert merged.merged({'fan_speed': None}).fan_speed == 5, "absent fields keep their value"
    with pytest.raises(ValueError):
        state.merged({'no_such_field': 1})


def test_unknown_product_type_is_fatal():
    with pytest.raises(DysonConfigurationError):
        DysonDevice(make_identity('999'))


def test_connect_needs_a_host():
    async def scenario():
        factory = FakeClientFactory()
        device = DysonDevice(make_identity(host=None), messenger_factory=factory.messenger_factory)
        with pytest.raises(DysonConfigurationError):
            await device.connect()
        assert factory.clients == []
        assert device.session_state is DeviceSessionState.DISCONNECTED
    asyncio.run(scenario())


def test_connect_subscribes_and_requests_state():
    async def scenario():
        device, factory = make_device()
        states = []
        device.add_listener(states.append)
        await device.connect()
        client = factory.last
        assert device.session_state is DeviceSessionState.CONNECTED
        assert client.subscribed == [f"438/{device.serial}/status/current"]
        assert json.loads(client.published[0][1])['msg'] == 'REQUEST-CURRENT-STATE'
        assert [s.connected for s in states] == [True]
        await device.disconnect()
    asyncio.run(scenario())


def test_scenario_current_state_broadcast():
    async def scenario():
        device, factory = make_device('438')
        await device.connect()
        states = []
        device.add_listener(states.append)
        broadcast(device, factory, fpwr='ON', fnsp='0005')
        await settle()
        state = device.get_state()
        log.debug(f"state => {state}")
        assert state.is_on is True
        assert state.fan_speed == 5
        assert state.connected is True
        assert len(states) == 1, "exactly one notification per message"
        assert states[0] is state
        await device.disconnect()
    asyncio.run(scenario())


def test_scenario_fan_speed_is_clamped():
    async def scenario():
        device, factory = make_device()
        await device.connect()
        await device.set_fan_speed(15)
        command = last_command(factory)
        assert command['msg'] == 'STATE-SET'
        assert command['data'] == {'fnsp': '0010', 'fmod': 'FAN'}
        await device.disconnect()
    asyncio.run(scenario())


def test_scenario_command_while_disconnected():
    async def scenario():
        device, factory = make_device()
        with pytest.raises(DysonNotConnectedError):
            await device.set_fan_power(True)
        await device.connect()
        await device.disconnect()
        published = len(factory.last.published)
        with pytest.raises(DysonNotConnectedError):
            await device.set_night_mode(True)
        with pytest.raises(DysonNotConnectedError):
            await device.request_state()
        assert len(factory.last.published) == published, "nothing should be published"
    asyncio.run(scenario())


def test_scenario_invalid_json_is_ignored():
    async def scenario():
        device, factory = make_device()
        await device.connect()
        before = device.get_state()
        states = []
        device.add_listener(states.append)
        factory.last.deliver(f"438/{device.serial}/status/current", b'{not json')
        factory.last.deliver(f"438/{device.serial}/status/current", '{"msg": "HELLO", "product-state": {"fpwr": "ON"}}')
        factory.last.deliver(f"438/{device.serial}/status/current", '{"msg": "CURRENT-STATE", "product-state": {}}')
        await settle()
        assert device.get_state() == before
        assert states == []
        await device.disconnect()
    asyncio.run(scenario())


def test_state_change_and_environment_messages():
    async def scenario():
        device, factory = make_device('438K')
        await device.connect()
        broadcast(device, factory, fpwr='ON', fnsp='0004', oson='OFF')
        broadcast(device, factory, msg='STATE-CHANGE', oson=['OFF', 'ON'])
        broadcast(device, factory, msg='ENVIRONMENTAL-CURRENT-SENSOR-DATA', key='data',
                  tact='2952', hact='0040', p25r='0007', noxl='0003')
        await settle()
        state = device.get_state()
        assert (state.is_on, state.fan_speed, state.oscillation) == (True, 4, True)
        assert (state.temperature, state.humidity, state.pm25, state.no2_index) == (2952, 40, 7, 3)
        await device.disconnect()
    asyncio.run(scenario())


def test_fields_without_capability_are_dropped():
    async def scenario():
        device, factory = make_device('438')  # no heating, no humidifier, no no2 sensor
        await device.connect()
        broadcast(device, factory, hmod='HEAT', hume='ON', noxl='0003', fpwr='OFF')
        await settle()
        state = device.get_state()
        assert state.is_on is False
        assert state.heating_enabled is None
        assert state.humidifier_enabled is None
        assert state.no2_index is None
        await device.disconnect()
    asyncio.run(scenario())


def test_listeners_in_order_and_failures_isolated():
    async def scenario():
        device, factory = make_device()
        await device.connect()
        calls = []

        def broken(state):
            calls.append('broken')
            raise RuntimeError("listener bug")

        device.add_listener(lambda state: calls.append('first'))
        device.add_listener(broken)
        unregister = device.add_listener(lambda state: calls.append('last'))
        broadcast(device, factory, fpwr='ON')
        await settle()
        assert calls == ['first', 'broken', 'last']

        unregister()
        broadcast(device, factory, fpwr='OFF')
        await settle()
        assert calls[3:] == ['first', 'broken']
        await device.disconnect()
    asyncio.run(scenario())


def test_disconnect_is_announced_once():
    async def scenario():
        device, factory = make_device()
        await device.connect()
        states = []
        device.add_listener(states.append)
        await device.disconnect()
        await device.disconnect()
        assert [s.connected for s in states] == [False]
        assert device.session_state is DeviceSessionState.DISCONNECTED
    asyncio.run(scenario())


def test_connection_lost():
    async def scenario():
        device, factory = make_device()
        lost, errors, states = [], [], []
        device.on_connection_lost(lost.append)
        device.on_error(errors.append)
        await device.connect()
        device.add_listener(states.append)
        factory.last.drop_connection()
        await settle()
        assert lost == [device]
        assert len(errors) == 1 and isinstance(errors[0], DysonTransportError)
        assert [s.connected for s in states] == [False]
        assert not device.is_connected
        await device.disconnect()
        assert [s.connected for s in states] == [False], "no second announcement"
    asyncio.run(scenario())


def test_failed_connect_leaves_the_session_clean():
    async def scenario():
        device, factory = make_device(connacks=['Not authorized'])
        states = []
        device.add_listener(states.append)
        with pytest.raises(DysonTransportError):
            await device.connect()
        assert device.session_state is DeviceSessionState.DISCONNECTED
        assert states == []
        await device.connect()
        assert device.is_connected
        await device.disconnect()
    asyncio.run(scenario())


def test_disconnect_while_connecting_then_connect_again():
    async def scenario():
        device, factory = make_device(connacks=[None])
        states = []
        device.add_listener(states.append)
        first = asyncio.ensure_future(device.connect())
        await settle()
        assert device.session_state is DeviceSessionState.CONNECTING

        await device.disconnect()
        assert device.session_state is DeviceSessionState.DISCONNECTED
        await device.connect()
        assert device.is_connected

        with pytest.raises(DysonTransportError):
            await first
        # the abandoned attempt leaves the newer session alone
        assert device.is_connected
        assert device.get_state().connected
        assert factory.last.connected and factory.last.loop_running
        assert [s.connected for s in states] == [True]

        await device.disconnect()
        assert not device.get_state().connected
    asyncio.run(scenario())


def test_auto_mode():
    async def scenario():
        device, factory = make_device()
        await device.connect()
        await device.set_auto_mode(True)
        assert last_command(factory)['data'] == {'fmod': 'AUTO'}

        await device.set_auto_mode(False)
        assert last_command(factory)['data'] == {'fmod': 'FAN', 'fnsp': '0004'}, "no speed known yet"

        broadcast(device, factory, fnsp='0007')
        await settle()
        await device.set_auto_mode(False)
        assert last_command(factory)['data'] == {'fmod': 'FAN', 'fnsp': '0007'}

        broadcast(device, factory, fnsp='AUTO')
        await settle()
        await device.set_auto_mode(False)
        assert last_command(factory)['data'] == {'fmod': 'FAN', 'fnsp': '0004'}

        await device.set_fan_speed(-1)
        assert last_command(factory)['data'] == {'fmod': 'AUTO'}
        await device.disconnect()
    asyncio.run(scenario())


def test_commands():
    async def scenario():
        device, factory = make_device('527K')
        await device.connect()
        expectations = [
            (device.set_fan_power(False), {'fpwr': 'OFF'}),
            (device.set_fan_speed_percent(35), {'fnsp': '0004', 'fmod': 'FAN'}),
            (device.set_oscillation(True), {'oson': 'ON'}),
            (device.set_oscillation_angles(300, 90), {'oscs': '0090', 'osce': '0300'}),
            (device.set_night_mode(True), {'nmod': 'ON'}),
            (device.set_continuous_monitoring(False), {'rhtm': 'OFF'}),
            (device.set_jet_focus(True), {'ffoc': 'ON'}),
            (device.set_heating(True), {'hmod': 'HEAT'}),
            (device.set_target_temperature(22), {'hmax': '2952'}),
            (device.set_target_temperature(50), {'hmax': '3102'}),
        ]
        for command, data in expectations:
            await command
            assert last_command(factory)['data'] == data
        await device.disconnect()
    asyncio.run(scenario())


def test_humidifier_commands():
    async def scenario():
        device, factory = make_device('358')
        await device.connect()
        await device.set_humidifier(True)
        assert last_command(factory)['data'] == {'hume': 'ON'}
        await device.set_humidifier_auto()
        assert last_command(factory)['data'] == {'hume': 'AUTO'}
        await device.set_target_humidity(44.6)
        assert last_command(factory)['data'] == {'humt': '0045'}
        await device.set_target_humidity(120)
        assert last_command(factory)['data'] == {'humt': '0100'}
        await device.disconnect()
    asyncio.run(scenario())


def test_commands_without_capability_are_still_sent():
    async def scenario():
        device, factory = make_device('438')
        assert not device.capabilities.heating
        await device.connect()
        await device.set_heating(True)
        assert last_command(factory)['data'] == {'hmod': 'HEAT'}
        await device.disconnect()
    asyncio.run(scenario())


def test_polling_interval():
    device, factory = make_device()
    assert device.polling_interval == 60
    device.set_polling_interval(1)
    assert device.polling_interval == 10
    device.set_polling_interval(3600)
    assert device.polling_interval == 300


def test_polling_requests_state(monkeypatch):
    monkeypatch.setattr('dyson_local.control.device.POLLING_MIN_SECONDS', 0.01)

    async def scenario():
        device, factory = make_device()
        await device.connect()
        device.set_polling_interval(0.01)  # restarts the poller
        requests = lambda: [p for t, p in factory.last.published if 'REQUEST-CURRENT-STATE' in p]
        before = len(requests())
        await asyncio.sleep(0.1)
        assert len(requests()) > before
        await device.disconnect()
    asyncio.run(scenario())


if __name__ == "__main__":
    run_single_test(__file__)
