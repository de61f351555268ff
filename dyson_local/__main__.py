from dotenv import load_dotenv
from argparse import ArgumentParser, ArgumentDefaultsHelpFormatter, Namespace
import os
import sys
import asyncio
import threading
import datetime
import json
import logging
import logging.config
from dyson_local.const import DEFAULT_PORT
from dyson_local.control import catalog
from dyson_local.control import DeviceIdentity, DeviceReconnector, DysonDevice, DysonDeviceManager
from dyson_local.config import load_device_identities
from dyson_local.errors import DysonConnectionTimeout, DysonError
from dyson_local.mqtt import DysonConnection, DysonMessenger


_LOGGER = logging.getLogger(__name__)
DEFAULT_STATE_WAIT = 10  # seconds


def clout(*msg, em=False):
    """Output actually intended as command-line response output. All other statements should use _LOGGER
    :param *msg: message to output
    :type *msg: str or tuple thereof
    :param em: add emphasis (underline) to the message
    :type em: bool
    """
    msg = ' '.join(map(lambda m: str(m), msg))
    if em:
        msg = '\033[4m' + msg + '\033[0m'  # add emphasis by underlining the text
    print(msg)


def isotime():
    return datetime.datetime.now().replace(microsecond=0).isoformat()


def state_json(state):
    return json.dumps(state.as_dict(skip_unknown=True), sort_keys=True)


def assertConnectionSettings(ident: DeviceIdentity):
    assert ident.host is not None, "This action requires a host to connect to."
    assert ident.port is not None and ident.port != 0, "This action requires a port to connect to."
    assert ident.serial is not None, "This action requires the serial of the device."
    assert ident.credential is not None, "This action requires the local credential of the device."
    assert ident.product_type is not None, "This action requires the product type of the device."


async def do_connect(ident, args):
    assertConnectionSettings(ident)
    clout(f"Testing connection to host '{ident.host}'")

    messenger = DysonMessenger(DysonConnection.from_identity(ident))
    try:
        await messenger.connect()
    except DysonConnectionTimeout as e:
        clout(f"Connection FAILED - no response ({e})", em=True)
        return
    except DysonError as e:
        clout(f"Connection FAILED ({e})", em=True)
        return
    clout('Connection successful', em=True)
    await messenger.disconnect()


async def wait_for_state(device, timeout):
    """ Waits until the device reported its power state, or the timeout passed
    """
    reported = asyncio.Event()

    def on_state(state):
        if state.is_on is not None:
            reported.set()

    unregister = device.add_listener(on_state)
    try:
        on_state(device.get_state())
        await asyncio.wait_for(reported.wait(), timeout)
    except asyncio.TimeoutError:
        _LOGGER.warning(f"no state received from {device} within {timeout}s")
    finally:
        unregister()


async def do_state(ident, args):
    assertConnectionSettings(ident)
    device = DysonDevice(ident)
    clout(f"Getting state of {device}")
    await device.connect()
    try:
        await wait_for_state(device, DEFAULT_STATE_WAIT)
        clout(json.dumps(device.get_state().as_dict(skip_unknown=True), indent=4, sort_keys=True))
    finally:
        await device.disconnect()


def get_lapse(args: Namespace):
    lapse = int(args.time)
    assert lapse == -1 or lapse > 0, "Parameter for «time» seconds to wait should be either positive or -1 to disable timeout."
    lapse = None if lapse == -1 else lapse  # recode -1 to None so to use it in threading.Event.wait(lapse)
    return lapse


class EndWaitMonitor:
    """ Helper class to allow quit-command from stdin
    """
    def __init__(self, *quit_commands):
        self._quit_commands = [qc.upper() for qc in quit_commands]
        self._event = threading.Event()
        self._thread = threading.Thread(target=self._listen_for_quit_command, daemon=True)
        self._thread.start()

    def end(self):
        """ Forcefully make wait() return
        """
        self._event.set()

    def _listen_for_quit_command(self):
        listening = True
        while listening:
            try:
                answ = input().upper()
            except EOFError:
                # no stdin to listen to, only the timeout can end the wait
                return
            for qc in self._quit_commands:
                if answ and qc.startswith(answ):
                    listening = False
        _LOGGER.debug("keyboard quit received")
        self.end()

    def wait(self, timeout=None):
        """ Wait for received quit command, or bail out after timeout
        """
        return self._event.wait(timeout)


async def do_watch(ident, args):
    assertConnectionSettings(ident)
    lapse = get_lapse(args)
    device = DysonDevice(ident)
    clout(f"Watching {device} (type 'quit' to stop)")

    device.add_listener(lambda state: clout(f"@{isotime()}=>{state_json(state)}"))
    device.on_error(lambda err: clout(f"@{isotime()}=>***ERROR*** {err}"))
    ewm = EndWaitMonitor("quit")  # allow for quit-command interrupt over stdin
    reconnector = DeviceReconnector(device)
    reconnector.on_give_up(lambda dev: ewm.end())
    reconnector.start()

    await device.connect()
    try:
        # wait for quit command or timeout - whatever happens first
        await asyncio.get_running_loop().run_in_executor(None, ewm.wait, lapse)
    finally:
        reconnector.stop()
        await device.disconnect()


STATE_ALIAS_MAP = {
    '1': 'on',
    '0': 'off',
    'true': 'on',
    'false': 'off',
}


def switch_value(value: str):
    value = STATE_ALIAS_MAP.get(value.lower(), value.lower())
    assert value in ('on', 'off'), f"expected on or off, not '{value}'"
    return value == 'on'


def speed_value(value: str):
    return -1 if value.lower() == 'auto' else int(value)


async def act_humidify(device, value: str):
    if value.lower() == 'auto':
        await device.set_humidifier_auto()
    else:
        await device.set_humidifier(switch_value(value))


ACTIONS = {
    'power': lambda device, value: device.set_fan_power(switch_value(value)),
    'speed': lambda device, value: device.set_fan_speed(speed_value(value)),
    'auto': lambda device, value: device.set_auto_mode(switch_value(value)),
    'oscillation': lambda device, value: device.set_oscillation(switch_value(value)),
    'night': lambda device, value: device.set_night_mode(switch_value(value)),
    'monitor': lambda device, value: device.set_continuous_monitoring(switch_value(value)),
    'focus': lambda device, value: device.set_jet_focus(switch_value(value)),
    'heat': lambda device, value: device.set_heating(switch_value(value)),
    'target': lambda device, value: device.set_target_temperature(float(value)),
    'humidify': act_humidify,
    'humidity': lambda device, value: device.set_target_humidity(float(value)),
}


def get_action(args: Namespace):
    name = args.name[0].lower()
    matching = [action for action in ACTIONS if action.startswith(name)]
    if name in ACTIONS:
        matching = [name]
    assert len(matching) == 1, f"action '{name}' should match exactly one of {sorted(ACTIONS)}"
    return matching[0]


async def do_act(ident, args: Namespace):
    assertConnectionSettings(ident)
    name = get_action(args)
    value = args.value[0]
    device = DysonDevice(ident)
    clout(f"Setting {name} of {device} to {value}")

    changed = asyncio.Event()
    await device.connect()
    try:
        await wait_for_state(device, DEFAULT_STATE_WAIT)
        clout(f"Current state:\n{state_json(device.get_state())}", em=True)
        device.add_listener(lambda state: changed.set())
        await ACTIONS[name](device, value)
        try:
            await asyncio.wait_for(changed.wait(), DEFAULT_STATE_WAIT)
            clout(f"state changed.\n{state_json(device.get_state())}")
        except asyncio.TimeoutError:
            clout("command sent, but no state change reported", em=True)
    finally:
        await device.disconnect()


async def do_models(ident, args):
    clout(f"{len(catalog.DEVICE_CATALOG)} known models", em=True)
    for model in catalog.DEVICE_CATALOG:
        features = ', '.join(model.capabilities.features())
        clout(f" {model.product_type:5} {model.model_code:5} {model.model_name} [{model.series.value}]\n       {features}")


async def do_devices(ident, args):
    devices_file = args.devices if args.devices else os.environ.get('DYSON_DEVICES')
    assert devices_file, "This action requires a devices file (-d or ${DYSON_DEVICES})."
    identities = load_device_identities(devices_file)
    clout(f"Connecting {len(identities)} device(s) from {devices_file}")

    manager = DysonDeviceManager(identities)
    report = await manager.connect_all()
    clout(str(report), em=True)
    if report.unsupported:
        clout(f" unsupported product types: {', '.join(report.unsupported)}")
    try:
        for device in manager.devices:
            await wait_for_state(device, DEFAULT_STATE_WAIT)
            clout(f" {device}\n  {state_json(device.get_state())}")
    finally:
        await manager.disconnect_all()


def action_alias_subs(word, *extra):
    """ Produce all leading substrings of the passed word to use as action aliases. Adds indvidual extra's too.
    """
    return [word[:n] for n in range(1, len(word))] + list(extra)


def get_arg_parser():
    """ Defines the arguments to this module's __main__ cli script
    by using Python's [argparse](https://docs.python.org/3/library/argparse.html)
    """
    ap = ArgumentParser(
        prog='dyson_local',
        description='CLI for dyson_local',
        formatter_class=ArgumentDefaultsHelpFormatter,
    )
    ap.add_argument(
        '-l', '--logconf',
        metavar="LOGCONF_FILE.yml",
        type=str,
        action='store',
        help='The config file for the Logging in yml format',
    )
    ap.add_argument(
        '-H', '--host',
        metavar="HOST",
        action="store",
        help='Specify host (name or ip) of the dyson device',
    )
    ap.add_argument(
        '-p', '--port',
        metavar="PORT",
        action="store",
        help='Specify portnumber',
    )
    ap.add_argument(
        '-S', '--serial',
        metavar="SERIAL",
        action="store",
        help='Serial of the device, also the user to authenticate',
    )
    ap.add_argument(
        '-C', '--credential',
        metavar="CREDENTIAL",
        action="store",
        help='local credential (password) to authenticate',
    )
    ap.add_argument(
        '-T', '--product_type',
        metavar="PRODUCT_TYPE",
        action="store",
        help='product type (family code) of the device, e.g. 438',
    )
    ap.add_argument(
        '-d', '--devices',
        metavar="DEVICES_FILE.yml",
        action="store",
        help='The yml file listing the devices (for the devices action)',
    )

    saps = ap.add_subparsers(
        title='actions to perform',
        required=True,
        metavar="action",
    )

    saps.add_parser(
        'connect',
        aliases=action_alias_subs('connect'),
        help='Test the connection to the device',
    ).set_defaults(func=do_connect)

    saps.add_parser(
        'state',
        aliases=action_alias_subs('state'),
        help='Dump the current state of the device',
    ).set_defaults(func=do_state)

    watchap = saps.add_parser(
        'watch',
        aliases=action_alias_subs('watch'),
        help='Watch and report all state changes of the device'
    )
    watchap.add_argument(
        'time',
        metavar="SECONDS",
        nargs='?',
        default=300,  # 5 minutes
        action="store",
        help='seconds to watch -- -1 to keep watching until quit',
    )
    watchap.set_defaults(func=do_watch)

    actap = saps.add_parser(
        'act',
        aliases=action_alias_subs('act'),
        help='Change one setting of the device'
    )
    actap.add_argument(
        'name',
        metavar="NAME",
        action="store",
        nargs=1,
        help=' | '.join(ACTIONS),
    )
    actap.add_argument(
        'value',
        metavar="VALUE",
        action="store",
        nargs=1,
        help='ON | 1 | OFF | 0 | AUTO | «speed» | «degrees» | «percentage»',
    )
    actap.set_defaults(func=do_act)

    saps.add_parser(
        'models',
        aliases=action_alias_subs('models'),
        help='List all known device models and their capabilities',
    ).set_defaults(func=do_models)

    saps.add_parser(
        'devices',
        aliases=action_alias_subs('devices'),
        help='Connect all devices listed in the devices file and report',
    ).set_defaults(func=do_devices)

    return ap


def identity(args: Namespace):
    """Returns the DeviceIdentity to work with, merged from CLI args and .env
    """
    host = args.host if args.host else os.environ.get('DYSON_HOST')
    port = int(args.port if args.port else os.environ.get('DYSON_PORT', DEFAULT_PORT))
    serial = args.serial if args.serial else os.environ.get('DYSON_SERIAL')
    credential = args.credential if args.credential else os.environ.get('DYSON_CREDENTIAL')
    product_type = args.product_type if args.product_type else os.environ.get('DYSON_PRODUCT_TYPE')
    return DeviceIdentity(serial, product_type, credential, host, port)


def enable_logging(args: Namespace):
    """Configures logging based on logconf specified through -l argument or .env ${DYSON_LOGCONF}
    """
    logconf = args.logconf if args.logconf else os.environ.get('DYSON_LOGCONF')
    if logconf is None or logconf == '':
        return
    # else
    import yaml   # conditional dependency -- we only need this (for now) when logconf needs to be read
    with open(logconf, 'r') as yml_logconf:
        logging.config.dictConfig(yaml.load(yml_logconf, Loader=yaml.SafeLoader))
    _LOGGER.info(f"Logging enabled according to config in {logconf}")


def main():
    """ CLI entry function
    """
    exitcode = 0
    load_dotenv()              # allow passing credentials and logging settings through dot-env strategy
    ap = get_arg_parser()
    args = ap.parse_args()     # interprete cli args
    enable_logging(args)       # merge args and .env to enable logging
    ident = identity(args)     # merge args and .env to get the device identity
    _LOGGER.info(f"identity => {ident}, credential={ident.secret}")

    # setup async wait construct for main routines
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        # trigger the actual called action-function (async) and wait for it
        loop.run_until_complete(args.func(ident, args))
    except Exception as e:
        _LOGGER.exception(e)
        clout("***Error***", str(e))
        ap.print_help()
        exitcode = 1
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()
        sys.exit(exitcode)


if __name__ == "__main__":
    main()
