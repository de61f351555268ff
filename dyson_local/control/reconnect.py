""" Bringing a device session back after the transport dropped it

The messenger never retries on its own; this is the policy callers attach when they want it.
"""
import asyncio
import logging
from typing import NamedTuple

from ..const import RECONNECT_BASE_DELAY, RECONNECT_MAX_ATTEMPTS, RECONNECT_MAX_DELAY
from ..errors import DysonConfigurationError, DysonError

_LOGGER = logging.getLogger(__name__)


class ReconnectPolicy(NamedTuple):
    """ Exponential backoff: base_delay * 2^attempt seconds, capped at max_delay
    """
    base_delay: float = RECONNECT_BASE_DELAY
    max_delay: float = RECONNECT_MAX_DELAY
    max_attempts: int = RECONNECT_MAX_ATTEMPTS

    def delay(self, attempt: int) -> float:
        """ seconds to wait before the given (0-based) attempt
        """
        return min(self.base_delay * 2 ** attempt, self.max_delay)

    def delays(self):
        return [self.delay(attempt) for attempt in range(self.max_attempts)]


class DeviceReconnector:
    """ Watches one DysonDevice and reconnects it with backoff whenever its connection is lost
    """

    def __init__(self, device, policy: ReconnectPolicy = None, sleep=asyncio.sleep):
        self._device = device
        self._policy = policy or ReconnectPolicy()
        self._sleep = sleep
        self._task = None
        self._unregister = None
        self._give_up_handlers = []
        self._reconnected_handlers = []

    @property
    def policy(self) -> ReconnectPolicy:
        return self._policy

    @property
    def is_reconnecting(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self._unregister is None:
            self._unregister = self._device.on_connection_lost(self._connection_lost)

    def stop(self):
        """ Cancels any pending attempt and stops watching the device
        """
        self.cancel()
        if self._unregister is not None:
            self._unregister()
            self._unregister = None

    def cancel(self):
        task, self._task = self._task, None
        if task is not None and not task.done():
            _LOGGER.debug(f"cancelling reconnect of {self._device}")
            task.cancel()

    def on_give_up(self, fn):
        """ fn(device) is called once the last attempt failed
        """
        assert callable(fn), "argument to on_give_up must be callable"
        self._give_up_handlers.append(fn)

    def on_reconnected(self, fn):
        """ fn(device, attempts) is called after a successful reconnect
        """
        assert callable(fn), "argument to on_reconnected must be callable"
        self._reconnected_handlers.append(fn)

    def _notify(self, handlers, *args):
        for handler in list(handlers):
            try:
                handler(*args)
            except Exception:
                _LOGGER.exception(f"reconnect handler {handler} failed for {self._device}")

    def _connection_lost(self, device):
        if self.is_reconnecting:
            return
        self._task = asyncio.get_running_loop().create_task(self.reconnect())

    async def reconnect(self) -> bool:
        """ Runs the attempts of the policy, True when the device is connected again
        """
        device, policy = self._device, self._policy
        for attempt in range(policy.max_attempts):
            delay = policy.delay(attempt)
            _LOGGER.info(f"reconnecting {device} in {delay}s (attempt {attempt + 1}/{policy.max_attempts})")
            await self._sleep(delay)
            try:
                await device.connect()
            except DysonConfigurationError as err:
                _LOGGER.error(f"not reconnecting {device}: {err}")
                break
            except DysonError as err:
                _LOGGER.warning(f"reconnect attempt {attempt + 1} for {device} failed: {err}")
                continue
            _LOGGER.info(f"{device} reconnected after {attempt + 1} attempt(s)")
            self._notify(self._reconnected_handlers, device, attempt + 1)
            return True

        _LOGGER.error(f"giving up on reconnecting {device}")
        self._notify(self._give_up_handlers, device)
        return False
