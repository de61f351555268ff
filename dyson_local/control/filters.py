""" Filter life as people think about it: percentage left and whether it is time for a new one
"""
import logging
from typing import NamedTuple, Optional

from ..const import FILTER_CHANGE_THRESHOLD, FILTER_MAX_HOURS, PERCENT_MAX, PERCENT_MIN
from ..mqtt.codec import clamp, round_half_up

_LOGGER = logging.getLogger(__name__)


class FilterStatus(NamedTuple):
    # remaining hours as reported, None when unknown
    hours: Optional[int]
    percent: int
    needs_change: bool


def filter_life_percent(hours) -> int:
    """ Remaining hours on the 4300 hour basis, as 0..100; unknown counts as a fresh filter
    """
    if hours is None or hours < 0:
        return PERCENT_MAX
    return clamp(round_half_up(hours / FILTER_MAX_HOURS * 100), PERCENT_MIN, PERCENT_MAX)


def needs_filter_change(percent, threshold=FILTER_CHANGE_THRESHOLD) -> bool:
    return percent <= threshold


def primary_filter_hours(state):
    """ HEPA life when known, carbon life otherwise
    """
    if state.hepa_filter_life is not None:
        return state.hepa_filter_life
    return state.carbon_filter_life


def filter_status(state, threshold=FILTER_CHANGE_THRESHOLD) -> FilterStatus:
    hours = primary_filter_hours(state)
    percent = filter_life_percent(hours)
    return FilterStatus(hours, percent, needs_filter_change(percent, threshold))


class FilterMonitor:
    """ Follows the state of one device and calls back whenever its FilterStatus changes
    """

    def __init__(self, device, callback, threshold=FILTER_CHANGE_THRESHOLD):
        assert callable(callback), "callback must be callable"
        self._callback = callback
        self._threshold = threshold
        self._status = filter_status(device.get_state(), threshold)
        self._unregister = device.add_listener(self._state_changed)

    @property
    def status(self) -> FilterStatus:
        return self._status

    def close(self):
        if self._unregister is not None:
            self._unregister()
            self._unregister = None

    def _state_changed(self, state):
        status = filter_status(state, self._threshold)
        if status == self._status:
            return
        self._status = status
        if status.needs_change:
            _LOGGER.info(f"filter needs changing: {status.percent}% left ({status.hours} hours)")
        self._callback(status)
