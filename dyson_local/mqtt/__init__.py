""" All stuff to handle the MQTT messaging exchange with the broker embedded in dyson devices
"""
from .mqnames import DysonMQChannel, DysonMQEvent, DysonMQMessageType, DysonMQTopic
from .messenger import DysonConnection, DysonMessenger, DysonMQMessage


__all__ = [
    "DysonMQChannel",
    "DysonMQEvent",
    "DysonMQMessageType",
    "DysonMQTopic",
    "DysonConnection",
    "DysonMessenger",
    "DysonMQMessage",
]
