"""
Thai Smart Card Agent
=====================
Reads Thai national ID cards from a PC/SC contact reader.

Modules:
- pcsc: resource manager context, reader monitor, card connector
- apdu / protocol: command frames and response decoding
- thaiid: field decoder for the Thai ID card
- daemon: insertion cycle and restart supervisor
"""

from .apdu import APDU, CardModel, get_response_command, identify_card_model
from .daemon import MessageChannel, SmartCardDaemon
from .errors import (
    CardTimeoutError,
    ConnectionStateError,
    DaemonStopped,
    InvalidArgumentError,
    ProtocolViolationError,
    ResourceUnavailableError,
    SmartCardError,
    TransientIOError,
)
from .models import EVENT_DATA, EVENT_ERROR, CardRecord, Message, Options
from .thaiid import ThaiIDCardReader

__all__ = [
    'APDU',
    'CardModel',
    'get_response_command',
    'identify_card_model',
    'MessageChannel',
    'SmartCardDaemon',
    'ThaiIDCardReader',
    'CardRecord',
    'Message',
    'Options',
    'EVENT_DATA',
    'EVENT_ERROR',
    'SmartCardError',
    'ResourceUnavailableError',
    'CardTimeoutError',
    'TransientIOError',
    'ProtocolViolationError',
    'ConnectionStateError',
    'InvalidArgumentError',
    'DaemonStopped',
]
