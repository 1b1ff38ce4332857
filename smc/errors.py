"""
Exceptions raised by the smart card layer.
"""


class SmartCardError(Exception):
    """Base class for every card, reader and protocol failure"""


class ResourceUnavailableError(SmartCardError):
    """PC/SC subsystem, context or reader could not be acquired"""


class CardTimeoutError(SmartCardError):
    """Waiting for card insertion or removal took too long"""


class TransientIOError(SmartCardError):
    """Transmit failed after all local retries"""


class ProtocolViolationError(SmartCardError):
    """Malformed or short response, or unusable identification bytes"""


class ConnectionStateError(SmartCardError):
    """Card could not be connected, or the session is no longer usable"""


class InvalidArgumentError(SmartCardError):
    """API misuse, e.g. disconnecting a missing session"""


class DaemonStopped(Exception):
    """Raised inside the daemon once the stop event is set"""
