"""
PC/SC access: resource manager context, reader state monitoring and card
connections.

Thin wrapper over the low-level `smartcard.scard` API. Every non-success
HRESULT is turned into one of the exceptions in smc.errors.
"""

import logging
import threading
import time
from typing import List, NamedTuple, Optional

from smartcard import scard
from smartcard.scard import (
    SCARD_E_NO_READERS_AVAILABLE,
    SCARD_E_TIMEOUT,
    SCARD_PROTOCOL_T0,
    SCARD_PROTOCOL_T1,
    SCARD_RESET_CARD,
    SCARD_S_SUCCESS,
    SCARD_SCOPE_USER,
    SCARD_SHARE_SHARED,
    SCARD_STATE_EMPTY,
    SCARD_STATE_PRESENT,
    SCARD_STATE_UNAWARE,
    SCARD_STATE_UNPOWERED,
    SCARD_UNPOWER_CARD,
)

from .errors import (
    CardTimeoutError,
    ConnectionStateError,
    DaemonStopped,
    InvalidArgumentError,
    ResourceUnavailableError,
    SmartCardError,
    TransientIOError,
)
from .models import ReaderState
from .utils import get_hex_string

logger = logging.getLogger(__name__)

# Reader monitor
STATUS_WAIT_TIMEOUT = 30.0

# Card connector. Delays are hardware timing: the settle delay lets the card
# power up before connecting.
CONNECT_ATTEMPTS = 3
CONNECT_SETTLE_DELAY = 0.2
CONNECT_RETRY_DELAY = 0.5

PREFERRED_PROTOCOLS = SCARD_PROTOCOL_T0 | SCARD_PROTOCOL_T1


def _error_message(hresult: int) -> str:
    return f"{scard.SCardGetErrorMessage(hresult)} (0x{hresult & 0xFFFFFFFF:08X})"


class CardStatus(NamedTuple):
    reader: str
    state: int
    protocol: int
    atr: bytes


class CardSession:
    """
    Connection to one inserted card.

    Usable from connect until disconnect(); afterwards every call raises
    ConnectionStateError.
    """

    def __init__(self, hcard, protocol: int, reader: str):
        self._hcard = hcard
        self.protocol = protocol
        self.reader = reader
        self.closed = False

    def _ensure_open(self):
        if self.closed:
            raise ConnectionStateError(f"Card session on {self.reader} is closed")

    def status(self) -> CardStatus:
        self._ensure_open()
        hresult, reader, state, protocol, atr = scard.SCardStatus(self._hcard)
        if hresult != SCARD_S_SUCCESS:
            raise ConnectionStateError(f"Card status failed: {_error_message(hresult)}")
        return CardStatus(reader, state, protocol, bytes(atr))

    def reconnect(self):
        """Reconnect in place, resetting (and so powering) the card"""
        self._ensure_open()
        hresult, protocol = scard.SCardReconnect(
            self._hcard, SCARD_SHARE_SHARED, PREFERRED_PROTOCOLS, SCARD_RESET_CARD
        )
        if hresult != SCARD_S_SUCCESS:
            raise ConnectionStateError(f"Card reconnect failed: {_error_message(hresult)}")
        self.protocol = protocol

    def transmit(self, apdu) -> bytes:
        """Send one APDU, returning the raw response including SW1 SW2"""
        self._ensure_open()
        logger.debug(f"APDU >> {get_hex_string(apdu)}")
        hresult, response = scard.SCardTransmit(self._hcard, self.protocol, list(apdu))
        if hresult != SCARD_S_SUCCESS:
            raise TransientIOError(f"Transmit failed: {_error_message(hresult)}")
        logger.debug(f"APDU << {get_hex_string(response)}")
        return bytes(response)

    def disconnect(self):
        """Unpower the card and release the handle"""
        self._ensure_open()
        self.closed = True
        hresult = scard.SCardDisconnect(self._hcard, SCARD_UNPOWER_CARD)
        if hresult != SCARD_S_SUCCESS:
            raise ConnectionStateError(f"Card disconnect failed: {_error_message(hresult)}")


class PcscContext:
    """Handle to the PC/SC resource manager. Use as a context manager."""

    def __init__(self, hcontext):
        self._hcontext = hcontext
        self.released = False

    @classmethod
    def establish(cls) -> "PcscContext":
        hresult, hcontext = scard.SCardEstablishContext(SCARD_SCOPE_USER)
        if hresult != SCARD_S_SUCCESS:
            raise ResourceUnavailableError(
                f"Failed to establish PC/SC context: {_error_message(hresult)}"
            )
        return cls(hcontext)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

    def release(self):
        if self.released:
            return
        self.released = True
        hresult = scard.SCardReleaseContext(self._hcontext)
        if hresult != SCARD_S_SUCCESS:
            logger.warning(f"Failed to release PC/SC context: {_error_message(hresult)}")

    def cancel(self):
        """Abort a blocking get_status_change() from another thread"""
        if not self.released:
            scard.SCardCancel(self._hcontext)

    def list_readers(self) -> List[str]:
        hresult, readers = scard.SCardListReaders(self._hcontext, [])
        if hresult == SCARD_E_NO_READERS_AVAILABLE:
            return []
        if hresult != SCARD_S_SUCCESS:
            raise ResourceUnavailableError(f"Failed to list readers: {_error_message(hresult)}")
        return list(readers)

    def get_status_change(self, states: List[ReaderState], timeout_ms: int):
        """
        Block until a reader changes state or `timeout_ms` elapses.

        Returns the list of (reader, event_state, atr) tuples, or None on
        timeout.
        """
        request = [(s.reader, s.current_state) for s in states]
        hresult, result = scard.SCardGetStatusChange(self._hcontext, timeout_ms, request)
        if hresult == SCARD_E_TIMEOUT:
            return None
        if hresult != SCARD_S_SUCCESS:
            raise ResourceUnavailableError(
                f"Error getting status change: {_error_message(hresult)}"
            )
        return result

    def connect(self, reader: str) -> CardSession:
        hresult, hcard, protocol = scard.SCardConnect(
            self._hcontext, reader, SCARD_SHARE_SHARED, PREFERRED_PROTOCOLS
        )
        if hresult != SCARD_S_SUCCESS:
            raise TransientIOError(f"Connect to {reader} failed: {_error_message(hresult)}")
        return CardSession(hcard, protocol, reader)


def init_reader_states(readers: List[str]) -> List[ReaderState]:
    return [ReaderState(reader=r, current_state=SCARD_STATE_UNAWARE) for r in readers]


def _pause(seconds: float, stop_event: Optional[threading.Event]):
    if seconds <= 0:
        return
    if stop_event is not None:
        stop_event.wait(seconds)
    else:
        time.sleep(seconds)


def _wait_for_state(context, states: List[ReaderState], flag: int, timeout: float,
                    stop_event: Optional[threading.Event], what: str) -> int:
    deadline = time.monotonic() + timeout
    while True:
        if stop_event is not None and stop_event.is_set():
            raise DaemonStopped()
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise CardTimeoutError(f"Timeout waiting for card to be {what}")

        if not states:
            _pause(remaining, stop_event)
            continue

        result = context.get_status_change(states, int(remaining * 1000))
        if result is None:
            continue

        for state, (reader, event_state, atr) in zip(states, result):
            state.event_state = event_state
            state.atr = list(atr)
            state.current_state = event_state

        for index, state in enumerate(states):
            if state.event_state & flag:
                logger.info(f"Card {what}: {state.reader}")
                return index


def wait_until_card_present(context, states: List[ReaderState],
                            timeout: float = STATUS_WAIT_TIMEOUT,
                            stop_event: Optional[threading.Event] = None) -> int:
    """Wait for a card in any of the readers; returns the reader index"""
    return _wait_for_state(context, states, SCARD_STATE_PRESENT, timeout, stop_event, "inserted")


def wait_until_card_remove(context, states: List[ReaderState],
                           timeout: float = STATUS_WAIT_TIMEOUT,
                           stop_event: Optional[threading.Event] = None) -> int:
    """Wait for a reader to become empty; returns the reader index"""
    return _wait_for_state(context, states, SCARD_STATE_EMPTY, timeout, stop_event, "removed")


def connect_card(context, reader: str,
                 attempts: int = CONNECT_ATTEMPTS,
                 settle_delay: float = CONNECT_SETTLE_DELAY,
                 retry_delay: float = CONNECT_RETRY_DELAY) -> CardSession:
    """
    Connect to the card in `reader`, retrying transient failures.

    An unpowered card is reset in place. Raises ConnectionStateError once
    every attempt has failed.
    """
    last_error: Optional[SmartCardError] = None

    for attempt in range(1, attempts + 1):
        time.sleep(settle_delay)

        try:
            session = context.connect(reader)
        except SmartCardError as e:
            last_error = e
        else:
            try:
                status = session.status()
                if status.state & SCARD_STATE_UNPOWERED:
                    logger.info("Card is unpowered, attempting to reset")
                    session.reconnect()
                return session
            except SmartCardError as e:
                last_error = e
                disconnect_card(session)

        if attempt < attempts:
            logger.warning(
                f"Failed to connect to card (attempt {attempt}/{attempts}): {last_error}. Retrying..."
            )
            time.sleep(retry_delay)

    raise ConnectionStateError(
        f"Failed to connect to card after {attempts} attempts: {last_error}"
    ) from last_error


def disconnect_card(session: Optional[CardSession]):
    """Unpower and release the card. Teardown errors are only logged."""
    if session is None:
        raise InvalidArgumentError("card session is None")
    try:
        session.disconnect()
    except SmartCardError as e:
        logger.error(f"Error disconnecting card: {e}")
