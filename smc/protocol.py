"""
Command/response exchange with the card.

Every read is two APDUs: the command itself, then a GET RESPONSE whose last
byte is the expected length. The 2-byte status trailer is stripped from the
response before decoding.
"""

import logging
import time
from typing import List, Optional

from .errors import ConnectionStateError, ProtocolViolationError, SmartCardError, TransientIOError
from .utils import decode_tis620, get_hex_string

logger = logging.getLogger(__name__)

TRANSMIT_ATTEMPTS = 3
TRANSMIT_RETRY_DELAY = 0.1

STATUS_TRAILER_LENGTH = 2
SW1_OK = 0x90
SW1_MORE_DATA = 0x61


def ensure_alive(session):
    try:
        session.status()
    except SmartCardError as e:
        raise ConnectionStateError(f"card status error: {e}") from e


def transmit_with_retry(session, command: List[int],
                        attempts: int = TRANSMIT_ATTEMPTS,
                        retry_delay: float = TRANSMIT_RETRY_DELAY) -> bytes:
    """Transmit, retrying transport errors. Raises TransientIOError when exhausted."""
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            return session.transmit(command)
        except TransientIOError as e:
            last_error = e
            logger.debug(f"Transmit attempt {attempt}/{attempts} failed: {e}")
            if attempt < attempts:
                time.sleep(retry_delay)
    raise TransientIOError(
        f"failed to transmit command after {attempts} retries: {last_error}"
    ) from last_error


def _strip_trailer(response: bytes) -> bytes:
    if len(response) < STATUS_TRAILER_LENGTH:
        raise ProtocolViolationError(f"invalid response length: {get_hex_string(response)}")
    return response[:-STATUS_TRAILER_LENGTH]


def read_raw(session, command: List[int], get_response: List[int],
             trailer_byte: Optional[int] = None) -> bytes:
    """
    Run `command` and fetch its response payload.

    The GET RESPONSE command is `get_response` plus `trailer_byte`, which
    defaults to the last byte (Le) of `command`. The response fetch itself
    is not retried.
    """
    ensure_alive(session)
    transmit_with_retry(session, command)

    fetch = list(get_response) + [command[-1] if trailer_byte is None else trailer_byte]
    try:
        response = session.transmit(fetch)
    except TransientIOError as e:
        raise TransientIOError(f"failed to transmit response command: {e}") from e

    return _strip_trailer(response)


def read_data(session, command: List[int], get_response: List[int]) -> str:
    return read_raw(session, command, get_response).decode("latin-1").strip()


def read_data_thai(session, command: List[int], get_response: List[int]) -> str:
    """Read a TIS-620 encoded text field"""
    return decode_tis620(read_raw(session, command, get_response)).strip()


LASER_FETCH_BYTE = 0x10


def read_laser_data(session, command: List[int], get_response: List[int]) -> str:
    """Laser ID response is NUL padded and always fetched with a fixed length byte"""
    payload = read_raw(session, command, get_response, trailer_byte=LASER_FETCH_BYTE)
    return payload.replace(b"\x00", b"").decode("latin-1").strip()


def select_applet(session, command: List[int]) -> bytes:
    """SELECT an applet; the card must answer 90 xx or 61 xx"""
    ensure_alive(session)
    response = transmit_with_retry(session, command)
    if len(response) < STATUS_TRAILER_LENGTH:
        raise ProtocolViolationError(f"invalid response length: {get_hex_string(response)}")
    sw1, sw2 = response[-2], response[-1]
    if sw1 not in (SW1_OK, SW1_MORE_DATA):
        raise ProtocolViolationError(
            f"SELECT {get_hex_string(command[5:])} failed: SW={sw1:02X}{sw2:02X}"
        )
    return response
