"""
Shared helpers for APDU logging and Thai ID card text fields.
"""

import logging
from typing import List

from smartcard.util import toHexString

from .models import Address, PersonName

logger = logging.getLogger(__name__)

THAI_ENCODING = "tis-620"
FIELD_SEPARATOR = "#"


def get_hex_string(data) -> str:
    """Convert bytes/list to hex string"""
    return toHexString(list(data))


def decode_tis620(data: bytes) -> str:
    """Decode legacy TIS-620 bytes to text. Undefined code points become U+FFFD."""
    return bytes(data).decode(THAI_ENCODING, errors="replace")


def split_fields(raw: str, count: int) -> List[str]:
    """Split a '#'-separated card field, padded or truncated to `count` parts"""
    parts = [p.strip() for p in raw.split(FIELD_SEPARATOR)]
    parts += [""] * (count - len(parts))
    return parts[:count]


def join_fields(raw: str) -> str:
    return " ".join(p.strip() for p in raw.split(FIELD_SEPARATOR) if p.strip())


def parse_name(raw: str) -> PersonName:
    """
    Parse a name field.

    Names are stored as 'prefix#first#middle#last', e.g.
    'นาย#สมชาย##ใจดี'.
    """
    prefix, first, middle, last = split_fields(raw, 4)
    return PersonName(
        full=join_fields(raw),
        prefix=prefix,
        first_name=first,
        middle_name=middle,
        last_name=last,
    )


def parse_address(raw: str) -> Address:
    """
    Parse the address field.

    Layout: house no # moo # trok # soi # road # sub-district # district # province
    """
    parts = split_fields(raw, 8)
    return Address(
        full=join_fields(raw),
        house_no=parts[0],
        moo=parts[1],
        trok=parts[2],
        soi=parts[3],
        road=parts[4],
        subdistrict=parts[5],
        district=parts[6],
        province=parts[7],
    )
