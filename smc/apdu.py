"""
APDU commands for the Thai national ID card.
"""

from enum import Enum
from typing import List

from .errors import ProtocolViolationError
from .utils import get_hex_string


class CardModel(Enum):
    """
    Card variants, distinguished by their ATR.

    The value is the GET RESPONSE template; the expected length byte is
    appended per command.
    """
    STANDARD = (0x00, 0xC0, 0x00, 0x00)
    LEGACY = (0x00, 0xC0, 0x00, 0x01)

    @property
    def get_response(self) -> List[int]:
        return list(self.value)


# ATR prefixes for every model other than STANDARD
ATR_SIGNATURES = {
    (0x3B, 0x67): CardModel.LEGACY,
}


def identify_card_model(atr) -> CardModel:
    if len(atr) < 2:
        raise ProtocolViolationError(f"invalid ATR: {get_hex_string(atr)}")
    return ATR_SIGNATURES.get((atr[0], atr[1]), CardModel.STANDARD)


def get_response_command(atr) -> List[int]:
    """GET RESPONSE template to use for a card with this ATR"""
    return identify_card_model(atr).get_response


def read_binary(offset: int, length: int) -> List[int]:
    """Create a READ BINARY command for the currently selected applet"""
    p1 = (offset >> 8) & 0xFF
    p2 = offset & 0xFF
    return [0x80, 0xB0, p1, p2, 0x02, 0x00, length]


class APDU:
    """Thai ID card commands"""

    SELECT = [0x00, 0xA4, 0x04, 0x00, 0x08]

    # Applets
    THAI_ID_APPLET = [0xA0, 0x00, 0x00, 0x00, 0x54, 0x48, 0x00, 0x01]
    NHSO_APPLET = [0xA0, 0x00, 0x00, 0x00, 0x54, 0x48, 0x00, 0x83]
    LASER_APPLET = [0xA0, 0x00, 0x00, 0x00, 0x84, 0x06, 0x00, 0x02]

    # Personal data (Thai ID applet)
    CID = read_binary(0x0004, 0x0D)
    THAI_FULLNAME = read_binary(0x0011, 0x64)
    ENG_FULLNAME = read_binary(0x0075, 0x64)
    DATE_OF_BIRTH = read_binary(0x00D9, 0x08)
    GENDER = read_binary(0x00E1, 0x01)
    CARD_ISSUER = read_binary(0x00F6, 0x64)
    ISSUE_DATE = read_binary(0x0167, 0x08)
    EXPIRE_DATE = read_binary(0x016F, 0x08)
    ADDRESS = read_binary(0x1579, 0x64)

    # Photo (Thai ID applet): fixed-size blocks at increasing offsets
    PHOTO_OFFSET = 0x017B
    PHOTO_BLOCK_SIZE = 0xFF
    PHOTO_BLOCK_COUNT = 20

    # Laser ID (laser applet)
    LASER_ID = [0x80, 0x00, 0x00, 0x00, 0x07]
    LASER_RESPONSE_LENGTH = 0x10

    # Health insurance (NHSO applet)
    NHSO_MAIN_INSCL = read_binary(0x0004, 0x3C)
    NHSO_SUB_INSCL = read_binary(0x0040, 0x64)
    NHSO_MAIN_HOSPITAL_NAME = read_binary(0x00A4, 0x50)
    NHSO_SUB_HOSPITAL_NAME = read_binary(0x00F4, 0x50)
    NHSO_PAID_TYPE = read_binary(0x0144, 0x01)
    NHSO_ISSUE_DATE = read_binary(0x0145, 0x08)
    NHSO_EXPIRE_DATE = read_binary(0x014D, 0x08)
    NHSO_UPDATE_DATE = read_binary(0x0155, 0x08)
    NHSO_CHANGE_HOSPITAL_AMOUNT = read_binary(0x015D, 0x01)

    @staticmethod
    def select_applet(aid: List[int]) -> List[int]:
        """Create SELECT command for an applet"""
        return [0x00, 0xA4, 0x04, 0x00, len(aid)] + aid

    @classmethod
    def photo_block(cls, index: int) -> List[int]:
        return read_binary(cls.PHOTO_OFFSET + index * cls.PHOTO_BLOCK_SIZE, cls.PHOTO_BLOCK_SIZE)
