"""
Thai national ID card reader.

Reads the personal data block from the MOI applet and, depending on
Options, the portrait photo, the laser-engraved ID and the NHSO health
insurance block.
"""

import io
import logging
from typing import List

from PIL import Image, UnidentifiedImageError

from .apdu import APDU, get_response_command
from .errors import ProtocolViolationError
from .models import CardRecord, NhsoData, Options
from .protocol import read_data, read_data_thai, read_laser_data, read_raw, select_applet
from .utils import parse_address, parse_name

logger = logging.getLogger(__name__)


class ThaiIDCardReader:
    """Thai national ID card (บัตรประจำตัวประชาชน) reader"""

    def __init__(self, session, atr: bytes):
        self.session = session
        self.get_response = get_response_command(atr)

    def select(self, aid: List[int]):
        select_applet(self.session, APDU.select_applet(aid))

    def text(self, command: List[int]) -> str:
        return read_data(self.session, command, self.get_response)

    def thai_text(self, command: List[int]) -> str:
        return read_data_thai(self.session, command, self.get_response)

    def read_record(self, options: Options) -> CardRecord:
        """Read every field selected by `options`, in a fixed order"""
        self.select(APDU.THAI_ID_APPLET)

        cid = self.text(APDU.CID)
        name_th = parse_name(self.thai_text(APDU.THAI_FULLNAME))
        name_en = parse_name(self.text(APDU.ENG_FULLNAME))
        date_of_birth = self.text(APDU.DATE_OF_BIRTH)
        gender = self.text(APDU.GENDER)
        card_issuer = self.thai_text(APDU.CARD_ISSUER)
        issue_date = self.text(APDU.ISSUE_DATE)
        expire_date = self.text(APDU.EXPIRE_DATE)
        address = parse_address(self.thai_text(APDU.ADDRESS))
        logger.info(f"Read personal data for CID {cid[:4]}*********")

        photo = self.read_photo() if options.show_face_image else None
        laser_id = self.read_laser_id() if options.show_laser_data else None
        nhso = self.read_nhso() if options.show_nhso_data else None

        return CardRecord(
            cid=cid,
            name_th=name_th,
            name_en=name_en,
            date_of_birth=date_of_birth,
            gender=gender,
            card_issuer=card_issuer,
            issue_date=issue_date,
            expire_date=expire_date,
            address=address,
            photo=photo,
            laser_id=laser_id,
            nhso=nhso,
        )

    def read_photo(self, block_count: int = APDU.PHOTO_BLOCK_COUNT) -> bytes:
        """
        Read the JPEG portrait block by block.

        Any short block aborts the whole photo; partial images are never
        returned. Must be called with the Thai ID applet selected.
        """
        result = bytearray()
        for index in range(block_count):
            block = read_raw(self.session, APDU.photo_block(index), self.get_response)
            if len(block) != APDU.PHOTO_BLOCK_SIZE:
                raise ProtocolViolationError(
                    f"Photo block {index} is {len(block)} bytes, expected {APDU.PHOTO_BLOCK_SIZE}"
                )
            result.extend(block)

        photo = bytes(result)
        try:
            with Image.open(io.BytesIO(photo)) as image:
                logger.debug(f"Photo: {image.format} {image.size[0]}x{image.size[1]}")
        except (UnidentifiedImageError, OSError) as e:
            raise ProtocolViolationError(f"Photo data is not a valid image: {e}") from e
        return photo

    def read_laser_id(self) -> str:
        self.select(APDU.LASER_APPLET)
        return read_laser_data(self.session, APDU.LASER_ID, self.get_response)

    def read_nhso(self) -> NhsoData:
        self.select(APDU.NHSO_APPLET)
        return NhsoData(
            main_inscl=self.thai_text(APDU.NHSO_MAIN_INSCL),
            sub_inscl=self.thai_text(APDU.NHSO_SUB_INSCL),
            main_hospital_name=self.thai_text(APDU.NHSO_MAIN_HOSPITAL_NAME),
            sub_hospital_name=self.thai_text(APDU.NHSO_SUB_HOSPITAL_NAME),
            paid_type=self.text(APDU.NHSO_PAID_TYPE),
            issue_date=self.text(APDU.NHSO_ISSUE_DATE),
            expire_date=self.text(APDU.NHSO_EXPIRE_DATE),
            update_date=self.text(APDU.NHSO_UPDATE_DATE),
            change_hospital_amount=self.text(APDU.NHSO_CHANGE_HOSPITAL_AMOUNT),
        )
