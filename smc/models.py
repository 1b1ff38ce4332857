"""
Data types shared by the card daemon and the Socket.IO bridge.
"""

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from smartcard.scard import (
    SCARD_STATE_EMPTY,
    SCARD_STATE_PRESENT,
    SCARD_STATE_UNPOWERED,
)

EVENT_DATA = "smc-data"
EVENT_ERROR = "smc-error"


class ReaderStatus(Enum):
    """Semantic state derived from a PC/SC reader state bitmask"""
    UNAWARE = "unaware"
    PRESENT = "present"
    EMPTY = "empty"
    UNPOWERED = "unpowered"


@dataclass
class ReaderState:
    """One reader entry passed to and returned by SCardGetStatusChange"""
    reader: str
    current_state: int = 0
    event_state: int = 0
    atr: List[int] = field(default_factory=list)

    @property
    def state(self) -> ReaderStatus:
        if self.event_state & SCARD_STATE_PRESENT:
            if self.event_state & SCARD_STATE_UNPOWERED:
                return ReaderStatus.UNPOWERED
            return ReaderStatus.PRESENT
        if self.event_state & SCARD_STATE_EMPTY:
            return ReaderStatus.EMPTY
        return ReaderStatus.UNAWARE


@dataclass(frozen=True)
class Options:
    """Optional blocks to read from every card"""
    show_face_image: bool = True
    show_laser_data: bool = True
    show_nhso_data: bool = False


@dataclass(frozen=True)
class PersonName:
    full: str
    prefix: str = ""
    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "prefix": self.prefix,
            "firstName": self.first_name,
            "middleName": self.middle_name,
            "lastName": self.last_name,
            "fullName": self.full,
        }


@dataclass(frozen=True)
class Address:
    full: str
    house_no: str = ""
    moo: str = ""
    trok: str = ""
    soi: str = ""
    road: str = ""
    subdistrict: str = ""
    district: str = ""
    province: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "houseNo": self.house_no,
            "moo": self.moo,
            "trok": self.trok,
            "soi": self.soi,
            "road": self.road,
            "subdistrict": self.subdistrict,
            "district": self.district,
            "province": self.province,
            "fullAddress": self.full,
        }


@dataclass(frozen=True)
class NhsoData:
    """Health insurance (NHSO) block"""
    main_inscl: str
    sub_inscl: str
    main_hospital_name: str
    sub_hospital_name: str
    paid_type: str
    issue_date: str
    expire_date: str
    update_date: str
    change_hospital_amount: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "mainInscl": self.main_inscl,
            "subInscl": self.sub_inscl,
            "mainHospitalName": self.main_hospital_name,
            "subHospitalName": self.sub_hospital_name,
            "paidType": self.paid_type,
            "issueDate": self.issue_date,
            "expireDate": self.expire_date,
            "updateDate": self.update_date,
            "changeHospitalAmount": self.change_hospital_amount,
        }


@dataclass(frozen=True)
class CardRecord:
    """
    Everything decoded from one card insertion.

    Built once all selected fields have been read; optional blocks are None
    when excluded by Options.
    """
    cid: str
    name_th: PersonName
    name_en: PersonName
    date_of_birth: str
    gender: str
    card_issuer: str
    issue_date: str
    expire_date: str
    address: Address
    photo: Optional[bytes] = None
    laser_id: Optional[str] = None
    nhso: Optional[NhsoData] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "cid": self.cid,
            "nameTH": self.name_th.to_dict(),
            "nameEN": self.name_en.to_dict(),
            "dateOfBirth": self.date_of_birth,
            "gender": self.gender,
            "cardIssuer": self.card_issuer,
            "issueDate": self.issue_date,
            "expireDate": self.expire_date,
            "address": self.address.to_dict(),
        }
        if self.photo is not None:
            data["photo"] = base64.b64encode(self.photo).decode("ascii")
        if self.laser_id is not None:
            data["laserId"] = self.laser_id
        if self.nhso is not None:
            data["nhso"] = self.nhso.to_dict()
        return data


@dataclass(frozen=True)
class Message:
    """Unit handed from the daemon to the bridge"""
    event: str
    payload: Any
