"""
Shared fixtures.

FakeScard stands in for the smartcard.scard functions used by smc.pcsc and
FakeCard answers APDUs like a Thai ID card, so the card layer runs without
a reader. FakeClock replaces the time module so retry delays and the
monitor timeout are recorded instead of slept.
"""

import io

import pytest
from PIL import Image
from smartcard.scard import (
    SCARD_E_INVALID_HANDLE,
    SCARD_E_NO_READERS_AVAILABLE,
    SCARD_E_NO_SMARTCARD,
    SCARD_E_TIMEOUT,
    SCARD_PROTOCOL_T1,
    SCARD_S_SUCCESS,
    SCARD_STATE_PRESENT,
    SCARD_STATE_UNPOWERED,
)

from smc import pcsc, protocol
from smc.apdu import APDU

READER = "ACR38U"

STANDARD_ATR = [0x3B, 0x78, 0x18, 0x00, 0x00, 0x73, 0xC8, 0x40, 0x13, 0x00, 0x90, 0x00]
LEGACY_ATR = [0x3B, 0x67, 0x00, 0x00, 0x73, 0x20, 0x00, 0x6C, 0x68, 0x90, 0x00]

TEMPLATE_A = [0x00, 0xC0, 0x00, 0x01]
TEMPLATE_B = [0x00, 0xC0, 0x00, 0x00]

CID = "1101700203451"
THAI_NAME = "นาย#สมชาย##ใจดี"
ENGLISH_NAME = "Mr.#Somchai##Jaidee"
ISSUER = "สำนักงานเขตจตุจักร"
ADDRESS = "99/1#หมู่ที่ 5####ตำบลบางกระสอ#อำเภอเมืองนนทบุรี#จังหวัดนนทบุรี"
LASER_ID = "JT0-1234567-89"


def padded(data: bytes, length: int, fill: bytes = b" ") -> bytes:
    assert len(data) <= length
    return data + fill * (length - len(data))


def tis620(text: str, length: int) -> bytes:
    return padded(text.encode("tis-620"), length)


def ascii_field(text: str, length: int) -> bytes:
    return padded(text.encode("ascii"), length)


def make_photo() -> bytes:
    """Small JPEG, zero padded to the full photo area"""
    buf = io.BytesIO()
    Image.new("RGB", (32, 40), (200, 120, 80)).save(buf, "JPEG")
    return padded(buf.getvalue(), APDU.PHOTO_BLOCK_SIZE * APDU.PHOTO_BLOCK_COUNT, b"\x00")


def photo_files(photo: bytes):
    size = APDU.PHOTO_BLOCK_SIZE
    return {
        tuple(APDU.photo_block(i)): photo[i * size:(i + 1) * size]
        for i in range(APDU.PHOTO_BLOCK_COUNT)
    }


def thai_card_files(photo: bytes = None):
    files = {
        tuple(APDU.CID): ascii_field(CID, 0x0D),
        tuple(APDU.THAI_FULLNAME): tis620(THAI_NAME, 0x64),
        tuple(APDU.ENG_FULLNAME): ascii_field(ENGLISH_NAME, 0x64),
        tuple(APDU.DATE_OF_BIRTH): ascii_field("25300115", 0x08),
        tuple(APDU.GENDER): ascii_field("1", 0x01),
        tuple(APDU.CARD_ISSUER): tis620(ISSUER, 0x64),
        tuple(APDU.ISSUE_DATE): ascii_field("25600101", 0x08),
        tuple(APDU.EXPIRE_DATE): ascii_field("25690101", 0x08),
        tuple(APDU.ADDRESS): tis620(ADDRESS, 0x64),
        tuple(APDU.LASER_ID): padded(LASER_ID.encode("ascii"), 0x10, b"\x00"),
        tuple(APDU.NHSO_MAIN_INSCL): tis620("(UCS) สิทธิหลักประกันสุขภาพแห่งชาติ", 0x3C),
        tuple(APDU.NHSO_SUB_INSCL): tis620("(89) ช่วงอายุ 12-59 ปี", 0x64),
        tuple(APDU.NHSO_MAIN_HOSPITAL_NAME): tis620("รพ.นนทเวช", 0x50),
        tuple(APDU.NHSO_SUB_HOSPITAL_NAME): tis620("รพ.สต.บางกระสอ", 0x50),
        tuple(APDU.NHSO_PAID_TYPE): ascii_field("1", 0x01),
        tuple(APDU.NHSO_ISSUE_DATE): ascii_field("25650101", 0x08),
        tuple(APDU.NHSO_EXPIRE_DATE): ascii_field("25700101", 0x08),
        tuple(APDU.NHSO_UPDATE_DATE): ascii_field("25650102", 0x08),
        tuple(APDU.NHSO_CHANGE_HOSPITAL_AMOUNT): ascii_field("0", 0x01),
    }
    files.update(photo_files(photo if photo is not None else make_photo()))
    return files


class FakeClock:
    """Replaces the time module: sleeping only advances `now`"""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeCard:
    """
    Thai ID card simulator.

    A read command loads the matching file and answers 61 xx; the following
    GET RESPONSE returns the data plus 90 00.
    """

    def __init__(self, atr=STANDARD_ATR, files=None, state=SCARD_STATE_PRESENT):
        self.atr = list(atr)
        self.get_response = TEMPLATE_A if self.atr[:2] == [0x3B, 0x67] else TEMPLATE_B
        self.files = dict(thai_card_files() if files is None else files)
        self.applets = [APDU.THAI_ID_APPLET, APDU.NHSO_APPLET, APDU.LASER_APPLET]
        self.state = state
        self.pending = None
        self.commands = []
        self.transmit_failures = 0
        self.short_response = False
        self.resets = 0
        self.reset_modes = []

    def transmit(self, apdu):
        apdu = list(apdu)
        self.commands.append(apdu)
        if self.transmit_failures:
            self.transmit_failures -= 1
            return None
        if apdu[:4] == [0x00, 0xA4, 0x04, 0x00]:
            return [0x61, 0x0A] if apdu[5:] in self.applets else [0x6A, 0x82]
        if apdu[:4] == self.get_response:
            if self.short_response:
                return [0x90]
            data, self.pending = self.pending or b"", None
            return list(data[:apdu[4]]) + [0x90, 0x00]
        if tuple(apdu) in self.files:
            self.pending = self.files[tuple(apdu)]
            return [0x61, apdu[-1]]
        return [0x6A, 0x82]

    def sent(self, command):
        return list(command) in self.commands


class FakeScard:
    """Stands in for the smartcard.scard module"""

    def __init__(self, clock):
        self.clock = clock
        self.readers = [READER]
        self.cards = {}
        # One entry per SCardGetStatusChange call: an event state applied to
        # every requested reader, or ("error", hresult)
        self.events = []
        self.on_idle = None
        self.on_establish = None
        self.establish_result = SCARD_S_SUCCESS
        self.established = 0
        self.contexts_released = 0
        self.cancelled = 0
        self.connect_failures = 0
        self.disconnect_result = SCARD_S_SUCCESS
        self.disconnected = []
        self.status_requests = []
        self.handles = {}
        self._next_handle = 100

    def SCardGetErrorMessage(self, hresult):
        return f"fake error {hresult:#x}"

    def SCardEstablishContext(self, scope):
        self.established += 1
        if self.on_establish:
            self.on_establish(self.established)
        return self.establish_result, 1

    def SCardReleaseContext(self, hcontext):
        self.contexts_released += 1
        return SCARD_S_SUCCESS

    def SCardCancel(self, hcontext):
        self.cancelled += 1
        return SCARD_S_SUCCESS

    def SCardListReaders(self, hcontext, groups):
        if not self.readers:
            return SCARD_E_NO_READERS_AVAILABLE, []
        return SCARD_S_SUCCESS, list(self.readers)

    def SCardGetStatusChange(self, hcontext, timeout, states):
        self.status_requests.append(list(states))
        if not self.events:
            if self.on_idle:
                self.on_idle()
            self.clock.now += timeout / 1000.0
            return SCARD_E_TIMEOUT, []
        event = self.events.pop(0)
        if isinstance(event, tuple):
            return event[1], []
        result = []
        for reader, _ in states:
            card = self.cards.get(reader)
            result.append((reader, event, card.atr if card else []))
        return SCARD_S_SUCCESS, result

    def SCardConnect(self, hcontext, reader, share, protocols):
        if self.connect_failures:
            self.connect_failures -= 1
            return SCARD_E_NO_SMARTCARD, 0, 0
        card = self.cards.get(reader)
        if card is None:
            return SCARD_E_NO_SMARTCARD, 0, 0
        handle = self._next_handle
        self._next_handle += 1
        self.handles[handle] = card
        return SCARD_S_SUCCESS, handle, SCARD_PROTOCOL_T1

    def SCardStatus(self, hcard):
        card = self.handles.get(hcard)
        if card is None:
            return SCARD_E_INVALID_HANDLE, "", 0, 0, []
        return SCARD_S_SUCCESS, READER, card.state, SCARD_PROTOCOL_T1, list(card.atr)

    def SCardReconnect(self, hcard, share, protocols, initialization):
        card = self.handles.get(hcard)
        if card is None:
            return SCARD_E_INVALID_HANDLE, 0
        card.resets += 1
        card.reset_modes.append(initialization)
        card.state &= ~SCARD_STATE_UNPOWERED
        return SCARD_S_SUCCESS, SCARD_PROTOCOL_T1

    def SCardTransmit(self, hcard, protocol, apdu):
        card = self.handles.get(hcard)
        if card is None:
            return SCARD_E_INVALID_HANDLE, []
        response = card.transmit(apdu)
        if response is None:
            return SCARD_E_NO_SMARTCARD, []
        return SCARD_S_SUCCESS, response

    def SCardDisconnect(self, hcard, disposition):
        self.disconnected.append((hcard, disposition))
        self.handles.pop(hcard, None)
        return self.disconnect_result


class RecordingChannel:
    """Collects published messages instead of waiting for a consumer"""

    def __init__(self):
        self.messages = []

    def publish(self, message, stop_event=None):
        self.messages.append(message)


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(pcsc, "time", fake)
    monkeypatch.setattr(protocol, "time", fake)
    return fake


@pytest.fixture
def fake_scard(monkeypatch, clock):
    fake = FakeScard(clock)
    monkeypatch.setattr(pcsc, "scard", fake)
    return fake


@pytest.fixture
def thai_card(fake_scard):
    card = FakeCard()
    fake_scard.cards[READER] = card
    return card


@pytest.fixture
def context(fake_scard):
    with pcsc.PcscContext.establish() as ctx:
        yield ctx


@pytest.fixture
def session(context, thai_card):
    return context.connect(READER)
