"""
Card daemon
===========
Waits for a card, reads it and hands the decoded record to the bridge.

One insertion cycle:

    WAIT_INSERT -> CONNECTING -> READING -> PUBLISHING -> WAIT_REMOVAL -> DISCONNECTING

Failures are not repaired in place. Any error that escapes a cycle ends the
daemon run (releasing the PC/SC context) and the supervisor loop in
run_forever() starts a fresh one after RESTART_DELAY.
"""

import logging
import queue
import threading
from enum import Enum
from typing import Callable, List, Optional

from .errors import CardTimeoutError, DaemonStopped, ResourceUnavailableError, SmartCardError
from .models import EVENT_DATA, EVENT_ERROR, CardRecord, Message, Options
from .pcsc import (
    CardSession,
    PcscContext,
    connect_card,
    disconnect_card,
    init_reader_states,
    wait_until_card_present,
    wait_until_card_remove,
)
from .thaiid import ThaiIDCardReader
from .utils import get_hex_string

logger = logging.getLogger(__name__)

RESTART_DELAY = 2.0

# How often a blocked publish re-checks the stop event
PUBLISH_POLL_INTERVAL = 0.5

READ_ERROR_MESSAGE = "อ่านข้อมูลจากบัตรไม่สำเร็จ กรุณาเสียบบัตรใหม่"


class MessageChannel:
    """
    Unbuffered hand-off between the daemon thread and the bridge.

    publish() returns only once the consumer has taken the message, so at
    most one record is ever in flight.
    """

    def __init__(self):
        self._queue: "queue.Queue" = queue.Queue(maxsize=1)

    def publish(self, message: Message, stop_event: Optional[threading.Event] = None):
        taken = threading.Event()
        while True:
            try:
                self._queue.put((message, taken), timeout=PUBLISH_POLL_INTERVAL)
                break
            except queue.Full:
                if stop_event is not None and stop_event.is_set():
                    raise DaemonStopped()
        while not taken.wait(PUBLISH_POLL_INTERVAL):
            if stop_event is not None and stop_event.is_set():
                raise DaemonStopped()

    def take(self, timeout: Optional[float] = None) -> Message:
        """Take the next message. Raises queue.Empty on timeout."""
        message, taken = self._queue.get(timeout=timeout)
        taken.set()
        return message


class DaemonState(Enum):
    IDLE = "idle"
    WAIT_INSERT = "wait_insert"
    CONNECTING = "connecting"
    READING = "reading"
    PUBLISHING = "publishing"
    WAIT_REMOVAL = "wait_removal"
    DISCONNECTING = "disconnecting"


class SmartCardDaemon:
    """Drives the reader and publishes one message per card insertion"""

    def __init__(self, channel: MessageChannel, options: Options,
                 stop_event: Optional[threading.Event] = None,
                 context_factory: Callable[[], PcscContext] = PcscContext.establish,
                 restart_delay: float = RESTART_DELAY):
        self.channel = channel
        self.options = options
        self.stop_event = stop_event or threading.Event()
        self.context_factory = context_factory
        self.restart_delay = restart_delay
        self.state = DaemonState.IDLE
        self._context: Optional[PcscContext] = None

    def _enter(self, state: DaemonState):
        if self.stop_event.is_set():
            raise DaemonStopped()
        logger.debug(f"Daemon state: {self.state.value} -> {state.value}")
        self.state = state

    def publish(self, message: Message):
        self.channel.publish(message, self.stop_event)

    def report_error(self, error: SmartCardError):
        logger.error(f"Card error: {error}")
        self.publish(Message(EVENT_ERROR, READ_ERROR_MESSAGE))

    def read_card(self, session: CardSession) -> CardRecord:
        status = session.status()
        logger.info(f"Card ATR: {get_hex_string(status.atr)}")
        return ThaiIDCardReader(session, status.atr).read_record(self.options)

    def process_card(self, context: PcscContext, readers: List[str]):
        """Run one insertion cycle"""
        states = init_reader_states(readers)

        self._enter(DaemonState.WAIT_INSERT)
        while True:
            try:
                index = wait_until_card_present(context, states, stop_event=self.stop_event)
                break
            except CardTimeoutError:
                logger.debug("No card inserted, still waiting")
                self._enter(DaemonState.WAIT_INSERT)

        reader = readers[index]
        self._enter(DaemonState.CONNECTING)
        try:
            session = connect_card(context, reader)
        except SmartCardError as e:
            self.report_error(e)
            raise

        failure: Optional[SmartCardError] = None
        try:
            self._enter(DaemonState.READING)
            try:
                record = self.read_card(session)
            except SmartCardError as e:
                failure = e
                self.report_error(e)
            else:
                self._enter(DaemonState.PUBLISHING)
                self.publish(Message(EVENT_DATA, record.to_dict()))
                logger.info("Card data published")

            self._enter(DaemonState.WAIT_REMOVAL)
            try:
                wait_until_card_remove(context, [states[index]], stop_event=self.stop_event)
            except SmartCardError as e:
                logger.warning(f"Error waiting for card removal: {e}")
        finally:
            self.state = DaemonState.DISCONNECTING
            disconnect_card(session)

        if failure is not None:
            raise failure

    def run_once(self):
        """One daemon run: acquire the PC/SC context and process cards until an error"""
        with self.context_factory() as context:
            self._context = context
            try:
                readers = context.list_readers()
                if not readers:
                    raise ResourceUnavailableError("No smart card readers available")
                logger.info(f"Available {len(readers)} readers: {', '.join(readers)}")

                while True:
                    self.process_card(context, readers)
            finally:
                self._context = None
                self.state = DaemonState.IDLE

    def run_forever(self):
        """Supervisor loop: restart the daemon after every failure until stopped"""
        logger.info("Smart card daemon started")
        while not self.stop_event.is_set():
            try:
                self.run_once()
            except DaemonStopped:
                break
            except SmartCardError as e:
                if self.stop_event.is_set():
                    break
                logger.error(f"Error in daemon: {e}. Retrying in {self.restart_delay}s...")
            except Exception:
                logger.exception(f"Unexpected error in daemon. Retrying in {self.restart_delay}s...")

            if self.stop_event.wait(self.restart_delay):
                break
        logger.info("Smart card daemon stopped")

    def stop(self):
        """Ask the daemon to stop and unblock any pending reader wait"""
        self.stop_event.set()
        context = self._context
        if context is not None:
            context.cancel()
