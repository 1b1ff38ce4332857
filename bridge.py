"""
Smart Card Bridge - Socket.IO Server
====================================
Relays Thai ID card records from the card daemon to web clients.

Events (default namespace):
- smc-data   server -> client: decoded card record
- smc-error  server -> client: localized error text
- readCard   client -> server: resend the last record to the requester only
"""

import logging
import queue
import threading
from typing import Any, Optional

from flask import Flask, request
from flask_socketio import SocketIO, emit

from smc import EVENT_DATA, EVENT_ERROR, Message, MessageChannel

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "ยังไม่มีข้อมูลจากบัตร กรุณาเสียบใหม่"

# How often the relay loop re-checks the stop event
RELAY_POLL_INTERVAL = 0.5


class CardDataStore:
    """
    Last card record published to clients.

    Written by the relay on every smc-data message, read when a client
    asks for a resend.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._payload: Optional[Any] = None

    def update(self, payload: Any):
        """Writer side: the relay task, on every smc-data message"""
        with self._lock:
            self._payload = payload

    def get(self) -> Optional[Any]:
        """Reader side: readCard resend requests. Never writes."""
        with self._lock:
            return self._payload


class SmartCardBridge:
    """Socket.IO server fanning out card messages to every connected client"""

    VERSION = "1.0.0"

    def __init__(self, channel: MessageChannel, store: Optional[CardDataStore] = None,
                 stop_event: Optional[threading.Event] = None):
        self.channel = channel
        self.store = store if store is not None else CardDataStore()
        self.stop_event = stop_event or threading.Event()
        self.relay_task = None

        self.app = Flask(__name__)
        self.socketio = SocketIO(
            self.app,
            cors_allowed_origins="*",
            async_mode="threading",
        )
        self.socketio.on_event("connect", self.on_connect)
        self.socketio.on_event("disconnect", self.on_disconnect)
        self.socketio.on_event("readCard", self.on_read_card)
        self.socketio.on_error_default(self.on_error)

    def on_connect(self, auth=None):
        logger.info(f"Client connected: {request.sid}")

    def on_disconnect(self, reason=None):
        logger.info(f"Client disconnected: {request.sid} ({reason or 'closed'})")

    def on_error(self, e):
        logger.error(f"Socket.IO error: {e}")

    def on_read_card(self, data=None):
        """Manual read request: resend the last known card data"""
        payload = self.store.get()
        if payload is not None:
            logger.info(f"Sending last known card data to {request.sid}")
            emit(EVENT_DATA, payload)
        else:
            logger.warning("No previous card data to send")
            emit(EVENT_ERROR, NO_DATA_MESSAGE)

    def handle_message(self, message: Message):
        """Cache data events, then broadcast every message to all clients"""
        if message.event == EVENT_DATA:
            self.store.update(message.payload)
        self.socketio.emit(message.event, message.payload)
        logger.info(f"Broadcast {message.event}")

    def relay_forever(self):
        logger.info("Relay started")
        while not self.stop_event.is_set():
            try:
                message = self.channel.take(timeout=RELAY_POLL_INTERVAL)
            except queue.Empty:
                continue
            try:
                self.handle_message(message)
            except Exception:
                logger.exception(f"Failed to relay {message.event}")
        logger.info("Relay stopped")

    def start_relay(self):
        self.relay_task = self.socketio.start_background_task(self.relay_forever)
        return self.relay_task

    def run(self, host: str, port: int):
        """Start the relay and serve Socket.IO clients until interrupted"""
        self.start_relay()
        logger.info(f"Starting server on {host}:{port}")
        self.socketio.run(
            self.app,
            host=host,
            port=port,
            use_reloader=False,
            log_output=False,
            allow_unsafe_werkzeug=True,
        )
