"""
Thai Smart Card Agent
=====================
Reads Thai national ID cards from a PC/SC reader and publishes them to
Socket.IO clients.

Run:
    python server.py

Configuration comes from the environment, see config.py.
"""

import logging
import sys
import threading

from bridge import SmartCardBridge
from config import Settings
from smc import MessageChannel, SmartCardDaemon

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings):
    handlers = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def main():
    settings = Settings.from_env()
    setup_logging(settings)

    stop_event = threading.Event()
    channel = MessageChannel()
    bridge = SmartCardBridge(channel, stop_event=stop_event)
    daemon = SmartCardDaemon(channel, settings.options, stop_event=stop_event)

    print("=" * 60)
    print(f"  Thai Smart Card Agent v{SmartCardBridge.VERSION}")
    print("=" * 60)
    print(f"  URL    : http://{settings.host}:{settings.port}")
    print(f"  Photo  : {'on' if settings.options.show_face_image else 'off'}")
    print(f"  Laser  : {'on' if settings.options.show_laser_data else 'off'}")
    print(f"  NHSO   : {'on' if settings.options.show_nhso_data else 'off'}")
    print("=" * 60)
    print()

    daemon_thread = threading.Thread(target=daemon.run_forever, name="smc-daemon", daemon=True)
    daemon_thread.start()

    try:
        bridge.run(settings.host, settings.port)
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Shutting down...")
        daemon.stop()
        daemon_thread.join(timeout=5)

    print("\nServer stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
