"""
Smart Card Agent System Checker
===============================
Checks if the system is ready to run the Thai Smart Card Agent.
Run this to diagnose issues on target machines.
"""

import socket
import subprocess
import sys

from config import Settings


def check_python():
    """Check Python version"""
    print(f"  Python: {sys.version}")
    if sys.version_info >= (3, 8):
        print("  ✓ Python version OK")
        return True
    print("  ✗ Python 3.8+ required")
    return False


def check_smartcard_service():
    """Check if the Smart Card service is running (Windows only)"""
    print("\n[Smart Card Service]")
    if not sys.platform.startswith("win"):
        print("  - Not Windows, skipped (pcscd is checked with the PC/SC context)")
        return None
    try:
        result = subprocess.run(['sc', 'query', 'SCardSvr'], capture_output=True, text=True)
    except OSError as e:
        print(f"  ✗ Error checking service: {e}")
        return False
    if 'RUNNING' in result.stdout:
        print("  ✓ Smart Card service is running")
        return True
    if 'STOPPED' in result.stdout:
        print("  ✗ Smart Card service is stopped")
        print("  → Run: sc start SCardSvr (as Administrator)")
        return False
    print("  ? Could not determine service status")
    return None


def check_pcsc():
    """Establish a PC/SC context and list readers"""
    print("\n[PC/SC Readers]")
    try:
        from smc.errors import SmartCardError
        from smc.pcsc import PcscContext
    except ImportError as e:
        print(f"  ✗ pyscard not available: {e}")
        print("  → Run: pip install pyscard")
        return False

    try:
        with PcscContext.establish() as context:
            readers = context.list_readers()
    except SmartCardError as e:
        print(f"  ✗ {e}")
        print("  → Check that pcscd / SCardSvr is running")
        return False

    if not readers:
        print("  ✗ No card readers found")
        print("  → Check USB connection and driver installation")
        return False
    print(f"  ✓ Found {len(readers)} reader(s):")
    for reader in readers:
        print(f"    - {reader}")
    return True


def check_socketio():
    """Check Flask-SocketIO"""
    print("\n[Socket.IO Library]")
    try:
        import flask_socketio
    except ImportError:
        print("  ✗ Flask-SocketIO not installed")
        return False
    print(f"  ✓ Flask-SocketIO {getattr(flask_socketio, '__version__', '')}".rstrip())
    return True


def check_pillow():
    """Check Pillow, used to validate the card photo"""
    print("\n[Imaging Library]")
    try:
        import PIL
    except ImportError:
        print("  ✗ Pillow not installed")
        print("  → Photo reading will fail")
        return False
    print(f"  ✓ Pillow {PIL.__version__}")
    return True


def check_port(port: int):
    """Check if the agent port is free"""
    print(f"\n[Port {port}]")
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(1)
        result = sock.connect_ex(('localhost', port))
    if result == 0:
        print(f"  ⚠ Port {port} is in use (agent may be running)")
    else:
        print(f"  ✓ Port {port} is available")
    return True


def main():
    settings = Settings.from_env()

    print("=" * 60)
    print("  Thai Smart Card Agent System Checker")
    print("=" * 60)

    results = {}

    print("\n[Python Environment]")
    results['python'] = check_python()
    results['smartcard_service'] = check_smartcard_service()
    results['pcsc'] = check_pcsc()
    results['socketio'] = check_socketio()
    results['pillow'] = check_pillow()
    results['port'] = check_port(settings.port)

    print("\n" + "=" * 60)
    print("  SUMMARY")
    print("=" * 60)

    all_ok = True
    critical_ok = True

    for name, status in results.items():
        if status is True:
            icon = "✓"
        elif status is False:
            icon = "✗"
            all_ok = False
            if name in ['smartcard_service', 'pcsc', 'socketio']:
                critical_ok = False
        else:
            icon = "?"
        print(f"  {icon} {name}")

    print("\n" + "-" * 60)

    if all_ok:
        print("  ✓ System is ready for the Smart Card Agent!")
    elif critical_ok:
        print("  ⚠ System has minor issues but may work")
    else:
        print("  ✗ System is NOT ready - fix critical issues above")

    print("=" * 60)
    return 0 if critical_ok else 1


if __name__ == "__main__":
    sys.exit(main())
