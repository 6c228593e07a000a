# SecurePass - Main Entry Point
#
# Runs the REST API server. Storage, cipher mode and KDF cost come from
# SECUREPASS_* environment variables (see securepass.core.config).

import argparse
import logging
import sys

from . import __version__
from .core import get_audit_logger, EventType, EventSeverity
from .core.config import get_settings


def main():
    """Main entry point for SecurePass."""
    parser = argparse.ArgumentParser(
        description="SecurePass - password manager API server",
        epilog="Configuration is read from SECUREPASS_* environment variables and .env"
    )

    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to listen on (default: 8000)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"SecurePass v{__version__}"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = get_settings()

    print("=" * 60)
    print(f"  SecurePass v{__version__}")
    print(f"  Storage: {settings.storage}   Cipher: AES-256-{settings.cipher_mode.upper()}")
    print(f"  Starting API server on {args.host}:{args.port}...")
    print("  Press Ctrl+C to stop")
    print("=" * 60)
    print()

    from .api.main import start_api_server

    try:
        start_api_server(host=args.host, port=args.port)
    except KeyboardInterrupt:
        print("\n\nShutting down backend...")
        get_audit_logger().log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.INFO,
            message="SecurePass backend stopped (user interrupt)"
        )
    except Exception as e:
        print(f"\n\nError: {str(e)}")
        get_audit_logger().log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.CRITICAL,
            message=f"SecurePass backend crashed: {str(e)}"
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
