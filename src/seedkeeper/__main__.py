# Seedkeeper - Main Entry Point
#
# Starts the local vault API for the desktop UI shell. The per-process
# session token is printed on stdout; the shell passes it back in the
# X-Session-Token header.

import argparse
import logging
import sys

from . import __version__
from .core import EventSeverity, EventType, configure_audit_logger, load_settings
from .vault.encryption import EncryptionService


def main(argv=None):
    """Main entry point for Seedkeeper."""
    parser = argparse.ArgumentParser(
        prog="seedkeeper",
        description="Seedkeeper - local encrypted seed vault and session manager",
    )

    parser.add_argument(
        "--host",
        default=None,
        help="API host (default: SEEDKEEPER_API_HOST or 127.0.0.1)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="API port (default: SEEDKEEPER_API_PORT or 8000)"
    )

    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding the store and device key (default: SEEDKEEPER_DATA_DIR)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Seedkeeper v{__version__}"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)
    if args.data_dir:
        settings = settings.with_data_dir(args.data_dir)
    host = args.host or settings.api_host
    port = args.port or settings.api_port

    EncryptionService.configure(settings.kdf_iterations)
    audit = configure_audit_logger(settings.audit_log_dir)

    # Imported late so the audit logger and KDF settings are in place first
    from .api.main import start_api_server
    from .api.security import initialize_session_token
    from .api.vault_routes import set_wallet_vault
    from .vault import WalletVault

    set_wallet_vault(WalletVault(settings))
    token = initialize_session_token()

    print("=" * 60)
    print(f"  Seedkeeper v{__version__}")
    print(f"  Data directory: {settings.data_dir}")
    print(f"  API: http://{host}:{port}")
    print(f"  SESSION_TOKEN={token}")
    print("=" * 60, flush=True)

    try:
        start_api_server(host=host, port=port)
    except KeyboardInterrupt:
        print("\nShutting down...")
        audit.log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.INFO,
            message="Seedkeeper stopped (user interrupt)"
        )
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        audit.log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.CRITICAL,
            message=f"Seedkeeper crashed: {e}"
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
