"""
Main entry point for the Auth Session Client.

This module provides a command-line interface for logging in, registering,
logging out and inspecting the stored session.
"""

import sys
import argparse
import asyncio
import getpass
import json
import logging
from typing import List, Optional

from authclient.api_client import AuthAPIClient
from authclient.auth.secure_store import create_key_value_store
from authclient.auth.session_manager import SessionManager
from authclient.config import ClientConfiguration
from authclient.forms import (
    validate_login_form, validate_registration_form,
    flatten_error_messages, describe_login_failure
)
from authshared.exceptions import AuthSessionError
from authshared.interfaces import ICredentialTransport, IKeyValueStore
from authshared.logging_config import LogFormat, LogLevel, setup_logging

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_VALIDATION = 2
EXIT_INTERRUPTED = 130

# Console stays quiet unless a level is configured or a flag asks for more
DEFAULT_LOG_LEVEL = LogLevel.WARNING


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="auth-session",
        description="Auth Session Client",
        epilog="""
Examples:
  %(prog)s status                         # Show the stored session
  %(prog)s status --json                  # Show the session as JSON
  %(prog)s login --username alice         # Log in, prompting for the password
  %(prog)s register --username bob --email bob@example.com
  %(prog)s logout                         # Clear the stored session
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    config_group = parser.add_argument_group('Configuration')
    config_group.add_argument("--config", type=str, metavar="FILE",
                              help="Path to configuration file")
    config_group.add_argument("--server-url", type=str, metavar="URL",
                              help="Override auth service URL")
    config_group.add_argument("--storage-backend", choices=["auto", "keyring", "file"],
                              help="Override credential storage backend")

    output_group = parser.add_argument_group('Output')
    output_group.add_argument("--verbose", "-v", action="store_true",
                              help="Enable verbose output")
    output_group.add_argument("--quiet", "-q", action="store_true",
                              help="Suppress non-error output")

    debug_group = parser.add_argument_group('Debug')
    debug_group.add_argument("--debug", action="store_true",
                             help="Enable debug logging")
    debug_group.add_argument("--log-file", type=str, metavar="FILE",
                             help="Write logs to file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser("status", help="Show the current session")
    status_parser.add_argument("--json", action="store_true",
                               help="Output status in JSON format")

    login_parser = subparsers.add_parser("login", help="Log in and store the issued tokens")
    login_parser.add_argument("--username", "-u", required=True)
    login_parser.add_argument("--password", "-p",
                              help="Password (prompted for when omitted)")

    register_parser = subparsers.add_parser("register", help="Create an account")
    register_parser.add_argument("--username", "-u", required=True)
    register_parser.add_argument("--email", "-e", required=True)
    register_parser.add_argument("--password", "-p",
                                 help="Password (prompted for twice when omitted)")

    subparsers.add_parser("logout", help="Clear the stored session")

    return parser.parse_args(argv)


def configure_logging(args: argparse.Namespace, config: ClientConfiguration) -> None:
    """Configure logging from arguments and configuration."""
    if args.debug:
        level = LogLevel.DEBUG
    elif args.quiet:
        level = LogLevel.ERROR
    elif args.verbose:
        level = LogLevel.INFO
    else:
        configured = config.get_log_level()
        try:
            level = LogLevel(configured) if configured else DEFAULT_LOG_LEVEL
        except ValueError:
            logger.warning(f"Unknown log level {configured!r}, using {DEFAULT_LOG_LEVEL.value}")
            level = DEFAULT_LOG_LEVEL

    try:
        log_format = LogFormat(config.get_log_format())
    except ValueError:
        log_format = LogFormat.STANDARD

    setup_logging(
        log_level=level,
        log_format=log_format,
        log_file=args.log_file or config.get_log_file(),
        enable_audit=bool(config.get_audit_file()),
        audit_file=config.get_audit_file()
    )


def _mask_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    return f"{token[:8]}..." if len(token) > 8 else "***"


def _print(args: argparse.Namespace, message: str) -> None:
    if not args.quiet:
        print(message)


async def handle_status(args: argparse.Namespace, session_manager: SessionManager) -> int:
    state = session_manager.state

    if getattr(args, 'json', False):
        output = state.to_dict()
        output['accessToken'] = _mask_token(state.access_token)
        output['refreshToken'] = _mask_token(state.refresh_token)
        output['phase'] = state.phase.value
        print(json.dumps(output))
    elif state.is_authenticated:
        _print(args, f"Authenticated (access token {_mask_token(state.access_token)})")
    else:
        _print(args, "Not authenticated")

    return EXIT_SUCCESS


async def handle_login(args: argparse.Namespace, session_manager: SessionManager) -> int:
    password = args.password
    if password is None:
        password = getpass.getpass("Password: ")

    errors = validate_login_form(args.username, password)
    if errors:
        for error in errors:
            print(error, file=sys.stderr)
        return EXIT_VALIDATION

    result = await session_manager.login(args.username, password)
    if not result.success:
        print(describe_login_failure(result), file=sys.stderr)
        return EXIT_FAILURE

    _print(args, f"Logged in as {args.username}")
    return EXIT_SUCCESS


async def handle_register(args: argparse.Namespace, session_manager: SessionManager) -> int:
    password = args.password
    confirm_password = password
    if password is None:
        password = getpass.getpass("Password: ")
        confirm_password = getpass.getpass("Confirm password: ")

    errors = validate_registration_form(args.username, args.email, password, confirm_password)
    if errors:
        for error in errors:
            print(error, file=sys.stderr)
        return EXIT_VALIDATION

    result = await session_manager.register(args.username, args.email, password)
    if not result.success:
        messages = flatten_error_messages(result.data) or [result.message or "Registration failed."]
        for message in messages:
            print(message, file=sys.stderr)
        return EXIT_FAILURE

    _print(args, f"Account {args.username} created. You can now log in.")
    return EXIT_SUCCESS


async def handle_logout(args: argparse.Namespace, session_manager: SessionManager) -> int:
    await session_manager.logout()
    _print(args, "Logged out")
    return EXIT_SUCCESS


COMMAND_HANDLERS = {
    'status': handle_status,
    'login': handle_login,
    'register': handle_register,
    'logout': handle_logout,
}


async def run_command(
    args: argparse.Namespace,
    config: ClientConfiguration,
    transport: Optional[ICredentialTransport] = None,
    store: Optional[IKeyValueStore] = None
) -> int:
    """
    Bootstrap a session and run the requested command.

    Args:
        args: Parsed command line arguments
        config: Client configuration
        transport: Credential transport (an AuthAPIClient by default)
        store: Credential store (chosen from configuration by default)

    Returns:
        Process exit code
    """
    if store is None:
        store = create_key_value_store(
            backend=config.get_storage_backend(),
            service_name=config.get_storage_service_name(),
            storage_dir=config.get_storage_path()
        )

    owns_transport = transport is None
    if transport is None:
        transport = AuthAPIClient(config.get_server_url(), timeout=config.get_server_timeout())

    try:
        session_manager = SessionManager(transport, store)
        await session_manager.bootstrap()
        return await COMMAND_HANDLERS[args.command](args, session_manager)
    finally:
        if owns_transport:
            await transport.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the client."""
    try:
        args = parse_arguments(argv)

        config = ClientConfiguration(args.config)
        config.set_override('server_url', args.server_url)
        config.set_override('storage_backend', args.storage_backend)
        config.set_override('log_file', args.log_file)

        configure_logging(args, config)

        return asyncio.run(run_command(args, config))

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return EXIT_INTERRUPTED
    except AuthSessionError as e:
        print(f"Error: {e.user_message}", file=sys.stderr)
        logger.debug("Command failed", exc_info=True)
        return EXIT_FAILURE
    except Exception as e:
        print(f"Fatal error: {str(e)}", file=sys.stderr)
        logger.exception("Fatal error in main")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
