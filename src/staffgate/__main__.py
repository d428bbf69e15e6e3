"""
StaffGate command line.

    staffgate serve            run the HTTP API (default)
    staffgate create-staff     create an account from the shell, e.g. the
                               first superuser on a fresh database
"""

import argparse
import asyncio
import getpass
import signal
import sys

from aiohttp import web
from dotenv import load_dotenv
from loguru import logger

from .api import create_app
from .auth.staff_manager import StaffManager
from .config import Settings
from .errors import ConfigurationError, StaffGateError
from .log import configure_logging


async def serve(settings: Settings) -> None:
    """Run the API until SIGINT/SIGTERM, then drain audit and close the store."""
    logger.info("Starting StaffGate")
    logger.info(f"HTTP: {settings.host}:{settings.port}")
    logger.info(f"Database: {settings.database_path}")

    app = create_app(settings)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    stop = loop.create_future()

    def signal_handler(signum):
        logger.info(f"Received signal {signum}, shutting down...")
        if not stop.done():
            stop.set_result(None)

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, signal_handler, signum)

    runner = web.AppRunner(app)
    try:
        await runner.setup()
        site = web.TCPSite(runner, settings.host, settings.port)
        await site.start()

        logger.info("StaffGate is running")
        await stop
    finally:
        await runner.cleanup()

    logger.info("Server stopped")


def create_staff(settings: Settings, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    manager = StaffManager.from_settings(settings)
    try:
        roles = []
        for role_name in args.role:
            role = manager.store.find_role_by_name(role_name)
            if not role:
                logger.error(f"Role not found: {role_name}")
                return 1
            roles.append(role)

        account = manager.create_staff(
            email=args.email,
            password=password,
            first_name=args.first_name,
            last_name=args.last_name,
            department=args.department,
            position=args.position,
            is_superuser=args.superuser,
        )
        for role in roles:
            manager.assign_role(account.staff_id, role.role_id)
    except StaffGateError as e:
        logger.error(f"Could not create staff member: {e.message}")
        if e.details:
            logger.error(f"Details: {e.details}")
        return 1
    finally:
        manager.store.close()

    logger.info(f"Created staff member {account.email} ({account.staff_id})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="staffgate", description="Staff identity and access control")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the HTTP API")

    create = sub.add_parser("create-staff", help="Create a staff account")
    create.add_argument("--email", required=True)
    create.add_argument("--password", help="Prompted for when omitted")
    create.add_argument("--first-name", required=True)
    create.add_argument("--last-name", required=True)
    create.add_argument("--department")
    create.add_argument("--position")
    create.add_argument("--superuser", action="store_true", help="Grant the superuser flag")
    create.add_argument("--role", action="append", default=[], help="Role name to assign (repeatable)")

    return parser


def run(argv=None) -> None:
    """Console entry point."""
    args = build_parser().parse_args(argv)

    load_dotenv()
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        logger.error(e.message)
        sys.exit(1)

    configure_logging(settings)

    if args.command == "create-staff":
        sys.exit(create_staff(settings, args))

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("Server stopped by user")


if __name__ == "__main__":
    run()
