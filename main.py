"""Command-line interface for the overtime accounting service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from datetime import date
from getpass import getpass
from typing import Sequence

try:
    import httpx
except ImportError as exc:  # pragma: no cover - exercised in environments missing deps
    raise SystemExit(
        "The 'httpx' package is required. Execute `pip install -e .` to install dependencies."
    ) from exc

from overtime.application import build_database, resolve_settings
from overtime.config import Settings
from overtime.database import Database
from overtime.engine import OvertimeEngine
from overtime.errors import OvertimeError
from overtime.models import ROLES, ROLE_MEMBER

logger = logging.getLogger("overtime.main")

_DEFAULT_SERVICE_URL = "http://localhost:8000"
PASSWORD_MIN_LENGTH = 6


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Overtime accounting service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML settings file (defaults to OVERTIME_CONFIG or config/overtime.yaml)",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (overrides the settings file)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Apply pending database migrations")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port for the API (default: 8000)")
    serve_parser.add_argument("--ssl-certfile", default=None, help="Path to the TLS certificate chain in PEM format")
    serve_parser.add_argument("--ssl-keyfile", default=None, help="Path to the TLS private key in PEM format")

    admin_parser = subparsers.add_parser("admin", help="Launch the interactive administration console")
    admin_parser.add_argument(
        "--service-url",
        default=None,
        help=f"Base URL of a running overtime service (default: {_DEFAULT_SERVICE_URL})",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-db"}

    # Global options may precede the subcommand; an absent subcommand means serve.
    global_args: list[str] = []
    while args_list and args_list[0] in ("--config", "--db") and len(args_list) >= 2:
        global_args.extend(args_list[:2])
        args_list = args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*global_args, *args_list])
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args([*global_args, *args_list])
            args_list = ["serve", *args_list]

    return parser.parse_args([*global_args, *args_list])


def _serve(
    *,
    database: Database,
    settings: Settings,
    host: str,
    port: int,
    ssl_certfile: str | None,
    ssl_keyfile: str | None,
) -> None:
    from overtime.api import create_app
    import uvicorn

    if bool(ssl_certfile) ^ bool(ssl_keyfile):
        raise SystemExit("Both --ssl-certfile and --ssl-keyfile must be provided together.")

    protocol = "https" if ssl_certfile and ssl_keyfile else "http"
    logger.info("Starting overtime API on %s://%s:%s", protocol, host, port)

    app = create_app(database=database, settings=settings)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        ssl_certfile=ssl_certfile,
        ssl_keyfile=ssl_keyfile,
    )


def _run_admin_cli(engine: OvertimeEngine, *, default_service_url: str | None = None) -> None:
    """Provide an interactive console for administrators."""

    service_url = default_service_url or _DEFAULT_SERVICE_URL

    print("Overtime Service Administration Console")
    print("Press Ctrl+C at any time to exit.\n")

    try:
        while True:
            print("Select an option:")
            print("  1) List all users")
            print("  2) Add a new user")
            print("  3) Show team totals for a month")
            print("  4) Exit")

            choice = input("Enter choice [1-4]: ").strip()

            if choice == "1":
                _list_users(engine.database)
            elif choice == "2":
                _add_user(engine)
            elif choice == "3":
                _show_team_totals(service_url)
            elif choice == "4":
                print("Goodbye!")
                return
            else:
                print("Invalid selection. Please choose a number from the menu.\n")

            print()
    except KeyboardInterrupt:
        print("\nExiting administration console.")


def _list_users(database: Database) -> None:
    users = database.list_users()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Email':<32}  {'Role':<8}  Created")
    print("-" * 90)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        email = user.email or "<no email>"
        print(f"{user.id:>4}  {user.name:<24}  {email:<32}  {user.role:<8}  {created}")


def _add_user(engine: OvertimeEngine) -> None:
    print("\nCreate a new user (leave the name blank to cancel).")
    name = input("Name: ").strip()
    if not name:
        print("User creation cancelled.")
        return

    email = input("Email address: ").strip() or None
    role = input(f"Role [{'/'.join(sorted(ROLES))}] (default {ROLE_MEMBER}): ").strip().lower() or ROLE_MEMBER
    if role not in ROLES:
        print(f"Unknown role '{role}'.")
        return

    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.")
        return

    try:
        user = engine.register_user(name, email, password, role)
    except OvertimeError as exc:
        print(f"Failed to create user: {exc}")
        return

    print(f"Created {user.role} #{user.id}: {user.name} <{user.email or 'no email set'}>")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {PASSWORD_MIN_LENGTH} characters): ")
        if len(password) < PASSWORD_MIN_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _show_team_totals(base_url: str) -> None:
    email = os.getenv("OVERTIME_CLI_EMAIL")
    password = os.getenv("OVERTIME_CLI_PASSWORD")
    if not email or not password:
        print(
            "No manager credentials configured. Set OVERTIME_CLI_EMAIL and OVERTIME_CLI_PASSWORD "
            "before running this command."
        )
        return

    month = input(f"Month [YYYY-MM] (default {date.today():%Y-%m}): ").strip() or f"{date.today():%Y-%m}"
    endpoint = base_url.rstrip("/") + "/v1/manager/totals"

    try:
        response = httpx.get(endpoint, params={"month": month}, auth=(email, password), timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact overtime service: {exc}")
        return

    if response.status_code == 401:
        print("Authentication failed when querying the overtime service. Verify the configured credentials.")
        return
    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return

    try:
        payload = response.json()
    except ValueError:
        print("Service returned an unexpected response format.")
        return
    totals = payload.get("totals", [])

    if not totals:
        print(f"No team members found for {email}.")
        return

    print(f"Totals for {payload.get('month', month)} (minutes):")
    print(f"{'Member':<24}  {'Appr 150%':>9}  {'Appr 200%':>9}  {'Pend 150%':>9}  {'Pend 200%':>9}")
    for row in totals:
        print(
            f"{row.get('user_name', '?'):<24}  {row.get('approved_150', 0):>9}  {row.get('approved_200', 0):>9}"
            f"  {row.get('pending_150', 0):>9}  {row.get('pending_200', 0):>9}"
        )


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = resolve_settings(args.config)
    database = build_database(settings, database_path=args.db_path)
    logger.info("Database ready at %s (schema version %s)", database.path, database.schema_version())

    if args.command == "serve":
        _serve(
            database=database,
            settings=settings,
            host=args.host,
            port=args.port,
            ssl_certfile=args.ssl_certfile,
            ssl_keyfile=args.ssl_keyfile,
        )
    elif args.command == "admin":
        _run_admin_cli(OvertimeEngine(database, settings), default_service_url=args.service_url)
    elif args.command == "init-db":
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
