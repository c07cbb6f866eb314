import argparse
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from overtime.application import build_database, resolve_settings
from overtime.engine import OvertimeEngine
from overtime.errors import OvertimeError
from overtime.models import ROLES, ROLE_MEMBER


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an overtime service user")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--role",
        choices=sorted(ROLES),
        default=ROLE_MEMBER,
        help="Role of the new account (managers get a team immediately)",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to OVERTIME_DB_PATH or data/overtime.sqlite3)",
    )
    parser.add_argument("--config", default=None, help="Path to the YAML settings file")
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < 6:
            print("Password must be at least 6 characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    settings = resolve_settings(args.config)
    database = build_database(settings, database_path=args.db_path)
    engine = OvertimeEngine(database, settings)

    try:
        user = engine.register_user(args.name.strip(), args.email.strip().lower(), password, args.role)
    except OvertimeError as exc:  # duplicates, etc.
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created {user.role} #{user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
