"""SQLite-backed persistence for users, teams, periods and overtime entries."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from passlib.context import CryptContext

from .errors import ConflictError, NotFoundError, PeriodClosedError, ValidationError
from .models import (
    ROLES,
    ROLE_MEMBER,
    STATUS_PENDING,
    STATUSES,
    MonthlyTotal,
    OvertimeEntry,
    OvertimePeriod,
    Split,
    Team,
    TeamMembership,
    User,
)

logger = logging.getLogger("overtime.database")

DEFAULT_BUSY_TIMEOUT = 5.0

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# Each migration is applied once, in order, inside its own transaction.
MIGRATIONS: Tuple[Tuple[int, str, Tuple[str, ...]], ...] = (
    (
        1,
        "create_users_and_teams",
        (
            """
            CREATE TABLE users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT UNIQUE,
                password_hash TEXT NOT NULL,
                role TEXT NOT NULL CHECK (role IN ('admin', 'manager', 'member')),
                created_at TEXT NOT NULL
            )
            """,
            """
            CREATE TABLE teams (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                manager_id INTEGER NOT NULL UNIQUE REFERENCES users(id) ON DELETE CASCADE,
                name TEXT NOT NULL
            )
            """,
            """
            CREATE TABLE team_members (
                team_id INTEGER NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
                user_id INTEGER NOT NULL UNIQUE REFERENCES users(id) ON DELETE CASCADE,
                PRIMARY KEY (team_id, user_id)
            )
            """,
        ),
    ),
    (
        2,
        "create_overtime_periods",
        (
            """
            CREATE TABLE overtime_periods (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                start_date TEXT NOT NULL,
                end_date TEXT NOT NULL,
                opened_by_manager_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
                reason TEXT,
                created_at TEXT NOT NULL,
                CHECK (end_date >= start_date)
            )
            """,
            "CREATE INDEX idx_periods_user_dates ON overtime_periods(user_id, start_date, end_date)",
        ),
    ),
    (
        3,
        "create_overtime_entries",
        (
            """
            CREATE TABLE overtime_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                entry_date TEXT NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT NOT NULL,
                minutes_150 INTEGER NOT NULL CHECK (minutes_150 >= 0),
                minutes_200 INTEGER NOT NULL CHECK (minutes_200 >= 0),
                is_public_holiday INTEGER NOT NULL DEFAULT 0,
                is_designated_day_off INTEGER NOT NULL DEFAULT 0,
                note TEXT,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'approved', 'rejected')),
                created_at TEXT NOT NULL
            )
            """,
            "CREATE UNIQUE INDEX idx_entries_user_date ON overtime_entries(user_id, entry_date)",
            "CREATE INDEX idx_entries_date ON overtime_entries(entry_date)",
        ),
    ),
)


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "overtime.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


_COVERING_PERIOD_SQL = """
    SELECT 1 FROM overtime_periods
     WHERE user_id = ? AND start_date <= ? AND end_date >= ?
     LIMIT 1
"""


def _is_foreign_key_failure(exc: sqlite3.IntegrityError) -> bool:
    return "FOREIGN KEY" in str(exc).upper()


class Database:
    """Wrapper around SQLite that owns the schema and every query."""

    def __init__(self, path: Path, *, busy_timeout: float = DEFAULT_BUSY_TIMEOUT) -> None:
        _ensure_directory(path)
        self._path = path
        self._busy_timeout = busy_timeout

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, timeout=self._busy_timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block under ``BEGIN IMMEDIATE`` so concurrent writers serialize."""

        conn = self._connect()
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Schema migrations
    # ------------------------------------------------------------------
    def initialize(self) -> List[int]:
        """Apply pending schema migrations and return the versions applied."""

        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    applied_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

        applied: List[int] = []
        for version, name, statements in MIGRATIONS:
            with self._transaction() as conn:
                row = conn.execute(
                    "SELECT 1 FROM schema_migrations WHERE version = ?",
                    (version,),
                ).fetchone()
                if row is not None:
                    continue
                for statement in statements:
                    conn.execute(statement)
                conn.execute(
                    "INSERT INTO schema_migrations (version, name, applied_at) VALUES (?, ?, ?)",
                    (version, name, _serialize_datetime(_current_timestamp())),
                )
            logger.info("Applied schema migration %s (%s) to %s", version, name, self._path)
            applied.append(version)
        return applied

    def schema_version(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT MAX(version) AS version FROM schema_migrations").fetchone()
        if row is None or row["version"] is None:
            return 0
        return int(row["version"])

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        name: str,
        email: Optional[str],
        password: str,
        role: str = ROLE_MEMBER,
    ) -> User:
        """Create a new user account with a hashed password."""

        with self._connect() as conn:
            return self._insert_user(conn, name, email, password, role)

    def create_member(self, team_id: int, name: str, email: Optional[str], password: str) -> User:
        """Create a member account and its team membership in one transaction."""

        with self._transaction() as conn:
            user = self._insert_user(conn, name, email, password, ROLE_MEMBER)
            try:
                conn.execute(
                    "INSERT INTO team_members (team_id, user_id) VALUES (?, ?)",
                    (team_id, user.id),
                )
            except sqlite3.IntegrityError as exc:
                raise NotFoundError(f"Team {team_id} does not exist") from exc
        return user

    def _insert_user(
        self,
        conn: sqlite3.Connection,
        name: str,
        email: Optional[str],
        password: str,
        role: str,
    ) -> User:
        normalized_name = name.strip()
        if not normalized_name:
            raise ValidationError("Name must not be empty")
        if not password:
            raise ValidationError("Password must not be empty")
        if role not in ROLES:
            raise ValidationError(f"Unknown role: {role}")

        created_at = _current_timestamp()
        normalized_email = email.strip().lower() if email else None
        password_hash = _hash_password(password)

        try:
            cursor = conn.execute(
                """
                INSERT INTO users (name, email, password_hash, role, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    normalized_name,
                    normalized_email,
                    password_hash,
                    role,
                    _serialize_datetime(created_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError("A user with that email already exists") from exc

        return User(
            id=int(cursor.lastrowid),
            name=normalized_name,
            email=normalized_email,
            role=role,
            created_at=created_at,
        )

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_users(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at DESC, id DESC").fetchall()
        return [self._row_to_user(row) for row in rows]

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        stored_hash = row["password_hash"]
        if not stored_hash or not _verify_password(password, stored_hash):
            return None
        return self._row_to_user(row)

    def delete_user(self, user_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Teams and memberships
    # ------------------------------------------------------------------
    def get_team(self, team_id: int) -> Optional[Team]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM teams WHERE id = ?", (team_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_team(row)

    def get_team_by_manager(self, manager_id: int) -> Optional[Team]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM teams WHERE manager_id = ?",
                (manager_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_team(row)

    def create_team(self, manager_id: int, name: str) -> Team:
        """Insert a team; the unique ``manager_id`` index rejects a second one."""

        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO teams (manager_id, name) VALUES (?, ?)",
                    (manager_id, name),
                )
            except sqlite3.IntegrityError as exc:
                if _is_foreign_key_failure(exc):
                    raise NotFoundError(f"User {manager_id} does not exist") from exc
                raise ConflictError(f"Manager {manager_id} already owns a team") from exc
            team_id = cursor.lastrowid
        return Team(id=int(team_id), manager_id=manager_id, name=name)

    def get_membership(self, user_id: int) -> Optional[TeamMembership]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT team_id, user_id FROM team_members WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return TeamMembership(team_id=int(row["team_id"]), user_id=int(row["user_id"]))

    def add_membership(self, team_id: int, user_id: int) -> TeamMembership:
        with self._connect() as conn:
            try:
                conn.execute(
                    "INSERT INTO team_members (team_id, user_id) VALUES (?, ?)",
                    (team_id, user_id),
                )
            except sqlite3.IntegrityError as exc:
                if _is_foreign_key_failure(exc):
                    raise NotFoundError(f"Team {team_id} or user {user_id} does not exist") from exc
                raise ConflictError(f"User {user_id} already belongs to a team") from exc
        return TeamMembership(team_id=team_id, user_id=user_id)

    def list_team_members(self, team_id: int) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT u.*
                  FROM team_members tm
                  JOIN users u ON u.id = tm.user_id
                 WHERE tm.team_id = ?
                 ORDER BY u.name ASC, u.id ASC
                """,
                (team_id,),
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    # ------------------------------------------------------------------
    # Overtime periods
    # ------------------------------------------------------------------
    def create_period(
        self,
        user_id: int,
        *,
        start_date: str,
        end_date: str,
        opened_by_manager_id: Optional[int],
        reason: Optional[str],
    ) -> OvertimePeriod:
        """Insert a period unless it overlaps an existing one for the user."""

        created_at = _current_timestamp()
        with self._transaction() as conn:
            overlap = conn.execute(
                """
                SELECT id FROM overtime_periods
                 WHERE user_id = ? AND NOT (end_date < ? OR start_date > ?)
                 LIMIT 1
                """,
                (user_id, start_date, end_date),
            ).fetchone()
            if overlap is not None:
                raise ConflictError(
                    f"Period {start_date}..{end_date} overlaps existing period {overlap['id']}"
                )
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO overtime_periods (
                        user_id, start_date, end_date, opened_by_manager_id, reason, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        start_date,
                        end_date,
                        opened_by_manager_id,
                        reason,
                        _serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if _is_foreign_key_failure(exc):
                    raise NotFoundError(f"User {user_id} does not exist") from exc
                raise ValidationError("end_date must be on or after start_date") from exc
            period_id = cursor.lastrowid

        return OvertimePeriod(
            id=int(period_id),
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
            opened_by_manager_id=opened_by_manager_id,
            reason=reason,
            created_at=created_at,
        )

    def get_period(self, period_id: int) -> Optional[OvertimePeriod]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM overtime_periods WHERE id = ?",
                (period_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_period(row)

    def list_periods(self, user_id: int) -> List[OvertimePeriod]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM overtime_periods
                 WHERE user_id = ?
                 ORDER BY start_date DESC, id DESC
                """,
                (user_id,),
            ).fetchall()
        return [self._row_to_period(row) for row in rows]

    def has_covering_period(self, user_id: int, date: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(_COVERING_PERIOD_SQL, (user_id, date, date)).fetchone()
        return row is not None

    def delete_period(self, period_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM overtime_periods WHERE id = ?", (period_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Overtime entries
    # ------------------------------------------------------------------
    def create_entry(
        self,
        user_id: int,
        *,
        date: str,
        start_time: str,
        end_time: str,
        split: Split,
        is_public_holiday: bool,
        is_designated_day_off: bool,
        note: Optional[str],
    ) -> OvertimeEntry:
        """Insert a pending entry together with its computed split.

        The covering-period check and the insert share one transaction, so a
        period closed concurrently cannot admit the entry.
        """

        created_at = _current_timestamp()
        with self._transaction() as conn:
            if conn.execute(_COVERING_PERIOD_SQL, (user_id, date, date)).fetchone() is None:
                raise PeriodClosedError(user_id, date)
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO overtime_entries (
                        user_id, entry_date, start_time, end_time, minutes_150, minutes_200,
                        is_public_holiday, is_designated_day_off, note, status, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        date,
                        start_time,
                        end_time,
                        split.minutes_150,
                        split.minutes_200,
                        int(bool(is_public_holiday)),
                        int(bool(is_designated_day_off)),
                        note,
                        STATUS_PENDING,
                        _serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if _is_foreign_key_failure(exc):
                    raise NotFoundError(f"User {user_id} does not exist") from exc
                raise ConflictError(f"An overtime entry already exists for {date}") from exc
            entry_id = cursor.lastrowid

        return OvertimeEntry(
            id=int(entry_id),
            user_id=user_id,
            date=date,
            start_time=start_time,
            end_time=end_time,
            minutes_150=split.minutes_150,
            minutes_200=split.minutes_200,
            is_public_holiday=bool(is_public_holiday),
            is_designated_day_off=bool(is_designated_day_off),
            note=note,
            status=STATUS_PENDING,
            created_at=created_at,
        )

    def get_entry(self, entry_id: int) -> Optional[OvertimeEntry]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM overtime_entries WHERE id = ?",
                (entry_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    def list_entries_for_user(self, user_id: int, start_date: str, end_date: str) -> List[OvertimeEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM overtime_entries
                 WHERE user_id = ? AND entry_date BETWEEN ? AND ?
                 ORDER BY entry_date ASC
                """,
                (user_id, start_date, end_date),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def list_entries_for_team(self, team_id: int, start_date: str, end_date: str) -> List[OvertimeEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT e.*, u.name AS user_name
                  FROM overtime_entries e
                  JOIN team_members tm ON tm.user_id = e.user_id
                  JOIN users u ON u.id = e.user_id
                 WHERE tm.team_id = ? AND e.entry_date BETWEEN ? AND ?
                 ORDER BY e.entry_date ASC, u.name ASC
                """,
                (team_id, start_date, end_date),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def update_entry_status(
        self,
        entry_id: int,
        status: str,
        *,
        expected_status: Optional[str] = None,
    ) -> bool:
        """Overwrite an entry's status.

        With ``expected_status`` the update only applies while the stored
        status still matches, which lets callers detect a concurrent change.
        """

        if status not in STATUSES:
            raise ValidationError(f"Unknown status: {status}")
        query = "UPDATE overtime_entries SET status = ? WHERE id = ?"
        params: Sequence[object] = (status, entry_id)
        if expected_status is not None:
            query += " AND status = ?"
            params = (status, entry_id, expected_status)
        with self._connect() as conn:
            cursor = conn.execute(query, params)
            return cursor.rowcount > 0

    def delete_entry(self, user_id: int, entry_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM overtime_entries WHERE user_id = ? AND id = ?",
                (user_id, entry_id),
            )
            return cursor.rowcount > 0

    def delete_entries_for_team(self, team_id: int) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM overtime_entries
                 WHERE user_id IN (SELECT user_id FROM team_members WHERE team_id = ?)
                """,
                (team_id,),
            )
            return cursor.rowcount

    def monthly_totals(self, team_id: int, start_date: str, end_date: str) -> List[MonthlyTotal]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT u.id AS user_id, u.name AS user_name,
                       COALESCE(SUM(CASE WHEN e.status = 'approved' THEN e.minutes_150 END), 0) AS approved_150,
                       COALESCE(SUM(CASE WHEN e.status = 'approved' THEN e.minutes_200 END), 0) AS approved_200,
                       COALESCE(SUM(CASE WHEN e.status = 'pending' THEN e.minutes_150 END), 0) AS pending_150,
                       COALESCE(SUM(CASE WHEN e.status = 'pending' THEN e.minutes_200 END), 0) AS pending_200
                  FROM team_members tm
                  JOIN users u ON u.id = tm.user_id
                  LEFT JOIN overtime_entries e
                         ON e.user_id = u.id AND e.entry_date BETWEEN ? AND ?
                 WHERE tm.team_id = ?
                 GROUP BY u.id, u.name
                 ORDER BY u.name ASC, u.id ASC
                """,
                (start_date, end_date, team_id),
            ).fetchall()
        return [
            MonthlyTotal(
                user_id=int(row["user_id"]),
                user_name=str(row["user_name"]),
                approved_150=int(row["approved_150"]),
                approved_200=int(row["approved_200"]),
                pending_150=int(row["pending_150"]),
                pending_200=int(row["pending_200"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=row["email"],
            role=str(row["role"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_team(self, row: sqlite3.Row) -> Team:
        return Team(id=int(row["id"]), manager_id=int(row["manager_id"]), name=str(row["name"]))

    def _row_to_period(self, row: sqlite3.Row) -> OvertimePeriod:
        opened_by = row["opened_by_manager_id"]
        return OvertimePeriod(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            start_date=str(row["start_date"]),
            end_date=str(row["end_date"]),
            opened_by_manager_id=int(opened_by) if opened_by is not None else None,
            reason=row["reason"],
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_entry(self, row: sqlite3.Row) -> OvertimeEntry:
        keys = row.keys()
        return OvertimeEntry(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            date=str(row["entry_date"]),
            start_time=str(row["start_time"]),
            end_time=str(row["end_time"]),
            minutes_150=int(row["minutes_150"]),
            minutes_200=int(row["minutes_200"]),
            is_public_holiday=bool(row["is_public_holiday"]),
            is_designated_day_off=bool(row["is_designated_day_off"]),
            note=row["note"],
            status=str(row["status"]),
            created_at=_parse_datetime(str(row["created_at"])),
            user_name=row["user_name"] if "user_name" in keys else None,
        )


__all__ = ["Database", "MIGRATIONS", "resolve_database_path"]
