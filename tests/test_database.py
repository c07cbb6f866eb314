from __future__ import annotations

from pathlib import Path

import pytest

from overtime.database import MIGRATIONS, Database
from overtime.errors import ConflictError, NotFoundError, PeriodClosedError, ValidationError
from overtime.models import Split


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db_path = tmp_path / "overtime.sqlite3"
    db = Database(db_path)
    db.initialize()
    return db


def _open_january(database: Database, user_id: int, opened_by: int | None = None) -> None:
    database.create_period(
        user_id,
        start_date="2024-01-01",
        end_date="2024-01-31",
        opened_by_manager_id=opened_by,
        reason=None,
    )


def test_migrations_run_once_and_record_version(tmp_path: Path) -> None:
    db = Database(tmp_path / "fresh.sqlite3")
    applied = db.initialize()

    assert applied == [version for version, _, _ in MIGRATIONS]
    assert db.schema_version() == MIGRATIONS[-1][0]
    assert db.initialize() == []


def test_create_and_authenticate_user(database: Database) -> None:
    user = database.create_user("Alice", "Alice@Example.com ", "Sup3rSecurePwd!", "manager")

    assert user.email == "alice@example.com"
    assert user.role == "manager"
    authenticated = database.authenticate_user("alice@example.com", "Sup3rSecurePwd!")
    assert authenticated is not None
    assert authenticated.id == user.id
    assert database.authenticate_user("alice@example.com", "wrong") is None
    assert database.authenticate_user("nobody@example.com", "Sup3rSecurePwd!") is None


def test_duplicate_email_is_a_conflict(database: Database) -> None:
    database.create_user("Alice", "alice@example.com", "secret-one")
    with pytest.raises(ConflictError):
        database.create_user("Alicia", "ALICE@example.com", "secret-two")


def test_user_input_is_validated(database: Database) -> None:
    with pytest.raises(ValidationError):
        database.create_user("  ", "x@example.com", "secret")
    with pytest.raises(ValidationError):
        database.create_user("Bob", "bob@example.com", "")
    with pytest.raises(ValidationError):
        database.create_user("Bob", "bob@example.com", "secret", "owner")


def test_team_manager_is_unique(database: Database) -> None:
    manager = database.create_user("Manager", "m@example.com", "secret", "manager")
    database.create_team(manager.id, "My Team")
    with pytest.raises(ConflictError):
        database.create_team(manager.id, "Second Team")


def test_team_for_unknown_manager_is_not_found(database: Database) -> None:
    with pytest.raises(NotFoundError):
        database.create_team(999, "Ghost Team")


def test_membership_is_unique_per_user(database: Database) -> None:
    first = database.create_user("First", "first@example.com", "secret", "manager")
    second = database.create_user("Second", "second@example.com", "secret", "manager")
    member = database.create_user("Member", "member@example.com", "secret")
    team_a = database.create_team(first.id, "A")
    team_b = database.create_team(second.id, "B")

    database.add_membership(team_a.id, member.id)
    with pytest.raises(ConflictError):
        database.add_membership(team_b.id, member.id)


def test_entry_uniqueness_is_enforced_by_storage(database: Database) -> None:
    member = database.create_user("Member", "member@example.com", "secret")
    _open_january(database, member.id)
    split = Split(minutes_150=60, minutes_200=0, total_minutes=60)
    kwargs = dict(
        date="2024-01-02",
        start_time="18:00",
        end_time="19:00",
        split=split,
        is_public_holiday=False,
        is_designated_day_off=False,
        note=None,
    )
    entry = database.create_entry(member.id, **kwargs)
    assert entry.status == "pending"

    with pytest.raises(ConflictError):
        database.create_entry(member.id, **kwargs)


def test_overlapping_period_rejected_inside_transaction(database: Database) -> None:
    manager = database.create_user("Manager", "m@example.com", "secret", "manager")
    member = database.create_user("Member", "member@example.com", "secret")
    database.create_period(
        member.id,
        start_date="2024-01-01",
        end_date="2024-01-10",
        opened_by_manager_id=manager.id,
        reason=None,
    )

    with pytest.raises(ConflictError):
        database.create_period(
            member.id,
            start_date="2024-01-10",
            end_date="2024-01-20",
            opened_by_manager_id=manager.id,
            reason=None,
        )
    assert len(database.list_periods(member.id)) == 1


def test_deleting_user_cascades_to_entries_and_memberships(database: Database) -> None:
    manager = database.create_user("Manager", "m@example.com", "secret", "manager")
    member = database.create_user("Member", "member@example.com", "secret")
    team = database.create_team(manager.id, "Team")
    database.add_membership(team.id, member.id)
    _open_january(database, member.id, opened_by=manager.id)
    entry = database.create_entry(
        member.id,
        date="2024-01-02",
        start_time="18:00",
        end_time="19:00",
        split=Split(minutes_150=60, minutes_200=0, total_minutes=60),
        is_public_holiday=False,
        is_designated_day_off=False,
        note="late deploy",
    )

    assert database.delete_user(member.id)
    assert database.get_entry(entry.id) is None
    assert database.get_membership(member.id) is None
    assert database.delete_user(member.id) is False


def test_entry_insert_requires_covering_period(database: Database) -> None:
    member = database.create_user("Member", "member@example.com", "secret")
    period = database.create_period(
        member.id,
        start_date="2024-01-01",
        end_date="2024-01-31",
        opened_by_manager_id=None,
        reason=None,
    )
    database.delete_period(period.id)

    with pytest.raises(PeriodClosedError):
        database.create_entry(
            member.id,
            date="2024-01-02",
            start_time="18:00",
            end_time="19:00",
            split=Split(minutes_150=60, minutes_200=0, total_minutes=60),
            is_public_holiday=False,
            is_designated_day_off=False,
            note=None,
        )
    assert database.list_entries_for_user(member.id, "2024-01-01", "2024-01-31") == []


def test_create_member_adds_account_and_membership(database: Database) -> None:
    manager = database.create_user("Manager", "m@example.com", "secret", "manager")
    team = database.create_team(manager.id, "Team")

    member = database.create_member(team.id, "Member", "member@example.com", "secret")

    assert member.role == "member"
    assert database.get_membership(member.id).team_id == team.id


def test_create_member_leaves_no_account_when_membership_fails(database: Database) -> None:
    with pytest.raises(NotFoundError):
        database.create_member(999, "Orphan", "orphan@example.com", "secret")

    assert database.get_user_by_email("orphan@example.com") is None
