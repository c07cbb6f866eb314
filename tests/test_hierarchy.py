from __future__ import annotations

import threading
from pathlib import Path

import pytest

from overtime.database import Database
from overtime.engine import OvertimeEngine
from overtime.errors import AuthorizationError, ConflictError, NotFoundError
from overtime.models import Actor


@pytest.fixture()
def engine(tmp_path: Path) -> OvertimeEngine:
    database = Database(tmp_path / "overtime.sqlite3")
    database.initialize()
    return OvertimeEngine(database)


def test_get_or_create_team_is_idempotent(engine: OvertimeEngine) -> None:
    manager = engine.database.create_user("Manager", "m@example.com", "secret", "manager")

    first = engine.hierarchy.get_or_create_team(manager.id)
    second = engine.hierarchy.get_or_create_team(manager.id)

    assert first == second
    assert first.name == "My Team"
    assert engine.hierarchy.team_of_manager(manager.id) == first


def test_concurrent_get_or_create_converges_on_one_team(engine: OvertimeEngine) -> None:
    manager = engine.database.create_user("Manager", "m@example.com", "secret", "manager")
    barrier = threading.Barrier(8)
    results = []
    errors = []

    def worker() -> None:
        barrier.wait()
        try:
            results.append(engine.hierarchy.get_or_create_team(manager.id).id)
        except Exception as exc:  # pragma: no cover - reported by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(results) == 8
    assert len(set(results)) == 1


def test_register_manager_creates_team(engine: OvertimeEngine) -> None:
    manager = engine.register_user("Manager", "m@example.com", "secret", "manager")
    member = engine.register_user("Member", "u@example.com", "secret")

    assert engine.hierarchy.team_of_manager(manager.id) is not None
    assert engine.hierarchy.team_of_manager(member.id) is None


def test_membership_lookups(engine: OvertimeEngine) -> None:
    manager = engine.register_user("Manager", "m@example.com", "secret", "manager")
    actor = Actor.from_user(manager)
    member = engine.create_team_member(actor, "Zed", "z@example.com", "secret")
    other = engine.create_team_member(actor, "Amy", "a@example.com", "secret")
    team = engine.hierarchy.get_or_create_team(manager.id)

    assert engine.hierarchy.is_member(team.id, member.id)
    assert engine.hierarchy.resolve_manager_of(member.id) == team.id
    assert engine.hierarchy.resolve_manager_of(manager.id) is None
    assert [user.name for user in engine.list_team_members(actor)] == ["Amy", "Zed"]
    assert other.role == "member"


def test_user_belongs_to_at_most_one_team(engine: OvertimeEngine) -> None:
    first = engine.register_user("First", "first@example.com", "secret", "manager")
    second = engine.register_user("Second", "second@example.com", "secret", "manager")
    member = engine.register_user("Member", "u@example.com", "secret")

    engine.add_team_member(Actor.from_user(first), member.id)
    with pytest.raises(ConflictError):
        engine.add_team_member(Actor.from_user(second), member.id)


def test_manager_can_join_a_senior_team(engine: OvertimeEngine) -> None:
    senior = engine.register_user("Senior", "senior@example.com", "secret", "manager")
    junior = engine.register_user("Junior", "junior@example.com", "secret", "manager")

    engine.add_team_member(Actor.from_user(senior), junior.id)

    assert engine.hierarchy.reporting_chain(junior.id) == [senior.id]
    assert engine.hierarchy.reporting_chain(senior.id) == []


def test_hierarchy_cycles_are_rejected(engine: OvertimeEngine) -> None:
    senior = engine.register_user("Senior", "senior@example.com", "secret", "manager")
    junior = engine.register_user("Junior", "junior@example.com", "secret", "manager")
    engine.add_team_member(Actor.from_user(senior), junior.id)

    with pytest.raises(ConflictError):
        engine.add_team_member(Actor.from_user(junior), senior.id)
    with pytest.raises(ConflictError):
        engine.add_team_member(Actor.from_user(senior), senior.id)


def test_reporting_chain_follows_several_levels(engine: OvertimeEngine) -> None:
    top = engine.register_user("Top", "top@example.com", "secret", "manager")
    middle = engine.register_user("Middle", "middle@example.com", "secret", "manager")
    bottom = engine.register_user("Bottom", "bottom@example.com", "secret", "manager")
    engine.add_team_member(Actor.from_user(top), middle.id)
    engine.add_team_member(Actor.from_user(middle), bottom.id)

    assert engine.hierarchy.reporting_chain(bottom.id) == [middle.id, top.id]
    with pytest.raises(ConflictError):
        engine.add_team_member(Actor.from_user(bottom), top.id)


def test_adding_unknown_user_is_not_found(engine: OvertimeEngine) -> None:
    manager = engine.register_user("Manager", "m@example.com", "secret", "manager")
    with pytest.raises(NotFoundError):
        engine.add_team_member(Actor.from_user(manager), 4242)


def test_members_cannot_manage_teams(engine: OvertimeEngine) -> None:
    member = engine.register_user("Member", "u@example.com", "secret")
    other = engine.register_user("Other", "o@example.com", "secret")
    with pytest.raises(AuthorizationError):
        engine.add_team_member(Actor.from_user(member), other.id)
    with pytest.raises(AuthorizationError):
        engine.list_team_members(Actor.from_user(member))
