from __future__ import annotations

from pathlib import Path

import pytest

from orgadmin.database import Database


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db_path = tmp_path / "nested" / "orgadmin.sqlite3"
    db = Database(db_path)
    db.initialize()
    return db


def test_initialize_creates_parent_directory_and_is_idempotent(database: Database) -> None:
    assert database.path.parent.is_dir()
    database.initialize()


def test_record_and_consume_issuance_once(database: Database) -> None:
    database.record_issuance("iss-1", "u1")

    assert database.has_issuance_for("u1")
    assert not database.has_issuance_for("u2")

    assert database.consume_issuance("iss-1", "approve") is True
    assert database.consume_issuance("iss-1", "decline") is False

    issuance = database.get_issuance("iss-1")
    assert issuance is not None
    assert issuance.consumed
    assert issuance.outcome == "approve"


def test_duplicate_issuance_is_rejected(database: Database) -> None:
    database.record_issuance("iss-1", "u1")
    with pytest.raises(ValueError):
        database.record_issuance("iss-1", "u1")


def test_consuming_unknown_issuance_fails(database: Database) -> None:
    assert database.consume_issuance("missing", "approve") is False
    assert database.get_issuance("missing") is None


def test_release_makes_issuance_usable_again(database: Database) -> None:
    database.record_issuance("iss-1", "u1")
    database.consume_issuance("iss-1", "decline")

    database.release_issuance("iss-1")

    issuance = database.get_issuance("iss-1")
    assert issuance is not None
    assert not issuance.consumed
    assert issuance.outcome is None
    assert database.consume_issuance("iss-1", "decline") is True


def test_discard_forgets_issuance(database: Database) -> None:
    database.record_issuance("iss-1", "u1")
    database.discard_issuance("iss-1")

    assert database.get_issuance("iss-1") is None
    assert not database.has_issuance_for("u1")


def test_issuances_are_listed_per_user(database: Database) -> None:
    database.record_issuance("iss-1", "u1")
    database.record_issuance("iss-2", "u1")
    database.record_issuance("iss-3", "u2")

    assert [issuance.issuance_id for issuance in database.list_issuances_for("u1")] == ["iss-1", "iss-2"]


def test_pending_cleanup_accumulates_attempts(database: Database) -> None:
    database.add_pending_cleanup("u1", "timeout", 2)
    database.add_pending_cleanup("u1", "still down", 1)

    cleanups = database.list_pending_cleanups()
    assert len(cleanups) == 1
    assert cleanups[0].user_id == "u1"
    assert cleanups[0].attempts == 3
    assert cleanups[0].reason == "still down"
    assert cleanups[0].updated_at >= cleanups[0].created_at

    assert database.has_pending_cleanup("u1")
    assert not database.has_pending_cleanup("u2")

    database.resolve_pending_cleanup("u1")
    assert database.list_pending_cleanups() == []
    assert not database.has_pending_cleanup("u1")
