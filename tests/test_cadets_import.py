from __future__ import annotations

import pytest
from sqlalchemy import select

from keel.core.errors import WorkbookError
from keel.models import User
from keel.services.importers import get_importer

HEADERS = ["full_name", "email", "trainee_type", "nationality"]


@pytest.fixture()
def cadets():
    return get_importer("cadets")


def test_ready_row_with_derivation(cadets, db, xlsx):
    content = xlsx(HEADERS, [["  Jane   Doe ", " Jane.Doe@Example.com ", "deck cadet", "indian"]])
    result = cadets.preview(content, db)

    assert result.summary.total == 1
    row = result.rows[0]
    assert row.row_number == 1
    assert row.status == "READY"
    assert row.issues == []
    assert row.normalized["full_name"] == "Jane Doe"
    assert row.normalized["email"] == "jane.doe@example.com"
    assert row.normalized["trainee_type"] == "DECK_CADET"
    assert row.normalized["nationality"] == "Indian"
    assert row.derived == {"rank_label": "Deck Cadet", "category": "Cadet", "trb_applicable": True}


def test_rating_is_not_trb_applicable(cadets, db, xlsx):
    content = xlsx(HEADERS, [["Sam Rating", "sam@example.com", "ENGINE_RATING", "Filipino"]])
    row = cadets.preview(content, db).rows[0]
    assert row.derived["category"] == "Rating"
    assert row.derived["trb_applicable"] is False


def test_missing_fields_fail(cadets, db, xlsx):
    content = xlsx(HEADERS, [["", "", "", "Greek"]])
    row = cadets.preview(content, db).rows[0]
    assert row.status == "FAIL"
    assert "full_name is required" in row.issues
    assert "email is required" in row.issues
    assert "trainee_type is required" in row.issues
    assert row.derived == {}


def test_invalid_email_and_unknown_type_fail(cadets, db, xlsx):
    content = xlsx(HEADERS, [["Bad Row", "not-an-email", "CAPTAIN", "Greek"]])
    row = cadets.preview(content, db).rows[0]
    assert row.status == "FAIL"
    assert any(i.startswith("email is not valid") for i in row.issues)
    assert any(i.startswith("trainee_type must be one of") for i in row.issues)


def test_existing_email_skips_case_insensitively(cadets, db, xlsx, add_cadet):
    add_cadet("Existing@Example.com")
    content = xlsx(HEADERS, [["Existing Person", "existing@example.com", "DECK_CADET", "Indian"]])
    row = cadets.preview(content, db).rows[0]
    assert row.status == "SKIP"
    assert row.issues == ["email already exists (row will be skipped)"]


def test_duplicate_email_in_file_skips_later_row(cadets, db, xlsx):
    content = xlsx(HEADERS, [
        ["First", "dup@example.com", "DECK_CADET", "Indian"],
        ["Second", "DUP@example.com", "ENGINE_CADET", "Indian"],
    ])
    rows = cadets.preview(content, db).rows
    assert [r.status for r in rows] == ["READY", "SKIP"]
    assert "duplicates row 1" in rows[1].issues[0]


def test_fail_takes_precedence_over_skip(cadets, db, xlsx, add_cadet):
    add_cadet("taken@example.com")
    content = xlsx(HEADERS, [["", "taken@example.com", "DECK_CADET", "Indian"]])
    row = cadets.preview(content, db).rows[0]
    assert row.status == "FAIL"
    assert row.issues == ["full_name is required"]


def test_overrides_and_missing_nationality_warn(cadets, db, xlsx):
    headers = ["full_name", "email", "trainee_type", "rank_label", "trb_applicable"]
    content = xlsx(headers, [["Override", "o@example.com", "DECK_CADET", "Junior Officer", "FALSE"]])
    row = cadets.preview(content, db).rows[0]
    assert row.status == "READY_WITH_WARNINGS"
    assert any(i.startswith("rank_label overridden") for i in row.issues)
    assert any(i.startswith("trb_applicable overridden") for i in row.issues)
    assert "nationality not provided" in row.issues


def test_matching_override_does_not_warn(cadets, db, xlsx):
    headers = HEADERS + ["category"]
    content = xlsx(headers, [["Same", "same@example.com", "ETO_CADET", "Croatian", "cadet"]])
    assert cadets.preview(content, db).rows[0].status == "READY"


def test_unexpected_column_is_a_request_error(cadets, db, xlsx):
    content = xlsx(HEADERS + ["shoe_size"], [["A", "a@example.com", "DECK_CADET", "Indian", 42]])
    with pytest.raises(WorkbookError, match='Unexpected column "shoe_size"'):
        cadets.preview(content, db)


def test_missing_required_column_is_a_request_error(cadets, db, xlsx):
    content = xlsx(["full_name", "email"], [["A", "a@example.com"]])
    with pytest.raises(WorkbookError, match='Missing required column "trainee_type"'):
        cadets.preview(content, db)


def test_header_aliases(cadets, db, xlsx):
    content = xlsx(["Name", "Email Address", "Trainee Type", "Nationality"],
                   [["Alias", "alias@example.com", "deck_cadet", "Indian"]])
    row = cadets.preview(content, db).rows[0]
    assert row.status == "READY"
    assert row.normalized["full_name"] == "Alias"


def test_commit_uses_overrides_and_derived_values(cadets, db, xlsx):
    headers = ["full_name", "email", "trainee_type", "nationality", "rank_label"]
    content = xlsx(headers, [
        ["Plain", "plain@example.com", "ENGINE_CADET", "Indian", None],
        ["Custom", "custom@example.com", "DECK_CADET", "Indian", "Trainee OOW"],
    ])
    result = cadets.commit(content, db, actor_user_id=1)
    assert result.summary.created == 2

    users = {u.email: u for u in db.scalars(select(User).where(User.email.like("%@example.com")))}
    assert users["plain@example.com"].rank_label == "Engine Cadet"
    assert users["plain@example.com"].role.role_name == "CADET"
    assert users["plain@example.com"].password_hash == "TEMP"
    assert users["custom@example.com"].rank_label == "Trainee OOW"
    assert users["custom@example.com"].trb_applicable is True


def test_overlong_full_name_fails(cadets, db, xlsx):
    content = xlsx(HEADERS, [["N" * 300, "long@example.com", "DECK_CADET", "Indian"]])
    row = cadets.preview(content, db).rows[0]
    assert row.status == "FAIL"
    assert row.issues == ["full_name must be at most 120 characters (got 300)"]
    assert row.derived == {}
