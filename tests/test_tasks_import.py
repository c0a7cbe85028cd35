from __future__ import annotations

import pytest
from sqlalchemy import select

from keel.models import ShipType, TaskTemplate
from keel.services.importers import get_importer

HEADERS = [
    "part_number", "section_name", "title", "description",
    "stcw_reference", "mandatory_for_all", "ship_type", "department",
]


@pytest.fixture()
def tasks():
    return get_importer("tasks")


def _task(part=1, title="Plot a position", ship_type=None, department="Deck", mandatory="TRUE"):
    return [part, "Navigation", title, "Use cross bearings.", "A-II/1", mandatory, ship_type, department]


def test_universal_task_is_ready(tasks, db, xlsx):
    row = tasks.preview(xlsx(HEADERS, [_task()]), db).rows[0]
    assert row.status == "READY"
    assert row.normalized["mandatory_for_all"] is True
    assert row.derived == {"ship_type_id": None, "department": "Deck"}


def test_known_ship_type_resolves(tasks, db, xlsx):
    row = tasks.preview(xlsx(HEADERS, [_task(ship_type="oil tanker")]), db).rows[0]
    tanker = db.scalars(select(ShipType).where(ShipType.name == "Oil Tanker")).one()
    assert row.status == "READY"
    assert row.derived["ship_type_id"] == tanker.id


def test_failures(tasks, db, xlsx):
    rows = tasks.preview(xlsx(HEADERS, [
        _task(part=None),
        _task(part="one"),
        _task(title=None),
        _task(ship_type="Submarine"),
    ]), db).rows
    assert [r.status for r in rows] == ["FAIL"] * 4
    assert rows[0].issues == ["part_number is required"]
    assert rows[1].issues[0].startswith("part_number must be a whole number")
    assert rows[2].issues == ["title is required"]
    assert rows[3].issues == ['Unknown ship type: "Submarine"']


def test_invalid_department_warns_and_falls_back(tasks, db, xlsx):
    row = tasks.preview(xlsx(HEADERS, [_task(department="Bridge")]), db).rows[0]
    assert row.status == "READY_WITH_WARNINGS"
    assert row.derived["department"] == "General"
    assert "defaulting to General" in row.issues[0]


def test_blank_department_defaults_silently(tasks, db, xlsx):
    row = tasks.preview(xlsx(HEADERS, [_task(department=None)]), db).rows[0]
    assert row.status == "READY"
    assert row.derived["department"] == "General"


def test_existing_title_per_ship_type_skips(tasks, db, xlsx):
    db.add(TaskTemplate(part_number=1, title="Plot a position", department="Deck"))
    db.commit()
    rows = tasks.preview(xlsx(HEADERS, [
        _task(title="PLOT A POSITION"),
        _task(title="Plot a position", ship_type="Bulk Carrier"),
    ]), db).rows
    # same title is only a duplicate within the same ship-type context
    assert [r.status for r in rows] == ["SKIP", "READY"]


def test_repeat_in_file_skips(tasks, db, xlsx):
    rows = tasks.preview(xlsx(HEADERS, [_task(), _task(part=2)]), db).rows
    assert [r.status for r in rows] == ["READY", "SKIP"]


def test_commit_persists_task(tasks, db, xlsx):
    result = tasks.commit(xlsx(HEADERS, [_task(part=3, ship_type="Bulk Carrier", department="engine", mandatory="no")]), db)
    assert result.summary.created == 1
    task = db.get(TaskTemplate, result.results[0].created_entity_id)
    assert task.part_number == 3
    assert task.department == "Engine"
    assert task.mandatory_for_all is False
    assert task.ship_type_id is not None


@pytest.mark.parametrize("part", [0, -3, 40000])
def test_part_number_out_of_range_fails(tasks, db, xlsx, part):
    row = tasks.preview(xlsx(HEADERS, [_task(part=part)]), db).rows[0]
    assert row.status == "FAIL"
    assert row.issues == ["part_number must be between 1 and 32767"]


def test_part_number_upper_bound_is_ready(tasks, db, xlsx):
    row = tasks.preview(xlsx(HEADERS, [_task(part=32767)]), db).rows[0]
    assert row.status == "READY"


def test_unparseable_mandatory_for_all_fails(tasks, db, xlsx):
    row = tasks.preview(xlsx(HEADERS, [_task(mandatory="maybe")]), db).rows[0]
    assert row.status == "FAIL"
    assert row.normalized["mandatory_for_all"] is None
    assert row.issues == ["mandatory_for_all must be TRUE or FALSE"]


def test_blank_mandatory_for_all_commits_false(tasks, db, xlsx):
    result = tasks.commit(xlsx(HEADERS, [_task(title="Read the barometer", mandatory=None)]), db)
    assert result.summary.created == 1
    task = db.get(TaskTemplate, result.results[0].created_entity_id)
    assert task.mandatory_for_all is False


def test_overlong_title_fails(tasks, db, xlsx):
    row = tasks.preview(xlsx(HEADERS, [_task(title="x" * 501)]), db).rows[0]
    assert row.status == "FAIL"
    assert row.issues == ["title must be at most 500 characters (got 501)"]
