from dataclasses import dataclass, field
from typing import Dict, Any, Hashable, List, Sequence
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from .base import BaseImporter, RowCheck
from keel.models import ShipType, TaskTemplate
from keel.schemas import ImportRow
from .utils.helpers import _to_text, _to_int, _to_bool

DEPARTMENTS = ("Deck", "Engine", "Electrical", "Catering", "General")
DEFAULT_DEPARTMENT = "General"
# task_templates.part_number is a SMALLINT
PART_NUMBER_MAX = 32767


@dataclass
class TaskReference:
    ship_types: Dict[str, int] = field(default_factory=dict)   # lower(name) -> id
    existing: set = field(default_factory=set)                  # (lower(title), ship_type_id)


class TasksImporter(BaseImporter):
    """TRB task templates. A blank ship_type makes the task universal."""

    entity = "tasks"
    label = "tasks"
    sheet_title = "Tasks"
    columns = (
        "part_number", "section_name", "title", "description",
        "stcw_reference", "mandatory_for_all", "ship_type", "department",
    )
    required_columns = ("part_number", "title")
    aliases = {"part": "part_number", "section": "section_name", "ship_type_name": "ship_type"}
    column_widths = {"section_name": 25, "title": 40, "description": 40, "stcw_reference": 20, "ship_type": 25}
    max_lengths = {"section_name": 200, "title": 500, "stcw_reference": 200}

    def normalize_row(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        department = _to_text(raw.get("department"))
        return {
            "part_number": _to_int(raw.get("part_number")),
            "section_name": _to_text(raw.get("section_name")),
            "title": _to_text(raw.get("title")),
            "description": _to_text(raw.get("description")),
            "stcw_reference": _to_text(raw.get("stcw_reference")),
            "mandatory_for_all": _to_bool(raw.get("mandatory_for_all")),
            "ship_type_name": _to_text(raw.get("ship_type")),
            "department": department.capitalize() if department else None,
        }

    def row_key(self, normalized: Dict[str, Any]) -> Hashable | None:
        if not normalized.get("title"):
            return None
        return normalized["title"].lower(), (normalized.get("ship_type_name") or "").lower()

    def load_reference(self, rows: List[ImportRow], db: Session) -> TaskReference:
        types = {name.lower(): id_ for id_, name in db.execute(select(ShipType.id, ShipType.name)).all()}
        titles = sorted({r.normalized["title"].lower() for r in rows if r.normalized.get("title")})
        existing = set()
        if titles:
            found = db.execute(
                select(TaskTemplate.title, TaskTemplate.ship_type_id)
                .where(func.lower(TaskTemplate.title).in_(titles))
            ).all()
            existing = {(title.lower(), st_id) for title, st_id in found}
        return TaskReference(ship_types=types, existing=existing)

    def check_row(self, row: ImportRow, ref: TaskReference) -> RowCheck:
        n = row.normalized
        chk = RowCheck()

        if n["part_number"] is None:
            if _to_text(row.input.get("part_number")) is None:
                chk.errors.append("part_number is required")
            else:
                chk.errors.append(f'part_number must be a whole number: "{row.input["part_number"]}"')
        elif not 1 <= n["part_number"] <= PART_NUMBER_MAX:
            chk.errors.append(f"part_number must be between 1 and {PART_NUMBER_MAX}")
        if not n["title"]:
            chk.errors.append("title is required")
        if _to_text(row.input.get("mandatory_for_all")) is not None and n["mandatory_for_all"] is None:
            chk.errors.append("mandatory_for_all must be TRUE or FALSE")

        ship_type_id = None
        if n["ship_type_name"]:
            ship_type_id = ref.ship_types.get(n["ship_type_name"].lower())
            if ship_type_id is None:
                chk.errors.append(f'Unknown ship type: "{n["ship_type_name"]}"')
        if chk.errors:
            return chk

        if (n["title"].lower(), ship_type_id) in ref.existing:
            chk.skip.append("task already exists for this ship type (row will be skipped)")

        department = n["department"] or DEFAULT_DEPARTMENT
        if department not in DEPARTMENTS:
            chk.warnings.append(
                f'department "{n["department"]}" is not one of {", ".join(DEPARTMENTS)} '
                f"(defaulting to {DEFAULT_DEPARTMENT})"
            )
            department = DEFAULT_DEPARTMENT

        chk.derived = {"ship_type_id": ship_type_id, "department": department}
        return chk

    def create(self, row: ImportRow, db: Session, ref: TaskReference) -> int:
        n, d = row.normalized, row.derived
        task = TaskTemplate(
            part_number=n["part_number"],
            section_name=n["section_name"],
            title=n["title"],
            description=n["description"],
            stcw_reference=n["stcw_reference"],
            mandatory_for_all=bool(n["mandatory_for_all"]),
            ship_type_id=d["ship_type_id"],
            department=d["department"],
        )
        db.add(task)
        db.flush()
        return task.id

    def template_lists(self, db: Session) -> Dict[str, Sequence[str]]:
        return {
            "mandatory_for_all": ["TRUE", "FALSE"],
            "ship_type": list(db.execute(select(ShipType.name).order_by(ShipType.name)).scalars()),
            "department": list(DEPARTMENTS),
        }
