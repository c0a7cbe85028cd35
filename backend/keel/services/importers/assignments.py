from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Any, Hashable, List, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from .base import BaseImporter, RowCheck
from keel.models import CadetVesselAssignment, Role, User, Vessel
from keel.schemas import ImportRow
from .utils.helpers import _to_text, _to_email, _to_imo, _parse_date

# (vessel_id, start, end or None, label used in messages)
Stint = Tuple[int, date, date | None, str]


def _overlaps(a_start: date, a_end: date | None, b_start: date, b_end: date | None) -> bool:
    # open-ended stints run to date.max
    return a_start <= (b_end or date.max) and b_start <= (a_end or date.max)


@dataclass
class AssignmentReference:
    cadets: Dict[str, Tuple[int, str | None]] = field(default_factory=dict)   # email -> (id, rank_label)
    vessels: Dict[str, int] = field(default_factory=dict)                     # imo -> id
    stints: Dict[int, List[Stint]] = field(default_factory=dict)              # cadet_id -> existing stints
    accepted: Dict[int, List[Stint]] = field(default_factory=dict)            # cadet_id -> rows from this file


class AssignmentsImporter(BaseImporter):
    entity = "assignments"
    label = "assignments"
    sheet_title = "Assignments"
    columns = ("email", "vessel_imo", "date_joined", "date_left", "rank")
    required_columns = ("email", "vessel_imo", "date_joined")
    aliases = {
        "cadet_email": "email",
        "imo": "vessel_imo",
        "imo_number": "vessel_imo",
        "sign_on": "date_joined",
        "sign_off": "date_left",
    }
    column_widths = {"email": 30, "vessel_imo": 15, "rank": 20}
    max_lengths = {"rank": 50}

    def normalize_row(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "email": _to_email(raw.get("email")),
            "vessel_imo": _to_imo(raw.get("vessel_imo")),
            "date_joined": _parse_date(raw.get("date_joined")),
            "date_left": _parse_date(raw.get("date_left")),
            "rank": _to_text(raw.get("rank")),
        }

    def row_key(self, normalized: Dict[str, Any]) -> Hashable | None:
        n = normalized
        if not (n.get("email") and n.get("vessel_imo") and n.get("date_joined")):
            return None
        return n["email"], n["vessel_imo"], n["date_joined"]

    def load_reference(self, rows: List[ImportRow], db: Session) -> AssignmentReference:
        ref = AssignmentReference()
        emails = sorted({r.normalized["email"] for r in rows if r.normalized.get("email")})
        imos = sorted({r.normalized["vessel_imo"] for r in rows if r.normalized.get("vessel_imo")})

        if emails:
            found = db.execute(
                select(User.id, User.email, User.rank_label)
                .join(Role, Role.id == User.role_id)
                .where(Role.role_name == "CADET", func.lower(User.email).in_(emails))
            ).all()
            ref.cadets = {email.lower(): (id_, rank) for id_, email, rank in found}

        if imos:
            found = db.execute(select(Vessel.id, Vessel.imo_number).where(Vessel.imo_number.in_(imos))).all()
            ref.vessels = {imo: id_ for id_, imo in found}

        cadet_ids = [id_ for id_, _ in ref.cadets.values()]
        if cadet_ids:
            found = db.execute(
                select(
                    CadetVesselAssignment.cadet_id,
                    CadetVesselAssignment.vessel_id,
                    CadetVesselAssignment.start_date,
                    CadetVesselAssignment.end_date,
                    Vessel.imo_number,
                )
                .join(Vessel, Vessel.id == CadetVesselAssignment.vessel_id)
                .where(
                    CadetVesselAssignment.cadet_id.in_(cadet_ids),
                    CadetVesselAssignment.status != "CANCELLED",
                )
                .order_by(CadetVesselAssignment.start_date)
            ).all()
            for cadet_id, vessel_id, start, end, imo in found:
                ref.stints.setdefault(cadet_id, []).append((vessel_id, start, end, f"IMO {imo}"))
        return ref

    def _date_issue(self, row: ImportRow, col: str, required: bool) -> str | None:
        if row.normalized[col] is not None:
            return None
        given = _to_text(row.input.get(col))
        if given is None:
            return f"{col} is required" if required else None
        return f'{col} is not a valid date: "{given}"'

    def check_row(self, row: ImportRow, ref: AssignmentReference) -> RowCheck:
        n = row.normalized
        chk = RowCheck()

        cadet = None
        if not n["email"]:
            chk.errors.append("email is required")
        else:
            cadet = ref.cadets.get(n["email"])
            if cadet is None:
                chk.errors.append(f"Cadet with email {n['email']} not found")

        vessel_id = None
        if not n["vessel_imo"]:
            chk.errors.append("vessel_imo is required")
        else:
            vessel_id = ref.vessels.get(n["vessel_imo"])
            if vessel_id is None:
                chk.errors.append(f"Vessel with IMO {n['vessel_imo']} not found")

        for col, required in (("date_joined", True), ("date_left", False)):
            issue = self._date_issue(row, col, required)
            if issue:
                chk.errors.append(issue)

        start = date.fromisoformat(n["date_joined"]) if n["date_joined"] else None
        end = date.fromisoformat(n["date_left"]) if n["date_left"] else None
        if start and end and end < start:
            chk.errors.append("date_left is before date_joined")

        if chk.errors:
            return chk

        cadet_id, rank_label = cadet
        identical = False
        for other_vessel, s, e, where in ref.stints.get(cadet_id, []):
            if other_vessel == vessel_id and s == start:
                identical = True
            elif _overlaps(start, end, s, e):
                chk.errors.append(f"Dates overlap with existing assignment ({where} from {s.isoformat()})")
        for other_vessel, s, e, where in ref.accepted.get(cadet_id, []):
            # an exact repeat is reported as a duplicate, not an overlap
            if not (other_vessel == vessel_id and s == start) and _overlaps(start, end, s, e):
                chk.errors.append(f"Dates overlap with {where} in this file")
        if chk.errors:
            return chk

        if identical:
            chk.skip.append("assignment already exists (row will be skipped)")

        current_rank = n["rank"]
        if not current_rank:
            chk.warnings.append("rank not provided; the cadet's rank label will be used")
            current_rank = rank_label

        chk.derived = {
            "cadet_id": cadet_id,
            "vessel_id": vessel_id,
            "current_rank": current_rank,
            "status": "COMPLETED" if end else "ACTIVE",
        }
        return chk

    def accept_row(self, row: ImportRow, ref: AssignmentReference) -> None:
        d, n = row.derived, row.normalized
        ref.accepted.setdefault(d["cadet_id"], []).append((
            d["vessel_id"],
            date.fromisoformat(n["date_joined"]),
            date.fromisoformat(n["date_left"]) if n["date_left"] else None,
            f"row {row.row_number}",
        ))

    def create(self, row: ImportRow, db: Session, ref: AssignmentReference) -> int:
        n, d = row.normalized, row.derived
        assignment = CadetVesselAssignment(
            cadet_id=d["cadet_id"],
            vessel_id=d["vessel_id"],
            start_date=date.fromisoformat(n["date_joined"]),
            end_date=date.fromisoformat(n["date_left"]) if n["date_left"] else None,
            status=d["status"],
            current_rank=d["current_rank"],
        )
        db.add(assignment)
        db.flush()
        return assignment.id
