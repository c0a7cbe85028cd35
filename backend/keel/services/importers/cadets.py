from dataclasses import dataclass, field
from typing import Dict, Any, Hashable, List, Sequence
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from .base import BaseImporter, RowCheck
from keel.core.errors import ApiError
from keel.models import Role, User
from keel.schemas import ImportRow
from .utils.helpers import _to_text, _to_email, _to_code, _to_proper, _to_bool, _is_valid_email

CADET_ROLE = "CADET"
# placeholder until the cadet sets a password through the invite flow
PENDING_PASSWORD = "TEMP"

TRAINEE_DERIVATION: Dict[str, Dict[str, Any]] = {
    "DECK_CADET": {"rank_label": "Deck Cadet", "category": "Cadet", "trb_applicable": True},
    "ENGINE_CADET": {"rank_label": "Engine Cadet", "category": "Cadet", "trb_applicable": True},
    "ETO_CADET": {"rank_label": "ETO Cadet", "category": "Cadet", "trb_applicable": True},
    "DECK_RATING": {"rank_label": "Deck Rating", "category": "Rating", "trb_applicable": False},
    "ENGINE_RATING": {"rank_label": "Engine Rating", "category": "Rating", "trb_applicable": False},
}

OVERRIDABLE = ("rank_label", "category", "trb_applicable")


@dataclass
class CadetReference:
    existing_emails: set = field(default_factory=set)
    cadet_role_id: int | None = None


class CadetsImporter(BaseImporter):
    entity = "cadets"
    label = "cadets"
    sheet_title = "Cadets"
    columns = (
        "full_name", "email", "trainee_type", "nationality", "notes",
        "rank_label", "category", "trb_applicable",
    )
    required_columns = ("full_name", "email", "trainee_type")
    aliases = {"name": "full_name", "email_address": "email", "type": "trainee_type"}
    column_widths = {"full_name": 28, "email": 32, "trainee_type": 18, "notes": 40}
    max_lengths = {"full_name": 120, "email": 120, "nationality": 100, "rank_label": 50, "category": 20}

    def normalize_row(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        full_name = _to_text(raw.get("full_name"))
        if full_name:
            full_name = " ".join(full_name.split())
        return {
            "full_name": full_name,
            "email": _to_email(raw.get("email")),
            "trainee_type": _to_code(raw.get("trainee_type")),
            "nationality": _to_proper(raw.get("nationality")),
            "notes": _to_text(raw.get("notes")),
            "rank_label": _to_text(raw.get("rank_label")),
            "category": _to_proper(raw.get("category")),
            "trb_applicable": _to_bool(raw.get("trb_applicable")),
        }

    def row_key(self, normalized: Dict[str, Any]) -> Hashable | None:
        return normalized.get("email")

    def load_reference(self, rows: List[ImportRow], db: Session) -> CadetReference:
        emails = sorted({r.normalized["email"] for r in rows if r.normalized.get("email")})
        existing = set()
        if emails:
            existing = set(db.execute(
                select(func.lower(User.email)).where(func.lower(User.email).in_(emails))
            ).scalars())
        role_id = db.execute(select(Role.id).where(Role.role_name == CADET_ROLE)).scalar_one_or_none()
        return CadetReference(existing_emails=existing, cadet_role_id=role_id)

    def check_row(self, row: ImportRow, ref: CadetReference) -> RowCheck:
        n = row.normalized
        chk = RowCheck()

        if not n["full_name"]:
            chk.errors.append("full_name is required")
        if not n["email"]:
            chk.errors.append("email is required")
        elif not _is_valid_email(n["email"]):
            chk.errors.append(f'email is not valid: "{n["email"]}"')

        derivation = None
        if not n["trainee_type"]:
            chk.errors.append("trainee_type is required")
        else:
            derivation = TRAINEE_DERIVATION.get(n["trainee_type"])
            if derivation is None:
                chk.errors.append(
                    f"trainee_type must be one of: {', '.join(TRAINEE_DERIVATION)}"
                )

        if _to_text(row.input.get("trb_applicable")) is not None and n["trb_applicable"] is None:
            chk.errors.append("trb_applicable must be TRUE or FALSE")

        if chk.errors:
            return chk

        if n["email"] in ref.existing_emails:
            chk.skip.append("email already exists (row will be skipped)")

        for key in OVERRIDABLE:
            given, expected = n[key], derivation[key]
            if given is None:
                continue
            differs = given.casefold() != expected.casefold() if isinstance(given, str) else given != expected
            if differs:
                shown = str(expected).upper() if isinstance(expected, bool) else expected
                chk.warnings.append(f'{key} overridden: expected "{shown}" for {n["trainee_type"]}')

        if not n["nationality"]:
            chk.warnings.append("nationality not provided")

        chk.derived = dict(derivation)
        return chk

    def create(self, row: ImportRow, db: Session, ref: CadetReference) -> int:
        if ref.cadet_role_id is None:
            raise ApiError("CADET role not found")
        n, d = row.normalized, row.derived
        user = User(
            email=n["email"],
            full_name=n["full_name"],
            password_hash=PENDING_PASSWORD,
            role_id=ref.cadet_role_id,
            trainee_type=n["trainee_type"],
            nationality=n["nationality"],
            notes=n["notes"],
            # explicit overrides win over the trainee_type defaults
            rank_label=n["rank_label"] or d["rank_label"],
            category=n["category"] or d["category"],
            trb_applicable=d["trb_applicable"] if n["trb_applicable"] is None else n["trb_applicable"],
        )
        db.add(user)
        db.flush()
        return user.id

    def template_lists(self, db: Session) -> Dict[str, Sequence[str]]:
        return {
            "trainee_type": list(TRAINEE_DERIVATION),
            "category": sorted({d["category"] for d in TRAINEE_DERIVATION.values()}),
            "trb_applicable": ["TRUE", "FALSE"],
        }
