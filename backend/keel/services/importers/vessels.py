from dataclasses import dataclass, field
from typing import Dict, Any, Hashable, List, Sequence
from sqlalchemy.orm import Session
from sqlalchemy import select
from .base import BaseImporter, RowCheck
from keel.models import ShipType, Vessel
from keel.schemas import ImportRow
from .utils.helpers import _to_text, _to_imo, _to_proper, _is_valid_imo, _type_code

CLASS_SOCIETIES = (
    "ABS (American Bureau of Shipping)",
    "BV (Bureau Veritas)",
    "CCS (China Classification Society)",
    "CRS (Croatian Register of Shipping)",
    "DNV (Det Norske Veritas)",
    "IRS (Indian Register of Shipping)",
    "KR (Korean Register)",
    "LR (Lloyd's Register)",
    "NK (Nippon Kaiji Kyokai)",
    "PRS (Polish Register of Shipping)",
    "RINA (Registro Italiano Navale)",
    "Other",
)

# used for the template dropdown when the ship_types table is still empty
FALLBACK_SHIP_TYPES = ("Bulk Carrier", "Container Ship", "Oil Tanker", "Gas Carrier", "General Cargo")

AUTO_CREATED = "Auto-created via Excel Import"


def _known_society(value: str) -> bool:
    # accept the full label or just its abbreviation ("DNV")
    v = value.casefold()
    for s in CLASS_SOCIETIES:
        if v == s.casefold() or v == s.split(" (")[0].casefold():
            return True
    return False


@dataclass
class VesselReference:
    existing_imos: set = field(default_factory=set)
    ship_types: Dict[str, int] = field(default_factory=dict)  # lower(name) -> id
    type_codes: Dict[str, int] = field(default_factory=dict)  # type_code -> id


class VesselsImporter(BaseImporter):
    entity = "vessels"
    label = "vessels"
    sheet_title = "Vessels"
    columns = ("imo_number", "vessel_name", "vessel_type", "flag_state", "class_society")
    required_columns = ("imo_number", "vessel_name", "vessel_type")
    aliases = {
        "imo": "imo_number",
        "name": "vessel_name",
        "ship_type": "vessel_type",
        "flag": "flag_state",
        "classification_society": "class_society",
    }
    column_widths = {"vessel_name": 30, "vessel_type": 22, "class_society": 38}
    max_lengths = {"vessel_name": 150, "vessel_type": 100, "flag_state": 100, "class_society": 150}

    def normalize_row(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        vessel_type = _to_text(raw.get("vessel_type"))
        return {
            "imo_number": _to_imo(raw.get("imo_number")),
            "vessel_name": _to_text(raw.get("vessel_name")),
            "vessel_type": " ".join(vessel_type.split()) if vessel_type else None,
            "flag_state": _to_proper(raw.get("flag_state")),
            "class_society": _to_text(raw.get("class_society")),
        }

    def row_key(self, normalized: Dict[str, Any]) -> Hashable | None:
        return normalized.get("imo_number")

    def load_reference(self, rows: List[ImportRow], db: Session) -> VesselReference:
        imos = sorted({r.normalized["imo_number"] for r in rows if r.normalized.get("imo_number")})
        existing = set()
        if imos:
            existing = set(db.execute(
                select(Vessel.imo_number).where(Vessel.imo_number.in_(imos))
            ).scalars())
        found = db.execute(select(ShipType.id, ShipType.name, ShipType.type_code)).all()
        return VesselReference(
            existing_imos=existing,
            ship_types={name.lower(): id_ for id_, name, _ in found},
            type_codes={code: id_ for id_, _, code in found},
        )

    def check_row(self, row: ImportRow, ref: VesselReference) -> RowCheck:
        n = row.normalized
        chk = RowCheck()

        if not n["imo_number"]:
            chk.errors.append("Missing IMO Number")
        elif not _is_valid_imo(n["imo_number"]):
            chk.errors.append(f'IMO number must be exactly 7 digits: "{n["imo_number"]}"')
        if not n["vessel_name"]:
            chk.errors.append("Missing Vessel Name")
        if not n["vessel_type"]:
            chk.errors.append("Missing Vessel Type")
        if chk.errors:
            return chk

        if n["imo_number"] in ref.existing_imos:
            chk.skip.append("Vessel already exists in database")

        ship_type_id = ref.ship_types.get(n["vessel_type"].lower())
        if ship_type_id is None:
            code = _type_code(n["vessel_type"])
            ship_type_id = ref.type_codes.get(code)
            if ship_type_id is None:
                chk.warnings.append(f'vessel_type "{n["vessel_type"]}" is not a known ship type (it will be created)')
            else:
                chk.warnings.append(
                    f'vessel_type "{n["vessel_type"]}" matches existing ship type code {code} (that type will be used)'
                )
        if n["class_society"] and not _known_society(n["class_society"]):
            chk.warnings.append(f'class_society "{n["class_society"]}" is not a recognised classification society')
        if not n["flag_state"]:
            chk.warnings.append("flag_state not provided")

        chk.derived = {"ship_type_id": ship_type_id, "ship_type_exists": ship_type_id is not None}
        return chk

    def _ship_type_id(self, name: str, db: Session, ref: VesselReference) -> int:
        st_id = ref.ship_types.get(name.lower())
        if st_id is None:
            st_id = ref.type_codes.get(_type_code(name))
        if st_id is not None:
            return st_id
        st = ShipType(name=name, type_code=_type_code(name), description=AUTO_CREATED)
        db.add(st)
        db.flush()
        return st.id

    def create(self, row: ImportRow, db: Session, ref: VesselReference) -> int:
        n = row.normalized
        ship_type_id = self._ship_type_id(n["vessel_type"], db, ref)
        vessel = Vessel(
            imo_number=n["imo_number"],
            name=n["vessel_name"],
            ship_type_id=ship_type_id,
            flag=n["flag_state"],
            classification_society=n["class_society"],
        )
        db.add(vessel)
        db.flush()
        # remember auto-created types only once the row has landed
        ref.ship_types.setdefault(n["vessel_type"].lower(), ship_type_id)
        ref.type_codes.setdefault(_type_code(n["vessel_type"]), ship_type_id)
        return vessel.id

    def template_lists(self, db: Session) -> Dict[str, Sequence[str]]:
        names = list(db.execute(select(ShipType.name).order_by(ShipType.name)).scalars())
        return {
            "vessel_type": names or list(FALLBACK_SHIP_TYPES),
            "class_society": list(CLASS_SOCIETIES),
        }
