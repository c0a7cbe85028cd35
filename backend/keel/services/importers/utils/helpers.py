import re
from datetime import date, datetime, timedelta

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
IMO_RE = re.compile(r"^\d{7}$")

# Excel's day zero (1900 date system, including the phantom 1900-02-29)
EXCEL_EPOCH = date(1899, 12, 30)

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%Y/%m/%d")


def _normalize_header(h) -> str:
    if h is None:
        return ""
    return re.sub(r"\s+", "_", str(h).strip().lower())


def _to_text(v):
    """Cell → stripped string, or None when empty. Whole floats lose their '.0'."""
    if v is None:
        return None
    if isinstance(v, bool):
        return "TRUE" if v else "FALSE"
    if isinstance(v, float) and v.is_integer():
        v = int(v)
    s = str(v).replace("\xa0", " ").strip()
    return s or None


def _to_email(v):
    s = _to_text(v)
    return s.lower() if s else None


def _to_code(v):
    """Enumerated codes: 'deck cadet' / 'Deck-Cadet' → 'DECK_CADET'."""
    s = _to_text(v)
    if not s:
        return None
    return re.sub(r"[\s\-]+", "_", s.upper())


def _to_proper(v):
    s = _to_text(v)
    if not s:
        return None
    s = re.sub(r"\s+", " ", s)
    return " ".join(w[:1].upper() + w[1:] for w in s.lower().split(" "))


def _to_imo(v):
    s = _to_text(v)
    if not s:
        return None
    s = re.sub(r"^IMO[\s:\-]*", "", s, flags=re.IGNORECASE).strip()
    return s or None


def _to_int(v):
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, float):
        return int(v) if v.is_integer() else None
    s = str(v).strip()
    if s == "":
        return None
    try:
        return int(s)
    except ValueError:
        try:
            f = float(s)
        except ValueError:
            return None
        return int(f) if f.is_integer() else None


def _to_bool(v):
    """
    Convert v to bool. Accepts common truthy/falsey strings and 0/1.
    Anything else (including empty) is None so the caller can tell
    "not provided" from "false".
    """
    if v is None:
        return None
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in ("true", "yes", "y", "1", "1.0"):
        return True
    if s in ("false", "no", "n", "0", "0.0"):
        return False
    return None


def _parse_date(v):
    """Date cell → ISO 'YYYY-MM-DD' string, or None when it can't be read."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, datetime):
        return v.date().isoformat()
    if isinstance(v, date):
        return v.isoformat()
    if isinstance(v, (int, float)):
        # Excel serial day number
        if 0 < v < 2958466:
            return (EXCEL_EPOCH + timedelta(days=int(v))).isoformat()
        return None
    s = str(v).strip()
    if not s:
        return None
    # '2024-01-15 00:00:00' / '2024-01-15T08:00'
    head = re.split(r"[T ]", s, maxsplit=1)[0]
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(head, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def _is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email.strip()))


def _is_valid_imo(imo: str) -> bool:
    return bool(IMO_RE.match(imo))


def _type_code(name: str) -> str:
    return re.sub(r"[^A-Z0-9]", "_", name.upper())[:20]
