"""Spreadsheet I/O for the importers.

Reading: first worksheet only, row 1 is the header, everything below is data.
Writing: header-only templates with dropdown validation backed by a hidden
``_meta`` sheet.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Dict, List, Sequence, Tuple

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.datavalidation import DataValidation

from keel.core.errors import WorkbookError

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
META_SHEET = "_meta"
VALIDATED_ROWS = 1000


@dataclass
class SheetData:
    sheet_name: str
    headers: List[Any]
    # (sheet row number, raw cell values) for every non-blank data row
    rows: List[Tuple[int, Tuple[Any, ...]]] = field(default_factory=list)


def _is_blank(values: Sequence[Any]) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in values)


def read_first_sheet(content: bytes) -> SheetData | None:
    """Parse an uploaded .xlsx. Returns None when the workbook holds no rows at all."""
    try:
        wb = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise WorkbookError(f"Unable to read Excel file: {e}") from e

    try:
        if not wb.worksheets:
            return None
        ws = wb.worksheets[0]
        headers: List[Any] | None = None
        rows: List[Tuple[int, Tuple[Any, ...]]] = []
        for sheet_row, values in enumerate(ws.iter_rows(values_only=True), start=1):
            if headers is None:
                if sheet_row == 1:
                    headers = list(values)
                continue
            if _is_blank(values):
                continue
            rows.append((sheet_row, tuple(values)))
        if headers is None:
            return None
        return SheetData(sheet_name=ws.title, headers=headers, rows=rows)
    finally:
        wb.close()


def build_template(
    sheet_title: str,
    columns: Sequence[str],
    lists: Dict[str, Sequence[str]] | None = None,
    widths: Dict[str, int] | None = None,
) -> bytes:
    """Header-only workbook; columns named in ``lists`` get a dropdown."""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title
    ws.append(list(columns))
    for idx, name in enumerate(columns, start=1):
        ws.cell(row=1, column=idx).font = Font(bold=True)
        ws.column_dimensions[get_column_letter(idx)].width = (widths or {}).get(name, max(15, len(name) + 4))
    ws.freeze_panes = "A2"

    lists = {k: list(v) for k, v in (lists or {}).items() if k in columns and v}
    if lists:
        meta = wb.create_sheet(META_SHEET)
        meta.sheet_state = "hidden"
        for meta_idx, (name, values) in enumerate(lists.items(), start=1):
            meta_col = get_column_letter(meta_idx)
            for i, value in enumerate(values, start=1):
                meta.cell(row=i, column=meta_idx, value=value)
            dv = DataValidation(
                type="list",
                formula1=f"{META_SHEET}!${meta_col}$1:${meta_col}${len(values)}",
                allow_blank=True,
                showErrorMessage=True,
                errorTitle=f"Invalid {name}",
                error=f"Please select a valid {name} from the dropdown list.",
            )
            target_col = get_column_letter(list(columns).index(name) + 1)
            dv.add(f"{target_col}2:{target_col}{VALIDATED_ROWS}")
            ws.add_data_validation(dv)

    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()
