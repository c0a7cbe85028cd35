from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Any, Hashable, List, Sequence, Tuple
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm import Session

from keel.core.errors import ImportCommitBlocked, WorkbookError
from keel.models import ImportBatch
from keel.schemas import (
    CommitOutcomeRow,
    CommitResult,
    CommitSummary,
    ImportRow,
    ImportSummary,
    PreviewResult,
)
from .utils.helpers import _normalize_header
from .workbook import build_template, read_first_sheet

logger = logging.getLogger(__name__)

CREATABLE = ("READY", "READY_WITH_WARNINGS")


@dataclass
class RowCheck:
    """What the entity rules found for one row; the base turns it into a status."""
    errors: list[str] = field(default_factory=list)
    skip: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    derived: dict[str, Any] = field(default_factory=dict)


class BaseImporter:
    """
    Preview/commit pipeline shared by every entity family.

    Subclasses declare the sheet layout (``columns``, ``required_columns``,
    ``aliases``) and implement the hooks: ``normalize_row``,
    ``load_reference``, ``check_row``, ``create`` and optionally
    ``row_key`` / ``accept_row`` / ``template_lists``.
    """

    entity: str
    label: str = "records"
    sheet_title: str = "Sheet1"
    columns: Tuple[str, ...] = ()
    required_columns: Tuple[str, ...] = ()
    aliases: Dict[str, str] = {}
    column_widths: Dict[str, int] = {}
    # normalized key -> storage column length
    max_lengths: Dict[str, int] = {}

    # ---- hooks ---------------------------------------------------------------

    def normalize_row(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def load_reference(self, rows: List[ImportRow], db: Session) -> Any:
        return None

    def check_row(self, row: ImportRow, ref: Any) -> RowCheck:
        raise NotImplementedError

    def create(self, row: ImportRow, db: Session, ref: Any) -> int:
        raise NotImplementedError

    def row_key(self, normalized: Dict[str, Any]) -> Hashable | None:
        """Natural key used to spot the same record twice in one file."""
        return None

    def accept_row(self, row: ImportRow, ref: Any) -> None:
        """Called for each importable row, in file order, after it is classified."""

    def template_lists(self, db: Session) -> Dict[str, Sequence[str]]:
        return {}

    def length_errors(self, normalized: Dict[str, Any]) -> List[str]:
        errors = []
        for key, limit in self.max_lengths.items():
            value = normalized.get(key)
            if isinstance(value, str) and len(value) > limit:
                errors.append(f"{key} must be at most {limit} characters (got {len(value)})")
        return errors

    # ---- template ------------------------------------------------------------

    def build_template(self, db: Session) -> bytes:
        return build_template(
            self.sheet_title,
            self.columns,
            lists=self.template_lists(db),
            widths=self.column_widths,
        )

    # ---- preview -------------------------------------------------------------

    def canonical_header(self, h) -> str:
        name = _normalize_header(h)
        return self.aliases.get(name, name)

    def _map_headers(self, headers: List[Any]) -> Dict[str, int] | None:
        names = [self.canonical_header(h) for h in headers]
        if not any(names):
            return None

        index: Dict[str, int] = {}
        for i, name in enumerate(names):
            if not name:
                continue
            if name not in self.columns:
                raise WorkbookError(
                    f'Unexpected column "{name}". Allowed columns: {", ".join(self.columns)}'
                )
            if name in index:
                raise WorkbookError(f'Duplicate column "{name}".')
            index[name] = i

        for req in self.required_columns:
            if req not in index:
                raise WorkbookError(f'Missing required column "{req}".')
        return index

    def classify(self, row: ImportRow, check: RowCheck, seen: Dict[Hashable, int]) -> None:
        """FAIL, then SKIP, then warnings, else READY. One status, issues accumulate."""
        if check.errors:
            row.status = "FAIL"
            row.issues = list(check.errors)
            row.derived = {}
            return

        skip = list(check.skip)
        key = self.row_key(row.normalized)
        if key is not None and key in seen:
            skip.append(f"duplicates row {seen[key]} in this file (row will be skipped)")

        row.derived = dict(check.derived)
        if skip:
            row.status = "SKIP"
            row.issues = skip
        elif check.warnings:
            row.status = "READY_WITH_WARNINGS"
            row.issues = list(check.warnings)
        else:
            row.status = "READY"
            row.issues = []

        if key is not None and key not in seen:
            seen[key] = row.row_number

    def _run(self, content: bytes, db: Session) -> Tuple[PreviewResult, Any]:
        sheet = read_first_sheet(content)
        if sheet is None:
            return PreviewResult(notes=["No rows found in the first sheet."]), None

        index = self._map_headers(sheet.headers)
        if index is None:
            return PreviewResult(notes=[
                "No header row detected (Row 1 is empty).",
                f"Required headers: {', '.join(self.required_columns)}",
                f"Allowed headers: {', '.join(self.columns)}",
            ]), None

        if not sheet.rows:
            return PreviewResult(notes=["No data rows found in the first sheet."]), None

        rows: List[ImportRow] = []
        for sheet_row, values in sheet.rows:
            raw = {
                col: (values[i] if i < len(values) else None)
                for col, i in index.items()
            }
            rows.append(ImportRow(
                row_number=sheet_row - 1,  # header is sheet row 1
                input={c: raw.get(c) for c in self.columns},
                normalized=self.normalize_row(raw),
            ))

        ref = self.load_reference(rows, db)
        seen: Dict[Hashable, int] = {}
        for row in rows:
            check = self.check_row(row, ref)
            check.errors.extend(self.length_errors(row.normalized))
            self.classify(row, check, seen)
            if row.status in CREATABLE:
                self.accept_row(row, ref)

        summary = ImportSummary.from_rows(rows)
        notes: List[str] = []
        if summary.fail > 0:
            notes.append("Some rows failed validation. Fix and re-upload.")
        if summary.ready_with_warnings > 0:
            notes.append("Some rows have warnings; review them before committing.")
        if summary.skip > 0:
            notes.append("Some rows will be skipped (records already exist).")

        return PreviewResult(summary=summary, rows=rows, notes=notes), ref

    def preview(self, content: bytes, db: Session) -> PreviewResult:
        result, _ = self._run(content, db)
        s = result.summary
        logger.info(
            "preview %s: total=%d ready=%d warnings=%d skip=%d fail=%d",
            self.entity, s.total, s.ready, s.ready_with_warnings, s.skip, s.fail,
        )
        return result

    # ---- commit --------------------------------------------------------------

    def commit(self, content: bytes, db: Session, actor_user_id: int | None = None) -> CommitResult:
        import_batch_id = str(uuid.uuid4())
        preview, ref = self._run(content, db)

        if preview.summary.fail > 0:
            logger.info("commit %s blocked: %d failing row(s)", self.entity, preview.summary.fail)
            db.rollback()
            raise ImportCommitBlocked(
                f"Commit blocked: {preview.summary.fail} row(s) failed validation (fail > 0).",
                data={"import_batch_id": import_batch_id, "preview": preview.model_dump(mode="json")},
            )

        results: List[CommitOutcomeRow] = []
        try:
            for row in preview.rows:
                if row.status not in CREATABLE:
                    results.append(CommitOutcomeRow(
                        row_number=row.row_number,
                        preview_status=row.status,
                        commit_outcome="SKIPPED",
                        issues=list(row.issues),
                    ))
                    continue

                try:
                    with db.begin_nested():
                        entity_id = self.create(row, db, ref)
                except (IntegrityError, DataError) as e:
                    # rejected for this row only
                    reason = str(getattr(e, "orig", e)).splitlines()[0]
                    logger.warning("commit %s row %d failed: %s", self.entity, row.row_number, reason)
                    results.append(CommitOutcomeRow(
                        row_number=row.row_number,
                        preview_status=row.status,
                        commit_outcome="FAILED",
                        issues=[*row.issues, f"create failed: {reason}"],
                    ))
                    continue

                results.append(CommitOutcomeRow(
                    row_number=row.row_number,
                    preview_status=row.status,
                    commit_outcome="CREATED",
                    created_entity_id=entity_id,
                    issues=list(row.issues),
                ))

            summary = CommitSummary.from_results(results)
            db.add(ImportBatch(
                id=import_batch_id,
                entity=self.entity,
                actor_user_id=actor_user_id,
                total=summary.total,
                created=summary.created,
                skipped=summary.skipped,
                failed=summary.fail,
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            "commit %s batch=%s created=%d skipped=%d failed=%d",
            self.entity, import_batch_id, summary.created, summary.skipped, summary.fail,
        )
        return CommitResult(
            import_batch_id=import_batch_id,
            summary=summary,
            results=results,
            notes=self._commit_notes(summary),
        )

    def _commit_notes(self, s: CommitSummary) -> List[str]:
        if s.total == 0:
            return ["No rows found in import file."]
        if s.created == 0 and s.fail == 0:
            return [f"No new {self.label} created (all rows already exist)."]
        notes: List[str] = []
        if s.created:
            notes.append(f"{s.created} {self.label} created successfully.")
        if s.skipped:
            notes.append(f"{s.skipped} rows skipped (already exist).")
        if s.fail:
            notes.append(f"{s.fail} rows could not be created; see row issues.")
        if s.ready_with_warnings:
            notes.append("Some created rows had warnings.")
        return notes
