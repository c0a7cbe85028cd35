from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Any, Optional, Literal, List, Dict

RowStatus = Literal["READY", "READY_WITH_WARNINGS", "SKIP", "FAIL"]
CommitOutcome = Literal["CREATED", "SKIPPED", "FAILED"]

ROW_STATUSES: tuple[str, ...] = ("READY", "READY_WITH_WARNINGS", "SKIP", "FAIL")


class ImportRow(BaseModel):
    row_number: int
    status: RowStatus = "READY"
    input: Dict[str, Any] = Field(default_factory=dict)
    normalized: Dict[str, Any] = Field(default_factory=dict)
    derived: Dict[str, Any] = Field(default_factory=dict)
    issues: List[str] = Field(default_factory=list)


class ImportSummary(BaseModel):
    total: int = 0
    ready: int = 0
    ready_with_warnings: int = 0
    skip: int = 0
    fail: int = 0

    @classmethod
    def from_rows(cls, rows: List[ImportRow]) -> "ImportSummary":
        counts = {s: 0 for s in ROW_STATUSES}
        for r in rows:
            counts[r.status] += 1
        return cls(
            total=len(rows),
            ready=counts["READY"],
            ready_with_warnings=counts["READY_WITH_WARNINGS"],
            skip=counts["SKIP"],
            fail=counts["FAIL"],
        )


class PreviewResult(BaseModel):
    summary: ImportSummary = Field(default_factory=ImportSummary)
    rows: List[ImportRow] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)


class CommitOutcomeRow(BaseModel):
    row_number: int
    preview_status: RowStatus
    commit_outcome: CommitOutcome
    created_entity_id: Optional[int] = None
    issues: List[str] = Field(default_factory=list)


class CommitSummary(BaseModel):
    total: int = 0
    created: int = 0
    skipped: int = 0
    fail: int = 0
    ready: int = 0                 # created from READY
    ready_with_warnings: int = 0   # created from READY_WITH_WARNINGS

    @classmethod
    def from_results(cls, results: List[CommitOutcomeRow]) -> "CommitSummary":
        created = [r for r in results if r.commit_outcome == "CREATED"]
        return cls(
            total=len(results),
            created=len(created),
            skipped=sum(1 for r in results if r.commit_outcome == "SKIPPED"),
            fail=sum(1 for r in results if r.commit_outcome == "FAILED"),
            ready=sum(1 for r in created if r.preview_status == "READY"),
            ready_with_warnings=sum(1 for r in created if r.preview_status == "READY_WITH_WARNINGS"),
        )


class CommitResult(BaseModel):
    import_batch_id: str
    summary: CommitSummary = Field(default_factory=CommitSummary)
    results: List[CommitOutcomeRow] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)


class PreviewResponse(BaseModel):
    success: bool = True
    data: PreviewResult


class CommitResponse(BaseModel):
    success: bool = True
    data: CommitResult


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    data: Optional[Any] = None
