import logging

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..db import get_db
from ..core.config import IMPORT_MAX_UPLOAD_BYTES
from ..core.errors import UploadTooLarge, WorkbookError
from ..core.security import AuthUser, require_admin
from ..schemas import CommitResponse, ErrorResponse, PreviewResponse
from ..services.importers import BaseImporter, get_importer
from ..services.importers.workbook import XLSX_MEDIA_TYPE

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/admin/imports",
    tags=["imports"],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)


def _importer(entity: str) -> BaseImporter:
    try:
        return get_importer(entity)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=e.args[0])


async def _read_upload(file: UploadFile | None) -> bytes:
    if file is None:
        raise WorkbookError("Excel file is required (field name: file)")
    content = await file.read(IMPORT_MAX_UPLOAD_BYTES + 1)
    if len(content) > IMPORT_MAX_UPLOAD_BYTES:
        raise UploadTooLarge(f"File too large. Maximum upload size is {IMPORT_MAX_UPLOAD_BYTES} bytes.")
    if not content:
        raise WorkbookError("Uploaded file is empty")
    return content


@router.get("/{entity}/template")
def download_template(
    entity: str,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    importer = _importer(entity)
    content = importer.build_template(db)
    filename = f"keel_{importer.entity}_import_template.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{entity}/preview", response_model=PreviewResponse)
async def preview_import(
    entity: str,
    file: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    importer = _importer(entity)
    content = await _read_upload(file)
    logger.debug("preview %s upload %s (%d bytes) by user %s", importer.entity, file.filename, len(content), user.user_id)
    return PreviewResponse(data=importer.preview(content, db))


@router.post("/{entity}/commit", response_model=CommitResponse)
async def commit_import(
    entity: str,
    file: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    importer = _importer(entity)
    content = await _read_upload(file)
    logger.info("commit %s upload %s (%d bytes) by user %s", importer.entity, file.filename, len(content), user.user_id)
    return CommitResponse(data=importer.commit(content, db, actor_user_id=user.user_id))
