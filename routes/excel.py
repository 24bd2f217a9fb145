# routes/excel.py
import base64
import binascii
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import Response
from sqlmodel import Session

from core.config import settings
from core.database import get_session
from core.errors import NotFound, PermissionDenied, UpstreamFailure, ValidationFailed, InvalidWorkbook
from core.gate import gate, target_workbook_key
from core.identity import Identity, require_identity, user_prefix
from core.storage import ObjectNotFound, ObjectStorageClient, ObjectStorageError, get_object_storage
from models.models import User
from schemas.excel_schema import (
    SheetCreate, SheetDelete, SheetOverwrite, SaveAllRequest, ConvertRequest,
    SheetList, LatestSheet, SheetMutation, SaveAllResult, CellRead, SheetPreview,
    WorkbookMeta, UploadResult,
)
from services import audit_service, quota_service, workbook_service
from services.export_service import export_csv, export_pdf
from services.realtime_service import broadcast

router = APIRouter(tags=["Excel"])
logger = logging.getLogger(__name__)


def get_workbook_store(storage: ObjectStorageClient = Depends(get_object_storage)) -> workbook_service.WorkbookStore:
    return workbook_service.WorkbookStore(storage, settings.EXCEL_BUCKET)


def _attachment(filename: str) -> dict:
    safe = filename.replace('"', "")
    return {"Content-Disposition": f'attachment; filename="{safe}"'}


def _visible_sheets(identity: Identity, store: workbook_service.WorkbookStore) -> list:
    """Own sheet names, merged with the master workbook's for superadmins."""
    try:
        workbook, _ = store.load(identity.workbook_key)
        names = workbook_service.sheet_names(workbook)
    except NotFound:
        if not identity.is_superadmin:
            raise
        names = []
    if identity.is_superadmin and identity.workbook_key != settings.EXCEL_FILE_KEY:
        try:
            master, _ = store.load(settings.EXCEL_FILE_KEY)
            names = workbook_service.merged_sheet_names(names, workbook_service.sheet_names(master))
        except (NotFound, InvalidWorkbook) as e:
            logger.warning(f"⚠️ Master workbook unavailable for sheet merge: {e.detail}")
    return names


# ==================================================================
#  ✅ Sheet listing
# ==================================================================
@router.get("/sheets", response_model=SheetList)
def list_sheets(
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
    store: workbook_service.WorkbookStore = Depends(get_workbook_store),
):
    names = _visible_sheets(identity, store)
    latest = audit_service.latest_sheet(session, identity.user_id)
    return SheetList(sheets=audit_service.pin_latest(names, latest))


@router.get("/latest", response_model=LatestSheet)
def latest_sheet(
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
    store: workbook_service.WorkbookStore = Depends(get_workbook_store),
):
    latest = audit_service.latest_sheet(session, identity.user_id)
    if latest is None:
        return LatestSheet()
    try:
        names = _visible_sheets(identity, store)
    except (NotFound, InvalidWorkbook):
        return LatestSheet(sheet=latest)
    return LatestSheet(sheet=latest, index=0 if latest in names else None)


# ==================================================================
#  ✅ Reads
# ==================================================================
@router.get("/preview", response_model=SheetPreview)
def preview_sheet(
    sheet: str = Query(..., min_length=1),
    scope: Optional[str] = None,
    identity: Identity = Depends(require_identity),
    store: workbook_service.WorkbookStore = Depends(get_workbook_store),
):
    workbook, _ = store.load(target_workbook_key(identity, scope))
    return workbook_service.preview(workbook, sheet)


@router.get("/get", response_model=CellRead)
def get_cell(
    sheet: str = Query(..., min_length=1),
    cell: str = Query(..., min_length=1),
    scope: Optional[str] = None,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
    store: workbook_service.WorkbookStore = Depends(get_workbook_store),
):
    quota_service.check_quota(session, identity, "get_cell")
    key = target_workbook_key(identity, scope)
    workbook, _ = store.load(key)
    address = workbook_service.parse_address(cell)
    value = workbook_service.get_cell(workbook, sheet, address)

    audit_service.record(
        session, identity, "get_cell", sheet,
        metadata={"cell": address, "value": value},
        details={"scope": scope, "source": key},
    )
    quota_service.increment(session, identity, "get_cell")
    return CellRead(sheet=sheet, cell=address, value=value, source=key)


@router.get("/meta", response_model=WorkbookMeta)
def workbook_meta(
    scope: Optional[str] = None,
    identity: Identity = Depends(require_identity),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    key = target_workbook_key(identity, scope)
    try:
        info = storage.head_object(settings.EXCEL_BUCKET, key)
    except ObjectNotFound:
        raise NotFound("File not found")
    except ObjectStorageError as e:
        raise UpstreamFailure(f"Storage read failed: {e}")
    return WorkbookMeta(
        name=key.rsplit("/", 1)[-1],
        key=key,
        size=info.size,
        last_modified=info.last_modified,
        version=info.version,
    )


# ==================================================================
#  ✅ Mutations
# ==================================================================
@router.post("/add-sheet", response_model=SheetMutation)
def add_sheet(
    data: SheetCreate,
    request: Request,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
    store: workbook_service.WorkbookStore = Depends(get_workbook_store),
):
    quota_service.check_quota(session, identity, "add_sheet")
    name = workbook_service.validate_sheet_name(data.name)
    key = target_workbook_key(identity, data.scope)
    workbook, _ = store.load_or_create(key)
    sheets = workbook_service.add_sheet(workbook, name, data.overwrite)
    store.save(key, workbook)

    audit_service.record(
        session, identity, "add_sheet", name,
        metadata={"overwrite": data.overwrite, "role": identity.role, "plan": identity.plan},
        details={"key": key},
    )
    quota_service.increment(session, identity, "add_sheet")
    broadcast(request, "excel:add_sheet", {"by": identity.email, "sheet": name, "key": key})
    return SheetMutation(sheet=name, sheets=sheets)


@router.post("/delete-sheet", response_model=SheetMutation)
def delete_sheet(
    data: SheetDelete,
    request: Request,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
    store: workbook_service.WorkbookStore = Depends(get_workbook_store),
):
    quota_service.check_quota(session, identity, "delete_sheet")
    key = target_workbook_key(identity, data.scope)
    workbook, _ = store.load(key)
    sheets = workbook_service.delete_sheet(workbook, data.name)
    store.save(key, workbook)

    audit_service.record(
        session, identity, "delete_sheet", data.name,
        metadata={"role": identity.role, "plan": identity.plan},
        details={"key": key},
    )
    quota_service.increment(session, identity, "delete_sheet")
    broadcast(request, "excel:delete_sheet", {"by": identity.email, "sheet": data.name, "key": key})
    return SheetMutation(deleted=data.name, sheets=sheets)


@router.post("/save-all", response_model=SaveAllResult)
def save_all(
    data: SaveAllRequest,
    request: Request,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
    store: workbook_service.WorkbookStore = Depends(get_workbook_store),
):
    quota_service.check_quota(session, identity, "save_all")
    quota_service.check_row_cap(identity, len(data.data))
    sheet = workbook_service.validate_sheet_name(data.sheet)
    key = target_workbook_key(identity, data.scope)
    workbook, _ = store.load_or_create(key)
    rows, cols = workbook_service.save_all(workbook, sheet, data.data)
    version = store.save(key, workbook, expected_version=data.expected_version)

    audit_service.record(
        session, identity, "save_all", sheet,
        metadata={"rows": rows, "cols": cols, "role": identity.role, "plan": identity.plan},
        details={"updated": True, "key": key},
    )
    quota_service.increment(session, identity, "save_all")
    broadcast(request, "excel:save_all", {
        "by": identity.email, "sheet": sheet, "rows": rows, "cols": cols, "key": key,
    })
    return SaveAllResult(rows=rows, cols=cols, version=version)


@router.post("/overwrite", response_model=SheetMutation)
def overwrite_sheet(
    data: SheetOverwrite,
    request: Request,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
    store: workbook_service.WorkbookStore = Depends(get_workbook_store),
):
    name = workbook_service.validate_sheet_name(data.name)
    key = identity.workbook_key
    workbook, _ = store.load(key)
    sheets = workbook_service.overwrite_sheet(workbook, name)
    store.save(key, workbook)

    audit_service.record(session, identity, "overwrite_sheet", name, details={"overwritten": True})
    broadcast(request, "excel:overwrite", {"by": identity.email, "sheet": name, "key": key})
    return SheetMutation(sheet=name, sheets=sheets)


# ==================================================================
#  ✅ Premium: download, public link, exports
# ==================================================================
@router.get("/download")
def download_workbook(
    scope: Optional[str] = None,
    identity: Identity = Depends(gate("excel:download")),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    key = target_workbook_key(identity, scope)
    try:
        content = storage.read_bytes(settings.EXCEL_BUCKET, key)
    except ObjectNotFound:
        raise NotFound("Workbook not found")
    except ObjectStorageError as e:
        raise UpstreamFailure(f"Storage read failed: {e}")

    audit_service.record(session, identity, "download", details={"key": key})
    return Response(
        content=content,
        media_type=workbook_service.XLSX_CONTENT_TYPE,
        headers=_attachment(key.rsplit("/", 1)[-1]),
    )


@router.get("/public")
def public_link(
    scope: Optional[str] = None,
    identity: Identity = Depends(gate("excel:public")),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    key = target_workbook_key(identity, scope)
    try:
        url = storage.public_url(settings.EXCEL_BUCKET, key)
    except ObjectNotFound:
        raise NotFound("File not found in bucket")
    except ObjectStorageError as e:
        raise UpstreamFailure(str(e))
    return {"url": url, "key": key}


@router.get("/export/csv")
def export_sheet_csv(
    sheet: str = Query(..., min_length=1),
    scope: Optional[str] = None,
    identity: Identity = Depends(gate("excel:export_csv")),
    session: Session = Depends(get_session),
    store: workbook_service.WorkbookStore = Depends(get_workbook_store),
):
    workbook, _ = store.load(target_workbook_key(identity, scope))
    body = export_csv(workbook, sheet)
    audit_service.record(session, identity, "export_csv", sheet, details={"sheet": sheet})
    return Response(content=body, media_type="text/csv; charset=utf-8", headers=_attachment(f"{sheet}.csv"))


@router.get("/export/pdf")
def export_sheet_pdf(
    sheet: str = Query(..., min_length=1),
    scope: Optional[str] = None,
    identity: Identity = Depends(gate("excel:export_pdf")),
    session: Session = Depends(get_session),
    store: workbook_service.WorkbookStore = Depends(get_workbook_store),
):
    workbook, _ = store.load(target_workbook_key(identity, scope))
    workbook_service.get_sheet(workbook, sheet)
    pdf_data = export_pdf(workbook, [sheet])
    audit_service.record(session, identity, "export_pdf_single", sheet, details={"sheet": sheet})
    return Response(content=pdf_data, media_type="application/pdf", headers=_attachment(f"{sheet}.pdf"))


@router.get("/export/pdf-multi")
def export_workbook_pdf(
    sheets: Optional[str] = Query(default=None, description="Comma-separated sheet names; all when omitted"),
    scope: Optional[str] = None,
    identity: Identity = Depends(gate("excel:export_pdf_multi")),
    session: Session = Depends(get_session),
    store: workbook_service.WorkbookStore = Depends(get_workbook_store),
):
    workbook, _ = store.load(target_workbook_key(identity, scope))
    if sheets:
        names = [s.strip() for s in sheets.split(",") if s.strip()]
    else:
        names = workbook_service.sheet_names(workbook)
    pdf_data = export_pdf(workbook, names)
    audit_service.record(session, identity, "export_pdf_multi", details={"sheets": names})
    return Response(content=pdf_data, media_type="application/pdf", headers=_attachment("workbook.pdf"))


# ==================================================================
#  ✅ Upload / convert
# ==================================================================
def _enforce_upload_rules(identity: Identity, storage: ObjectStorageClient, filename: str, verb: str) -> None:
    if not quota_service.quota_applies(identity):
        return
    ext = workbook_service.file_extension(filename)
    if ext in ("csv", "pdf"):
        raise PermissionDenied(f"CSV and PDF {verb}s require a premium plan")
    if ext == "xlsx":
        try:
            existing = storage.list_objects(settings.EXCEL_BUCKET, f"{user_prefix(identity.user_id)}/")
        except ObjectStorageError as e:
            raise UpstreamFailure(f"Storage list failed: {e}")
        if existing:
            raise PermissionDenied(f"Free plan allows only one Excel file {verb}")


def _store_upload(
    identity: Identity,
    session: Session,
    storage: ObjectStorageClient,
    filename: str,
    content: bytes,
) -> tuple:
    """Convert, store under a unique key and point the profile at it."""
    workbook, xlsx_bytes, preview_rows = workbook_service.convert_upload(filename, content)
    prefix = user_prefix(identity.user_id)
    try:
        existing = storage.list_objects(settings.EXCEL_BUCKET, f"{prefix}/")
        key = workbook_service.unique_key(existing, prefix, workbook_service.stored_filename(filename))
        storage.write(
            settings.EXCEL_BUCKET, key, xlsx_bytes, content_type=workbook_service.XLSX_CONTENT_TYPE
        )
    except ObjectStorageError as e:
        raise UpstreamFailure(f"Storage upload failed: {e}")

    profile = session.get(User, identity.user_id)
    if profile is not None:
        profile.user_file_key = key
        session.add(profile)
        session.commit()
    return key, workbook, preview_rows


@router.post("/upload", response_model=UploadResult)
def upload_file(
    request: Request,
    file: UploadFile = File(...),
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    filename = file.filename or ""
    if not filename:
        raise ValidationFailed("No file uploaded")
    _enforce_upload_rules(identity, storage, filename, "upload")
    content = file.file.read()

    key, workbook, preview_rows = _store_upload(identity, session, storage, filename, content)
    names = workbook_service.sheet_names(workbook)
    audit_service.record(
        session, identity, "upload_file", names[0] if names else None,
        details={"fileName": filename, "type": workbook_service.file_extension(filename)},
    )
    broadcast(request, "excel:upload", {"by": identity.email, "fileKey": key, "fileName": key.rsplit("/", 1)[-1]})
    logger.info(f"📤 {identity.email} uploaded {filename} to {key}")
    return UploadResult(fileKey=key, fileName=key.rsplit("/", 1)[-1], sheetNames=names, preview=preview_rows)


def _fetch_remote(url: str) -> bytes:
    if not url.lower().startswith(("http://", "https://")):
        raise ValidationFailed("fileUrl must be an http(s) URL")
    try:
        response = httpx.get(url, timeout=15.0, follow_redirects=True)
    except httpx.HTTPError as e:
        raise ValidationFailed(f"Failed to fetch fileUrl: {e}")
    if response.is_error:
        raise ValidationFailed("Failed to fetch fileUrl")
    return response.content


@router.post("/convert", response_model=UploadResult)
def convert_file(
    data: ConvertRequest,
    request: Request,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    if data.fileBase64:
        try:
            content = base64.b64decode(data.fileBase64, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationFailed("fileBase64 is not valid base64")
    elif data.fileUrl:
        content = _fetch_remote(data.fileUrl)
    else:
        raise ValidationFailed("fileBase64 or fileUrl required")

    filename = data.fileName or "uploaded.xlsx"
    _enforce_upload_rules(identity, storage, filename, "conversion")

    key, workbook, _ = _store_upload(identity, session, storage, filename, content)
    names = workbook_service.sheet_names(workbook)
    audit_service.record(
        session, identity, "convert_file", names[0] if names else None,
        details={"fileName": filename},
    )
    broadcast(request, "excel:convert", {"by": identity.email, "fileKey": key, "fileName": key.rsplit("/", 1)[-1]})
    return UploadResult(fileKey=key, fileName=key.rsplit("/", 1)[-1], sheetNames=names, appUrl="/app/")
