# ================================================================
# services/workbook_service.py: Workbook storage + mutation engine
# ================================================================
import csv
import io
import logging
import re
from typing import Any, List, Optional, Tuple

from openpyxl import Workbook, load_workbook
from openpyxl.utils.cell import coordinate_from_string, column_index_from_string
from openpyxl.utils.exceptions import CellCoordinatesException

from core.errors import Conflict, InvalidWorkbook, NotFound, UpstreamFailure, ValidationFailed
from core.storage import ObjectNotFound, ObjectStorageClient, ObjectStorageError, VersionConflict

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
DEFAULT_SHEET = "Sheet1"
NEW_SHEET_MARKER = "New sheet created"
OVERWRITE_MARKER = "Overwritten sheet"

_INVALID_TITLE = re.compile(r"[\\*?:/\[\]]")


# ------------------------
# STORE (one bucket)
# ------------------------
class WorkbookStore:
    """Whole-blob read-modify-write access to workbooks in one bucket."""

    def __init__(self, storage: ObjectStorageClient, bucket: str):
        self.storage = storage
        self.bucket = bucket

    def load(self, key: str) -> Tuple[Workbook, str]:
        try:
            info = self.storage.head_object(self.bucket, key)
            data = self.storage.read_bytes(self.bucket, key)
        except ObjectNotFound:
            raise NotFound("Workbook not found")
        except ObjectStorageError as e:
            raise UpstreamFailure(f"Storage read failed: {e}")
        return parse_xlsx(data), info.version

    def load_or_create(self, key: str) -> Tuple[Workbook, Optional[str]]:
        """Missing workbooks are created lazily on first write."""
        try:
            return self.load(key)
        except NotFound:
            logger.info(f"📄 Creating workbook at {self.bucket}/{key}")
            return new_workbook(), None

    def save(self, key: str, workbook: Workbook, expected_version: Optional[str] = None) -> str:
        try:
            return self.storage.write(
                self.bucket,
                key,
                workbook_bytes(workbook),
                content_type=XLSX_CONTENT_TYPE,
                expected_version=expected_version,
            )
        except VersionConflict:
            raise Conflict("Workbook was modified by another request", status_code=409)
        except ObjectStorageError as e:
            raise UpstreamFailure(f"Storage upload failed: {e}")


# ------------------------
# (DE)SERIALISATION
# ------------------------
def new_workbook() -> Workbook:
    workbook = Workbook()
    workbook.active.title = DEFAULT_SHEET
    return workbook


def parse_xlsx(data: bytes) -> Workbook:
    try:
        return load_workbook(io.BytesIO(data))
    except Exception as e:
        logger.warning(f"⚠️ Could not decode workbook: {e}")
        raise InvalidWorkbook()


def workbook_bytes(workbook: Workbook) -> bytes:
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def sheet_names(workbook: Workbook) -> List[str]:
    return list(workbook.sheetnames)


def get_sheet(workbook: Workbook, name: str):
    if name not in workbook.sheetnames:
        raise NotFound(f'Sheet "{name}" not found')
    return workbook[name]


def validate_sheet_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Sheet name is required")
    if len(name) > 31:
        raise ValidationFailed("Sheet name must be at most 31 characters")
    if _INVALID_TITLE.search(name):
        raise ValidationFailed("Sheet name contains an invalid character")
    return name


def used_extent(ws) -> Tuple[int, int]:
    """(rows, cols) up to the last cell holding a value; (0, 0) for an empty sheet."""
    rows = cols = 0
    for row in ws.iter_rows():
        for cell in row:
            if cell.value is not None:
                rows = max(rows, cell.row)
                cols = max(cols, cell.column)
    return rows, cols


# ------------------------
# MUTATIONS
# ------------------------
def add_sheet(workbook: Workbook, name: str, overwrite: bool = False) -> List[str]:
    name = validate_sheet_name(name)
    if name in workbook.sheetnames:
        if not overwrite:
            raise Conflict("Sheet already exists")
        workbook.remove(workbook[name])
    ws = workbook.create_sheet(name)
    ws["A1"] = NEW_SHEET_MARKER
    return sheet_names(workbook)


def overwrite_sheet(workbook: Workbook, name: str) -> List[str]:
    name = validate_sheet_name(name)
    if name in workbook.sheetnames:
        workbook.remove(workbook[name])
    ws = workbook.create_sheet(name)
    ws["A1"] = OVERWRITE_MARKER
    return sheet_names(workbook)


def delete_sheet(workbook: Workbook, name: str) -> List[str]:
    workbook.remove(get_sheet(workbook, name))
    # a workbook always keeps at least one sheet
    if not workbook.sheetnames:
        workbook.create_sheet(DEFAULT_SHEET)
    return sheet_names(workbook)


def normalize_grid(data: Any) -> List[List[Any]]:
    """Wrap scalar rows and pad every row with None to the widest row."""
    if not isinstance(data, list):
        raise ValidationFailed("data must be a 2D array")
    rows = [list(r) if isinstance(r, (list, tuple)) else [r] for r in data]
    width = max((len(r) for r in rows), default=0)
    return [r + [None] * (width - len(r)) for r in rows]


def to_cell_value(value: Any) -> Any:
    if isinstance(value, dict):
        if value.get("formula"):
            formula = str(value["formula"])
            return formula if formula.startswith("=") else f"={formula}"
        return value.get("value", value.get("result"))
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def save_all(workbook: Workbook, sheet: str, data: Any) -> Tuple[int, int]:
    """
    Replace the sheet's content with `data`. Cells are written only when the
    value changes; anything outside the new bounds is cleared.
    Returns the (rows, cols) of the normalised grid.
    """
    sheet = validate_sheet_name(sheet)
    grid = normalize_grid(data)
    ws = workbook[sheet] if sheet in workbook.sheetnames else workbook.create_sheet(sheet)

    old_rows, old_cols = used_extent(ws)
    new_rows = len(grid)
    new_cols = len(grid[0]) if grid else 0

    for r, row in enumerate(grid, start=1):
        for c, raw in enumerate(row, start=1):
            value = to_cell_value(raw)
            cell = ws.cell(row=r, column=c)
            if cell.value != value:
                cell.value = value

    # rows below the new height
    for r in range(new_rows + 1, old_rows + 1):
        for c in range(1, old_cols + 1):
            cell = ws.cell(row=r, column=c)
            if cell.value is not None:
                cell.value = None

    # columns right of the new width, for every row either grid touched
    for r in range(1, max(old_rows, new_rows) + 1):
        for c in range(new_cols + 1, old_cols + 1):
            cell = ws.cell(row=r, column=c)
            if cell.value is not None:
                cell.value = None

    return new_rows, new_cols


# ------------------------
# READS
# ------------------------
def parse_address(address: Optional[str]) -> str:
    address = (address or "").strip().upper()
    try:
        column, row = coordinate_from_string(address)
        column_index_from_string(column)
    except (CellCoordinatesException, ValueError):
        raise ValidationFailed(f"Invalid cell address: {address or '(empty)'}")
    if row < 1:
        raise ValidationFailed(f"Invalid cell address: {address}")
    return f"{column}{row}"


def get_cell(workbook: Workbook, sheet: str, address: str) -> Any:
    ws = get_sheet(workbook, sheet)
    return ws[parse_address(address)].value


def grid_values(ws, min_rows: int = 0, min_cols: int = 0) -> List[List[Any]]:
    rows, cols = used_extent(ws)
    rows, cols = max(rows, min_rows), max(cols, min_cols)
    return [
        [ws.cell(row=r, column=c).value for c in range(1, cols + 1)]
        for r in range(1, rows + 1)
    ]


def preview(workbook: Workbook, sheet: str) -> dict:
    ws = get_sheet(workbook, sheet)
    rows, cols = used_extent(ws)
    return {
        "sheet": sheet,
        "preview": grid_values(ws, min_rows=1, min_cols=1),
        "rows": rows,
        "cols": cols,
    }


def merged_sheet_names(own: List[str], master: List[str]) -> List[str]:
    """Order-preserving set union."""
    seen = set()
    merged = []
    for name in own + master:
        if name not in seen:
            seen.add(name)
            merged.append(name)
    return merged


# ------------------------
# UPLOAD CONVERSION
# ------------------------
SUPPORTED_UPLOADS = ("xlsx", "csv")


def file_extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def convert_upload(filename: str, data: bytes) -> Tuple[Workbook, bytes, List[List[Any]]]:
    """
    Turn an uploaded file into xlsx bytes.
    Returns (workbook, xlsx_bytes, preview_rows).
    """
    ext = file_extension(filename)
    if ext == "xlsx":
        workbook = parse_xlsx(data)
        if not workbook.sheetnames:
            ws = workbook.create_sheet(DEFAULT_SHEET)
            ws["A1"] = NEW_SHEET_MARKER
            data = workbook_bytes(workbook)
        preview_rows = grid_values(workbook.worksheets[0])
        return workbook, data, preview_rows
    if ext == "csv":
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationFailed("File parse failed: CSV must be UTF-8 encoded")
        rows = list(csv.reader(io.StringIO(text)))
        workbook = new_workbook()
        ws = workbook.active
        for r, row in enumerate(rows, start=1):
            for c, value in enumerate(row, start=1):
                ws.cell(row=r, column=c, value=value)
        return workbook, workbook_bytes(workbook), rows[:20]
    if ext == "pdf":
        raise ValidationFailed("PDF uploads are not supported; upload an .xlsx or .csv file")
    raise ValidationFailed("Unsupported file type")


def stored_filename(filename: str) -> str:
    """Basename of the upload; converted CSVs are stored as .xlsx."""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1].strip() or "uploaded.xlsx"
    if file_extension(name) == "csv":
        name = f"{name[:-4]}.xlsx"
    return name


def unique_key(existing_keys: List[str], prefix: str, filename: str) -> str:
    """`{prefix}/{filename}`, or `{prefix}/{base} N.{ext}` when taken."""
    names = {k.rsplit("/", 1)[-1] for k in existing_keys}
    if filename not in names:
        return f"{prefix}/{filename}"
    base, _, ext = filename.rpartition(".")
    i = 1
    while f"{base} {i}.{ext}" in names:
        i += 1
    return f"{prefix}/{base} {i}.{ext}"
