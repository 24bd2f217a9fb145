# excel_schema.py
from pydantic import BaseModel, Field
from typing import Any, List, Optional


# ---------------------------
# Requests
# ---------------------------
class SheetCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=31)
    overwrite: bool = False
    scope: Optional[str] = None


class SheetDelete(BaseModel):
    name: str = Field(..., min_length=1)
    scope: Optional[str] = None


class SheetOverwrite(BaseModel):
    name: str = Field(..., min_length=1, max_length=31)


class SaveAllRequest(BaseModel):
    sheet: str = Field(..., min_length=1)
    data: List[Any]
    scope: Optional[str] = None
    # workbook version from /excel/meta; when set the save fails on a concurrent change
    expected_version: Optional[str] = None


class ConvertRequest(BaseModel):
    fileBase64: Optional[str] = None
    fileUrl: Optional[str] = None
    fileName: Optional[str] = None


# ---------------------------
# Responses
# ---------------------------
class SheetList(BaseModel):
    sheets: List[str]


class LatestSheet(BaseModel):
    sheet: Optional[str] = None
    index: Optional[int] = None


class SheetMutation(BaseModel):
    success: bool = True
    sheet: Optional[str] = None
    deleted: Optional[str] = None
    sheets: List[str] = []


class SaveAllResult(BaseModel):
    success: bool = True
    rows: int
    cols: int
    version: Optional[str] = None


class CellRead(BaseModel):
    sheet: str
    cell: str
    value: Any = None
    source: str


class SheetPreview(BaseModel):
    sheet: str
    preview: List[List[Any]]
    rows: int
    cols: int


class WorkbookMeta(BaseModel):
    name: str
    key: str
    size: int
    last_modified: Any = None
    version: str


class UploadResult(BaseModel):
    success: bool = True
    fileKey: str
    fileName: str
    sheetNames: List[str]
    preview: List[List[Any]] = []
    appUrl: Optional[str] = None
