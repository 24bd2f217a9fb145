# services/export_service.py
import csv
import io
from typing import Any, List
from xml.sax.saxutils import escape

from openpyxl import Workbook
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, PageBreak

from core.errors import NotFound
from services.workbook_service import get_sheet, grid_values

PAGE_MARGIN = 36
MAX_COL_WIDTH = 100
FONT_SIZE = 8


# ========================================
# 📄 CSV
# ========================================
def _csv_text(value: Any) -> str:
    return "" if value is None else str(value)


def export_csv(workbook: Workbook, sheet: str) -> str:
    """Sheet as CSV. Fields holding a comma, quote or line break are quoted."""
    ws = get_sheet(workbook, sheet)
    out = io.StringIO()
    writer = csv.writer(out, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    for row in grid_values(ws):
        writer.writerow([_csv_text(v) for v in row])
    return out.getvalue()


# ========================================
# 🧾 PDF
# ========================================
def _truncate(text: str, width: float) -> str:
    limit = max(int(width / (FONT_SIZE * 0.55)), 1)
    return text if len(text) <= limit else text[: max(limit - 1, 0)] + "…"


def _sheet_table(ws, available_width: float) -> Table:
    rows = grid_values(ws, min_cols=1)
    ncols = len(rows[0]) if rows else 1
    col_width = min(MAX_COL_WIDTH, available_width / ncols)

    data = [[f"Col {c}" for c in range(1, ncols + 1)]]
    for row in rows:
        data.append([_truncate("" if v is None else str(v), col_width) for v in row])

    table = Table(data, colWidths=[col_width] * ncols, repeatRows=1, hAlign="LEFT")
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f3f4f6")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.HexColor("#111827")),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), FONT_SIZE),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#d1d5db")),
    ]))
    return table


def export_pdf(workbook: Workbook, sheets: List[str]) -> bytes:
    """
    One table per sheet on A4, header row repeated on overflow pages.
    Every sheet after the first starts a new page; unknown names are skipped.
    """
    present = [name for name in sheets if name in workbook.sheetnames]
    if not present:
        raise NotFound("No matching sheets to export")

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=PAGE_MARGIN,
        rightMargin=PAGE_MARGIN,
        topMargin=PAGE_MARGIN,
        bottomMargin=PAGE_MARGIN,
    )
    styles = getSampleStyleSheet()
    elements = []
    for idx, name in enumerate(present):
        if idx > 0:
            elements.append(PageBreak())
        elements.append(Paragraph(f"Sheet: {escape(name)}", styles["Heading2"]))
        elements.append(Spacer(1, 6))
        elements.append(_sheet_table(get_sheet(workbook, name), doc.width))

    doc.build(elements)
    pdf_data = buffer.getvalue()
    buffer.close()
    return pdf_data
