"""
Tax summary workbook builder.

Builds one sheet per property (income and expense blocks comparing prior and
current year, live SUM/variance formulas, hyperlinks to the source document
inside the audit ZIP) plus a final "Audit Trail" sheet listing every file the
pipeline read and the ones no figure was taken from.

Public API:
  build_workbook(result)        -> openpyxl.Workbook
  build_workbook_bytes(result)  -> bytes
  rewrite_source_path(path)     -> str
  find_unused_files(manifest, properties) -> list[str]
"""

import io
import logging
import re
from typing import Optional

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.worksheet.worksheet import Worksheet

from app.models.analysis import AnalysisResult, PropertyRecord, SourceMapping
from app.models.document import PATH_SEPARATOR

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Layout constants
# ---------------------------------------------------------------------------

SOURCE_DOCUMENTS_DIR = "Source_Documents"
ATTACHMENTS_SUFFIX = "_attachments/"
AUDIT_TRAIL_SHEET = "Audit Trail"

TITLE_LABEL = "PROPERTY SUMMARY"
INCOME_LABEL = "INCOME"
EXPENSES_LABEL = "EXPENSES"
TOTAL_INCOME_LABEL = "TOTAL INCOME"
TOTAL_EXPENSES_LABEL = "TOTAL EXPENSES"
NET_INCOME_LABEL = "NET RENTAL INCOME"
NOTES_LABEL = "NOTES / MISSING INFO"
FILES_LABEL = "FILES PROCESSED FOR THIS PROPERTY"
AUDIT_TRAIL_TITLE = "FULL AUDIT TRAIL - ALL FILES PROCESSED"
UNUSED_FILES_LABEL = "UNUSED FILES (FOR REVIEW)"

# Manifest entries under these prefixes are reference material, never cited.
REFERENCE_PREFIXES = ("PRIOR", "TEMPLATE")

NUMBER_FORMAT = "#,##0.00"
VALUE_COLUMNS = (2, 3, 4)   # B (prior), C (current), D (variance)
SOURCE_COLUMN = 5           # E

MAX_SHEET_TITLE_LENGTH = 31
_INVALID_TITLE_CHARS_RE = re.compile(r"[\[\]:*?/\\]")

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_TITLE_FONT = Font(bold=True, size=13)
_HEADER_FONT = Font(bold=True, size=11)
_TOTAL_FONT = Font(bold=True)

_HEADER_FILL = PatternFill(
    start_color="D9E1F2",
    end_color="D9E1F2",
    fill_type="solid",
)

_COLUMN_WIDTHS = {"A": 40, "B": 16, "C": 16, "D": 16, "E": 60}


def rewrite_source_path(source_file: str) -> str:
    """
    Map a breadcrumb path to its location under Source_Documents/.

    "Email.msg > invoice.pdf" -> "Email.msg_attachments/invoice.pdf".
    Must match the layout written by the audit packager.
    """
    return source_file.replace(PATH_SEPARATOR, ATTACHMENTS_SUFFIX).replace("\\", "/")


def find_unused_files(manifest: list[str], properties: list[PropertyRecord]) -> list[str]:
    """
    Return manifest entries no income or expense figure was sourced from.

    Prior-year and template references are excluded.
    """
    cited: set[str] = set()
    for prop in properties:
        for mapping in list(prop.income.values()) + list(prop.expenses.values()):
            if mapping.source_file:
                cited.add(mapping.source_file)

    return [
        f for f in manifest
        if not f.startswith(REFERENCE_PREFIXES) and f not in cited
    ]


def _sheet_title(address: str, index: int, used: set[str]) -> str:
    """Excel-safe, unique sheet title derived from the property address."""
    title = _INVALID_TITLE_CHARS_RE.sub("_", address or "")
    title = title[:MAX_SHEET_TITLE_LENGTH].strip().strip("'")
    if not title:
        title = f"Prop {index}"

    candidate = title
    n = 2
    while candidate.lower() in used:
        suffix = f" ({n})"
        candidate = title[:MAX_SHEET_TITLE_LENGTH - len(suffix)] + suffix
        n += 1
    used.add(candidate.lower())
    return candidate


def _year_labels(tax_year: Optional[int]) -> tuple[str, str]:
    if tax_year:
        return f"Prior ({tax_year - 1})", f"Current ({tax_year})"
    return "Prior Year", "Current Year"


def _format_values(ws: Worksheet, row: int) -> None:
    for col in VALUE_COLUMNS:
        cell = ws.cell(row=row, column=col)
        if isinstance(cell.value, (int, float)) or (
            isinstance(cell.value, str) and cell.value.startswith("=")
        ):
            cell.number_format = NUMBER_FORMAT


def _write_source_link(ws: Worksheet, row: int, source_file: str) -> None:
    cell = ws.cell(row=row, column=SOURCE_COLUMN, value=source_file)
    cell.hyperlink = f"{SOURCE_DOCUMENTS_DIR}/{rewrite_source_path(source_file)}"
    cell.hyperlink.tooltip = "Click to open source file"
    cell.style = "Hyperlink"


# ---------------------------------------------------------------------------
# Sheet writers
# ---------------------------------------------------------------------------

def _write_block(
    ws: Worksheet,
    header_row: int,
    heading: str,
    total_label: str,
    current: dict[str, SourceMapping],
    prior: dict[str, float],
    labels: tuple[str, str],
) -> int:
    """
    Write a header row, one row per category and a total row.

    Returns the total row's index.
    """
    prior_label, current_label = labels
    headers = [heading, prior_label, current_label, "Variance", "Source File (Link)"]
    for col_idx, value in enumerate(headers, start=1):
        cell = ws.cell(row=header_row, column=col_idx, value=value)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL

    categories = sorted(set(current) | set(prior))
    first_row = header_row + 1
    row = first_row
    for category in categories:
        mapping = current.get(category)
        ws.cell(row=row, column=1, value=category)
        ws.cell(row=row, column=2, value=prior.get(category, 0.0))
        ws.cell(row=row, column=3, value=mapping.amount if mapping else 0.0)
        ws.cell(row=row, column=4, value=f"=C{row}-B{row}")
        if mapping and mapping.source_file:
            _write_source_link(ws, row, mapping.source_file)
        _format_values(ws, row)
        row += 1

    total_row = row
    last_row = total_row - 1
    ws.cell(row=total_row, column=1, value=total_label).font = _TOTAL_FONT
    if categories:
        ws.cell(row=total_row, column=2, value=f"=SUM(B{first_row}:B{last_row})")
        ws.cell(row=total_row, column=3, value=f"=SUM(C{first_row}:C{last_row})")
    else:
        ws.cell(row=total_row, column=2, value=0)
        ws.cell(row=total_row, column=3, value=0)
    ws.cell(row=total_row, column=4, value=f"=C{total_row}-B{total_row}")
    for col in VALUE_COLUMNS:
        ws.cell(row=total_row, column=col).font = _TOTAL_FONT
    _format_values(ws, total_row)

    return total_row


def _write_property_sheet(ws: Worksheet, prop: PropertyRecord, labels: tuple[str, str]) -> None:
    ws.cell(row=1, column=1, value=TITLE_LABEL).font = _TITLE_FONT
    ws.cell(row=1, column=2, value=prop.address or "Unknown").font = _TITLE_FONT
    # Row 2: blank

    total_income_row = _write_block(
        ws, 3, INCOME_LABEL, TOTAL_INCOME_LABEL, prop.income, prop.income_prior, labels
    )
    total_expense_row = _write_block(
        ws, total_income_row + 2, EXPENSES_LABEL, TOTAL_EXPENSES_LABEL,
        prop.expenses, prop.expenses_prior, labels,
    )

    net_row = total_expense_row + 2
    ws.cell(row=net_row, column=1, value=NET_INCOME_LABEL).font = _TOTAL_FONT
    ws.cell(row=net_row, column=2, value=f"=B{total_income_row}-B{total_expense_row}")
    ws.cell(row=net_row, column=3, value=f"=C{total_income_row}-C{total_expense_row}")
    ws.cell(row=net_row, column=4, value=f"=C{net_row}-B{net_row}")
    for col in VALUE_COLUMNS:
        ws.cell(row=net_row, column=col).font = _TOTAL_FONT
    _format_values(ws, net_row)

    row = net_row + 1
    if prop.notes:
        row += 1
        ws.cell(row=row, column=1, value=NOTES_LABEL).font = _HEADER_FONT
        row += 1
        notes_cell = ws.cell(row=row, column=1, value=prop.notes)
        notes_cell.alignment = Alignment(wrap_text=True, vertical="top")
        row += 1

    row += 1
    ws.cell(row=row, column=1, value=FILES_LABEL).font = _HEADER_FONT
    for source in prop.source_files_read:
        row += 1
        ws.cell(row=row, column=1, value=source)

    for letter, width in _COLUMN_WIDTHS.items():
        ws.column_dimensions[letter].width = width
    ws.freeze_panes = "B3"


def _write_audit_trail(ws: Worksheet, result: AnalysisResult) -> None:
    ws.append([AUDIT_TRAIL_TITLE])
    ws.cell(row=1, column=1).font = _TITLE_FONT
    ws.append([])
    for path in result.all_files_detected:
        ws.append([path])

    unused = find_unused_files(result.all_files_detected, result.properties)
    if unused:
        ws.append([])
        ws.append([UNUSED_FILES_LABEL])
        ws.cell(row=ws.max_row, column=1).font = _HEADER_FONT
        for path in unused:
            ws.append([path])

    ws.column_dimensions["A"].width = 80


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_workbook(result: AnalysisResult) -> openpyxl.Workbook:
    """Build the tax summary workbook for a reconciled analysis result."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)

    labels = _year_labels(result.tax_year)
    used_titles = {AUDIT_TRAIL_SHEET.lower()}

    for index, prop in enumerate(result.properties, start=1):
        ws = wb.create_sheet(_sheet_title(prop.address, index, used_titles))
        _write_property_sheet(ws, prop, labels)

    _write_audit_trail(wb.create_sheet(AUDIT_TRAIL_SHEET), result)

    logger.info(
        "Built workbook: %d property sheets, %d files in audit trail",
        len(result.properties), len(result.all_files_detected),
    )
    return wb


def build_workbook_bytes(result: AnalysisResult) -> bytes:
    """Build the workbook and serialize it to .xlsx bytes."""
    buf = io.BytesIO()
    build_workbook(result).save(buf)
    buf.seek(0)
    return buf.read()
