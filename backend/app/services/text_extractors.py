"""
Text extraction for spreadsheets, Word documents and plain text.

Each extractor takes raw bytes and returns the text the model will read.
Failures raise ExtractionError; the normalizer decides what to do with them.

Public API:
  extract_tabular_text(file_content, filename) -> str
  extract_document_text(file_content)          -> str
  decode_plain_text(file_content)              -> str
"""

import csv
import io
import logging

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Raised when a file's text cannot be extracted."""
    def __init__(self, message: str, error_code: str = "extraction_failed"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _cell_to_str(value) -> str:
    """Convert a cell value to its text representation."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _rows_to_csv(rows: list[list]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    for row in rows:
        writer.writerow([_cell_to_str(c) for c in row])
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Spreadsheet readers
# ---------------------------------------------------------------------------

def _read_csv_bytes(file_content: bytes) -> list[tuple[str, list[list]]]:
    """Parse CSV bytes, trying common encodings in turn."""
    for encoding in ("utf-8-sig", "windows-1252", "latin-1"):
        try:
            text = file_content.decode(encoding)
        except UnicodeDecodeError:
            continue
        try:
            rows = [row for row in csv.reader(io.StringIO(text))]
        except csv.Error as e:
            raise ExtractionError(f"Could not parse CSV file: {e}", "parse_failed")
        return [("Sheet1", rows)]

    raise ExtractionError(
        "CSV file could not be decoded with any supported encoding",
        "parse_failed",
    )


def _read_xlsx_bytes(file_content: bytes) -> list[tuple[str, list[list]]]:
    import openpyxl

    try:
        wb = openpyxl.load_workbook(
            io.BytesIO(file_content),
            data_only=True,
            read_only=True,
        )
    except Exception as e:
        raise ExtractionError(f"Could not parse xlsx file: {e}", "parse_failed")

    # read_only parses sheet XML lazily, so a corrupt sheet only fails here
    try:
        return [
            (ws.title, [list(row) for row in ws.iter_rows(values_only=True)])
            for ws in wb.worksheets
        ]
    except Exception as e:
        raise ExtractionError(f"Could not read xlsx sheet: {e}", "parse_failed")
    finally:
        wb.close()


def _read_xls_bytes(file_content: bytes) -> list[tuple[str, list[list]]]:
    import xlrd

    try:
        wb = xlrd.open_workbook(file_contents=file_content)
    except Exception as e:
        raise ExtractionError(f"Could not parse xls file: {e}", "parse_failed")

    sheets = []
    for ws in wb.sheets():
        sheet_rows = []
        for row_idx in range(ws.nrows):
            row = []
            for col_idx in range(ws.ncols):
                cell = ws.cell(row_idx, col_idx)
                if cell.ctype == xlrd.XL_CELL_EMPTY:
                    row.append(None)
                elif cell.ctype == xlrd.XL_CELL_DATE:
                    try:
                        row.append(xlrd.xldate.xldate_as_datetime(cell.value, wb.datemode))
                    except Exception:
                        row.append(cell.value)
                else:
                    row.append(cell.value)
            sheet_rows.append(row)
        sheets.append((ws.name, sheet_rows))

    return sheets


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_tabular_text(file_content: bytes, filename: str) -> str:
    """
    Render every sheet of a spreadsheet as CSV text, each prefixed with
    ``Sheet: <name>``.

    Raises:
        ExtractionError: if the file cannot be parsed.
    """
    lower = filename.lower()
    if lower.endswith(".csv"):
        sheets = _read_csv_bytes(file_content)
    elif lower.endswith(".xls"):
        sheets = _read_xls_bytes(file_content)
    else:
        sheets = _read_xlsx_bytes(file_content)

    blocks = [f"Sheet: {name}\n{_rows_to_csv(rows)}" for name, rows in sheets]
    return "\n".join(blocks)


def extract_document_text(file_content: bytes) -> str:
    """
    Extract paragraph and table text from a Word document with python-docx.

    Legacy binary .doc files are not readable by python-docx and surface as
    ExtractionError like any other corrupt document.
    """
    import docx

    try:
        document = docx.Document(io.BytesIO(file_content))
    except Exception as e:
        raise ExtractionError(f"Could not open Word document: {e}", "parse_failed")

    try:
        text_parts = [p.text for p in document.paragraphs if p.text.strip()]

        for i, table in enumerate(document.tables, start=1):
            rows = [" | ".join(cell.text.strip() for cell in row.cells) for row in table.rows]
            if rows:
                text_parts.append(f"[Table {i}]\n" + "\n".join(rows))
    except Exception as e:
        raise ExtractionError(f"Could not read Word document content: {e}", "parse_failed")

    return "\n".join(text_parts)


def decode_plain_text(file_content: bytes) -> str:
    """Best-effort UTF-8 decode; undecodable bytes are replaced."""
    return file_content.decode("utf-8", errors="replace")
