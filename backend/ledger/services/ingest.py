"""
Spreadsheet ingestion for agency ledgers.

Turns an uploaded CSV or Excel ledger into travel-data rows:

- The header row is the first row with a cell mentioning "date"
- Rows below it are positional: date, voucher, reference, narration,
  debit, credit, balance
- Route, PNR and customer name are pulled out of the narration
- An "opening balance" line above the header becomes the session's
  opening balance

Parsing is synchronous and CPU bound; the API runs it in a worker thread.
"""

import csv
import io
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import PurePath
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from ..models.enums import FlightStatus, PaymentStatus

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".csv", ".xls", ".xlsx")
LEDGER_COLUMNS = ("date", "voucher", "reference", "narration", "debit", "credit", "balance")

# Excel stores dates as days since 1899-12-30
EXCEL_EPOCH = datetime(1899, 12, 30)

ROUTE_PATTERN = re.compile(r"([A-Z]{3}[/-][A-Z]{3})")
PNR_PATTERN = re.compile(r"\b([A-Z0-9]{6})\b")
MARKER_PATTERN = re.compile(r"[A-Z]{3}[/-][A-Z]{3}|\b[A-Z0-9]{6}\b")
NAME_PATTERN = re.compile(r"^.*?([A-Z\s]{2,}).*$")


class IngestError(Exception):
    """The uploaded file could not be turned into ledger rows."""

    code = "PROCESSING_ERROR"


class UnsupportedFileTypeError(IngestError):
    code = "INVALID_FILE_TYPE"


class FileTooLargeError(IngestError):
    code = "FILE_TOO_LARGE"


@dataclass
class ParsedLedger:
    """Rows and metadata read from one uploaded file."""

    filename: str
    entries: List[Dict[str, Any]] = field(default_factory=list)
    opening_balance: Optional[Dict[str, Any]] = None
    columns: List[str] = field(default_factory=list)

    @property
    def total_records(self) -> int:
        return len(self.entries)

    @property
    def file_type(self) -> str:
        return file_extension(self.filename).lstrip(".") or "csv"

    def summary(self) -> Dict[str, Any]:
        return {
            "total_bookings": len(self.entries),
            "total_revenue": sum(entry["debit"] or 0 for entry in self.entries),
            "total_expenses": sum(entry["credit"] or 0 for entry in self.entries),
            "coming_flights": sum(
                1 for entry in self.entries
                if entry["flight_status"] == FlightStatus.COMING.value
            ),
        }


def file_extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower()


def validate_upload(filename: str, size: int, max_bytes: int) -> None:
    """
    Check an upload before reading it.

    Raises:
        UnsupportedFileTypeError: Extension is not csv, xls or xlsx
        FileTooLargeError: File is larger than max_bytes
        IngestError: File is empty
    """
    if file_extension(filename) not in ALLOWED_EXTENSIONS:
        raise UnsupportedFileTypeError(
            "Invalid file type. Only CSV, XLS, and XLSX files are allowed."
        )
    if size > max_bytes:
        raise FileTooLargeError(
            f"File size too large: {size} bytes exceeds the {max_bytes} byte limit"
        )
    if size == 0:
        raise IngestError("Empty file uploaded")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _clean_cell(value: Any) -> Any:
    if _is_missing(value):
        return None
    if isinstance(value, str):
        return value.strip()
    return value


def read_table(content: bytes, filename: str) -> List[List[Any]]:
    """
    Read the first sheet of a file into rows of cells.

    Missing cells are None and blank rows are dropped. Rows keep their
    own length; nothing is inferred about the header here.
    """
    extension = file_extension(filename)
    try:
        if extension == ".csv":
            try:
                text = content.decode("utf-8-sig")
            except UnicodeDecodeError:
                text = content.decode("latin-1")
            frame = pd.DataFrame(list(csv.reader(io.StringIO(text))))
        else:
            frame = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, dtype=object)
    except Exception as e:
        # Corrupt workbooks surface engine-specific errors (BadZipFile, XLRDError)
        raise IngestError(f"Could not read {filename}: {e}") from e

    rows = []
    for raw in frame.astype(object).values.tolist():
        cells = [_clean_cell(value) for value in raw]
        while cells and cells[-1] is None:
            cells.pop()
        if cells:
            rows.append(cells)
    return rows


def find_header_index(rows: Sequence[Sequence[Any]]) -> Optional[int]:
    for index, row in enumerate(rows):
        if any(isinstance(cell, str) and "date" in cell.lower() for cell in row):
            return index
    return None


def parse_amount(value: Any) -> Optional[float]:
    """Numeric cell to float; thousands separators are stripped, junk is None."""
    if _is_missing(value):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return None


def normalize_date(value: Any) -> str:
    """
    Render a date cell as ``YYYY-MM-DD``.

    Accepts datetimes, Excel serial numbers and text in common day-first
    layouts. Text that is not a date is returned unchanged.
    """
    if _is_missing(value):
        return ""
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (EXCEL_EPOCH + timedelta(days=float(value))).strftime("%Y-%m-%d")

    text = str(value).strip()
    if re.match(r"^\d{4}-\d{1,2}-\d{1,2}", text):
        parsed = pd.to_datetime(text, errors="coerce")
    else:
        parsed = pd.to_datetime(text, errors="coerce", dayfirst=True)
    if pd.isna(parsed):
        return text
    return parsed.strftime("%Y-%m-%d")


def _as_text(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    return str(value)


def extract_booking_details(narration: Optional[str]) -> Dict[str, Optional[str]]:
    """
    Pull route, PNR and customer name out of a narration line.

    The name is the run of letters before the first route or PNR marker.
    """
    details: Dict[str, Optional[str]] = {"customer_name": None, "route": None, "pnr": None}
    if not narration:
        return details

    text = narration.upper()
    route_match = ROUTE_PATTERN.search(text)
    if route_match:
        details["route"] = route_match.group(1).replace("/", "-")

    pnr_match = PNR_PATTERN.search(text)
    if pnr_match:
        details["pnr"] = pnr_match.group(1)

    if route_match or pnr_match:
        before_markers = MARKER_PATTERN.split(text)[0]
        name_match = NAME_PATTERN.match(before_markers)
        name = (name_match.group(1) if name_match else before_markers).strip()
        if len(name) > 1:
            details["customer_name"] = name

    return details


def find_opening_balance(rows: Sequence[Sequence[Any]]) -> Optional[Dict[str, Any]]:
    """Opening balance from a line above the header, or None."""
    for row in rows:
        row_text = " ".join(str(cell) for cell in row if cell is not None).lower()
        if "opening" in row_text and "balance" in row_text:
            for cell in row:
                amount = parse_amount(cell)
                if amount is not None:
                    return {"date": date.today().isoformat(), "amount": amount}
    return None


def build_entry(row: Sequence[Any]) -> Dict[str, Any]:
    """Map one positional ledger row onto travel-data fields."""
    cells = list(row) + [None] * (len(LEDGER_COLUMNS) - len(row))
    raw_date, voucher, reference, narration, debit, credit, balance = cells[:len(LEDGER_COLUMNS)]

    narration_text = _as_text(narration)
    details = extract_booking_details(narration_text)

    return {
        "date": normalize_date(raw_date),
        "voucher": _as_text(voucher) or "",
        "reference": _as_text(reference),
        "narration": narration_text,
        "debit": parse_amount(debit),
        "credit": parse_amount(credit),
        "balance": parse_amount(balance),
        "customer_name": details["customer_name"],
        "route": details["route"],
        "pnr": details["pnr"],
        "flying_date": None,
        "flight_status": FlightStatus.COMING.value,
        "customer_rate": 0.0,
        "company_rate": 0.0,
        "profit": 0.0,
        "payment_status": PaymentStatus.PENDING.value,
    }


def parse_ledger(content: bytes, filename: str) -> ParsedLedger:
    """
    Parse a ledger file into entries.

    Raises:
        IngestError: The file is unreadable or has no header row
    """
    rows = read_table(content, filename)
    if not rows:
        raise IngestError("The uploaded file contains no rows")

    header_index = find_header_index(rows)
    if header_index is None:
        raise IngestError("No header row with a date column was found")

    header = [_as_text(cell) or "" for cell in rows[header_index]]
    entries = [build_entry(row) for row in rows[header_index + 1:]]
    opening_balance = find_opening_balance(rows[:header_index])

    logger.info(
        f"Parsed {len(entries)} ledger rows from {filename}"
        + (f" (opening balance {opening_balance['amount']})" if opening_balance else "")
    )
    return ParsedLedger(
        filename=filename,
        entries=entries,
        opening_balance=opening_balance,
        columns=header,
    )


def process_upload(content: bytes, filename: str, max_bytes: int) -> ParsedLedger:
    """Validate and parse an uploaded file."""
    validate_upload(filename, len(content), max_bytes)
    return parse_ledger(content, filename)
