"""
Services for the ledger back office.
"""

from .ingest import (
    IngestError,
    UnsupportedFileTypeError,
    FileTooLargeError,
    ParsedLedger,
    parse_ledger,
    process_upload,
)

__all__ = [
    "IngestError",
    "UnsupportedFileTypeError",
    "FileTooLargeError",
    "ParsedLedger",
    "parse_ledger",
    "process_upload",
]
