"""
CSV parsing for contact imports.

Maps the columns name, email, phone, status and comment (plus common aliases)
onto CandidateContact. Blank name or phone is not rejected here: the import
batch processor applies that rule to CSV and JSON rows alike.
"""

import csv
import io
import re
from typing import Generator

from pydantic import ValidationError as PydanticValidationError

from contactsvc.contacts.schemas import CandidateContact, CSVRowError
from contactsvc.shared.logging import get_logger

logger = get_logger(__name__)

REQUIRED_HEADERS = {"name", "phone"}
OPTIONAL_HEADERS = {"email", "status", "comment"}
ALL_HEADERS = REQUIRED_HEADERS | OPTIONAL_HEADERS

HEADER_ALIASES: dict[str, str] = {
    "full_name": "name",
    "contact_name": "name",
    "mobile": "phone",
    "tel": "phone",
    "telephone": "phone",
    "phone_number": "phone",
    "mail": "email",
    "e_mail": "email",
    "email_address": "email",
    "notes": "comment",
    "note": "comment",
    "comments": "comment",
}


def normalize_header(header: str) -> str:
    """Normalize a CSV header to a candidate field name."""
    h = header.strip().lower()
    h = h.replace(" ", "_").replace("-", "_")
    h = re.sub(r"__+", "_", h)
    return HEADER_ALIASES.get(h, h)


class CSVParser:
    """Parser for contact CSV files."""

    def __init__(
        self,
        delimiter: str = ",",
        encoding: str = "utf-8-sig",
    ) -> None:
        self.delimiter = delimiter
        self.encoding = encoding

    def parse(
        self,
        content: bytes,
    ) -> Generator[tuple[int, CandidateContact | None, CSVRowError | None], None, None]:
        """Parse CSV content into candidates.

        Args:
            content: Raw CSV file content.

        Yields:
            Tuples of (line_number, candidate or None, error or None). A
            file-level problem is a single error on line 0.
        """
        try:
            text = content.decode(self.encoding)
        except UnicodeDecodeError as e:
            yield 0, None, CSVRowError(line_number=0, error=f"File encoding error: {e}")
            return

        reader = csv.DictReader(io.StringIO(text), delimiter=self.delimiter)

        if reader.fieldnames is None:
            yield 0, None, CSVRowError(line_number=0, error="CSV file is empty or has no headers")
            return

        normalized_headers: dict[str, str] = {}
        for header in reader.fieldnames:
            normalized_headers.setdefault(normalize_header(header or ""), header)

        missing_required = sorted(REQUIRED_HEADERS - normalized_headers.keys())
        if missing_required:
            yield 0, None, CSVRowError(
                line_number=0,
                error=f"Missing required headers: {', '.join(missing_required)}",
            )
            return

        logger.debug(
            "CSV headers parsed",
            extra={
                "original_headers": list(reader.fieldnames),
                "normalized_headers": list(normalized_headers.keys()),
            },
        )

        # Header is line 1.
        for line_num, row in enumerate(reader, start=2):
            mapped = {
                field: row.get(header) or ""
                for field, header in normalized_headers.items()
                if field in ALL_HEADERS
            }
            candidate, error = self._parse_row(line_num, mapped)
            yield line_num, candidate, error

    def _parse_row(
        self,
        line_number: int,
        row: dict[str, str],
    ) -> tuple[CandidateContact | None, CSVRowError | None]:
        try:
            return CandidateContact.model_validate(row), None
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first["loc"] else None
            logger.debug(
                "CSV row rejected",
                extra={"line_number": line_number, "field": field, "error": first["msg"]},
            )
            return None, CSVRowError(
                line_number=line_number,
                field=field,
                error=f"Invalid {field or 'row'}: {first['msg']}",
                value=row.get(field) if field else None,
            )
