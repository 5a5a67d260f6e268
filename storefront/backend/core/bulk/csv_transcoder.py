"""CSV parsing for user imports and CSV serialization for exports."""
import csv
import io
import json
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Sequence

from storefront.backend.core.bulk.exceptions import CsvFormatError
from storefront.backend.core.bulk.models import DEFAULT_EXPORT_FIELDS, IMPORT_FIELDS
from storefront.backend.core.errors import E

# Browsers and spreadsheet tools disagree on the type of a .csv upload
ACCEPTED_CONTENT_TYPES = frozenset({
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
    "text/plain",
})

TEMPLATE_FILENAME = "user_import_template.csv"

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SEPARATORS = re.compile(r"[\s\-]+")


def normalize_header(name: str) -> str:
    """``firstName``, ``First Name`` and ``first-name`` all become ``first_name``."""
    name = _CAMEL_BOUNDARY.sub("_", name.strip())
    return _SEPARATORS.sub("_", name).lower()


def _media_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def parse(
    data: bytes,
    content_type: Optional[str],
    field_mapping: Optional[Mapping[str, str]] = None,
) -> Iterator[Dict[str, str]]:
    """Parse an uploaded CSV into raw field maps keyed by import field name.

    Content type, encoding and header are checked eagerly; rows are produced
    lazily and a malformed row raises CsvFormatError when it is reached.
    ``field_mapping`` renames CSV columns (matched as written in the file).
    """
    if _media_type(content_type) not in ACCEPTED_CONTENT_TYPES:
        raise CsvFormatError(
            f"Unsupported content type: {content_type or 'none'}",
            code=E.UNSUPPORTED_MEDIA_TYPE,
        )
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise CsvFormatError("CSV file must be UTF-8 encoded")

    reader = csv.reader(io.StringIO(text, newline=""), strict=True)
    try:
        raw_header = next(reader, None)
    except csv.Error as e:
        raise CsvFormatError(f"Malformed CSV header: {e}")
    if not raw_header or not any(cell.strip() for cell in raw_header):
        raise CsvFormatError("CSV file is empty or has no header row")

    mapping = {k.strip(): v for k, v in (field_mapping or {}).items()}
    header = [
        normalize_header(mapping.get(cell.strip(), cell)) for cell in raw_header
    ]
    duplicates = sorted({name for name in header if name and header.count(name) > 1})
    if duplicates:
        raise CsvFormatError(f"Duplicate CSV columns: {', '.join(duplicates)}")

    return _iter_rows(reader, header)


def _iter_rows(reader, header: Sequence[str]) -> Iterator[Dict[str, str]]:
    try:
        for cells in reader:
            if not any(cell.strip() for cell in cells):
                continue
            if len(cells) > len(header):
                raise CsvFormatError(
                    f"Line {reader.line_num} has {len(cells)} cells but the header has {len(header)}"
                )
            yield {
                name: (cells[i].strip() if i < len(cells) else "")
                for i, name in enumerate(header)
                if name
            }
    except csv.Error as e:
        raise CsvFormatError(f"Malformed CSV near line {reader.line_num}: {e}")


def _get_path(record: Mapping[str, Any], path: str) -> Any:
    value: Any = record
    for key in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        if any(isinstance(item, (dict, list)) for item in value):
            return json.dumps(value, default=str)
        return ", ".join(str(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return str(value)


def serialize(records: Iterable[Mapping[str, Any]], fields: Optional[Sequence[str]] = None) -> bytes:
    """Write records as CSV with one column per field, in the given order."""
    fields = list(fields or DEFAULT_EXPORT_FIELDS)
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL)
    writer.writerow(fields)
    for record in records:
        writer.writerow([format_value(_get_path(record, field)) for field in fields])
    return output.getvalue().encode("utf-8")


def template() -> bytes:
    """Header-only CSV naming the accepted import columns."""
    output = io.StringIO()
    csv.writer(output).writerow(IMPORT_FIELDS)
    return output.getvalue().encode("utf-8")
