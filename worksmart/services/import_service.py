# worksmart/services/import_service.py
"""
Bulk-import reconciliation.

Rows arrive already decoded (JSON objects or CSV records) with the column
headers the facilities use in their registers. Each row becomes a
ClientCreate; missing due dates are derived from the event dates, explicit
ones are kept verbatim. Incomplete rows produce ValidationWarnings for the
operator instead of failing the whole import.
"""
import csv
import io
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Union

import pydantic
import structlog

from ..config import DEFAULT_IMPORT_DATE_FORMATS
from ..errors import ValidationError, ValidationWarning
from ..schemas import ClientCreate
from .due_dates import compute_due_dates

logger = structlog.get_logger(__name__)

UNKNOWN_NAME = "Unknown"

# Register header (as printed) -> client field
COLUMN_HEADERS = {
    "ART Number": "art_number",
    "Name": "name",
    "Age": "age",
    "Address": "address",
    "Contact": "contact",
    "Last Drug Pickup": "last_drug_pickup",
    "Last VL Collection": "last_vl_collection",
    "Next Pharmacy Due Date": "next_pharmacy_due_date",
    "Next VL Due Date": "next_vl_due_date",
}

DATE_FIELDS = ("last_drug_pickup", "last_vl_collection", "next_pharmacy_due_date", "next_vl_due_date")
TEXT_FIELDS = ("art_number", "name", "address", "contact")

# Without either of these the client cannot be traced or scheduled
REQUIRED_FOR_TRACKING = ("art_number", "last_drug_pickup")

_HEADER_NOISE = re.compile(r"[^a-z0-9]")
_LEADING_INT = re.compile(r"^\s*(\d+)")


def normalize_header(header: str) -> str:
    return _HEADER_NOISE.sub("", str(header).lower())


_FIELD_BY_HEADER = {normalize_header(h): field for h, field in COLUMN_HEADERS.items()}
_HEADER_BY_FIELD = {field: h for h, field in COLUMN_HEADERS.items()}


class ReconciledRow(NamedTuple):
    client: ClientCreate
    warnings: List[ValidationWarning]


class ImportPlan(NamedTuple):
    clients: List[ClientCreate]
    rejected: int
    warnings: List[ValidationWarning]


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def parse_age(value: Any) -> Optional[int]:
    """Leading whole number, like a register's "42 yrs"; anything else is unknown."""
    value = _clean(value)
    if value is None or isinstance(value, bool) or value != value:
        return None
    if isinstance(value, (int, float)):
        return int(value) if value >= 0 else None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def parse_date(value: Any, date_formats: Sequence[str] = DEFAULT_IMPORT_DATE_FORMATS) -> Optional[date]:
    """Parse a register date. Raises ValueError when the text is not a date in any accepted format."""
    value = _clean(value)
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value)
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in date_formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date '{text}'")


def map_columns(row: Mapping[str, Any]) -> Dict[str, Any]:
    mapped = {}
    for header, value in row.items():
        if header is None:
            continue
        field = _FIELD_BY_HEADER.get(normalize_header(header))
        if field is not None:
            mapped[field] = _clean(value)
    return mapped


def reconcile(
    row: Mapping[str, Any],
    row_number: Optional[int] = None,
    date_formats: Optional[Sequence[str]] = None,
) -> ReconciledRow:
    """
    Turn one register row into a new client.

    The client always starts Active, whatever status the row carries.
    Raises ValidationError only when the row cannot be shaped into a
    client at all (e.g. an oversized field).
    """
    date_formats = date_formats or DEFAULT_IMPORT_DATE_FORMATS
    fields = map_columns(row)
    warnings: List[ValidationWarning] = []

    for field in DATE_FIELDS:
        try:
            fields[field] = parse_date(fields.get(field), date_formats)
        except ValueError:
            header = _HEADER_BY_FIELD[field]
            warnings.append(ValidationWarning(
                f"Could not read '{header}' value {fields[field]!r}; left empty",
                row_number=row_number,
                missing_fields=[field],
            ))
            fields[field] = None

    fields["age"] = parse_age(fields.get("age"))
    # Spreadsheet exports hand over phone numbers and ART numbers as numbers
    for field in TEXT_FIELDS:
        if fields.get(field) is not None:
            fields[field] = str(fields[field])
    fields["name"] = fields.get("name") or UNKNOWN_NAME

    due = compute_due_dates(
        fields.get("last_drug_pickup"),
        fields.get("last_vl_collection"),
        pharmacy_override=fields.get("next_pharmacy_due_date"),
        vl_override=fields.get("next_vl_due_date"),
    )
    fields.update(due._asdict())

    missing = [f for f in REQUIRED_FOR_TRACKING if not fields.get(f)]
    if missing:
        labels = ", ".join(_HEADER_BY_FIELD[f] for f in missing)
        warnings.append(ValidationWarning(
            f"Incomplete client record: missing {labels}",
            row_number=row_number,
            missing_fields=missing,
        ))

    try:
        client = ClientCreate(**fields)
    except pydantic.ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ValidationError(f"Row {row_number}: {problems}" if row_number else problems)

    return ReconciledRow(client=client, warnings=warnings)


def is_incomplete(warning: ValidationWarning) -> bool:
    return any(f in REQUIRED_FOR_TRACKING for f in warning.missing_fields)


def reconcile_rows(
    rows: Iterable[Mapping[str, Any]],
    strict: bool = False,
    date_formats: Optional[Sequence[str]] = None,
    start: int = 1,
) -> ImportPlan:
    """
    Reconcile a batch. Rows are independent: one bad row never blocks the
    others. With ``strict`` an incomplete row is rejected rather than
    imported with a warning.
    """
    clients: List[ClientCreate] = []
    warnings: List[ValidationWarning] = []
    rejected = 0

    for row_number, row in enumerate(rows, start=start):
        try:
            result = reconcile(row, row_number=row_number, date_formats=date_formats)
        except ValidationError as e:
            rejected += 1
            warnings.append(ValidationWarning(f"Rejected: {e.message}", row_number=row_number))
            continue

        warnings.extend(result.warnings)
        if strict and any(is_incomplete(w) for w in result.warnings):
            rejected += 1
            continue
        clients.append(result.client)

    logger.info("import_rows_reconciled", accepted=len(clients), rejected=rejected, warnings=len(warnings), strict=strict)
    return ImportPlan(clients=clients, rejected=rejected, warnings=warnings)


def read_csv_rows(content: Union[bytes, str]) -> List[Dict[str, Any]]:
    """Decode a CSV register export. Blank lines are dropped."""
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig")
    reader = csv.DictReader(io.StringIO(content))
    return [
        row for row in reader
        if any((value or "").strip() for value in row.values() if isinstance(value, str))
    ]
