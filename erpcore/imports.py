"""GRN spreadsheet import: header checks, row staging and quality scoring."""

import csv
import hashlib
import logging
import math
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union
from .dates import (
    clean_text_value,
    convert_and_validate_grn_date,
    normalize_grn_number,
    to_number,
    validate_item_code,
)
from .models import DataQualityMetrics, GRNStagingRecord, HeaderValidation

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["GRN Number", "Item Code", "Quantity Received"]
OPTIONAL_COLUMNS = [
    "Date",
    "Supplier Name",
    "Unit Rate",
    "Invoice Number",
    "Invoice Date",
    "Quality Status",
    "Remarks",
]

# Plain decimal numbers without leading zeros; "00123" stays text.
_NUMERIC_CELL = re.compile(r"-?(?:0|[1-9][0-9]*)(\.[0-9]+)?")


def validate_sheet_headers(headers: Sequence[str]) -> HeaderValidation:
    """Check required columns are present and no unknown columns exist."""
    errors = []
    present = [h.strip() for h in headers if h and h.strip()]

    for required in REQUIRED_COLUMNS:
        if required not in present:
            errors.append(f"Missing required column: {required}")

    known = REQUIRED_COLUMNS + OPTIONAL_COLUMNS
    for header in present:
        if header not in known:
            errors.append(f"Unknown column: {header}")

    return HeaderValidation(valid=not errors, errors=errors)


def coerce_cell(text: Any) -> Any:
    """Turn numeric text into an int or float, the way typed sheet cells arrive."""
    if not isinstance(text, str):
        return text
    stripped = text.strip()
    match = _NUMERIC_CELL.fullmatch(stripped)
    if not match:
        return stripped
    return float(stripped) if match.group(1) else int(stripped)


def read_grn_csv(path: Union[str, Path]) -> Tuple[List[str], List[Dict[str, Any]]]:
    """Read a CSV export of a GRN sheet. Returns (headers, rows)."""
    with open(path, "r", newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        headers = list(reader.fieldnames or [])
        rows = [
            {key.strip(): coerce_cell(value) for key, value in row.items() if key}
            for row in reader
        ]
    return headers, rows


def file_hash(path: Union[str, Path]) -> str:
    """SHA-256 hex digest of a file, used to spot re-uploads."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def stage_grn_rows(
    rows: Iterable[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> List[GRNStagingRecord]:
    """Normalize sheet rows into staging records.

    Bad cells never abort the batch; each row carries its own errors and
    warnings. Rows repeating an earlier (GRN number, item code) pair are
    flagged as duplicates.
    """
    now = now or datetime.now()
    today = now.date().isoformat()
    seen: Dict[Tuple[str, str], int] = {}
    records = []

    for index, row in enumerate(rows):
        row_number = index + 2  # 1-based plus header row
        errors = []
        warnings = []

        grn_number = normalize_grn_number(row.get("GRN Number"))
        item = validate_item_code(row.get("Item Code"))
        qty = to_number(row.get("Quantity Received"))
        rate = to_number(row.get("Unit Rate"))
        grn_date = convert_and_validate_grn_date(row.get("Date"), now=now)
        invoice_date = convert_and_validate_grn_date(row.get("Invoice Date"), now=now)

        if not grn_number:
            errors.append("Missing GRN number")
        if not item.is_valid:
            errors.append(f"Invalid item code: {item.code or '(empty)'}")
        if qty <= 0:
            errors.append("Quantity received must be positive")

        if grn_date.is_valid:
            warnings.extend(grn_date.warnings)
        else:
            warnings.append("Missing or invalid GRN date; defaulted to today")
        if not invoice_date.is_valid and clean_text_value(row.get("Invoice Date")):
            warnings.append("Invalid invoice date format")

        record = GRNStagingRecord(
            grn_number=grn_number,
            item_code=item.code,
            supplier_name=clean_text_value(row.get("Supplier Name")),
            date=grn_date.date or today,
            qty_received=qty,
            unit_rate=rate,
            total_amount=qty * rate,
            invoice_number=clean_text_value(row.get("Invoice Number")),
            invoice_date=invoice_date.date,
            quality_status=clean_text_value(row.get("Quality Status")) or "pending",
            remarks=clean_text_value(row.get("Remarks")),
            source_row_number=row_number,
            validation_status="invalid" if errors else "valid",
            validation_errors=errors,
            validation_warnings=warnings,
        )

        key = (grn_number, item.code)
        if grn_number and item.code:
            if key in seen:
                record.is_duplicate = True
                record.duplicate_reason = f"Duplicate of row {seen[key]}"
            else:
                seen[key] = row_number

        records.append(record)

    logger.debug("Staged %d GRN rows", len(records))
    return records


def calculate_data_quality(records: Sequence[GRNStagingRecord]) -> DataQualityMetrics:
    """Score a staged batch and suggest what to fix."""
    total = len(records)
    if total == 0:
        return DataQualityMetrics()

    valid = sum(1 for r in records if r.validation_status == "valid")
    invalid = sum(1 for r in records if r.validation_status == "invalid")
    duplicates = sum(1 for r in records if r.is_duplicate)
    with_warnings = sum(1 for r in records if r.validation_warnings)
    # rows with both errors and warnings count against validity once
    warned_only = sum(
        1 for r in records if r.validation_warnings and r.validation_status != "invalid"
    )

    completeness = valid / total * 100
    accuracy = (total - invalid) / total * 100
    consistency = (total - duplicates) / total * 100
    validity = (total - invalid - warned_only) / total * 100
    overall = (completeness + accuracy + consistency + validity) / 4

    recommendations = []
    if duplicates > 0:
        recommendations.append(f"Remove {duplicates} duplicate records")
    if invalid > 0:
        recommendations.append(f"Fix {invalid} records with validation errors")
    if with_warnings > 0:
        recommendations.append(f"Review {with_warnings} records with warnings")

    return DataQualityMetrics(
        overall_quality_score=math.floor(overall + 0.5),
        completeness_score=math.floor(completeness + 0.5),
        accuracy_score=math.floor(accuracy + 0.5),
        consistency_score=math.floor(consistency + 0.5),
        validity_score=math.floor(validity + 0.5),
        total_records=total,
        valid_records=valid,
        invalid_records=invalid,
        duplicate_records=duplicates,
        records_with_warnings=with_warnings,
        recommendations=recommendations,
    )
