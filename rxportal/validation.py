"""
Input parsing and validation for prescription creation and query strings.
"""

import re
from typing import Any, Optional

from rxportal.config import MAX_DRUG_NAME_CHARS, MAX_SIG_CHARS
from rxportal.errors import InvalidInput
from rxportal.models import CreatePrescriptionRequest

_INT_FIELDS = ("patient_id", "physician_id", "drug_id", "quantity")
_STR_FIELDS = ("drug_name", "sig")

# Ids and quantities are stored as signed 64-bit integers.
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_DECIMAL = re.compile(r"[+-]?[0-9]+")


def _is_int(value: Any) -> bool:
    # bool is an int subclass; JSON true/false is not an id.
    return isinstance(value, int) and not isinstance(value, bool)


def parse_int(raw: str) -> int:
    """Parse a plain ASCII decimal that fits in a signed 64-bit integer."""
    if not _DECIMAL.fullmatch(raw):
        raise ValueError(f"not a decimal integer: {raw!r}")
    n = int(raw)
    if not INT64_MIN <= n <= INT64_MAX:
        raise ValueError(f"integer out of range: {raw!r}")
    return n


def parse_create_request(data: Any) -> CreatePrescriptionRequest:
    """Turn a decoded JSON body into a request object, checking field types only."""
    if not isinstance(data, dict):
        raise InvalidInput("invalid JSON body")

    values = {}
    for name in _INT_FIELDS:
        value = data.get(name)
        if value is None:
            continue
        if not _is_int(value) or not INT64_MIN <= value <= INT64_MAX:
            raise InvalidInput("invalid JSON body")
        values[name] = value
    for name in _STR_FIELDS:
        value = data.get(name)
        if value is None:
            continue
        if not isinstance(value, str):
            raise InvalidInput("invalid JSON body")
        values[name] = value
    return CreatePrescriptionRequest(**values)


def validate_create_request(req: CreatePrescriptionRequest) -> None:
    """
    Business rules for a new prescription, checked in a fixed order so the
    first violation is the one reported.
    """
    if req.patient_id <= 0:
        raise InvalidInput("patient_id must be > 0")
    if req.physician_id <= 0:
        raise InvalidInput("physician_id must be > 0")
    if req.drug_id <= 0:
        if len(req.drug_name) == 0:
            raise InvalidInput("either drug_id (>0) or drug_name is required")
        if len(req.drug_name) > MAX_DRUG_NAME_CHARS:
            raise InvalidInput("drug_name too long")
        if not req.drug_name.strip():
            raise InvalidInput("drug_name cannot be blank")
    if req.quantity <= 0:
        raise InvalidInput("quantity must be > 0")
    if len(req.sig) == 0:
        raise InvalidInput("sig is required")
    if len(req.sig) > MAX_SIG_CHARS:
        raise InvalidInput("sig too long")


def parse_limit(raw: Optional[str], default: int, maximum: int) -> int:
    """Parse a ?limit= value. Out-of-range values are rejected, never clamped."""
    if raw is None or raw == "":
        return default
    try:
        n = parse_int(raw)
    except ValueError:
        n = 0
    if n <= 0 or n > maximum:
        raise InvalidInput(f"limit must be 1..{maximum}")
    return n


def parse_positive_id(raw: Optional[str], name: str) -> Optional[int]:
    """Parse an optional positive integer id from a query string."""
    if raw is None or raw == "":
        return None
    try:
        n = parse_int(raw)
    except ValueError:
        n = 0
    if n <= 0:
        raise InvalidInput(f"invalid {name}")
    return n
