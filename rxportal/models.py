"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from rxportal.errors import Unauthenticated


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a timestamp as RFC3339 in UTC. Naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC3339 timestamp. The UTC offset (or "Z") is mandatory."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp without offset: {value!r}")
    return parsed


@dataclass(frozen=True)
class Identity:
    """
    Who is calling. The role is always known; the caller id may be missing
    or malformed, which only matters to routes that compare it against the
    resource being accessed.
    """
    role: str                          # "admin", "physician" or "patient"
    user_id: Optional[int] = None
    user_id_error: Optional[str] = None

    def require_user_id(self) -> int:
        if self.user_id is None:
            raise Unauthenticated(self.user_id_error or "missing X-User-ID header")
        return self.user_id


@dataclass
class Patient:
    id: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass
class Physician:
    id: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass
class Prescription:
    """A prescription row. Display names are filled in only by listings."""
    patient_id: int
    physician_id: int
    drug_id: int
    quantity: int
    sig: str
    id: Optional[int] = None
    prescribed_at: Optional[datetime] = None
    patient_name: Optional[str] = None
    physician_name: Optional[str] = None
    drug_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "patient_id": self.patient_id,
            "physician_id": self.physician_id,
            "drug_id": self.drug_id,
            "quantity": self.quantity,
            "sig": self.sig,
            "prescribed_at": format_timestamp(self.prescribed_at),
        }
        for key in ("patient_name", "physician_name", "drug_name"):
            if getattr(self, key):
                out[key] = getattr(self, key)
        return out


@dataclass
class TopDrug:
    """Aggregate quantity for one drug over an analytics window."""
    drug_id: int
    drug_name: str
    total_quantity: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "drug_id": self.drug_id,
            "drug_name": self.drug_name,
            "total_quantity": self.total_quantity,
        }


@dataclass
class PrescriptionFilter:
    """Filters for listing prescriptions. RBAC decides which ids get set."""
    patient_id: Optional[int] = None
    physician_id: Optional[int] = None
    limit: int = 0


@dataclass
class CreatePrescriptionRequest:
    """Body of POST /prescriptions, before validation."""
    patient_id: int = 0
    physician_id: int = 0
    drug_id: int = 0
    drug_name: str = ""
    quantity: int = 0
    sig: str = ""
