"""
Role-Based Access Control – per-route decisions over an Identity.

| Route                          | admin        | physician            | patient              |
|--------------------------------|--------------|----------------------|----------------------|
| create prescription            | forbidden    | self + linked only   | forbidden            |
| list prescriptions             | any filters  | physician_id = self  | patient_id = self    |
| list patients for physician X  | any X        | X = self             | forbidden            |
| list physicians for patient X  | any X        | forbidden            | X = self             |
| top-drugs analytics            | unrestricted | unrestricted         | patient_id = self    |

Admin callers are not checked against any account; X-User-ID is ignored for
them.
"""

import sys
import traceback
from typing import Optional

from rxportal.errors import Forbidden, Internal
from rxportal.models import CreatePrescriptionRequest, Identity, PrescriptionFilter


def authorize_prescriber(identity: Identity) -> int:
    """Only physicians may create prescriptions. Returns the caller id."""
    if identity.role != "physician":
        raise Forbidden("only physicians may create prescriptions")
    return identity.require_user_id()


def authorize_prescription_target(repo, caller_id: int, req: CreatePrescriptionRequest) -> None:
    """A physician prescribes as themselves, and only for a linked patient."""
    if req.physician_id != caller_id:
        raise Forbidden("physicians may only create as themselves")
    try:
        linked = repo.is_physician_patient_linked(caller_id, req.patient_id)
    except Exception as e:
        print(f"[ERROR] Link check failed: {e}", file=sys.stderr)
        traceback.print_exc()
        raise Internal("link check failed") from e
    if not linked:
        raise Forbidden("physician not linked to patient")


def scope_prescriptions(identity: Identity, limit: int,
                        patient_id: Optional[int] = None,
                        physician_id: Optional[int] = None) -> PrescriptionFilter:
    """
    Build the listing filter. patient_id/physician_id are the admin's own
    optional query filters; other roles are pinned to themselves.
    """
    if identity.role == "patient":
        return PrescriptionFilter(patient_id=identity.require_user_id(), limit=limit)
    if identity.role == "physician":
        return PrescriptionFilter(physician_id=identity.require_user_id(), limit=limit)
    return PrescriptionFilter(patient_id=patient_id, physician_id=physician_id, limit=limit)


def authorize_patients_of_physician(identity: Identity, physician_id: int) -> None:
    if identity.role == "patient":
        raise Forbidden("patients cannot access this resource")
    if identity.role == "physician" and identity.require_user_id() != physician_id:
        raise Forbidden("physicians may only view their own patients")


def authorize_physicians_of_patient(identity: Identity, patient_id: int) -> None:
    if identity.role == "physician":
        raise Forbidden("physicians cannot access this resource")
    if identity.role == "patient" and identity.require_user_id() != patient_id:
        raise Forbidden("patients may only view their own physicians")


def scope_top_drugs(identity: Identity) -> Optional[int]:
    """Patients only ever see their own usage; other roles are unrestricted."""
    if identity.role == "patient":
        return identity.require_user_id()
    return None
