"""
Unit tests for RBAC – identity extraction and per-route policy decisions.
"""

import pytest

from rxportal.api.auth import HeaderAuthenticator
from rxportal.config import get_env
from rxportal.errors import Forbidden, Internal, Unauthenticated
from rxportal.models import CreatePrescriptionRequest, Identity
from rxportal.rbac import (
    authorize_patients_of_physician,
    authorize_physicians_of_patient,
    authorize_prescriber,
    authorize_prescription_target,
    scope_prescriptions,
    scope_top_drugs,
)


# ── Helpers / Fakes ──────────────────────────────────────────────────

class FakeLinkRepo:
    """Answers link checks from a fixed set and records the lookups."""
    def __init__(self, links=(), fail=False):
        self._links = set(links)
        self._fail = fail
        self.calls = []

    def is_physician_patient_linked(self, physician_id, patient_id):
        self.calls.append((physician_id, patient_id))
        if self._fail:
            raise RuntimeError("connection reset")
        return (physician_id, patient_id) in self._links


def ident(role, user_id=None):
    if user_id is None:
        return Identity(role=role, user_id_error="missing X-User-ID header")
    return Identity(role=role, user_id=user_id)


def rx(patient_id=1, physician_id=1):
    return CreatePrescriptionRequest(patient_id=patient_id, physician_id=physician_id,
                                     drug_name="Ibuprofen", quantity=30, sig="1 tab BID")


# ── Tests: get_env ───────────────────────────────────────────────────

def test_get_env_ok(monkeypatch):
    monkeypatch.setenv("X", "123")
    assert get_env("X") == "123"


def test_get_env_missing_exits(monkeypatch, capsys):
    monkeypatch.delenv("MISSING_ENV", raising=False)
    with pytest.raises(SystemExit) as e:
        get_env("MISSING_ENV")
    assert e.value.code == 1
    err = capsys.readouterr().err
    assert "ERROR: env var MISSING_ENV is not set" in err


# ── Tests: HeaderAuthenticator ───────────────────────────────────────

@pytest.mark.parametrize("role", ["admin", "physician", "patient"])
def test_header_authenticator_accepts_known_roles(role):
    identity = HeaderAuthenticator().authenticate({"X-Role": role, "X-User-ID": "7"})
    assert identity.role == role
    assert identity.require_user_id() == 7


@pytest.mark.parametrize("role", [None, "", "Admin", "nurse", " physician"])
def test_header_authenticator_rejects_unknown_roles(role):
    headers = {"X-User-ID": "1"}
    if role is not None:
        headers["X-Role"] = role
    with pytest.raises(Unauthenticated, match="invalid or missing X-Role header"):
        HeaderAuthenticator().authenticate(headers)


def test_header_authenticator_defers_missing_user_id():
    identity = HeaderAuthenticator().authenticate({"X-Role": "admin"})
    assert identity.user_id is None
    with pytest.raises(Unauthenticated, match="missing X-User-ID header"):
        identity.require_user_id()


@pytest.mark.parametrize("raw", [
    "abc", "0", "-3", "1.5", "4_2", " 42 ", "\u0664\u0662", "99999999999999999999",
])
def test_header_authenticator_invalid_user_id(raw):
    identity = HeaderAuthenticator().authenticate({"X-Role": "patient", "X-User-ID": raw})
    with pytest.raises(Unauthenticated, match="invalid X-User-ID header"):
        identity.require_user_id()


# ── Tests: create prescription ───────────────────────────────────────

@pytest.mark.parametrize("role", ["admin", "patient"])
def test_only_physicians_prescribe(role):
    with pytest.raises(Forbidden, match="only physicians"):
        authorize_prescriber(ident(role, 1))


def test_prescriber_needs_user_id():
    with pytest.raises(Unauthenticated):
        authorize_prescriber(ident("physician"))


def test_prescriber_must_act_as_self_even_when_linked():
    repo = FakeLinkRepo(links={(1, 1), (2, 1)})
    with pytest.raises(Forbidden, match="only create as themselves"):
        authorize_prescription_target(repo, caller_id=1, req=rx(physician_id=2))
    assert repo.calls == []


def test_prescriber_must_be_linked():
    repo = FakeLinkRepo(links={(1, 2)})
    with pytest.raises(Forbidden, match="not linked"):
        authorize_prescription_target(repo, caller_id=1, req=rx(patient_id=1))
    assert repo.calls == [(1, 1)]


def test_prescriber_linked_ok():
    repo = FakeLinkRepo(links={(1, 1)})
    authorize_prescription_target(repo, caller_id=1, req=rx())


def test_link_check_failure_is_internal():
    with pytest.raises(Internal, match="link check failed"):
        authorize_prescription_target(FakeLinkRepo(fail=True), caller_id=1, req=rx())


# ── Tests: listing scopes ────────────────────────────────────────────

def test_scope_prescriptions_patient_forced_to_self():
    flt = scope_prescriptions(ident("patient", 5), 50, patient_id=9, physician_id=9)
    assert (flt.patient_id, flt.physician_id, flt.limit) == (5, None, 50)


def test_scope_prescriptions_physician_forced_to_self():
    flt = scope_prescriptions(ident("physician", 3), 10)
    assert (flt.patient_id, flt.physician_id) == (None, 3)


def test_scope_prescriptions_admin_uses_filters_without_user_id():
    flt = scope_prescriptions(ident("admin"), 20, patient_id=1, physician_id=2)
    assert (flt.patient_id, flt.physician_id, flt.limit) == (1, 2, 20)


def test_patients_of_physician():
    authorize_patients_of_physician(ident("admin"), 99)
    authorize_patients_of_physician(ident("physician", 4), 4)
    with pytest.raises(Forbidden):
        authorize_patients_of_physician(ident("physician", 4), 5)
    with pytest.raises(Forbidden, match="patients cannot"):
        authorize_patients_of_physician(ident("patient", 4), 4)


def test_physicians_of_patient():
    authorize_physicians_of_patient(ident("admin"), 99)
    authorize_physicians_of_patient(ident("patient", 8), 8)
    with pytest.raises(Forbidden):
        authorize_physicians_of_patient(ident("patient", 8), 9)
    with pytest.raises(Forbidden, match="physicians cannot"):
        authorize_physicians_of_patient(ident("physician", 8), 8)


def test_scope_top_drugs():
    assert scope_top_drugs(ident("admin")) is None
    assert scope_top_drugs(ident("physician", 1)) is None
    assert scope_top_drugs(ident("patient", 42)) == 42
    with pytest.raises(Unauthenticated):
        scope_top_drugs(ident("patient"))
