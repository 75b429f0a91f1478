"""
Flask route handlers for the REST API.
"""

import sys
import traceback

from flask import g, jsonify, request
from werkzeug.exceptions import HTTPException

from rxportal.api.auth import identity_required
from rxportal.config import (
    DEFAULT_PRESCRIPTION_LIMIT,
    DEFAULT_TOP_DRUGS_LIMIT,
    MAX_PRESCRIPTION_LIMIT,
    MAX_TOP_DRUGS_LIMIT,
)
from rxportal.errors import ApiError, Internal, InvalidInput, InvalidReference
from rxportal.models import Prescription, format_timestamp, parse_timestamp
from rxportal.rbac import (
    authorize_patients_of_physician,
    authorize_physicians_of_patient,
    authorize_prescriber,
    authorize_prescription_target,
    scope_prescriptions,
    scope_top_drugs,
)
from rxportal.validation import (
    INT64_MAX,
    parse_create_request,
    parse_limit,
    parse_positive_id,
    validate_create_request,
)


def _store_call(message, fn, *args):
    """Run one repository call; any failure becomes an Internal error."""
    try:
        return fn(*args)
    except Exception as e:
        print(f"[ERROR] {message}: {e}", file=sys.stderr)
        traceback.print_exc()
        raise Internal(message) from e


def _error(message, status):
    return jsonify({"error": message}), status


def register_routes(app, repo):
    """Register all API routes on the Flask *app*."""

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Prescription Portal API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "prescriptions": "/prescriptions",
                "top_drugs": "/analytics/top-drugs",
                "physician_patients": "/physicians/{id}/patients",
                "patient_physicians": "/patients/{id}/physicians",
                "health": "/healthz",
                "ready": "/readyz",
            },
        })

    @app.route("/healthz", methods=["GET"])
    def healthz():
        return jsonify({"status": "ok"}), 200

    @app.route("/readyz", methods=["GET"])
    def readyz():
        status = {"status": "ok", "db": "unknown"}
        reachable = repo.ping()
        if reachable is None:
            return jsonify(status), 200
        if not reachable:
            status["db"] = "down"
            return jsonify(status), 503
        status["db"] = "ok"
        return jsonify(status), 200

    # ── Prescriptions ────────────────────────────────────────────────

    @app.route("/prescriptions", methods=["POST"])
    @identity_required
    def create_prescription():
        caller_id = authorize_prescriber(g.identity)

        req = parse_create_request(request.get_json(force=True, silent=True))
        validate_create_request(req)
        authorize_prescription_target(repo, caller_id, req)

        drug_id = req.drug_id
        if drug_id <= 0:
            drug_id = _store_call("failed to resolve drug", repo.find_or_create_drug, req.drug_name.strip())

        p = Prescription(
            patient_id=req.patient_id,
            physician_id=req.physician_id,
            drug_id=drug_id,
            quantity=req.quantity,
            sig=req.sig,
        )
        try:
            created = repo.create_prescription(p)
        except InvalidReference:
            raise InvalidInput("invalid patient_id, physician_id, or drug_id")
        except Exception as e:
            print(f"[ERROR] Create prescription error: {e}", file=sys.stderr)
            traceback.print_exc()
            raise Internal("failed to create prescription") from e
        return jsonify(created.to_dict()), 201

    @app.route("/prescriptions", methods=["GET"])
    @identity_required
    def list_prescriptions():
        limit = parse_limit(request.args.get("limit"), DEFAULT_PRESCRIPTION_LIMIT, MAX_PRESCRIPTION_LIMIT)
        patient_id = physician_id = None
        if g.identity.role == "admin":
            patient_id = parse_positive_id(request.args.get("patient_id"), "patient_id")
            physician_id = parse_positive_id(request.args.get("physician_id"), "physician_id")
        flt = scope_prescriptions(g.identity, limit, patient_id, physician_id)

        items = _store_call("failed to list prescriptions", repo.list_prescriptions, flt)
        return jsonify({"items": [p.to_dict() for p in items], "limit": limit}), 200

    # ── Link listings ────────────────────────────────────────────────

    @app.route("/physicians/<int:physician_id>/patients", methods=["GET"])
    @identity_required
    def list_patients_for_physician(physician_id):
        if not 0 < physician_id <= INT64_MAX:
            raise InvalidInput("invalid physician id in path")
        authorize_patients_of_physician(g.identity, physician_id)

        items = _store_call("failed to list patients", repo.list_patients_for_physician, physician_id)
        return jsonify({"items": [it.to_dict() for it in items]}), 200

    @app.route("/patients/<int:patient_id>/physicians", methods=["GET"])
    @identity_required
    def list_physicians_for_patient(patient_id):
        if not 0 < patient_id <= INT64_MAX:
            raise InvalidInput("invalid patient id in path")
        authorize_physicians_of_patient(g.identity, patient_id)

        items = _store_call("failed to list physicians", repo.list_physicians_for_patient, patient_id)
        return jsonify({"items": [it.to_dict() for it in items]}), 200

    # ── Analytics ────────────────────────────────────────────────────

    @app.route("/analytics/top-drugs", methods=["GET"])
    @identity_required
    def top_drugs():
        from_s, to_s = request.args.get("from", ""), request.args.get("to", "")
        if not from_s or not to_s:
            raise InvalidInput("from and to query params are required (RFC3339 date or datetime)")
        try:
            from_ = parse_timestamp(from_s)
            to = parse_timestamp(to_s)
        except ValueError:
            raise InvalidInput("invalid from/to range")
        if to <= from_:
            raise InvalidInput("invalid from/to range")
        limit = parse_limit(request.args.get("limit"), DEFAULT_TOP_DRUGS_LIMIT, MAX_TOP_DRUGS_LIMIT)
        patient_id = scope_top_drugs(g.identity)

        items = _store_call("failed to fetch analytics", repo.top_drugs, from_, to, limit, patient_id)
        return jsonify({
            "from": format_timestamp(from_),
            "to": format_timestamp(to),
            "limit": limit,
            "items": [it.to_dict() for it in items],
        }), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(ApiError)
    def api_error(e):
        return _error(e.message, e.status_code)

    @app.errorhandler(HTTPException)
    def http_error(e):
        if e.code == 404:
            return _error("not found", 404)
        if e.code == 405:
            resp, status = _error("method not allowed", 405)
            resp.headers["Allow"] = ", ".join(sorted(e.valid_methods or []))
            return resp, status
        return _error(e.description or e.name, e.code)

    @app.errorhandler(Exception)
    def internal_error(e):
        print(f"[ERROR] Unhandled error: {e}", file=sys.stderr)
        traceback.print_exc()
        return _error("internal server error", 500)
