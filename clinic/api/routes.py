"""
Flask route handlers for the REST API.
"""

import os
import sys
import traceback

from flask import jsonify, request
from sqlalchemy import text as sa_text

from clinic.accounts import route_for
from clinic.cache import PatientCache
from clinic.config import ROLE_CONFIG
from clinic.errors import (
    AlreadyRegistered, ClinicError, Forbidden, InvalidCredentials, InvalidTransition,
    MailDeliveryError, NotFound, NotVerified, PartialCompletion, Unavailable,
    ValidationError,
)
from clinic.models import Role
from clinic.api.auth import bearer_token, role_required, token_required

ERROR_STATUS = {
    ValidationError: 400,
    InvalidCredentials: 401,
    NotVerified: 403,
    Forbidden: 403,
    NotFound: 404,
    AlreadyRegistered: 409,
    InvalidTransition: 409,
    MailDeliveryError: 502,
    Unavailable: 503,
}


# ── Serialisation ────────────────────────────────────────────────────

def patient_json(p):
    return {
        "id": p.id,
        "token": p.token,
        "name": p.name,
        "age": p.age,
        "gender": p.gender,
        "contact": p.contact,
        "symptoms": p.symptoms,
        "charges": p.charges,
        "status": p.status.value,
        "created_at": p.created_at.isoformat(),
    }


def prescription_json(rx):
    return {
        "id": rx.id,
        "patient_id": rx.patient_id,
        "author_id": rx.author_id,
        "prescription": rx.body,
        "created_at": rx.created_at.isoformat(),
    }


def history_json(h):
    return {
        "id": h.id,
        "patient_id": h.patient_id,
        "date": h.visit_date.isoformat(),
        "symptoms": h.symptoms,
        "prescription": h.prescription,
        "charges": h.charges,
    }


def session_json(session, role):
    return {
        "token": session.access_token,
        "user": {
            "id": session.account_id,
            "email": session.email,
            "role": role.value if role else None,
        },
        "redirect_to": route_for(role),
        "expires_at": session.expires_at.isoformat(),
    }


def json_body():
    if not request.is_json:
        raise ValidationError("Content-Type must be application/json")
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def register_routes(app, services):
    """Register all API routes on the Flask *app*."""

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Clinic Visit Portal API",
            "version": "1.0.0",
            "status": "running",
            "portals": {
                role.value: {
                    "title": cfg.title,
                    "icon": cfg.icon,
                    "description": cfg.description,
                    "redirect_to": cfg.redirect_to,
                }
                for role, cfg in ROLE_CONFIG.items()
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"database": False}
        try:
            with services.store.engine.connect() as conn:
                conn.execute(sa_text("SELECT 1"))
            checks["database"] = True
        except Exception as e:
            print(f"[WARN] Health check: database unreachable: {e}", file=sys.stderr)

        healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if healthy else "unhealthy",
            "checks": checks,
            "active_sessions": len(services.identity.sessions),
        }), 200 if healthy else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/signup", methods=["POST"])
    def signup():
        data = json_body()
        try:
            account = services.directory().sign_up(
                data.get("email"), data.get("password"),
                data.get("full_name"), data.get("role"),
            )
        except AlreadyRegistered as e:
            return jsonify({
                "error": str(e),
                "resend": "/api/auth/resend",
                "message": "Sign in, or request a new confirmation email.",
            }), 409
        return jsonify({
            "success": True,
            "account": {
                "id": account.id,
                "email": account.email,
                "role": account.role.value if account.role else None,
                "verification": account.verification.value,
            },
            "message": "Check your email for the verification link.",
        }), 201

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        data = json_body()
        try:
            session, role = services.directory().sign_in(data.get("email"), data.get("password"))
        except NotVerified as e:
            return jsonify({"error": str(e), "resend": "/api/auth/resend"}), 403
        return jsonify(dict(success=True, **session_json(session, role))), 200

    @app.route("/api/auth/logout", methods=["POST"])
    def logout():
        # Idempotent: an unknown or already-revoked token is not an error.
        token = bearer_token()
        if token:
            services.identity.sign_out(token)
        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    @app.route("/api/auth/resend", methods=["POST"])
    def resend():
        data = json_body()
        services.directory().resend_confirmation(data.get("email"), data.get("role"))
        return jsonify({
            "success": True,
            "message": "If the account is awaiting confirmation, a new link was sent.",
        }), 202

    @app.route("/api/auth/confirm", methods=["GET"])
    def confirm():
        token = request.args.get("token", "")
        if not token:
            raise ValidationError("token is required")
        session = services.identity.confirm(token)
        role = services.directory(session).role_of(session.account_id)
        return jsonify(dict(success=True, **session_json(session, role))), 200

    @app.route("/api/auth/session", methods=["GET"])
    @token_required
    def current_session():
        session = request.clinic_session
        body = session_json(session, request.role)
        body["session"] = {
            "created_at": session.created_at.isoformat(),
            "last_activity": session.last_activity.isoformat(),
        }
        return jsonify(dict(success=True, **body)), 200

    @app.route("/api/sessions", methods=["GET"])
    def get_sessions_info():
        if os.getenv("FLASK_ENV") != "development":
            return jsonify({"error": "Not available in production"}), 403
        services.identity.cleanup_expired_sessions()
        sessions = [
            {
                "account_id": s.account_id,
                "email": s.email,
                "created_at": s.created_at.isoformat(),
                "last_activity": s.last_activity.isoformat(),
            }
            for s in services.identity.sessions.values()
        ]
        return jsonify({"active_sessions": len(sessions), "sessions": sessions}), 200

    # ── Patients (receptionist) ──────────────────────────────────────

    @app.route("/api/patients", methods=["GET"])
    @token_required
    def list_patients():
        patients = [patient_json(p) for p in services.registry.list()]
        return jsonify({"success": True, "count": len(patients), "patients": patients}), 200

    @app.route("/api/patients", methods=["POST"])
    @token_required
    @role_required(Role.RECEPTIONIST)
    def register_patient():
        patient = services.registry.register(json_body())
        return jsonify({
            "success": True,
            "patient": patient_json(patient),
            "message": f"Token {patient.token} assigned to {patient.name}",
        }), 201

    @app.route("/api/patients/<int:patient_id>/charges", methods=["PUT"])
    @token_required
    @role_required(Role.RECEPTIONIST)
    def assign_charges(patient_id):
        data = json_body()
        if "charges" not in data:
            raise ValidationError("charges is required")
        patient = services.registry.set_charges(patient_id, data["charges"])
        return jsonify({"success": True, "patient": patient_json(patient)}), 200

    # ── Visits (doctor) ──────────────────────────────────────────────

    @app.route("/api/patients/<int:patient_id>/consultation", methods=["POST"])
    @token_required
    @role_required(Role.DOCTOR)
    def start_consultation(patient_id):
        patient = services.visits.start_consultation(patient_id)
        return jsonify({"success": True, "patient": patient_json(patient)}), 200

    @app.route("/api/patients/<int:patient_id>/prescriptions", methods=["POST"])
    @token_required
    @role_required(Role.DOCTOR)
    def add_prescription(patient_id):
        data = json_body()
        outcome = services.visits.record_prescription(
            patient_id, request.clinic_session.account_id, data.get("prescription", "")
        )
        return jsonify({
            "success": True,
            "patient": patient_json(outcome.patient),
            "prescription": prescription_json(outcome.prescription),
            "history": history_json(outcome.history),
        }), 201

    @app.route("/api/patients/<int:patient_id>/reconcile", methods=["POST"])
    @token_required
    @role_required(Role.DOCTOR)
    def reconcile(patient_id):
        patient = services.visits.reconcile(patient_id)
        return jsonify({"success": True, "patient": patient_json(patient)}), 200

    # ── Read side ────────────────────────────────────────────────────

    @app.route("/api/patients/<int:patient_id>", methods=["GET"])
    @token_required
    def get_patient(patient_id):
        record = services.history.patient_record(patient_id)
        return jsonify({
            "success": True,
            "patient": patient_json(record.patient),
            "prescriptions": [prescription_json(rx) for rx in record.prescriptions],
            "history": [history_json(h) for h in record.history],
        }), 200

    @app.route("/api/patients/<int:patient_id>/prescriptions", methods=["GET"])
    @token_required
    def list_prescriptions(patient_id):
        items = services.history.prescriptions(patient_id)
        return jsonify({"success": True, "prescriptions": [prescription_json(rx) for rx in items]}), 200

    @app.route("/api/patients/<int:patient_id>/history", methods=["GET"])
    @token_required
    def visit_history(patient_id):
        items = services.history.visit_history(patient_id)
        return jsonify({"success": True, "history": [history_json(h) for h in items]}), 200

    @app.route("/api/dashboard", methods=["GET"])
    @token_required
    def dashboard():
        cache = PatientCache(services.registry)
        cache.refresh()
        body = {
            "success": True,
            "role": request.role.value if request.role else None,
            "stats": {
                "total_patients": len(cache.patients),
                "by_status": cache.count_by_status(),
                "waiting": cache.waiting_count,
                "total_charges": cache.total_charges,
            },
            "patients": [patient_json(p) for p in cache.patients],
        }
        if request.role is Role.DOCTOR:
            body["needs_reconciliation"] = [
                patient_json(p) for p in services.visits.find_inconsistencies()
            ]
        return jsonify(body), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(PartialCompletion)
    def partial_completion(e):
        print(f"[ERROR] Partial completion ({e.stage}) for patient {e.patient_id}", file=sys.stderr)
        return jsonify({
            "error": str(e),
            "stage": e.stage,
            "patient_id": e.patient_id,
            "prescription_id": e.prescription_id,
            "history_id": e.history_id,
            "reconcile": f"/api/patients/{e.patient_id}/reconcile",
        }), 500

    @app.errorhandler(ClinicError)
    def clinic_error(e):
        for cls in type(e).__mro__:
            if cls in ERROR_STATUS:
                return jsonify({"error": str(e)}), ERROR_STATUS[cls]
        print(f"[ERROR] Unhandled clinic error: {e}", file=sys.stderr)
        traceback.print_exc()
        return jsonify({"error": "Internal server error", "message": str(e)}), 500

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
