"""
Flask route handlers for the REST API.
"""

from flask import jsonify, request
from sqlalchemy import text as sa_text
from werkzeug.exceptions import HTTPException, InternalServerError

from bloodbank import operations
from bloodbank.api.auth import hook_secret_required, role_required, token_required
from bloodbank.api.responses import error_response, guarded
from bloodbank.config import ROLE_MEDICAL_STAFF
from bloodbank.errors import Internal, InvalidInput, ServiceError, UnknownOwner
from bloodbank.models import BloodRequestInput, DonationInput, StatusUpdateInput


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput("Request body must be a JSON object")
    return data


def register_routes(app, store, identity, hook_secret="", engine=None):
    """Register all API routes on the Flask *app*."""

    authenticated = token_required(identity)
    staff_only = role_required(store, ROLE_MEDICAL_STAFF)

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Blood Bank Ledger API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "assign_role": "/api/assign-role",
                "create_request": "/api/create-request",
                "delete_request": "/api/requests/<id>",
                "register_donation": "/api/register-donation",
                "update_status": "/api/update-status",
                "ledger": "/api/ledger/<unit_id>",
                "donation_history": "/api/donation-history",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {}
        if engine is not None:
            try:
                with engine.connect() as conn:
                    conn.execute(sa_text("SELECT 1"))
                checks["database"] = True
            except Exception:
                checks["database"] = False

        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }), 200 if all_healthy else 503

    # ── Roles ────────────────────────────────────────────────────────

    @app.route("/api/assign-role", methods=["POST"])
    @authenticated
    def assign_role():
        caller = request.caller
        role = guarded("Role assignment", operations.assign_default_role,
                       store, identity, caller.uid)
        return jsonify({
            "message": f"Successfully assigned role to user {caller.uid}",
            "role": role,
        }), 200

    @app.route("/api/handle-new-user", methods=["POST"])
    @hook_secret_required(hook_secret)
    def handle_new_user():
        uid = _json_body().get("uid")
        if not isinstance(uid, str) or not uid.strip():
            raise InvalidInput("User ID (uid) is missing")
        uid = uid.strip()

        if not guarded("User lookup", identity.user_exists, uid):
            raise UnknownOwner(f"User {uid} does not exist")
        role = guarded("Role assignment", operations.assign_default_role, store, identity, uid)
        return jsonify({
            "message": f"Successfully assigned role to user {uid}",
            "role": role,
        }), 200

    # ── Blood requests ───────────────────────────────────────────────

    @app.route("/api/create-request", methods=["POST"])
    @authenticated
    @staff_only
    def create_request():
        req = BloodRequestInput.from_json(_json_body())
        request_id = guarded("Create request", operations.create_blood_request,
                             store, request.caller, req)
        return jsonify({
            "message": "Blood request created successfully",
            "id": request_id,
        }), 201

    @app.route("/api/requests/", defaults={"request_id": None}, methods=["DELETE"])
    @app.route("/api/requests/<request_id>", methods=["DELETE"])
    @authenticated
    @staff_only
    def delete_request(request_id):
        guarded("Delete request", operations.delete_blood_request,
                store, request.caller, request_id)
        return jsonify({"message": "Blood request deleted successfully"}), 200

    # ── Ledger ───────────────────────────────────────────────────────

    @app.route("/api/register-donation", methods=["POST"])
    @authenticated
    @staff_only
    def register_donation():
        donation = DonationInput.from_json(_json_body())
        guarded("Register donation", operations.register_donation,
                store, identity, request.caller, donation)
        return jsonify({
            "message": f"Donation {donation.blood_unit_id} registered on the ledger",
        }), 201

    @app.route("/api/update-status", methods=["POST"])
    @authenticated
    @staff_only
    def update_status():
        upd = StatusUpdateInput.from_json(_json_body())
        guarded("Update status", operations.update_unit_status,
                store, request.caller, upd)
        return jsonify({
            "message": f"Blood unit {upd.blood_unit_id} is now '{upd.new_status}'",
        }), 200

    @app.route("/api/ledger/<unit_id>", methods=["GET"])
    @authenticated
    def get_ledger_entry(unit_id):
        entry = guarded("Ledger lookup", operations.get_ledger_entry, store, unit_id)
        return jsonify({"entry": entry}), 200

    @app.route("/api/donation-history", methods=["GET"])
    @authenticated
    def donation_history():
        donations = guarded("Donation history", operations.list_donation_history,
                            store, request.caller)
        return jsonify({"donations": donations}), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(ServiceError)
    def service_error(e):
        return error_response(e)

    @app.errorhandler(InternalServerError)
    def internal_error(e):
        return error_response(Internal())

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"kind": type(e).__name__, "message": e.description}), e.code
