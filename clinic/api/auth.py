"""
JWT bearer authentication and role gates for the Flask API.
"""

from functools import wraps

from flask import current_app, jsonify, request

from clinic.models import Role


def bearer_token():
    """Token from the Authorization header or ``?token=``; '' when malformed."""
    if "Authorization" in request.headers:
        auth_header = request.headers["Authorization"]
        try:
            return auth_header.split(" ")[1]
        except IndexError:
            return ""
    return request.args.get("token")


def token_required(f):
    """Decorator that protects endpoints with a live session."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = bearer_token()
        if token == "":
            return jsonify({"error": "Invalid authorization header format"}), 401
        if not token:
            return jsonify({"error": "Authentication token is missing"}), 401

        services = current_app.config["CLINIC_SERVICES"]
        session = services.identity.get_session(token)
        if session is None:
            return jsonify({"error": "Invalid or expired session. Please login again."}), 401

        # Attach session data to the request context
        request.clinic_session = session
        request.token = token
        request.role = services.directory(session).role_of(session.account_id)

        return f(*args, **kwargs)

    return decorated


def role_required(*roles: Role):
    """Restrict a token_required endpoint to the given roles."""
    def wrapper(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            if request.role not in roles:
                allowed = ", ".join(r.value for r in roles)
                return jsonify({"error": f"This action requires the {allowed} role"}), 403
            return f(*args, **kwargs)
        return decorated
    return wrapper
