"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from clinic.config import TOKEN_EXPIRY_HOURS
from clinic.database import init_engine, init_schema
from clinic.mailer import init_transport
from clinic.services import build_services
from clinic.api.routes import register_routes


def create_app(services=None):
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    if services is None:
        try:
            print("[init] Initializing database connection...")
            engine = init_engine()

            print("[init] Ensuring schema...")
            init_schema(engine)

            print("[init] Initializing mail transport...")
            services = build_services(engine, init_transport())

            print("[init] ✓ API server ready")
        except Exception as e:
            print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
            traceback.print_exc()
            sys.exit(1)

    app.config["CLINIC_SERVICES"] = services

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, services)

    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("Clinic Visit Portal – REST API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] Session expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{host}:{port}/api/auth/signup")
    print(f"  - POST http://{host}:{port}/api/auth/login")
    print(f"  - POST http://{host}:{port}/api/auth/resend")
    print(f"  - GET  http://{host}:{port}/api/auth/confirm")
    print(f"  - GET  http://{host}:{port}/api/patients")
    print(f"  - POST http://{host}:{port}/api/patients/<id>/prescriptions")
    print(f"  - GET  http://{host}:{port}/api/dashboard")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
