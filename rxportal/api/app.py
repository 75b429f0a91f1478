"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask, request
from flask_cors import CORS

from rxportal.api.auth import ROLE_HEADER, USER_ID_HEADER, build_authenticator
from rxportal.api.routes import register_routes
from rxportal.config import (
    API_HOST,
    API_PORT,
    AUTH_MODE,
    DATABASE_URL,
    WEB_ORIGIN,
    parse_origins,
)
from rxportal.database import init_engine
from rxportal.repository import NoopRepository, SqlRepository


def init_repository(db_uri: str = DATABASE_URL):
    """Pick the repository for this process based on DATABASE_URL."""
    if not db_uri:
        print("[init] DATABASE_URL not set; server will start but DB-backed endpoints will fail")
        return NoopRepository()
    print("[init] Initializing database connection...")
    return SqlRepository(init_engine(db_uri))


def create_app(repo=None, authenticator=None, web_origin: str = WEB_ORIGIN):
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)

    origins = parse_origins(web_origin)
    CORS(
        app,
        origins=origins,
        send_wildcard=origins == "*",
        allow_headers=["Content-Type", "Authorization", ROLE_HEADER, USER_ID_HEADER],
        methods=["GET", "POST", "OPTIONS"],
        vary_header=True,
    )

    # ── Initialise shared resources ──────────────────────────────────
    try:
        if repo is None:
            repo = init_repository()
        if authenticator is None:
            authenticator = build_authenticator(AUTH_MODE)
    except Exception as e:
        print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)

    app.config["AUTHENTICATOR"] = authenticator

    # Preflight never reaches the router; CORS headers are added afterwards.
    @app.before_request
    def short_circuit_options():
        if request.method == "OPTIONS":
            return app.response_class(status=204)
        return None

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, repo)

    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("Prescription Portal – REST API Server")
    print("=" * 60)

    app = create_app()

    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {API_HOST}:{API_PORT}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] Auth mode: {AUTH_MODE}")
    print(f"[server] Allowed origins: {WEB_ORIGIN}")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{API_HOST}:{API_PORT}/prescriptions")
    print(f"  - GET  http://{API_HOST}:{API_PORT}/prescriptions")
    print(f"  - GET  http://{API_HOST}:{API_PORT}/analytics/top-drugs")
    print(f"  - GET  http://{API_HOST}:{API_PORT}/physicians/<id>/patients")
    print(f"  - GET  http://{API_HOST}:{API_PORT}/patients/<id>/physicians")
    print(f"  - GET  http://{API_HOST}:{API_PORT}/healthz")
    print(f"  - GET  http://{API_HOST}:{API_PORT}/readyz")
    print("\n" + "=" * 60)

    app.run(host=API_HOST, port=API_PORT, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
