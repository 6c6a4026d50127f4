"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from bloodbank.api.routes import register_routes
from bloodbank.config import NEW_USER_HOOK_SECRET, TOKEN_EXPIRY_HOURS
from bloodbank.database import init_engine
from bloodbank.identity import JwtIdentityProvider
from bloodbank.store import SqlDocumentStore


def create_app(store=None, identity=None, hook_secret=None, engine=None):
    """Build and return a fully configured Flask application.

    *store* and *identity* default to the SQL-backed implementations on the
    engine named by ``DB_URI``.
    """
    app = Flask(__name__)
    CORS(app)

    if store is None or identity is None:
        try:
            if engine is None:
                print("[init] Initializing database connection...")
                engine = init_engine()
            store = store or SqlDocumentStore(engine)
            identity = identity or JwtIdentityProvider(engine)
            print("[init] ✓ API server ready")
        except Exception as e:
            print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
            traceback.print_exc()
            sys.exit(1)

    if hook_secret is None:
        hook_secret = NEW_USER_HOOK_SECRET

    register_routes(app, store, identity, hook_secret=hook_secret, engine=engine)
    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("Blood Bank Ledger – REST API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "3000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] CORS enabled: True")
    print(f"[server] Token expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - POST   http://{host}:{port}/api/assign-role")
    print(f"  - POST   http://{host}:{port}/api/create-request")
    print(f"  - DELETE http://{host}:{port}/api/requests/<id>")
    print(f"  - POST   http://{host}:{port}/api/register-donation")
    print(f"  - POST   http://{host}:{port}/api/update-status")
    print(f"  - GET    http://{host}:{port}/api/ledger/<unit_id>")
    print(f"  - GET    http://{host}:{port}/api/donation-history")
    print(f"  - GET    http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
