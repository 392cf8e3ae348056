import os
from datetime import timedelta
from typing import Dict, Optional

from dotenv import load_dotenv
from flask import Flask, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix

from .errors import register_error_handlers
from .extensions import cors, jwt, mongo
from .identity import init_identity
from .routes import register_routes

load_dotenv()


def read_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def create_app(config_overrides: Optional[Dict] = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    trusted_proxy_hops_raw = os.getenv("TRUSTED_PROXY_HOPS", "1")
    try:
        trusted_proxy_hops = max(0, int(trusted_proxy_hops_raw))
    except (TypeError, ValueError):
        trusted_proxy_hops = 1
    if trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=trusted_proxy_hops,
            x_proto=trusted_proxy_hops,
            x_host=trusted_proxy_hops,
            x_port=trusted_proxy_hops,
        )

    # --- Configuration ---
    app.config["MONGO_URI"] = os.getenv(
        "MONGO_URI", "mongodb://localhost:27017/apporbit"
    )
    app.config["JWT_SECRET_KEY"] = os.getenv(
        "JWT_SECRET_KEY", "change-me-in-production"
    )
    app.config["JWT_ALGORITHM"] = os.getenv("JWT_ALGORITHM", "HS256")
    app.config["JWT_PUBLIC_KEY"] = os.getenv("JWT_PUBLIC_KEY")
    app.config["JWT_DECODE_ISSUER"] = os.getenv("JWT_DECODE_ISSUER") or None
    app.config["JWT_DECODE_AUDIENCE"] = os.getenv("JWT_DECODE_AUDIENCE") or None
    app.config["JWT_IDENTITY_CLAIM"] = os.getenv("JWT_IDENTITY_CLAIM", "email")
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(hours=1)
    app.config["IDENTITY_CERTS_URL"] = os.getenv("IDENTITY_CERTS_URL") or None
    app.config["IDENTITY_TIMEOUT_SECONDS"] = read_float("IDENTITY_TIMEOUT_SECONDS", 5)

    app.config["PAYMENT_SECRET_KEY"] = os.getenv("PAYMENT_SECRET_KEY") or None
    app.config["PAYMENT_API_BASE"] = os.getenv(
        "PAYMENT_API_BASE", "https://api.stripe.com"
    )
    app.config["PAYMENT_CURRENCY"] = os.getenv("PAYMENT_CURRENCY", "usd")
    app.config["PAYMENT_TIMEOUT_SECONDS"] = read_float("PAYMENT_TIMEOUT_SECONDS", 10)

    app.config["DEFAULT_ADMIN_EMAIL"] = (
        os.getenv("DEFAULT_ADMIN_EMAIL", "") or ""
    ).strip().lower()

    if config_overrides:
        app.config.update(config_overrides)

    # --- Initialize extensions ---
    allowed_origins = [
        os.getenv("FRONTEND_URL", "").strip(),
    ]
    cors_extra = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if cors_extra:
        for origin in cors_extra.split(","):
            trimmed = origin.strip()
            if trimmed:
                allowed_origins.append(trimmed)
    allowed_origins = [origin for origin in allowed_origins if origin]

    cors.init_app(app, supports_credentials=True, origins=allowed_origins or "*")
    jwt.init_app(app)
    init_identity(jwt)
    mongo.init_app(app)

    ensure_indexes(app)
    register_error_handlers(app)
    register_routes(app)

    @app.route("/")
    def index():
        return jsonify({"message": "AppOrbit Server is Running"})

    return app


def ensure_indexes(app: Flask):
    db = mongo.db
    try:
        db.users.create_index("email", unique=True)
    except Exception as exc:
        app.logger.warning("Unable to ensure unique index for user emails: %s", exc)

    try:
        db.products.create_index([("status", 1), ("created_at", -1)])
        db.products.create_index("owner_email")
        db.reports.create_index("product_id")
        db.reviews.create_index([("product_id", 1), ("created_at", -1)])
    except Exception as exc:
        app.logger.warning("Unable to ensure indexes for listings: %s", exc)

    try:
        db.role_changes.create_index([("created_at", -1)])
        db.audit_logs.create_index([("created_at", -1)])
        db.audit_logs.create_index([("user_email", 1), ("user_name", 1), ("action", 1)])
    except Exception as exc:
        app.logger.warning("Unable to ensure indexes for audit logs: %s", exc)
