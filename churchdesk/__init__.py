"""
ChurchDesk Requisition Platform
Flask Application Factory.

Usage:
    from churchdesk import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from churchdesk.config import config
from churchdesk.middleware.jwt_auth import init_jwt_middleware
from churchdesk.middleware.logging_config import configure_logging
from churchdesk.middleware.rate_limiter import init_rate_limits
from churchdesk.middleware.timing import init_request_timing
from churchdesk.models import db
from churchdesk.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per-blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name]())
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    register_error_handlers(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    @app.before_request
    def _guard_request():
        from flask import abort
        from flask import request as _req
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and _req.content_length and _req.content_length > max_len:
            abort(413, description="Request body too large")
        if _req.method in ("POST", "PUT", "PATCH") and _req.path.startswith("/api/"):
            # form bodies are consumed into request.form, so check the declared length
            has_body = bool(_req.content_length) or _req.headers.get("Transfer-Encoding") == "chunked"
            if has_body and not _req.is_json:
                abort(415, description="Content-Type must be application/json")

    # ── Request timing, then JWT auth (sets g.caller) ────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from churchdesk.models import auth as _auth_models             # noqa: F401
    from churchdesk.models import church as _church_models         # noqa: F401
    from churchdesk.models import finance as _finance_models       # noqa: F401
    from churchdesk.models import platform as _platform_models     # noqa: F401
    from churchdesk.models import requisition as _requisition_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        db.create_all()
        app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from churchdesk.blueprints.auth_bp import auth_bp
    from churchdesk.blueprints.church_bp import church_bp
    from churchdesk.blueprints.finance_bp import finance_bp
    from churchdesk.blueprints.platform_admin_bp import platform_admin_bp
    from churchdesk.blueprints.requisition_bp import requisition_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(requisition_bp)
    app.register_blueprint(church_bp)
    app.register_blueprint(finance_bp)
    app.register_blueprint(platform_admin_bp)

    init_rate_limits(app, limiter)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-app-owner")
    @click.option("--name", required=True)
    @click.option("--email", required=True)
    @click.option("--password", required=True, prompt=True, hide_input=True)
    def seed_app_owner_cmd(name, email, password):
        """Create the platform App Owner account."""
        from churchdesk.services.user_service import create_app_owner
        user = create_app_owner(name, email, password)
        logger.info("Seeded App Owner %s (%s).", user.email, user.id)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "ChurchDesk"}

    return app
