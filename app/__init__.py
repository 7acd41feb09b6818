"""
APQP Document Traceability Service
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from app.config import config
from app.models import db
from app.middleware.logging_config import configure_logging
from app.middleware.timing import init_request_timing
from app.middleware.diagnostics import run_startup_diagnostics
from app.middleware.rate_limiter import init_rate_limits

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections (ON DELETE CASCADE / SET NULL)."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, apply per-blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


def create_app(config_name=None, entity_store=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        entity_store: Optional EntityStore to use instead of the SQL store.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    @app.before_request
    def _guard_request():
        from flask import abort
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import product as _product_models            # noqa: F401
    from app.models import pfmea as _pfmea_models                # noqa: F401
    from app.models import control_plan as _control_plan_models  # noqa: F401
    from app.models import sop as _sop_models                    # noqa: F401
    from app.models import inspection as _inspection_models      # noqa: F401
    from app.models import reporting as _reporting_models        # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS; migrations own changes) ─
    if not app.config.get("TESTING"):
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except Exception as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Entity store + narrative generator ──────────────────────────────
    from app.ai.narrative import get_narrative_generator
    from app.store import init_entity_store

    init_entity_store(app, entity_store)
    app.extensions["narrative_generator"] = get_narrative_generator(app.config)

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints import register_blueprints
    register_blueprints(app)

    # ── Rate limits (per blueprint) ──────────────────────────────────────
    init_rate_limits(app, limiter)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        """Create a demo product with characteristics (idempotent on product code)."""
        from app.services.demo_data import seed_demo_product
        product, created = seed_demo_product()
        db.session.commit()
        logger.info("Demo product %s %s.", product.code, "created" if created else "already present")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"success": False, "error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"success": False, "error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"success": False, "error": "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media(e):
        return {"success": False, "error": "Content-Type must be application/json"}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"success": False, "error": "Rate limit exceeded", "detail": str(e.description)}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"success": False, "error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Startup diagnostics ──────────────────────────────────────────────
    run_startup_diagnostics(app)

    return app
