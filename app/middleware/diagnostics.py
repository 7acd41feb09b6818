"""
Startup diagnostics for the APQP service.

Verifies that the document schema is in place and that the configured entity
store and narrative provider are usable, then logs a one-shot summary.
"""

import logging

from flask import Flask
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from app.models import db

logger = logging.getLogger(__name__)


def _missing_tables() -> list[str]:
    present = set(sa_inspect(db.engine).get_table_names())
    return sorted(name for name in db.metadata.tables if name not in present)


def collect_startup_issues(app: Flask) -> list[str]:
    """Return human-readable problems that would break generation or checks."""
    issues: list[str] = []

    try:
        db.session.execute(db.text("SELECT 1"))
        missing = _missing_tables()
        if missing:
            issues.append(f"Missing tables {', '.join(missing)}; run 'flask db upgrade'")
    except SQLAlchemyError as exc:
        issues.append(f"Database unreachable: {exc}")

    store = app.extensions.get("entity_store")
    if store is None:
        issues.append("Entity store not initialised")

    provider = (app.config.get("NARRATIVE_PROVIDER") or "template").lower()
    if provider == "openai":
        generator = app.extensions.get("narrative_generator")
        if generator is None or generator.name != "openai":
            issues.append("NARRATIVE_PROVIDER=openai could not be honoured; template narratives are in use")

    return issues


def run_startup_diagnostics(app: Flask):
    """Log a startup summary; skipped under TESTING."""
    if app.config.get("TESTING"):
        return

    with app.app_context():
        issues = collect_startup_issues(app)
        store = app.extensions.get("entity_store")
        generator = app.extensions.get("narrative_generator")

        logger.info(
            "APQP service ready: store=%s narrative=%s rate_limit=%s",
            type(store).__name__ if store is not None else "none",
            getattr(generator, "name", "none"),
            "on" if app.config.get("RATELIMIT_ENABLED") else "off",
        )
        for issue in issues:
            logger.warning("Startup check: %s", issue)
