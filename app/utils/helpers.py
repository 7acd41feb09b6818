"""Shared blueprint helpers.

get_or_404:          tuple-return lookup (obj, err), never abort()
json_body:           request JSON as a dict (non-object bodies read as empty)
parse_number:        optional float input (lsl / usl)
parse_int:           bounded integer query parameters
db_commit_or_error:  the one place request code commits
"""
import logging
import math

from flask import request

from app.models import db
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def get_or_404(model, pk, label=None):
    """Fetch a model instance by primary key or return a 404 error tuple.

    - Success: (obj, None)
    - Failure: (None, (response, 404))

        obj, err = get_or_404(Product, pid)
        if err:
            return err
    """
    label = label or model.__name__
    obj = db.session.get(model, pk) if pk else None
    if not obj:
        return None, api_error(E.NOT_FOUND, f"{label} not found")
    return obj, None


def json_body():
    """Parsed JSON body when it is an object, else an empty dict."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def parse_number(value, field):
    """None / '' -> None, finite numeric -> float.

    Anything else, NaN and infinities included, raises ValueError naming *field*.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValueError(f"{field} must be a number") from exc
    if not math.isfinite(number):
        raise ValueError(f"{field} must be a finite number")
    return number


def parse_int(value, default, minimum=None, maximum=None):
    """Lenient int parse for query strings; falls back to *default*."""
    try:
        result = int(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None:
        result = max(minimum, result)
    if maximum is not None:
        result = min(maximum, result)
    return result


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure, ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    Other → 500 (unexpected)
    """
    from sqlalchemy.exc import IntegrityError, OperationalError

    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return api_error(E.DATABASE, "Database error")
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit")
        return api_error(E.DATABASE, "Database error")
