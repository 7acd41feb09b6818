"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Product not found")
    return api_error(E.VALIDATION_REQUIRED, "product_id is required")
    return api_error(E.NO_INPUT_DATA, "Product has no characteristics")
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
     • generation-stage codes are shared with StageResult.error_code
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Business-rule rejection – HTTP 422
    VALIDATION_CONSTRAINT = "ERR_VALIDATION_CONSTRAINT"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"

    # Generation stages
    NO_INPUT_DATA = "NO_INPUT_DATA"
    PARTIAL_INSERT_FAILURE = "PARTIAL_INSERT_FAILURE"
    STORE_ERROR = "STORE_ERROR"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_CONSTRAINT: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
    E.NO_INPUT_DATA: 422,
    E.PARTIAL_INSERT_FAILURE: 500,
    E.STORE_ERROR: 500,
}

# StageResult.error_code -> E.*
STAGE_ERROR_CODES: dict[str, str] = {
    "NOT_FOUND": E.NOT_FOUND,
    "VALIDATION": E.VALIDATION_CONSTRAINT,
    "NO_INPUT_DATA": E.NO_INPUT_DATA,
    "PARTIAL_INSERT_FAILURE": E.PARTIAL_INSERT_FAILURE,
    "STORE_ERROR": E.STORE_ERROR,
}


def status_for(code: str) -> int:
    return _DEFAULT_STATUS.get(code, 400)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Build `{success: false, error, code, details?}` with the status mapped from *code*.

    Stage failures pass their mapped code (see STAGE_ERROR_CODES) so the
    status matches the failure kind; *status* overrides the mapping.
    """

    http_status = status or status_for(code)

    body: dict = {
        "success": False,
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
