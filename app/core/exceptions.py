"""
Service-wide exception hierarchy.

Services raise these types; blueprints translate them to HTTP status codes
in one place.  Generation stages never let them escape: each stage catches
``GenerationError`` / ``NotFoundError`` / ``ValidationError`` and returns a
failed ``StageResult`` instead.

Usage:
    from app.core.exceptions import NotFoundError, NoInputDataError

    raise NotFoundError(resource="Product", resource_id=product_id)
    raise NoInputDataError("Product has no characteristics", parent_id=product_id)
"""


class NotFoundError(Exception):
    """Raised when a referenced entity (usually a required parent) does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Product", "ControlPlan").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Examples: a PFMEA header that belongs to another product, an S/O/D edit
    on an approved document, an unknown characteristic category.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value (e.g. product code).

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class TransitionError(ValidationError):
    """Raised for a document status change the transition table does not allow."""

    def __init__(self, current: str, action: str) -> None:
        self.current = current
        self.action = action
        super().__init__(
            f"Cannot '{action}' a document in status '{current}'",
            details={"current_status": current, "action": action},
        )


class StoreError(Exception):
    """A datastore write failed (constraint, connection, injected test fault).

    The SQL store raises it after rolling the session back; the original
    driver exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, kind: str | None = None) -> None:
        self.kind = kind
        super().__init__(message)


# ── Generation pipeline ──────────────────────────────────────────────────────

class GenerationError(Exception):
    """Base class for generation-stage failures.

    ``code`` is the machine-readable value surfaced in ``StageResult.error_code``.
    """

    code = "GENERATION_ERROR"

    def __init__(self, message: str, parent_id: str | None = None) -> None:
        self.parent_id = parent_id
        super().__init__(message)


class NoInputDataError(GenerationError):
    """The parent exists but has zero children to expand."""

    code = "NO_INPUT_DATA"


class PartialInsertFailure(GenerationError):
    """A multi-row insert failed part-way.

    The only condition that triggers compensation: the stage deletes the
    header it just created before reporting this.
    """

    code = "PARTIAL_INSERT_FAILURE"

    def __init__(
        self,
        message: str,
        parent_id: str | None = None,
        inserted: int = 0,
        rolled_back: bool = False,
    ) -> None:
        self.inserted = inserted
        self.rolled_back = rolled_back
        super().__init__(message, parent_id=parent_id)


# ── Consistency engine ───────────────────────────────────────────────────────

class RuleEvaluationError(Exception):
    """A rule met a malformed snapshot entry (e.g. dangling foreign key).

    Never surfaces to callers: the engine converts it into a data-integrity
    issue.
    """

    def __init__(self, message: str, references: dict | None = None) -> None:
        self.references = references or {}
        super().__init__(message)
