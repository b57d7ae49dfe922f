"""
Typed exception hierarchy for the approval engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval outcomes are routed by machine, not by humans reading messages.
Every error has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA as attributes (not just a message string)

Example - WRONG way to handle errors:
    try:
        manager.record_decision(request_id, decision)
    except Exception as e:
        if "already provided" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        manager.record_decision(request_id, decision)
    except DuplicateDecisionError as e:
        log.warning("duplicate decision", extra={"approver_id": e.approver_id})
        return {"error": e.code}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalEngineError (base)
    |
    +-- RequestNotFoundError
    +-- InvalidStatusError
    +-- UnauthorizedRoleError
    +-- DuplicateDecisionError
    |
    +-- ConfigurationError
    |   +-- ConfigurationMissingError
    |   +-- InvalidConfigurationError
    |
    +-- ConcurrentModificationError
    +-- PersistenceFailureError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                     | When Raised
-------------------------|---------------------------------------------------
NOT_FOUND                | Unknown approval request id
INVALID_STATUS           | Action not valid for the request's current status
UNAUTHORIZED_ROLE        | Approver role not in the threshold's required roles
DUPLICATE_DECISION       | Approver already decided on this request
CONFIGURATION_MISSING    | Configuration source absent / nothing resolvable
INVALID_CONFIGURATION    | Configuration failed validation
CONCURRENT_MODIFICATION  | Stored version differs from the expected version
PERSISTENCE_FAILURE      | Store unavailable or write failed
IMMUTABILITY_VIOLATION   | Update or per-row delete of an append-only record

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Decision paths (``submit_decision``) convert the first four errors into
   a ``DecisionResult`` carrying ``code``; callers never see them raised.

2. ``ConcurrentModificationError`` is retryable: re-read and resubmit.

3. ``PersistenceFailureError`` is the one error that always propagates.
   The store is gone; there is no meaningful structured result to return.
"""


class ApprovalEngineError(Exception):
    """
    Base exception for all approval engine errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "APPROVAL_ENGINE_ERROR"


class RequestNotFoundError(ApprovalEngineError):
    """Approval request with the given id does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval request not found: {request_id}")


class InvalidStatusError(ApprovalEngineError):
    """Action is not valid for the request's current status."""

    code: str = "INVALID_STATUS"

    def __init__(self, request_id: str, status: str, action: str = "decide"):
        self.request_id = request_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} request {request_id} with status: {status}"
        )


class UnauthorizedRoleError(ApprovalEngineError):
    """Approver does not hold a role the threshold requires."""

    code: str = "UNAUTHORIZED_ROLE"

    def __init__(self, request_id: str, role: str, required_roles: list[str]):
        self.request_id = request_id
        self.role = role
        self.required_roles = required_roles
        super().__init__(
            f"Approver role '{role}' is not authorized for request {request_id} "
            f"(required: {', '.join(required_roles)})"
        )


class DuplicateDecisionError(ApprovalEngineError):
    """Approver has already provided a decision for this request."""

    code: str = "DUPLICATE_DECISION"

    def __init__(self, request_id: str, approver_id: str):
        self.request_id = request_id
        self.approver_id = approver_id
        super().__init__(
            f"Approver {approver_id} has already provided a decision "
            f"for request {request_id}"
        )


# Configuration-related exceptions


class ConfigurationError(ApprovalEngineError):
    """Base exception for configuration problems."""

    code: str = "CONFIGURATION_ERROR"


class ConfigurationMissingError(ConfigurationError):
    """
    Required configuration could not be found.

    Not raised for the ordinary "no threshold matched" case -- that is a
    ``None`` result the caller must handle explicitly.
    """

    code: str = "CONFIGURATION_MISSING"

    def __init__(self, what: str, source: str | None = None):
        self.what = what
        self.source = source
        location = f" in {source}" if source else ""
        super().__init__(f"Configuration missing: {what}{location}")


class InvalidConfigurationError(ConfigurationError):
    """Configuration failed validation and must not be used."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, errors: list[str], source: str | None = None):
        self.errors = errors
        self.source = source
        super().__init__(
            f"Invalid approval configuration ({len(errors)} error(s)): "
            + "; ".join(errors)
        )


# Concurrency and storage


class ConcurrentModificationError(ApprovalEngineError):
    """Lost update detected: the stored request changed since it was read."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, request_id: str, expected_version: int, actual_version: int | None):
        self.request_id = request_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent modification of request {request_id}: "
            f"expected version {expected_version}, found {actual_version}"
        )


class PersistenceFailureError(ApprovalEngineError):
    """The persistence store is unavailable or rejected the write."""

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failure during {operation}: {reason}")


class ImmutabilityViolationError(ApprovalEngineError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id}: {reason}")
