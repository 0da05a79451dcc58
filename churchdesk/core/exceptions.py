"""
Platform-wide exception hierarchy.

Services raise these types; the API boundary translates them once, app-wide,
in ``churchdesk.utils.errors.register_error_handlers``.  Blueprints never
build error payloads for business-rule failures themselves.

Usage:
    from churchdesk.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Requisition", resource_id=req_id)
    raise ValidationError("comments are required to reject a requisition",
                          details={"comments": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the caller's scope.

    Used for BOTH genuinely missing records AND cross-church access attempts.
    A 403 would confirm the resource exists; a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Requisition", "Church").
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
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(Exception):
    """Raised when credentials are missing, invalid or belong to an inactive user.

    Maps to HTTP 401.
    """


class ForbiddenError(Exception):
    """Raised when the caller's role or scope is not eligible for an operation.

    Maps to HTTP 403.
    """


class InvalidTransitionError(Exception):
    """Raised when a workflow action is not valid from the requisition's status.

    Maps to HTTP 409.

    Args:
        current_status: Status the requisition was in.
        action: The attempted action.
        reason: Optional precondition that failed (already acted, wrong stage).
    """

    def __init__(self, current_status: str, action: str, reason: str | None = None) -> None:
        self.current_status = current_status
        self.action = action
        self.reason = reason
        msg = reason or f"Cannot {action} a requisition in status '{current_status}'"
        super().__init__(msg)


class ConflictError(Exception):
    """Raised when a concurrent write won the race for the same record.

    Maps to HTTP 409.
    """


class DuplicateError(ConflictError):
    """Raised when an operation would violate a unique constraint.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class SubscriptionExpiredError(Exception):
    """Raised when a church's subscription has lapsed and a gated mutation is attempted.

    Maps to HTTP 402.
    """

    def __init__(self, church_id: str, ends_at=None) -> None:
        self.church_id = church_id
        self.ends_at = ends_at
        super().__init__(
            "The church subscription has expired; renew it to submit new requisitions"
        )
