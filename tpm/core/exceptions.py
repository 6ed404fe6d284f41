"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from tpm.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("completion_percentage must be 0-100",
                          details={"completion_percentage": "out of range"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-tenant access attempts,
    so a 404 never confirms that another tenant's record exists.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Workflow step").
        resource_id: The key that was looked up.
        message: Optional full message overriding the generated one.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        if message is None:
            message = f"{resource}"
            if resource_id is not None:
                message += f" id={resource_id}"
            message += " not found"
        super().__init__(message)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Covers malformed patch fields and rule violations such as completing a
    workflow step before its predecessors.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown for API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when the caller lacks the role required for an operation.

    Maps to HTTP 403.
    """

    def __init__(self, message: str = "Permission denied", required: list[str] | None = None) -> None:
        self.required = required or []
        super().__init__(message)
