"""
Transfer Pricing Workflow Platform
Blueprint registry and shared request helpers.
"""

import logging

from flask import g, jsonify, request
from werkzeug.exceptions import HTTPException

from tpm.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from tpm.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def resolve_tenant_id() -> int | None:
    """Tenant for the current request: JWT claim first, then ?tenant_id=."""
    tid = getattr(g, "jwt_tenant_id", None)
    if tid:
        return tid
    return request.args.get("tenant_id", type=int) or None


def tenant_required():
    """Return (tenant_id, err_response); err_response is set when no tenant is known."""
    tid = resolve_tenant_id()
    if not tid:
        return None, api_error(E.VALIDATION_REQUIRED, "tenant_id is required")
    return tid, None


def json_body():
    """Parsed JSON body, or a 400 response when the body is not a JSON object."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return data, None


def register_error_handlers(bp):
    """Map service exceptions to JSON responses for every route on ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ForbiddenError)
    def _handle_forbidden(error: ForbiddenError):
        return api_error(E.FORBIDDEN, str(error), details={"required_roles": error.required})

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
