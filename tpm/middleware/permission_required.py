"""
Role decorators for route protection.

Usage:
    @workflow_bp.route("/projects/<int:project_id>/workflow/<int:step_id>", methods=["PATCH"])
    @require_roles(*MANAGING_ROLES)
    def update_step(project_id, step_id):
        ...

When no JWT user is present the decorator passes through, unless
API_AUTH_ENABLED is true, in which case an authenticated user is required.
"""

import functools
import logging

from flask import current_app, g

from tpm.core.exceptions import ForbiddenError

logger = logging.getLogger(__name__)


def _auth_enforced() -> bool:
    return str(current_app.config.get("API_AUTH_ENABLED", "false")).lower() == "true"


def require_roles(*roles: str):
    """
    Decorator: require the JWT user to hold at least ONE of the listed roles.

    Raises ForbiddenError (→ 403 via blueprint error handlers).
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_id = getattr(g, "jwt_user_id", None)
            if user_id is None:
                if _auth_enforced():
                    raise ForbiddenError("Authentication required", required=list(roles))
                return f(*args, **kwargs)

            user_roles = set(getattr(g, "jwt_roles", None) or [])
            if not user_roles.intersection(roles):
                logger.warning(
                    "User %s denied: needs any of %s on %s",
                    user_id, roles, f.__name__,
                )
                raise ForbiddenError("Permission denied", required=list(roles))

            return f(*args, **kwargs)
        return decorated
    return decorator
