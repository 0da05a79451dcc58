"""
Role Decorators: coarse route gating by role.

Usage:
    @bp.route("/platform-data", methods=["GET"])
    @require_roles(ROLE_APP_OWNER)
    def platform_data():
        ...

Fine-grained scope rules (own section, own department, workflow stage) stay in
the services; this only short-circuits roles that can never use a route.
"""

import functools
import logging

from churchdesk.middleware.jwt_auth import current_caller
from churchdesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_roles(*roles: str):
    """Decorator: the caller's role must be one of ``roles``."""
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            caller = current_caller()
            if caller.role not in roles:
                logger.warning(
                    "User %s (%s) denied on %s: requires one of %s",
                    caller.user_id, caller.role, f.__name__, roles,
                    extra={"user_id": caller.user_id},
                )
                return api_error(
                    E.FORBIDDEN,
                    "Permission denied",
                    details={"required_roles": list(roles)},
                )
            return f(*args, **kwargs)
        return decorated
    return decorator
