"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in churchdesk/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from churchdesk.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_LIMIT = "10/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:        LOGIN_RATE_LIMIT (default 10/minute)
        - Requisition workflow:  60/minute
        - Reporting / platform:  200/minute

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    login_limit = app.config.get("LOGIN_RATE_LIMIT") or DEFAULT_LOGIN_LIMIT
    bp = app.blueprints.get("auth_bp")
    if bp:
        limiter.limit(login_limit)(bp)

    for bp_name in ("requisition_bp", "church_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in ("finance_bp", "platform_admin_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    app.logger.info(
        "Rate limiter configured: auth=%s, write=%s, read=%s",
        login_limit, WRITE_LIMIT, READ_LIMIT,
    )
