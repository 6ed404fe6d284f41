"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in tpm/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from tpm.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Project endpoints:  120/minute
        - Workflow endpoints: 300/minute (step edits are chatty)
        - Health check:       exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("project")
    if bp:
        limiter.limit("120/minute")(bp)

    bp = app.blueprints.get("workflow")
    if bp:
        limiter.limit("300/minute")(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: projects: 120/min, workflow: 300/min")
