"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Generation endpoints: GENERATION_RATE_LIMIT (default 30 per minute;
          each call may run the narrative generator once per characteristic)
        - Review / audit report: GENERATION_RATE_LIMIT (a review may call the LLM)
        - Product / document writes: 60/minute
        - Consistency checks:   200/minute
        - Health check:         exempt

    Disabled when RATELIMIT_ENABLED is false (always in testing).
    """

    if not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled (RATELIMIT_ENABLED=False)")
        return

    generation_limit = app.config.get("GENERATION_RATE_LIMIT", "30 per minute")
    for bp_name in ("generation", "report"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(generation_limit)(bp)

    for bp_name in ("product", "document"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("consistency")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: generation %s, write %s, check %s",
        generation_limit, WRITE_LIMIT, READ_LIMIT,
    )
