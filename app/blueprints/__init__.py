"""
APQP Document Traceability Service
Blueprint registry.
"""

from flask import request


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  : max items (default 200, capped at max_limit)
        offset : starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def register_blueprints(app):
    from app.blueprints.consistency_bp import consistency_bp
    from app.blueprints.document_bp import document_bp
    from app.blueprints.generation_bp import generation_bp
    from app.blueprints.health_bp import health_bp
    from app.blueprints.product_bp import product_bp
    from app.blueprints.report_bp import report_bp

    app.register_blueprint(product_bp)
    app.register_blueprint(generation_bp)
    app.register_blueprint(consistency_bp)
    app.register_blueprint(report_bp)
    app.register_blueprint(document_bp)
    app.register_blueprint(health_bp)
