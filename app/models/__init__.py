"""
APQP Document Traceability Service
Database models package.

The ``db`` instance is created here and bound to the app in ``create_app``.
Model modules import it from here; ``create_app`` imports every model module
so that ``db.create_all()`` and Alembic see the full metadata.

Graph (parent → child, cascade delete top-down):
    Product → Characteristic
    Product → PfmeaHeader → PfmeaLine
    PfmeaHeader → ControlPlan → ControlPlanItem
    ControlPlan → Sop → SopStep
    ControlPlan → InspectionStandard → InspectionItem
"""

import uuid

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def new_uuid() -> str:
    """Primary key default for every graph table."""
    return str(uuid.uuid4())
