"""initial_apqp_schema

Create the product master, the four controlled documents with their lines,
and the consistency report tables.

Revision ID: 3f9c2a71b0d4
Revises:
Create Date: 2026-10-12 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "3f9c2a71b0d4"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _document_columns():
    return [
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("doc_number", sa.String(length=80), nullable=True),
        sa.Column("revision", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        *_timestamps(),
    ]


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "products" not in existing_tables:
        op.create_table(
            "products",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("customer", sa.String(length=200), nullable=True),
            sa.Column("vehicle_model", sa.String(length=100), nullable=True),
            sa.Column("part_number", sa.String(length=100), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    if "characteristics" not in existing_tables:
        op.create_table(
            "characteristics",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=True),
            sa.Column("category", sa.String(length=20), nullable=True),
            sa.Column("specification", sa.String(length=300), nullable=True),
            sa.Column("lsl", sa.Float(), nullable=True),
            sa.Column("usl", sa.Float(), nullable=True),
            sa.Column("unit", sa.String(length=20), nullable=True),
            sa.Column("measurement_method", sa.String(length=300), nullable=True),
            sa.Column("process_name", sa.String(length=200), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_characteristics_product_id", "characteristics", ["product_id"])

    if "pfmea_headers" not in existing_tables:
        op.create_table(
            "pfmea_headers",
            *_document_columns(),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("process_name", sa.String(length=200), nullable=True),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_pfmea_headers_product_id", "pfmea_headers", ["product_id"])
        op.create_index("ix_pfmea_headers_status", "pfmea_headers", ["status"])

    if "pfmea_lines" not in existing_tables:
        op.create_table(
            "pfmea_lines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("pfmea_id", sa.String(length=36), nullable=False),
            sa.Column("characteristic_id", sa.String(length=36), nullable=True),
            sa.Column("step_no", sa.Integer(), nullable=True),
            sa.Column("process_step", sa.String(length=200), nullable=True),
            sa.Column("potential_failure_mode", sa.Text(), nullable=True),
            sa.Column("potential_effect", sa.Text(), nullable=True),
            sa.Column("severity", sa.Integer(), nullable=True),
            sa.Column("potential_cause", sa.Text(), nullable=True),
            sa.Column("occurrence", sa.Integer(), nullable=True),
            sa.Column("current_control_prevention", sa.Text(), nullable=True),
            sa.Column("current_control_detection", sa.Text(), nullable=True),
            sa.Column("detection", sa.Integer(), nullable=True),
            sa.Column("rpn", sa.Integer(), nullable=True),
            sa.Column("action_priority", sa.String(length=1), nullable=True),
            sa.Column("recommended_action", sa.Text(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["pfmea_id"], ["pfmea_headers.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["characteristic_id"], ["characteristics.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_pfmea_lines_pfmea_id", "pfmea_lines", ["pfmea_id"])
        op.create_index("ix_pfmea_lines_characteristic_id", "pfmea_lines", ["characteristic_id"])

    if "control_plans" not in existing_tables:
        op.create_table(
            "control_plans",
            *_document_columns(),
            sa.Column("pfmea_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.ForeignKeyConstraint(["pfmea_id"], ["pfmea_headers.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_control_plans_pfmea_id", "control_plans", ["pfmea_id"])
        op.create_index("ix_control_plans_status", "control_plans", ["status"])

    if "control_plan_items" not in existing_tables:
        op.create_table(
            "control_plan_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("control_plan_id", sa.String(length=36), nullable=False),
            sa.Column("pfmea_line_id", sa.String(length=36), nullable=True),
            sa.Column("characteristic_id", sa.String(length=36), nullable=True),
            sa.Column("step_no", sa.Integer(), nullable=True),
            sa.Column("process_step", sa.String(length=200), nullable=True),
            sa.Column("control_type", sa.String(length=20), nullable=False),
            sa.Column("control_method", sa.Text(), nullable=True),
            sa.Column("sample_size", sa.String(length=50), nullable=True),
            sa.Column("frequency", sa.String(length=50), nullable=True),
            sa.Column("reaction_plan", sa.Text(), nullable=True),
            sa.Column("responsible", sa.String(length=100), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["control_plan_id"], ["control_plans.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["pfmea_line_id"], ["pfmea_lines.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["characteristic_id"], ["characteristics.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_control_plan_items_control_plan_id", "control_plan_items", ["control_plan_id"])
        op.create_index("ix_control_plan_items_pfmea_line_id", "control_plan_items", ["pfmea_line_id"])
        op.create_index("ix_control_plan_items_characteristic_id", "control_plan_items", ["characteristic_id"])

    if "sops" not in existing_tables:
        op.create_table(
            "sops",
            *_document_columns(),
            sa.Column("control_plan_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.ForeignKeyConstraint(["control_plan_id"], ["control_plans.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_sops_control_plan_id", "sops", ["control_plan_id"])
        op.create_index("ix_sops_status", "sops", ["status"])

    if "sop_steps" not in existing_tables:
        op.create_table(
            "sop_steps",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("sop_id", sa.String(length=36), nullable=False),
            sa.Column("linked_cp_item_id", sa.String(length=36), nullable=True),
            sa.Column("step_no", sa.Integer(), nullable=True),
            sa.Column("process_name", sa.String(length=200), nullable=True),
            sa.Column("action", sa.Text(), nullable=True),
            sa.Column("key_point", sa.Text(), nullable=True),
            sa.Column("safety_note", sa.Text(), nullable=True),
            sa.Column("quality_point", sa.Text(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["sop_id"], ["sops.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["linked_cp_item_id"], ["control_plan_items.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_sop_steps_sop_id", "sop_steps", ["sop_id"])
        op.create_index("ix_sop_steps_linked_cp_item_id", "sop_steps", ["linked_cp_item_id"])

    if "inspection_standards" not in existing_tables:
        op.create_table(
            "inspection_standards",
            *_document_columns(),
            sa.Column("control_plan_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.ForeignKeyConstraint(["control_plan_id"], ["control_plans.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_inspection_standards_control_plan_id", "inspection_standards", ["control_plan_id"])
        op.create_index("ix_inspection_standards_status", "inspection_standards", ["status"])

    if "inspection_items" not in existing_tables:
        op.create_table(
            "inspection_items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("inspection_standard_id", sa.String(length=36), nullable=False),
            sa.Column("linked_cp_item_id", sa.String(length=36), nullable=True),
            sa.Column("characteristic_id", sa.String(length=36), nullable=True),
            sa.Column("item_no", sa.Integer(), nullable=True),
            sa.Column("inspection_item_name", sa.String(length=200), nullable=True),
            sa.Column("inspection_method", sa.Text(), nullable=True),
            sa.Column("acceptance_criteria", sa.Text(), nullable=True),
            sa.Column("sample_size", sa.String(length=50), nullable=True),
            sa.Column("frequency", sa.String(length=50), nullable=True),
            sa.Column("sampling_plan", sa.String(length=120), nullable=True),
            sa.Column("ng_handling", sa.Text(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(
                ["inspection_standard_id"], ["inspection_standards.id"], ondelete="CASCADE",
            ),
            sa.ForeignKeyConstraint(["linked_cp_item_id"], ["control_plan_items.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["characteristic_id"], ["characteristics.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_inspection_items_inspection_standard_id", "inspection_items", ["inspection_standard_id"],
        )
        op.create_index("ix_inspection_items_linked_cp_item_id", "inspection_items", ["linked_cp_item_id"])
        op.create_index("ix_inspection_items_characteristic_id", "inspection_items", ["characteristic_id"])

    if "report_runs" not in existing_tables:
        op.create_table(
            "report_runs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("report_type", sa.String(length=50), nullable=True),
            sa.Column("pfmea_id", sa.String(length=36), nullable=True),
            sa.Column("input_params", sa.JSON(), nullable=True),
            sa.Column("result_summary", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["pfmea_id"], ["pfmea_headers.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_report_runs_report_type", "report_runs", ["report_type"])
        op.create_index("ix_report_runs_pfmea_id", "report_runs", ["pfmea_id"])
        op.create_index("ix_report_runs_created_at", "report_runs", ["created_at"])

    if "consistency_issues" not in existing_tables:
        op.create_table(
            "consistency_issues",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("report_run_id", sa.String(length=36), nullable=False),
            sa.Column("seq", sa.Integer(), nullable=True),
            sa.Column("severity", sa.String(length=10), nullable=False),
            sa.Column("rule_code", sa.String(length=10), nullable=False),
            sa.Column("rule_description", sa.String(length=300), nullable=True),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("issue_refs", sa.JSON(), nullable=True),
            sa.Column("resolved", sa.Boolean(), nullable=True),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("resolved_by", sa.String(length=100), nullable=True),
            sa.Column("resolution_note", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["report_run_id"], ["report_runs.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_consistency_issues_report_run_id", "consistency_issues", ["report_run_id"])
        op.create_index("ix_consistency_issues_severity", "consistency_issues", ["severity"])
        op.create_index("ix_consistency_issues_rule_code", "consistency_issues", ["rule_code"])


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    for table in (
        "consistency_issues", "report_runs",
        "inspection_items", "inspection_standards",
        "sop_steps", "sops",
        "control_plan_items", "control_plans",
        "pfmea_lines", "pfmea_headers",
        "characteristics", "products",
    ):
        if table in existing_tables:
            op.drop_table(table)
