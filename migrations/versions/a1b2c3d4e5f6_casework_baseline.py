"""casework baseline: cases, task pipeline, BOQ/quotations, ledger

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None

CASE_STATUS = sa.Enum(
    "SITE_VISIT_PENDING",
    "WAITING_FOR_DRAWING",
    "BOQ_COMPLETED",
    "QUOTATION",
    "WAITING_FOR_PLANNING",
    "PLANNING_SUBMITTED",
    "PENDING_EXECUTION_APPROVAL",
    "PENDING_BUDGET_APPROVAL",
    "ACTIVE",
    "COMPLETED",
    name="case_status",
)
TASK_TYPE = sa.Enum(
    "SITE_VISIT", "DRAWING_TASK", "QUOTATION_TASK", "PROCUREMENT_AUDIT", "EXECUTION_PLANNING", name="task_type"
)
TASK_STATUS = sa.Enum("PENDING", "STARTED", "COMPLETED", name="task_status")
TEAM_ROLE = sa.Enum(
    "SALES", "SITE_ENGINEER", "DRAWING", "QUOTATION", "PROCUREMENT", "EXECUTION", "ACCOUNTS", name="team_role"
)
AUDIT_STATUS = sa.Enum("PENDING", "APPROVED", "REJECTED", name="audit_status")
INVOICE_KIND = sa.Enum("SALES", "PURCHASE", name="invoice_kind")
INVOICE_STATUS = sa.Enum("PENDING", "PENDING_APPROVAL", "PAID", "OVERDUE", name="invoice_status")
ENTRY_TYPE = sa.Enum("DEBIT", "CREDIT", name="entry_type")
LEDGER_CATEGORY = sa.Enum("REVENUE", "ACCOUNTS_RECEIVABLE", "EXPENSE", "PAYABLE", name="ledger_category")
DOCUMENT_KIND = sa.Enum("BOQ", "QUOTATION", "MASTER_PROJECT", name="document_kind")
DOCUMENT_REQUEST_STATUS = sa.Enum("PENDING", "DONE", "FAILED", name="document_request_status")


def _money(name: str, nullable: bool = False, precision: int = 14):
    return sa.Column(name, sa.Numeric(precision, 2), nullable=nullable)


def upgrade():
    op.create_table(
        "organization",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("code", sa.String(length=30), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "membership",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "org_id", name="uq_membership_user_org"),
    )

    op.create_table(
        "project_case",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("case_number", sa.String(length=20), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("client_name", sa.String(length=160), nullable=False),
        sa.Column("status", CASE_STATUS, nullable=False),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_cost_center", sa.Boolean(), nullable=False, server_default=sa.false()),
        _money("total_budget"),
        _money("spent_amount"),
        _money("remaining_amount"),
        _money("received_amount"),
        _money("proposed_budget"),
        sa.Column("budget_approved_by_user_id", sa.Integer(), nullable=True),
        sa.Column("budget_approved_at", sa.DateTime(), nullable=True),
        sa.Column("last_rejection_reason", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("spent_amount >= 0", name="ck_case_spent_non_negative"),
        sa.CheckConstraint("total_budget >= 0", name="ck_case_budget_non_negative"),
        sa.ForeignKeyConstraint(["budget_approved_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "case_number", name="uq_case_org_number"),
    )
    with op.batch_alter_table("project_case", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_project_case_org_id"), ["org_id"], unique=False)
        batch_op.create_index("ix_case_org_status", ["org_id", "status"], unique=False)

    op.create_table(
        "case_team_member",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("role", TEAM_ROLE, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["project_case.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("case_id", "role", name="uq_case_team_role"),
    )
    with op.batch_alter_table("case_team_member", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_case_team_member_case_id"), ["case_id"], unique=False)

    op.create_table(
        "case_task",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("type", TASK_TYPE, nullable=False),
        sa.Column("status", TASK_STATUS, nullable=False),
        sa.Column("assigned_to_user_id", sa.Integer(), nullable=True),
        sa.Column("predecessor_task_id", sa.Integer(), nullable=True),
        sa.Column("deadline", sa.DateTime(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("completed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("km_travelled", sa.Numeric(8, 1), nullable=False, server_default="0"),
        sa.Column("completion_notes", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["assigned_to_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["case_id"], ["project_case.id"]),
        sa.ForeignKeyConstraint(["completed_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.ForeignKeyConstraint(["predecessor_task_id"], ["case_task.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("predecessor_task_id", name="uq_case_task_predecessor"),
    )
    with op.batch_alter_table("case_task", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_case_task_org_id"), ["org_id"], unique=False)
        batch_op.create_index("ix_case_task_case_type_status", ["case_id", "type", "status"], unique=False)
        batch_op.create_index("ix_case_task_assignee_status", ["assigned_to_user_id", "status"], unique=False)

    op.create_table(
        "catalog_item",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=40), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "code", name="uq_catalog_item_org_code"),
    )
    with op.batch_alter_table("catalog_item", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_catalog_item_org_id"), ["org_id"], unique=False)

    op.create_table(
        "case_boq",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        _money("subtotal"),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["case_id"], ["project_case.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("case_boq", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_case_boq_org_id"), ["org_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_case_boq_case_id"), ["case_id"], unique=False)

    op.create_table(
        "case_boq_item",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("boq_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("catalog_item_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 2), nullable=False),
        _money("rate"),
        _money("total"),
        sa.ForeignKeyConstraint(["boq_id"], ["case_boq.id"]),
        sa.ForeignKeyConstraint(["catalog_item_id"], ["catalog_item.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("boq_id", "position", name="uq_boq_item_position"),
    )
    with op.batch_alter_table("case_boq_item", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_case_boq_item_boq_id"), ["boq_id"], unique=False)

    op.create_table(
        "case_quotation",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("boq_id", sa.Integer(), nullable=False),
        sa.Column("quotation_task_id", sa.Integer(), nullable=True),
        _money("subtotal"),
        _money("discount", precision=5),
        _money("discount_amount"),
        _money("tax_rate", precision=5),
        _money("tax_amount"),
        _money("grand_total"),
        sa.Column("internal_pr_code", sa.String(length=60), nullable=False, server_default=""),
        sa.Column("notes", sa.String(length=1000), nullable=False, server_default=""),
        sa.Column("audit_status", AUDIT_STATUS, nullable=False),
        sa.Column("audited_by_user_id", sa.Integer(), nullable=True),
        sa.Column("audited_at", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("pdf_url", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["audited_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["boq_id"], ["case_boq.id"]),
        sa.ForeignKeyConstraint(["case_id"], ["project_case.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.ForeignKeyConstraint(["quotation_task_id"], ["case_task.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("quotation_task_id", name="uq_quotation_task"),
    )
    with op.batch_alter_table("case_quotation", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_case_quotation_org_id"), ["org_id"], unique=False)
        batch_op.create_index("ix_quotation_case_audit", ["case_id", "audit_status"], unique=False)

    op.create_table(
        "case_quotation_item",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("quotation_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("boq_item_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 2), nullable=False),
        _money("rate"),
        _money("total"),
        sa.ForeignKeyConstraint(["boq_item_id"], ["case_boq_item.id"]),
        sa.ForeignKeyConstraint(["quotation_id"], ["case_quotation.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("quotation_id", "position", name="uq_quotation_item_position"),
    )
    with op.batch_alter_table("case_quotation_item", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_case_quotation_item_quotation_id"), ["quotation_id"], unique=False)

    op.create_table(
        "execution_plan",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        _money("total_budget"),
        sa.Column("notes", sa.String(length=1000), nullable=False, server_default=""),
        sa.Column("submitted_by_user_id", sa.Integer(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("approved_by_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approved_by_user_id", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_by_user_id", sa.Integer(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("master_pdf_url", sa.String(length=255), nullable=False, server_default=""),
        sa.ForeignKeyConstraint(["approved_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["case_id"], ["project_case.id"]),
        sa.ForeignKeyConstraint(["rejected_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["submitted_by_user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("case_id", name="uq_execution_plan_case"),
    )
    op.create_table(
        "execution_phase",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("plan_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("labor_count", sa.Integer(), nullable=False),
        sa.Column("material_delivery_date", sa.Date(), nullable=True),
        sa.CheckConstraint("end_date >= start_date", name="ck_execution_phase_dates"),
        sa.CheckConstraint("labor_count > 0", name="ck_execution_phase_labor"),
        sa.ForeignKeyConstraint(["plan_id"], ["execution_plan.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("plan_id", "position", name="uq_execution_phase_position"),
    )
    with op.batch_alter_table("execution_phase", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_execution_phase_plan_id"), ["plan_id"], unique=False)

    op.create_table(
        "case_event",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("from_status", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("to_status", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("details", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("event_at", sa.DateTime(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["case_id"], ["project_case.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("case_event", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_case_event_org_id"), ["org_id"], unique=False)
        batch_op.create_index("ix_case_event_case_at", ["case_id", "event_at"], unique=False)

    op.create_table(
        "invoice",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=True),
        sa.Column("kind", INVOICE_KIND, nullable=False),
        sa.Column("invoice_number", sa.String(length=40), nullable=False),
        sa.Column("counterparty_name", sa.String(length=160), nullable=False),
        _money("amount"),
        _money("tax_amount"),
        _money("total_amount"),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("status", INVOICE_STATUS, nullable=False),
        sa.Column("transaction_id", sa.String(length=32), nullable=False),
        sa.Column("notes", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_invoice_amount_positive"),
        sa.CheckConstraint("tax_amount >= 0", name="ck_invoice_tax_non_negative"),
        sa.ForeignKeyConstraint(["case_id"], ["project_case.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "kind", "invoice_number", name="uq_invoice_org_kind_number"),
    )
    with op.batch_alter_table("invoice", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_invoice_org_id"), ["org_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_invoice_transaction_id"), ["transaction_id"], unique=False)
        batch_op.create_index("ix_invoice_org_case", ["org_id", "case_id"], unique=False)

    op.create_table(
        "ledger_entry",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.String(length=32), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("type", ENTRY_TYPE, nullable=False),
        _money("amount"),
        sa.Column("category", LEDGER_CATEGORY, nullable=False),
        sa.Column("source_type", sa.String(length=30), nullable=False),
        sa.Column("source_id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_ledger_entry_amount_positive"),
        sa.ForeignKeyConstraint(["case_id"], ["project_case.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("ledger_entry", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_ledger_entry_org_id"), ["org_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_ledger_entry_transaction_id"), ["transaction_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_ledger_entry_case_id"), ["case_id"], unique=False)
        batch_op.create_index("ix_ledger_entry_org_date", ["org_id", "entry_date"], unique=False)
        batch_op.create_index("ix_ledger_entry_source", ["source_type", "source_id"], unique=False)

    op.create_table(
        "document_request",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("kind", DOCUMENT_KIND, nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=False),
        sa.Column("status", DOCUMENT_REQUEST_STATUS, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("url", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("requested_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("kind", "target_id", name="uq_document_request_target"),
    )
    with op.batch_alter_table("document_request", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_document_request_org_id"), ["org_id"], unique=False)

    op.create_table(
        "number_sequence",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=40), nullable=False),
        sa.Column("current_value", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["org_id"], ["organization.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "name", name="uq_number_sequence_org_name"),
    )


def downgrade():
    for table in (
        "number_sequence",
        "document_request",
        "ledger_entry",
        "invoice",
        "case_event",
        "execution_phase",
        "execution_plan",
        "case_quotation_item",
        "case_quotation",
        "case_boq_item",
        "case_boq",
        "catalog_item",
        "case_task",
        "case_team_member",
        "project_case",
        "membership",
        "user_account",
        "organization",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (
        DOCUMENT_REQUEST_STATUS,
        DOCUMENT_KIND,
        LEDGER_CATEGORY,
        ENTRY_TYPE,
        INVOICE_STATUS,
        INVOICE_KIND,
        AUDIT_STATUS,
        TEAM_ROLE,
        TASK_STATUS,
        TASK_TYPE,
        CASE_STATUS,
    ):
        enum.drop(bind, checkfirst=True)
