from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, UniqueConstraint, event, inspect, select
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates
from werkzeug.security import generate_password_hash

from app.core.exceptions import InvalidTransition, LedgerImbalance, ValidationError
from app.core.extensions import db

ZERO = Decimal("0.00")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CaseStatus(str, Enum):
    SITE_VISIT_PENDING = "SITE_VISIT_PENDING"
    WAITING_FOR_DRAWING = "WAITING_FOR_DRAWING"
    BOQ_COMPLETED = "BOQ_COMPLETED"
    QUOTATION = "QUOTATION"
    WAITING_FOR_PLANNING = "WAITING_FOR_PLANNING"
    PLANNING_SUBMITTED = "PLANNING_SUBMITTED"
    PENDING_EXECUTION_APPROVAL = "PENDING_EXECUTION_APPROVAL"
    PENDING_BUDGET_APPROVAL = "PENDING_BUDGET_APPROVAL"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class TaskType(str, Enum):
    SITE_VISIT = "SITE_VISIT"
    DRAWING_TASK = "DRAWING_TASK"
    QUOTATION_TASK = "QUOTATION_TASK"
    PROCUREMENT_AUDIT = "PROCUREMENT_AUDIT"
    EXECUTION_PLANNING = "EXECUTION_PLANNING"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"


class TeamRole(str, Enum):
    SALES = "sales"
    SITE_ENGINEER = "site_engineer"
    DRAWING = "drawing"
    QUOTATION = "quotation"
    PROCUREMENT = "procurement"
    EXECUTION = "execution"
    ACCOUNTS = "accounts"


class AuditStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class InvoiceKind(str, Enum):
    SALES = "SALES"
    PURCHASE = "PURCHASE"


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PENDING_APPROVAL = "Pending Approval"
    PAID = "paid"
    OVERDUE = "overdue"


class EntryType(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class LedgerCategory(str, Enum):
    REVENUE = "REVENUE"
    ACCOUNTS_RECEIVABLE = "ACCOUNTS_RECEIVABLE"
    EXPENSE = "EXPENSE"
    PAYABLE = "PAYABLE"


class DocumentKind(str, Enum):
    BOQ = "BOQ"
    QUOTATION = "QUOTATION"
    MASTER_PROJECT = "MASTER_PROJECT"


class DocumentRequestStatus(str, Enum):
    PENDING = "PENDING"
    DONE = "DONE"
    FAILED = "FAILED"


class Organization(db.Model):
    __tablename__ = "organization"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(120), unique=True, nullable=False)
    code: Mapped[str] = mapped_column(db.String(30), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    memberships = relationship("Membership", back_populates="organization")


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    memberships = relationship("Membership", back_populates="user")


class Membership(db.Model):
    # Role names: admin, sales_gm, or a TeamRole value.
    __tablename__ = "membership"
    __table_args__ = (UniqueConstraint("user_id", "org_id", name="uq_membership_user_org"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False)
    role: Mapped[str] = mapped_column(db.String(30), nullable=False, default="admin")

    user = relationship("User", back_populates="memberships")
    organization = relationship("Organization", back_populates="memberships")


class Case(db.Model):
    __tablename__ = "project_case"
    __table_args__ = (
        UniqueConstraint("org_id", "case_number", name="uq_case_org_number"),
        Index("ix_case_org_status", "org_id", "status"),
        CheckConstraint("spent_amount >= 0", name="ck_case_spent_non_negative"),
        CheckConstraint("total_budget >= 0", name="ck_case_budget_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    case_number: Mapped[str] = mapped_column(db.String(20), nullable=False)
    title: Mapped[str] = mapped_column(db.String(200), nullable=False)
    client_name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    status: Mapped[CaseStatus] = mapped_column(
        SAEnum(CaseStatus, name="case_status"),
        nullable=False,
        default=CaseStatus.SITE_VISIT_PENDING,
    )
    archived: Mapped[bool] = mapped_column(default=False, nullable=False)
    # Cost center
    has_cost_center: Mapped[bool] = mapped_column(default=False, nullable=False)
    total_budget: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    spent_amount: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    remaining_amount: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    received_amount: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    proposed_budget: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    budget_approved_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    budget_approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_rejection_reason: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    team_members = relationship("CaseTeamMember", back_populates="case", cascade="all, delete-orphan")
    tasks = relationship("CaseTask", back_populates="case", order_by="CaseTask.id")
    boqs = relationship("CaseBOQ", back_populates="case", order_by="CaseBOQ.id")
    quotations = relationship("CaseQuotation", back_populates="case", order_by="CaseQuotation.id")
    execution_plan = relationship("ExecutionPlan", back_populates="case", uselist=False)
    events = relationship("CaseEvent", back_populates="case", order_by="CaseEvent.id")
    created_by = relationship("User", foreign_keys=[created_by_user_id])

    def team_member_for(self, role: TeamRole) -> int | None:
        for member in self.team_members:
            if member.role == role:
                return member.user_id
        return None


class CaseTeamMember(db.Model):
    __tablename__ = "case_team_member"
    __table_args__ = (UniqueConstraint("case_id", "role", name="uq_case_team_role"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("project_case.id"), nullable=False, index=True)
    role: Mapped[TeamRole] = mapped_column(SAEnum(TeamRole, name="team_role"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False)

    case = relationship("Case", back_populates="team_members")
    user = relationship("User")


class CaseTask(db.Model):
    __tablename__ = "case_task"
    __table_args__ = (
        # One successor per predecessor, whatever the number of completion retries.
        UniqueConstraint("predecessor_task_id", name="uq_case_task_predecessor"),
        Index("ix_case_task_case_type_status", "case_id", "type", "status"),
        Index("ix_case_task_assignee_status", "assigned_to_user_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("project_case.id"), nullable=False)
    type: Mapped[TaskType] = mapped_column(SAEnum(TaskType, name="task_type"), nullable=False)
    status: Mapped[TaskStatus] = mapped_column(
        SAEnum(TaskStatus, name="task_status"),
        nullable=False,
        default=TaskStatus.PENDING,
    )
    assigned_to_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    predecessor_task_id: Mapped[int | None] = mapped_column(ForeignKey("case_task.id"), nullable=True)
    deadline: Mapped[datetime | None] = mapped_column(nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    km_travelled: Mapped[Decimal] = mapped_column(db.Numeric(8, 1), nullable=False, default=Decimal("0.0"))
    completion_notes: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    case = relationship("Case", back_populates="tasks")
    assigned_to = relationship("User", foreign_keys=[assigned_to_user_id])
    predecessor = relationship("CaseTask", remote_side=[id])

    @property
    def is_open(self) -> bool:
        return self.status != TaskStatus.COMPLETED


class CatalogItem(db.Model):
    __tablename__ = "catalog_item"
    __table_args__ = (UniqueConstraint("org_id", "code", name="uq_catalog_item_org_code"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    code: Mapped[str] = mapped_column(db.String(40), nullable=False)
    name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    unit: Mapped[str] = mapped_column(db.String(20), nullable=False, default="unit")
    active: Mapped[bool] = mapped_column(default=True, nullable=False)


class CaseBOQ(db.Model):
    __tablename__ = "case_boq"

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("project_case.id"), nullable=False, index=True)
    subtotal: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    locked: Mapped[bool] = mapped_column(default=False, nullable=False)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    case = relationship("Case", back_populates="boqs")
    items = relationship(
        "CaseBOQItem",
        back_populates="boq",
        order_by="CaseBOQItem.position",
        cascade="all, delete-orphan",
    )
    created_by = relationship("User")


class CaseBOQItem(db.Model):
    __tablename__ = "case_boq_item"
    __table_args__ = (UniqueConstraint("boq_id", "position", name="uq_boq_item_position"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    boq_id: Mapped[int] = mapped_column(ForeignKey("case_boq.id"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(nullable=False)
    catalog_item_id: Mapped[int | None] = mapped_column(ForeignKey("catalog_item.id"), nullable=True)
    name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    unit: Mapped[str] = mapped_column(db.String(20), nullable=False, default="unit")
    quantity: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False)
    # Pricing belongs to the quotation team; BOQ lines stay at zero.
    rate: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    total: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)

    boq = relationship("CaseBOQ", back_populates="items")
    catalog_item = relationship("CatalogItem")

    @validates("quantity")
    def _validate_quantity(self, _key: str, value: Decimal) -> Decimal:
        if value is None or Decimal(value) <= 0:
            raise ValidationError("BOQ quantity must be greater than zero")
        return value


class CaseQuotation(db.Model):
    __tablename__ = "case_quotation"
    __table_args__ = (
        UniqueConstraint("quotation_task_id", name="uq_quotation_task"),
        Index("ix_quotation_case_audit", "case_id", "audit_status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("project_case.id"), nullable=False)
    boq_id: Mapped[int] = mapped_column(ForeignKey("case_boq.id"), nullable=False)
    quotation_task_id: Mapped[int | None] = mapped_column(ForeignKey("case_task.id"), nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    discount: Mapped[Decimal] = mapped_column(db.Numeric(5, 2), nullable=False, default=ZERO)
    discount_amount: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    tax_rate: Mapped[Decimal] = mapped_column(db.Numeric(5, 2), nullable=False, default=Decimal("18.00"))
    tax_amount: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    grand_total: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    internal_pr_code: Mapped[str] = mapped_column(db.String(60), nullable=False, default="")
    notes: Mapped[str] = mapped_column(db.String(1000), nullable=False, default="")
    audit_status: Mapped[AuditStatus] = mapped_column(
        SAEnum(AuditStatus, name="audit_status"),
        nullable=False,
        default=AuditStatus.PENDING,
    )
    audited_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    audited_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    pdf_url: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    case = relationship("Case", back_populates="quotations")
    boq = relationship("CaseBOQ")
    quotation_task = relationship("CaseTask")
    items = relationship(
        "CaseQuotationItem",
        back_populates="quotation",
        order_by="CaseQuotationItem.position",
        cascade="all, delete-orphan",
    )


class CaseQuotationItem(db.Model):
    __tablename__ = "case_quotation_item"
    __table_args__ = (UniqueConstraint("quotation_id", "position", name="uq_quotation_item_position"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    quotation_id: Mapped[int] = mapped_column(ForeignKey("case_quotation.id"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(nullable=False)
    boq_item_id: Mapped[int | None] = mapped_column(ForeignKey("case_boq_item.id"), nullable=True)
    name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    unit: Mapped[str] = mapped_column(db.String(20), nullable=False, default="unit")
    quantity: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False)
    rate: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    total: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)

    quotation = relationship("CaseQuotation", back_populates="items")


class ExecutionPlan(db.Model):
    __tablename__ = "execution_plan"
    __table_args__ = (UniqueConstraint("case_id", name="uq_execution_plan_case"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("project_case.id"), nullable=False)
    total_budget: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    notes: Mapped[str] = mapped_column(db.String(1000), nullable=False, default="")
    submitted_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by_admin: Mapped[bool] = mapped_column(default=False, nullable=False)
    approved_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    master_pdf_url: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")

    case = relationship("Case", back_populates="execution_plan")
    phases = relationship(
        "ExecutionPhase",
        back_populates="plan",
        order_by="ExecutionPhase.position",
        cascade="all, delete-orphan",
    )


class ExecutionPhase(db.Model):
    __tablename__ = "execution_phase"
    __table_args__ = (
        UniqueConstraint("plan_id", "position", name="uq_execution_phase_position"),
        CheckConstraint("end_date >= start_date", name="ck_execution_phase_dates"),
        CheckConstraint("labor_count > 0", name="ck_execution_phase_labor"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    plan_id: Mapped[int] = mapped_column(ForeignKey("execution_plan.id"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date] = mapped_column(nullable=False)
    labor_count: Mapped[int] = mapped_column(nullable=False)
    material_delivery_date: Mapped[date | None] = mapped_column(nullable=True)

    plan = relationship("ExecutionPlan", back_populates="phases")


class CaseEvent(db.Model):
    __tablename__ = "case_event"
    __table_args__ = (Index("ix_case_event_case_at", "case_id", "event_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("project_case.id"), nullable=False)
    event_type: Mapped[str] = mapped_column(db.String(50), nullable=False)
    from_status: Mapped[str] = mapped_column(db.String(40), nullable=False, default="")
    to_status: Mapped[str] = mapped_column(db.String(40), nullable=False, default="")
    details: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    event_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)

    case = relationship("Case", back_populates="events")
    user = relationship("User")


class Invoice(db.Model):
    __tablename__ = "invoice"
    __table_args__ = (
        UniqueConstraint("org_id", "kind", "invoice_number", name="uq_invoice_org_kind_number"),
        Index("ix_invoice_org_case", "org_id", "case_id"),
        CheckConstraint("amount > 0", name="ck_invoice_amount_positive"),
        CheckConstraint("tax_amount >= 0", name="ck_invoice_tax_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    case_id: Mapped[int | None] = mapped_column(ForeignKey("project_case.id"), nullable=True)
    kind: Mapped[InvoiceKind] = mapped_column(SAEnum(InvoiceKind, name="invoice_kind"), nullable=False)
    invoice_number: Mapped[str] = mapped_column(db.String(40), nullable=False)
    counterparty_name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    amount: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=ZERO)
    total_amount: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False)
    issue_date: Mapped[date] = mapped_column(nullable=False, default=date.today)
    due_date: Mapped[date | None] = mapped_column(nullable=True)
    status: Mapped[InvoiceStatus] = mapped_column(SAEnum(InvoiceStatus, name="invoice_status"), nullable=False)
    transaction_id: Mapped[str] = mapped_column(db.String(32), nullable=False, index=True)
    notes: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    case = relationship("Case")


class LedgerEntry(db.Model):
    __tablename__ = "ledger_entry"
    __table_args__ = (
        Index("ix_ledger_entry_org_date", "org_id", "entry_date"),
        Index("ix_ledger_entry_source", "source_type", "source_id"),
        CheckConstraint("amount > 0", name="ck_ledger_entry_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    transaction_id: Mapped[str] = mapped_column(db.String(32), nullable=False, index=True)
    entry_date: Mapped[date] = mapped_column(nullable=False, default=date.today)
    type: Mapped[EntryType] = mapped_column(SAEnum(EntryType, name="entry_type"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False)
    category: Mapped[LedgerCategory] = mapped_column(SAEnum(LedgerCategory, name="ledger_category"), nullable=False)
    source_type: Mapped[str] = mapped_column(db.String(30), nullable=False)
    source_id: Mapped[int] = mapped_column(nullable=False)
    case_id: Mapped[int | None] = mapped_column(ForeignKey("project_case.id"), nullable=True, index=True)
    description: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class DocumentRequest(db.Model):
    __tablename__ = "document_request"
    __table_args__ = (UniqueConstraint("kind", "target_id", name="uq_document_request_target"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False, index=True)
    kind: Mapped[DocumentKind] = mapped_column(SAEnum(DocumentKind, name="document_kind"), nullable=False)
    target_id: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[DocumentRequestStatus] = mapped_column(
        SAEnum(DocumentRequestStatus, name="document_request_status"),
        nullable=False,
        default=DocumentRequestStatus.PENDING,
    )
    attempts: Mapped[int] = mapped_column(nullable=False, default=0)
    last_error: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    url: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    requested_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)


class NumberSequence(db.Model):
    __tablename__ = "number_sequence"
    __table_args__ = (UniqueConstraint("org_id", "name", name="uq_number_sequence_org_name"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    org_id: Mapped[int] = mapped_column(ForeignKey("organization.id"), nullable=False)
    name: Mapped[str] = mapped_column(db.String(40), nullable=False)
    current_value: Mapped[int] = mapped_column(nullable=False, default=0)


INVOICE_FROZEN_FIELDS = (
    "org_id",
    "case_id",
    "kind",
    "invoice_number",
    "amount",
    "tax_amount",
    "total_amount",
    "transaction_id",
)


@event.listens_for(Session, "before_flush")
def case_delete_guard(session, _flush_context, _instances) -> None:
    for obj in session.deleted:
        if isinstance(obj, Case):
            raise InvalidTransition(obj.status.value, message="Cases are archived, never deleted")


@event.listens_for(CaseBOQ, "before_update")
def boq_before_update(_mapper, _connection, target: CaseBOQ) -> None:
    history = inspect(target).attrs.locked.history
    was_locked = history.deleted[0] if history.deleted else bool(target.locked)
    if was_locked:
        raise InvalidTransition("LOCKED", message=f"BOQ {target.id} is locked by a quotation")


@event.listens_for(CaseBOQ, "before_delete")
def boq_before_delete(_mapper, _connection, target: CaseBOQ) -> None:
    raise InvalidTransition("LOCKED" if target.locked else "OPEN", message="BOQs are append-only")


@event.listens_for(CaseBOQItem, "before_update")
@event.listens_for(CaseBOQItem, "before_delete")
@event.listens_for(CaseBOQItem, "before_insert")
def boq_item_guard(_mapper, connection, target: CaseBOQItem) -> None:
    if target.boq_id is None:
        return
    locked = connection.execute(select(CaseBOQ.locked).where(CaseBOQ.id == target.boq_id)).scalar()
    if locked:
        raise InvalidTransition("LOCKED", message=f"BOQ {target.boq_id} is locked by a quotation")


@event.listens_for(LedgerEntry, "before_update")
@event.listens_for(LedgerEntry, "before_delete")
def ledger_entry_immutable(_mapper, _connection, target: LedgerEntry) -> None:
    raise InvalidTransition("POSTED", message=f"Ledger entry {target.id} is immutable")


@event.listens_for(CaseEvent, "before_update")
@event.listens_for(CaseEvent, "before_delete")
def case_event_immutable(_mapper, _connection, target: CaseEvent) -> None:
    raise InvalidTransition("RECORDED", message="Case history is append-only")


@event.listens_for(Invoice, "before_update")
def invoice_before_update(_mapper, _connection, target: Invoice) -> None:
    state = inspect(target)
    changed = [name for name in INVOICE_FROZEN_FIELDS if state.attrs[name].history.has_changes()]
    if changed:
        raise InvalidTransition("POSTED", message=f"Posted invoice fields are immutable: {', '.join(changed)}")


@event.listens_for(Invoice, "before_delete")
def invoice_before_delete(_mapper, _connection, target: Invoice) -> None:
    raise InvalidTransition("POSTED", message=f"Invoice {target.invoice_number} cannot be deleted")


@event.listens_for(Session, "before_flush")
def ledger_balance_before_flush(session, _flush_context, _instances) -> None:
    totals: dict[str, list[Decimal]] = {}
    for obj in session.new:
        if not isinstance(obj, LedgerEntry):
            continue
        debit_credit = totals.setdefault(obj.transaction_id, [ZERO, ZERO])
        index = 0 if obj.type == EntryType.DEBIT else 1
        debit_credit[index] += Decimal(obj.amount)
    for transaction_id, (debits, credits) in totals.items():
        if debits != credits:
            raise LedgerImbalance(transaction_id, debits, credits)


DEMO_TEAM: tuple[tuple[str, str, str], ...] = (
    ("salesgm@casework.local", "Sales General Manager", "sales_gm"),
    ("sales@casework.local", "Sales Team Member", TeamRole.SALES.value),
    ("engineer@casework.local", "Site Engineer", TeamRole.SITE_ENGINEER.value),
    ("drawing@casework.local", "Drawing Team", TeamRole.DRAWING.value),
    ("quotation@casework.local", "Quotation Team", TeamRole.QUOTATION.value),
    ("procurement@casework.local", "Procurement Team", TeamRole.PROCUREMENT.value),
    ("execution@casework.local", "Execution Team", TeamRole.EXECUTION.value),
    ("accounts@casework.local", "Accounts Team", TeamRole.ACCOUNTS.value),
)

DEMO_CATALOG: tuple[tuple[str, str, str], ...] = (
    ("PLY-18", "Plywood sheet 18mm", "sheet"),
    ("LAM-1", "Laminate 1mm", "sheet"),
    ("HNG-SC", "Soft-close hinge", "pcs"),
    ("PNT-EM", "Emulsion paint", "litre"),
    ("LAB-CP", "Carpentry labour", "day"),
)


def seed_demo_data(session) -> None:
    org = Organization(name="Casework Demo", code="DEMO")
    session.add(org)
    session.flush()

    admin = User(
        email="admin@casework.local",
        full_name="Admin",
        password_hash=generate_password_hash("admin123"),
    )
    session.add(admin)
    session.flush()
    session.add(Membership(user_id=admin.id, org_id=org.id, role="admin"))

    users_by_role: dict[str, User] = {}
    for email, full_name, role in DEMO_TEAM:
        user = User(email=email, full_name=full_name, password_hash=generate_password_hash("demo123"))
        session.add(user)
        session.flush()
        session.add(Membership(user_id=user.id, org_id=org.id, role=role))
        users_by_role[role] = user

    for code, name, unit in DEMO_CATALOG:
        session.add(CatalogItem(org_id=org.id, code=code, name=name, unit=unit))

    case = Case(
        org_id=org.id,
        case_number="CASE-0001",
        title="Kitchen refit, 3rd floor",
        client_name="Acme Holdings",
        status=CaseStatus.SITE_VISIT_PENDING,
        created_by_user_id=users_by_role[TeamRole.SALES.value].id,
    )
    session.add(case)
    session.flush()
    for role in TeamRole:
        session.add(CaseTeamMember(case_id=case.id, role=role, user_id=users_by_role[role.value].id))
    session.add(
        CaseTask(
            org_id=org.id,
            case_id=case.id,
            type=TaskType.SITE_VISIT,
            assigned_to_user_id=users_by_role[TeamRole.SITE_ENGINEER.value].id,
            deadline=utcnow() + timedelta(days=2),
        )
    )
    session.add(
        CaseEvent(
            org_id=org.id,
            case_id=case.id,
            event_type="CASE_CREATED",
            to_status=CaseStatus.SITE_VISIT_PENDING.value,
            details="Demo case",
            user_id=users_by_role[TeamRole.SALES.value].id,
        )
    )
    session.commit()
