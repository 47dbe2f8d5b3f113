"""initial ledger schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import uuid
import sqlalchemy as sa

revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


MONEY = sa.Numeric(12, 2)

DEDUCTION_COLUMNS = (
    "regular_savings",
    "special_savings",
    "shares",
    "investment",
    "loan_repayment",
    "over_deduction",
    "under_deduction",
    "festival_loan",
    "business",
)


def _status(*values, name):
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade():
    op.create_table(
        "member",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("member_number", sa.String(50), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("surname", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("cumulative_savings", MONEY, nullable=False, server_default="0"),
        sa.Column("cumulative_shares", MONEY, nullable=False, server_default="0"),
        sa.Column("cumulative_investment", MONEY, nullable=False, server_default="0"),
        sa.Column("special_savings_balance", MONEY, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_member_member_number", "member", ["member_number"], unique=True)

    op.create_table(
        "period_ledger_record",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("member_id", sa.Uuid(), sa.ForeignKey("member.id"), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        *[sa.Column(name, MONEY, nullable=False, server_default="0") for name in DEDUCTION_COLUMNS],
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("member_id", "month", "year", name="uq_period_ledger_member_period"),
        sa.CheckConstraint("month BETWEEN 1 AND 12", name="ck_period_ledger_month"),
    )
    op.create_index("ix_period_ledger_record_member_id", "period_ledger_record", ["member_id"])
    op.create_index("idx_period_ledger_period", "period_ledger_record", ["year", "month"])

    loan_policy = op.create_table(
        "loan_policy",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("min_amount", MONEY, nullable=False),
        sa.Column("max_amount", MONEY, nullable=False),
        sa.Column("min_duration_months", sa.Integer(), nullable=False),
        sa.Column("max_duration_months", sa.Integer(), nullable=False),
        sa.Column("min_membership_months", sa.Integer(), nullable=False),
        sa.Column("savings_multiplier", sa.Numeric(5, 2), nullable=False),
        sa.Column("min_guarantors", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_loan_policy_category", "loan_policy", ["category"], unique=True)

    op.create_table(
        "loan_application",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("member_id", sa.Uuid(), sa.ForeignKey("member.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("duration_months", sa.Integer(), nullable=False),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("monthly_payment", MONEY, nullable=False),
        sa.Column("status", _status("pending", "approved", "declined", name="loanapplicationstatus"), nullable=False),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("decided_by", sa.String(100), nullable=True),
    )
    op.create_index("ix_loan_application_member_id", "loan_application", ["member_id"])

    op.create_table(
        "loan",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("application_id", sa.Uuid(), sa.ForeignKey("loan_application.id"), nullable=True),
        sa.Column("member_id", sa.Uuid(), sa.ForeignKey("member.id"), nullable=False),
        sa.Column("active_member_id", sa.Uuid(), sa.ForeignKey("member.id"), nullable=True, unique=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("remaining_balance", MONEY, nullable=False),
        sa.Column("total_paid", MONEY, nullable=False, server_default="0"),
        sa.Column("monthly_payment", MONEY, nullable=False),
        sa.Column("duration_months", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("status", _status("active", "completed", "defaulted", name="loanstatus"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("expected_end_date", sa.Date(), nullable=False),
        sa.Column("next_due_date", sa.Date(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("remaining_balance >= 0 AND remaining_balance <= amount", name="ck_loan_balance_bounds"),
    )
    op.create_index("ix_loan_application_id", "loan", ["application_id"], unique=True)
    op.create_index("ix_loan_member_id", "loan", ["member_id"])

    op.create_table(
        "loan_schedule",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("loan_id", sa.Uuid(), sa.ForeignKey("loan.id"), nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("principal_amount", MONEY, nullable=False),
        sa.Column("remaining_balance_after", MONEY, nullable=False),
        sa.UniqueConstraint("loan_id", "installment_number", name="uq_loan_schedule_installment"),
    )
    op.create_index("ix_loan_schedule_loan_id", "loan_schedule", ["loan_id"])

    op.create_table(
        "loan_payment",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("loan_id", sa.Uuid(), sa.ForeignKey("loan.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("recorded_by", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_loan_payment_loan_id", "loan_payment", ["loan_id"])

    op.create_table(
        "withdrawal_request",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("member_id", sa.Uuid(), sa.ForeignKey("member.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("withdrawal_type", sa.String(50), nullable=False, server_default="special_savings"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", _status("pending", "approved", "declined", name="withdrawalstatus"), nullable=False),
        sa.Column("is_direct", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("processed_by", sa.String(100), nullable=True),
    )
    op.create_index("ix_withdrawal_request_member_id", "withdrawal_request", ["member_id"])

    op.bulk_insert(loan_policy, [
        {"id": uuid.uuid4(), "category": "standard", "name": "Standard Loan",
         "min_amount": 50000, "max_amount": 500000, "min_duration_months": 6, "max_duration_months": 36,
         "min_membership_months": 6, "savings_multiplier": 2, "min_guarantors": 0, "is_active": True,
         "description": "General purpose loan. No active loans allowed."},
        {"id": uuid.uuid4(), "category": "business", "name": "Business Loan",
         "min_amount": 100000, "max_amount": 1000000, "min_duration_months": 12, "max_duration_months": 48,
         "min_membership_months": 12, "savings_multiplier": 2, "min_guarantors": 2, "is_active": True,
         "description": "Business plan required."},
        {"id": uuid.uuid4(), "category": "festival", "name": "Festival Loan",
         "min_amount": 25000, "max_amount": 200000, "min_duration_months": 3, "max_duration_months": 12,
         "min_membership_months": 3, "savings_multiplier": 2, "min_guarantors": 0, "is_active": True,
         "description": "Short-term festival loan."},
    ])


def downgrade():
    op.drop_table("withdrawal_request")
    op.drop_table("loan_payment")
    op.drop_table("loan_schedule")
    op.drop_table("loan")
    op.drop_table("loan_application")
    op.drop_table("loan_policy")
    op.drop_table("period_ledger_record")
    op.drop_table("member")
