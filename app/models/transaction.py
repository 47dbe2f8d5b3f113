from sqlalchemy import Column, String, ForeignKey, DateTime, Date, Numeric, Integer, Boolean, Enum as SQLEnum, Text, UniqueConstraint, CheckConstraint, Uuid, text, func
from sqlalchemy.orm import relationship
import uuid
from app.db.base import Base
import enum
from decimal import Decimal


class LoanApplicationStatus(str, enum.Enum):
    """Loan application status."""
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class LoanStatus(str, enum.Enum):
    """Loan status."""
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"


class WithdrawalStatus(str, enum.Enum):
    """Withdrawal request status."""
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


def _enum_column(enum_cls, **kwargs):
    return Column(
        SQLEnum(enum_cls, native_enum=False, values_callable=lambda obj: [e.value for e in obj]),
        **kwargs
    )


class LoanApplication(Base):
    """Member loan application awaiting an admin decision."""
    __tablename__ = "loan_application"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    duration_months = Column(Integer, nullable=False)
    purpose = Column(Text, nullable=True)
    category = Column(String(50), nullable=False, default="standard")
    monthly_payment = Column(Numeric(12, 2), nullable=False)
    status = _enum_column(LoanApplicationStatus, default=LoanApplicationStatus.PENDING, nullable=False)
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    decided_at = Column(DateTime, nullable=True)
    decided_by = Column(String(100), nullable=True)

    # Relationships
    member = relationship("Member", back_populates="loan_applications")
    loan = relationship("Loan", back_populates="application", uselist=False)


class Loan(Base):
    """Interest-free loan created by approving an application."""
    __tablename__ = "loan"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(Uuid(as_uuid=True), ForeignKey("loan_application.id"), nullable=True, unique=True, index=True)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False, index=True)
    # Set to member_id only while the loan is active; the unique index allows one active loan per member.
    active_member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=True, unique=True)
    amount = Column(Numeric(12, 2), nullable=False)
    remaining_balance = Column(Numeric(12, 2), nullable=False)
    total_paid = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    monthly_payment = Column(Numeric(12, 2), nullable=False)
    duration_months = Column(Integer, nullable=False)
    category = Column(String(50), nullable=False, default="standard")
    purpose = Column(Text, nullable=True)
    status = _enum_column(LoanStatus, default=LoanStatus.ACTIVE, nullable=False)
    start_date = Column(Date, nullable=False)
    expected_end_date = Column(Date, nullable=False)
    next_due_date = Column(Date, nullable=True)
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    application = relationship("LoanApplication", back_populates="loan")
    member = relationship("Member", back_populates="loans", foreign_keys=[member_id])
    schedule = relationship("LoanScheduleEntry", back_populates="loan", order_by="LoanScheduleEntry.installment_number", cascade="all, delete-orphan")
    payments = relationship("LoanPayment", back_populates="loan", order_by="LoanPayment.created_at", cascade="save-update, merge, delete")

    __table_args__ = (
        CheckConstraint("remaining_balance >= 0 AND remaining_balance <= amount", name="ck_loan_balance_bounds"),
    )


class LoanScheduleEntry(Base):
    """One installment of a loan's amortization schedule."""
    __tablename__ = "loan_schedule"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(Uuid(as_uuid=True), ForeignKey("loan.id"), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    principal_amount = Column(Numeric(12, 2), nullable=False)
    remaining_balance_after = Column(Numeric(12, 2), nullable=False)

    # Relationships
    loan = relationship("Loan", back_populates="schedule")

    __table_args__ = (
        UniqueConstraint("loan_id", "installment_number", name="uq_loan_schedule_installment"),
    )


class LoanPayment(Base):
    """Loan repayment (append-only). month/year is the declared ledger period."""
    __tablename__ = "loan_payment"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(Uuid(as_uuid=True), ForeignKey("loan.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    payment_date = Column(Date, nullable=False)
    recorded_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    # Relationships
    loan = relationship("Loan", back_populates="payments")


class WithdrawalRequest(Base):
    """Special savings withdrawal request."""
    __tablename__ = "withdrawal_request"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    withdrawal_type = Column(String(50), nullable=False, default="special_savings")
    reason = Column(Text, nullable=True)
    status = _enum_column(WithdrawalStatus, default=WithdrawalStatus.PENDING, nullable=False)
    is_direct = Column(Boolean, nullable=False, default=False)  # admin direct withdrawal, created already approved
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    processed_at = Column(DateTime, nullable=True)
    processed_by = Column(String(100), nullable=True)

    # Relationships
    member = relationship("Member", back_populates="withdrawal_requests")
