from sqlalchemy import Column, String, DateTime, Numeric, Uuid, text, func
from sqlalchemy.orm import relationship
import uuid
from app.db.base import Base
from decimal import Decimal


class Member(Base):
    """Cooperative member.

    Holds identity and the cumulative running totals only. Per-period deduction
    amounts live in PeriodLedgerRecord and are never stored here.
    """
    __tablename__ = "member"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    member_number = Column(String(50), nullable=False, unique=True, index=True)  # staff / member ID
    first_name = Column(String(100), nullable=False)
    surname = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    phone = Column(String(50), nullable=True)

    # Cumulative values (across all months) - mutated only by loan/withdrawal engines and admin corrections
    cumulative_savings = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    cumulative_shares = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    cumulative_investment = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    special_savings_balance = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())

    # Relationships
    ledger_records = relationship("PeriodLedgerRecord", back_populates="member", cascade="save-update, merge, delete")
    loan_applications = relationship("LoanApplication", back_populates="member", cascade="save-update, merge, delete")
    loans = relationship("Loan", back_populates="member", foreign_keys="Loan.member_id", cascade="save-update, merge, delete")
    withdrawal_requests = relationship("WithdrawalRequest", back_populates="member", cascade="save-update, merge, delete")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.surname or ''}".strip()
