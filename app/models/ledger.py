from sqlalchemy import Column, ForeignKey, DateTime, Numeric, Integer, UniqueConstraint, CheckConstraint, Index, Uuid, text, func
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship
import uuid
from app.db.base import Base
from decimal import Decimal


# Fixed set of deduction categories held by one ledger record.
DEDUCTION_FIELDS = (
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


class PeriodLedgerRecord(Base):
    """Monthly deductions for one member in one (month, year) period."""
    __tablename__ = "period_ledger_record"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)

    regular_savings = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    special_savings = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    shares = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    investment = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    loan_repayment = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    over_deduction = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    under_deduction = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    festival_loan = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    business = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())

    # Relationships
    member = relationship("Member", back_populates="ledger_records")

    __table_args__ = (
        UniqueConstraint("member_id", "month", "year", name="uq_period_ledger_member_period"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_period_ledger_month"),
        Index("idx_period_ledger_period", "year", "month"),
    )

    @hybrid_property
    def total(self):
        return sum(
            (getattr(self, field) or Decimal("0.00") for field in DEDUCTION_FIELDS),
            Decimal("0.00"),
        )

    @total.expression
    def total(cls):
        expr = getattr(cls, DEDUCTION_FIELDS[0])
        for field in DEDUCTION_FIELDS[1:]:
            expr = expr + getattr(cls, field)
        return expr
