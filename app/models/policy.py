from sqlalchemy import Column, String, DateTime, Numeric, Integer, Boolean, Text, Uuid, text
import uuid
from app.db.base import Base
from decimal import Decimal


class LoanPolicy(Base):
    """Eligibility rules for one loan category. Read-only reference data."""
    __tablename__ = "loan_policy"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    category = Column(String(50), nullable=False, unique=True, index=True)  # e.g. "standard", "business", "festival"
    name = Column(String(100), nullable=False)
    min_amount = Column(Numeric(12, 2), nullable=False)
    max_amount = Column(Numeric(12, 2), nullable=False)
    min_duration_months = Column(Integer, nullable=False, default=1)
    max_duration_months = Column(Integer, nullable=False)
    min_membership_months = Column(Integer, nullable=False, default=0)
    savings_multiplier = Column(Numeric(5, 2), nullable=False, default=Decimal("2.00"))  # max loan = savings x multiplier
    min_guarantors = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
