from app.db.base import Base

# Import all models so Alembic can detect them
from app.models.member import Member
from app.models.ledger import PeriodLedgerRecord, DEDUCTION_FIELDS
from app.models.policy import LoanPolicy
from app.models.transaction import (
    LoanApplication,
    LoanApplicationStatus,
    Loan,
    LoanStatus,
    LoanScheduleEntry,
    LoanPayment,
    WithdrawalRequest,
    WithdrawalStatus,
)

__all__ = [
    "Base",
    "Member",
    "PeriodLedgerRecord",
    "DEDUCTION_FIELDS",
    "LoanPolicy",
    "LoanApplication",
    "LoanApplicationStatus",
    "Loan",
    "LoanStatus",
    "LoanScheduleEntry",
    "LoanPayment",
    "WithdrawalRequest",
    "WithdrawalStatus",
]
