from pydantic import BaseModel, Field
from typing import Optional, Dict
from datetime import datetime
from decimal import Decimal
from uuid import UUID


class DeductionFields(BaseModel):
    """One amount per deduction category. Unknown categories are rejected."""
    regular_savings: Optional[Decimal] = None
    special_savings: Optional[Decimal] = None
    shares: Optional[Decimal] = None
    investment: Optional[Decimal] = None
    loan_repayment: Optional[Decimal] = None
    over_deduction: Optional[Decimal] = None
    under_deduction: Optional[Decimal] = None
    festival_loan: Optional[Decimal] = None
    business: Optional[Decimal] = None

    class Config:
        extra = "forbid"


class PeriodRequest(BaseModel):
    month: int = Field(..., description="Month number (1-12)")
    year: int = Field(..., description="Four-digit year")


class LedgerDeltaRequest(PeriodRequest):
    """Amounts to add to the period's existing values."""
    deltas: DeductionFields


class LedgerAbsoluteRequest(PeriodRequest):
    """Amounts that replace the period's existing values."""
    values: DeductionFields


class PeriodRecordResponse(BaseModel):
    member_id: UUID
    month: Optional[int] = None
    year: Optional[int] = None
    regular_savings: float = 0
    special_savings: float = 0
    shares: float = 0
    investment: float = 0
    loan_repayment: float = 0
    over_deduction: float = 0
    under_deduction: float = 0
    festival_loan: float = 0
    business: float = 0
    total: float = 0
    recorded: bool = Field(True, description="False when no row exists for the period and zeros are reported")
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MemberCumulativesResponse(BaseModel):
    member_id: UUID
    months_recorded: int
    ledger_totals: Dict[str, float]
    cumulative_savings: float
    cumulative_shares: float
    cumulative_investment: float
    special_savings_balance: float


class PeriodSummaryResponse(BaseModel):
    month: int
    year: int
    month_name: str
    total_members: int
    deduction_types: Dict[str, float]
    total_monthly_deduction: float


class BookDeductionsRequest(PeriodRequest):
    """Monthly amounts for many members, keyed by member id."""
    entries: Dict[UUID, DeductionFields]


class BookDeductionsResponse(BaseModel):
    month: int
    year: int
    members_booked: int


def period_record_response(record) -> PeriodRecordResponse:
    """Serialize a ledger row; unsaved zero rows are reported with recorded=False."""
    response = PeriodRecordResponse.model_validate(record)
    return response.model_copy(update={"recorded": record.id is not None})
