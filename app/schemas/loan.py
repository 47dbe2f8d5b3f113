from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from app.models.transaction import LoanApplicationStatus, LoanStatus


class EligibilityRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Requested loan amount")
    duration_months: int = Field(..., ge=1, description="Repayment duration in months")
    category: str = Field("standard", description="Loan category (standard, business, festival)")


class EligibilityResponse(BaseModel):
    eligible: bool
    reason: str
    message: str
    max_eligible_amount: float
    required_guarantors: int
    savings_balance: float
    membership_months: Optional[int] = None
    active_loan_count: int = 0
    outstanding_balance: float = 0.0


class LoanApplicationCreate(EligibilityRequest):
    purpose: Optional[str] = Field(None, description="What the loan is for")


class DecisionRequest(BaseModel):
    status: str = Field(..., description="approved or declined")
    admin_notes: Optional[str] = None


class LoanApplicationResponse(BaseModel):
    id: UUID
    member_id: UUID
    amount: float
    duration_months: int
    purpose: Optional[str] = None
    category: str
    monthly_payment: float
    status: LoanApplicationStatus
    admin_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoanResponse(BaseModel):
    id: UUID
    application_id: Optional[UUID] = None
    member_id: UUID
    amount: float
    remaining_balance: float
    total_paid: float
    monthly_payment: float
    duration_months: int
    category: str
    purpose: Optional[str] = None
    status: LoanStatus
    start_date: date
    expected_end_date: date
    next_due_date: Optional[date] = None
    admin_notes: Optional[str] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScheduleEntryResponse(BaseModel):
    installment_number: int
    due_date: date
    principal_amount: float
    remaining_balance_after: float

    class Config:
        from_attributes = True


class LoanPaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Amount paid")
    month: int = Field(..., description="Ledger month the payment is booked to (1-12)")
    year: int = Field(..., description="Ledger year the payment is booked to")
    payment_date: Optional[date] = Field(None, description="Wall-clock payment date, defaults to today")


class LoanPaymentResponse(BaseModel):
    id: UUID
    loan_id: UUID
    amount: float
    month: int
    year: int
    payment_date: date

    class Config:
        from_attributes = True


class PaymentResult(BaseModel):
    payment: LoanPaymentResponse
    loan: LoanResponse


class LoanWithScheduleResponse(BaseModel):
    loan: LoanResponse
    schedule: List[ScheduleEntryResponse]
    payments: List[LoanPaymentResponse]
    amount_paid_to_date: float
    progress_percentage: float


class LoanDefaultRequest(BaseModel):
    admin_notes: Optional[str] = None


class LoanPolicyResponse(BaseModel):
    category: str
    name: str
    min_amount: float
    max_amount: float
    min_duration_months: int
    max_duration_months: int
    min_membership_months: int
    savings_multiplier: float
    min_guarantors: int
    is_active: bool
    description: Optional[str] = None

    class Config:
        from_attributes = True


class ApplicationDecisionResponse(BaseModel):
    application: LoanApplicationResponse
    loan: Optional[LoanResponse] = None


def loan_with_schedule_response(data: dict) -> LoanWithScheduleResponse:
    return LoanWithScheduleResponse(
        loan=LoanResponse.model_validate(data["loan"]),
        schedule=[ScheduleEntryResponse.model_validate(entry) for entry in data["schedule"]],
        payments=[LoanPaymentResponse.model_validate(payment) for payment in data["payments"]],
        amount_paid_to_date=data["amount_paid_to_date"],
        progress_percentage=data["progress_percentage"],
    )
