from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.db.base import get_db
from app.core.audit import write_audit_log
from app.core.dependencies import CurrentUser, require_member
from app.core.exceptions import NotFoundError
from app.schemas.ledger import PeriodRecordResponse, MemberCumulativesResponse, period_record_response
from app.schemas.loan import (
    EligibilityRequest,
    EligibilityResponse,
    LoanApplicationCreate,
    LoanApplicationResponse,
    LoanResponse,
    LoanWithScheduleResponse,
    loan_with_schedule_response,
)
from app.schemas.member import MemberResponse
from app.schemas.withdrawal import WithdrawalRequestCreate, WithdrawalResponse
from app.services import ledger as ledger_service
from app.services import loan as loan_service
from app.services import policy as policy_service
from app.services import withdrawal as withdrawal_service
from app.services.member import get_member
from typing import Optional, List
from uuid import UUID

router = APIRouter(prefix="/api/member", tags=["member"])


@router.get("/profile", response_model=MemberResponse)
def get_my_profile(
    current_user: CurrentUser = Depends(require_member),
    db: Session = Depends(get_db)
):
    """My identity and cumulative balances."""
    return get_member(db, current_user.member_id)


@router.get("/ledger", response_model=PeriodRecordResponse)
def get_my_ledger_record(
    month: Optional[int] = None,
    year: Optional[int] = None,
    current_user: CurrentUser = Depends(require_member),
    db: Session = Depends(get_db)
):
    """My deductions for one period. Omit month and year for the most recent recorded period."""
    period = ledger_service.resolve_period(month, year)
    record = ledger_service.get_period_record(db, current_user.member_id, period)
    return period_record_response(record)


@router.get("/ledger/history", response_model=List[PeriodRecordResponse])
def get_my_ledger_history(
    current_user: CurrentUser = Depends(require_member),
    db: Session = Depends(get_db)
):
    records = ledger_service.get_member_history(db, current_user.member_id)
    return [period_record_response(record) for record in records]


@router.get("/cumulatives", response_model=MemberCumulativesResponse)
def get_my_cumulatives(
    current_user: CurrentUser = Depends(require_member),
    db: Session = Depends(get_db)
):
    return ledger_service.get_member_cumulatives(db, current_user.member_id)


@router.post("/loans/eligibility", response_model=EligibilityResponse)
def check_loan_eligibility(
    request: EligibilityRequest,
    current_user: CurrentUser = Depends(require_member),
    db: Session = Depends(get_db)
):
    """Advisory eligibility check; nothing is stored."""
    result = policy_service.evaluate_eligibility(
        db, current_user.member_id, request.amount, request.category, request.duration_months
    )
    return EligibilityResponse(**result._asdict())


@router.post("/loans/apply", response_model=LoanApplicationResponse, status_code=status.HTTP_201_CREATED)
def apply_for_loan(
    application_data: LoanApplicationCreate,
    current_user: CurrentUser = Depends(require_member),
    db: Session = Depends(get_db)
):
    application = loan_service.submit_application(
        db,
        member_id=current_user.member_id,
        amount=application_data.amount,
        duration_months=application_data.duration_months,
        purpose=application_data.purpose,
        category=application_data.category,
    )
    write_audit_log(
        current_user.name, current_user.role, "Loan application submitted",
        application_id=application.id, amount=application.amount, category=application.category,
    )
    return application


@router.get("/loans/applications", response_model=List[LoanApplicationResponse])
def get_my_loan_applications(
    current_user: CurrentUser = Depends(require_member),
    db: Session = Depends(get_db)
):
    return loan_service.list_applications(db, member_id=current_user.member_id)


@router.get("/loans", response_model=List[LoanResponse])
def get_my_loans(
    current_user: CurrentUser = Depends(require_member),
    db: Session = Depends(get_db)
):
    return loan_service.list_loans(db, member_id=current_user.member_id)


@router.get("/loans/{loan_id}", response_model=LoanWithScheduleResponse)
def get_my_loan(
    loan_id: UUID,
    current_user: CurrentUser = Depends(require_member),
    db: Session = Depends(get_db)
):
    """One of my loans with its repayment schedule and payments."""
    data = loan_service.get_loan_with_schedule(db, loan_id)
    if data["loan"].member_id != current_user.member_id:
        raise NotFoundError("Loan not found", code="LoanNotFound", loan_id=str(loan_id))
    return loan_with_schedule_response(data)


@router.post("/withdrawals", response_model=WithdrawalResponse, status_code=status.HTTP_201_CREATED)
def request_withdrawal(
    request_data: WithdrawalRequestCreate,
    current_user: CurrentUser = Depends(require_member),
    db: Session = Depends(get_db)
):
    """Ask to withdraw from my special savings balance."""
    request = withdrawal_service.submit_withdrawal(
        db, current_user.member_id, request_data.amount, reason=request_data.reason
    )
    write_audit_log(
        current_user.name, current_user.role, "Withdrawal requested",
        request_id=request.id, amount=request.amount,
    )
    return request


@router.get("/withdrawals", response_model=List[WithdrawalResponse])
def get_my_withdrawals(
    current_user: CurrentUser = Depends(require_member),
    db: Session = Depends(get_db)
):
    return withdrawal_service.list_withdrawals(db, member_id=current_user.member_id)
