from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.db.base import get_db
from app.db.transaction import retry_on_conflict
from app.core.audit import write_audit_log
from app.core.dependencies import CurrentUser, require_admin
from app.models.transaction import LoanApplicationStatus, LoanStatus, WithdrawalStatus
from app.schemas.ledger import (
    BookDeductionsRequest,
    BookDeductionsResponse,
    LedgerAbsoluteRequest,
    LedgerDeltaRequest,
    MemberCumulativesResponse,
    PeriodRecordResponse,
    PeriodRequest,
    PeriodSummaryResponse,
    period_record_response,
)
from app.schemas.loan import (
    ApplicationDecisionResponse,
    DecisionRequest,
    LoanApplicationResponse,
    LoanDefaultRequest,
    LoanPaymentCreate,
    LoanPaymentResponse,
    LoanPolicyResponse,
    LoanResponse,
    LoanWithScheduleResponse,
    PaymentResult,
    loan_with_schedule_response,
)
from app.schemas.member import (
    CumulativeSavingsReport,
    MemberBalancesUpdate,
    MemberCreate,
    MemberDeletedResponse,
    MemberResponse,
    MemberUpdate,
)
from app.schemas.withdrawal import DirectWithdrawalCreate, WithdrawalDecision, WithdrawalResponse
from app.services import ledger as ledger_service
from app.services import loan as loan_service
from app.services import member as member_service
from app.services import policy as policy_service
from app.services import withdrawal as withdrawal_service
from typing import Optional, List
from uuid import UUID

router = APIRouter(prefix="/api/admin", tags=["admin"])


# Members

@router.post("/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def create_member(
    member_data: MemberCreate,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    member = member_service.create_member(db, **member_data.model_dump())
    write_audit_log(current_user.name, current_user.role, "Member created", member_number=member.member_number)
    return member


@router.get("/members", response_model=List[MemberResponse])
def list_members(
    search: Optional[str] = None,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return member_service.list_members(db, search=search)


@router.get("/members/by-number/{member_number}", response_model=MemberResponse)
def get_member_by_number(
    member_number: str,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return member_service.get_member_by_number(db, member_number)


@router.get("/members/{member_id}", response_model=MemberResponse)
def get_member(
    member_id: UUID,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return member_service.get_member(db, member_id)


@router.put("/members/{member_id}", response_model=MemberResponse)
def update_member(
    member_id: UUID,
    member_data: MemberUpdate,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    changes = member_data.model_dump(exclude_none=True)
    member = member_service.update_member(db, member_id, **changes)
    write_audit_log(
        current_user.name, current_user.role, "Member updated",
        ", ".join(sorted(changes)), member_number=member.member_number,
    )
    return member


@router.delete("/members/{member_id}", response_model=MemberDeletedResponse)
def delete_member(
    member_id: UUID,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Delete a member and their records. Refused while any loan is active."""
    member_number = member_service.delete_member(db, member_id)
    write_audit_log(current_user.name, current_user.role, "Member deleted", member_number=member_number)
    return MemberDeletedResponse(message="Member deleted successfully", member_number=member_number)


@router.put("/members/{member_id}/balances", response_model=MemberResponse)
def update_member_balances(
    member_id: UUID,
    balances: MemberBalancesUpdate,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Correct cumulative figures (absolute values)."""
    values = balances.model_dump(exclude_none=True)
    member = member_service.update_member_balances(db, member_id, **values)
    write_audit_log(
        current_user.name, current_user.role, "Member balances updated",
        ", ".join(f"{key}={value}" for key, value in values.items()), member_id=member_id,
    )
    return member


# Period ledger

@router.get("/members/{member_id}/ledger", response_model=PeriodRecordResponse)
def get_member_ledger_record(
    member_id: UUID,
    month: Optional[int] = None,
    year: Optional[int] = None,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    period = ledger_service.resolve_period(month, year)
    return period_record_response(ledger_service.get_period_record(db, member_id, period))


@router.post("/members/{member_id}/ledger", response_model=PeriodRecordResponse)
def open_member_ledger_record(
    member_id: UUID,
    period: PeriodRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Get or create the member's row for a period."""
    record = retry_on_conflict(
        lambda: ledger_service.get_or_create_period_record(db, member_id, period.month, period.year)
    )
    return period_record_response(record)


@router.post("/members/{member_id}/ledger/delta", response_model=PeriodRecordResponse)
def apply_member_ledger_delta(
    member_id: UUID,
    request: LedgerDeltaRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    record = ledger_service.apply_delta(db, member_id, request.month, request.year, request.deltas)
    write_audit_log(
        current_user.name, current_user.role, "Ledger delta applied",
        str(request.deltas.model_dump(exclude_none=True)), member_id=member_id, period=f"{request.month}/{request.year}",
    )
    return period_record_response(record)


@router.put("/members/{member_id}/ledger", response_model=PeriodRecordResponse)
def set_member_ledger_values(
    member_id: UUID,
    request: LedgerAbsoluteRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    record = ledger_service.set_absolute(db, member_id, request.month, request.year, request.values)
    write_audit_log(
        current_user.name, current_user.role, "Ledger values set",
        str(request.values.model_dump(exclude_none=True)), member_id=member_id, period=f"{request.month}/{request.year}",
    )
    return period_record_response(record)


@router.get("/members/{member_id}/ledger/history", response_model=List[PeriodRecordResponse])
def get_member_ledger_history(
    member_id: UUID,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return [period_record_response(record) for record in ledger_service.get_member_history(db, member_id)]


@router.get("/members/{member_id}/cumulatives", response_model=MemberCumulativesResponse)
def get_member_cumulatives(
    member_id: UUID,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return ledger_service.get_member_cumulatives(db, member_id)


@router.post("/ledger/book", response_model=BookDeductionsResponse)
def book_deductions(
    request: BookDeductionsRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Enter one month's deductions for many members at once."""
    count = retry_on_conflict(
        lambda: ledger_service.book_deductions(db, request.month, request.year, request.entries)
    )
    write_audit_log(
        current_user.name, current_user.role, "Monthly deductions booked",
        period=f"{request.month}/{request.year}", members=count,
    )
    return BookDeductionsResponse(month=request.month, year=request.year, members_booked=count)


@router.get("/ledger/summary", response_model=PeriodSummaryResponse)
def get_period_summary(
    month: int,
    year: int,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return ledger_service.get_period_summary(db, month, year)


# Loans

@router.get("/loan-policies", response_model=List[LoanPolicyResponse])
def list_loan_policies(
    active_only: bool = True,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return policy_service.list_loan_policies(db, active_only=active_only)


@router.get("/loan-applications", response_model=List[LoanApplicationResponse])
def list_loan_applications(
    status: Optional[LoanApplicationStatus] = None,
    member_id: Optional[UUID] = None,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return loan_service.list_applications(db, status=status, member_id=member_id)


@router.put("/loan-applications/{application_id}/decision", response_model=ApplicationDecisionResponse)
def decide_loan_application(
    application_id: UUID,
    decision: DecisionRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Approve (creates the loan and its schedule) or decline a pending application."""
    application = loan_service.decide_application(
        db,
        application_id,
        decision.status,
        decided_by=current_user.name,
        admin_notes=decision.admin_notes,
    )
    write_audit_log(
        current_user.name, current_user.role, f"Loan application {application.status.value}",
        decision.admin_notes or "", application_id=application.id, amount=application.amount,
    )
    return ApplicationDecisionResponse(
        application=LoanApplicationResponse.model_validate(application),
        loan=LoanResponse.model_validate(application.loan) if application.loan else None,
    )


@router.get("/loans", response_model=List[LoanResponse])
def list_loans(
    status: Optional[LoanStatus] = None,
    member_id: Optional[UUID] = None,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return loan_service.list_loans(db, status=status, member_id=member_id)


@router.get("/loans/{loan_id}", response_model=LoanWithScheduleResponse)
def get_loan(
    loan_id: UUID,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return loan_with_schedule_response(loan_service.get_loan_with_schedule(db, loan_id))


@router.post("/loans/{loan_id}/payments", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
def record_loan_payment(
    loan_id: UUID,
    payment_data: LoanPaymentCreate,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Record a repayment against the declared ledger month/year."""
    payment = loan_service.record_payment(
        db,
        loan_id,
        payment_data.amount,
        payment_data.month,
        payment_data.year,
        payment_date=payment_data.payment_date,
        recorded_by=current_user.name,
    )
    write_audit_log(
        current_user.name, current_user.role, "Loan payment recorded",
        loan_id=loan_id, amount=payment.amount, period=f"{payment.month}/{payment.year}",
    )
    return PaymentResult(
        payment=LoanPaymentResponse.model_validate(payment),
        loan=LoanResponse.model_validate(payment.loan),
    )


@router.put("/loans/{loan_id}/default", response_model=LoanResponse)
def mark_loan_defaulted(
    loan_id: UUID,
    request: LoanDefaultRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    loan = loan_service.mark_loan_defaulted(db, loan_id, admin_notes=request.admin_notes)
    write_audit_log(current_user.name, current_user.role, "Loan marked defaulted", request.admin_notes or "", loan_id=loan_id)
    return loan


@router.get("/reports/active-loans")
def get_active_loans_report(
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return loan_service.get_active_loans_report(db)


@router.get("/reports/cumulative-savings", response_model=CumulativeSavingsReport)
def get_cumulative_savings_report(
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return member_service.get_cumulative_savings_report(db)


# Withdrawals

@router.get("/withdrawals", response_model=List[WithdrawalResponse])
def list_withdrawals(
    status: Optional[WithdrawalStatus] = None,
    member_id: Optional[UUID] = None,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return withdrawal_service.list_withdrawals(db, status=status, member_id=member_id)


@router.put("/withdrawals/{request_id}/decision", response_model=WithdrawalResponse)
def decide_withdrawal(
    request_id: UUID,
    decision: WithdrawalDecision,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    request = withdrawal_service.decide_withdrawal(
        db, request_id, decision.status, admin_notes=decision.admin_notes, processed_by=current_user.name
    )
    write_audit_log(
        current_user.name, current_user.role, f"Withdrawal {request.status.value}",
        decision.admin_notes or "", request_id=request.id, amount=request.amount,
    )
    return request


@router.post("/withdrawals/direct", response_model=WithdrawalResponse, status_code=status.HTTP_201_CREATED)
def create_direct_withdrawal(
    withdrawal_data: DirectWithdrawalCreate,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Withdraw on a member's behalf without a pending request."""
    request = withdrawal_service.direct_withdrawal(
        db,
        withdrawal_data.member_id,
        withdrawal_data.amount,
        reason=withdrawal_data.reason,
        processed_by=current_user.name,
    )
    write_audit_log(
        current_user.name, current_user.role, "Direct withdrawal",
        member_id=withdrawal_data.member_id, amount=request.amount,
    )
    return request
