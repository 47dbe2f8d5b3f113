"""Loan lifecycle: applications, approval, schedules, repayments.

Application: pending -> approved | declined
Loan:        active -> completed (balance reaches 0) | defaulted (admin override)

Loans are interest-free; each installment is a share of the principal.
"""
import calendar
import logging
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    NotFoundError,
    PolicyViolationError,
    StateConflictError,
    ValidationError,
)
from app.db.transaction import atomic
from app.models.member import Member
from app.models.transaction import (
    Loan,
    LoanApplication,
    LoanApplicationStatus,
    LoanPayment,
    LoanScheduleEntry,
    LoanStatus,
)
from app.services import ledger as ledger_service
from app.services import policy as policy_service

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def calculate_monthly_payment(amount: Decimal, months: int) -> Decimal:
    """Simple division, no interest."""
    return (Decimal(str(amount)) / months).quantize(CENT, rounding=ROUND_HALF_UP)


def add_months(start: date, months: int) -> date:
    """Calendar month arithmetic; the day is clamped to the target month's last day."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def generate_schedule(principal: Decimal, months: int, start_date: date) -> List[Dict[str, Any]]:
    """
    Build the repayment schedule for an interest-free loan.

    Installments 1..months-1 are round(principal / months, 2); the last one is
    whatever balance remains, so the installments sum exactly to the principal.
    Due dates are start_date + i months.
    """
    principal = Decimal(str(principal)).quantize(CENT, rounding=ROUND_HALF_UP)
    if months < 1:
        raise ValidationError("Duration must be at least 1 month", code="InvalidDuration", duration_months=months)

    installment = calculate_monthly_payment(principal, months)
    remaining = principal
    schedule = []
    for number in range(1, months + 1):
        if number == months:
            amount = remaining
        else:
            amount = min(installment, remaining)
        remaining -= amount
        schedule.append({
            "installment_number": number,
            "due_date": add_months(start_date, number),
            "principal_amount": amount,
            "remaining_balance_after": remaining,
        })
    return schedule


def _normalize_decision(decision: Union[str, LoanApplicationStatus]) -> LoanApplicationStatus:
    value = decision.value if isinstance(decision, LoanApplicationStatus) else str(decision).lower()
    if value not in (LoanApplicationStatus.APPROVED.value, LoanApplicationStatus.DECLINED.value):
        raise ValidationError(
            f"Invalid decision: {decision}. Must be 'approved' or 'declined'",
            code="InvalidDecision",
        )
    return LoanApplicationStatus(value)


def submit_application(
    db: Session,
    member_id: UUID,
    amount: Decimal,
    duration_months: int,
    purpose: Optional[str] = None,
    category: Optional[str] = None,
    as_of: Optional[date] = None
) -> LoanApplication:
    """Run the eligibility check and, if it passes, store a pending application."""
    amount = Decimal(str(amount))
    category = category or settings.DEFAULT_LOAN_CATEGORY
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Loan amount must be greater than zero", code="InvalidAmount", amount=str(amount))
    # Application, loan and schedule all carry the stored (cent) principal.
    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if duration_months < 1:
        raise ValidationError(
            "Duration must be at least 1 month", code="InvalidDuration", duration_months=duration_months
        )

    result = policy_service.evaluate_eligibility(db, member_id, amount, category, duration_months, as_of=as_of)
    if result.reason == "MemberNotFound":
        raise NotFoundError(result.message, code="MemberNotFound", member_id=str(member_id))
    if not result.eligible:
        logger.warning(f"Loan application refused for member {member_id}: {result.reason}")
        raise PolicyViolationError(result.message, code="IneligibleApplication", **result.as_details())

    with atomic(db):
        application = LoanApplication(
            member_id=member_id,
            amount=amount,
            duration_months=duration_months,
            purpose=purpose,
            category=category,
            monthly_payment=calculate_monthly_payment(amount, duration_months),
            status=LoanApplicationStatus.PENDING,
        )
        db.add(application)

    logger.info(f"Loan application {application.id} submitted by member {member_id} for {amount}")
    return application


def _create_loan(db: Session, application: LoanApplication, start_date: date, admin_notes: Optional[str]) -> Loan:
    schedule = generate_schedule(application.amount, application.duration_months, start_date)
    loan = Loan(
        application_id=application.id,
        member_id=application.member_id,
        active_member_id=application.member_id,
        amount=application.amount,
        remaining_balance=application.amount,
        total_paid=ZERO,
        monthly_payment=application.monthly_payment,
        duration_months=application.duration_months,
        category=application.category,
        purpose=application.purpose,
        status=LoanStatus.ACTIVE,
        start_date=start_date,
        expected_end_date=add_months(start_date, application.duration_months),
        next_due_date=schedule[0]["due_date"],
        admin_notes=admin_notes,
    )
    loan.schedule = [LoanScheduleEntry(**entry) for entry in schedule]
    db.add(loan)
    return loan


def decide_application(
    db: Session,
    application_id: UUID,
    decision: Union[str, LoanApplicationStatus],
    decided_by: Optional[str] = None,
    admin_notes: Optional[str] = None,
    start_date: Optional[date] = None
) -> LoanApplication:
    """
    Approve or decline a pending application.

    Approval creates the loan and its full schedule in the same transaction,
    after re-checking (with the member row locked) that no other loan became
    active since the application was submitted.
    """
    status = _normalize_decision(decision)

    with atomic(db):
        application = db.query(LoanApplication).filter(
            LoanApplication.id == application_id
        ).with_for_update().populate_existing().first()
        if not application:
            raise NotFoundError("Loan application not found", code="ApplicationNotFound",
                                application_id=str(application_id))
        if application.status != LoanApplicationStatus.PENDING:
            raise StateConflictError(
                f"Application has already been {application.status.value}",
                code="AlreadyDecided",
                currentStatus=application.status.value,
            )

        if status == LoanApplicationStatus.APPROVED:
            db.query(Member).filter(Member.id == application.member_id).with_for_update().one()
            active_count, outstanding = policy_service.get_active_loan_exposure(db, application.member_id)
            if active_count > 0:
                logger.warning(f"Approval of application {application.id} blocked: member already has an active loan")
                raise PolicyViolationError(
                    "Member already has an active loan",
                    code="ActiveLoanExists",
                    member_id=str(application.member_id),
                    activeLoanCount=active_count,
                    outstandingBalance=outstanding,
                )
            _create_loan(db, application, start_date or date.today(), admin_notes)

        application.status = status
        application.decided_at = datetime.utcnow()
        application.decided_by = decided_by
        if admin_notes is not None:
            application.admin_notes = admin_notes

    logger.info(f"Loan application {application_id} {status.value} by {decided_by or 'admin'}")
    return application


def _next_due_date(loan: Loan, balance: Decimal) -> Optional[date]:
    """Due date of the first installment the balance has not yet covered."""
    for entry in loan.schedule:
        if entry.remaining_balance_after < balance:
            return entry.due_date
    return loan.schedule[-1].due_date if loan.schedule else None


def record_payment(
    db: Session,
    loan_id: UUID,
    amount: Decimal,
    month: int,
    year: int,
    payment_date: Optional[date] = None,
    recorded_by: Optional[str] = None
) -> LoanPayment:
    """
    Apply a repayment to a loan and to the ledger row of the declared period.

    The loan balance floors at zero, but the ledger's loan_repayment is
    credited with the full amount paid, overpayment included.
    """
    amount = Decimal(str(amount))
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero", code="InvalidAmount", amount=amount)
    period = ledger_service.validate_period(month, year)

    with atomic(db):
        loan = db.query(Loan).filter(Loan.id == loan_id).with_for_update().populate_existing().first()
        if not loan:
            raise NotFoundError("Loan not found", code="LoanNotFound", loan_id=str(loan_id))
        if loan.status != LoanStatus.ACTIVE:
            raise StateConflictError(
                f"Loan is {loan.status.value}, payments are only accepted on active loans",
                code="LoanNotActive",
                currentStatus=loan.status.value,
            )

        new_balance = max(ZERO, loan.remaining_balance - amount)
        loan.remaining_balance = new_balance
        loan.total_paid = (loan.total_paid or ZERO) + amount
        if new_balance == ZERO:
            loan.status = LoanStatus.COMPLETED
            loan.completed_at = datetime.utcnow()
            loan.active_member_id = None
            loan.next_due_date = None
        else:
            loan.next_due_date = _next_due_date(loan, new_balance)

        payment = LoanPayment(
            loan_id=loan.id,
            amount=amount,
            month=period.month,
            year=period.year,
            payment_date=payment_date or date.today(),
            recorded_by=recorded_by,
        )
        db.add(payment)

        ledger_service.apply_delta(db, loan.member_id, period.month, period.year, {"loan_repayment": amount})

    logger.info(
        f"Payment of {amount} recorded on loan {loan_id} for {period.month}/{period.year}; "
        f"remaining balance {new_balance}"
    )
    if new_balance == ZERO:
        logger.info(f"Loan {loan_id} completed")
    return payment


def mark_loan_defaulted(db: Session, loan_id: UUID, admin_notes: Optional[str] = None) -> Loan:
    """Admin override: active -> defaulted."""
    with atomic(db):
        loan = db.query(Loan).filter(Loan.id == loan_id).with_for_update().populate_existing().first()
        if not loan:
            raise NotFoundError("Loan not found", code="LoanNotFound", loan_id=str(loan_id))
        if loan.status != LoanStatus.ACTIVE:
            raise StateConflictError(
                f"Only active loans can be marked as defaulted (loan is {loan.status.value})",
                code="LoanNotActive",
                currentStatus=loan.status.value,
            )
        loan.status = LoanStatus.DEFAULTED
        loan.active_member_id = None
        loan.next_due_date = None
        if admin_notes is not None:
            loan.admin_notes = admin_notes

    logger.warning(f"Loan {loan_id} marked as defaulted")
    return loan


def get_loan_with_schedule(db: Session, loan_id: UUID) -> Dict[str, Any]:
    loan = db.query(Loan).filter(Loan.id == loan_id).first()
    if not loan:
        raise NotFoundError("Loan not found", code="LoanNotFound", loan_id=str(loan_id))

    paid = loan.total_paid or ZERO
    progress = min(Decimal("100"), paid / loan.amount * 100) if loan.amount else ZERO
    return {
        "loan": loan,
        "schedule": list(loan.schedule),
        "payments": list(loan.payments),
        "amount_paid_to_date": paid,
        "progress_percentage": progress.quantize(CENT, rounding=ROUND_HALF_UP),
    }


def list_applications(
    db: Session,
    status: Optional[LoanApplicationStatus] = None,
    member_id: Optional[UUID] = None
) -> List[LoanApplication]:
    query = db.query(LoanApplication)
    if status is not None:
        query = query.filter(LoanApplication.status == status)
    if member_id is not None:
        query = query.filter(LoanApplication.member_id == member_id)
    return query.order_by(LoanApplication.created_at.desc()).all()


def list_loans(
    db: Session,
    status: Optional[LoanStatus] = None,
    member_id: Optional[UUID] = None
) -> List[Loan]:
    query = db.query(Loan)
    if status is not None:
        query = query.filter(Loan.status == status)
    if member_id is not None:
        query = query.filter(Loan.member_id == member_id)
    return query.order_by(Loan.created_at.desc()).all()


def get_active_loans_report(db: Session) -> Dict[str, Any]:
    """Outstanding balances of every active loan, with totals."""
    rows = db.query(Loan, Member).join(Member, Loan.member_id == Member.id).filter(
        Loan.status == LoanStatus.ACTIVE
    ).order_by(Member.surname, Member.first_name).all()

    loans = []
    total_disbursed = ZERO
    total_outstanding = ZERO
    for loan, member in rows:
        total_disbursed += loan.amount
        total_outstanding += loan.remaining_balance
        loans.append({
            "loan_id": loan.id,
            "member_id": member.id,
            "member_number": member.member_number,
            "member_name": member.full_name,
            "category": loan.category,
            "amount": loan.amount,
            "remaining_balance": loan.remaining_balance,
            "total_paid": loan.total_paid,
            "monthly_payment": loan.monthly_payment,
            "next_due_date": loan.next_due_date,
        })

    return {
        "count": len(loans),
        "total_disbursed": total_disbursed,
        "total_outstanding": total_outstanding,
        "loans": loans,
    }
