import logging
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, NamedTuple, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, and_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.transaction import atomic
from app.models.ledger import PeriodLedgerRecord
from app.models.member import Member
from app.models.policy import LoanPolicy
from app.models.transaction import Loan, LoanStatus

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class EligibilityResult(NamedTuple):
    eligible: bool
    reason: str
    message: str
    max_eligible_amount: Decimal = ZERO
    required_guarantors: int = 0
    savings_balance: Decimal = ZERO
    membership_months: Optional[int] = None
    active_loan_count: int = 0
    outstanding_balance: Decimal = ZERO

    def as_details(self) -> dict:
        """Boundary values attached to a refused application."""
        details = {
            "reason": self.reason,
            "maxEligibleAmount": self.max_eligible_amount,
            "requiredGuarantors": self.required_guarantors,
            "savingsBalance": self.savings_balance,
            "membershipMonths": self.membership_months,
        }
        if self.active_loan_count:
            details["activeLoanCount"] = self.active_loan_count
            details["outstandingBalance"] = self.outstanding_balance
        return details


def get_loan_policy(db: Session, category: str) -> Optional[LoanPolicy]:
    """Active policy for a loan category, or None."""
    return db.query(LoanPolicy).filter(
        LoanPolicy.category == category,
        LoanPolicy.is_active == True  # noqa: E712
    ).first()


def list_loan_policies(db: Session, active_only: bool = True) -> List[LoanPolicy]:
    query = db.query(LoanPolicy)
    if active_only:
        query = query.filter(LoanPolicy.is_active == True)  # noqa: E712
    return query.order_by(LoanPolicy.min_amount).all()


def get_total_savings(db: Session, member_id: UUID, as_of: Optional[date] = None) -> Decimal:
    """Regular + special savings accumulated in the ledger up to and including the as_of month."""
    as_of = as_of or date.today()
    total = db.query(
        func.coalesce(func.sum(PeriodLedgerRecord.regular_savings + PeriodLedgerRecord.special_savings), 0)
    ).filter(
        PeriodLedgerRecord.member_id == member_id,
        or_(
            PeriodLedgerRecord.year < as_of.year,
            and_(PeriodLedgerRecord.year == as_of.year, PeriodLedgerRecord.month <= as_of.month),
        )
    ).scalar()
    return Decimal(str(total)).quantize(CENT)


def get_active_loan_exposure(db: Session, member_id: UUID) -> Tuple[int, Decimal]:
    """Number of active loans and their total outstanding balance."""
    count, outstanding = db.query(
        func.count(Loan.id),
        func.coalesce(func.sum(Loan.remaining_balance), 0),
    ).filter(
        Loan.member_id == member_id,
        Loan.status == LoanStatus.ACTIVE
    ).one()
    return count, Decimal(str(outstanding)).quantize(CENT)


def calculate_membership_months(created_at: datetime, as_of: Optional[date] = None) -> int:
    """Whole months of membership, using an average month length."""
    as_of = as_of or date.today()
    joined = created_at.date() if isinstance(created_at, datetime) else created_at
    days = (as_of - joined).days
    return max(0, int(days / settings.DAYS_PER_MONTH))


def evaluate_eligibility(
    db: Session,
    member_id: UUID,
    amount: Decimal,
    category: str,
    duration_months: int,
    as_of: Optional[date] = None
) -> EligibilityResult:
    """
    Decide whether a member may borrow `amount` over `duration_months`.

    Checks, in order, stopping at the first failure:
    1. member exists
    2. active policy exists for the category
    3. membership age >= policy minimum
    4. amount within policy min/max
    5. duration <= policy maximum
    6. amount <= total savings x policy multiplier
    7. no active loan
    """
    amount = Decimal(str(amount))
    as_of = as_of or date.today()

    member = db.query(Member).filter(Member.id == member_id).first()
    if not member:
        return EligibilityResult(False, "MemberNotFound", "Member not found")

    savings = get_total_savings(db, member.id, as_of)

    policy = get_loan_policy(db, category)
    if not policy:
        return EligibilityResult(
            False, "InvalidCategory", f"Invalid or inactive loan category: {category}",
            savings_balance=savings,
        )

    membership_months = calculate_membership_months(member.created_at, as_of)
    savings_limit = (savings * policy.savings_multiplier).quantize(CENT, rounding=ROUND_HALF_UP)
    max_eligible = max(ZERO, min(policy.max_amount, savings_limit))

    def refuse(reason: str, message: str, **extra) -> EligibilityResult:
        logger.debug(f"Member {member.id} ineligible for {category} loan of {amount}: {reason}")
        return EligibilityResult(
            False, reason, message,
            max_eligible_amount=max_eligible,
            required_guarantors=policy.min_guarantors,
            savings_balance=savings,
            membership_months=membership_months,
            **extra,
        )

    if membership_months < policy.min_membership_months:
        return refuse(
            "MembershipTooShort",
            f"Minimum membership period of {policy.min_membership_months} months required "
            f"(current: {membership_months} months)",
        )

    if amount < policy.min_amount or amount > policy.max_amount:
        return refuse(
            "AmountOutOfRange",
            f"Loan amount must be between {policy.min_amount:,.2f} and {policy.max_amount:,.2f}",
        )

    if duration_months > policy.max_duration_months:
        return refuse(
            "DurationTooLong",
            f"Maximum duration for {policy.name} is {policy.max_duration_months} months",
        )

    if amount > savings_limit:
        return refuse(
            "ExceedsSavingsMultiple",
            f"Loan amount exceeds {policy.savings_multiplier}x your savings. "
            f"Maximum eligible amount: {max_eligible:,.2f}",
        )

    active_count, outstanding = get_active_loan_exposure(db, member.id)
    if active_count > 0:
        return refuse(
            "ActiveLoanExists",
            f"You already have an active loan with {outstanding:,.2f} outstanding. "
            f"Complete it before applying again.",
            active_loan_count=active_count,
            outstanding_balance=outstanding,
        )

    return EligibilityResult(
        True, "Eligible", "Eligible for loan",
        max_eligible_amount=max_eligible,
        required_guarantors=policy.min_guarantors,
        savings_balance=savings,
        membership_months=membership_months,
    )


DEFAULT_LOAN_POLICIES = [
    {
        "category": "standard",
        "name": "Standard Loan",
        "min_amount": Decimal("50000.00"),
        "max_amount": Decimal("500000.00"),
        "min_duration_months": 6,
        "max_duration_months": 36,
        "min_membership_months": 6,
        "savings_multiplier": Decimal("2.00"),
        "min_guarantors": 0,
        "description": "General purpose loan. No active loans allowed.",
    },
    {
        "category": "business",
        "name": "Business Loan",
        "min_amount": Decimal("100000.00"),
        "max_amount": Decimal("1000000.00"),
        "min_duration_months": 12,
        "max_duration_months": 48,
        "min_membership_months": 12,
        "savings_multiplier": Decimal("2.00"),
        "min_guarantors": 2,
        "description": "Business plan required.",
    },
    {
        "category": "festival",
        "name": "Festival Loan",
        "min_amount": Decimal("25000.00"),
        "max_amount": Decimal("200000.00"),
        "min_duration_months": 3,
        "max_duration_months": 12,
        "min_membership_months": 3,
        "savings_multiplier": Decimal("2.00"),
        "min_guarantors": 0,
        "description": "Short-term festival loan.",
    },
]


def seed_loan_policies(db: Session) -> int:
    """Insert the default policies that are missing. Returns how many were added."""
    added = 0
    with atomic(db):
        for policy_data in DEFAULT_LOAN_POLICIES:
            existing = db.query(LoanPolicy).filter(LoanPolicy.category == policy_data["category"]).first()
            if not existing:
                db.add(LoanPolicy(is_active=True, **policy_data))
                added += 1
    if added:
        logger.info(f"Seeded {added} loan policies")
    return added
