import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    InsufficientBalanceError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.db.transaction import atomic
from app.models.member import Member
from app.models.transaction import WithdrawalRequest, WithdrawalStatus

logger = logging.getLogger(__name__)

DEFAULT_REASON = "Personal use"
DIRECT_REASON = "Admin direct withdrawal"


def _validate_amount(amount) -> Decimal:
    amount = Decimal(str(amount))
    if amount <= 0:
        raise ValidationError("Withdrawal amount must be greater than zero", code="InvalidAmount", amount=amount)
    return amount


def _normalize_decision(decision: Union[str, WithdrawalStatus]) -> WithdrawalStatus:
    value = decision.value if isinstance(decision, WithdrawalStatus) else str(decision).lower()
    if value not in (WithdrawalStatus.APPROVED.value, WithdrawalStatus.DECLINED.value):
        raise ValidationError(
            f"Invalid decision: {decision}. Must be 'approved' or 'declined'",
            code="InvalidDecision",
        )
    return WithdrawalStatus(value)


def submit_withdrawal(
    db: Session,
    member_id: UUID,
    amount: Decimal,
    reason: Optional[str] = None,
    minimum_withdrawal: Optional[Decimal] = None
) -> WithdrawalRequest:
    """
    Create a pending withdrawal request against special savings.

    The balance check here is advisory; the balance is checked again when an
    admin approves the request.
    """
    amount = _validate_amount(amount)
    minimum = Decimal(str(minimum_withdrawal if minimum_withdrawal is not None else settings.MINIMUM_WITHDRAWAL))
    if amount < minimum:
        raise ValidationError(
            f"Minimum withdrawal amount is {minimum:,.2f}",
            code="BelowMinimumWithdrawal",
            minimumWithdrawal=minimum,
            requestedAmount=amount,
        )

    member = db.query(Member).filter(Member.id == member_id).first()
    if not member:
        raise NotFoundError("Member not found", code="MemberNotFound", member_id=str(member_id))
    if amount > member.special_savings_balance:
        logger.warning(f"Withdrawal request by member {member_id} exceeds balance")
        raise InsufficientBalanceError(member.special_savings_balance, amount)

    with atomic(db):
        request = WithdrawalRequest(
            member_id=member.id,
            amount=amount,
            reason=reason or DEFAULT_REASON,
            status=WithdrawalStatus.PENDING,
            is_direct=False,
        )
        db.add(request)

    logger.info(f"Withdrawal request {request.id} submitted by member {member_id} for {amount}")
    return request


def decide_withdrawal(
    db: Session,
    request_id: UUID,
    decision: Union[str, WithdrawalStatus],
    admin_notes: Optional[str] = None,
    processed_by: Optional[str] = None
) -> WithdrawalRequest:
    """
    Approve or decline a pending request.

    Approval re-reads the member's balance under a row lock. If it no longer
    covers the amount, InsufficientBalance is raised and the request stays
    pending so it can be decided again later.
    """
    status = _normalize_decision(decision)

    with atomic(db):
        request = db.query(WithdrawalRequest).filter(
            WithdrawalRequest.id == request_id
        ).with_for_update().populate_existing().first()
        if not request:
            raise NotFoundError("Withdrawal request not found", code="WithdrawalRequestNotFound",
                                request_id=str(request_id))
        if request.status != WithdrawalStatus.PENDING:
            raise StateConflictError(
                f"Withdrawal request has already been {request.status.value}",
                code="AlreadyDecided",
                currentStatus=request.status.value,
            )

        if status == WithdrawalStatus.APPROVED:
            member = db.query(Member).filter(
                Member.id == request.member_id
            ).with_for_update().populate_existing().one()
            if request.amount > member.special_savings_balance:
                logger.warning(f"Approval of withdrawal {request_id} blocked: balance dropped below requested amount")
                raise InsufficientBalanceError(member.special_savings_balance, request.amount)
            member.special_savings_balance = member.special_savings_balance - request.amount

        request.status = status
        request.processed_at = datetime.utcnow()
        request.processed_by = processed_by
        if admin_notes is not None:
            request.admin_notes = admin_notes

    logger.info(f"Withdrawal request {request_id} {status.value} by {processed_by or 'admin'}")
    return request


def direct_withdrawal(
    db: Session,
    member_id: UUID,
    amount: Decimal,
    reason: Optional[str] = None,
    processed_by: Optional[str] = None
) -> WithdrawalRequest:
    """Admin withdrawal on a member's behalf: debit now, record as already approved."""
    amount = _validate_amount(amount)

    with atomic(db):
        member = db.query(Member).filter(Member.id == member_id).with_for_update().populate_existing().first()
        if not member:
            raise NotFoundError("Member not found", code="MemberNotFound", member_id=str(member_id))
        if amount > member.special_savings_balance:
            raise InsufficientBalanceError(member.special_savings_balance, amount)

        member.special_savings_balance = member.special_savings_balance - amount
        now = datetime.utcnow()
        request = WithdrawalRequest(
            member_id=member.id,
            amount=amount,
            reason=reason or DIRECT_REASON,
            status=WithdrawalStatus.APPROVED,
            is_direct=True,
            processed_at=now,
            processed_by=processed_by,
        )
        db.add(request)

    logger.info(f"Direct withdrawal of {amount} for member {member_id} by {processed_by or 'admin'}")
    return request


def list_withdrawals(
    db: Session,
    status: Optional[WithdrawalStatus] = None,
    member_id: Optional[UUID] = None
) -> List[WithdrawalRequest]:
    query = db.query(WithdrawalRequest)
    if status is not None:
        query = query.filter(WithdrawalRequest.status == status)
    if member_id is not None:
        query = query.filter(WithdrawalRequest.member_id == member_id)
    return query.order_by(WithdrawalRequest.created_at.desc()).all()
