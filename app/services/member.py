import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, PolicyViolationError, StateConflictError, ValidationError
from app.db.transaction import atomic
from app.models.member import Member
from app.models.transaction import Loan, LoanStatus

logger = logging.getLogger(__name__)

CUMULATIVE_FIELDS = (
    "cumulative_savings",
    "cumulative_shares",
    "cumulative_investment",
    "special_savings_balance",
)

PROFILE_FIELDS = ("first_name", "surname", "email", "phone")


def _check_balances(values: dict) -> dict:
    unknown = sorted(set(values) - set(CUMULATIVE_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown balance field(s): {', '.join(unknown)}", code="InvalidAmount", fields=unknown)
    checked = {}
    for field, value in values.items():
        if value is None:
            continue
        value = Decimal(str(value))
        if value < 0:
            raise ValidationError(f"{field} cannot be negative", code="InvalidAmount", field=field)
        checked[field] = value
    return checked


def create_member(
    db: Session,
    member_number: str,
    first_name: str,
    surname: str,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    **opening_balances
) -> Member:
    """Create a member with optional opening cumulative balances."""
    balances = _check_balances(opening_balances)

    existing = db.query(Member).filter(
        or_(Member.member_number == member_number, Member.email == email) if email
        else Member.member_number == member_number
    ).first()
    if existing:
        raise StateConflictError(
            "A member with this member number or email already exists",
            code="DuplicateMember",
            member_number=member_number,
        )

    with atomic(db):
        member = Member(
            member_number=member_number,
            first_name=first_name,
            surname=surname,
            email=email,
            phone=phone,
            **{field: balances.get(field, Decimal("0.00")) for field in CUMULATIVE_FIELDS},
        )
        db.add(member)

    logger.info(f"Created member {member_number}")
    return member


def get_member(db: Session, member_id: UUID) -> Member:
    member = db.query(Member).filter(Member.id == member_id).first()
    if not member:
        raise NotFoundError("Member not found", code="MemberNotFound", member_id=str(member_id))
    return member


def get_member_by_number(db: Session, member_number: str) -> Member:
    member = db.query(Member).filter(Member.member_number == member_number).first()
    if not member:
        raise NotFoundError("Member not found", code="MemberNotFound", member_number=member_number)
    return member


def list_members(db: Session, search: Optional[str] = None) -> List[Member]:
    query = db.query(Member)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Member.member_number.ilike(pattern),
            Member.first_name.ilike(pattern),
            Member.surname.ilike(pattern),
            Member.email.ilike(pattern),
        ))
    return query.order_by(Member.surname, Member.first_name).all()


def update_member_balances(db: Session, member_id: UUID, **values) -> Member:
    """Admin correction of cumulative figures. Values are absolute, not deltas."""
    balances = _check_balances(values)

    with atomic(db):
        member = db.query(Member).filter(Member.id == member_id).with_for_update().populate_existing().first()
        if not member:
            raise NotFoundError("Member not found", code="MemberNotFound", member_id=str(member_id))
        for field, value in balances.items():
            setattr(member, field, value)

    logger.info(f"Updated balances for member {member_id}: {', '.join(sorted(balances)) or 'no changes'}")
    return member


def update_member(db: Session, member_id: UUID, **details) -> Member:
    """Change name or contact details. Omitted (None) fields are left as they are."""
    unknown = sorted(set(details) - set(PROFILE_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown member field(s): {', '.join(unknown)}", fields=unknown)
    changes = {field: value for field, value in details.items() if value is not None}

    with atomic(db):
        member = db.query(Member).filter(Member.id == member_id).with_for_update().populate_existing().first()
        if not member:
            raise NotFoundError("Member not found", code="MemberNotFound", member_id=str(member_id))

        email = changes.get("email")
        if email and email != member.email:
            taken = db.query(Member).filter(Member.email == email, Member.id != member.id).first()
            if taken:
                raise StateConflictError(
                    "A member with this email already exists",
                    code="DuplicateMember",
                    email=email,
                )
        for field, value in changes.items():
            setattr(member, field, value)

    logger.info(f"Updated member {member.member_number}: {', '.join(sorted(changes)) or 'no changes'}")
    return member


def delete_member(db: Session, member_id: UUID) -> str:
    """
    Remove a member together with their ledger rows, applications, loans and
    withdrawal requests.

    Refused while the member still has an active loan; the refusal lists the
    outstanding loans. Returns the deleted member's number.
    """
    with atomic(db):
        member = db.query(Member).filter(Member.id == member_id).with_for_update().populate_existing().first()
        if not member:
            raise NotFoundError("Member not found", code="MemberNotFound", member_id=str(member_id))

        active_loans = db.query(Loan).filter(
            Loan.member_id == member.id,
            Loan.status == LoanStatus.ACTIVE
        ).all()
        if active_loans:
            logger.warning(f"Refused to delete member {member.member_number}: {len(active_loans)} active loan(s)")
            raise PolicyViolationError(
                f'Cannot delete member "{member.full_name}" because they have {len(active_loans)} active loan(s). '
                f"Complete or default all loans before deleting this member.",
                code="ActiveLoanExists",
                memberName=member.full_name,
                memberNumber=member.member_number,
                activeLoanCount=len(active_loans),
                outstandingBalance=sum((loan.remaining_balance for loan in active_loans), Decimal("0.00")),
                loans=[
                    {
                        "id": str(loan.id),
                        "amount": loan.amount,
                        "remainingBalance": loan.remaining_balance,
                        "purpose": loan.purpose,
                    }
                    for loan in active_loans
                ],
            )

        member_number = member.member_number
        db.delete(member)

    logger.info(f"Deleted member {member_number}")
    return member_number


def get_cumulative_savings_report(db: Session) -> Dict[str, Any]:
    """Running totals for every member, plus column totals."""
    rows = []
    for number, member in enumerate(list_members(db), start=1):
        rows.append({
            "serial_number": number,
            "member_id": member.id,
            "member_number": member.member_number,
            "member_name": member.full_name,
            "regular_savings": member.cumulative_savings,
            "shares": member.cumulative_shares,
            "investment": member.cumulative_investment,
            "special_savings": member.special_savings_balance,
            "total_savings": member.cumulative_savings + member.cumulative_shares + member.cumulative_investment,
        })

    def column_total(key):
        return sum((row[key] for row in rows), Decimal("0.00"))

    return {
        "total_members": len(rows),
        "total_savings": column_total("regular_savings"),
        "total_shares": column_total("shares"),
        "total_investment": column_total("investment"),
        "total_special_savings": column_total("special_savings"),
        "members": rows,
    }
