"""Period ledger: one row of deductions per (member, month, year).

Monthly amounts live only here. Member cumulative fields are never read or
written by this module except where a report explicitly asks for both.
"""
import calendar
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Union
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    ConcurrentModificationError,
    InvalidPeriodError,
    NotFoundError,
    ValidationError,
)
from app.db.transaction import atomic
from app.models.ledger import DEDUCTION_FIELDS, PeriodLedgerRecord
from app.models.member import Member

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

FieldBag = Union[BaseModel, Mapping[str, Any]]


class Period(NamedTuple):
    month: int
    year: int


def validate_period(month: int, year: int) -> Period:
    """Return the period or raise InvalidPeriod when month/year is out of range."""
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidPeriodError(f"Invalid month: {month}. Month must be between 1 and 12.", month=month, year=year)
    if not isinstance(year, int) or not settings.LEDGER_MIN_YEAR <= year <= settings.LEDGER_MAX_YEAR:
        raise InvalidPeriodError(
            f"Invalid year: {year}. Year must be between {settings.LEDGER_MIN_YEAR} and {settings.LEDGER_MAX_YEAR}.",
            month=month,
            year=year,
        )
    return Period(month, year)


def resolve_period(month: Optional[int], year: Optional[int]) -> Optional[Period]:
    """Period from optional month/year arguments: both given, or neither (None means latest)."""
    if month is None and year is None:
        return None
    if month is None or year is None:
        raise InvalidPeriodError("Month and year must be given together", month=month, year=year)
    return validate_period(month, year)


def _coerce_fields(fields: FieldBag) -> Dict[str, Decimal]:
    """Turn a DeductionFields model or a plain mapping into {field: Decimal}."""
    if isinstance(fields, BaseModel):
        fields = fields.model_dump(exclude_none=True)

    unknown = sorted(set(fields) - set(DEDUCTION_FIELDS))
    if unknown:
        raise ValidationError(
            f"Unknown deduction field(s): {', '.join(unknown)}",
            code="UnknownDeductionField",
            fields=unknown,
        )

    coerced = {}
    for name, value in fields.items():
        if value is None:
            continue
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(f"Invalid amount for {name}: {value!r}", code="InvalidAmount", field=name)
        if not amount.is_finite():
            raise ValidationError(f"Invalid amount for {name}: {value!r}", code="InvalidAmount", field=name)
        coerced[name] = amount
    return coerced


def _require_member(db: Session, member_id: UUID) -> Member:
    member = db.query(Member).filter(Member.id == member_id).first()
    if not member:
        raise NotFoundError("Member not found", code="MemberNotFound", member_id=str(member_id))
    return member


def _find_period_record(db: Session, member_id: UUID, period: Period, lock: bool = False) -> Optional[PeriodLedgerRecord]:
    query = db.query(PeriodLedgerRecord).filter(
        PeriodLedgerRecord.member_id == member_id,
        PeriodLedgerRecord.month == period.month,
        PeriodLedgerRecord.year == period.year,
    )
    if lock:
        query = query.with_for_update().populate_existing()
    return query.first()


def _zero_record(member_id: UUID, period: Optional[Period]) -> PeriodLedgerRecord:
    """Unsaved, zero-valued row for a period with no data."""
    return PeriodLedgerRecord(
        member_id=member_id,
        month=period.month if period else None,
        year=period.year if period else None,
        **{field: ZERO for field in DEDUCTION_FIELDS},
    )


def _get_or_create(db: Session, member_id: UUID, period: Period, lock: bool = False) -> PeriodLedgerRecord:
    record = _find_period_record(db, member_id, period, lock=lock)
    if record:
        return record

    try:
        with db.begin_nested():
            record = PeriodLedgerRecord(
                member_id=member_id,
                month=period.month,
                year=period.year,
                **{field: ZERO for field in DEDUCTION_FIELDS},
            )
            db.add(record)
    except IntegrityError:
        # Another writer created the row first; use theirs.
        logger.info(f"Ledger row for member {member_id} {period.month}/{period.year} created concurrently, re-reading")
        record = _find_period_record(db, member_id, period, lock=lock)
        if record is None:
            raise ConcurrentModificationError(
                "Ledger record was modified concurrently. Reload and try again.",
                month=period.month,
                year=period.year,
            )
        return record

    logger.debug(f"Created ledger row for member {member_id} {period.month}/{period.year}")
    return record


def get_or_create_period_record(db: Session, member_id: UUID, month: int, year: int) -> PeriodLedgerRecord:
    """Return the member's row for the period, creating a zero-valued one if missing."""
    period = validate_period(month, year)
    _require_member(db, member_id)
    with atomic(db):
        record = _get_or_create(db, member_id, period)
    return record


def apply_delta(db: Session, member_id: UUID, month: int, year: int, deltas: FieldBag) -> PeriodLedgerRecord:
    """Add each delta to the period's current value (e.g. several same-month repayments)."""
    period = validate_period(month, year)
    amounts = _coerce_fields(deltas)
    _require_member(db, member_id)

    with atomic(db):
        record = _get_or_create(db, member_id, period, lock=True)
        for field, delta in amounts.items():
            setattr(record, field, (getattr(record, field) or ZERO) + delta)
    return record


def set_absolute(db: Session, member_id: UUID, month: int, year: int, values: FieldBag) -> PeriodLedgerRecord:
    """Overwrite the given fields with admin-entered monthly amounts."""
    period = validate_period(month, year)
    amounts = _coerce_fields(values)
    negative = sorted(field for field, value in amounts.items() if value < 0)
    if negative:
        raise ValidationError(
            f"Monthly amounts cannot be negative: {', '.join(negative)}",
            code="InvalidAmount",
            fields=negative,
        )
    _require_member(db, member_id)

    with atomic(db):
        record = _get_or_create(db, member_id, period, lock=True)
        for field, value in amounts.items():
            setattr(record, field, value)
    return record


def get_period_record(db: Session, member_id: UUID, period: Optional[Period] = None) -> PeriodLedgerRecord:
    """
    Read one member's ledger row.

    With an explicit period only that period's row is returned, or an unsaved
    zero-valued row if nothing was recorded; never a neighbouring month.
    With ``period=None`` the most recent recorded period is returned, or a
    zero row without a period when the member has no data at all.
    """
    _require_member(db, member_id)

    if period is not None:
        period = validate_period(period.month, period.year)
        return _find_period_record(db, member_id, period) or _zero_record(member_id, period)

    latest = db.query(PeriodLedgerRecord).filter(
        PeriodLedgerRecord.member_id == member_id
    ).order_by(PeriodLedgerRecord.year.desc(), PeriodLedgerRecord.month.desc()).first()
    return latest or _zero_record(member_id, None)


def book_deductions(db: Session, month: int, year: int, entries: Mapping[UUID, FieldBag]) -> int:
    """Set absolute monthly amounts for many members in one transaction.

    ``entries`` maps member id to its field bag. Everything is validated up
    front; a failure for any member leaves the whole batch unapplied.
    """
    period = validate_period(month, year)
    prepared = {member_id: _coerce_fields(values) for member_id, values in entries.items()}

    with atomic(db):
        for member_id, amounts in prepared.items():
            set_absolute(db, member_id, period.month, period.year, amounts)

    logger.info(f"Booked deductions for {len(prepared)} members in {period.month}/{period.year}")
    return len(prepared)


def get_member_history(db: Session, member_id: UUID) -> List[PeriodLedgerRecord]:
    """All recorded periods for a member, newest first."""
    _require_member(db, member_id)
    return db.query(PeriodLedgerRecord).filter(
        PeriodLedgerRecord.member_id == member_id
    ).order_by(PeriodLedgerRecord.year.desc(), PeriodLedgerRecord.month.desc()).all()


def get_member_cumulatives(db: Session, member_id: UUID) -> Dict[str, Any]:
    """Per-field sums across every period, reported next to the member's running totals."""
    member = _require_member(db, member_id)

    columns = [func.coalesce(func.sum(getattr(PeriodLedgerRecord, field)), 0) for field in DEDUCTION_FIELDS]
    row = db.query(func.count(PeriodLedgerRecord.id), *columns).filter(
        PeriodLedgerRecord.member_id == member_id
    ).one()

    ledger_totals = {field: Decimal(str(value)) for field, value in zip(DEDUCTION_FIELDS, row[1:])}
    ledger_totals["total"] = sum(ledger_totals.values(), ZERO)

    return {
        "member_id": member.id,
        "months_recorded": row[0],
        "ledger_totals": ledger_totals,
        "cumulative_savings": member.cumulative_savings,
        "cumulative_shares": member.cumulative_shares,
        "cumulative_investment": member.cumulative_investment,
        "special_savings_balance": member.special_savings_balance,
    }


def get_period_summary(db: Session, month: int, year: int) -> Dict[str, Any]:
    """Totals for one period across all members."""
    period = validate_period(month, year)

    columns = [func.coalesce(func.sum(getattr(PeriodLedgerRecord, field)), 0) for field in DEDUCTION_FIELDS]
    row = db.query(func.count(PeriodLedgerRecord.member_id.distinct()), *columns).filter(
        PeriodLedgerRecord.month == period.month,
        PeriodLedgerRecord.year == period.year,
    ).one()

    deduction_types = {field: Decimal(str(value)) for field, value in zip(DEDUCTION_FIELDS, row[1:])}
    return {
        "month": period.month,
        "year": period.year,
        "month_name": calendar.month_name[period.month],
        "total_members": row[0],
        "deduction_types": deduction_types,
        "total_monthly_deduction": sum(deduction_types.values(), ZERO),
    }
