import uuid
from datetime import date
from decimal import Decimal

import pytest

from app.core.exceptions import (
    InvalidPeriodError,
    NotFoundError,
    PolicyViolationError,
    StateConflictError,
    ValidationError,
)
from app.models import Loan, LoanApplication, LoanApplicationStatus, LoanPayment, LoanStatus
from app.services import ledger as ledger_service
from app.services import loan as loan_service
from app.services.ledger import Period
from conftest import add_savings, approved_loan

START = date(2025, 1, 15)


@pytest.fixture(autouse=True)
def _policies(policies):
    pass


@pytest.fixture
def saver(db, member):
    add_savings(db, member.id, 200000)
    return member


@pytest.fixture
def loan(db, saver):
    return approved_loan(db, saver.id, amount=120000, months=12, start_date=START)


# Pure calculations

def test_monthly_payment_is_simple_division():
    assert loan_service.calculate_monthly_payment(Decimal("120000"), 12) == Decimal("10000.00")
    assert loan_service.calculate_monthly_payment(Decimal("100000"), 3) == Decimal("33333.33")


def test_add_months_clamps_to_month_end():
    assert loan_service.add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert loan_service.add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert loan_service.add_months(date(2025, 11, 15), 3) == date(2026, 2, 15)


def test_scenario_b_schedule():
    schedule = loan_service.generate_schedule(Decimal("120000"), 12, START)

    assert len(schedule) == 12
    assert all(entry["principal_amount"] == Decimal("10000.00") for entry in schedule)
    assert schedule[-1]["remaining_balance_after"] == Decimal("0.00")
    assert schedule[0]["due_date"] == date(2025, 2, 15)
    assert schedule[-1]["due_date"] == date(2026, 1, 15)


@pytest.mark.parametrize("principal,months", [("100000", 3), ("50000.01", 7), ("0.05", 10), ("999999.99", 48)])
def test_schedule_sums_exactly_to_principal(principal, months):
    schedule = loan_service.generate_schedule(Decimal(principal), months, START)

    assert sum(entry["principal_amount"] for entry in schedule) == Decimal(principal)
    assert all(entry["principal_amount"] >= 0 for entry in schedule)
    assert [entry["installment_number"] for entry in schedule] == list(range(1, months + 1))


def test_last_installment_absorbs_rounding():
    schedule = loan_service.generate_schedule(Decimal("100000"), 3, START)

    assert [entry["principal_amount"] for entry in schedule] == [
        Decimal("33333.33"), Decimal("33333.33"), Decimal("33333.34")
    ]


# Applications

def test_submit_application_persists_pending(db, saver):
    application = loan_service.submit_application(db, saver.id, Decimal("120000"), 12, purpose="Rent")

    assert application.status == LoanApplicationStatus.PENDING
    assert application.monthly_payment == Decimal("10000.00")
    assert application.category == "standard"
    assert db.query(LoanApplication).count() == 1


@pytest.mark.parametrize("amount,months,code", [("0", 12, "InvalidAmount"), ("50000", 0, "InvalidDuration")])
def test_submit_application_validation(db, saver, amount, months, code):
    with pytest.raises(ValidationError) as exc_info:
        loan_service.submit_application(db, saver.id, Decimal(amount), months)
    assert exc_info.value.code == code


def test_submit_application_unknown_member(db):
    with pytest.raises(NotFoundError) as exc_info:
        loan_service.submit_application(db, uuid.uuid4(), Decimal("100000"), 12)
    assert exc_info.value.code == "MemberNotFound"


def test_submit_application_ineligible_carries_boundary_values(db, member):
    with pytest.raises(PolicyViolationError) as exc_info:
        loan_service.submit_application(db, member.id, Decimal("100000"), 12)

    error = exc_info.value
    assert error.code == "IneligibleApplication"
    assert error.details["reason"] == "ExceedsSavingsMultiple"
    assert error.details["maxEligibleAmount"] == Decimal("0")
    assert error.to_dict()["maxEligibleAmount"] == 0.0
    assert db.query(LoanApplication).count() == 0


def test_scenario_e_no_application_while_loan_active(db, saver, loan):
    before = db.query(LoanApplication).count()

    with pytest.raises(PolicyViolationError) as exc_info:
        loan_service.submit_application(db, saver.id, Decimal("60000"), 6)

    assert exc_info.value.details["reason"] == "ActiveLoanExists"
    assert exc_info.value.details["activeLoanCount"] == 1
    assert exc_info.value.details["outstandingBalance"] == Decimal("120000.00")
    assert db.query(LoanApplication).count() == before


def test_submit_application_stores_principal_in_cents(db, saver):
    application = loan_service.submit_application(db, saver.id, Decimal("100000.005"), 3)

    assert application.amount == Decimal("100000.01")
    assert application.monthly_payment == loan_service.calculate_monthly_payment(Decimal("100000.01"), 3)

    decided = loan_service.decide_application(db, application.id, "approved", start_date=START)
    schedule = decided.loan.schedule
    assert decided.loan.amount == Decimal("100000.01")
    assert sum(entry.principal_amount for entry in schedule) == decided.loan.amount
    assert schedule[0].principal_amount == decided.loan.monthly_payment


def test_submit_application_rejects_non_finite_amount(db, saver):
    with pytest.raises(ValidationError) as exc_info:
        loan_service.submit_application(db, saver.id, Decimal("Infinity"), 12)
    assert exc_info.value.code == "InvalidAmount"


# Decisions

def test_approval_creates_loan_and_schedule(db, saver):
    application = loan_service.submit_application(db, saver.id, Decimal("120000"), 12)

    decided = loan_service.decide_application(db, application.id, "approved", decided_by="Admin User",
                                              admin_notes="ok", start_date=START)

    assert decided.status == LoanApplicationStatus.APPROVED
    assert decided.decided_at is not None
    loan = decided.loan
    assert loan.status == LoanStatus.ACTIVE
    assert loan.remaining_balance == Decimal("120000.00")
    assert loan.active_member_id == saver.id
    assert loan.expected_end_date == date(2026, 1, 15)
    assert loan.next_due_date == date(2025, 2, 15)
    assert len(loan.schedule) == 12
    assert sum(entry.principal_amount for entry in loan.schedule) == loan.amount


def test_decline_has_no_side_effects(db, saver):
    application = loan_service.submit_application(db, saver.id, Decimal("120000"), 12)

    decided = loan_service.decide_application(db, application.id, LoanApplicationStatus.DECLINED)

    assert decided.status == LoanApplicationStatus.DECLINED
    assert db.query(Loan).count() == 0


def test_deciding_twice_is_rejected(db, saver):
    application = loan_service.submit_application(db, saver.id, Decimal("120000"), 12)
    loan_service.decide_application(db, application.id, "approved")

    with pytest.raises(StateConflictError) as exc_info:
        loan_service.decide_application(db, application.id, "approved")

    assert exc_info.value.code == "AlreadyDecided"
    assert db.query(Loan).count() == 1


def test_invalid_decision(db, saver):
    application = loan_service.submit_application(db, saver.id, Decimal("120000"), 12)

    with pytest.raises(ValidationError) as exc_info:
        loan_service.decide_application(db, application.id, "maybe")
    assert exc_info.value.code == "InvalidDecision"


def test_decide_unknown_application(db):
    with pytest.raises(NotFoundError) as exc_info:
        loan_service.decide_application(db, uuid.uuid4(), "declined")
    assert exc_info.value.code == "ApplicationNotFound"


def test_approval_rechecks_active_loans(db, saver):
    first = loan_service.submit_application(db, saver.id, Decimal("120000"), 12)
    second = loan_service.submit_application(db, saver.id, Decimal("60000"), 6)
    loan_service.decide_application(db, first.id, "approved")

    with pytest.raises(PolicyViolationError) as exc_info:
        loan_service.decide_application(db, second.id, "approved")

    assert exc_info.value.code == "ActiveLoanExists"
    assert exc_info.value.details["activeLoanCount"] == 1
    assert exc_info.value.details["outstandingBalance"] == Decimal("120000.00")
    db.expire_all()
    assert db.get(LoanApplication, second.id).status == LoanApplicationStatus.PENDING
    assert db.query(Loan).count() == 1


# Payments

def test_record_payment_updates_loan_and_declared_period(db, saver, loan):
    payment = loan_service.record_payment(db, loan.id, Decimal("10000"), 3, 2025, payment_date=date(2025, 4, 2))

    assert payment.month == 3 and payment.year == 2025
    db.refresh(loan)
    assert loan.remaining_balance == Decimal("110000.00")
    assert loan.total_paid == Decimal("10000.00")
    assert loan.next_due_date == date(2025, 3, 15)

    march = ledger_service.get_period_record(db, saver.id, Period(3, 2025))
    april = ledger_service.get_period_record(db, saver.id, Period(4, 2025))
    assert march.loan_repayment == Decimal("10000.00")
    assert april.id is None


def test_same_month_payments_accumulate(db, saver, loan):
    loan_service.record_payment(db, loan.id, Decimal("4000"), 3, 2025)
    loan_service.record_payment(db, loan.id, Decimal("6000"), 3, 2025)

    record = ledger_service.get_period_record(db, saver.id, Period(3, 2025))
    assert record.loan_repayment == Decimal("10000.00")
    assert db.query(LoanPayment).count() == 2


def test_scenario_c_overpayment_completes_loan_and_credits_full_amount(db, saver, loan):
    loan_service.record_payment(db, loan.id, Decimal("110000"), 5, 2025)

    loan_service.record_payment(db, loan.id, Decimal("15000"), 6, 2025)

    db.refresh(loan)
    assert loan.status == LoanStatus.COMPLETED
    assert loan.remaining_balance == Decimal("0.00")
    assert loan.completed_at is not None
    assert loan.next_due_date is None
    assert loan.active_member_id is None
    june = ledger_service.get_period_record(db, saver.id, Period(6, 2025))
    assert june.loan_repayment == Decimal("15000.00")


def test_payment_on_completed_loan_rejected(db, saver, loan):
    loan_service.record_payment(db, loan.id, Decimal("120000"), 5, 2025)

    with pytest.raises(StateConflictError) as exc_info:
        loan_service.record_payment(db, loan.id, Decimal("100"), 5, 2025)
    assert exc_info.value.code == "LoanNotActive"


def test_payment_unknown_loan(db):
    with pytest.raises(NotFoundError) as exc_info:
        loan_service.record_payment(db, uuid.uuid4(), Decimal("100"), 5, 2025)
    assert exc_info.value.code == "LoanNotFound"


def test_payment_invalid_period_changes_nothing(db, loan):
    with pytest.raises(InvalidPeriodError):
        loan_service.record_payment(db, loan.id, Decimal("100"), 0, 2025)

    db.refresh(loan)
    assert loan.remaining_balance == Decimal("120000.00")
    assert db.query(LoanPayment).count() == 0


def test_payment_is_atomic_when_ledger_update_fails(db, saver, loan, monkeypatch):
    def failing_apply_delta(*args, **kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(ledger_service, "apply_delta", failing_apply_delta)

    with pytest.raises(RuntimeError):
        loan_service.record_payment(db, loan.id, Decimal("10000"), 3, 2025)

    db.expire_all()
    reloaded = db.get(Loan, loan.id)
    assert reloaded.remaining_balance == Decimal("120000.00")
    assert reloaded.total_paid == Decimal("0.00")
    assert reloaded.status == LoanStatus.ACTIVE
    assert db.query(LoanPayment).count() == 0


def test_completing_loan_allows_new_application(db, saver, loan):
    loan_service.record_payment(db, loan.id, Decimal("120000"), 5, 2025)

    application = loan_service.submit_application(db, saver.id, Decimal("60000"), 6)
    decided = loan_service.decide_application(db, application.id, "approved")

    assert decided.loan.status == LoanStatus.ACTIVE


# Default override and reads

def test_mark_loan_defaulted(db, saver, loan):
    defaulted = loan_service.mark_loan_defaulted(db, loan.id, admin_notes="Left the society")

    assert defaulted.status == LoanStatus.DEFAULTED
    assert defaulted.active_member_id is None
    with pytest.raises(StateConflictError):
        loan_service.mark_loan_defaulted(db, loan.id)
    with pytest.raises(StateConflictError):
        loan_service.record_payment(db, loan.id, Decimal("100"), 5, 2025)


def test_get_loan_with_schedule(db, loan):
    loan_service.record_payment(db, loan.id, Decimal("30000"), 3, 2025)

    data = loan_service.get_loan_with_schedule(db, loan.id)

    assert data["loan"].id == loan.id
    assert len(data["schedule"]) == 12
    assert len(data["payments"]) == 1
    assert data["amount_paid_to_date"] == Decimal("30000.00")
    assert data["progress_percentage"] == Decimal("25.00")


def test_list_filters_and_active_report(db, make_member, saver, loan):
    other = make_member()
    add_savings(db, other.id, 100000)
    loan_service.submit_application(db, other.id, Decimal("50000"), 6)

    assert len(loan_service.list_applications(db, status=LoanApplicationStatus.PENDING)) == 1
    assert len(loan_service.list_applications(db, member_id=saver.id)) == 1
    assert [item.id for item in loan_service.list_loans(db, status=LoanStatus.ACTIVE)] == [loan.id]

    report = loan_service.get_active_loans_report(db)
    assert report["count"] == 1
    assert report["total_outstanding"] == Decimal("120000.00")
    assert report["loans"][0]["member_number"] == saver.member_number
