import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from app.models import LoanPolicy, LoanStatus
from app.services import policy
from conftest import add_savings, approved_loan

AS_OF = date(2025, 6, 15)


@pytest.fixture(autouse=True)
def _policies(policies):
    pass


def evaluate(db, member_id, amount, category="standard", duration=12, as_of=AS_OF):
    return policy.evaluate_eligibility(db, member_id, Decimal(str(amount)), category, duration, as_of=as_of)


def test_member_not_found(db):
    result = evaluate(db, uuid.uuid4(), 100000)

    assert not result.eligible
    assert result.reason == "MemberNotFound"
    assert result.max_eligible_amount == Decimal("0")


def test_unknown_category(db, member):
    result = evaluate(db, member.id, 100000, category="vacation")

    assert result.reason == "InvalidCategory"
    assert result.max_eligible_amount == Decimal("0")


def test_inactive_category(db, member):
    db.query(LoanPolicy).filter(LoanPolicy.category == "business").update({"is_active": False})
    db.commit()

    assert evaluate(db, member.id, 200000, category="business").reason == "InvalidCategory"


def test_membership_too_short(db, make_member):
    member = make_member(joined=datetime.combine(AS_OF - timedelta(days=60), datetime.min.time()))
    add_savings(db, member.id, 100000, month=5, year=2025)

    result = evaluate(db, member.id, 100000)

    assert result.reason == "MembershipTooShort"
    assert result.membership_months == 1
    assert result.max_eligible_amount == Decimal("200000.00")


def test_amount_out_of_range(db, member):
    add_savings(db, member.id, 100000)

    too_small = evaluate(db, member.id, 10000)
    too_large = evaluate(db, member.id, 600000)

    assert too_small.reason == "AmountOutOfRange"
    assert too_large.reason == "AmountOutOfRange"
    assert too_large.max_eligible_amount == Decimal("200000.00")


def test_duration_too_long(db, member):
    add_savings(db, member.id, 100000)

    result = evaluate(db, member.id, 100000, duration=48)

    assert result.reason == "DurationTooLong"


def test_scenario_a_zero_savings(db, member):
    result = evaluate(db, member.id, 100000)

    assert not result.eligible
    assert result.reason == "ExceedsSavingsMultiple"
    assert result.max_eligible_amount == Decimal("0")
    assert result.savings_balance == Decimal("0")


def test_exceeds_savings_multiple_reports_max(db, member):
    add_savings(db, member.id, 30000, special=10000)

    result = evaluate(db, member.id, 100000)

    assert result.reason == "ExceedsSavingsMultiple"
    assert result.savings_balance == Decimal("40000.00")
    assert result.max_eligible_amount == Decimal("80000.00")


def test_max_eligible_capped_by_policy_max(db, member):
    add_savings(db, member.id, 400000)

    result = evaluate(db, member.id, 450000)

    assert result.eligible
    assert result.max_eligible_amount == Decimal("500000.00")


def test_active_loan_blocks_new_application(db, member):
    add_savings(db, member.id, 200000)
    approved_loan(db, member.id)

    result = evaluate(db, member.id, 100000)

    assert result.reason == "ActiveLoanExists"
    assert result.max_eligible_amount == Decimal("400000.00")
    assert result.active_loan_count == 1
    assert result.outstanding_balance == Decimal("120000.00")
    assert result.as_details()["outstandingBalance"] == Decimal("120000.00")


def test_eligible(db, member):
    add_savings(db, member.id, 60000, special=40000)

    result = evaluate(db, member.id, 150000)

    assert result.eligible
    assert result.reason == "Eligible"
    assert result.max_eligible_amount == Decimal("200000.00")
    assert result.required_guarantors == 0
    assert "activeLoanCount" not in result.as_details()


def test_savings_after_as_of_are_ignored(db, member):
    add_savings(db, member.id, 50000, month=6, year=2025)
    add_savings(db, member.id, 50000, month=7, year=2025)

    assert policy.get_total_savings(db, member.id, AS_OF) == Decimal("50000.00")
    assert evaluate(db, member.id, 150000).reason == "ExceedsSavingsMultiple"


def test_business_policy_requires_guarantors(db, member):
    add_savings(db, member.id, 100000)

    result = evaluate(db, member.id, 150000, category="business", duration=24)

    assert result.eligible
    assert result.required_guarantors == 2


def test_calculate_membership_months():
    assert policy.calculate_membership_months(datetime(2025, 1, 1), date(2025, 7, 1)) == 5
    assert policy.calculate_membership_months(datetime(2025, 1, 1), date(2025, 7, 3)) == 6
    assert policy.calculate_membership_months(datetime(2025, 8, 1), date(2025, 7, 1)) == 0


def test_seed_loan_policies_is_idempotent(db):
    assert policy.seed_loan_policies(db) == 0
    assert [p.category for p in policy.list_loan_policies(db)] == ["festival", "standard", "business"]


def test_active_loan_exposure_ignores_settled_loans(db, member):
    add_savings(db, member.id, 200000)
    loan = approved_loan(db, member.id)

    assert policy.get_active_loan_exposure(db, member.id) == (1, Decimal("120000.00"))

    loan.status = LoanStatus.COMPLETED
    loan.active_member_id = None
    db.commit()

    assert policy.get_active_loan_exposure(db, member.id) == (0, Decimal("0.00"))
