import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import uuid
from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import audit
from app.core.security import create_access_token
from app.db.base import configure_sqlite, get_db
from app.models import Base, Member
from app.services import ledger as ledger_service
from app.services import loan as loan_service
from app.services.policy import seed_loan_policies


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def policies(db):
    seed_loan_policies(db)


@pytest.fixture
def make_member(db):
    """Factory for members who joined long ago (well past any membership minimum)."""
    counter = {"n": 0}

    def _make(special_savings=Decimal("0.00"), joined=datetime(2020, 1, 1), **kwargs):
        counter["n"] += 1
        member = Member(
            member_number=kwargs.pop("member_number", f"M{counter['n']:04d}"),
            first_name=kwargs.pop("first_name", "Ada"),
            surname=kwargs.pop("surname", f"Member{counter['n']}"),
            special_savings_balance=Decimal(str(special_savings)),
            created_at=joined,
            **kwargs,
        )
        db.add(member)
        db.commit()
        return member

    return _make


@pytest.fixture
def member(make_member):
    return make_member()


def add_savings(db, member_id, regular, special=0, month=1, year=2024):
    """Record monthly savings that count towards loan eligibility."""
    return ledger_service.set_absolute(
        db, member_id, month, year,
        {"regular_savings": Decimal(str(regular)), "special_savings": Decimal(str(special))},
    )


def approved_loan(db, member_id, amount=120000, months=12, start_date=None):
    """Submit and approve a standard loan. The member must have enough savings."""
    application = loan_service.submit_application(db, member_id, Decimal(str(amount)), months, purpose="School fees")
    loan_service.decide_application(db, application.id, "approved", decided_by="Admin User", start_date=start_date)
    return application.loan


@pytest.fixture(autouse=True)
def audit_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(audit, "LOGS_DIR", tmp_path / "logs")
    return tmp_path / "logs"


def auth_headers(member_id, role="member", name="Test User"):
    token = create_access_token({"sub": str(member_id), "role": role, "name": name})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return auth_headers(uuid.uuid4(), role="admin", name="Admin User")


@pytest.fixture
def client(db):
    from app.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
