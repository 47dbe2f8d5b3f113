"""
Seed reference data: loan policies.
Usage: python scripts/seed_data.py [--create-tables]
"""
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from app.db.base import SessionLocal, engine
from app.models import Base
from app.services.policy import seed_loan_policies, list_loan_policies


def main(create_tables: bool = False):
    if create_tables:
        print("Creating tables...")
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        print("Seeding loan policies...")
        added = seed_loan_policies(db)
        print(f"Loan policies seeded ({added} added)")
        for policy in list_loan_policies(db):
            print(f"   {policy.category}: {policy.min_amount:,.2f} - {policy.max_amount:,.2f}, "
                  f"{policy.min_duration_months}-{policy.max_duration_months} months")
    finally:
        db.close()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed loan policies")
    parser.add_argument("--create-tables", action="store_true",
                        help="Create tables with metadata.create_all (for databases not managed by Alembic)")
    args = parser.parse_args()
    main(create_tables=args.create_tables)
