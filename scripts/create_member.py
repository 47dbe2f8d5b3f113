"""
Create a member, optionally with opening balances, and print a bearer token for it.
Usage: python scripts/create_member.py MEMBER_NUMBER FIRST_NAME SURNAME [--email ...] [--special-savings 5000]
"""
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from app.db.base import SessionLocal
from app.core.exceptions import LedgerError
from app.core.security import create_access_token
from app.services.member import create_member


def main(args):
    db = SessionLocal()
    try:
        member = create_member(
            db,
            member_number=args.member_number,
            first_name=args.first_name,
            surname=args.surname,
            email=args.email,
            cumulative_savings=args.savings,
            special_savings_balance=args.special_savings,
        )
        print(f"Member created: {member.full_name} ({member.member_number})")
        print(f"   id: {member.id}")

        if args.token:
            token = create_access_token(
                {"sub": str(member.id), "role": args.role, "name": member.full_name},
                expires_delta=timedelta(days=1),
            )
            print(f"   {args.role} token (24h): {token}")
    except LedgerError as e:
        print(f"Error creating member: {e.message}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Create a cooperative member")
    parser.add_argument("member_number", help="Staff / member number")
    parser.add_argument("first_name")
    parser.add_argument("surname")
    parser.add_argument("--email", default=None)
    parser.add_argument("--savings", default="0", help="Opening cumulative savings")
    parser.add_argument("--special-savings", default="0", help="Opening special savings balance")
    parser.add_argument("--token", action="store_true", help="Also print a bearer token for this member")
    parser.add_argument("--role", default="member", choices=["member", "admin"], help="Role claim for --token")
    main(parser.parse_args())
