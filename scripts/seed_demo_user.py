#!/usr/bin/env python3
"""Create a demo user and print a bearer token for it.

Useful for trying the authenticated endpoints locally:

    python scripts/seed_demo_user.py --email test@example.com
"""

import argparse
import sys

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from exchange_app.auth.jwt_auth import generate_jwt_token
from exchange_app.config import settings
from exchange_app.database import SessionLocal, create_tables
from exchange_app.models.database import User


def seed_user(email: str, name: str | None) -> User:
    """Return the user with ``email``, creating it if needed."""
    with SessionLocal() as session:
        user = session.scalar(select(User).where(User.email == email))
        if user is None:
            user = User(email=email, name=name)
            session.add(user)
            session.commit()
            session.refresh(user)
            print(f"Created user with id: {user.id}")
        else:
            print(f"User already exists with id: {user.id}")
        return user


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed a demo user and print a JWT for it")
    parser.add_argument("--email", default="test@example.com", help="User email")
    parser.add_argument("--name", default="Test User", help="User display name")
    parser.add_argument(
        "--expires-in",
        type=int,
        default=settings.jwt_expires_in_seconds,
        help="Token lifetime in seconds (omit for the configured default)",
    )
    args = parser.parse_args()

    try:
        create_tables()
        user = seed_user(args.email, args.name)
    except SQLAlchemyError as e:
        print(f"Error seeding user: {e}", file=sys.stderr)
        sys.exit(1)

    token = generate_jwt_token(user.id, email=user.email, expires_in_seconds=args.expires_in)
    print(f"Token: {token}")
    print(f"Authorization Header: Bearer {token}")


if __name__ == "__main__":
    main()
