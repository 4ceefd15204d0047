"""Create a user with credits and print its API token."""

import argparse
import logging

from reportflow.auth import generate_token, hash_token
from reportflow.config import settings
from reportflow.database import SessionLocal
from reportflow.models.user import User

logger = logging.getLogger(__name__)


def create_user(db, email: str, name: str = "", credits: int = None) -> str:
    """
    Create a user and return the plain API token.

    The token is shown once; only its hash is stored.
    """
    token = generate_token()
    user = User(
        email=email,
        name=name or None,
        api_token_hash=hash_token(token),
        credits=settings.DEFAULT_CREDITS if credits is None else credits,
        is_active=True,
    )
    db.add(user)
    db.commit()
    logger.info(f"Created user {user.id} with {user.credits} credits")
    return token


def main():
    parser = argparse.ArgumentParser(description="Create a reportflow user")
    parser.add_argument("email")
    parser.add_argument("--name", default="")
    parser.add_argument("--credits", type=int, default=None)
    args = parser.parse_args()

    db = SessionLocal()
    try:
        token = create_user(db, args.email, args.name, args.credits)
    finally:
        db.close()

    print(f"API token for {args.email}: {token}")


if __name__ == "__main__":
    main()
