"""Password hashing and credential checks for sign-in."""

from typing import Optional

from passlib.context import CryptContext
from sqlmodel import Session, select

from cbt_practice.models import User

# "2b" ident keeps hashes compatible with the pinned bcrypt backend.
PWD_CONTEXT = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__ident="2b",
    bcrypt__rounds=12,
)


def hash_password(plain_password: str) -> str:
    return PWD_CONTEXT.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return PWD_CONTEXT.verify(plain_password, password_hash)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def authenticate_user(session: Session, email: str, password: str) -> Optional[User]:
    """Return the user for these credentials, or None if they don't match."""
    user = session.exec(select(User).where(User.email == normalize_email(email))).first()
    if not user or not verify_password(password, user.password_hash):
        return None
    return user
