"""Request dependencies: current user, role checks, settings and attempt access."""

from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlmodel import Session

from cbt_practice.config import Settings, get_settings
from cbt_practice.database import get_session
from cbt_practice.errors import NotFound
from cbt_practice.models import Attempt, User


def get_current_user(
    request: Request, session: Session = Depends(get_session)
) -> Optional[User]:
    """User id stored in the session cookie, resolved to a User (or None)."""
    user_id = request.session.get("user_id")
    if not user_id:
        return None

    user = session.get(User, user_id)
    if not user:
        # Account removed since sign-in
        request.session.clear()
        return None
    return user


def require_login(current_user: Optional[User] = Depends(get_current_user)) -> User:
    if current_user is None:
        raise HTTPException(status_code=303, headers={"Location": "/auth/login"})
    return current_user


def require_role(required_roles: list[str]):
    """Dependency factory that lets through only the given roles."""

    def wrapper(current_user: User = Depends(require_login)) -> User:
        if current_user.role not in required_roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return current_user

    return wrapper


require_admin = require_role(["admin"])


def get_app_settings() -> Settings:
    return get_settings()


def get_visible_attempt(
    attempt_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
) -> Attempt:
    """The attempt named in the path, if the current user owns it.

    Admins see every attempt; for anyone else a foreign attempt is reported
    as missing.
    """
    attempt = session.get(Attempt, attempt_id)
    if not attempt or (attempt.user_id != current_user.id and current_user.role != "admin"):
        raise NotFound(f"Attempt {attempt_id} not found")
    return attempt


def get_owned_attempt(
    attempt_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
) -> Attempt:
    """The attempt named in the path, only for its owner. Used by write routes."""
    attempt = session.get(Attempt, attempt_id)
    if not attempt or attempt.user_id != current_user.id:
        raise NotFound(f"Attempt {attempt_id} not found")
    return attempt
