"""Sign-in / sign-out routes backed by the session cookie."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from sqlmodel import Session

from cbt_practice.auth_events import SIGNED_IN, SIGNED_OUT, AuthEvent, auth_events
from cbt_practice.auth_utils import authenticate_user, normalize_email
from cbt_practice.database import get_session
from cbt_practice.deps import get_current_user, require_login
from cbt_practice.models import User, utcnow

router = APIRouter()
logger = logging.getLogger(__name__)


def _user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
    }


@router.get("/login")
def login_status(current_user: Optional[User] = Depends(get_current_user)):
    """Tell the caller whether it is signed in; the login itself is a POST."""
    if current_user is None:
        return {"authenticated": False}
    return {"authenticated": True, "user": _user_payload(current_user)}


@router.post("/login")
def login(
    request: Request,
    email: Optional[str] = Form(None),
    password: str = Form(...),
    session: Session = Depends(get_session),
):
    if not normalize_email(email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is required.")

    user = authenticate_user(session, email, password)
    if user is None:
        logger.info("Failed login for %s", normalize_email(email))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid login credentials"
        )

    # Clear any existing session first to avoid conflicts
    request.session.clear()
    request.session["user_id"] = user.id
    request.session["role"] = user.role

    auth_events.publish(
        AuthEvent(kind=SIGNED_IN, user_id=user.id, email=user.email, role=user.role, at=utcnow())
    )
    return _user_payload(user)


@router.post("/logout")
def logout(request: Request):
    user_id = request.session.get("user_id")
    request.session.clear()
    if user_id:
        auth_events.publish(AuthEvent(kind=SIGNED_OUT, user_id=user_id, at=utcnow()))
    return {"status": "signed_out"}


@router.get("/me")
def me(current_user: User = Depends(require_login)):
    return _user_payload(current_user)
