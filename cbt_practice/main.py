"""FastAPI entrypoint for the CBT practice service."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import HTTPException
from fastapi.responses import JSONResponse, RedirectResponse
from sqlmodel import Session, select
from starlette.middleware.sessions import SessionMiddleware

from cbt_practice.auth_utils import hash_password
from cbt_practice.config import configure_logging, get_settings
from cbt_practice.database import create_db_and_tables, engine
from cbt_practice.errors import CBTError, InsufficientQuestions
from cbt_practice.models import User
from cbt_practice.routers import admin as admin_router_module
from cbt_practice.routers import auth as auth_router_module
from cbt_practice.routers import student as student_router_module

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="CBT Practice")

# Default accounts for a fresh install, matching the practice app's demo logins.
DEFAULT_USERS = [
    {"email": "admin@gmail.com", "full_name": "Admin User", "role": "admin", "password": "1234"},
    {"email": "student@gmail.com", "full_name": "Student User", "role": "student", "password": "1234"},
]


@app.exception_handler(CBTError)
async def cbt_error_handler(request: Request, exc: CBTError):
    """Render domain errors as JSON with the error's own status code."""
    content = {"detail": exc.detail, "error": type(exc).__name__}
    if isinstance(exc, InsufficientQuestions):
        content.update(
            subject_id=exc.subject_id, available=exc.available, required=exc.required
        )
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Turn login redirects into real redirects; everything else stays JSON."""
    if exc.status_code == 303 and exc.headers and exc.headers.get("Location"):
        return RedirectResponse(
            url=exc.headers["Location"], status_code=status.HTTP_303_SEE_OTHER
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Session middleware for simple cookie-based authentication
app.add_middleware(SessionMiddleware, secret_key=settings.secret_key)

# Routers
app.include_router(auth_router_module.router, prefix="/auth", tags=["auth"])
app.include_router(admin_router_module.router, prefix="/admin", tags=["admin"])
app.include_router(student_router_module.router, tags=["student"])


@app.get("/")
def home():
    return {"service": "cbt-practice", "status": "ok"}


def seed_default_users(session: Session) -> int:
    """Create the default admin/student accounts that are missing."""
    created = 0
    for account in DEFAULT_USERS:
        existing = session.exec(select(User).where(User.email == account["email"])).first()
        if existing:
            continue
        session.add(
            User(
                email=account["email"],
                full_name=account["full_name"],
                role=account["role"],
                password_hash=hash_password(account["password"]),
            )
        )
        created += 1
    session.commit()
    return created


@app.on_event("startup")
def on_startup():
    """Initialize database schema and seed default accounts."""
    create_db_and_tables()
    if settings.seed_default_users:
        with Session(engine) as session:
            created = seed_default_users(session)
        if created:
            logger.info("Seeded %d default user account(s)", created)
