"""SQLModel models for the CBT practice system."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel

from cbt_practice.errors import InvalidOption

OPTION_LETTERS = ("A", "B", "C", "D")


def normalize_option(option: Optional[str]) -> str:
    """Strip and upper-case an answer letter, rejecting anything outside A-D."""
    cleaned = (option or "").strip().upper()
    if cleaned not in OPTION_LETTERS:
        raise InvalidOption(f"Option must be one of A, B, C or D, got {option!r}")
    return cleaned


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(SQLModel, table=True):
    """Account that can sign in as an admin or a student.

    The exam-taking core only ever sees ``id`` as an opaque string.
    """

    __table_args__ = (UniqueConstraint("email", name="uq_user_email"),)

    id: str = Field(default_factory=_new_user_id, primary_key=True)
    email: str
    full_name: str
    password_hash: str
    role: str = Field(default="student")  # "admin" | "student"
    created_at: datetime = Field(default_factory=utcnow)


# ===================== QUESTION BANK =====================


class Exam(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Subject(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    name: str
    time_limit_minutes: int
    created_at: datetime = Field(default_factory=utcnow)


class Question(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    subject_id: int = Field(foreign_key="subject.id", index=True)
    question_text: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_option: str
    explanation: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


# ===================== ATTEMPTS =====================


class Attempt(SQLModel, table=True):
    """One user taking one timed test for one subject.

    ``submitted_at`` is None while the attempt is in progress; once set the
    attempt is final.
    """

    __table_args__ = (
        # At most one submitted attempt per (user, subject).
        Index(
            "uq_attempt_user_subject_submitted",
            "user_id",
            "subject_id",
            unique=True,
            sqlite_where=text("submitted_at IS NOT NULL"),
            postgresql_where=text("submitted_at IS NOT NULL"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    subject_id: int = Field(foreign_key="subject.id", index=True)
    total_questions: int
    time_remaining_seconds: int
    submitted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_submitted(self) -> bool:
        return self.submitted_at is not None


class AttemptQuestion(SQLModel, table=True):
    """Fixed, ordered question snapshot of an attempt."""

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_order", name="uq_attempt_question_order"),
        UniqueConstraint("attempt_id", "question_id", name="uq_attempt_question"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(foreign_key="attempt.id", index=True)
    question_id: int = Field(foreign_key="question.id")
    question_order: int  # 1-based


class Answer(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(foreign_key="attempt.id", index=True)
    question_id: int = Field(foreign_key="question.id")
    selected_option: str
    saved_at: datetime = Field(default_factory=utcnow)
