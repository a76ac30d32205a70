"""Exam attempt lifecycle: eligibility, generation, answers, timing, submission, scoring."""

import logging
import random
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from cbt_practice.config import Settings, get_settings
from cbt_practice.errors import (
    AlreadyAttempted,
    AttemptAlreadySubmitted,
    InsufficientQuestions,
    NotFound,
)
from cbt_practice.models import (
    Answer,
    Attempt,
    AttemptQuestion,
    Exam,
    Question,
    Subject,
    User,
    normalize_option,
    utcnow,
)
from cbt_practice.schemas import (
    AttemptOut,
    AttemptResult,
    AttemptSummary,
    AttemptView,
    ExamQuestionOut,
    QuestionResult,
)
from cbt_practice.services.question_bank import get_subject
from cbt_practice.services.sampling import sample_without_replacement
from cbt_practice.services.scoring import calculate_grade, is_correct, percentage

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


# ============================================================================
# Store reads
# ============================================================================


def get_attempt(session: Session, attempt_id: int) -> Attempt:
    attempt = session.get(Attempt, attempt_id)
    if not attempt:
        raise NotFound(f"Attempt {attempt_id} not found")
    return attempt


def question_ids_for_subject(session: Session, subject_id: int) -> List[int]:
    return list(
        session.exec(
            select(Question.id).where(Question.subject_id == subject_id).order_by(Question.id)
        ).all()
    )


def subject_time_limit(session: Session, subject_id: int) -> int:
    """Time limit of the subject in minutes."""
    return get_subject(session, subject_id).time_limit_minutes


def _snapshot(session: Session, attempt_id: int) -> List[Tuple[AttemptQuestion, Question]]:
    stmt = (
        select(AttemptQuestion, Question)
        .join(Question, Question.id == AttemptQuestion.question_id)
        .where(AttemptQuestion.attempt_id == attempt_id)
        .order_by(AttemptQuestion.question_order)
    )
    return list(session.exec(stmt).all())


def _selected_options(session: Session, attempt_id: int) -> Dict[int, str]:
    answers = session.exec(select(Answer).where(Answer.attempt_id == attempt_id)).all()
    return {a.question_id: a.selected_option for a in answers}


# ============================================================================
# Eligibility gate
# ============================================================================


def can_start_attempt(session: Session, user_id: str, subject_id: int) -> bool:
    """True iff the user has no submitted attempt for the subject."""
    stmt = select(Attempt.id).where(
        Attempt.user_id == user_id,
        Attempt.subject_id == subject_id,
        Attempt.submitted_at.is_not(None),
    )
    return session.exec(stmt).first() is None


def attempted_subject_ids(
    session: Session, user_id: str, subject_ids: Iterable[int]
) -> Set[int]:
    """Subset of ``subject_ids`` the user has already submitted an attempt for."""
    ids = list(subject_ids)
    if not ids:
        return set()
    stmt = select(Attempt.subject_id).where(
        Attempt.user_id == user_id,
        Attempt.subject_id.in_(ids),
        Attempt.submitted_at.is_not(None),
    )
    return set(session.exec(stmt).all())


def _find_in_progress_attempt(
    session: Session, user_id: str, subject_id: int
) -> Optional[Attempt]:
    stmt = (
        select(Attempt)
        .where(
            Attempt.user_id == user_id,
            Attempt.subject_id == subject_id,
            Attempt.submitted_at.is_(None),
        )
        .order_by(Attempt.created_at.desc(), Attempt.id.desc())
    )
    return session.exec(stmt).first()


# ============================================================================
# Attempt generator
# ============================================================================


def start_attempt(
    session: Session,
    user_id: str,
    subject_id: int,
    settings: Optional[Settings] = None,
    rng: Optional[random.Random] = None,
) -> Attempt:
    """Create an attempt with a freshly sampled, ordered question snapshot."""
    settings = settings or get_settings()
    subject = get_subject(session, subject_id)

    if not can_start_attempt(session, user_id, subject_id):
        logger.info("User %s blocked from re-attempting subject %s", user_id, subject_id)
        raise AlreadyAttempted(f"You have already attempted {subject.name}")

    if settings.in_progress_policy != "allow":
        open_attempt = _find_in_progress_attempt(session, user_id, subject_id)
        if open_attempt:
            if settings.in_progress_policy == "resume":
                logger.info("Resuming attempt %s for user %s", open_attempt.id, user_id)
                return open_attempt
            raise AlreadyAttempted(f"An attempt for {subject.name} is already in progress")

    pool = question_ids_for_subject(session, subject_id)
    quota = settings.questions_per_attempt
    if len(pool) < quota:
        raise InsufficientQuestions(subject_id, len(pool), quota)

    selected = sample_without_replacement(pool, quota, rng)

    # Attempt and snapshot rows are committed together or not at all.
    try:
        attempt = Attempt(
            user_id=user_id,
            subject_id=subject_id,
            total_questions=quota,
            time_remaining_seconds=subject.time_limit_minutes * 60,
            submitted_at=None,
        )
        session.add(attempt)
        session.flush()
        session.add_all(
            AttemptQuestion(attempt_id=attempt.id, question_id=qid, question_order=order)
            for order, qid in enumerate(selected, start=1)
        )
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Failed to create attempt for user %s, subject %s", user_id, subject_id)
        raise

    session.refresh(attempt)
    logger.info(
        "Started attempt %s for user %s on subject %s (%d questions, %ds)",
        attempt.id,
        user_id,
        subject_id,
        attempt.total_questions,
        attempt.time_remaining_seconds,
    )
    return attempt


# ============================================================================
# Answer ledger
# ============================================================================


def _upsert_answer_stmt(session: Session, attempt_id: int, question_id: int, option: str):
    dialect = session.get_bind().dialect.name
    insert = _UPSERT_DIALECTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Answer upsert is not supported on {dialect!r}")
    now = utcnow()
    stmt = insert(Answer.__table__).values(
        attempt_id=attempt_id,
        question_id=question_id,
        selected_option=option,
        saved_at=now,
    )
    return stmt.on_conflict_do_update(
        index_elements=["attempt_id", "question_id"],
        set_={"selected_option": option, "saved_at": now},
    )


def save_answer(session: Session, attempt_id: int, question_id: int, option: str) -> Answer:
    """Record the user's current choice for a question; last write wins."""
    selected = normalize_option(option)
    attempt = get_attempt(session, attempt_id)
    if attempt.is_submitted:
        raise AttemptAlreadySubmitted(f"Attempt {attempt_id} has already been submitted")

    in_snapshot = session.exec(
        select(AttemptQuestion.id).where(
            AttemptQuestion.attempt_id == attempt_id,
            AttemptQuestion.question_id == question_id,
        )
    ).first()
    if in_snapshot is None:
        raise NotFound(f"Question {question_id} is not part of attempt {attempt_id}")

    session.exec(_upsert_answer_stmt(session, attempt_id, question_id, selected))
    session.commit()

    return session.exec(
        select(Answer).where(Answer.attempt_id == attempt_id, Answer.question_id == question_id)
    ).one()


# ============================================================================
# Timer persistence
# ============================================================================


def update_remaining_time(session: Session, attempt_id: int, seconds: int) -> Attempt:
    """Persist the countdown value, clamped to [0, stored value]."""
    attempt = get_attempt(session, attempt_id)
    if attempt.is_submitted:
        raise AttemptAlreadySubmitted(f"Attempt {attempt_id} has already been submitted")

    limit = subject_time_limit(session, attempt.subject_id) * 60
    current = min(attempt.time_remaining_seconds, limit)
    value = max(0, min(int(seconds), current))

    session.exec(
        update(Attempt)
        .where(
            Attempt.id == attempt_id,
            Attempt.submitted_at.is_(None),
            Attempt.time_remaining_seconds >= value,
        )
        .values(time_remaining_seconds=value)
    )
    session.commit()

    # A concurrent submit or a lower stored value leaves the row untouched.
    session.refresh(attempt)
    if attempt.is_submitted:
        raise AttemptAlreadySubmitted(f"Attempt {attempt_id} has already been submitted")
    return attempt


# ============================================================================
# Submission & scoring
# ============================================================================


def submit_attempt(session: Session, attempt_id: int) -> Attempt:
    """Finalize the attempt. Repeated calls keep the first timestamp."""
    attempt = get_attempt(session, attempt_id)
    if attempt.is_submitted:
        return attempt

    try:
        result = session.exec(
            update(Attempt)
            .where(Attempt.id == attempt_id, Attempt.submitted_at.is_(None))
            .values(submitted_at=utcnow())
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.warning(
            "Attempt %s rejected: user %s already submitted subject %s",
            attempt_id,
            attempt.user_id,
            attempt.subject_id,
        )
        raise AlreadyAttempted("This subject already has a submitted attempt")

    session.refresh(attempt)
    if result.rowcount:
        logger.info("Attempt %s submitted at %s", attempt_id, attempt.submitted_at)
    return attempt


def _attempt_out(attempt: Attempt) -> AttemptOut:
    return AttemptOut.model_validate(attempt, from_attributes=True)


def get_attempt_with_questions(session: Session, attempt_id: int) -> AttemptView:
    """Resume view of an attempt: ordered questions and current selections."""
    attempt = get_attempt(session, attempt_id)
    subject = get_subject(session, attempt.subject_id)
    selected = _selected_options(session, attempt_id)

    questions = [
        ExamQuestionOut(
            id=question.id,
            order=aq.question_order,
            question_text=question.question_text,
            option_a=question.option_a,
            option_b=question.option_b,
            option_c=question.option_c,
            option_d=question.option_d,
            selected_option=selected.get(question.id),
        )
        for aq, question in _snapshot(session, attempt_id)
    ]
    return AttemptView(attempt=_attempt_out(attempt), subject_name=subject.name, questions=questions)


def get_result(session: Session, attempt_id: int) -> AttemptResult:
    """Score an attempt from persisted state. Read-only and repeatable.

    Correctness is judged against each question's current ``correct_option``.
    """
    attempt = get_attempt(session, attempt_id)
    subject = get_subject(session, attempt.subject_id)
    selected = _selected_options(session, attempt_id)

    questions: List[QuestionResult] = []
    correct_count = 0
    for aq, question in _snapshot(session, attempt_id):
        choice = selected.get(question.id)
        correct = is_correct(choice, question.correct_option)
        if correct:
            correct_count += 1
        questions.append(
            QuestionResult(
                id=question.id,
                order=aq.question_order,
                question_text=question.question_text,
                option_a=question.option_a,
                option_b=question.option_b,
                option_c=question.option_c,
                option_d=question.option_d,
                selected_option=choice,
                correct_option=question.correct_option,
                explanation=question.explanation,
                is_correct=correct,
            )
        )

    score = percentage(correct_count, attempt.total_questions)
    return AttemptResult(
        attempt=_attempt_out(attempt),
        subject_name=subject.name,
        correct_count=correct_count,
        total_questions=attempt.total_questions,
        score=score,
        grade=calculate_grade(score),
        questions=questions,
    )


# ============================================================================
# Reporting
# ============================================================================


def _correct_counts(session: Session, attempt_ids: List[int]) -> Dict[int, int]:
    if not attempt_ids:
        return {}
    stmt = (
        select(Answer.attempt_id, func.count(Answer.id))
        .join(Question, Question.id == Answer.question_id)
        .where(
            Answer.attempt_id.in_(attempt_ids),
            Answer.selected_option == Question.correct_option,
        )
        .group_by(Answer.attempt_id)
    )
    return {attempt_id: count for attempt_id, count in session.exec(stmt).all()}


def _summaries(session: Session, stmt) -> List[AttemptSummary]:
    rows = session.exec(stmt).all()
    counts = _correct_counts(session, [row[0].id for row in rows if row[0].is_submitted])

    summaries = []
    for attempt, subject_name, exam_name, user_email, user_full_name in rows:
        correct = counts.get(attempt.id, 0) if attempt.is_submitted else None
        summaries.append(
            AttemptSummary(
                id=attempt.id,
                user_id=attempt.user_id,
                user_email=user_email,
                user_full_name=user_full_name,
                subject_id=attempt.subject_id,
                subject_name=subject_name,
                exam_name=exam_name,
                status="submitted" if attempt.is_submitted else "in_progress",
                total_questions=attempt.total_questions,
                correct_count=correct,
                score=percentage(correct, attempt.total_questions) if correct is not None else None,
                submitted_at=attempt.submitted_at,
                created_at=attempt.created_at,
            )
        )
    return summaries


def _summary_query():
    return (
        select(Attempt, Subject.name, Exam.name, User.email, User.full_name)
        .join(Subject, Subject.id == Attempt.subject_id)
        .join(Exam, Exam.id == Subject.exam_id)
        .outerjoin(User, User.id == Attempt.user_id)
        .order_by(Attempt.created_at.desc(), Attempt.id.desc())
    )


def list_attempt_summaries(session: Session) -> List[AttemptSummary]:
    """All attempts, newest first, scored where submitted."""
    return _summaries(session, _summary_query())


def list_user_attempts(session: Session, user_id: str) -> List[AttemptSummary]:
    return _summaries(session, _summary_query().where(Attempt.user_id == user_id))
