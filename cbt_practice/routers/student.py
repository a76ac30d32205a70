"""Student-facing routes: choosing a subject, taking an attempt, viewing results."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from cbt_practice.config import Settings
from cbt_practice.database import get_session
from cbt_practice.deps import (
    get_app_settings,
    get_owned_attempt,
    get_visible_attempt,
    require_login,
)
from cbt_practice.models import Attempt, User
from cbt_practice.schemas import (
    AnswerIn,
    AttemptOut,
    AttemptResult,
    AttemptSummary,
    AttemptView,
    RemainingTimeIn,
)
from cbt_practice.services import attempts as attempt_service
from cbt_practice.services import question_bank

router = APIRouter()


def _require_submitted(attempt: Attempt, current_user: User) -> None:
    # Correct answers stay hidden from the student until the attempt is final.
    if not attempt.is_submitted and current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Results are available once the attempt has been submitted",
        )


@router.get("/exams")
def list_exams(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    return [
        {"id": e.id, "name": e.name, "description": e.description}
        for e in question_bank.list_exams(session)
    ]


@router.get("/exams/{exam_id}/subjects")
def list_subjects(
    exam_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
    settings: Settings = Depends(get_app_settings),
):
    """Subjects of an exam, flagging the ones this user can no longer take."""
    question_bank.get_exam(session, exam_id)
    subjects = question_bank.list_subjects(session, exam_id)
    attempted = attempt_service.attempted_subject_ids(
        session, current_user.id, [s.id for s in subjects]
    )
    return [
        {
            "id": s.id,
            "exam_id": s.exam_id,
            "name": s.name,
            "time_limit_minutes": s.time_limit_minutes,
            "questions_per_attempt": settings.questions_per_attempt,
            "question_count": question_bank.count_questions(session, s.id),
            "already_attempted": s.id in attempted,
        }
        for s in subjects
    ]


@router.post(
    "/subjects/{subject_id}/attempts",
    response_model=AttemptOut,
    status_code=status.HTTP_201_CREATED,
)
def start_attempt(
    subject_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
    settings: Settings = Depends(get_app_settings),
):
    return attempt_service.start_attempt(session, current_user.id, subject_id, settings=settings)


@router.get("/attempts/{attempt_id}", response_model=AttemptView)
def resume_attempt(
    attempt: Attempt = Depends(get_visible_attempt),
    session: Session = Depends(get_session),
):
    """Questions and saved selections for an attempt in progress."""
    if attempt.is_submitted:
        return RedirectResponse(
            url=f"/attempts/{attempt.id}/result", status_code=status.HTTP_303_SEE_OTHER
        )
    return attempt_service.get_attempt_with_questions(session, attempt.id)


@router.put("/attempts/{attempt_id}/answers/{question_id}")
def save_answer(
    question_id: int,
    payload: AnswerIn,
    attempt: Attempt = Depends(get_owned_attempt),
    session: Session = Depends(get_session),
):
    answer = attempt_service.save_answer(session, attempt.id, question_id, payload.selected_option)
    return {
        "attempt_id": answer.attempt_id,
        "question_id": answer.question_id,
        "selected_option": answer.selected_option,
    }


@router.put("/attempts/{attempt_id}/time")
def update_remaining_time(
    payload: RemainingTimeIn,
    attempt: Attempt = Depends(get_owned_attempt),
    session: Session = Depends(get_session),
):
    attempt = attempt_service.update_remaining_time(
        session, attempt.id, payload.time_remaining_seconds
    )
    return {"attempt_id": attempt.id, "time_remaining_seconds": attempt.time_remaining_seconds}


@router.post("/attempts/{attempt_id}/submit", response_model=AttemptOut)
def submit_attempt(
    attempt: Attempt = Depends(get_owned_attempt),
    session: Session = Depends(get_session),
):
    return attempt_service.submit_attempt(session, attempt.id)


@router.get(
    "/attempts/{attempt_id}/result",
    response_model=AttemptResult,
    response_model_exclude={"questions"},
)
def attempt_result(
    attempt: Attempt = Depends(get_visible_attempt),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    _require_submitted(attempt, current_user)
    return attempt_service.get_result(session, attempt.id)


@router.get("/attempts/{attempt_id}/review", response_model=AttemptResult)
def attempt_review(
    attempt: Attempt = Depends(get_visible_attempt),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    """Per-question review: the student's choice, the key and the explanation."""
    _require_submitted(attempt, current_user)
    return attempt_service.get_result(session, attempt.id)


@router.get("/me/attempts", response_model=List[AttemptSummary])
def my_attempts(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    return attempt_service.list_user_attempts(session, current_user.id)
