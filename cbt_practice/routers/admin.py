"""Admin routes: question bank maintenance and attempt results."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from cbt_practice.database import get_session
from cbt_practice.deps import require_admin
from cbt_practice.models import User
from cbt_practice.schemas import (
    AttemptSummary,
    CreateExamRequest,
    CreateQuestionsRequest,
    CreateSubjectRequest,
    QuestionIn,
    UpdateExamRequest,
    UpdateSubjectRequest,
)
from cbt_practice.services import attempts as attempt_service
from cbt_practice.services import question_bank

router = APIRouter()


def _question_payload(q) -> dict:
    return {
        "id": q.id,
        "subject_id": q.subject_id,
        "question_text": q.question_text,
        "option_a": q.option_a,
        "option_b": q.option_b,
        "option_c": q.option_c,
        "option_d": q.option_d,
        "correct_option": q.correct_option,
        "explanation": q.explanation,
    }


# ============================================================================
# Exams
# ============================================================================


@router.get("/exams")
def list_exams(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    return question_bank.list_exams(session)


@router.post("/exams", status_code=status.HTTP_201_CREATED)
def create_exam(
    payload: CreateExamRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    return question_bank.create_exam(session, payload)


@router.put("/exams/{exam_id}")
def update_exam(
    exam_id: int,
    payload: UpdateExamRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    return question_bank.update_exam(session, exam_id, payload)


@router.delete("/exams/{exam_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_exam(
    exam_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    question_bank.delete_exam(session, exam_id)


# ============================================================================
# Subjects
# ============================================================================


@router.get("/subjects")
def list_subjects(
    exam_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    return question_bank.list_subjects(session, exam_id)


@router.post("/subjects", status_code=status.HTTP_201_CREATED)
def create_subject(
    payload: CreateSubjectRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    return question_bank.create_subject(session, payload)


@router.put("/subjects/{subject_id}")
def update_subject(
    subject_id: int,
    payload: UpdateSubjectRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    return question_bank.update_subject(session, subject_id, payload)


@router.delete("/subjects/{subject_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_subject(
    subject_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    question_bank.delete_subject(session, subject_id)


# ============================================================================
# Questions
# ============================================================================


@router.get("/subjects/{subject_id}/questions")
def list_questions(
    subject_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    return [_question_payload(q) for q in question_bank.list_questions(session, subject_id)]


@router.post("/subjects/{subject_id}/questions", status_code=status.HTTP_201_CREATED)
def create_questions(
    subject_id: int,
    payload: CreateQuestionsRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    try:
        rows = question_bank.create_questions(session, subject_id, payload.questions)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.args[0])
    return {"created": len(rows), "questions": [_question_payload(q) for q in rows]}


@router.put("/questions/{question_id}")
def update_question(
    question_id: int,
    payload: QuestionIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    try:
        question = question_bank.update_question(session, question_id, payload)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.args[0])
    return _question_payload(question)


@router.delete("/questions/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_question(
    question_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    question_bank.delete_question(session, question_id)


# ============================================================================
# Results
# ============================================================================


@router.get("/attempts", response_model=List[AttemptSummary])
def list_attempts(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_admin),
):
    """Every attempt, newest first, with scores for submitted ones."""
    return attempt_service.list_attempt_summaries(session)
