"""Question bank: exams, subjects and questions, with the checks that guard them."""

from typing import List, Optional

from sqlmodel import Session, select

from cbt_practice.errors import InUse, InvalidOption, NotFound
from cbt_practice.models import Attempt, AttemptQuestion, Exam, Question, Subject, normalize_option
from cbt_practice.schemas import (
    CreateExamRequest,
    CreateSubjectRequest,
    QuestionIn,
    UpdateExamRequest,
    UpdateSubjectRequest,
)
from cbt_practice.utils import sanitize_plain_text, sanitize_question_text

QUESTION_MAX_LENGTH = 5000
OPTION_MAX_LENGTH = 1000


# --- Exams ---


def list_exams(session: Session) -> List[Exam]:
    return list(session.exec(select(Exam).order_by(Exam.name)).all())


def get_exam(session: Session, exam_id: int) -> Exam:
    exam = session.get(Exam, exam_id)
    if not exam:
        raise NotFound(f"Exam {exam_id} not found")
    return exam


def create_exam(session: Session, request: CreateExamRequest) -> Exam:
    exam = Exam(
        name=sanitize_plain_text(request.name) or request.name.strip(),
        description=sanitize_plain_text(request.description),
    )
    session.add(exam)
    session.commit()
    session.refresh(exam)
    return exam


def update_exam(session: Session, exam_id: int, request: UpdateExamRequest) -> Exam:
    exam = get_exam(session, exam_id)
    if request.name is not None:
        exam.name = sanitize_plain_text(request.name) or exam.name
    if request.description is not None:
        exam.description = sanitize_plain_text(request.description)
    session.add(exam)
    session.commit()
    session.refresh(exam)
    return exam


def delete_exam(session: Session, exam_id: int) -> None:
    exam = get_exam(session, exam_id)
    if session.exec(select(Subject.id).where(Subject.exam_id == exam_id)).first() is not None:
        raise InUse(f"Exam {exam_id} still has subjects")
    session.delete(exam)
    session.commit()


# --- Subjects ---


def list_subjects(session: Session, exam_id: Optional[int] = None) -> List[Subject]:
    stmt = select(Subject)
    if exam_id is not None:
        stmt = stmt.where(Subject.exam_id == exam_id)
    return list(session.exec(stmt.order_by(Subject.name)).all())


def get_subject(session: Session, subject_id: int) -> Subject:
    subject = session.get(Subject, subject_id)
    if not subject:
        raise NotFound(f"Subject {subject_id} not found")
    return subject


def create_subject(session: Session, request: CreateSubjectRequest) -> Subject:
    # Ensure the target exam exists before adding the subject
    get_exam(session, request.exam_id)
    subject = Subject(
        exam_id=request.exam_id,
        name=sanitize_plain_text(request.name) or request.name.strip(),
        time_limit_minutes=request.time_limit_minutes,
    )
    session.add(subject)
    session.commit()
    session.refresh(subject)
    return subject


def update_subject(session: Session, subject_id: int, request: UpdateSubjectRequest) -> Subject:
    """Rename a subject or change its time limit.

    Attempts already started keep the remaining time they were created with.
    """
    subject = get_subject(session, subject_id)
    if request.name is not None:
        subject.name = sanitize_plain_text(request.name) or subject.name
    if request.time_limit_minutes is not None:
        subject.time_limit_minutes = request.time_limit_minutes
    session.add(subject)
    session.commit()
    session.refresh(subject)
    return subject


def delete_subject(session: Session, subject_id: int) -> None:
    subject = get_subject(session, subject_id)
    if session.exec(select(Attempt.id).where(Attempt.subject_id == subject_id)).first() is not None:
        raise InUse(f"Subject {subject_id} has attempts and cannot be deleted")
    for question in session.exec(select(Question).where(Question.subject_id == subject_id)).all():
        session.delete(question)
    session.delete(subject)
    session.commit()


# --- Questions ---


def validate_question(payload: QuestionIn) -> dict:
    """Validate a question and return cleaned column values.

    Raises:
        ValueError: with a field -> message mapping in ``args[0]`` when invalid
    """
    errors: dict = {}
    cleaned = {
        "question_text": sanitize_question_text(payload.question_text),
        "option_a": sanitize_question_text(payload.option_a),
        "option_b": sanitize_question_text(payload.option_b),
        "option_c": sanitize_question_text(payload.option_c),
        "option_d": sanitize_question_text(payload.option_d),
        "explanation": sanitize_plain_text(payload.explanation),
    }

    if not cleaned["question_text"]:
        errors["question_text"] = "Question text is required."
    elif len(cleaned["question_text"]) > QUESTION_MAX_LENGTH:
        errors["question_text"] = f"Question text must be at most {QUESTION_MAX_LENGTH} characters."

    for field in ("option_a", "option_b", "option_c", "option_d"):
        if not cleaned[field]:
            errors[field] = "All options must be provided and non-empty."
        elif len(cleaned[field]) > OPTION_MAX_LENGTH:
            errors[field] = f"Option {field[-1].upper()} must be at most {OPTION_MAX_LENGTH} characters."

    try:
        cleaned["correct_option"] = normalize_option(payload.correct_option)
    except InvalidOption:
        errors["correct_option"] = "Correct option must be one of: A, B, C, or D."

    if errors:
        raise ValueError(errors)
    return cleaned


def create_questions(session: Session, subject_id: int, payloads: List[QuestionIn]) -> List[Question]:
    """Add a batch of questions to a subject. Nothing is written if any is invalid."""
    get_subject(session, subject_id)
    problems = {}
    rows = []
    for index, payload in enumerate(payloads):
        try:
            rows.append(Question(subject_id=subject_id, **validate_question(payload)))
        except ValueError as exc:
            problems[index] = exc.args[0]
    if problems:
        raise ValueError(problems)

    session.add_all(rows)
    session.commit()
    for row in rows:
        session.refresh(row)
    return rows


def list_questions(session: Session, subject_id: int) -> List[Question]:
    get_subject(session, subject_id)
    return list(
        session.exec(select(Question).where(Question.subject_id == subject_id).order_by(Question.id)).all()
    )


def count_questions(session: Session, subject_id: int) -> int:
    return len(session.exec(select(Question.id).where(Question.subject_id == subject_id)).all())


def get_question(session: Session, question_id: int) -> Question:
    question = session.get(Question, question_id)
    if not question:
        raise NotFound(f"Question {question_id} not found")
    return question


def update_question(session: Session, question_id: int, payload: QuestionIn) -> Question:
    """Replace a question's text, options, answer key and explanation.

    Scoring of past attempts follows the new answer key.
    """
    question = get_question(session, question_id)
    for field, value in validate_question(payload).items():
        setattr(question, field, value)
    session.add(question)
    session.commit()
    session.refresh(question)
    return question


def delete_question(session: Session, question_id: int) -> None:
    question = get_question(session, question_id)
    used = session.exec(
        select(AttemptQuestion.id).where(AttemptQuestion.question_id == question_id)
    ).first()
    if used is not None:
        raise InUse(f"Question {question_id} is part of an attempt and cannot be deleted")
    session.delete(question)
    session.commit()
