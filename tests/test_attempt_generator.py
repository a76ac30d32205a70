"""
Tests for starting an attempt: eligibility, sampling and the question snapshot.

POSITIVE CASES:
- Attempt gets exactly 40 distinct questions with ordinals 1..40
- A pool of exactly 40 questions is used in full
- Initial remaining time is the subject's limit in seconds
- Unsubmitted attempts do not block a new one (default policy)

NEGATIVE CASES:
- ❌ Second attempt after a submitted one fails with AlreadyAttempted
- ❌ Pool of 39 questions fails with InsufficientQuestions and writes nothing
- ❌ Unknown subject fails with NotFound
"""

import random

import pytest
from sqlmodel import select

from cbt_practice.config import Settings
from cbt_practice.errors import AlreadyAttempted, InsufficientQuestions, NotFound
from cbt_practice.models import Attempt, AttemptQuestion, Question
from cbt_practice.services import attempts as attempt_service


def _snapshot_rows(session, attempt_id):
    return session.exec(
        select(AttemptQuestion)
        .where(AttemptQuestion.attempt_id == attempt_id)
        .order_by(AttemptQuestion.question_order)
    ).all()


class TestAttemptGenerator:
    def test_start_attempt_snapshots_forty_distinct_questions(self, session, settings, student_user, math_subject):
        attempt = attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)

        assert attempt.id is not None
        assert attempt.total_questions == 40
        assert attempt.time_remaining_seconds == 3600
        assert attempt.submitted_at is None

        rows = _snapshot_rows(session, attempt.id)
        assert len(rows) == 40
        assert [r.question_order for r in rows] == list(range(1, 41))
        assert len({r.question_id for r in rows}) == 40

        pool = set(session.exec(select(Question.id).where(Question.subject_id == math_subject.id)).all())
        assert {r.question_id for r in rows} <= pool

    def test_exact_pool_is_used_in_full(self, session, settings, student_user, exact_subject):
        attempt = attempt_service.start_attempt(session, student_user.id, exact_subject.id, settings=settings)

        rows = _snapshot_rows(session, attempt.id)
        pool = set(attempt_service.question_ids_for_subject(session, exact_subject.id))
        assert {r.question_id for r in rows} == pool
        assert attempt.time_remaining_seconds == 30 * 60

    def test_seeded_rng_controls_presentation_order(self, session, settings, student_user, other_student, math_subject):
        first = attempt_service.start_attempt(
            session, student_user.id, math_subject.id, settings=settings, rng=random.Random(7)
        )
        second = attempt_service.start_attempt(
            session, other_student.id, math_subject.id, settings=settings, rng=random.Random(7)
        )

        first_ids = [r.question_id for r in _snapshot_rows(session, first.id)]
        second_ids = [r.question_id for r in _snapshot_rows(session, second.id)]
        assert first_ids == second_ids

    def test_snapshot_order_is_stable_across_reads(self, session, settings, student_user, math_subject):
        attempt = attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)

        first = attempt_service.get_attempt_with_questions(session, attempt.id)
        second = attempt_service.get_attempt_with_questions(session, attempt.id)
        assert [q.id for q in first.questions] == [q.id for q in second.questions]
        assert [q.order for q in first.questions] == list(range(1, 41))

    def test_insufficient_questions_creates_nothing(self, session, settings, student_user, small_subject):
        with pytest.raises(InsufficientQuestions) as excinfo:
            attempt_service.start_attempt(session, student_user.id, small_subject.id, settings=settings)

        assert excinfo.value.available == 39
        assert excinfo.value.required == 40
        assert session.exec(select(Attempt)).all() == []
        assert session.exec(select(AttemptQuestion)).all() == []

    def test_unknown_subject_is_not_found(self, session, settings, student_user):
        with pytest.raises(NotFound):
            attempt_service.start_attempt(session, student_user.id, 999999, settings=settings)

    def test_failed_snapshot_write_leaves_no_attempt(self, session, settings, student_user, math_subject, monkeypatch):
        # Sampling a duplicate id violates the (attempt, question) unique constraint on flush.
        monkeypatch.setattr(
            attempt_service,
            "sample_without_replacement",
            lambda pool, k, rng=None: [pool[0]] * k,
        )

        with pytest.raises(Exception):
            attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)

        assert session.exec(select(Attempt)).all() == []
        assert session.exec(select(AttemptQuestion)).all() == []


class TestEligibilityGate:
    def test_fresh_user_can_start(self, session, student_user, math_subject):
        assert attempt_service.can_start_attempt(session, student_user.id, math_subject.id) is True

    def test_unsubmitted_attempt_does_not_block(self, session, settings, student_user, math_subject):
        first = attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)

        assert attempt_service.can_start_attempt(session, student_user.id, math_subject.id) is True
        second = attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)
        assert second.id != first.id

    def test_submitted_attempt_blocks_second_start(self, session, settings, student_user, math_subject):
        attempt = attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)
        attempt_service.submit_attempt(session, attempt.id)

        assert attempt_service.can_start_attempt(session, student_user.id, math_subject.id) is False
        with pytest.raises(AlreadyAttempted):
            attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)

    def test_block_is_per_user_and_subject(self, session, settings, exam, student_user, other_student, math_subject, exact_subject):
        attempt = attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)
        attempt_service.submit_attempt(session, attempt.id)

        assert attempt_service.can_start_attempt(session, other_student.id, math_subject.id) is True
        assert attempt_service.can_start_attempt(session, student_user.id, exact_subject.id) is True

    def test_attempted_subject_ids(self, session, settings, student_user, math_subject, exact_subject):
        attempt = attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)
        attempt_service.submit_attempt(session, attempt.id)
        attempt_service.start_attempt(session, student_user.id, exact_subject.id, settings=settings)

        attempted = attempt_service.attempted_subject_ids(
            session, student_user.id, [math_subject.id, exact_subject.id]
        )
        assert attempted == {math_subject.id}
        assert attempt_service.attempted_subject_ids(session, student_user.id, []) == set()


class TestInProgressPolicy:
    def test_resume_policy_returns_open_attempt(self, session, student_user, math_subject):
        settings = Settings(in_progress_policy="resume")
        first = attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)
        again = attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)

        assert again.id == first.id
        assert len(session.exec(select(Attempt)).all()) == 1

    def test_block_policy_refuses_second_open_attempt(self, session, student_user, math_subject):
        settings = Settings(in_progress_policy="block")
        attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)

        with pytest.raises(AlreadyAttempted):
            attempt_service.start_attempt(session, student_user.id, math_subject.id, settings=settings)

    def test_unknown_policy_is_rejected(self):
        with pytest.raises(ValueError):
            Settings(in_progress_policy="sometimes")
