import asyncio
import sys
from pathlib import Path

import pytest
from sqlmodel import Session, SQLModel, create_engine, text


def _ensure_app_on_path():
    repo_root = Path(__file__).resolve().parent.parent
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))
    return repo_root


_ensure_app_on_path()

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

import httpx
from sqlalchemy.pool import StaticPool

from cbt_practice.auth_utils import hash_password
from cbt_practice.config import Settings
from cbt_practice.models import Exam, Question, Subject, User

TEST_PASSWORD = "testpass123"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)

# Use sqlite:///:memory: with poolclass=StaticPool to share the same in-memory DB across threads
test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create all tables in the test database once per session."""
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(autouse=True)
def cleanup_db_between_tests():
    """Clean up test data after each test."""
    yield

    # Clean up in FK-safe order
    with Session(test_engine) as session:
        session.exec(text("DELETE FROM answer"))
        session.exec(text("DELETE FROM attemptquestion"))
        session.exec(text("DELETE FROM attempt"))
        session.exec(text("DELETE FROM question"))
        session.exec(text("DELETE FROM subject"))
        session.exec(text("DELETE FROM exam"))
        session.exec(text("DELETE FROM user"))
        session.commit()


@pytest.fixture
def session():
    """Provide a database session for tests."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def settings():
    return Settings(database_url="sqlite:///:memory:", seed_default_users=False)


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================

from cbt_practice.database import get_session
from cbt_practice.deps import get_app_settings
from cbt_practice.main import app


def override_get_session():
    # Must use the same test_engine instance that has the tables
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def app_overrides(settings):
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_app_settings] = lambda: settings
    yield app
    app.dependency_overrides.clear()


class SyncClientWrapper:
    """Drive an httpx.AsyncClient from synchronous tests."""

    def __init__(self, async_client, loop):
        self.async_client = async_client
        self.loop = loop

    def get(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.get(*args, **kwargs))

    def post(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.post(*args, **kwargs))

    def put(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.put(*args, **kwargs))

    def delete(self, *args, **kwargs):
        return self.loop.run_until_complete(self.async_client.delete(*args, **kwargs))


@pytest.fixture
def client(app_overrides):
    """Create test client using httpx AsyncClient with sync wrapper."""
    loop = asyncio.new_event_loop()
    transport = httpx.ASGITransport(app=app_overrides)
    async_client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    yield SyncClientWrapper(async_client, loop)

    loop.run_until_complete(async_client.aclose())
    loop.close()


def login(client, email, password=TEST_PASSWORD):
    response = client.post("/auth/login", data={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


def make_user(email, role="student", full_name=None):
    with Session(test_engine) as session:
        user = User(
            email=email,
            full_name=full_name or email.split("@")[0].title(),
            role=role,
            password_hash=TEST_PASSWORD_HASH,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


@pytest.fixture
def student_user():
    return make_user("alice@example.com", full_name="Alice Student")


@pytest.fixture
def other_student():
    return make_user("bob@example.com", full_name="Bob Student")


@pytest.fixture
def admin_user():
    return make_user("admin@example.com", role="admin", full_name="Admin User")


@pytest.fixture
def exam():
    with Session(test_engine) as session:
        exam = Exam(name="JAMB", description="Unified Tertiary Matriculation Examination")
        session.add(exam)
        session.commit()
        session.refresh(exam)
        return exam


def make_subject(exam_id, name, question_count, time_limit_minutes=60, correct_option="A"):
    """Create a subject with ``question_count`` questions whose key is ``correct_option``."""
    with Session(test_engine) as session:
        subject = Subject(exam_id=exam_id, name=name, time_limit_minutes=time_limit_minutes)
        session.add(subject)
        session.commit()
        session.refresh(subject)

        for i in range(question_count):
            session.add(
                Question(
                    subject_id=subject.id,
                    question_text=f"{name} question {i + 1}?",
                    option_a="Option A",
                    option_b="Option B",
                    option_c="Option C",
                    option_d="Option D",
                    correct_option=correct_option,
                    explanation=f"Explanation {i + 1}",
                )
            )
        session.commit()
        session.refresh(subject)
        return subject


@pytest.fixture
def math_subject(exam):
    """Mathematics: 50 questions, 60 minutes."""
    return make_subject(exam.id, "Mathematics", 50, time_limit_minutes=60)


@pytest.fixture
def exact_subject(exam):
    """A subject whose pool is exactly the quota."""
    return make_subject(exam.id, "English", 40, time_limit_minutes=30)


@pytest.fixture
def small_subject(exam):
    """One question short of the quota."""
    return make_subject(exam.id, "Physics", 39, time_limit_minutes=45)
