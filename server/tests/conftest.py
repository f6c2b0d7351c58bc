import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("STORAGE_BACKEND", "memory")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from examhub.main import create_app
from examhub.models import ExamStatus
from examhub.models.clock import utcnow
from examhub.services import accounts
from examhub.storage import MemoryStorage, MemoryStorageProvider

TEACHER_PASSWORD = "teach123"


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def app(storage):
    return create_app(MemoryStorageProvider(storage))


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def login(app):
    """Return a new client logged in as username."""
    clients = []

    def _login(username, password):
        c = TestClient(app)
        response = c.post("/api/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        clients.append(c)
        return c

    yield _login
    for c in clients:
        c.close()


@pytest.fixture
def teacher(storage):
    return accounts.register_teacher(storage, "Ada Teacher", "ada@school.edu", TEACHER_PASSWORD)


@pytest.fixture
def other_teacher(storage):
    return accounts.register_teacher(storage, "Grace Teacher", "grace@school.edu", TEACHER_PASSWORD)


@pytest.fixture
def student(storage):
    return accounts.register_student(storage, "S001", "Bo Student", "10A")


@pytest.fixture
def outsider(storage):
    """Student of a different class."""
    return accounts.register_student(storage, "S002", "Cy Student", "11B")


@pytest.fixture
def teacher_client(login, teacher):
    return login(teacher.username, TEACHER_PASSWORD)


@pytest.fixture
def student_client(login, student):
    return login(student.username, "S001")


@pytest.fixture
def outsider_client(login, outsider):
    return login(outsider.username, "S002")


def make_exam(storage, teacher, class_name="10A", status=ExamStatus.ACTIVE, **overrides):
    now = utcnow()
    data = {
        "title": "Algebra quiz",
        "subject": "mathematics",
        "class_name": class_name,
        "start_time": now - timedelta(minutes=5),
        "end_time": now + timedelta(hours=1),
        "duration": 60,
        "status": status,
        "created_by_id": teacher.id,
    }
    data.update(overrides)
    return storage.create_exam(data)


def add_question(storage, exam, correct="A", points=1, content="What is $1 + 1$?"):
    return storage.create_question({
        "exam_id": exam.id,
        "content": content,
        "options": {"A": "2", "B": "3", "C": "4", "D": "5"},
        "correct_answer": correct,
        "points": points,
    })


@pytest.fixture
def exam(storage, teacher):
    return make_exam(storage, teacher)


@pytest.fixture
def questions(storage, exam):
    """Three questions worth 1, 2 and 3 points with answers A, B, C."""
    return [
        add_question(storage, exam, correct="A", points=1),
        add_question(storage, exam, correct="B", points=2),
        add_question(storage, exam, correct="C", points=3),
    ]
