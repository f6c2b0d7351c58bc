"""
Two submissions of the same exam by the same student racing each other.
"""
import threading
from datetime import timedelta

import pytest

from examhub.errors import Conflict
from examhub.models import ExamStatus, SubmissionStatus
from examhub.models.clock import utcnow
from examhub.schemas import AnswerItem
from examhub.services import accounts, grading
from examhub.storage import MemoryStorage, MemoryStorageProvider, SqlStorageProvider


@pytest.fixture(params=["memory", "sqlite-file"])
def provider(request, tmp_path):
    if request.param == "memory":
        yield MemoryStorageProvider(MemoryStorage())
        return
    provider = SqlStorageProvider(f"sqlite:///{tmp_path / 'race.db'}")
    provider.init()
    yield provider
    provider.dispose()


@pytest.fixture
def setup(provider):
    """Teacher, student, an active exam and two questions; returns ids."""
    with provider() as storage:
        teacher = accounts.register_teacher(storage, "Race Teacher", "race@school.edu", "secret1")
        student = accounts.register_student(storage, "R1", "Racer", "10A")
        now = utcnow()
        exam = storage.create_exam({
            "title": "Race",
            "subject": "math",
            "class_name": "10A",
            "start_time": now - timedelta(minutes=1),
            "end_time": now + timedelta(hours=1),
            "duration": 60,
            "status": ExamStatus.ACTIVE,
            "created_by_id": teacher.id,
        })
        question_ids = [
            storage.create_question({
                "exam_id": exam.id,
                "content": f"Question {n}",
                "options": {"A": "1", "B": "2", "C": "3", "D": "4"},
                "correct_answer": "A",
                "points": n,
            }).id
            for n in (1, 2)
        ]
        return exam.id, student.id, question_ids


def race(provider, exam_id, student_id, answers):
    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def worker():
        with provider() as storage:
            student = storage.get_user(student_id)
            barrier.wait(timeout=5)
            try:
                outcome = grading.submit_exam(storage, exam_id, student, answers)
            except Conflict as e:
                outcome = e
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    assert len(outcomes) == 2
    return outcomes


def assert_single_winner(provider, outcomes, exam_id, student_id, question_ids):
    conflicts = [o for o in outcomes if isinstance(o, Conflict)]
    winners = [o for o in outcomes if not isinstance(o, Conflict)]
    assert len(conflicts) == 1
    assert len(winners) == 1
    assert winners[0].status == SubmissionStatus.COMPLETED
    assert winners[0].score == 3

    with provider() as storage:
        [submission] = storage.get_submissions_by_exam(exam_id)
        assert submission.id == winners[0].id
        assert submission.user_id == student_id
        assert submission.score == 3
        assert len(storage.get_answers_by_submission(submission.id)) == len(question_ids)
        for qid in question_ids:
            assert storage.count_answers_for_question(qid) == 1


def test_double_submit_without_prior_start(provider, setup):
    exam_id, student_id, question_ids = setup
    answers = [AnswerItem(question_id=qid, answer="A") for qid in question_ids]
    outcomes = race(provider, exam_id, student_id, answers)
    assert_single_winner(provider, outcomes, exam_id, student_id, question_ids)


def test_double_submit_of_started_attempt(provider, setup):
    exam_id, student_id, question_ids = setup
    with provider() as storage:
        started = grading.start_attempt(storage, exam_id, storage.get_user(student_id))

    answers = [AnswerItem(question_id=qid, answer="A") for qid in question_ids]
    outcomes = race(provider, exam_id, student_id, answers)
    assert_single_winner(provider, outcomes, exam_id, student_id, question_ids)
    [winner] = [o for o in outcomes if not isinstance(o, Conflict)]
    assert winner.id == started.id


def test_stale_in_progress_read_is_rechecked(setup, provider):
    """A submit that saw the attempt in progress still loses once the other one finished."""
    exam_id, student_id, question_ids = setup
    answers = [AnswerItem(question_id=qid, answer="A") for qid in question_ids]
    with provider() as storage:
        grading.start_attempt(storage, exam_id, storage.get_user(student_id))

    with provider() as storage:
        student = storage.get_user(student_id)
        original_find = storage.find_submission
        calls = []

        def find_then_let_other_submit(exam, user, for_update=False):
            found = original_find(exam, user, for_update=for_update)
            if not for_update and not calls:
                calls.append(1)
                # The other submit completes after this precondition read
                with provider() as other:
                    grading.submit_exam(other, exam_id, other.get_user(student_id), answers)
            return found

        storage.find_submission = find_then_let_other_submit
        with pytest.raises(Conflict):
            grading.submit_exam(storage, exam_id, student, answers)
        assert calls == [1]

    with provider() as storage:
        [submission] = storage.get_submissions_by_exam(exam_id)
        assert submission.status == SubmissionStatus.COMPLETED
        for qid in question_ids:
            assert storage.count_answers_for_question(qid) == 1
