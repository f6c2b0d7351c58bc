import asyncio
import threading
from datetime import datetime, timedelta

import pytest

from conftest import TEACHER_PASSWORD
from examhub.client import AnswerSheet, ApiRequestError, CountdownTimer, ExamApi, ExamAttempt, format_seconds

NOW = datetime(2024, 5, 1, 9, 0, 0)


def fixed_clock(value=NOW):
    return lambda: value


class TestCountdownTimer:
    def test_counts_down_and_expires_once(self):
        expired = []
        ticks = []
        timer = CountdownTimer(NOW + timedelta(seconds=65), lambda: expired.append(1), ticks.append, clock=fixed_clock())
        assert timer.start() == 65
        assert timer.format_remaining() == "01:05"

        for _ in range(64):
            timer.tick()
        assert timer.remaining == 1
        assert expired == []

        timer.tick()
        assert timer.remaining == 0
        assert expired == [1]

        timer.tick()
        timer.tick()
        assert timer.remaining == 0
        assert expired == [1]
        assert len(ticks) == 65

    def test_partial_seconds_round_down(self):
        timer = CountdownTimer(NOW + timedelta(seconds=10, milliseconds=900), lambda: None, clock=fixed_clock())
        assert timer.start() == 10

    def test_opened_after_end(self):
        expired = []
        ticks = []
        timer = CountdownTimer(NOW - timedelta(minutes=5), lambda: expired.append(1), ticks.append, clock=fixed_clock())
        assert timer.start() == 0
        assert expired == [1]
        assert ticks == []
        assert not timer.running

    def test_cancel_stops_callbacks(self):
        expired = []
        timer = CountdownTimer(NOW + timedelta(seconds=2), lambda: expired.append(1), clock=fixed_clock())
        timer.start()
        timer.tick()
        timer.cancel()
        timer.tick()
        assert timer.remaining == 1
        assert expired == []

    def test_async_run(self):
        expired = []
        timer = CountdownTimer(NOW + timedelta(seconds=3), lambda: expired.append(1), clock=fixed_clock(), interval=0)
        asyncio.run(timer.run())
        assert timer.remaining == 0
        assert expired == [1]

    def test_aware_end_time(self):
        from datetime import timezone

        end = datetime(2024, 5, 1, 11, 0, 30, tzinfo=timezone(timedelta(hours=2)))
        timer = CountdownTimer(end, lambda: None, clock=fixed_clock())
        assert timer.start() == 30

    def test_format(self):
        assert format_seconds(0) == "00:00"
        assert format_seconds(59) == "00:59"
        assert format_seconds(3725) == "01:02:05"


class TestAnswerSheet:
    def test_select_overwrites(self):
        sheet = AnswerSheet([10, 20, 30])
        sheet.select(20, "A")
        sheet.select(20, "C")
        assert sheet.answer_for(20) == "C"
        assert sheet.is_answered(20)
        assert not sheet.is_answered(10)
        assert sheet.answered_count == 1
        assert sheet.unanswered() == [10, 30]

    def test_rejects_bad_input(self):
        sheet = AnswerSheet([10])
        with pytest.raises(ValueError):
            sheet.select(10, "E")
        with pytest.raises(KeyError):
            sheet.select(99, "A")
        with pytest.raises(IndexError):
            sheet.toggle_flag(1)

    def test_flags(self):
        sheet = AnswerSheet([10, 20, 30])
        assert sheet.toggle_flag(2) is True
        assert sheet.toggle_flag(0) is True
        assert sheet.flagged == [0, 2]
        assert sheet.toggle_flag(2) is False
        assert not sheet.is_flagged(2)
        assert sheet.is_flagged(0)

    def test_load_skips_stale_rows(self):
        sheet = AnswerSheet([10, 20])
        restored = sheet.load([
            {"question_id": 10, "answer": "B"},
            {"question_id": 99, "answer": "A"},
            {"question_id": 20, "answer": None},
        ])
        assert restored == 1
        assert sheet.answer_for(10) == "B"
        assert not sheet.is_answered(20)

    def test_payload_in_exam_order(self):
        sheet = AnswerSheet([30, 10, 20])
        sheet.select(20, "D")
        sheet.select(30, "A")
        assert sheet.to_payload() == [
            {"question_id": 30, "answer": "A"},
            {"question_id": 10, "answer": None},
            {"question_id": 20, "answer": "D"},
        ]


@pytest.fixture
def api(app, student):
    from fastapi.testclient import TestClient

    with TestClient(app) as session:
        api = ExamApi("http://testserver/api", session=session)
        api.login(student.username, "S001")
        yield api


class TestExamApi:
    def test_errors_raise(self, app):
        from fastapi.testclient import TestClient

        with TestClient(app) as session:
            api = ExamApi("http://testserver/api/", session=session)
            with pytest.raises(ApiRequestError) as e:
                api.login("nobody", "wrong")
            assert e.value.status_code == 401
            assert e.value.detail == "Invalid username or password"

    def test_student_calls(self, api, exam, questions):
        assert api.get_exam(exam.id)["id"] == exam.id
        assert len(api.get_questions(exam.id)) == 3
        submission = api.start(exam.id)
        assert submission["status"] == "in_progress"
        assert api.get_answers(submission["id"]) == []


class TestExamAttempt:
    def test_manual_submit_happens_once(self, api, storage, exam, questions):
        attempt = ExamAttempt(api, exam.id).open()
        q1, q2, _ = questions
        attempt.sheet.select(q1.id, "A")
        attempt.sheet.select(q2.id, "B")

        result = attempt.submit()
        assert result["score"] == 3
        assert attempt.timer.cancelled
        assert attempt.submit() is result
        assert not attempt.forced
        assert len(storage.get_answers_by_submission(result["id"])) == 3

    def test_expiry_forces_submission(self, api, exam, questions):
        # Clock 2 s before the exam ends
        end = exam.end_time
        attempt = ExamAttempt(api, exam.id, clock=fixed_clock(end - timedelta(seconds=2)), interval=0).open()
        attempt.sheet.select(questions[2].id, "C")

        result = asyncio.run(attempt.run())
        assert attempt.forced
        assert result["score"] == 3
        assert result["status"] == "completed"

    def test_opened_after_end_submits_immediately(self, api, exam, questions):
        attempt = ExamAttempt(api, exam.id, clock=fixed_clock(exam.end_time + timedelta(minutes=1)))
        attempt.open()
        assert attempt.forced
        assert attempt.result["score"] == 0

    def test_expiry_after_manual_submit_is_noop(self, api, exam, questions):
        attempt = ExamAttempt(api, exam.id, clock=fixed_clock(exam.end_time - timedelta(seconds=1)), interval=0).open()
        attempt.submit()
        attempt.timer.cancelled = False
        attempt.timer.tick()
        assert not attempt.forced


class FakeExamApi:
    """Records submit calls and the thread they ran on."""

    def __init__(self, end_time, fail=False):
        self.end_time = end_time
        self.fail = fail
        self.submits = []

    def get_exam(self, exam_id):
        return {"id": exam_id, "end_time": self.end_time.isoformat()}

    def get_questions(self, exam_id):
        return [{"id": 1}, {"id": 2}]

    def start(self, exam_id):
        return {"id": 7, "status": "in_progress"}

    def get_answers(self, submission_id):
        return []

    def submit(self, exam_id, answers):
        self.submits.append((threading.get_ident(), answers))
        if self.fail:
            raise ApiRequestError(503, "Service unavailable")
        return {"id": 7, "score": 0, "status": "completed"}


class TestForcedSubmission:
    def test_runs_once_off_the_event_loop(self):
        api = FakeExamApi(NOW + timedelta(seconds=2))
        attempt = ExamAttempt(api, 1, clock=fixed_clock(), interval=0).open()
        attempt.sheet.select(2, "B")

        result = asyncio.run(attempt.run())
        assert attempt.forced
        assert result == {"id": 7, "score": 0, "status": "completed"}
        [(thread_id, answers)] = api.submits
        assert thread_id != threading.get_ident()
        assert answers == [{"question_id": 1, "answer": None}, {"question_id": 2, "answer": "B"}]

        # Further expiry signals and submits reuse the first result
        attempt.timer.cancelled = False
        attempt.timer.tick()
        assert attempt.submit() is result
        assert len(api.submits) == 1

    def test_loop_stays_responsive(self):
        api = FakeExamApi(NOW + timedelta(seconds=1))
        attempt = ExamAttempt(api, 1, clock=fixed_clock(), interval=0).open()
        released = threading.Event()
        heartbeats = []
        original = api.submit

        def slow_submit(exam_id, answers):
            released.wait(timeout=5)
            return original(exam_id, answers)

        api.submit = slow_submit

        async def heartbeat():
            while not attempt.submitted:
                heartbeats.append(1)
                if len(heartbeats) == 3:
                    released.set()
                await asyncio.sleep(0.01)

        async def scenario():
            return await asyncio.gather(attempt.run(), heartbeat())

        result, _ = asyncio.run(scenario())
        assert result["status"] == "completed"
        assert len(heartbeats) >= 3

    def test_failure_is_reported(self):
        api = FakeExamApi(NOW + timedelta(seconds=1), fail=True)
        attempt = ExamAttempt(api, 1, clock=fixed_clock(), interval=0).open()
        with pytest.raises(ApiRequestError):
            asyncio.run(attempt.run())
        assert attempt.forced
        assert not attempt.submitted
        assert attempt.error.status_code == 503
        assert len(api.submits) == 1


def test_teacher_cannot_attempt(app, teacher, exam, questions):
    from fastapi.testclient import TestClient

    with TestClient(app) as session:
        api = ExamApi("http://testserver/api", session=session)
        api.login(teacher.username, TEACHER_PASSWORD)
        with pytest.raises(ApiRequestError) as e:
            api.start(exam.id)
        assert e.value.status_code == 403
