import asyncio

from conftest import TEACHER_PASSWORD
from examhub.services import accounts
from examhub.services.sse_manager import SSEConnectionManager


def submit(client, exam_id, *pairs):
    return client.post(f"/api/exams/{exam_id}/submit", json={
        "answers": [{"question_id": qid, "answer": label} for qid, label in pairs],
    })


def test_submit_end_to_end(student_client, teacher_client, exam, questions, student):
    q1, q2, q3 = questions
    started = student_client.post(f"/api/exams/{exam.id}/start")
    assert started.status_code == 200
    assert started.json()["status"] == "in_progress"

    response = submit(student_client, exam.id, (q1.id, "A"), (q2.id, "B"), (q3.id, "D"))
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == started.json()["id"]
    assert body["score"] == 3
    assert body["status"] == "completed"
    assert body["user_id"] == student.id
    assert body["end_time"] is not None

    answers = student_client.get(f"/api/submissions/{body['id']}/answers").json()
    assert [a["is_correct"] for a in answers] == [True, True, False]
    assert answers[2]["question"]["correct_answer"] == "C"

    assert submit(student_client, exam.id, (q1.id, "A")).status_code == 409
    assert student_client.get(f"/api/submissions/{body['id']}/answers").json() == answers


def test_submit_error_statuses(client, student_client, outsider_client, teacher_client, exam, questions):
    q1 = questions[0]
    assert submit(client, exam.id, (q1.id, "A")).status_code == 401
    assert submit(teacher_client, exam.id, (q1.id, "A")).status_code == 403
    assert submit(student_client, 999, (q1.id, "A")).status_code == 404
    assert submit(outsider_client, exam.id, (q1.id, "A")).status_code == 403

    empty = student_client.post(f"/api/exams/{exam.id}/submit", json={"answers": []})
    assert empty.status_code == 400
    assert empty.json()["detail"] == "No answers provided"

    unknown = submit(student_client, exam.id, (q1.id, "A"), (12345, "B"))
    assert unknown.status_code == 400
    assert unknown.json()["errors"][0]["loc"] == ["body", "answers", 1, "question_id"]

    bad_label = submit(student_client, exam.id, (q1.id, "E"))
    assert bad_label.status_code == 400

    # None of the rejected batches left anything behind
    assert student_client.get("/api/submissions/student").json() == []


def test_submit_broadcasts_to_watchers(app, student_client, exam, questions, student):
    events = []

    async def record(exam_id, message):
        events.append((exam_id, message))

    app.state.sse_manager.broadcast = record
    submit(student_client, exam.id, (questions[0].id, "A"))

    [(exam_id, message)] = events
    assert exam_id == exam.id
    assert message["type"] == "submission_completed"
    assert message["data"]["score"] == 1
    assert message["data"]["student"] == {"id": student.id, "full_name": student.full_name}


def test_rejected_submit_does_not_broadcast(app, student_client, exam, questions):
    events = []

    async def record(exam_id, message):
        events.append(message)

    app.state.sse_manager.broadcast = record
    submit(student_client, exam.id, (999, "A"))
    assert events == []


def test_student_submissions_include_exam(student_client, exam, questions):
    submit(student_client, exam.id, (questions[1].id, "B"))
    [row] = student_client.get("/api/submissions/student").json()
    assert row["score"] == 2
    assert row["exam"]["id"] == exam.id
    assert row["exam"]["title"] == exam.title


def test_answers_access_rules(login, storage, student_client, teacher_client, other_teacher, exam, questions):
    submission = submit(student_client, exam.id, (questions[0].id, "A")).json()

    classmate = accounts.register_student(storage, "S009", "Classmate", "10A")
    classmate_client = login(classmate.username, "S009")
    assert classmate_client.get(f"/api/submissions/{submission['id']}/answers").status_code == 403

    stranger = login(other_teacher.username, TEACHER_PASSWORD)
    assert stranger.get(f"/api/submissions/{submission['id']}/answers").status_code == 403

    assert teacher_client.get(f"/api/submissions/{submission['id']}/answers").status_code == 200
    assert teacher_client.get("/api/submissions/999/answers").status_code == 404


def test_teacher_views_submissions_and_results(storage, login, teacher_client, student_client, exam, questions, student):
    q1, q2, q3 = questions
    submit(student_client, exam.id, (q1.id, "A"), (q2.id, "C"))
    classmate = accounts.register_student(storage, "S010", "Classmate", "10A")
    submit(login(classmate.username, "S010"), exam.id, (q2.id, "B"), (q3.id, "C"))

    rows = teacher_client.get(f"/api/exams/{exam.id}/submissions").json()
    assert {r["student"]["id"] for r in rows} == {student.id, classmate.id}

    results = teacher_client.get(f"/api/exams/{exam.id}/results").json()
    assert results["total_submissions"] == 2
    assert results["completed_submissions"] == 2
    assert results["statistics"] == {
        "average_score": 3.0,
        "highest_score": 5,
        "lowest_score": 1,
        "max_score": 6,
    }


def test_results_owner_only(login, other_teacher, student_client, exam):
    c = login(other_teacher.username, TEACHER_PASSWORD)
    assert c.get(f"/api/exams/{exam.id}/results").status_code == 403
    assert c.get(f"/api/exams/{exam.id}/submissions").status_code == 403
    assert c.get(f"/api/exams/{exam.id}/events").status_code == 403
    assert student_client.get(f"/api/exams/{exam.id}/results").status_code == 403


def test_sse_manager_fan_out():
    async def scenario():
        manager = SSEConnectionManager()
        first = await manager.connect(1)
        second = await manager.connect(1)
        other = await manager.connect(2)

        await manager.broadcast(1, {"type": "submission_completed"})
        assert first.get_nowait() == {"type": "submission_completed"}
        assert second.get_nowait() == {"type": "submission_completed"}
        assert other.empty()

        manager.disconnect(1, first)
        manager.disconnect(1, second)
        assert manager.listener_count(1) == 0
        assert 1 not in manager.active_connections
        # Disconnecting again is a no-op; other exams keep their listeners
        manager.disconnect(1, first)
        assert manager.listener_count(2) == 1

    asyncio.run(scenario())
