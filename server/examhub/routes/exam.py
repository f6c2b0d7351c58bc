import asyncio
import json
import logging
from typing import List

from fastapi import APIRouter, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from examhub.config import settings
from examhub.errors import AccessDenied, NotFound, ValidationFailed
from examhub.models import ExamStatus, User, UserRole
from examhub.routes.deps import current_user, get_storage, owned_exam, require_student, require_teacher
from examhub.schemas import (
    ExamCreate,
    ExamResponse,
    ExamResultsResponse,
    ExamUpdate,
    QuestionCreate,
    QuestionResponse,
    StudentQuestionResponse,
    SubmissionResponse,
    SubmissionWithStudent,
    SubmitExamRequest,
    UserResponse,
)
from examhub.services import grading
from examhub.services.latex_validator import validate_question_math
from examhub.services.sample_data import create_sample_exams
from examhub.storage import Storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Exam"])


def _exam_window() -> grading.ExamWindow:
    return grading.ExamWindow(settings.enforce_exam_window, settings.submission_grace_seconds)


def _visible_exam(storage: Storage, exam_id: int, user: User):
    """Teachers see their own exams; students see non-draft exams of their class."""
    exam = storage.get_exam(exam_id)
    if exam is None:
        raise NotFound("Exam not found")
    if user.role == UserRole.TEACHER:
        if exam.created_by_id != user.id:
            raise AccessDenied()
    else:
        if exam.class_name != user.class_name:
            raise AccessDenied()
        if exam.status == ExamStatus.DRAFT:
            raise NotFound("Exam not found")
    return exam


# =============================================================================
# Exams
# =============================================================================

@router.get("/exams", response_model=List[ExamResponse])
def list_exams(user: User = Depends(current_user), storage: Storage = Depends(get_storage)):
    if user.role == UserRole.TEACHER:
        return storage.get_exams_for_teacher(user.id)
    exams = storage.get_exams_for_class(user.class_name or "")
    return [exam for exam in exams if exam.status != ExamStatus.DRAFT]


@router.post("/exams", response_model=ExamResponse, status_code=201)
def create_exam(
    body: ExamCreate,
    teacher: User = Depends(require_teacher),
    storage: Storage = Depends(get_storage),
):
    exam = storage.create_exam({**body.model_dump(), "created_by_id": teacher.id})
    logger.info("Teacher %s created exam %s for class %s", teacher.id, exam.id, exam.class_name)
    return exam


@router.get("/exams/{exam_id}", response_model=ExamResponse)
def get_exam(exam_id: int, user: User = Depends(current_user), storage: Storage = Depends(get_storage)):
    return _visible_exam(storage, exam_id, user)


@router.put("/exams/{exam_id}", response_model=ExamResponse)
def update_exam(
    exam_id: int,
    body: ExamUpdate,
    teacher: User = Depends(require_teacher),
    storage: Storage = Depends(get_storage),
):
    exam = owned_exam(storage, exam_id, teacher)
    changes = body.model_dump(exclude_unset=True)
    for key in ("title", "subject", "class_name", "start_time", "end_time", "duration", "status"):
        if key in changes and changes[key] is None:
            raise ValidationFailed(errors=[{"loc": ["body", key], "msg": "may not be null", "type": "null"}])
    start = changes.get("start_time", exam.start_time)
    end = changes.get("end_time", exam.end_time)
    if start >= end:
        raise ValidationFailed(errors=[{
            "loc": ["body", "end_time"],
            "msg": "start_time must be before end_time",
            "type": "value_error",
        }])
    return storage.update_exam(exam_id, changes)


@router.delete("/exams/{exam_id}", status_code=204)
def delete_exam(exam_id: int, teacher: User = Depends(require_teacher), storage: Storage = Depends(get_storage)):
    owned_exam(storage, exam_id, teacher)
    storage.delete_exam(exam_id)
    logger.info("Teacher %s deleted exam %s", teacher.id, exam_id)
    return Response(status_code=204)


@router.post("/sample-data", response_model=List[ExamResponse], status_code=201)
def load_sample_data(teacher: User = Depends(require_teacher), storage: Storage = Depends(get_storage)):
    """Create demo exams with questions owned by the caller."""
    return create_sample_exams(storage, teacher)


# =============================================================================
# Questions
# =============================================================================

@router.get("/exams/{exam_id}/questions")
def list_questions(exam_id: int, user: User = Depends(current_user), storage: Storage = Depends(get_storage)):
    """
    Questions of an exam, ordered by id.
    Students get them without the correct answer.
    """
    exam = _visible_exam(storage, exam_id, user)
    questions = storage.get_questions_by_exam(exam.id)
    schema = QuestionResponse if user.role == UserRole.TEACHER else StudentQuestionResponse
    return [schema.model_validate(q) for q in questions]


@router.post("/exams/{exam_id}/questions", response_model=QuestionResponse, status_code=201)
def create_question(
    exam_id: int,
    body: QuestionCreate,
    teacher: User = Depends(require_teacher),
    storage: Storage = Depends(get_storage),
):
    exam = owned_exam(storage, exam_id, teacher)
    data = body.model_dump()
    problems = validate_question_math(data["content"], data["options"])
    if problems:
        raise ValidationFailed("Invalid math markup", errors=problems)
    return storage.create_question({**data, "exam_id": exam.id})


# =============================================================================
# Taking the exam
# =============================================================================

@router.post("/exams/{exam_id}/start", response_model=SubmissionResponse)
def start_exam(exam_id: int, student: User = Depends(require_student), storage: Storage = Depends(get_storage)):
    """Open (or resume) the caller's in-progress attempt."""
    return grading.start_attempt(storage, exam_id, student, window=_exam_window())


@router.post("/exams/{exam_id}/submit", response_model=SubmissionResponse)
async def submit_exam(
    exam_id: int,
    body: SubmitExamRequest,
    request: Request,
    student: User = Depends(require_student),
    storage: Storage = Depends(get_storage),
):
    """
    Student submits their exam.
    Answers are graded in order and the submission is finalized atomically.
    """
    submission = await run_in_threadpool(
        grading.submit_exam, storage, exam_id, student, body.answers, _exam_window()
    )
    result = SubmissionResponse.model_validate(submission)

    # Push to teachers watching this exam
    await request.app.state.sse_manager.broadcast(exam_id, {
        "type": "submission_completed",
        "data": {
            **result.model_dump(mode="json"),
            "student": {"id": student.id, "full_name": student.full_name},
        },
    })
    return result


# =============================================================================
# Results
# =============================================================================

@router.get("/exams/{exam_id}/submissions", response_model=List[SubmissionWithStudent])
def list_exam_submissions(
    exam_id: int,
    teacher: User = Depends(require_teacher),
    storage: Storage = Depends(get_storage),
):
    owned_exam(storage, exam_id, teacher)
    result = []
    for submission in storage.get_submissions_by_exam(exam_id):
        student = storage.get_user(submission.user_id)
        if student is None or student.role != UserRole.STUDENT:
            continue
        result.append(SubmissionWithStudent(
            **SubmissionResponse.model_validate(submission).model_dump(),
            student=UserResponse.model_validate(student),
        ))
    return result


@router.get("/exams/{exam_id}/results", response_model=ExamResultsResponse)
def get_exam_results(
    exam_id: int,
    teacher: User = Depends(require_teacher),
    storage: Storage = Depends(get_storage),
):
    """Score statistics over completed submissions."""
    exam = owned_exam(storage, exam_id, teacher)
    submissions = storage.get_submissions_by_exam(exam.id)
    return ExamResultsResponse(
        exam_id=exam.id,
        total_submissions=len(submissions),
        completed_submissions=sum(1 for s in submissions if s.is_completed),
        statistics=grading.exam_statistics(storage, exam, submissions),
    )


@router.get("/exams/{exam_id}/events")
async def exam_events(
    exam_id: int,
    request: Request,
    teacher: User = Depends(require_teacher),
    storage: Storage = Depends(get_storage),
):
    """
    SSE endpoint streaming submission_completed events for one exam.
    """
    owned_exam(storage, exam_id, teacher)
    sse_manager = request.app.state.sse_manager
    queue = await sse_manager.connect(exam_id)

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=30.0)
                    yield f"data: {json.dumps(data)}\n\n"
                except asyncio.TimeoutError:
                    # Keep-alive comment
                    yield ": ping\n\n"
        finally:
            sse_manager.disconnect(exam_id, queue)

    return StreamingResponse(event_generator(), media_type="text/event-stream")
