from typing import List

from fastapi import APIRouter, Depends

from examhub.errors import AccessDenied, NotFound
from examhub.models import User, UserRole
from examhub.routes.deps import current_user, get_storage, require_student
from examhub.schemas import (
    AnswerResponse,
    AnswerWithQuestion,
    ExamResponse,
    QuestionResponse,
    SubmissionResponse,
    SubmissionWithExam,
)
from examhub.storage import Storage

router = APIRouter(tags=["Submissions"])


@router.get("/submissions/student", response_model=List[SubmissionWithExam])
def list_my_submissions(student: User = Depends(require_student), storage: Storage = Depends(get_storage)):
    """The caller's submissions, each with its exam."""
    result = []
    for submission in storage.get_submissions_by_student(student.id):
        exam = storage.get_exam(submission.exam_id)
        result.append(SubmissionWithExam(
            **SubmissionResponse.model_validate(submission).model_dump(),
            exam=ExamResponse.model_validate(exam) if exam else None,
        ))
    return result


@router.get("/submissions/{submission_id}/answers", response_model=List[AnswerWithQuestion])
def get_submission_answers(
    submission_id: int,
    user: User = Depends(current_user),
    storage: Storage = Depends(get_storage),
):
    """
    Graded answers of a submission.
    Students may only read their own; teachers only those of their own exams.
    """
    submission = storage.get_submission(submission_id)
    if submission is None:
        raise NotFound("Submission not found")

    if user.role == UserRole.STUDENT:
        if submission.user_id != user.id:
            raise AccessDenied()
    else:
        exam = storage.get_exam(submission.exam_id)
        if exam is None or exam.created_by_id != user.id:
            raise AccessDenied()

    result = []
    for answer in storage.get_answers_by_submission(submission.id):
        question = storage.get_question(answer.question_id)
        result.append(AnswerWithQuestion(
            **AnswerResponse.model_validate(answer).model_dump(),
            question=QuestionResponse.model_validate(question) if question else None,
        ))
    return result
