"""
Exam attempt lifecycle: starting an attempt, grading a batch of answers and
finalizing the submission.

A submission moves in_progress -> completed exactly once. Grading runs in a
single storage transaction, so a rejected batch leaves no Answer rows and no
half-finished Submission behind.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from examhub.errors import AccessDenied, Conflict, NotFound, ValidationFailed
from examhub.models import Exam, ExamStatus, Submission, SubmissionStatus, User, UserRole
from examhub.models.clock import utcnow
from examhub.schemas import AnswerItem, ScoreStatistics
from examhub.storage import DuplicateRecord, Storage

logger = logging.getLogger(__name__)


class ExamWindow:
    """Optional server-side enforcement of the exam's time window."""

    def __init__(self, enforce: bool = False, grace_seconds: int = 0):
        self.enforce = enforce
        self.grace = timedelta(seconds=grace_seconds)

    def check_start(self, exam: Exam, now: datetime) -> None:
        if not self.enforce:
            return
        if now < exam.start_time:
            raise Conflict("Exam has not started yet")
        if now > exam.end_time:
            raise Conflict("Exam has already ended")

    def check_submit(self, exam: Exam, now: datetime) -> None:
        if self.enforce and now > exam.end_time + self.grace:
            raise Conflict("Exam has already ended")


def _load_for_student(storage: Storage, exam_id: int, student: User) -> Tuple[Exam, Optional[Submission]]:
    """Preconditions shared by start and submit, checked in order."""
    if student.role != UserRole.STUDENT:
        raise AccessDenied()
    exam = storage.get_exam(exam_id)
    if exam is None:
        raise NotFound("Exam not found")
    if exam.class_name != student.class_name:
        raise AccessDenied()
    if exam.status == ExamStatus.DRAFT:
        raise NotFound("Exam not found")
    existing = storage.find_submission(exam.id, student.id)
    if existing is not None and existing.is_completed:
        raise Conflict("Exam already submitted")
    return exam, existing


def start_attempt(
    storage: Storage,
    exam_id: int,
    student: User,
    window: Optional[ExamWindow] = None,
    now: Optional[datetime] = None,
) -> Submission:
    """Return the student's in-progress submission, creating it if needed."""
    now = now or utcnow()
    exam, existing = _load_for_student(storage, exam_id, student)
    (window or ExamWindow()).check_start(exam, now)
    if existing is not None:
        return existing
    try:
        with storage.transaction():
            submission = storage.create_submission({
                "exam_id": exam.id,
                "user_id": student.id,
                "start_time": now,
                "status": SubmissionStatus.IN_PROGRESS,
            })
    except DuplicateRecord:
        # Lost a race with a parallel start; the winner's row is the attempt
        submission = storage.find_submission(exam.id, student.id)
        if submission is None or submission.is_completed:
            raise Conflict("Exam already submitted")
    logger.info("Exam %s started by user %s (submission %s)", exam.id, student.id, submission.id)
    return submission


def _reject_duplicates(answers: Sequence[AnswerItem]) -> None:
    seen = set()
    errors = []
    for index, item in enumerate(answers):
        if item.question_id in seen:
            errors.append({
                "loc": ["body", "answers", index, "question_id"],
                "msg": f"Question {item.question_id} answered more than once",
                "type": "duplicate",
            })
        seen.add(item.question_id)
    if errors:
        raise ValidationFailed("Duplicate answers in submission", errors=errors)


def submit_exam(
    storage: Storage,
    exam_id: int,
    student: User,
    answers: Sequence[AnswerItem],
    window: Optional[ExamWindow] = None,
    now: Optional[datetime] = None,
) -> Submission:
    """Grade a batch of answers and finalize the student's submission."""
    now = now or utcnow()
    exam, existing = _load_for_student(storage, exam_id, student)

    if not answers:
        logger.warning("Empty submission for exam %s from user %s", exam.id, student.id)
        raise ValidationFailed("No answers provided")
    _reject_duplicates(answers)
    (window or ExamWindow()).check_submit(exam, now)

    try:
        with storage.transaction():
            questions = {q.id: q for q in storage.get_questions_by_exam(exam.id)}

            if existing is not None:
                submission = storage.find_submission(exam.id, student.id, for_update=True)
                if submission is None or submission.is_completed:
                    raise Conflict("Exam already submitted")
            else:
                submission = storage.create_submission({
                    "exam_id": exam.id,
                    "user_id": student.id,
                    "start_time": now,
                    "status": SubmissionStatus.IN_PROGRESS,
                })

            score = 0
            for index, item in enumerate(answers):
                question = questions.get(item.question_id)
                if question is None:
                    raise ValidationFailed(
                        f"Question with ID {item.question_id} not found",
                        errors=[{
                            "loc": ["body", "answers", index, "question_id"],
                            "msg": "Unknown question for this exam",
                            "type": "not_found",
                        }],
                    )
                is_correct = item.answer is not None and item.answer == question.correct_answer
                storage.save_answer({
                    "submission_id": submission.id,
                    "question_id": question.id,
                    "answer": item.answer,
                    "is_correct": is_correct,
                })
                if is_correct:
                    score += question.points

            finalized = storage.update_submission(submission.id, {
                "end_time": now,
                "score": score,
                "status": SubmissionStatus.COMPLETED,
            })
    except ValidationFailed as e:
        logger.warning("Rejected submission for exam %s from user %s: %s", exam.id, student.id, e.message)
        raise
    except DuplicateRecord as e:
        logger.warning("Concurrent submission for exam %s from user %s", exam.id, student.id)
        raise Conflict("Exam already submitted") from e

    logger.info(
        "Exam %s submitted by user %s: score=%s across %d answers",
        exam.id, student.id, score, len(answers),
    )
    return finalized


def exam_statistics(storage: Storage, exam: Exam, submissions: List[Submission]) -> ScoreStatistics:
    max_score = sum(q.points for q in storage.get_questions_by_exam(exam.id))
    scores = [s.score or 0 for s in submissions if s.is_completed]
    if not scores:
        return ScoreStatistics(average_score=0, highest_score=0, lowest_score=0, max_score=max_score)
    return ScoreStatistics(
        average_score=round(sum(scores) / len(scores), 1),
        highest_score=max(scores),
        lowest_score=min(scores),
        max_score=max_score,
    )
