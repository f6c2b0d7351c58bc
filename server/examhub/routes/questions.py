import logging

from fastapi import APIRouter, Depends, Response

from examhub.errors import Conflict, NotFound, ValidationFailed
from examhub.models import Question, User
from examhub.routes.deps import get_storage, owned_exam, require_teacher
from examhub.schemas import QuestionResponse, QuestionUpdate
from examhub.services.latex_validator import validate_question_math
from examhub.storage import Storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Questions"])


def _owned_question(storage: Storage, question_id: int, teacher: User) -> Question:
    question = storage.get_question(question_id)
    if question is None:
        raise NotFound("Question not found")
    owned_exam(storage, question.exam_id, teacher)
    return question


@router.put("/questions/{question_id}", response_model=QuestionResponse)
def update_question(
    question_id: int,
    body: QuestionUpdate,
    teacher: User = Depends(require_teacher),
    storage: Storage = Depends(get_storage),
):
    question = _owned_question(storage, question_id, teacher)
    changes = body.model_dump(exclude_unset=True)
    for key in ("content", "options", "correct_answer", "points", "difficulty"):
        if key in changes and changes[key] is None:
            raise ValidationFailed(errors=[{"loc": ["body", key], "msg": "may not be null", "type": "null"}])

    if ("points" in changes or "correct_answer" in changes) and storage.count_answers_for_question(question_id):
        raise Conflict("Question already has submitted answers; its points and correct answer are fixed")

    problems = validate_question_math(
        changes.get("content", question.content),
        changes.get("options", question.options),
    )
    if problems:
        raise ValidationFailed("Invalid math markup", errors=problems)
    return storage.update_question(question_id, changes)


@router.delete("/questions/{question_id}", status_code=204)
def delete_question(
    question_id: int,
    teacher: User = Depends(require_teacher),
    storage: Storage = Depends(get_storage),
):
    """Questions that already have recorded answers cannot be deleted."""
    _owned_question(storage, question_id, teacher)
    if storage.count_answers_for_question(question_id):
        raise Conflict("Question already has submitted answers")
    storage.delete_question(question_id)
    logger.info("Teacher %s deleted question %s", teacher.id, question_id)
    return Response(status_code=204)
