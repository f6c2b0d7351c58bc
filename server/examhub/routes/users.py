from typing import Dict, List, Optional, Union

from fastapi import APIRouter, Depends

from examhub.models import User
from examhub.routes.deps import get_storage, require_teacher
from examhub.schemas import RegisterStudentRequest, UserResponse
from examhub.services import accounts
from examhub.storage import Storage

router = APIRouter(tags=["Users"])


@router.get("/users/students", response_model=Union[List[UserResponse], Dict[str, List[UserResponse]]])
def list_students(
    class_name: Optional[str] = None,
    teacher: User = Depends(require_teacher),
    storage: Storage = Depends(get_storage),
):
    """
    Students of one class, or every class keyed by name when no class is given.
    """
    if class_name:
        return storage.get_students_by_class(class_name)
    return {name: storage.get_students_by_class(name) for name in storage.get_all_classes()}


@router.post("/users/students", response_model=UserResponse, status_code=201)
def create_student(
    body: RegisterStudentRequest,
    teacher: User = Depends(require_teacher),
    storage: Storage = Depends(get_storage),
):
    return accounts.register_student(
        storage, body.student_code, body.full_name, body.class_name, body.password
    )


@router.get("/classes", response_model=List[str])
def list_classes(teacher: User = Depends(require_teacher), storage: Storage = Depends(get_storage)):
    return storage.get_all_classes()
