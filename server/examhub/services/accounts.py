"""
Account creation helpers: password hashing and username generation.
"""
import logging
import random
import re
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from examhub.errors import AuthenticationRequired, Conflict
from examhub.models import User, UserRole
from examhub.storage import DuplicateRecord, Storage

logger = logging.getLogger(__name__)

MAX_USERNAME_LENGTH = 50


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(user: User, password: str) -> bool:
    return bool(user.password_hash) and check_password_hash(user.password_hash, password)


def slugify_name(full_name: str) -> str:
    """'Nguyen Van  An' -> 'nguyen.van.an'; characters outside [a-z0-9.] are dropped."""
    slug = re.sub(r"\s+", ".", full_name.strip().lower())
    return re.sub(r"[^a-z0-9.]", "", slug)


def teacher_username(full_name: str) -> str:
    return slugify_name(full_name) or "teacher"


def student_username(student_code: str, full_name: str) -> str:
    return f"{student_code.lower()}-{slugify_name(full_name)}"[:MAX_USERNAME_LENGTH]


def _unique_username(storage: Storage, base: str) -> str:
    if storage.get_user_by_username(base) is None:
        return base
    for _ in range(20):
        candidate = f"{base}{random.randint(0, 999)}"
        if storage.get_user_by_username(candidate) is None:
            return candidate
    raise Conflict("Could not allocate a unique username")


def register_teacher(storage: Storage, full_name: str, email: str, password: str) -> User:
    username = _unique_username(storage, teacher_username(full_name))
    try:
        user = storage.create_user({
            "username": username,
            "password_hash": hash_password(password),
            "full_name": full_name,
            "email": email,
            "role": UserRole.TEACHER,
        })
    except DuplicateRecord as e:
        raise Conflict("Username already exists") from e
    logger.info("Registered teacher %s (id=%s)", user.username, user.id)
    return user


def register_student(
    storage: Storage,
    student_code: str,
    full_name: str,
    class_name: str,
    password: Optional[str] = None,
) -> User:
    username = _unique_username(storage, student_username(student_code, full_name))
    try:
        user = storage.create_user({
            "username": username,
            "password_hash": hash_password(password or student_code),
            "full_name": full_name,
            "role": UserRole.STUDENT,
            "student_code": student_code,
            "class_name": class_name,
        })
    except DuplicateRecord as e:
        raise Conflict(f"Student code {student_code} is already registered") from e
    logger.info("Registered student %s in class %s", user.username, class_name)
    return user


def authenticate(storage: Storage, username: str, password: str) -> User:
    user = storage.get_user_by_username(username)
    if user is None or not verify_password(user, password):
        logger.warning("Failed login for %s", username)
        raise AuthenticationRequired("Invalid username or password")
    return user
