"""
In-memory storage: one arena of rows per table plus secondary indexes.

Rows are plain dicts keyed by id; reads hand out fresh model instances so
callers never mutate stored state behind the storage's back. Every write
first records the prior value of the entry it touches, so rolling back a
transaction costs as much as the transaction wrote, not the whole store.
"""
import copy
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional, Set, Tuple

from examhub.models import Answer, Exam, Question, Submission, User, UserRole
from examhub.storage.base import DuplicateRecord, Storage

_MODELS = {
    "users": User,
    "exams": Exam,
    "questions": Question,
    "submissions": Submission,
    "answers": Answer,
}


def _column_defaults(model, row: Dict) -> Dict:
    filled = dict(row)
    columns = model.__table__.columns
    for key in filled:
        if key not in columns:
            raise ValueError(f"Unknown column {model.__tablename__}.{key}")
    for column in columns:
        if column.name in filled or column.name == "id":
            continue
        default = column.default
        if default is None:
            filled[column.name] = None
        elif default.is_callable:
            filled[column.name] = default.arg(None)
        else:
            filled[column.name] = default.arg
    return filled


_MISSING = object()


class MemoryStorage(Storage):
    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._state = self._empty_state()
        # Undo log of the open transaction: (container, key, prior value)
        self._journal: List[Tuple[Dict, object, object]] = []
        self._journaled: Set[Tuple[int, object]] = set()

    @staticmethod
    def _empty_state() -> Dict:
        return {
            "rows": {name: {} for name in _MODELS},
            "next_id": {name: 1 for name in _MODELS},
            # Secondary indexes
            "usernames": {},          # username -> user id
            "student_codes": {},      # student code -> user id
            "exam_questions": {},     # exam id -> [question id]
            "exam_user": {},          # "exam:user" -> submission id
            "submission_answers": {}, # submission id -> {question id: answer id}
        }

    @contextmanager
    def transaction(self):
        with self._lock:
            self._depth += 1
            try:
                yield self
            except BaseException:
                if self._depth == 1:
                    self._undo()
                raise
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._journal = []
                    self._journaled = set()

    def _touch(self, container: Dict, key) -> None:
        """Remember container[key] as it was before the first write in this transaction."""
        marker = (id(container), key)
        if marker in self._journaled:
            return
        self._journaled.add(marker)
        self._journal.append((container, key, copy.deepcopy(container.get(key, _MISSING))))

    def _undo(self) -> None:
        for container, key, prior in reversed(self._journal):
            if prior is _MISSING:
                container.pop(key, None)
            else:
                container[key] = prior

    def _set(self, container: Dict, key, value) -> None:
        self._touch(container, key)
        container[key] = value

    def _pop(self, container: Dict, key):
        self._touch(container, key)
        return container.pop(key, None)

    # ------------------------------------------------------------------
    # Row helpers
    # ------------------------------------------------------------------
    def _rows(self, table: str) -> Dict[int, Dict]:
        return self._state["rows"][table]

    def _index(self, name: str) -> Dict:
        return self._state[name]

    def _insert(self, table: str, data: Dict) -> Dict:
        row = _column_defaults(_MODELS[table], data)
        next_ids = self._state["next_id"]
        row_id = next_ids[table]
        self._set(next_ids, table, row_id + 1)
        row["id"] = row_id
        self._set(self._rows(table), row_id, row)
        return row

    def _update(self, table: str, row_id: int, data: Dict) -> Optional[Dict]:
        rows = self._rows(table)
        row = rows.get(row_id)
        if row is None:
            return None
        columns = _MODELS[table].__table__.columns
        for key in data:
            if key == "id" or key not in columns:
                raise ValueError(f"Cannot update {table}.{key}")
        self._touch(rows, row_id)
        row.update(data)
        return row

    def _model(self, table: str, row: Optional[Dict]):
        if row is None:
            return None
        return _MODELS[table](**copy.deepcopy(row))

    def _get(self, table: str, row_id: int):
        with self._lock:
            return self._model(table, self._rows(table).get(row_id))

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def get_user(self, user_id: int) -> Optional[User]:
        return self._get("users", user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            user_id = self._index("usernames").get(username)
            return self._get("users", user_id) if user_id else None

    def create_user(self, data: Dict) -> User:
        with self.transaction():
            usernames, codes = self._index("usernames"), self._index("student_codes")
            username = data["username"]
            code = data.get("student_code")
            if username in usernames:
                raise DuplicateRecord(f"Username {username} already exists")
            if code and code in codes:
                raise DuplicateRecord(f"Student code {code} already exists")
            row = self._insert("users", data)
            self._set(usernames, username, row["id"])
            if code:
                self._set(codes, code, row["id"])
            return self._model("users", row)

    def update_user(self, user_id: int, data: Dict) -> Optional[User]:
        with self.transaction():
            current = self._rows("users").get(user_id)
            if current is None:
                return None
            usernames, codes = self._index("usernames"), self._index("student_codes")
            new_username = data.get("username", current["username"])
            if new_username != current["username"]:
                if new_username in usernames:
                    raise DuplicateRecord(f"Username {new_username} already exists")
                self._pop(usernames, current["username"])
                self._set(usernames, new_username, user_id)
            new_code = data.get("student_code", current["student_code"])
            if new_code != current["student_code"]:
                if new_code and new_code in codes:
                    raise DuplicateRecord(f"Student code {new_code} already exists")
                if current["student_code"]:
                    self._pop(codes, current["student_code"])
                if new_code:
                    self._set(codes, new_code, user_id)
            return self._model("users", self._update("users", user_id, data))

    def get_students_by_class(self, class_name: str) -> List[User]:
        with self._lock:
            return [
                self._model("users", row)
                for row in self._rows("users").values()
                if row["role"] == UserRole.STUDENT and row["class_name"] == class_name
            ]

    def get_all_classes(self) -> List[str]:
        with self._lock:
            classes = {
                row["class_name"]
                for row in self._rows("users").values()
                if row["role"] == UserRole.STUDENT and row["class_name"]
            }
        return sorted(classes)

    # ------------------------------------------------------------------
    # Exams
    # ------------------------------------------------------------------
    def create_exam(self, data: Dict) -> Exam:
        with self.transaction():
            row = self._insert("exams", data)
            self._set(self._index("exam_questions"), row["id"], [])
            return self._model("exams", row)

    def get_exam(self, exam_id: int) -> Optional[Exam]:
        return self._get("exams", exam_id)

    def update_exam(self, exam_id: int, data: Dict) -> Optional[Exam]:
        with self.transaction():
            return self._model("exams", self._update("exams", exam_id, data))

    def delete_exam(self, exam_id: int) -> bool:
        with self.transaction():
            if exam_id not in self._rows("exams"):
                return False
            for question_id in self._pop(self._index("exam_questions"), exam_id) or []:
                self._pop(self._rows("questions"), question_id)
            for submission_id, row in list(self._rows("submissions").items()):
                if row["exam_id"] != exam_id:
                    continue
                for answer_id in (self._pop(self._index("submission_answers"), submission_id) or {}).values():
                    self._pop(self._rows("answers"), answer_id)
                self._pop(self._index("exam_user"), f"{exam_id}:{row['user_id']}")
                self._pop(self._rows("submissions"), submission_id)
            self._pop(self._rows("exams"), exam_id)
            return True

    def get_exams_for_teacher(self, teacher_id: int) -> List[Exam]:
        with self._lock:
            return [
                self._model("exams", row)
                for row in self._rows("exams").values()
                if row["created_by_id"] == teacher_id
            ]

    def get_exams_for_class(self, class_name: str) -> List[Exam]:
        with self._lock:
            return [
                self._model("exams", row)
                for row in self._rows("exams").values()
                if row["class_name"] == class_name
            ]

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------
    def create_question(self, data: Dict) -> Question:
        with self.transaction():
            exam_questions = self._index("exam_questions")
            if data.get("exam_id") not in self._rows("exams"):
                raise ValueError(f"Exam {data.get('exam_id')} does not exist")
            row = self._insert("questions", data)
            self._touch(exam_questions, row["exam_id"])
            exam_questions[row["exam_id"]].append(row["id"])
            return self._model("questions", row)

    def get_question(self, question_id: int) -> Optional[Question]:
        return self._get("questions", question_id)

    def get_questions_by_exam(self, exam_id: int) -> List[Question]:
        with self._lock:
            ids = self._index("exam_questions").get(exam_id, [])
            return [self._model("questions", self._rows("questions")[qid]) for qid in sorted(ids)]

    def update_question(self, question_id: int, data: Dict) -> Optional[Question]:
        with self.transaction():
            return self._model("questions", self._update("questions", question_id, data))

    def delete_question(self, question_id: int) -> bool:
        with self.transaction():
            row = self._pop(self._rows("questions"), question_id)
            if row is None:
                return False
            exam_questions = self._index("exam_questions")
            self._touch(exam_questions, row["exam_id"])
            exam_questions[row["exam_id"]].remove(question_id)
            return True

    def count_answers_for_question(self, question_id: int) -> int:
        with self._lock:
            return sum(1 for row in self._rows("answers").values() if row["question_id"] == question_id)

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------
    def create_submission(self, data: Dict) -> Submission:
        with self.transaction():
            exam_user = self._index("exam_user")
            key = f"{data['exam_id']}:{data['user_id']}"
            if key in exam_user:
                raise DuplicateRecord(f"Submission for exam {data['exam_id']} and user {data['user_id']} exists")
            row = self._insert("submissions", data)
            self._set(exam_user, key, row["id"])
            self._set(self._index("submission_answers"), row["id"], {})
            return self._model("submissions", row)

    def get_submission(self, submission_id: int) -> Optional[Submission]:
        return self._get("submissions", submission_id)

    def update_submission(self, submission_id: int, data: Dict) -> Optional[Submission]:
        with self.transaction():
            return self._model("submissions", self._update("submissions", submission_id, data))

    def find_submission(self, exam_id: int, user_id: int, for_update: bool = False) -> Optional[Submission]:
        with self._lock:
            submission_id = self._index("exam_user").get(f"{exam_id}:{user_id}")
            return self._get("submissions", submission_id) if submission_id else None

    def get_submissions_by_exam(self, exam_id: int) -> List[Submission]:
        with self._lock:
            return [
                self._model("submissions", row)
                for row in self._rows("submissions").values()
                if row["exam_id"] == exam_id
            ]

    def get_submissions_by_student(self, user_id: int) -> List[Submission]:
        with self._lock:
            return [
                self._model("submissions", row)
                for row in self._rows("submissions").values()
                if row["user_id"] == user_id
            ]

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------
    def save_answer(self, data: Dict) -> Answer:
        with self.transaction():
            submission_answers = self._index("submission_answers")
            by_question = submission_answers.get(data["submission_id"])
            if by_question is None:
                raise ValueError(f"Submission {data['submission_id']} does not exist")
            if data["question_id"] in by_question:
                raise DuplicateRecord(
                    f"Answer for question {data['question_id']} already recorded"
                )
            row = self._insert("answers", data)
            self._touch(submission_answers, data["submission_id"])
            by_question[row["question_id"]] = row["id"]
            return self._model("answers", row)

    def get_answers_by_submission(self, submission_id: int) -> List[Answer]:
        with self._lock:
            ids = self._index("submission_answers").get(submission_id, {}).values()
            return [self._model("answers", self._rows("answers")[aid]) for aid in sorted(ids)]
