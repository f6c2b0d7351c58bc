"""
Demo exams a new teacher can load to try the platform.
"""
import logging
from datetime import timedelta
from typing import List

from examhub.models import Difficulty, Exam, ExamStatus, User
from examhub.models.clock import utcnow
from examhub.storage import Storage

logger = logging.getLogger(__name__)

SAMPLE_EXAMS = [
    {
        "exam": {
            "title": "Basic Algebra",
            "subject": "mathematics",
            "class_name": "10A",
            "topic": "Algebra",
            "description": "Linear equations, quadratics and inequalities",
            "starts_in": timedelta(days=1),
            "length": timedelta(hours=2),
            "duration": 60,
            "status": ExamStatus.UPCOMING,
        },
        "questions": [
            {
                "content": "Solve: $2x + 3 = 7$",
                "options": {"A": "x = 1", "B": "x = 2", "C": "x = 3", "D": "x = 4"},
                "correct_answer": "B",
                "difficulty": Difficulty.EASY,
                "points": 2,
            },
            {
                "content": "If $f(x) = x^2 - 3x + 2$, compute $f(4)$",
                "options": {"A": "6", "B": "10", "C": "14", "D": "18"},
                "correct_answer": "A",
                "difficulty": Difficulty.MEDIUM,
                "points": 3,
            },
            {
                "content": "Solve the inequality $x^2 - 5x + 6 > 0$",
                "options": {
                    "A": "$x < 2$ or $x > 3$",
                    "B": "$x > 2$ or $x < 3$",
                    "C": "$2 < x < 3$",
                    "D": "$x < 2$ and $x > 3$",
                },
                "correct_answer": "A",
                "difficulty": Difficulty.HARD,
                "points": 5,
            },
        ],
    },
    {
        "exam": {
            "title": "Kinematics",
            "subject": "physics",
            "class_name": "11B",
            "topic": "Mechanics",
            "description": "Motion of bodies",
            "starts_in": timedelta(0),
            "length": timedelta(hours=2),
            "duration": 45,
            "status": ExamStatus.ACTIVE,
        },
        "questions": [
            {
                "content": "Average velocity is given by:",
                "options": {
                    "A": r"$v = \frac{s}{t}$",
                    "B": r"$v = a \times t$",
                    "C": r"$v = \frac{1}{2}at^2$",
                    "D": "$v = v_0 + at$",
                },
                "correct_answer": "A",
                "difficulty": Difficulty.EASY,
                "points": 2,
            },
            {
                "content": "The SI unit of acceleration is:",
                "options": {"A": "m/s", "B": "m/s^2", "C": "km/h", "D": "N/kg"},
                "correct_answer": "B",
                "difficulty": Difficulty.EASY,
                "points": 1,
            },
            {
                "content": "A body moves uniformly at 5 m/s. How far does it travel in 10 s?",
                "options": {"A": "25 m", "B": "50 m", "C": "100 m", "D": "10 m"},
                "correct_answer": "B",
                "difficulty": Difficulty.MEDIUM,
                "points": 3,
            },
            {
                "content": "Kinetic energy of a body is:",
                "options": {
                    "A": "$E_k = mgh$",
                    "B": r"$E_k = \frac{1}{2}mv^2$",
                    "C": "$E_k = W/t$",
                    "D": r"$E_k = F \times s$",
                },
                "correct_answer": "B",
                "difficulty": Difficulty.MEDIUM,
                "points": 3,
            },
        ],
    },
]


def create_sample_exams(storage: Storage, teacher: User) -> List[Exam]:
    now = utcnow()
    created = []
    with storage.transaction():
        for sample in SAMPLE_EXAMS:
            fields = dict(sample["exam"])
            start = now + fields.pop("starts_in")
            end = start + fields.pop("length")
            exam = storage.create_exam({
                **fields,
                "start_time": start,
                "end_time": end,
                "created_by_id": teacher.id,
            })
            for question in sample["questions"]:
                storage.create_question({**question, "exam_id": exam.id, "topic": fields["topic"]})
            created.append(exam)
    logger.info("Created %d sample exams for teacher %s", len(created), teacher.id)
    return created
