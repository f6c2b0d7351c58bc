"""
In-progress answer choices and review flags for one exam attempt.
"""
from typing import Dict, Iterable, List, Optional, Sequence, Set

from examhub.models import OPTION_LABELS


class AnswerSheet:
    """
    Holds the student's choices before submission.

    Questions are identified by id for answers and by position for flags,
    matching how the exam is navigated.
    """

    def __init__(self, question_ids: Sequence[int]):
        self.question_ids: List[int] = list(question_ids)
        self._known = set(self.question_ids)
        self._answers: Dict[int, str] = {}
        self._flagged: Set[int] = set()

    def select(self, question_id: int, label: str) -> None:
        if question_id not in self._known:
            raise KeyError(f"Question {question_id} is not part of this exam")
        if label not in OPTION_LABELS:
            raise ValueError(f"Invalid option {label!r}; expected one of {', '.join(OPTION_LABELS)}")
        self._answers[question_id] = label

    def answer_for(self, question_id: int) -> Optional[str]:
        return self._answers.get(question_id)

    def is_answered(self, question_id: int) -> bool:
        return question_id in self._answers

    def toggle_flag(self, index: int) -> bool:
        """Flip the review flag of the question at index; returns the new state."""
        if not 0 <= index < len(self.question_ids):
            raise IndexError(f"Question index {index} out of range")
        if index in self._flagged:
            self._flagged.remove(index)
            return False
        self._flagged.add(index)
        return True

    def is_flagged(self, index: int) -> bool:
        return index in self._flagged

    @property
    def flagged(self) -> List[int]:
        return sorted(self._flagged)

    @property
    def answered_count(self) -> int:
        return len(self._answers)

    def unanswered(self) -> List[int]:
        return [qid for qid in self.question_ids if qid not in self._answers]

    def load(self, answers: Iterable[dict]) -> int:
        """
        Rehydrate from server answer rows ({"question_id", "answer"}).
        Rows for questions no longer in the exam, or without a valid label, are skipped.
        Returns the number of answers restored.
        """
        restored = 0
        for row in answers:
            question_id = row.get("question_id")
            label = row.get("answer")
            if question_id in self._known and label in OPTION_LABELS:
                self._answers[question_id] = label
                restored += 1
        return restored

    def to_payload(self) -> List[dict]:
        """Every question in exam order; unanswered ones carry answer None."""
        return [{"question_id": qid, "answer": self._answers.get(qid)} for qid in self.question_ids]
