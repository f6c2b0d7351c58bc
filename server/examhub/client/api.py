"""
Thin HTTP client for the exam-taking endpoints.
"""
import logging
from typing import List, Optional

import requests

logger = logging.getLogger(__name__)


class ApiRequestError(Exception):
    def __init__(self, status_code: int, detail: str, errors: Optional[list] = None):
        self.status_code = status_code
        self.detail = detail
        self.errors = errors or []
        super().__init__(f"{status_code}: {detail}")


class ExamApi:
    """
    Talks to the API under base_url (e.g. http://localhost:8000/api).

    Any object with requests-style get/post methods can stand in for the
    session, which keeps the login cookie between calls.
    """

    def __init__(self, base_url: str, session=None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs):
        response = getattr(self.session, method)(f"{self.base_url}{path}", **kwargs)
        if not 200 <= response.status_code < 300:
            try:
                body = response.json()
            except ValueError:
                body = {"detail": response.text}
            logger.warning("%s %s failed with %s", method.upper(), path, response.status_code)
            raise ApiRequestError(response.status_code, body.get("detail", ""), body.get("errors"))
        return response.json() if response.content else None

    def login(self, username: str, password: str) -> dict:
        return self._request("post", "/login", json={"username": username, "password": password})

    def get_exam(self, exam_id: int) -> dict:
        return self._request("get", f"/exams/{exam_id}")

    def get_questions(self, exam_id: int) -> List[dict]:
        return self._request("get", f"/exams/{exam_id}/questions")

    def start(self, exam_id: int) -> dict:
        return self._request("post", f"/exams/{exam_id}/start")

    def get_answers(self, submission_id: int) -> List[dict]:
        return self._request("get", f"/submissions/{submission_id}/answers")

    def submit(self, exam_id: int, answers: List[dict]) -> dict:
        return self._request("post", f"/exams/{exam_id}/submit", json={"answers": answers})
