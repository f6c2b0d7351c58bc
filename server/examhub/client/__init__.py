from examhub.client.answers import AnswerSheet
from examhub.client.api import ApiRequestError, ExamApi
from examhub.client.attempt import ExamAttempt
from examhub.client.countdown import CountdownTimer, format_seconds

__all__ = [
    "AnswerSheet",
    "ApiRequestError",
    "CountdownTimer",
    "ExamApi",
    "ExamAttempt",
    "format_seconds",
]
