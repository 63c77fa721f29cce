import math
from dataclasses import dataclass

from .errors import ValidationError
from .questions import Question


BASE_POINTS = 100
MAX_TIME_BONUS = 50


@dataclass(frozen=True)
class ScoreResult:
    is_correct: bool
    points: int
    time_bonus: int
    response_time_ms: int
    correct_answer: str


def clamp_response_time(question: Question, response_time_ms) -> float:
    if isinstance(response_time_ms, bool) or not isinstance(response_time_ms, (int, float)):
        raise ValidationError('response_time_ms must be a number')
    if math.isnan(response_time_ms):
        raise ValidationError('response_time_ms must be a number')
    limit_ms = question.time_limit_seconds * 1000
    return min(max(response_time_ms, 0), limit_ms)


def score_answer(question: Question, submitted_value: str, response_time_ms) -> ScoreResult:
    """Score one answer against the active question.

    Correctness is exact, case-sensitive string equality with no trimming.
    A correct answer earns 100 points plus up to 50 for speed; the reported
    response time is clamped to the question's limit first. The bonus uses
    the unrounded time; only the reported ``response_time_ms`` is rounded.
    """
    clamped = clamp_response_time(question, response_time_ms)
    if submitted_value != question.correct_answer:
        return ScoreResult(is_correct=False, points=0, time_bonus=0, response_time_ms=round(clamped),
                           correct_answer=question.correct_answer)
    time_fraction = 1 - clamped / (question.time_limit_seconds * 1000)
    time_bonus = math.floor(time_fraction * MAX_TIME_BONUS)
    return ScoreResult(
        is_correct=True,
        points=BASE_POINTS + time_bonus,
        time_bonus=time_bonus,
        response_time_ms=round(clamped),
        correct_answer=question.correct_answer,
    )
