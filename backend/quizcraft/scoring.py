"""Authoritative quiz scoring.

The same functions back the immediate-feedback display in a quiz session and
the server-side recomputation when an attempt is recorded, so both sides agree
on every contribution.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from quizcraft.schemas import Question, QuizConfig

TWO_PLACES = Decimal("0.01")
ONE_PLACE = Decimal("0.1")


@dataclass(frozen=True)
class ScoreResult:
    score: float
    max_score: float
    percentage: float


def _decimal(value) -> Decimal:
    return Decimal(str(value))


def _points(question: Question, config: QuizConfig, answer: Optional[int]) -> Decimal:
    if answer is None:
        return Decimal(0)
    if answer == question.correct_answer:
        return _decimal(config.marks_per_question)
    if config.negative_marking:
        return -_decimal(config.negative_marks_value)
    return Decimal(0)


def question_points(question: Question, config: QuizConfig, answer: Optional[int]) -> float:
    """Contribution of a single answer: +marks, -penalty, or 0 when unanswered."""
    return float(_points(question, config, answer))


def score(
    questions: Sequence[Question], config: QuizConfig, answers: Sequence[Optional[int]]
) -> ScoreResult:
    """Score an answer vector against its questions.

    Callers must pass one answer per question; ``None`` marks an unanswered
    question. Rounding is half-up and applied to the final sum only. Scores
    may be negative under negative marking.
    """
    total = sum(
        (_points(question, config, answer) for question, answer in zip(questions, answers)),
        Decimal(0),
    )
    final_score = total.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    max_score = (len(questions) * _decimal(config.marks_per_question)).quantize(
        TWO_PLACES, rounding=ROUND_HALF_UP
    )
    if max_score > 0:
        percentage = (final_score / max_score * 100).quantize(ONE_PLACE, rounding=ROUND_HALF_UP)
    else:
        percentage = Decimal(0)
    return ScoreResult(
        score=float(final_score),
        max_score=float(max_score),
        percentage=float(percentage),
    )
