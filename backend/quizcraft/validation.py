# Structural validation for generated question sets and quiz configs.
import math
from typing import Any, List

from pydantic import ValidationError

from quizcraft.errors import InvalidConfig, SchemaViolation
from quizcraft.schemas import Question, QuizConfig, QuizGenerateCreate

OPTION_COUNT = 4


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


# Return the reason an element breaks the question contract, or an empty string.
def _question_problem(item: Any) -> str:
    if not isinstance(item, dict):
        return "question must be an object"
    text = item.get("question")
    if not isinstance(text, str) or not text.strip():
        return "question text must be a non-empty string"
    options = item.get("options")
    if not isinstance(options, list) or len(options) != OPTION_COUNT:
        return f"options must contain exactly {OPTION_COUNT} entries"
    if not all(isinstance(option, str) for option in options):
        return "options must be strings"
    if not _is_number(item.get("correctAnswer")):
        return "correctAnswer must be a number"
    if not isinstance(item.get("explanation"), str):
        return "explanation must be present"
    return ""


def validate_question_set(candidate: Any) -> List[Question]:
    """Validate a parsed AI payload and return typed questions.

    The whole set is rejected on the first offending element.
    ``correctAnswer`` is normalized to an int but its range is not checked.
    """
    if not isinstance(candidate, list) or not candidate:
        raise SchemaViolation("question set must be a non-empty array")
    questions: List[Question] = []
    for index, item in enumerate(candidate):
        problem = _question_problem(item)
        if problem:
            raise SchemaViolation(f"invalid question at index {index}: {problem}", index=index)
        questions.append(
            Question(
                question=item["question"].strip(),
                options=list(item["options"]),
                correct_answer=int(item["correctAnswer"]),
                explanation=item["explanation"],
            )
        )
    return questions


def validate_config(payload: QuizGenerateCreate) -> QuizConfig:
    """Turn a generation request into a stored config or raise InvalidConfig."""
    topic = (payload.topic or "").strip()
    if not topic or not payload.number_of_questions:
        raise InvalidConfig("missing required fields: topic and numberOfQuestions")

    negative_marks_value = payload.negative_marks_value or 0
    if not payload.negative_marking:
        negative_marks_value = 0
    if negative_marks_value > payload.marks_per_question:
        raise InvalidConfig("negativeMarksValue must not exceed marksPerQuestion")

    if payload.timer_enabled and (payload.timer_type is None or not payload.time_limit):
        raise InvalidConfig("timerType and timeLimit are required when the timer is enabled")

    exam_context = (payload.exam_context or "").strip() or None
    try:
        return QuizConfig(
            topic=topic,
            exam_context=exam_context,
            grade_level=(payload.grade_level or "").strip() or "general",
            difficulty=payload.difficulty,
            number_of_questions=payload.number_of_questions,
            marks_per_question=payload.marks_per_question,
            negative_marking=payload.negative_marking,
            negative_marks_value=negative_marks_value,
            timer_enabled=payload.timer_enabled,
            timer_type=payload.timer_type if payload.timer_enabled else None,
            time_limit=payload.time_limit if payload.timer_enabled else None,
            feedback_style=payload.feedback_style,
        )
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise InvalidConfig(f"invalid {field}: {first.get('msg')}") from exc
