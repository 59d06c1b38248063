import json
import logging
import re
from typing import Any, List, Optional

import openai
from sqlalchemy.orm import Session

from quizcraft.config import DEFAULT_GENERATION_TIMEOUT, DEFAULT_MODEL
from quizcraft.errors import ParseError, QuizCraftError, SchemaViolation, UpstreamError
from quizcraft.models import Quiz
from quizcraft.schemas import Question, QuizConfig, QuizGenerateCreate
from quizcraft.validation import validate_config, validate_question_set

logger = logging.getLogger("quizcraft.generation")

SAMPLING_PARAMETERS = {"temperature": 0.7, "top_p": 0.95, "max_tokens": 4096}
MAX_LOGGED_CHARS = 500
EXPLANATION_FALLBACK = "Sorry, we couldn't generate an explanation at this time."

_LEADING_FENCE = re.compile(r"^```[A-Za-z0-9_-]*\s*")
_TRAILING_FENCE = re.compile(r"\s*```$")
_WHITESPACE = re.compile(r"\s+")


def sanitize_response(raw: str) -> str:
    """Strip code fences and collapse newlines so the text can be parsed as JSON."""
    cleaned = raw.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    cleaned = cleaned.replace("\\n", " ")
    cleaned = _WHITESPACE.sub(" ", cleaned)
    return cleaned.strip()


def build_prompt(config: QuizConfig) -> str:
    context_line = f"The context is: {config.exam_context}\n" if config.exam_context else ""
    return (
        f"Generate {config.number_of_questions} multiple choice questions about "
        f"{config.topic} for {config.grade_level} level at "
        f"{config.difficulty.value} difficulty.\n"
        f"{context_line}"
        "\n"
        "Return ONLY a JSON array of questions. Each question must have this exact structure:\n"
        "{\n"
        '  "question": "question text",\n'
        '  "options": ["option1", "option2", "option3", "option4"],\n'
        '  "correctAnswer": 0,\n'
        '  "explanation": "explanation text"\n'
        "}\n"
        "\n"
        "Requirements:\n"
        "1. Each question must be clear and specific\n"
        "2. All four options must be distinct and relevant\n"
        "3. correctAnswer must be a number (0-3) indicating the index of the correct option\n"
        "4. The explanation must clearly justify why the correct answer is right\n"
        "\n"
        "DO NOT include any text before or after the JSON array. "
        "The response must start with '[' and end with ']'."
    )


class GenerationService:
    """Single-call wrapper around the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        timeout: float = DEFAULT_GENERATION_TIMEOUT,
        client: Any = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise UpstreamError("OPENAI_API_KEY is not configured")
            # The SDK retries by default; generation makes exactly one call.
            self._client = openai.OpenAI(
                api_key=self.api_key, timeout=self.timeout, max_retries=0
            )
        return self._client

    def create(self, prompt: str):
        client = self.client
        try:
            return client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                **SAMPLING_PARAMETERS,
            )
        except openai.APIStatusError as exc:
            logger.warning("Generation service returned %s", exc.status_code)
            raise UpstreamError(
                f"generation service returned status {exc.status_code}",
                upstream_status=exc.status_code,
            ) from exc
        except openai.APIConnectionError as exc:
            logger.warning("Generation service unreachable: %s", exc)
            raise UpstreamError("generation service unreachable") from exc


def _field(item: Any, name: str) -> Any:
    if item is None:
        return None
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def extract_output_text(response: Any) -> str:
    choices = _field(response, "choices") or []
    first = choices[0] if choices else None
    text = _field(_field(first, "message"), "content")
    if not isinstance(text, str) or not text.strip():
        raise UpstreamError("malformed upstream response")
    return text


def parse_question_payload(raw_text: str) -> Any:
    cleaned = sanitize_response(raw_text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse generated quiz: %s", cleaned[:MAX_LOGGED_CHARS])
        raise ParseError(f"generated quiz was not valid JSON: {exc.msg}") from exc


def generate_quiz(
    db: Session, service: GenerationService, payload: QuizGenerateCreate, owner_id: str
) -> Quiz:
    """Generate, validate and persist a quiz in one pass.

    Every stage raises a typed error; nothing is written unless the whole
    question set passes validation.
    """
    config = validate_config(payload)
    response = service.create(build_prompt(config))
    candidate = parse_question_payload(extract_output_text(response))
    questions = validate_question_set(candidate)
    if len(questions) != config.number_of_questions:
        raise SchemaViolation(
            f"expected {config.number_of_questions} questions, got {len(questions)}"
        )

    quiz = Quiz(
        user_id=owner_id,
        topic=config.topic,
        config=config.model_dump(mode="json", by_alias=True),
        questions=[question.model_dump(mode="json", by_alias=True) for question in questions],
    )
    db.add(quiz)
    db.commit()
    db.refresh(quiz)
    logger.info("Stored quiz %s (%d questions) for %s", quiz.id, len(questions), owner_id)
    return quiz


def _option_label(options: List[str], index: int) -> str:
    if 0 <= index < len(options):
        return f"{chr(65 + index)}. {options[index]}"
    return "(no valid option)"


def build_explanation_prompt(question: Question, user_answer: int) -> str:
    option_lines = "\n".join(
        f"{chr(65 + idx)}. {option}" for idx, option in enumerate(question.options)
    )
    return (
        f"Question: {question.question}\n\n"
        f"Options:\n{option_lines}\n\n"
        f"Correct answer: {_option_label(question.options, question.correct_answer)}\n\n"
        f"User's answer: {_option_label(question.options, user_answer)}\n\n"
        "Please provide a detailed, educational explanation of why the correct answer is correct.\n"
        "If the user's answer is incorrect, explain why it's wrong and what makes the correct "
        "answer right.\n"
        "Include relevant facts and context, and keep the explanation engaging and informative."
    )


def generate_explanation(service: GenerationService, question: Question, user_answer: int) -> str:
    try:
        response = service.create(build_explanation_prompt(question, user_answer))
        return extract_output_text(response).strip()
    except QuizCraftError as exc:
        logger.warning("Explanation generation failed: %s", exc.message)
        return EXPLANATION_FALLBACK
