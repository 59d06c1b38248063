# Quiz generation pipeline and generation endpoint tests.
import json

import httpx
import openai
import pytest

from quizcraft.errors import InvalidConfig, ParseError, SchemaViolation, UpstreamError
from quizcraft.models import Quiz
from quizcraft.quiz_generation import (
    EXPLANATION_FALLBACK,
    GenerationService,
    build_prompt,
    extract_output_text,
    generate_explanation,
    generate_quiz,
)
from quizcraft.schemas import Question, QuizGenerateCreate
from quizcraft.validation import validate_config

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


def generate_payload(**overrides):
    values = {
        "topic": "Astronomy",
        "numberOfQuestions": 5,
        "gradeLevel": "high school",
        "difficulty": "hard",
        "examContext": "SAT",
        "marksPerQuestion": 2,
        "negativeMarking": True,
        "negativeMarksValue": 0.5,
        "timerEnabled": True,
        "timerType": "per-question",
        "timeLimit": 30,
        "feedbackStyle": "immediate",
    }
    values.update(overrides)
    return values


def status_error(code):
    request = httpx.Request("POST", OPENAI_URL)
    return openai.APIStatusError(
        "upstream failure", response=httpx.Response(code, request=request), body=None
    )


# The prompt embeds every config detail plus the JSON contract.
def test_build_prompt_embeds_config_and_contract():
    config = validate_config(QuizGenerateCreate.model_validate(generate_payload()))

    prompt = build_prompt(config)

    assert prompt == build_prompt(config)
    assert "Generate 5 multiple choice questions about Astronomy" in prompt
    assert "for high school level at hard difficulty" in prompt
    assert "The context is: SAT" in prompt
    assert "Return ONLY a JSON array" in prompt
    for field in ('"question"', '"options"', '"correctAnswer"', '"explanation"'):
        assert field in prompt


def test_build_prompt_omits_missing_exam_context():
    config = validate_config(
        QuizGenerateCreate.model_validate(generate_payload(examContext=None))
    )

    assert "The context is" not in build_prompt(config)


def test_generate_quiz_persists_validated_questions(
    db_session, owner, generation_service, fake_openai, sample_questions
):
    payload = QuizGenerateCreate.model_validate(generate_payload())

    quiz = generate_quiz(db_session, generation_service, payload, owner.id)

    stored = db_session.get(Quiz, quiz.id)
    assert stored.user_id == owner.id
    assert stored.topic == "Astronomy"
    assert stored.questions == sample_questions
    assert stored.config["negativeMarksValue"] == 0.5
    assert stored.config["timerType"] == "per-question"

    assert len(fake_openai.calls) == 1
    call = fake_openai.calls[0]
    assert call["model"] == "test-model"
    assert call["temperature"] == 0.7
    assert call["top_p"] == 0.95
    assert call["max_tokens"] == 4096
    assert "Astronomy" in call["messages"][0]["content"]


def test_generate_quiz_normalizes_correct_answer(
    db_session, owner, generation_service, fake_openai, build_questions
):
    questions = build_questions("Optics", 2)
    questions[0]["correctAnswer"] = 2.0
    fake_openai.reply = json.dumps(questions)
    payload = QuizGenerateCreate.model_validate(generate_payload(numberOfQuestions=2))

    quiz = generate_quiz(db_session, generation_service, payload, owner.id)

    assert quiz.questions[0]["correctAnswer"] == 2
    assert isinstance(quiz.questions[0]["correctAnswer"], int)


def test_invalid_config_never_calls_the_service(
    db_session, owner, generation_service, fake_openai
):
    payload = QuizGenerateCreate.model_validate(generate_payload(topic=""))

    with pytest.raises(InvalidConfig):
        generate_quiz(db_session, generation_service, payload, owner.id)

    assert fake_openai.calls == []
    assert db_session.query(Quiz).count() == 0


@pytest.mark.parametrize(
    "reply, error",
    [
        ("Sorry, I can't help with that.", ParseError),
        ('```json\n[{"question": "Half', ParseError),
        ('{"questions": []}', SchemaViolation),
        (json.dumps([{"question": "Q?", "options": ["a", "b"], "correctAnswer": 0, "explanation": ""}]), SchemaViolation),
    ],
)
def test_bad_model_output_is_rejected_without_persisting(
    db_session, owner, generation_service, fake_openai, reply, error
):
    fake_openai.reply = reply
    payload = QuizGenerateCreate.model_validate(generate_payload())

    with pytest.raises(error):
        generate_quiz(db_session, generation_service, payload, owner.id)

    assert db_session.query(Quiz).count() == 0


def test_question_count_mismatch_is_a_schema_violation(
    db_session, owner, generation_service, fake_openai, build_questions
):
    fake_openai.reply = json.dumps(build_questions("Optics", 3))
    payload = QuizGenerateCreate.model_validate(generate_payload(numberOfQuestions=5))

    with pytest.raises(SchemaViolation) as excinfo:
        generate_quiz(db_session, generation_service, payload, owner.id)

    assert "expected 5 questions, got 3" in excinfo.value.message
    assert db_session.query(Quiz).count() == 0


def test_upstream_status_is_carried_on_the_error(generation_service, fake_openai):
    fake_openai.error = status_error(429)

    with pytest.raises(UpstreamError) as excinfo:
        generation_service.create("prompt")

    assert excinfo.value.upstream_status == 429
    assert len(fake_openai.calls) == 1


def test_unreachable_service_raises_upstream_error(generation_service, fake_openai):
    fake_openai.error = openai.APIConnectionError(request=httpx.Request("POST", OPENAI_URL))

    with pytest.raises(UpstreamError) as excinfo:
        generation_service.create("prompt")

    assert excinfo.value.upstream_status is None


def test_missing_api_key_raises_upstream_error():
    service = GenerationService(api_key=None)

    with pytest.raises(UpstreamError) as excinfo:
        service.create("prompt")

    assert "OPENAI_API_KEY" in excinfo.value.message


@pytest.mark.parametrize(
    "response",
    [
        {"choices": []},
        {"choices": [{"message": {"content": None}}]},
        {"choices": [{"message": {}}]},
        {},
        None,
    ],
)
def test_extract_output_text_rejects_malformed_envelopes(response):
    with pytest.raises(UpstreamError) as excinfo:
        extract_output_text(response)

    assert excinfo.value.message == "malformed upstream response"


def test_extract_output_text_reads_dict_envelopes():
    assert extract_output_text({"choices": [{"message": {"content": "[]"}}]}) == "[]"


def test_generate_explanation_returns_model_text(generation_service, fake_openai):
    fake_openai.reply = "  Mars looks red because of iron oxide.  "
    question = Question(
        question="Which planet is red?",
        options=["Mars", "Venus", "Jupiter", "Mercury"],
        correct_answer=0,
        explanation="",
    )

    explanation = generate_explanation(generation_service, question, 2)

    assert explanation == "Mars looks red because of iron oxide."
    prompt = fake_openai.calls[0]["messages"][0]["content"]
    assert "Correct answer: A. Mars" in prompt
    assert "User's answer: C. Jupiter" in prompt


def test_generate_explanation_falls_back_on_failure(generation_service, fake_openai):
    fake_openai.error = status_error(500)
    question = Question(question="Q?", options=["a", "b", "c", "d"], correct_answer=0)

    assert generate_explanation(generation_service, question, 1) == EXPLANATION_FALLBACK


# Verify generated quizzes are persisted and served for taking without the owner.
def test_generate_quiz_endpoint_creates_quiz(client, auth_headers, sample_questions):
    response = client.post("/quizzes/generate", json=generate_payload(), headers=auth_headers)
    assert response.status_code == 201
    quiz_id = response.json()["quizId"]

    take_response = client.get(f"/quizzes/{quiz_id}")
    assert take_response.status_code == 200
    payload = take_response.json()
    assert payload["id"] == quiz_id
    assert "userId" not in payload
    assert payload["config"]["topic"] == "Astronomy"
    assert payload["config"]["feedbackStyle"] == "immediate"
    assert payload["questions"] == sample_questions

    list_response = client.get("/quizzes", headers=auth_headers)
    assert list_response.status_code == 200
    listed = list_response.json()
    assert [quiz["id"] for quiz in listed] == [quiz_id]
    assert listed[0]["topic"] == "Astronomy"
    assert listed[0]["numberOfQuestions"] == 5


def test_generate_quiz_endpoint_requires_identity(client, fake_openai):
    response = client.post("/quizzes/generate", json=generate_payload())

    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"
    assert fake_openai.calls == []


def test_generate_quiz_endpoint_rejects_missing_fields(client, auth_headers):
    response = client.post(
        "/quizzes/generate", json={"topic": "Astronomy"}, headers=auth_headers
    )

    assert response.status_code == 400
    assert response.json() == {
        "detail": "missing required fields: topic and numberOfQuestions",
        "error": "invalid_config",
    }


@pytest.mark.parametrize(
    "reply, error_code",
    [("no json here", "parse_error"), ("[]", "schema_violation")],
)
def test_generate_quiz_endpoint_reports_a_single_retry_message(
    client, auth_headers, fake_openai, reply, error_code
):
    fake_openai.reply = reply

    response = client.post("/quizzes/generate", json=generate_payload(), headers=auth_headers)

    assert response.status_code == 502
    assert response.json() == {
        "detail": "quiz generation failed, please retry",
        "error": error_code,
    }
    assert client.get("/quizzes", headers=auth_headers).json() == []


def test_generate_quiz_endpoint_reports_upstream_failure(client, auth_headers, fake_openai):
    fake_openai.error = status_error(503)

    response = client.post("/quizzes/generate", json=generate_payload(), headers=auth_headers)

    assert response.status_code == 502
    assert response.json()["error"] == "upstream_error"


def test_get_unknown_quiz_is_not_found(client):
    response = client.get("/quizzes/does-not-exist")

    assert response.status_code == 404
    assert response.json()["detail"] == "quiz not found"


def test_explanation_endpoint(client, fake_openai):
    fake_openai.reply = "Because 2 + 2 equals 4."

    response = client.post(
        "/explanations",
        json={
            "question": {
                "question": "What is 2 + 2?",
                "options": ["3", "4", "5", "6"],
                "correctAnswer": 1,
                "explanation": "",
            },
            "userAnswer": 0,
        },
    )

    assert response.status_code == 200
    assert response.json() == {"explanation": "Because 2 + 2 equals 4."}
