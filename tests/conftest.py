# Pytest fixtures, fake generation clients and test database setup.
import json
import os
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from quizcraft.config import Settings
from quizcraft.database import Database
from quizcraft.models import User
from quizcraft.quiz_generation import GenerationService

TEST_SECRET = "test-secret"


def database_url_for_tests() -> str:
    return os.getenv("TEST_DATABASE_URL", "sqlite://")


# Wrap generated text the way the OpenAI SDK returns a chat completion.
def make_completion(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


# Stand-in for the OpenAI client: replays a canned reply or raises a canned error.
class FakeOpenAI:
    def __init__(self):
        self.reply = None
        self.error = None
        self.calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        if isinstance(self.reply, str):
            return make_completion(self.reply)
        return self.reply


# Build generated-question dicts in the wire format the model is asked for.
@pytest.fixture()
def build_questions():
    def _build(topic: str, question_count: int = 5, correct_answer: int = 0):
        return [
            {
                "question": f"{topic} question {idx}?",
                "options": ["Option A", "Option B", "Option C", "Option D"],
                "correctAnswer": correct_answer,
                "explanation": "Example explanation.",
            }
            for idx in range(1, question_count + 1)
        ]

    return _build


# Provide a stable sample question set with known correct answers.
@pytest.fixture()
def sample_questions():
    return [
        {
            "question": "What is 2 + 2?",
            "options": ["3", "4", "5", "6"],
            "correctAnswer": 1,
            "explanation": "2 + 2 equals 4.",
        },
        {
            "question": "Which planet is known as the Red Planet?",
            "options": ["Mars", "Venus", "Jupiter", "Mercury"],
            "correctAnswer": 0,
            "explanation": "Mars is called the Red Planet.",
        },
        {
            "question": "Which gas do plants absorb from the atmosphere?",
            "options": ["Oxygen", "Carbon dioxide", "Nitrogen", "Helium"],
            "correctAnswer": 1,
            "explanation": "Plants absorb carbon dioxide for photosynthesis.",
        },
        {
            "question": "What is the capital of France?",
            "options": ["Paris", "Lyon", "Marseille", "Bordeaux"],
            "correctAnswer": 0,
            "explanation": "Paris is the capital of France.",
        },
        {
            "question": "What is the boiling point of water at sea level?",
            "options": ["100 C", "0 C", "50 C", "150 C"],
            "correctAnswer": 0,
            "explanation": "Water boils at 100 C at sea level.",
        },
    ]


@pytest.fixture()
def fake_openai(sample_questions):
    fake = FakeOpenAI()
    fake.reply = "```json\n" + json.dumps(sample_questions, indent=2) + "\n```"
    return fake


@pytest.fixture()
def generation_service(fake_openai):
    return GenerationService(api_key="test-key", model="test-model", client=fake_openai)


@pytest.fixture()
def settings():
    return Settings(database_url=database_url_for_tests(), secret_key=TEST_SECRET)


# Provide a FastAPI test client backed by a temporary test database.
@pytest.fixture()
def client(settings, generation_service):
    from quizcraft.main import create_app

    app = create_app(settings=settings, generation_service=generation_service)
    app.state.database.drop_all()

    with TestClient(app) as test_client:
        yield test_client

    app.state.database.drop_all()
    app.state.database.dispose()


# Sign in a user and return the Authorization header for them.
@pytest.fixture()
def sign_in(client):
    def _sign_in(email: str = "alice@example.com", name: str = "Alice"):
        response = client.post("/sessions", json={"email": email, "name": name})
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _sign_in


@pytest.fixture()
def auth_headers(sign_in):
    return sign_in()


# Provide a bare database handle for service-level tests.
@pytest.fixture()
def database():
    handle = Database(database_url_for_tests())
    handle.drop_all()
    handle.create_all()
    yield handle
    handle.drop_all()
    handle.dispose()


@pytest.fixture()
def db_session(database):
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def owner(db_session):
    user = User(email="owner@example.com", name="Owner")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user
