# FastAPI app, routes, and error mapping for quiz generation and attempts.
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import logging

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from quizcraft.attempts import (
    get_attempt,
    list_attempts,
    load_quiz,
    quiz_config,
    quiz_questions,
    record_attempt,
)
from quizcraft.config import Settings, get_settings
from quizcraft.database import Database, get_db
from quizcraft.errors import NotFound, QuizCraftError
from quizcraft.models import Quiz, User
from quizcraft.quiz_generation import GenerationService, generate_explanation, generate_quiz
from quizcraft.schemas import (
    AttemptCreate,
    AttemptOut,
    AttemptQuizOut,
    AttemptResultOut,
    AttemptSummaryOut,
    ExplanationCreate,
    ExplanationOut,
    QuizGenerateCreate,
    QuizGenerateOut,
    QuizSummaryOut,
    QuizTakeOut,
    SessionCreate,
    SessionOut,
)
from quizcraft.security import get_owner_id, sign_owner_token

logger = logging.getLogger("quizcraft")
router = APIRouter()


# Format datetimes as ISO-8601 strings with UTC fallback.
def to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


# Render domain errors as {"detail", "error"} with their status code.
async def handle_quizcraft_error(request: Request, exc: QuizCraftError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.public_message, "error": exc.code},
    )


# Complete an external sign-in: upsert the user profile and issue an owner token.
@router.post("/sessions", response_model=SessionOut)
def create_session(payload: SessionCreate, request: Request, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email)
        db.add(user)
    if payload.name:
        user.name = payload.name.strip()
    if payload.image:
        user.image = payload.image
    db.commit()
    db.refresh(user)
    return SessionOut(
        user_id=user.id,
        token=sign_owner_token(user.id, request.app.state.settings.secret_key),
        email=user.email,
        name=user.name,
        image=user.image,
    )


# Generate quiz content with AI and persist the quiz.
@router.post(
    "/quizzes/generate",
    response_model=QuizGenerateOut,
    status_code=status.HTTP_201_CREATED,
)
def create_generated_quiz(
    payload: QuizGenerateCreate,
    db: Session = Depends(get_db),
    service: GenerationService = Depends(get_generation_service),
    owner_id: str = Depends(get_owner_id),
):
    quiz = generate_quiz(db, service, payload, owner_id)
    return QuizGenerateOut(quiz_id=quiz.id)


# Return quiz metadata for the signed-in owner.
@router.get("/quizzes", response_model=List[QuizSummaryOut])
def list_quizzes(db: Session = Depends(get_db), owner_id: str = Depends(get_owner_id)):
    quizzes = (
        db.query(Quiz)
        .filter(Quiz.user_id == owner_id)
        .order_by(Quiz.created_at.desc())
        .all()
    )
    return [
        QuizSummaryOut(
            id=quiz.id,
            topic=quiz.topic,
            number_of_questions=len(quiz.questions),
            created_at=to_iso(quiz.created_at),
        )
        for quiz in quizzes
    ]


# Return the quiz payload for taking the quiz.
@router.get("/quizzes/{quiz_id}", response_model=QuizTakeOut)
def get_quiz(quiz_id: str, db: Session = Depends(get_db)):
    quiz = load_quiz(db, quiz_id)
    return QuizTakeOut(id=quiz.id, config=quiz_config(quiz), questions=quiz_questions(quiz))


# Score and store a completed attempt.
@router.post("/attempts", response_model=AttemptOut, status_code=status.HTTP_201_CREATED)
def submit_attempt(
    payload: AttemptCreate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
):
    attempt = record_attempt(db, payload.quiz_id, payload.answers, owner_id)
    return AttemptOut(
        attempt_id=attempt.id,
        score=attempt.score,
        max_score=attempt.max_score,
        percentage=attempt.percentage,
    )


# Return attempt summaries for the owner, optionally for one quiz.
@router.get("/attempts", response_model=List[AttemptSummaryOut])
def list_owner_attempts(
    quiz_id: Optional[str] = Query(None, alias="quizId"),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
):
    return [
        AttemptSummaryOut(
            id=attempt.id,
            quiz_id=attempt.quiz_id,
            score=attempt.score,
            max_score=attempt.max_score,
            percentage=attempt.percentage,
            completed_at=to_iso(attempt.completed_at),
        )
        for attempt in list_attempts(db, owner_id, quiz_id)
    ]


# Return an attempt together with its quiz for the review view.
@router.get("/attempts/{attempt_id}", response_model=AttemptResultOut)
def get_attempt_result(
    attempt_id: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
):
    attempt = get_attempt(db, attempt_id, owner_id)
    quiz = db.get(Quiz, attempt.quiz_id)
    if quiz is None:
        logger.error("Quiz %s missing for attempt %s", attempt.quiz_id, attempt.id)
        raise NotFound("original quiz data not found for this attempt")
    return AttemptResultOut(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        answers=attempt.answers,
        score=attempt.score,
        max_score=attempt.max_score,
        percentage=attempt.percentage,
        completed_at=to_iso(attempt.completed_at),
        quiz=AttemptQuizOut(
            id=quiz.id,
            topic=quiz.topic,
            config=quiz_config(quiz),
            questions=quiz_questions(quiz),
        ),
    )


# Ask the generation service to explain an answer; failures return a fallback text.
@router.post("/explanations", response_model=ExplanationOut)
def explain_answer(
    payload: ExplanationCreate,
    service: GenerationService = Depends(get_generation_service),
):
    return ExplanationOut(
        explanation=generate_explanation(service, payload.question, payload.user_answer)
    )


def create_app(
    settings: Optional[Settings] = None,
    generation_service: Optional[GenerationService] = None,
) -> FastAPI:
    settings = settings or get_settings()
    database = Database(settings.database_url)

    # Create database tables on app startup and release the engine on shutdown.
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.create_all()
        yield
        database.dispose()

    app = FastAPI(title="QuizCraft API", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.generation_service = generation_service or GenerationService(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        timeout=settings.generation_timeout,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(QuizCraftError, handle_quizcraft_error)

    app.include_router(router)
    return app


app = create_app()
