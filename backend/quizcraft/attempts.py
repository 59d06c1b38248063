# Server-side attempt recording and owner-scoped retrieval.
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from quizcraft.errors import InvalidAttempt, NotFound
from quizcraft.models import Attempt, Quiz
from quizcraft.schemas import Question, QuizConfig
from quizcraft.scoring import score

logger = logging.getLogger("quizcraft.attempts")


def load_quiz(db: Session, quiz_id: str) -> Quiz:
    quiz = db.get(Quiz, quiz_id)
    if quiz is None:
        raise NotFound("quiz not found")
    return quiz


def quiz_questions(quiz: Quiz) -> List[Question]:
    return [Question.model_validate(item) for item in quiz.questions]


def quiz_config(quiz: Quiz) -> QuizConfig:
    return QuizConfig.model_validate(quiz.config)


def _check_answers(questions: Sequence[Question], answers: Sequence[Optional[int]]) -> None:
    if len(answers) != len(questions):
        raise InvalidAttempt("number of answers does not match number of questions")


def record_attempt(
    db: Session, quiz_id: str, answers: Sequence[Optional[int]], owner_id: str
) -> Attempt:
    """Score an answer vector against the stored quiz and persist the attempt.

    The score is always recomputed here from the stored questions and config.
    An index that names no option is kept as submitted and scores as wrong.
    """
    quiz = load_quiz(db, quiz_id)
    questions = quiz_questions(quiz)
    _check_answers(questions, answers)

    result = score(questions, quiz_config(quiz), answers)
    attempt = Attempt(
        quiz_id=quiz.id,
        user_id=owner_id,
        answers=list(answers),
        score=result.score,
        max_score=result.max_score,
        percentage=result.percentage,
        completed_at=datetime.now(tz=timezone.utc),
    )
    db.add(attempt)
    db.commit()
    db.refresh(attempt)
    logger.info(
        "Recorded attempt %s on quiz %s for %s: %s/%s",
        attempt.id,
        quiz.id,
        owner_id,
        result.score,
        result.max_score,
    )
    return attempt


# Owner mismatch is reported as missing so attempt ids do not leak.
def get_attempt(db: Session, attempt_id: str, owner_id: str) -> Attempt:
    attempt = db.get(Attempt, attempt_id)
    if attempt is None or attempt.user_id != owner_id:
        raise NotFound("quiz attempt not found")
    return attempt


def list_attempts(db: Session, owner_id: str, quiz_id: Optional[str] = None) -> List[Attempt]:
    query = db.query(Attempt).filter(Attempt.user_id == owner_id)
    if quiz_id:
        query = query.filter(Attempt.quiz_id == quiz_id)
    return query.order_by(Attempt.completed_at.desc()).all()
