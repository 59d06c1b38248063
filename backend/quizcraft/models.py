import uuid

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON

from quizcraft.database import Base


def _uuid_str():
    return str(uuid.uuid4())


JSONType = JSON().with_variant(JSONB, "postgresql")


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255))
    image = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    topic = Column(Text, nullable=False)
    config = Column(JSONType, nullable=False)
    questions = Column(JSONType, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (Index("quizzes_user_created_idx", "user_id", "created_at"),)


class Attempt(Base):
    __tablename__ = "attempts"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    quiz_id = Column(String(36), ForeignKey("quizzes.id"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    answers = Column(JSONType, nullable=False)
    score = Column(Float, nullable=False)
    max_score = Column(Float, nullable=False)
    percentage = Column(Float, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("attempts_user_completed_idx", "user_id", "completed_at"),
        Index("attempts_user_quiz_idx", "user_id", "quiz_id"),
    )
