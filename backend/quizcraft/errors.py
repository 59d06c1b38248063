# Error taxonomy shared by the generation pipeline, attempts and sessions.
from typing import Optional

from fastapi import status


class QuizCraftError(Exception):
    code = "error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    # Message shown to API callers; generation stages override this.
    @property
    def public_message(self) -> str:
        return self.message


class GenerationError(QuizCraftError):
    status_code = status.HTTP_502_BAD_GATEWAY

    @property
    def public_message(self) -> str:
        return "quiz generation failed, please retry"


class InvalidConfig(QuizCraftError):
    code = "invalid_config"
    status_code = status.HTTP_400_BAD_REQUEST


class UpstreamError(GenerationError):
    code = "upstream_error"

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class ParseError(GenerationError):
    code = "parse_error"


class SchemaViolation(GenerationError):
    code = "schema_violation"

    def __init__(self, message: str, index: Optional[int] = None):
        super().__init__(message)
        self.index = index


class NotFound(QuizCraftError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidAttempt(QuizCraftError):
    code = "invalid_attempt"
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(QuizCraftError):
    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED


class StoreUnavailable(QuizCraftError):
    code = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


# Raised by QuizSession when input arrives in a state that does not accept it.
class SessionError(QuizCraftError):
    code = "session_error"
    status_code = status.HTTP_409_CONFLICT


class SubmissionError(QuizCraftError):
    code = "submission_failed"
