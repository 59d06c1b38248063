# Attempt submitters and quiz loading for client-side sessions.
import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from quizcraft.attempts import record_attempt
from quizcraft.database import Database
from quizcraft.errors import QuizCraftError, SubmissionError
from quizcraft.quiz_session import QuizSession, SubmissionResult
from quizcraft.schemas import QuizTakeOut

logger = logging.getLogger("quizcraft.submitters")

DEFAULT_TIMEOUT = 10


# Pull the "detail" message out of an error response body when there is one.
def _error_detail(exc: urllib.error.HTTPError) -> str:
    try:
        body = json.loads(exc.read() or b"{}")
    except ValueError:
        return str(exc.reason)
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return str(exc.reason)


# Send a JSON request and decode the JSON reply, raising SubmissionError on failure.
def _request_json(
    url: str,
    method: str = "GET",
    body: Optional[Dict[str, Any]] = None,
    token: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    headers = {"Accept": "application/json", "User-Agent": "QuizCraftClient/1.0"}
    data = None
    if body is not None:
        data = json.dumps(body).encode("utf-8")
        headers["Content-Type"] = "application/json"
    if token:
        headers["Authorization"] = f"Bearer {token}"
    request = urllib.request.Request(url, data=data, headers=headers, method=method)
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            payload = response.read()
    except urllib.error.HTTPError as exc:
        raise SubmissionError(f"server returned {exc.code}: {_error_detail(exc)}") from exc
    except (urllib.error.URLError, OSError) as exc:
        raise SubmissionError(f"unable to reach {url}: {exc}") from exc
    try:
        return json.loads(payload)
    except ValueError as exc:
        raise SubmissionError("server returned an invalid response") from exc


class HttpAttemptSubmitter:
    """Posts the answer vector to the attempts endpoint of a QuizCraft server."""

    def __init__(self, base_url: str, token: str, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    async def submit(self, quiz_id: str, answers: List[Optional[int]]) -> SubmissionResult:
        payload = await asyncio.to_thread(
            _request_json,
            f"{self.base_url}/attempts",
            "POST",
            {"quizId": quiz_id, "answers": answers},
            self.token,
            self.timeout,
        )
        try:
            return SubmissionResult(
                attempt_id=payload["attemptId"],
                score=payload["score"],
                max_score=payload["maxScore"],
                percentage=payload["percentage"],
            )
        except (KeyError, TypeError) as exc:
            raise SubmissionError("attempt id not returned from server") from exc


class LocalAttemptSubmitter:
    """Records attempts in-process against a database handle."""

    def __init__(self, database: Database, owner_id: str):
        self.database = database
        self.owner_id = owner_id

    def _record(self, quiz_id: str, answers: List[Optional[int]]) -> SubmissionResult:
        db = self.database.session()
        try:
            attempt = record_attempt(db, quiz_id, answers, self.owner_id)
            return SubmissionResult(
                attempt_id=attempt.id,
                score=attempt.score,
                max_score=attempt.max_score,
                percentage=attempt.percentage,
            )
        finally:
            db.close()

    async def submit(self, quiz_id: str, answers: List[Optional[int]]) -> SubmissionResult:
        try:
            return self._record(quiz_id, answers)
        except QuizCraftError as exc:
            raise SubmissionError(exc.message) from exc
        except SQLAlchemyError as exc:
            logger.warning("Recording attempt on quiz %s failed: %s", quiz_id, exc)
            raise SubmissionError("attempt could not be stored") from exc


# Fetch a quiz from the server and wrap it in a ready session.
async def open_session(
    base_url: str, quiz_id: str, token: str, timeout: float = DEFAULT_TIMEOUT, **kwargs
) -> QuizSession:
    payload = await asyncio.to_thread(
        _request_json, f"{base_url.rstrip('/')}/quizzes/{quiz_id}", "GET", None, None, timeout
    )
    quiz = QuizTakeOut.model_validate(payload)
    logger.info("Loaded quiz %s with %d questions", quiz.id, len(quiz.questions))
    return QuizSession(
        quiz.id,
        quiz.config,
        quiz.questions,
        HttpAttemptSubmitter(base_url, token, timeout),
        **kwargs,
    )
