"""Client-side quiz-taking state machine.

A :class:`QuizSession` drives one pass through a quiz on a single asyncio
event loop. It tracks the current question, per-question status, the answer
vector and an optional countdown, and hands the answer vector to a submitter
when the quiz completes. The running score shown in immediate-feedback mode
is display-only; the server recomputes the authoritative score.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol

from quizcraft.errors import SessionError, SubmissionError
from quizcraft.schemas import FeedbackStyle, Question, QuestionStatus, QuizConfig, TimerType
from quizcraft.scoring import question_points

logger = logging.getLogger("quizcraft.session")

TICK_SECONDS = 1.0


class SessionPhase(str, Enum):
    ready = "ready"
    active = "active"
    submitting = "submitting"
    completed = "completed"
    failed = "failed"
    closed = "closed"


@dataclass(frozen=True)
class SubmissionResult:
    attempt_id: str
    score: float
    max_score: float
    percentage: float


@dataclass(frozen=True)
class AnswerFeedback:
    question_index: int
    selected: int
    correct_answer: int
    is_correct: bool
    points: float
    explanation: str


class AttemptSubmitter(Protocol):
    async def submit(self, quiz_id: str, answers: List[Optional[int]]) -> SubmissionResult:
        ...


class RepeatingTask:
    """Runs ``callback`` every ``interval`` seconds until cancelled.

    ``cancel`` may be called from inside the callback; the loop then stops
    after the callback returns instead of cancelling the running task.
    """

    def __init__(self, callback: Callable[[], Awaitable[None]], interval: float = TICK_SECONDS):
        self.callback = callback
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("task already started")
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self.interval)
            if self._stopped:
                break
            await self.callback()

    def cancel(self) -> None:
        self._stopped = True
        task = self._task
        if task is None or task.done():
            return
        if task is not asyncio.current_task():
            task.cancel()


class QuizSession:
    def __init__(
        self,
        quiz_id: str,
        config: QuizConfig,
        questions: List[Question],
        submitter: AttemptSubmitter,
        on_complete: Optional[Callable[[SubmissionResult], None]] = None,
        tick_interval: float = TICK_SECONDS,
    ):
        if not questions:
            raise SessionError("quiz has no questions")
        self.quiz_id = quiz_id
        self.config = config
        self.questions = questions
        self.submitter = submitter
        self.on_complete = on_complete
        self.tick_interval = tick_interval

        self.phase = SessionPhase.ready
        self.current_index = 0
        self.statuses: List[QuestionStatus] = [QuestionStatus.unseen] * len(questions)
        self.answers: List[Optional[int]] = [None] * len(questions)
        self.feedback: List[Optional[AnswerFeedback]] = [None] * len(questions)
        self.running_score = 0.0
        self.time_left: Optional[int] = None
        self.result: Optional[SubmissionResult] = None
        self.error: Optional[str] = None
        self._timer: Optional[RepeatingTask] = None

    @property
    def current_question(self) -> Question:
        return self.questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return self.current_index == len(self.questions) - 1

    @property
    def immediate_feedback(self) -> bool:
        return self.config.feedback_style == FeedbackStyle.immediate

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and self._timer.running

    def _require_active(self) -> None:
        if self.phase != SessionPhase.active:
            raise SessionError(f"session is {self.phase.value}")

    def _enter_question(self, index: int) -> None:
        self.current_index = index
        if self.statuses[index] == QuestionStatus.unseen:
            self.statuses[index] = QuestionStatus.seen
        if self.config.timer_enabled and self.config.timer_type == TimerType.per_question:
            self._restart_timer(max(int(self.config.time_limit), 1))

    # Timer

    def _restart_timer(self, seconds: int) -> None:
        self._stop_timer()
        if self.phase != SessionPhase.active:
            return
        self.time_left = seconds
        self._timer = RepeatingTask(self.tick, self.tick_interval)
        self._timer.start()

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def tick(self) -> None:
        """Advance the countdown by one second and handle expiry."""
        if self.phase != SessionPhase.active or self.time_left is None:
            return
        self.time_left = max(self.time_left - 1, 0)
        if self.time_left > 0:
            return
        self._stop_timer()
        if self.config.timer_type == TimerType.total:
            logger.info("Total time expired on quiz %s", self.quiz_id)
            await self._complete()
        else:
            logger.info("Time expired on question %d of quiz %s", self.current_index, self.quiz_id)
            await self._advance()

    # Input

    def start(self) -> None:
        """Start the session on the first question; must run inside the event loop."""
        if self.phase != SessionPhase.ready:
            raise SessionError("session already started")
        self.phase = SessionPhase.active
        if self.config.timer_enabled and self.config.timer_type == TimerType.total:
            self._restart_timer(max(int(self.config.time_limit * 60), 1))
        self._enter_question(0)

    def select_option(self, option_index: int) -> None:
        self._require_active()
        if not 0 <= option_index < len(self.current_question.options):
            raise SessionError("option index out of range")
        if self.immediate_feedback and self.feedback[self.current_index] is not None:
            raise SessionError("answer already submitted for this question")
        self.answers[self.current_index] = option_index
        self.statuses[self.current_index] = QuestionStatus.answered

    def submit_answer(self) -> AnswerFeedback:
        """Score the current selection once for immediate feedback."""
        self._require_active()
        if not self.immediate_feedback:
            raise SessionError("answers are scored at the end of this quiz")
        index = self.current_index
        if self.feedback[index] is not None:
            raise SessionError("answer already submitted for this question")
        selected = self.answers[index]
        if selected is None:
            raise SessionError("select an option before submitting")

        question = self.current_question
        points = question_points(question, self.config, selected)
        self.running_score = round(self.running_score + points, 2)
        feedback = AnswerFeedback(
            question_index=index,
            selected=selected,
            correct_answer=question.correct_answer,
            is_correct=selected == question.correct_answer,
            points=points,
            explanation=question.explanation,
        )
        self.feedback[index] = feedback
        return feedback

    async def next_question(self) -> None:
        self._require_active()
        if self.immediate_feedback and self.feedback[self.current_index] is None:
            raise SessionError("submit an answer before moving on")
        await self._advance()

    async def _advance(self) -> None:
        index = self.current_index
        if self.answers[index] is None and self.statuses[index] != QuestionStatus.answered:
            self.statuses[index] = QuestionStatus.skipped
        if self.is_last_question:
            await self._complete()
        else:
            self._enter_question(index + 1)

    # Completion

    async def force_submit(self) -> None:
        self._require_active()
        await self._complete()

    async def _complete(self) -> None:
        if self.phase != SessionPhase.active:
            return
        self._stop_timer()
        await self._submit()

    async def retry_submit(self) -> None:
        if self.phase != SessionPhase.failed:
            raise SessionError("there is no failed submission to retry")
        await self._submit()

    async def _submit(self) -> None:
        self.phase = SessionPhase.submitting
        self.error = None
        try:
            result = await self.submitter.submit(self.quiz_id, list(self.answers))
        except SubmissionError as exc:
            logger.warning("Submitting quiz %s failed: %s", self.quiz_id, exc.message)
            self.error = exc.message
            self.phase = SessionPhase.failed
            return
        except Exception as exc:
            logger.exception("Unexpected error submitting quiz %s", self.quiz_id)
            self.error = str(exc) or "submission failed"
            self.phase = SessionPhase.failed
            return
        self.result = result
        self.phase = SessionPhase.completed
        logger.info("Quiz %s submitted as attempt %s", self.quiz_id, result.attempt_id)
        if self.on_complete is not None:
            self.on_complete(result)

    def close(self) -> None:
        """Tear down the session and release its timer; later input is rejected."""
        self._stop_timer()
        if self.phase in (SessionPhase.ready, SessionPhase.active, SessionPhase.failed):
            self.phase = SessionPhase.closed
