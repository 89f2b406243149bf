"""Client-side state machine for one practice or exam attempt.

An `ExamSession` is created by the screen controller that owns it, loaded
with the question set fetched from the API, and then mutated by the
student's actions and by a once-per-second tick. Nothing here touches the
network; `examprep.client.ExamController` does that.

States::

    loading -> in_progress -> submitting -> submitted
                    |     ^         |
                    |     +---------+  (submit call failed)
                    +--> timed_out      (remaining time reached zero)
                    +--> abandoned      (left without submitting)
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Set

from .exceptions import InvalidNavigation, NoQuestionsAvailable, SessionStateError
from .models import EXAM_TYPES, OPTION_LABELS

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    ABANDONED = "abandoned"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset({SessionState.SUBMITTED, SessionState.ABANDONED, SessionState.TIMED_OUT})


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


@dataclass(frozen=True)
class SessionSummary:
    """What the confirm-submit dialog shows."""
    total: int
    answered: int
    unanswered: int
    flagged: int
    remaining_seconds: int


class ExamSession:
    """One attempt at a question set.

    `clock` returns seconds (monotonic by default) and is used only for
    per-question time accounting; the countdown itself advances one
    second per `tick()`. `on_timeout` is called exactly once, after the
    session has entered `timed_out`.
    """

    def __init__(
        self,
        mode: str,
        duration_seconds: int,
        clock: Callable[[], float] = time.monotonic,
        on_timeout: Optional[Callable[["ExamSession"], None]] = None,
    ):
        if mode not in EXAM_TYPES:
            raise ValueError(f"mode must be one of {', '.join(EXAM_TYPES)}")
        if duration_seconds <= 0:
            raise ValueError("duration_seconds must be positive")
        self.mode = mode
        self.duration_seconds = int(duration_seconds)
        self.remaining_seconds = int(duration_seconds)
        self.state = SessionState.LOADING
        self.questions: List[dict] = []
        self.answers: Dict[int, Optional[str]] = {}
        self.flagged: Set[int] = set()
        self.time_spent: Dict[int, float] = {}
        self.current_index: Optional[int] = None
        self.result_id: Optional[int] = None
        self.timer: Optional[TimerHandle] = None
        self._clock = clock
        self._on_timeout = on_timeout
        self._arrived_at: Optional[float] = None
        self._lock = threading.RLock()

    # -- lifecycle -------------------------------------------------------

    def load(self, questions: List[dict]) -> None:
        """Enter `in_progress` with the fetched questions, starting at index 0."""
        with self._lock:
            self._require(SessionState.LOADING)
            if not questions:
                raise NoQuestionsAvailable()
            self.questions = list(questions)
            self.answers = {i: None for i in range(len(self.questions))}
            self.time_spent = {i: 0.0 for i in range(len(self.questions))}
            self.current_index = 0
            self._arrived_at = self._clock()
            self.state = SessionState.IN_PROGRESS

    def attach_timer(self, handle: TimerHandle) -> None:
        """Store the tick source so terminal transitions can cancel it."""
        with self._lock:
            self.timer = handle
            if self.is_terminal:
                handle.cancel()

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def total(self) -> int:
        return len(self.questions)

    # -- student actions -------------------------------------------------

    def select_answer(self, index: int, label: Optional[str]) -> None:
        """Record or overwrite the answer for `index`; `None` clears it."""
        if label is not None and label not in OPTION_LABELS:
            raise ValueError(f"label must be one of {', '.join(OPTION_LABELS)} or None")
        with self._lock:
            self._require(SessionState.IN_PROGRESS)
            self._check_index(index)
            self.answers[index] = label

    def navigate(self, index: int) -> None:
        """Move to `index`, closing the time slice of the current question."""
        with self._lock:
            self._require(SessionState.IN_PROGRESS)
            self._check_index(index)
            if index == self.current_index:
                return
            self._close_slice()
            self.current_index = index
            self._arrived_at = self._clock()

    def next(self) -> bool:
        with self._lock:
            self._require(SessionState.IN_PROGRESS)
            if self.current_index >= self.total - 1:
                return False
            self.navigate(self.current_index + 1)
            return True

    def previous(self) -> bool:
        with self._lock:
            self._require(SessionState.IN_PROGRESS)
            if self.current_index == 0:
                return False
            self.navigate(self.current_index - 1)
            return True

    def toggle_flag(self, index: Optional[int] = None) -> bool:
        """Flag or unflag a question (the current one by default).

        Returns whether the question is flagged afterwards.
        """
        with self._lock:
            self._require(SessionState.IN_PROGRESS)
            if index is None:
                index = self.current_index
            self._check_index(index)
            if index in self.flagged:
                self.flagged.discard(index)
                return False
            self.flagged.add(index)
            return True

    def tick(self) -> SessionState:
        """Advance the countdown by one second.

        Ignored outside `in_progress`. The tick that brings the remaining
        time to zero moves the session to `timed_out`, cancels the timer
        and fires `on_timeout`; later ticks do nothing.
        """
        with self._lock:
            if self.state is not SessionState.IN_PROGRESS:
                return self.state
            self.remaining_seconds = max(0, self.remaining_seconds - 1)
            if self.remaining_seconds > 0:
                return self.state
            self._finish(SessionState.TIMED_OUT)
        logger.info("session timed out after %ss", self.duration_seconds)
        if self._on_timeout is not None:
            self._on_timeout(self)
        return SessionState.TIMED_OUT

    # -- submission ------------------------------------------------------

    def summary(self) -> SessionSummary:
        with self._lock:
            answered = sum(1 for v in self.answers.values() if v is not None)
            return SessionSummary(
                total=self.total,
                answered=answered,
                unanswered=self.total - answered,
                flagged=len(self.flagged),
                remaining_seconds=self.remaining_seconds,
            )

    def begin_submit(self) -> SessionSummary:
        """Freeze the attempt while the submit call is in flight."""
        with self._lock:
            self._require(SessionState.IN_PROGRESS)
            self._close_slice()
            self.state = SessionState.SUBMITTING
            return self.summary()

    def submit_failed(self) -> None:
        """Return to `in_progress` after a failed submit call.

        The student keeps every answer and can decide to submit again.
        """
        with self._lock:
            self._require(SessionState.SUBMITTING)
            self.state = SessionState.IN_PROGRESS
            self._arrived_at = self._clock()

    def submission_payload(self, subject_id: int, year: int) -> dict:
        """Body for `POST /exams/submit` covering every presented question."""
        with self._lock:
            self._require(SessionState.SUBMITTING, SessionState.TIMED_OUT)
            # time_spent is rounded per item, so the items need not sum to time_used
            answers = [
                {
                    'question_id': q['id'],
                    'selected_answer': self.answers.get(i),
                    'time_spent': int(round(self.time_spent.get(i, 0.0))),
                }
                for i, q in enumerate(self.questions)
            ]
            return {
                'subject_id': subject_id,
                'exam_type': self.mode,
                'year': year,
                'answers': answers,
                'time_used': self.duration_seconds - self.remaining_seconds,
            }

    def mark_submitted(self, result_id: int) -> None:
        """Record the stored result; a session can own at most one."""
        with self._lock:
            if self.result_id is not None:
                raise SessionStateError(f"session already submitted as result {self.result_id}")
            self._require(SessionState.SUBMITTING, SessionState.TIMED_OUT)
            self.result_id = result_id
            if self.state is SessionState.SUBMITTING:
                self._finish(SessionState.SUBMITTED)

    def abandon(self) -> bool:
        """Leave without submitting. Returns False if already terminal."""
        with self._lock:
            if self.is_terminal:
                return False
            self._finish(SessionState.ABANDONED)
            return True

    # -- practice helpers ------------------------------------------------

    def question(self, index: Optional[int] = None) -> dict:
        with self._lock:
            if self.current_index is None:
                raise SessionStateError("no questions loaded")
            if index is None:
                index = self.current_index
            self._check_index(index)
            return self.questions[index]

    def feedback(self, index: Optional[int] = None) -> dict:
        """Correct answer and explanation for a question, practice mode only."""
        if self.mode != 'practice':
            raise SessionStateError("feedback is only available in practice mode")
        with self._lock:
            if index is None:
                index = self.current_index
            q = self.question(index)
            correct = q.get('correct_answer')
            selected = self.answers.get(index)
            return {
                'selected_answer': selected,
                'correct_answer': correct,
                'is_correct': selected is not None and selected == correct,
                'explanation': q.get('explanation') or '',
            }

    def time_spent_on(self, index: int) -> float:
        """Seconds spent on `index`, including the open slice if it is current."""
        with self._lock:
            self._check_index(index)
            spent = self.time_spent.get(index, 0.0)
            if index == self.current_index and self._arrived_at is not None:
                spent += max(0.0, self._clock() - self._arrived_at)
            return spent

    # -- internals -------------------------------------------------------

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise SessionStateError(f"operation not allowed in state {self.state.value} (expected {allowed})")

    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < self.total:
            raise InvalidNavigation(f"question index {index!r} out of range 0..{self.total - 1}")

    def _close_slice(self) -> None:
        if self._arrived_at is None or self.current_index is None:
            return
        self.time_spent[self.current_index] += max(0.0, self._clock() - self._arrived_at)
        self._arrived_at = None

    def _finish(self, state: SessionState) -> None:
        self._close_slice()
        self.state = state
        if self.timer is not None:
            self.timer.cancel()
