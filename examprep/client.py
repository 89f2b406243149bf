"""HTTP client and exam-screen controller.

`ExamApiClient` is a thin wrapper over an `httpx.Client` that maps the
API's error responses onto `examprep.exceptions`. It never retries: a
failed submit is surfaced to the student, who decides what to do.

`ExamController` owns one `ExamSession` and its ticker for the lifetime
of an exam screen.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, List, Optional, Union

import httpx

from .config import settings
from .exceptions import ApiError, BaseAppError, SessionStateError, TransientIOError
from .session import ExamSession, SessionState, SessionSummary, TimerHandle
from .utils.ticker import RepeatingTicker

logger = logging.getLogger(__name__)


class ExamApiClient:
    def __init__(self, http: httpx.Client, token: Optional[str] = None):
        self.http = http
        self.token = token

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            resp = self.http.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TransportError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise TransientIOError(f"could not reach the exam service: {e}") from e
        if resp.status_code >= 400:
            message = _error_message(resp)
            if resp.status_code >= 500:
                raise TransientIOError(message)
            raise ApiError(message, status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            logger.warning("%s %s returned a non-JSON body", method, url)
            raise TransientIOError(f"unreadable response from the exam service ({resp.status_code})") from e

    def list_subjects(self) -> List[dict]:
        return self._request("GET", "/subjects")["subjects"]

    def fetch_years(self, subject_id: int) -> List[int]:
        return self._request("GET", f"/questions/{subject_id}/years")["years"]

    def fetch_topics(self, subject_id: int, year: int) -> List[str]:
        return self._request("GET", f"/questions/{subject_id}/{year}/topics")["topics"]

    def fetch_questions(
        self,
        subject_ids: Union[int, Iterable[int]],
        year: int,
        mode: str = "exam",
        topic: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        if isinstance(subject_ids, int):
            subject_ids = [subject_ids]
        params = {"subject_ids": ",".join(str(s) for s in subject_ids), "year": year, "mode": mode}
        if topic:
            params["topic"] = topic
        if limit is not None:
            params["limit"] = limit
        return self._request("GET", "/questions", params=params)["questions"]

    def submit_exam(self, payload: dict) -> dict:
        return self._request("POST", "/exams/submit", json=payload)

    def fetch_result(self, result_id: int) -> dict:
        return self._request("GET", f"/exams/results/{result_id}")["result"]

    def list_results(self, subject_id: Optional[int] = None, limit: int = 20) -> List[dict]:
        params = {"limit": limit}
        if subject_id is not None:
            params["subject_id"] = subject_id
        return self._request("GET", "/exams/results", params=params)["results"]


def _result_of(response) -> dict:
    result = response.get("result") if isinstance(response, dict) else None
    if not isinstance(result, dict) or "id" not in result:
        raise TransientIOError("the exam service did not return a stored result")
    return result


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {resp.status_code}"


class ExamController:
    """Drive one attempt: load, answer, submit or time out, review.

    `ticker_factory(callback)` must return an object with `start()` and
    `cancel()`; the default ticks once a second on a daemon thread.
    """

    def __init__(
        self,
        api: ExamApiClient,
        clock: Callable[[], float] = time.monotonic,
        ticker_factory: Optional[Callable[[Callable[[], None]], TimerHandle]] = None,
        tick_interval: float = 1.0,
    ):
        self.api = api
        self._clock = clock
        self._ticker_factory = ticker_factory or (lambda cb: RepeatingTicker(tick_interval, cb))
        self.session: Optional[ExamSession] = None
        self.subject_id: Optional[int] = None
        self.year: Optional[int] = None
        self.result: Optional[dict] = None
        self.last_error: Optional[BaseAppError] = None
        self._submit_lock = threading.Lock()

    def start(
        self,
        subject_ids: Union[int, List[int]],
        year: int,
        mode: str = "exam",
        topic: Optional[str] = None,
        limit: Optional[int] = None,
        duration_seconds: Optional[int] = None,
    ) -> ExamSession:
        """Fetch questions and enter `in_progress`.

        A fetch failure or an empty question set leaves the new session in
        `loading` and propagates, so the caller can show an error and
        return to the setup screen; calling `start` again replaces it.
        """
        current = self.session
        if current is not None and current.state is not SessionState.LOADING and not current.is_terminal:
            raise SessionStateError("an attempt is already running on this screen")
        ids = [subject_ids] if isinstance(subject_ids, int) else list(subject_ids)
        session = ExamSession(
            mode,
            duration_seconds or settings.duration_for(mode),
            clock=self._clock,
            on_timeout=self._on_timeout,
        )
        self.session = session
        self.subject_id = ids[0] if ids else None
        self.year = year
        self.result = None
        self.last_error = None
        questions = self.api.fetch_questions(ids, year, mode=mode, topic=topic, limit=limit)
        session.load(questions)
        ticker = self._ticker_factory(session.tick)
        session.attach_timer(ticker)
        ticker.start()
        logger.info("session started: mode=%s questions=%s", mode, session.total)
        return session

    def request_submit(self) -> SessionSummary:
        """Counts for the confirmation dialog; nothing is sent yet."""
        return self._require_session().summary()

    def confirm_submit(self) -> dict:
        """Send the answers. On failure the session returns to `in_progress`."""
        session = self._require_session()
        with self._submit_lock:
            session.begin_submit()
            payload = session.submission_payload(self.subject_id, self.year)
            try:
                result = _result_of(self.api.submit_exam(payload))
            except BaseAppError as e:
                self.last_error = e
                session.submit_failed()
                raise
            return self._record(session, result)

    def retry_submit(self) -> dict:
        """Resend a timed-out session whose automatic submit failed."""
        session = self._require_session()
        with self._submit_lock:
            if session.state is not SessionState.TIMED_OUT or session.result_id is not None:
                raise SessionStateError("nothing to retry")
            try:
                result = _result_of(self.api.submit_exam(session.submission_payload(self.subject_id, self.year)))
            except BaseAppError as e:
                self.last_error = e
                raise
            self.last_error = None
            return self._record(session, result)

    def abandon(self) -> bool:
        return self._require_session().abandon()

    def fetch_result(self) -> dict:
        session = self._require_session()
        if session.result_id is None:
            raise SessionStateError("session has no stored result")
        return self.api.fetch_result(session.result_id)

    def _on_timeout(self, session: ExamSession) -> None:
        # Runs on the ticker thread; errors are kept for the UI, not raised
        with self._submit_lock:
            try:
                result = _result_of(self.api.submit_exam(session.submission_payload(self.subject_id, self.year)))
            except BaseAppError as e:
                logger.warning("automatic submit after time-out failed: %s", e.message)
                self.last_error = e
                return
            self._record(session, result)

    def _record(self, session: ExamSession, result: dict) -> dict:
        session.mark_submitted(result["id"])
        self.result = result
        return result

    def _require_session(self) -> ExamSession:
        if self.session is None:
            raise SessionStateError("no attempt has been started")
        return self.session
