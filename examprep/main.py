"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the exam-preparation backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Every error leaves the API as a
`{"message": ...}` body.

Endpoints implemented:
- GET /health
- GET /subjects
- GET /questions
- GET /questions/{subject_id}/years
- GET /questions/{subject_id}/{year}/topics
- POST /exams/submit
- GET /exams/results
- GET /exams/results/{result_id}
"""

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlmodel import Session
from typing import Optional
import json
import logging
import time
import uuid
from .database import create_db_and_tables, get_session
from . import services, models
from .auth import get_current_user
from .config import settings
from .exceptions import BaseAppError
from .logging_config import setup_logging
from .schemas import ExamSubmissionIn, SubmitResponse, SubmittedResultOut

setup_logging()
logger = logging.getLogger("examprep.api")

app = FastAPI(title="Exam Prep API")

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(BaseAppError)
async def app_error_handler(request: Request, exc: BaseAppError):
    logger.warning("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    logger.warning("invalid request on %s: %s", request.url.path, errors)
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", []) if p != "body")
    message = f"{where}: {first.get('msg')}" if where else str(first.get("msg", "invalid request"))
    return JSONResponse(status_code=422, content={"message": message, "errors": errors})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("database error on %s: %s", request.url.path, exc.__class__.__name__, exc_info=True)
    return JSONResponse(status_code=503, content={"message": "database unavailable, please try again"})


def _parse_subject_ids(subject_id: Optional[int], subject_ids: Optional[str]) -> list:
    ids = []
    if subject_id is not None:
        ids.append(subject_id)
    if subject_ids:
        try:
            ids.extend(int(s) for s in subject_ids.split(",") if s.strip())
        except ValueError:
            raise HTTPException(status_code=400, detail="subject_ids must be a comma separated list of integers")
    if not ids:
        raise HTTPException(status_code=400, detail="subject_id or subject_ids is required")
    return ids


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


@app.get("/subjects")
def list_subjects(db: Session = Depends(get_session)):
    """List active subjects for the session setup screen."""
    return {"subjects": services.QuestionSelectionService(db).list_subjects()}


@app.get("/questions")
def get_questions(
    year: int,
    subject_id: Optional[int] = None,
    subject_ids: Optional[str] = None,
    topic: Optional[str] = None,
    limit: Optional[int] = None,
    mode: str = "exam",
    db: Session = Depends(get_session),
    user: models.User = Depends(get_current_user),
):
    """Return the question set for a new session.

    `subject_ids` is a comma separated list for multi-subject sessions.
    In `exam` mode answers and explanations are withheld; `practice`
    mode includes them.
    """
    ids = _parse_subject_ids(subject_id, subject_ids)
    svc = services.QuestionSelectionService(db)
    return {"questions": svc.select_questions(ids, year, topic=topic, mode=mode, limit=limit)}


@app.get("/questions/{subject_id}/years")
def get_years(subject_id: int, db: Session = Depends(get_session)):
    """Distinct years with active questions for a subject, newest first."""
    return {"years": services.QuestionSelectionService(db).list_years(subject_id)}


@app.get("/questions/{subject_id}/{year}/topics")
def get_topics(subject_id: int, year: int, db: Session = Depends(get_session)):
    """Distinct topics for a subject and year."""
    return {"topics": services.QuestionSelectionService(db).list_topics(subject_id, year)}


@app.post("/exams/submit", response_model=SubmitResponse)
def submit_exam(
    submission: ExamSubmissionIn,
    db: Session = Depends(get_session),
    user: models.User = Depends(get_current_user),
):
    """Score a finished session and store the result.

    The body carries every presented question, answered or not. The
    stored result is immutable; a failed submission stores nothing.
    """
    svc = services.ScoringService(db)
    result = svc.submit(
        user.id,
        submission.subject_id,
        submission.exam_type,
        submission.year,
        submission.answers,
        submission.time_used,
    )
    return SubmitResponse(
        message="Exam submitted successfully",
        result=SubmittedResultOut(
            id=result.id,
            score=result.score,
            correct_answers=result.correct_answers,
            total_questions=result.total_questions,
            time_used=result.time_used,
        ),
    )


@app.get("/exams/results")
def list_results(
    subject_id: Optional[int] = None,
    limit: int = 20,
    db: Session = Depends(get_session),
    user: models.User = Depends(get_current_user),
):
    """The authenticated user's results, newest first."""
    return {"results": services.ResultService(db).list_results(user.id, subject_id=subject_id, limit=limit)}


@app.get("/exams/results/{result_id}")
def get_result(
    result_id: int,
    db: Session = Depends(get_session),
    user: models.User = Depends(get_current_user),
):
    """Full per-question breakdown of one of the user's results."""
    return {"result": services.ResultService(db).get_result(user.id, result_id)}
