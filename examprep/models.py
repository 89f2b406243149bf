"""SQLModel data models.

This module defines the application's database tables using SQLModel.
`Subject`, `Question` and `QuestionOption` make up the question store;
`ExamResult` and `ExamResultItem` make up the append-only result store.
"""

from typing import Optional
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import event
from sqlalchemy.orm import object_session
from datetime import datetime, timezone
from typing import List

OPTION_LABELS = ("A", "B", "C", "D")
EXAM_TYPES = ("practice", "exam")
DIFFICULTIES = ("easy", "medium", "hard")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A user known to the external auth provider.

    Only the id is referenced by results; credentials live elsewhere.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    created_at: datetime = Field(default_factory=_utcnow)


class Subject(SQLModel, table=True):
    """An examinable subject such as Mathematics (`MTH`)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    code: str = Field(index=True, unique=True)
    description: str = ""
    is_active: bool = True
    questions: List['Question'] = Relationship(back_populates='subject')


class Question(SQLModel, table=True):
    """A four-option multiple-choice question from a past paper."""
    id: Optional[int] = Field(default=None, primary_key=True)
    subject_id: int = Field(foreign_key='subject.id', index=True)
    year: int = Field(index=True)
    topic: str = Field(index=True)
    question_text: str
    correct_answer: str
    explanation: str = ""
    difficulty: str = "medium"
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=_utcnow)
    subject: Optional[Subject] = Relationship(back_populates='questions')
    options: List['QuestionOption'] = Relationship(
        back_populates='question',
        sa_relationship_kwargs={'order_by': 'QuestionOption.label'},
    )


class QuestionOption(SQLModel, table=True):
    """One labeled option (`A`-`D`) of a `Question`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key='question.id', index=True)
    label: str
    text: str
    question: Optional[Question] = Relationship(back_populates='options')


class ExamResult(SQLModel, table=True):
    """The persisted outcome of one submitted or timed-out session.

    Rows are written once by the scoring service and never updated.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    subject_id: int = Field(foreign_key='subject.id', index=True)
    exam_type: str
    year: int
    total_questions: int
    correct_answers: int
    score: int
    time_used: int
    completed_at: datetime = Field(default_factory=_utcnow, index=True)
    items: List['ExamResultItem'] = Relationship(
        back_populates='result',
        sa_relationship_kwargs={'order_by': 'ExamResultItem.position'},
    )


class ExamResultItem(SQLModel, table=True):
    """Snapshot of a single question outcome inside an `ExamResult`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    result_id: int = Field(foreign_key='examresult.id', index=True)
    question_id: int = Field(foreign_key='question.id')
    position: int
    selected_answer: Optional[str] = None
    correct_answer: str
    is_correct: bool = False
    time_spent: int = 0
    result: Optional[ExamResult] = Relationship(back_populates='items')


@event.listens_for(ExamResult, 'before_update')
@event.listens_for(ExamResultItem, 'before_update')
def _reject_result_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        raise RuntimeError(f"{type(target).__name__} rows are append-only")
