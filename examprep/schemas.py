"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and turn raw JSON into typed
objects before any service code runs. Both snake_case keys and the
camelCase keys sent by the original browser client are accepted.
"""

from pydantic import AliasChoices, BaseModel, Field, field_validator
from typing import List, Literal, Optional

from .models import OPTION_LABELS


def normalize_label(value) -> Optional[str]:
    """Decode a submitted option label leniently.

    `"a"`, `" B "` and `"C"` decode to their upper-case label; anything
    that is not one of the four option labels (including `None`, numbers
    and empty strings) decodes to `None`, meaning unanswered.
    """
    if not isinstance(value, str):
        return None
    label = value.strip().upper()
    return label if label in OPTION_LABELS else None


class AnswerIn(BaseModel):
    """One presented question and the option the student picked, if any."""
    question_id: int = Field(validation_alias=AliasChoices('question_id', 'questionId'))
    selected_answer: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('selected_answer', 'selectedAnswer')
    )
    time_spent: int = Field(default=0, ge=0, validation_alias=AliasChoices('time_spent', 'timeSpent'))

    @field_validator('selected_answer', mode='before')
    @classmethod
    def _lenient_label(cls, value):
        return normalize_label(value)

    @field_validator('time_spent', mode='before')
    @classmethod
    def _missing_time_is_zero(cls, value):
        return 0 if value is None else value


class ExamSubmissionIn(BaseModel):
    """Body of `POST /exams/submit`."""
    subject_id: int = Field(validation_alias=AliasChoices('subject_id', 'subjectId', 'subject'))
    exam_type: Literal['practice', 'exam'] = Field(validation_alias=AliasChoices('exam_type', 'examType'))
    year: int
    answers: List[AnswerIn]
    time_used: int = Field(ge=0, validation_alias=AliasChoices('time_used', 'timeUsed'))


class SubmittedResultOut(BaseModel):
    id: int
    score: int
    correct_answers: int
    total_questions: int
    time_used: int


class SubmitResponse(BaseModel):
    message: str
    result: SubmittedResultOut
