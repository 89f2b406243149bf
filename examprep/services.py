"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and domain logic. Services are intentionally thin: they validate input,
execute domain logic and persist aggregates via repositories. Errors are
raised from `examprep.exceptions` and translated to HTTP responses by
the application.
"""

import logging
from typing import Iterable, List, Optional, Union
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from . import models, repositories
from .config import settings
from .exceptions import (
    EmptySubmissionError,
    QuestionResolutionError,
    ResultNotFoundError,
    SubjectNotFoundError,
    TransientIOError,
    ValidationError,
)
from .schemas import AnswerIn
from .utils.parsers import parse_file_to_questions

logger = logging.getLogger(__name__)

MODES = ('exam', 'practice')


def compute_score(correct: int, total: int) -> int:
    """Percentage of `correct` out of `total`, rounded half up.

    Uses integer arithmetic so 12.5 always becomes 13.
    """
    if total <= 0:
        raise EmptySubmissionError()
    return (200 * correct + total) // (2 * total)


def subject_payload(subject: Optional[models.Subject]) -> Optional[dict]:
    if subject is None:
        return None
    return {'id': subject.id, 'name': subject.name, 'code': subject.code}


def question_payload(q: models.Question, include_answers: bool) -> dict:
    """Serialize a question for the client.

    With `include_answers=False` the correct answer and explanation keys
    are left out entirely so nothing can leak before submission.
    """
    out = {
        'id': q.id,
        'subject': subject_payload(q.subject),
        'year': q.year,
        'topic': q.topic,
        'question_text': q.question_text,
        'options': [{'label': o.label, 'text': o.text} for o in q.options],
        'difficulty': q.difficulty,
    }
    if include_answers:
        out['correct_answer'] = q.correct_answer
        out['explanation'] = q.explanation
    return out


def result_summary(r: models.ExamResult) -> dict:
    return {
        'id': r.id,
        'subject_id': r.subject_id,
        'exam_type': r.exam_type,
        'year': r.year,
        'score': r.score,
        'correct_answers': r.correct_answers,
        'total_questions': r.total_questions,
        'time_used': r.time_used,
        'completed_at': r.completed_at.isoformat(),
    }


class QuestionSelectionService:
    """Feed question sets and filter options to the session setup screen."""
    def __init__(self, session: Session):
        self.session = session
        self.q_repo = repositories.QuestionRepository(session)
        self.s_repo = repositories.SubjectRepository(session)

    def list_subjects(self) -> List[dict]:
        return [
            {**subject_payload(s), 'description': s.description}
            for s in self.s_repo.list_active()
        ]

    def select_questions(
        self,
        subject_ids: Union[int, Iterable[int]],
        year: int,
        topic: Optional[str] = None,
        mode: str = 'exam',
        limit: Optional[int] = None,
    ) -> List[dict]:
        """Return active questions for one or more subjects and a year.

        Exam mode hides answers and explanations; practice mode includes
        them for immediate feedback. Ordering is by question id so the
        same request always yields the same sequence.
        """
        if mode not in MODES:
            raise ValidationError(f"mode must be one of {', '.join(MODES)}")
        if isinstance(subject_ids, int):
            subject_ids = [subject_ids]
        ids = list(dict.fromkeys(subject_ids))
        if not ids:
            raise ValidationError('at least one subject is required')
        if limit is None:
            limit = settings.default_limit_for(mode)
        if limit < 1:
            raise ValidationError('limit must be at least 1')
        limit = min(limit, settings.MAX_QUESTION_LIMIT)
        questions = self.q_repo.select(ids, year, topic=topic or None, limit=limit)
        return [question_payload(q, include_answers=(mode == 'practice')) for q in questions]

    def list_years(self, subject_id: int) -> List[int]:
        return self.q_repo.distinct_years(subject_id)

    def list_topics(self, subject_id: int, year: int) -> List[str]:
        return self.q_repo.distinct_topics(subject_id, year)


class ScoringService:
    """Score a finished session against the question store and persist it."""
    def __init__(self, session: Session):
        self.session = session
        self.q_repo = repositories.QuestionRepository(session)
        self.s_repo = repositories.SubjectRepository(session)
        self.result_repo = repositories.ResultRepository(session)

    def submit(
        self,
        user_id: int,
        subject_id: int,
        exam_type: str,
        year: int,
        answers: List[Union[AnswerIn, dict]],
        time_used: int,
    ) -> models.ExamResult:
        """Grade `answers` and persist exactly one `ExamResult`.

        Every answer entry stands for one presented question; entries with
        no (or an unrecognised) selected option count as incorrect rather
        than being skipped, so `total_questions` is the number of resolved
        questions and not the number answered. Any failure leaves the
        result store untouched.
        """
        if exam_type not in models.EXAM_TYPES:
            raise ValidationError(f"exam_type must be one of {', '.join(models.EXAM_TYPES)}")
        if time_used is None or time_used < 0:
            raise ValidationError('time_used must be a non-negative number of seconds')
        decoded = self._decode(answers)
        seen = set()
        duplicates = set()
        for a in decoded:
            if a.question_id in seen:
                duplicates.add(a.question_id)
            seen.add(a.question_id)
        if duplicates:
            raise ValidationError(f"duplicate question ids in submission: {', '.join(str(i) for i in sorted(duplicates))}")
        if not decoded:
            raise EmptySubmissionError()

        try:
            if self.s_repo.get(subject_id) is None:
                raise SubjectNotFoundError(subject_id)
            resolved = self.q_repo.get_many(seen)
        except SQLAlchemyError as e:
            logger.error("question lookup failed: %s", e)
            raise TransientIOError('question store unavailable') from e

        missing = seen - set(resolved)
        if missing:
            logger.warning("submission rejected, unknown questions %s (user_id=%s)", sorted(missing), user_id)
            raise QuestionResolutionError(missing)

        total = len(resolved)
        if total == 0:
            raise EmptySubmissionError()

        items = []
        correct = 0
        for position, a in enumerate(decoded):
            q = resolved[a.question_id]
            is_correct = a.selected_answer is not None and a.selected_answer == q.correct_answer
            if is_correct:
                correct += 1
            items.append(models.ExamResultItem(
                question_id=q.id,
                position=position,
                selected_answer=a.selected_answer,
                correct_answer=q.correct_answer,
                is_correct=is_correct,
                time_spent=a.time_spent,
            ))

        result = models.ExamResult(
            user_id=user_id,
            subject_id=subject_id,
            exam_type=exam_type,
            year=year,
            total_questions=total,
            correct_answers=correct,
            score=compute_score(correct, total),
            time_used=time_used,
        )
        try:
            created = self.result_repo.create_result(result, items)
        except SQLAlchemyError as e:
            logger.error("result persistence failed: %s", e)
            raise TransientIOError('result store unavailable') from e
        logger.info(
            "exam result stored: id=%s user_id=%s score=%s correct=%s/%s",
            created.id, user_id, created.score, created.correct_answers, created.total_questions,
        )
        return created

    def _decode(self, answers) -> List[AnswerIn]:
        if answers is None:
            raise ValidationError('answers are required')
        out = []
        for idx, a in enumerate(answers):
            if isinstance(a, AnswerIn):
                out.append(a)
                continue
            try:
                out.append(AnswerIn.model_validate(a))
            except PydanticValidationError as e:
                raise ValidationError(f"answers[{idx}] is malformed: {e.errors()[0]['msg']}") from e
        return out


class ResultService:
    """Read-only access to stored exam results."""
    def __init__(self, session: Session):
        self.session = session
        self.result_repo = repositories.ResultRepository(session)
        self.q_repo = repositories.QuestionRepository(session)
        self.s_repo = repositories.SubjectRepository(session)

    def get_result(self, user_id: int, result_id: int) -> dict:
        """Return the full breakdown of one result for review.

        Results belonging to a different user are reported as missing.
        """
        r = self.result_repo.get(result_id)
        if r is None or r.user_id != user_id:
            raise ResultNotFoundError(result_id)
        questions = self.q_repo.get_many([it.question_id for it in r.items], with_options=True)
        items = []
        for it in r.items:
            q = questions.get(it.question_id)
            items.append({
                'question_id': it.question_id,
                'question_text': q.question_text if q else None,
                'topic': q.topic if q else None,
                'options': [{'label': o.label, 'text': o.text} for o in q.options] if q else [],
                'explanation': q.explanation if q else None,
                'selected_answer': it.selected_answer,
                'correct_answer': it.correct_answer,
                'is_correct': it.is_correct,
                'time_spent': it.time_spent,
            })
        out = result_summary(r)
        out['subject'] = subject_payload(self.s_repo.get(r.subject_id))
        out['questions'] = items
        return out

    def list_results(self, user_id: int, subject_id: Optional[int] = None, limit: int = 20) -> List[dict]:
        limit = max(1, min(limit, settings.MAX_QUESTION_LIMIT))
        return [result_summary(r) for r in self.result_repo.list_for_user(user_id, subject_id=subject_id, limit=limit)]


class ImportService:
    """Import question banks from files and persist them to the DB."""
    def __init__(self, session: Session):
        self.session = session
        self.q_repo = repositories.QuestionRepository(session)
        self.s_repo = repositories.SubjectRepository(session)

    def import_file(self, file_bytes: bytes, filename: str, deduplicate: bool = True, dry_run: bool = False):
        """Parse `filename` contents and create `Subject` and `Question` rows.

        Returns a dictionary with the number of created questions and any
        validation `errors` encountered per item. When `deduplicate` is True,
        questions with identical subject/year/text are skipped.
        """
        if len(file_bytes) > settings.MAX_UPLOAD_BYTES:
            raise ValueError(f"{filename} is larger than {settings.MAX_UPLOAD_BYTES} bytes")
        subjects, parsed = parse_file_to_questions(file_bytes, filename)
        created_subjects = 0
        pending_codes = set()
        for s in subjects:
            if not s.get('code') or not s.get('name'):
                continue
            if self.s_repo.get_by_code(s['code']) is None:
                if dry_run:
                    pending_codes.add(s['code'])
                else:
                    self.s_repo.create(models.Subject(name=s['name'], code=s['code'], description=s['description']))
                created_subjects += 1
        created = 0
        skipped = 0
        errors = []
        for idx, p in enumerate(parsed):
            try:
                self._validate_parsed_question(p)
            except ValueError as e:
                errors.append({'index': idx, 'error': str(e)})
                continue
            subject = self.s_repo.get_by_code(p['subject_code'])
            if subject is None:
                if p['subject_code'].upper() in pending_codes:
                    created += 1
                    continue
                errors.append({'index': idx, 'error': f"unknown subject: {p['subject_code']}"})
                continue
            if deduplicate and self.q_repo.exists(subject.id, p['year'], p['question_text']):
                skipped += 1
                continue
            q = models.Question(
                subject_id=subject.id,
                year=p['year'],
                topic=p['topic'],
                question_text=p['question_text'],
                correct_answer=p['correct_answer'],
                explanation=p.get('explanation') or '',
                difficulty=p.get('difficulty') or 'medium',
            )
            options = [models.QuestionOption(label=label, text=p['options'][label]) for label in models.OPTION_LABELS]
            if not dry_run:
                self.q_repo.create(q, options)
            created += 1
        logger.info("imported %s: created=%s skipped=%s errors=%s", filename, created, skipped, len(errors))
        return {'created': created, 'created_subjects': created_subjects, 'skipped': skipped, 'errors': errors}

    def _validate_parsed_question(self, p: dict):
        """Validate a parsed question dictionary and raise ValueError on error."""
        if not p.get('question_text'):
            raise ValueError('missing or empty question_text')
        if not p.get('subject_code'):
            raise ValueError('missing subject')
        if p.get('year') is None:
            raise ValueError('missing or invalid year')
        if not p.get('topic'):
            raise ValueError('missing topic')
        options = p.get('options') or {}
        if sorted(options) != list(models.OPTION_LABELS) or not all(options.values()):
            raise ValueError('exactly four options labeled A-D are required')
        correct = (p.get('correct_answer') or '').upper()
        if correct not in models.OPTION_LABELS:
            raise ValueError('correct_answer must be one of A, B, C, D')
        p['correct_answer'] = correct
        difficulty = p.get('difficulty')
        if difficulty is not None and difficulty.lower() not in models.DIFFICULTIES:
            raise ValueError(f'unknown difficulty: {difficulty}')
        if difficulty:
            p['difficulty'] = difficulty.lower()
