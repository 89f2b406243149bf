"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
subjects, questions, exam results). Repositories return SQLModel
objects; only the write helpers commit.
"""

from typing import Dict, Iterable, List, Optional
from sqlmodel import Session, select
from sqlalchemy import func
from sqlalchemy.orm import selectinload
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)


class SubjectRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, subject_id: int) -> Optional[models.Subject]:
        return self.session.get(models.Subject, subject_id)

    def get_by_code(self, code: str) -> Optional[models.Subject]:
        stmt = select(models.Subject).where(models.Subject.code == code.upper())
        return self.session.exec(stmt).first()

    def list_active(self) -> List[models.Subject]:
        stmt = select(models.Subject).where(models.Subject.is_active == True).order_by(models.Subject.name)  # noqa: E712
        return self.session.exec(stmt).all()

    def create(self, subject: models.Subject) -> models.Subject:
        self.session.add(subject)
        self.session.commit()
        self.session.refresh(subject)
        return subject


class QuestionRepository:
    """Queries over the question bank plus the create helper used by imports."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, question: models.Question, options: List[models.QuestionOption]) -> models.Question:
        """Create a question together with its options in one commit."""
        question.options = list(options)
        self.session.add(question)
        self.session.commit()
        self.session.refresh(question)
        return question

    def get(self, question_id: int) -> Optional[models.Question]:
        """Fetch a question by id."""
        return self.session.get(models.Question, question_id)

    def get_many(self, question_ids: Iterable[int], with_options: bool = False) -> Dict[int, models.Question]:
        """Resolve a set of ids in a single query.

        Inactive questions are still returned: a question deactivated after
        a student saw it must remain scorable. Ids that do not exist are
        simply absent from the returned mapping.
        """
        ids = set(question_ids)
        if not ids:
            return {}
        stmt = select(models.Question).where(models.Question.id.in_(ids))
        if with_options:
            stmt = stmt.options(selectinload(models.Question.options))
        return {q.id: q for q in self.session.exec(stmt).all()}

    def select(
        self,
        subject_ids: List[int],
        year: int,
        topic: Optional[str] = None,
        limit: int = 40,
    ) -> List[models.Question]:
        """Return active questions for the filters in ascending id order."""
        stmt = select(models.Question).where(
            models.Question.subject_id.in_(subject_ids),
            models.Question.year == year,
            models.Question.is_active == True,  # noqa: E712
        )
        if topic:
            stmt = stmt.where(models.Question.topic == topic)
        stmt = (
            stmt.options(selectinload(models.Question.options), selectinload(models.Question.subject))
            .order_by(models.Question.id)
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def distinct_years(self, subject_id: int) -> List[int]:
        """Distinct years with active questions, newest first."""
        stmt = (
            select(models.Question.year)
            .where(models.Question.subject_id == subject_id, models.Question.is_active == True)  # noqa: E712
            .distinct()
            .order_by(models.Question.year.desc())
        )
        return list(self.session.exec(stmt).all())

    def distinct_topics(self, subject_id: int, year: int) -> List[str]:
        stmt = (
            select(models.Question.topic)
            .where(
                models.Question.subject_id == subject_id,
                models.Question.year == year,
                models.Question.is_active == True,  # noqa: E712
            )
            .distinct()
            .order_by(models.Question.topic)
        )
        return list(self.session.exec(stmt).all())

    def exists(self, subject_id: int, year: int, question_text: str) -> bool:
        """Return True if the same question text already exists for subject/year."""
        stmt = select(models.Question.id).where(
            models.Question.subject_id == subject_id,
            models.Question.year == year,
            models.Question.question_text == question_text,
        )
        return self.session.exec(stmt).first() is not None


class ResultRepository:
    """Append-only persistence for exam results and their items."""
    def __init__(self, session: Session):
        self.session = session

    def create_result(self, result: models.ExamResult, items: List[models.ExamResultItem]) -> models.ExamResult:
        """Store an `ExamResult` and its items in a single transaction.

        Nothing is left behind if the commit fails; the session is rolled
        back and the original exception propagates.
        """
        result.items = list(items)
        self.session.add(result)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(result)
        return result

    def get(self, result_id: int) -> Optional[models.ExamResult]:
        stmt = (
            select(models.ExamResult)
            .where(models.ExamResult.id == result_id)
            .options(selectinload(models.ExamResult.items))
        )
        return self.session.exec(stmt).first()

    def list_for_user(self, user_id: int, subject_id: Optional[int] = None, limit: int = 20) -> List[models.ExamResult]:
        """Return a user's results, newest first."""
        stmt = select(models.ExamResult).where(models.ExamResult.user_id == user_id)
        if subject_id is not None:
            stmt = stmt.where(models.ExamResult.subject_id == subject_id)
        stmt = stmt.order_by(models.ExamResult.completed_at.desc(), models.ExamResult.id.desc()).limit(limit)
        return self.session.exec(stmt).all()

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.ExamResult)).one()
