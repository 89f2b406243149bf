import os
import tempfile
from types import SimpleNamespace

# Point the app at a throwaway SQLite file before `examprep` is imported
_DB_DIR = tempfile.mkdtemp(prefix="examprep-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlmodel import SQLModel, Session

from examprep.database import engine, create_db_and_tables
from examprep.auth import create_access_token
from examprep import models


@pytest.fixture(autouse=True)
def reset_db():
    """Give every test empty tables."""
    SQLModel.metadata.drop_all(engine)
    create_db_and_tables()
    yield


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


def add_question(session, subject_id, year, topic, text, correct, is_active=True, explanation=""):
    q = models.Question(
        subject_id=subject_id,
        year=year,
        topic=topic,
        question_text=text,
        correct_answer=correct,
        explanation=explanation,
        is_active=is_active,
    )
    q.options = [models.QuestionOption(label=label, text=f"{text} option {label}") for label in models.OPTION_LABELS]
    session.add(q)
    session.commit()
    session.refresh(q)
    return q.id


@pytest.fixture
def bank(db):
    """Two subjects; Mathematics 2023 has five active questions keyed A,B,C,D,A."""
    mth = models.Subject(name="Mathematics", code="MTH")
    eng = models.Subject(name="English Language", code="ENG")
    db.add(mth)
    db.add(eng)
    db.commit()
    db.refresh(mth)
    db.refresh(eng)
    keys = ["A", "B", "C", "D", "A"]
    topics = ["Algebra", "Algebra", "Geometry", "Statistics", "Geometry"]
    math_ids = [
        add_question(db, mth.id, 2023, topic, f"Maths question {i + 1}", key, explanation=f"Because {key}")
        for i, (topic, key) in enumerate(zip(topics, keys))
    ]
    inactive_id = add_question(db, mth.id, 2023, "Algebra", "Retired question", "B", is_active=False)
    older_id = add_question(db, mth.id, 2021, "Calculus", "Old maths question", "C")
    eng_ids = [
        add_question(db, eng.id, 2023, "Grammar", "English question 1", "D"),
        add_question(db, eng.id, 2023, "Vocabulary", "English question 2", "B"),
    ]
    return SimpleNamespace(
        math_id=mth.id,
        eng_id=eng.id,
        math_ids=math_ids,
        math_keys=keys,
        inactive_id=inactive_id,
        older_id=older_id,
        eng_ids=eng_ids,
    )


def _make_user(db, username):
    user = models.User(username=username)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db):
    return _make_user(db, "student")


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def other_headers(db):
    other = _make_user(db, "someone-else")
    return {"Authorization": f"Bearer {create_access_token(other)}"}
