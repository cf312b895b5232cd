import pytest

from epa_tutor.db import init_db
from epa_tutor.models import Question
from epa_tutor.store import ProgressStore


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_tutor.db")
    return db_path


@pytest.fixture
def store(tmp_db):
    """An initialized, empty progress store."""
    init_db(tmp_db)
    return ProgressStore.load(tmp_db)


def make_questions(count, requirement="K1", answer="a"):
    return [
        Question(
            id=i, requirement=requirement, topic="Topic",
            text=f"Question {i}?",
            options={"a": "A", "b": "B", "c": "C", "d": "D"},
            answer=answer, explanation=f"Because {i}.",
        )
        for i in range(1, count + 1)
    ]


def wrong_letter(question):
    return "b" if question.answer != "b" else "c"
