import os

# Settings are read at import time; point them at throwaway storage first.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RETRY_BACKOFF_SECONDS", "0")

import copy
import json

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

from quizcore import repositories, services
from quizcore.database import build_engine, get_session


ROUND_TRIP_DOC = {
    "title": "Tooth Anatomy Basics",
    "description": "Warm-up quiz",
    "category": "Anatomy",
    "passingScore": 70,
    "questions": [
        {
            "questionText": "Which option is correct?",
            "questionType": "SingleCorrect",
            "points": 2,
            "displayOrder": 1,
            "explanation": "B is the only correct option.",
            "answerOptions": [
                {"optionText": "A", "isCorrect": False, "displayOrder": 1},
                {"optionText": "B", "isCorrect": True, "displayOrder": 2},
                {"optionText": "C", "isCorrect": False, "displayOrder": 3},
            ],
        },
        {
            "questionText": "Enamel is the hardest tissue in the human body.",
            "questionType": "BooleanChoice",
            "points": 1,
            "displayOrder": 2,
            "answerOptions": [
                {"optionText": "True", "isCorrect": True, "displayOrder": 1},
                {"optionText": "False", "isCorrect": False, "displayOrder": 2},
            ],
        },
    ],
}


@pytest.fixture
def round_trip_doc():
    return copy.deepcopy(ROUND_TRIP_DOC)


@pytest.fixture
def engine():
    """A fresh in-memory SQLite database per test."""
    eng = build_engine("sqlite://")
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def client(engine):
    from quizcore.main import app

    def _session_override():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


class SeededQuiz:
    """Ids of an imported quiz, addressable by question order and option text."""

    def __init__(self, session: Session, quiz_id: int):
        self.quiz_id = quiz_id
        self.questions = repositories.QuestionRepository(session).list_for_quiz(quiz_id)
        o_repo = repositories.AnswerOptionRepository(session)
        self.options = {
            q.id: {o.option_text: o.id for o in o_repo.list_for_question(q.id)} for q in self.questions
        }

    def question_id(self, index: int) -> int:
        return self.questions[index].id

    def option_id(self, index: int, text: str) -> int:
        return self.options[self.question_id(index)][text]


@pytest.fixture
def seed_quiz(session):
    """Import a document through the service and return its ids."""
    def _seed(doc: dict) -> SeededQuiz:
        result = services.ImportService(session).import_json(json.dumps(doc))
        assert result.success, result.errors
        return SeededQuiz(session, result.quiz_id)
    return _seed
