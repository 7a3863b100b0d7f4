"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (quizzes,
questions, options, attempts, responses). Repositories only `flush`;
committing is left to the surrounding transaction so a service can group
several writes into one atomic unit.
"""

from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import func
from sqlmodel import Session, select

from . import models


class QuizRepository:
    """Lookups and inserts for `Quiz` rows."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, quiz: models.Quiz) -> models.Quiz:
        """Stage a new quiz and flush to obtain its id."""
        self.session.add(quiz)
        self.session.flush()
        return quiz

    def get(self, quiz_id: int) -> Optional[models.Quiz]:
        return self.session.get(models.Quiz, quiz_id)

    def get_for_update(self, quiz_id: int) -> Optional[models.Quiz]:
        """Fetch a quiz and lock its row where the backend supports it.

        Locking the quiz row serializes concurrent `start` calls for the
        same quiz on server databases; SQLite ignores the clause.
        """
        stmt = select(models.Quiz).where(models.Quiz.id == quiz_id).with_for_update()
        return self.session.exec(stmt).first()

    def delete(self, quiz: models.Quiz) -> None:
        """Delete a quiz; its questions and options go with it."""
        self.session.delete(quiz)
        self.session.flush()


class QuestionRepository:
    """Lookups and inserts for `Question` rows."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, question: models.Question) -> models.Question:
        self.session.add(question)
        self.session.flush()
        return question

    def get(self, question_id: int) -> Optional[models.Question]:
        """Fetch a question by id."""
        return self.session.get(models.Question, question_id)

    def list_for_quiz(self, quiz_id: int) -> List[models.Question]:
        """Questions of a quiz by order index; ties keep insertion order."""
        stmt = (
            select(models.Question)
            .where(models.Question.quiz_id == quiz_id)
            .order_by(models.Question.order_index, models.Question.id)
        )
        return list(self.session.exec(stmt).all())

    def count_by_quiz(self, quiz_ids: Iterable[int]) -> Dict[int, int]:
        """Number of questions per quiz id."""
        ids = list(set(quiz_ids))
        out = {qid: 0 for qid in ids}
        if not ids:
            return out
        stmt = (
            select(models.Question.quiz_id, func.count(models.Question.id))
            .where(models.Question.quiz_id.in_(ids))
            .group_by(models.Question.quiz_id)
        )
        for quiz_id, count in self.session.exec(stmt).all():
            out[quiz_id] = count
        return out

    def delete(self, question: models.Question) -> None:
        self.session.delete(question)
        self.session.flush()


class AnswerOptionRepository:
    """Query helpers for `AnswerOption` records."""
    def __init__(self, session: Session):
        self.session = session

    def add_many(self, options: List[models.AnswerOption]) -> None:
        self.session.add_all(options)
        self.session.flush()

    def list_for_question(self, question_id: int) -> List[models.AnswerOption]:
        """List option rows for `question_id` in display order."""
        stmt = (
            select(models.AnswerOption)
            .where(models.AnswerOption.question_id == question_id)
            .order_by(models.AnswerOption.order_index, models.AnswerOption.id)
        )
        return list(self.session.exec(stmt).all())

    def list_for_questions(self, question_ids: Iterable[int]) -> Dict[int, List[models.AnswerOption]]:
        """Group the options of several questions by question id."""
        ids = list(set(question_ids))
        out: Dict[int, List[models.AnswerOption]] = {qid: [] for qid in ids}
        if not ids:
            return out
        stmt = (
            select(models.AnswerOption)
            .where(models.AnswerOption.question_id.in_(ids))
            .order_by(models.AnswerOption.order_index, models.AnswerOption.id)
        )
        for opt in self.session.exec(stmt).all():
            out[opt.question_id].append(opt)
        return out

    def option_ids(self, question_id: int) -> Set[int]:
        stmt = select(models.AnswerOption.id).where(models.AnswerOption.question_id == question_id)
        return set(self.session.exec(stmt).all())

    def correct_ids(self, question_id: int) -> Set[int]:
        """Return the ids of the options marked correct for a question."""
        stmt = select(models.AnswerOption.id).where(
            models.AnswerOption.question_id == question_id,
            models.AnswerOption.is_correct == True,  # noqa: E712
        )
        return set(self.session.exec(stmt).all())

    def selected_among(self, option_ids: Iterable[int]) -> Set[int]:
        """Those of `option_ids` that some recorded response has selected."""
        ids = list(set(option_ids))
        if not ids:
            return set()
        stmt = select(models.SelectedOption.option_id).where(models.SelectedOption.option_id.in_(ids))
        return set(self.session.exec(stmt).all())

    def delete_many(self, options: Iterable[models.AnswerOption]) -> None:
        for opt in options:
            self.session.delete(opt)
        self.session.flush()


class AttemptRepository:
    """Persistence for `QuizAttempt` rows."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, attempt: models.QuizAttempt) -> models.QuizAttempt:
        self.session.add(attempt)
        self.session.flush()
        return attempt

    def get(self, attempt_id: int) -> Optional[models.QuizAttempt]:
        return self.session.get(models.QuizAttempt, attempt_id)

    def get_for_update(self, attempt_id: int) -> Optional[models.QuizAttempt]:
        """Fetch an attempt with a row lock (ignored by SQLite)."""
        stmt = select(models.QuizAttempt).where(models.QuizAttempt.id == attempt_id).with_for_update()
        return self.session.exec(stmt).first()

    def get_active(self, quiz_id: int, learner_id: str) -> Optional[models.QuizAttempt]:
        """Return the most recently started incomplete attempt, if any."""
        stmt = (
            select(models.QuizAttempt)
            .where(
                models.QuizAttempt.quiz_id == quiz_id,
                models.QuizAttempt.learner_id == learner_id,
                models.QuizAttempt.is_completed == False,  # noqa: E712
            )
            .order_by(models.QuizAttempt.started_at.desc(), models.QuizAttempt.id.desc())
        )
        return self.session.exec(stmt).first()

    def count_for_quiz(self, quiz_id: int) -> int:
        stmt = select(func.count(models.QuizAttempt.id)).where(models.QuizAttempt.quiz_id == quiz_id)
        return self.session.exec(stmt).one()

    def list_completed_for_learner(self, learner_id: str) -> List[Tuple[models.QuizAttempt, models.Quiz]]:
        """Completed attempts of a learner with their quiz, newest first."""
        stmt = (
            select(models.QuizAttempt, models.Quiz)
            .join(models.Quiz, models.Quiz.id == models.QuizAttempt.quiz_id)
            .where(
                models.QuizAttempt.learner_id == learner_id,
                models.QuizAttempt.is_completed == True,  # noqa: E712
            )
            .order_by(models.QuizAttempt.completed_at.desc(), models.QuizAttempt.id.desc())
        )
        return list(self.session.exec(stmt).all())


class ResponseRepository:
    """Persistence for `UserResponse` rows and their selected options."""
    def __init__(self, session: Session):
        self.session = session

    def get_for(self, attempt_id: int, question_id: int) -> Optional[models.UserResponse]:
        stmt = select(models.UserResponse).where(
            models.UserResponse.attempt_id == attempt_id,
            models.UserResponse.question_id == question_id,
        )
        return self.session.exec(stmt).first()

    def add(self, response: models.UserResponse) -> models.UserResponse:
        """Stage a response; a duplicate (attempt, question) pair fails here."""
        self.session.add(response)
        self.session.flush()
        return response

    def list_for_attempt(self, attempt_id: int) -> List[models.UserResponse]:
        stmt = (
            select(models.UserResponse)
            .where(models.UserResponse.attempt_id == attempt_id)
            .order_by(models.UserResponse.id)
        )
        return list(self.session.exec(stmt).all())

    def list_with_questions(self, attempt_id: int) -> List[Tuple[models.UserResponse, models.Question]]:
        """Responses of an attempt joined to their question rows."""
        stmt = (
            select(models.UserResponse, models.Question)
            .join(models.Question, models.Question.id == models.UserResponse.question_id)
            .where(models.UserResponse.attempt_id == attempt_id)
            .order_by(models.Question.order_index, models.Question.id)
        )
        return list(self.session.exec(stmt).all())

    def replace_selection(self, response_id: int, option_ids: Iterable[int]) -> None:
        """Drop every selected option of a response, then store `option_ids`."""
        stale = self.session.exec(
            select(models.SelectedOption).where(models.SelectedOption.response_id == response_id)
        ).all()
        for row in stale:
            self.session.delete(row)
        self.session.flush()
        for option_id in sorted(set(option_ids)):
            self.session.add(models.SelectedOption(response_id=response_id, option_id=option_id))
        self.session.flush()

    def selected_by_response(self, response_ids: Iterable[int]) -> Dict[int, List[int]]:
        """Group selected option ids by response id."""
        ids = list(set(response_ids))
        out: Dict[int, List[int]] = {rid: [] for rid in ids}
        if not ids:
            return out
        stmt = (
            select(models.SelectedOption)
            .where(models.SelectedOption.response_id.in_(ids))
            .order_by(models.SelectedOption.option_id)
        )
        for sel in self.session.exec(stmt).all():
            out[sel.response_id].append(sel.option_id)
        return out

    def count_for_question(self, question_id: int) -> int:
        stmt = select(func.count(models.UserResponse.id)).where(models.UserResponse.question_id == question_id)
        return self.session.exec(stmt).one()

    def correct_counts(self, attempt_ids: Iterable[int]) -> Dict[int, int]:
        """Number of correct responses per attempt id."""
        ids = list(set(attempt_ids))
        out = {aid: 0 for aid in ids}
        if not ids:
            return out
        stmt = (
            select(models.UserResponse.attempt_id, func.count(models.UserResponse.id))
            .where(
                models.UserResponse.attempt_id.in_(ids),
                models.UserResponse.is_correct == True,  # noqa: E712
            )
            .group_by(models.UserResponse.attempt_id)
        )
        for attempt_id, count in self.session.exec(stmt).all():
            out[attempt_id] = count
        return out
