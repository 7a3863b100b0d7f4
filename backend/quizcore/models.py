"""SQLModel data models.

This module defines the quiz subsystem's database tables using SQLModel.
Rows reference each other by id only; services fetch what they need with
explicit queries instead of walking relationship graphs.

Referential actions:
- quiz -> question -> answeroption cascade on delete;
- quizattempt -> userresponse -> selectedoption cascade on delete;
- attempts and responses restrict deletion of the quiz, question and
  options they point at, so attempt history is never lost silently.
"""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuestionKind(str, enum.Enum):
    """Closed set of question kinds understood by the scoring engine."""
    SINGLE_CORRECT = "SingleCorrect"
    MULTI_CORRECT = "MultiCorrect"
    BOOLEAN_CHOICE = "BooleanChoice"
    FREE_TEXT = "FreeText"


class Quiz(SQLModel, table=True):
    """A quiz definition.

    `passing_score` is a percentage in the 0-100 range. `course_id` is an
    opaque reference to the course catalog, which lives outside this package.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(index=True, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = Field(default=None, index=True, max_length=100)
    passing_score: float = 70.0
    time_limit_minutes: Optional[int] = None
    is_active: bool = Field(default=True, index=True)
    course_id: Optional[int] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Question(SQLModel, table=True):
    """A question belonging to exactly one `Quiz`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", ondelete="CASCADE", index=True)
    question_text: str = Field(max_length=1000)
    kind: QuestionKind
    explanation: Optional[str] = Field(default=None, max_length=2000)
    explanation_image_url: Optional[str] = Field(default=None, max_length=500)
    points: float = 1.0
    order_index: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AnswerOption(SQLModel, table=True):
    """Possible answer for a `Question`.

    `is_correct` marks whether this option belongs to the correct set.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key="question.id", ondelete="CASCADE", index=True)
    option_text: str = Field(max_length=500)
    is_correct: bool = False
    order_index: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class QuizAttempt(SQLModel, table=True):
    """One learner's pass through a quiz.

    Score fields stay empty until the attempt is finalized. `completed_at`
    is written on the first completion only.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", ondelete="RESTRICT", index=True)
    learner_id: str = Field(index=True, max_length=450)
    started_at: datetime = Field(default_factory=utcnow, index=True)
    completed_at: Optional[datetime] = None
    score: Optional[float] = None
    total_points_earned: Optional[float] = None
    total_points_possible: Optional[float] = None
    passed: Optional[bool] = None
    is_completed: bool = Field(default=False, index=True)


class UserResponse(SQLModel, table=True):
    """The current answer to one question within one attempt."""
    __table_args__ = (UniqueConstraint("attempt_id", "question_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(foreign_key="quizattempt.id", ondelete="CASCADE", index=True)
    question_id: int = Field(foreign_key="question.id", ondelete="RESTRICT", index=True)
    is_correct: bool = False
    points_earned: float = 0.0
    text_answer: Optional[str] = Field(default=None, max_length=500)
    answered_at: datetime = Field(default_factory=utcnow)


class SelectedOption(SQLModel, table=True):
    """An option the learner selected for a `UserResponse`."""
    __table_args__ = (UniqueConstraint("response_id", "option_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    response_id: int = Field(foreign_key="userresponse.id", ondelete="CASCADE", index=True)
    option_id: int = Field(foreign_key="answeroption.id", ondelete="RESTRICT", index=True)
    selected_at: datetime = Field(default_factory=utcnow)
