"""Typed errors raised by the quiz services.

Callers (the HTTP adapter, scripts) map these to their own presentation;
none of them is raised for a condition that is merely unexpected.
"""

from typing import Optional


class QuizCoreError(Exception):
    """Base class for expected quiz-core failures."""


class QuizNotFound(QuizCoreError, LookupError):
    def __init__(self, quiz_id: int):
        super().__init__(f"quiz not found: {quiz_id}")
        self.quiz_id = quiz_id


class QuestionNotFound(QuizCoreError, LookupError):
    def __init__(self, question_id: int, detail: Optional[str] = None):
        super().__init__(detail or f"question not found: {question_id}")
        self.question_id = question_id


class AttemptNotFound(QuizCoreError, LookupError):
    def __init__(self, attempt_id: int):
        super().__init__(f"attempt not found: {attempt_id}")
        self.attempt_id = attempt_id


class AttemptCompleted(QuizCoreError):
    """Raised when a completed attempt would be mutated."""
    def __init__(self, attempt_id: int):
        super().__init__(f"attempt already completed: {attempt_id}")
        self.attempt_id = attempt_id


class InvalidLearner(QuizCoreError, ValueError):
    pass


class InvalidSelection(QuizCoreError, ValueError):
    pass


class QuizInUse(QuizCoreError):
    """Raised when a quiz with recorded attempts would be deleted."""
    def __init__(self, quiz_id: int):
        super().__init__(f"quiz {quiz_id} has attempts and cannot be deleted")
        self.quiz_id = quiz_id


class QuestionInUse(QuizCoreError):
    """Raised when answered questions or selected options would be removed."""
    def __init__(self, question_id: int, detail: Optional[str] = None):
        super().__init__(detail or f"question {question_id} has recorded answers")
        self.question_id = question_id


class InvalidQuizData(QuizCoreError, ValueError):
    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))
