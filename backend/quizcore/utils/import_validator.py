"""Structural and semantic checks for quiz import documents.

Validation never touches storage. Every rule runs independently and all
violations are collected; a caller must not persist anything while a
blocking error remains.

An unresolvable question type is reported as a *soft* error: it stops
the remaining checks for that one question, and the import coordinator
turns it into a warning and skips the question instead of rejecting the
whole document.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..models import QuestionKind
from ..schemas import QuestionImport, QuizImportDocument
from .question_types import resolve

logger = logging.getLogger("quizcore.import")


@dataclass(frozen=True)
class ValidationError:
    message: str
    question_index: Optional[int] = None
    soft: bool = False

    def __str__(self) -> str:
        return self.message


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def validate(doc: QuizImportDocument) -> List[ValidationError]:
    """Return every problem found in `doc`; empty means importable."""
    errors: List[ValidationError] = []

    if _blank(doc.title):
        errors.append(ValidationError("Quiz title is required"))

    if doc.passing_score < 0 or doc.passing_score > 100:
        errors.append(ValidationError("Passing score must be between 0 and 100"))

    if not doc.questions:
        errors.append(ValidationError("Quiz must have at least one question"))
        return errors

    for idx, question in enumerate(doc.questions):
        errors.extend(validate_question(question, idx))

    return errors


def validate_question(question: QuestionImport, idx: Optional[int] = None) -> List[ValidationError]:
    """Checks for a single question, shared by import and question edits."""
    errors: List[ValidationError] = []
    if _blank(question.question_text):
        errors.append(ValidationError(
            f"Question at display order {question.display_order} has no text", idx))

    kind, ok = resolve(question.question_type)
    if not ok:
        errors.append(ValidationError(
            f"Invalid question type '{question.question_type}' for question: {question.question_text}",
            idx, soft=True))
        return errors

    if question.points <= 0:
        errors.append(ValidationError(
            f"Question '{question.question_text}' must be worth more than zero points", idx))

    if kind is QuestionKind.FREE_TEXT:
        # free text needs neither options nor a correct answer
        return errors

    if kind is QuestionKind.BOOLEAN_CHOICE and len(question.answer_options) != 2:
        logger.info("boolean question %s has %d options (two expected)", idx, len(question.answer_options))

    if not question.answer_options:
        errors.append(ValidationError(f"Question '{question.question_text}' has no answer options", idx))

    if not any(o.is_correct for o in question.answer_options):
        errors.append(ValidationError(f"Question '{question.question_text}' has no correct answer marked", idx))

    return errors


def blocking(errors: List[ValidationError]) -> List[ValidationError]:
    """Errors that must stop an import (everything except soft ones)."""
    return [e for e in errors if not e.soft]
