"""Pydantic request/response schemas.

The import document models decode the external quiz format. Decoding is
lenient (field names are matched case-insensitively, most fields have
defaults); semantic checks are left to the import validator so that every
problem is reported at once instead of failing on the first bad field.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _ImportModel(BaseModel):
    """Base for import document models.

    Keys are folded to lower case with underscores removed before
    validation, so `passingScore`, `PassingScore` and `passing_score`
    all land on the same field. NaN and infinity are rejected in numeric
    fields.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)

    @model_validator(mode="before")
    @classmethod
    def _fold_key_case(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        lookup = {}
        for name, field in cls.model_fields.items():
            lookup[name.replace("_", "").lower()] = field.alias or name
        folded = {}
        for key, value in data.items():
            norm = str(key).replace("_", "").lower()
            folded[lookup.get(norm, key)] = value
        return folded


class AnswerOptionImport(_ImportModel):
    option_text: Optional[str] = ""
    is_correct: bool = False
    display_order: int = 0


class QuestionImport(_ImportModel):
    question_text: Optional[str] = ""
    question_type: Optional[str] = None
    explanation: Optional[str] = None
    explanation_image_url: Optional[str] = None
    points: float = 1.0
    display_order: int = 0
    answer_options: List[AnswerOptionImport] = Field(default_factory=list)


class QuizImportDocument(_ImportModel):
    """A complete quiz as submitted for import."""
    title: Optional[str] = ""
    description: Optional[str] = None
    category: Optional[str] = None
    passing_score: float = 70.0
    time_limit_minutes: Optional[int] = None
    is_active: bool = True
    questions: List[QuestionImport] = Field(default_factory=list)


class QuizUpdate(_ImportModel):
    """Partial quiz edit; only the fields that were sent are applied."""
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    passing_score: Optional[float] = None
    time_limit_minutes: Optional[int] = None
    is_active: Optional[bool] = None


class AnswerOptionEdit(AnswerOptionImport):
    """An option in a question edit; `id` refers to an existing option."""
    id: Optional[int] = None


class QuestionEdit(QuestionImport):
    """Full replacement of a question's content.

    Options carrying an `id` are updated in place, options without one are
    added, and existing options missing from the list are removed.
    """
    answer_options: List[AnswerOptionEdit] = Field(default_factory=list)


class ImportResult(BaseModel):
    """Outcome of an import.

    `questions_imported` counts the questions in the document, including
    those skipped with a warning.
    """
    success: bool = False
    message: str = ""
    quiz_id: Optional[int] = None
    questions_imported: int = 0
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class StartAttemptIn(BaseModel):
    """Payload for starting (or resuming) an attempt."""
    learner_id: str


class AnswerIn(BaseModel):
    """Answer to a single question; options are ignored for free text."""
    selected_option_ids: List[int] = Field(default_factory=list)
    text_answer: Optional[str] = None


class ReorderIn(BaseModel):
    """Question ids of a quiz in their new order."""
    question_ids: List[int]


class QuizOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    passing_score: float
    time_limit_minutes: Optional[int] = None
    is_active: bool
    updated_at: datetime


class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    quiz_id: int
    learner_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    score: Optional[float] = None
    total_points_earned: Optional[float] = None
    total_points_possible: Optional[float] = None
    passed: Optional[bool] = None
    is_completed: bool


class ResponseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    attempt_id: int
    question_id: int
    is_correct: bool
    points_earned: float
    text_answer: Optional[str] = None
    answered_at: datetime


class QuestionResult(BaseModel):
    """Per-question line of a `DetailedResult`."""
    question_id: int
    question_text: str
    kind: str
    is_correct: bool
    points_earned: float
    points_possible: float
    selected_option_ids: List[int] = Field(default_factory=list)
    correct_option_ids: List[int] = Field(default_factory=list)
    explanation: Optional[str] = None
    explanation_image_url: Optional[str] = None
    text_answer: Optional[str] = None


class DetailedResult(BaseModel):
    """Post-attempt review projection built from stored scoring data."""
    attempt_id: int
    quiz_id: int
    quiz_title: str
    score: float
    total_points_earned: float
    total_points_possible: float
    passed: bool
    started_at: datetime
    completed_at: Optional[datetime] = None
    question_results: List[QuestionResult] = Field(default_factory=list)


class AttemptSummary(BaseModel):
    """One completed attempt in a learner's history."""
    attempt_id: int
    quiz_id: int
    quiz_title: str
    category: Optional[str] = None
    score: float
    passed: bool
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_questions: int
    correct_answers: int


class OptionDisplay(BaseModel):
    option_id: int
    option_text: str
    order_index: int


class QuestionDisplay(BaseModel):
    question_id: int
    question_text: str
    kind: str
    points: float
    order_index: int
    options: List[OptionDisplay] = Field(default_factory=list)


class QuizDisplay(BaseModel):
    """A quiz as shown to a learner: no correctness flags."""
    quiz_id: int
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    passing_score: float
    time_limit_minutes: Optional[int] = None
    total_questions: int
    questions: List[QuestionDisplay] = Field(default_factory=list)


SavedAnswers = Dict[int, List[int]]
