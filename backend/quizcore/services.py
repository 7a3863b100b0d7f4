"""Business logic services used by HTTP controllers and scripts.

This module holds small service classes that coordinate repositories and
the pure helpers in `utils`. Every write goes through
`run_in_transaction`, so a service call is one atomic unit that is
retried as a whole on transient storage errors.

- `ImportService`: validates and persists quiz documents.
- `AttemptService`: starts, resumes and completes attempts; learner history.
- `ResponseService`: records (and re-records) answers.
- `ScoringService`: per-question evaluation, final scoring, result review.
- `QuizService`: learner-facing quiz projection and quiz/question edits.
"""

import json
import logging
from typing import Iterable, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .errors import (
    AttemptCompleted,
    AttemptNotFound,
    InvalidLearner,
    InvalidQuizData,
    InvalidSelection,
    QuestionInUse,
    QuestionNotFound,
    QuizInUse,
    QuizNotFound,
)
from .models import QuestionKind, utcnow
from .schemas import (
    AttemptSummary,
    DetailedResult,
    ImportResult,
    OptionDisplay,
    QuestionDisplay,
    QuestionEdit,
    QuestionResult,
    QuizDisplay,
    QuizImportDocument,
    QuizUpdate,
    SavedAnswers,
)
from .utils.import_validator import blocking, validate, validate_question
from .utils.parsers import ImportDocumentError, parse_import_file, parse_json
from .utils.question_types import is_gradable, resolve
from .utils.transactions import run_in_transaction

import_logger = logging.getLogger("quizcore.import")
attempt_logger = logging.getLogger("quizcore.attempts")
scoring_logger = logging.getLogger("quizcore.scoring")
quiz_logger = logging.getLogger("quizcore.quizzes")


def clean_text_answer(text: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    """Trim a free-text answer and cap its length; blank becomes None."""
    if text is None:
        return None
    if max_length is None:
        max_length = settings.MAX_TEXT_ANSWER_LENGTH
    if max_length < 1:
        raise ValueError("max_length must be positive")
    stripped = text.strip()
    if not stripped:
        return None
    return stripped[:max_length]


class ImportService:
    """Validate quiz documents and persist them as one atomic unit."""
    def __init__(self, session: Session):
        self.session = session
        self.quiz_repo = repositories.QuizRepository(session)
        self.q_repo = repositories.QuestionRepository(session)
        self.o_repo = repositories.AnswerOptionRepository(session)

    def import_file(self, file_bytes: bytes, filename: str) -> ImportResult:
        """Decode an uploaded file and import it.

        Decoding problems are reported in the result like validation
        errors; nothing is written in that case.
        """
        try:
            doc = parse_import_file(file_bytes, filename)
        except ImportDocumentError as e:
            import_logger.warning("import_rejected %s", json.dumps({"file": filename, "error": str(e)}))
            return ImportResult(message="Import failed", errors=[str(e)])
        return self.import_validated(doc)

    def import_json(self, content: Union[bytes, str]) -> ImportResult:
        """Import a quiz from a JSON string or byte payload."""
        try:
            doc = parse_json(content)
        except ImportDocumentError as e:
            import_logger.warning("import_rejected %s", json.dumps({"error": str(e)}))
            return ImportResult(message="Import failed", errors=[str(e)])
        return self.import_validated(doc)

    def import_validated(self, doc: QuizImportDocument) -> ImportResult:
        """Validate `doc` again, then write quiz, questions and options.

        Blocking validation errors abort before storage is touched.
        Questions whose type cannot be resolved are skipped and listed in
        `warnings`; the rest of the document is still imported. Any
        failure during the write rolls everything back and ends up in
        `errors`.
        """
        result = ImportResult()
        hard = blocking(validate(doc))
        if hard:
            result.errors = [str(e) for e in hard]
            result.message = f"Validation failed with {len(hard)} error(s)"
            import_logger.info("import_invalid %s", json.dumps({"title": doc.title, "errors": result.errors}))
            return result

        try:
            quiz_id, warnings = run_in_transaction(self.session, lambda: self._persist(doc))
        except Exception as e:
            import_logger.exception("import_failed %s", json.dumps({"title": doc.title}))
            result.errors.append(f"Database error: {e}")
            result.message = "Import failed"
            return result

        result.success = True
        result.quiz_id = quiz_id
        result.questions_imported = len(doc.questions)
        result.warnings = warnings
        result.message = f"Successfully imported quiz '{doc.title.strip()}' with {result.questions_imported} questions"
        import_logger.info(
            "import_done %s",
            json.dumps({"quiz_id": quiz_id, "questions": result.questions_imported, "warnings": len(warnings)}),
        )
        return result

    def _persist(self, doc: QuizImportDocument) -> Tuple[int, List[str]]:
        """Transaction body; rebuilt from scratch on every retry."""
        warnings: List[str] = []
        quiz = self.quiz_repo.add(models.Quiz(
            title=doc.title.strip(),
            description=doc.description,
            category=doc.category,
            passing_score=doc.passing_score,
            time_limit_minutes=doc.time_limit_minutes,
            is_active=doc.is_active,
        ))
        for item in doc.questions:
            kind, ok = resolve(item.question_type)
            if not ok:
                warnings.append(f"Invalid question type '{item.question_type}' for question: {item.question_text}")
                continue
            question = self.q_repo.add(models.Question(
                quiz_id=quiz.id,
                question_text=item.question_text.strip(),
                kind=kind,
                explanation=item.explanation,
                explanation_image_url=item.explanation_image_url,
                points=item.points,
                order_index=item.display_order,
            ))
            if kind == QuestionKind.FREE_TEXT:
                continue
            self.o_repo.add_many([
                models.AnswerOption(
                    question_id=question.id,
                    option_text=o.option_text or "",
                    is_correct=o.is_correct,
                    order_index=o.display_order,
                )
                for o in item.answer_options
            ])
        return quiz.id, warnings


class ScoringService:
    """Evaluate answers and compute attempt scores.

    This is the only place that decides how a question kind is graded.
    Option-based kinds use exact set matching: a response is correct iff
    the selected ids equal the correct ids, with no partial credit.
    Free-text responses are never auto-graded and are left out of both
    point totals.
    """
    def __init__(self, session: Session):
        self.session = session
        self.quiz_repo = repositories.QuizRepository(session)
        self.q_repo = repositories.QuestionRepository(session)
        self.o_repo = repositories.AnswerOptionRepository(session)
        self.attempt_repo = repositories.AttemptRepository(session)
        self.response_repo = repositories.ResponseRepository(session)

    def evaluate(self, question_id: int, selected_option_ids: Iterable[int]) -> bool:
        """Return True if the selection equals the question's correct set."""
        if self.q_repo.get(question_id) is None:
            raise QuestionNotFound(question_id)
        return set(selected_option_ids) == self.o_repo.correct_ids(question_id)

    def score_response(self, question: models.Question, selected_option_ids: Iterable[int]) -> Tuple[bool, float]:
        """Return `(is_correct, points_earned)` for an answer to `question`."""
        if not is_gradable(question.kind):
            return False, 0.0
        # single, multi and boolean kinds share the exact-set rule
        is_correct = set(selected_option_ids) == self.o_repo.correct_ids(question.id)
        return is_correct, (question.points if is_correct else 0.0)

    def finalize(self, attempt_id: int) -> models.QuizAttempt:
        """Compute and store score, totals and pass flag for an attempt.

        Runs as one read-then-write transaction over the responses stored
        at that moment. Safe to repeat: totals are recomputed, while
        `completed_at` keeps the value of the first completion.
        """
        def _body() -> models.QuizAttempt:
            attempt = self.attempt_repo.get_for_update(attempt_id)
            if attempt is None:
                raise AttemptNotFound(attempt_id)
            quiz = self.quiz_repo.get(attempt.quiz_id)
            rows = self.response_repo.list_with_questions(attempt_id)
            gradable = [(r, q) for r, q in rows if is_gradable(q.kind)]
            earned = sum(r.points_earned for r, _ in gradable)
            possible = sum(q.points for _, q in gradable)
            percent = earned / possible * 100 if possible > 0 else 0.0

            attempt.total_points_earned = earned
            attempt.total_points_possible = possible
            # pass/fail is decided on the exact percentage, not the stored display value
            attempt.passed = percent >= quiz.passing_score
            attempt.score = round(percent, 2)
            if attempt.completed_at is None:
                attempt.completed_at = utcnow()
            attempt.is_completed = True
            self.session.add(attempt)
            return attempt

        attempt = run_in_transaction(self.session, _body)
        self.session.refresh(attempt)
        scoring_logger.info(
            "attempt_scored %s",
            json.dumps({
                "attempt_id": attempt.id,
                "score": attempt.score,
                "earned": attempt.total_points_earned,
                "possible": attempt.total_points_possible,
                "passed": attempt.passed,
            }),
        )
        return attempt

    def attempt_results(self, attempt_id: int) -> DetailedResult:
        """Build the per-question review of an attempt.

        Correctness and points are read from the stored responses, the
        same values `finalize` aggregated; nothing is re-scored here.
        """
        attempt = self.attempt_repo.get(attempt_id)
        if attempt is None:
            raise AttemptNotFound(attempt_id)
        quiz = self.quiz_repo.get(attempt.quiz_id)
        rows = self.response_repo.list_with_questions(attempt_id)
        options = self.o_repo.list_for_questions(q.id for _, q in rows)
        selected = self.response_repo.selected_by_response(r.id for r, _ in rows)

        items = []
        for response, question in rows:
            items.append(QuestionResult(
                question_id=question.id,
                question_text=question.question_text,
                kind=question.kind.value,
                is_correct=response.is_correct,
                points_earned=response.points_earned,
                points_possible=question.points,
                selected_option_ids=selected.get(response.id, []),
                correct_option_ids=[o.id for o in options.get(question.id, []) if o.is_correct],
                explanation=question.explanation,
                explanation_image_url=question.explanation_image_url,
                text_answer=response.text_answer,
            ))
        return DetailedResult(
            attempt_id=attempt.id,
            quiz_id=attempt.quiz_id,
            quiz_title=quiz.title if quiz else "",
            score=attempt.score or 0.0,
            total_points_earned=attempt.total_points_earned or 0.0,
            total_points_possible=attempt.total_points_possible or 0.0,
            passed=bool(attempt.passed),
            started_at=attempt.started_at,
            completed_at=attempt.completed_at,
            question_results=items,
        )


class AttemptService:
    """Attempt lifecycle: NotStarted -> InProgress -> Completed."""
    def __init__(self, session: Session):
        self.session = session
        self.quiz_repo = repositories.QuizRepository(session)
        self.attempt_repo = repositories.AttemptRepository(session)
        self.response_repo = repositories.ResponseRepository(session)
        self.scoring = ScoringService(session)

    def start(self, quiz_id: int, learner_id: str) -> models.QuizAttempt:
        """Start an attempt, or return the learner's open one.

        Raises `QuizNotFound` for a missing or inactive quiz.
        """
        if learner_id is None or not str(learner_id).strip():
            raise InvalidLearner("learner id is required")

        def _body() -> models.QuizAttempt:
            quiz = self.quiz_repo.get_for_update(quiz_id)
            if quiz is None or not quiz.is_active:
                raise QuizNotFound(quiz_id)
            existing = self.attempt_repo.get_active(quiz_id, learner_id)
            if existing is not None:
                return existing
            return self.attempt_repo.add(models.QuizAttempt(quiz_id=quiz_id, learner_id=learner_id))

        try:
            attempt = run_in_transaction(self.session, _body)
        except QuizNotFound:
            attempt_logger.warning("Quiz %s not found or not active", quiz_id)
            raise
        self.session.refresh(attempt)
        attempt_logger.info("attempt_started %s", json.dumps({"attempt_id": attempt.id, "quiz_id": quiz_id}))
        return attempt

    def get(self, attempt_id: int) -> models.QuizAttempt:
        attempt = self.attempt_repo.get(attempt_id)
        if attempt is None:
            raise AttemptNotFound(attempt_id)
        return attempt

    def get_active(self, quiz_id: int, learner_id: str) -> Optional[models.QuizAttempt]:
        """Return the most recently started incomplete attempt or None."""
        return self.attempt_repo.get_active(quiz_id, learner_id)

    def is_valid(self, attempt_id: int) -> bool:
        """True iff the attempt exists and still accepts answers."""
        attempt = self.attempt_repo.get(attempt_id)
        return attempt is not None and not attempt.is_completed

    def complete(self, attempt_id: int) -> models.QuizAttempt:
        """Finalize an attempt; calling it again recomputes the score."""
        return self.scoring.finalize(attempt_id)

    def submit(self, attempt_id: int) -> DetailedResult:
        """Complete an attempt and return its detailed results."""
        self.complete(attempt_id)
        return self.scoring.attempt_results(attempt_id)

    def saved_answers(self, attempt_id: int) -> SavedAnswers:
        """Map question id to selected option ids, for resuming an attempt."""
        self.get(attempt_id)
        responses = self.response_repo.list_for_attempt(attempt_id)
        selected = self.response_repo.selected_by_response(r.id for r in responses)
        return {r.question_id: selected.get(r.id, []) for r in responses}

    def list_for_learner(self, learner_id: str, category: Optional[str] = None) -> List[AttemptSummary]:
        """Completed attempts of a learner, most recently completed first.

        `category` filters case-insensitively on the quiz category.
        """
        rows = self.attempt_repo.list_completed_for_learner(learner_id)
        if category:
            wanted = category.strip().lower()
            rows = [(a, q) for a, q in rows if q.category and q.category.lower() == wanted]
        question_counts = repositories.QuestionRepository(self.session).count_by_quiz(q.id for _, q in rows)
        correct = self.response_repo.correct_counts(a.id for a, _ in rows)
        return [
            AttemptSummary(
                attempt_id=attempt.id,
                quiz_id=quiz.id,
                quiz_title=quiz.title,
                category=quiz.category,
                score=attempt.score or 0.0,
                passed=bool(attempt.passed),
                started_at=attempt.started_at,
                completed_at=attempt.completed_at,
                total_questions=question_counts.get(quiz.id, 0),
                correct_answers=correct.get(attempt.id, 0),
            )
            for attempt, quiz in rows
        ]


class ResponseService:
    """Record learner answers with last-write-wins semantics."""
    def __init__(self, session: Session):
        self.session = session
        self.q_repo = repositories.QuestionRepository(session)
        self.o_repo = repositories.AnswerOptionRepository(session)
        self.attempt_repo = repositories.AttemptRepository(session)
        self.response_repo = repositories.ResponseRepository(session)
        self.scoring = ScoringService(session)

    def record_answer(
        self,
        attempt_id: int,
        question_id: int,
        selected_option_ids: Optional[Iterable[int]] = None,
        text_answer: Optional[str] = None,
    ) -> models.UserResponse:
        """Store the learner's current answer to a question.

        Each call fully replaces the previous answer for the same
        (attempt, question) pair. A concurrent first insert for the same
        pair trips the unique constraint; the unit is then re-run and
        takes the replace path.
        """
        selected = set(selected_option_ids or ())
        text = clean_text_answer(text_answer)

        def _body() -> models.UserResponse:
            attempt = self.attempt_repo.get_for_update(attempt_id)
            if attempt is None:
                raise AttemptNotFound(attempt_id)
            if attempt.is_completed:
                raise AttemptCompleted(attempt_id)
            question = self.q_repo.get(question_id)
            if question is None:
                raise QuestionNotFound(question_id)
            if question.quiz_id != attempt.quiz_id:
                raise QuestionNotFound(question_id, f"question {question_id} is not part of quiz {attempt.quiz_id}")
            gradable = is_gradable(question.kind)
            if gradable:
                unknown = selected - self.o_repo.option_ids(question_id)
                if unknown:
                    raise InvalidSelection(f"options {sorted(unknown)} do not belong to question {question_id}")

            response = self.response_repo.get_for(attempt_id, question_id)
            if response is None:
                response = self.response_repo.add(models.UserResponse(attempt_id=attempt_id, question_id=question_id))
            if gradable:
                self.response_repo.replace_selection(response.id, selected)
            response.text_answer = text
            response.is_correct, response.points_earned = self.scoring.score_response(question, selected)
            response.answered_at = utcnow()
            self.session.add(response)
            return response

        response = run_in_transaction(self.session, _body, retry_on=(IntegrityError,))
        self.session.refresh(response)
        return response


class QuizService:
    """Quiz projection for learners and quiz/question management."""
    def __init__(self, session: Session):
        self.session = session
        self.quiz_repo = repositories.QuizRepository(session)
        self.q_repo = repositories.QuestionRepository(session)
        self.o_repo = repositories.AnswerOptionRepository(session)

    def get_for_taking(self, quiz_id: int) -> QuizDisplay:
        """Return an active quiz with ordered questions and options.

        Correctness flags are not included.
        """
        quiz = self.quiz_repo.get(quiz_id)
        if quiz is None or not quiz.is_active:
            raise QuizNotFound(quiz_id)
        questions = self.q_repo.list_for_quiz(quiz_id)
        options = self.o_repo.list_for_questions(q.id for q in questions)
        return QuizDisplay(
            quiz_id=quiz.id,
            title=quiz.title,
            description=quiz.description,
            category=quiz.category,
            passing_score=quiz.passing_score,
            time_limit_minutes=quiz.time_limit_minutes,
            total_questions=len(questions),
            questions=[
                QuestionDisplay(
                    question_id=q.id,
                    question_text=q.question_text,
                    kind=q.kind.value,
                    points=q.points,
                    order_index=q.order_index,
                    options=[
                        OptionDisplay(option_id=o.id, option_text=o.option_text, order_index=o.order_index)
                        for o in options.get(q.id, [])
                    ],
                )
                for q in questions
            ],
        )

    def update(self, quiz_id: int, changes: QuizUpdate) -> models.Quiz:
        """Apply the fields present in `changes` to a quiz.

        Inactive quizzes can be edited too; `is_active` is how a quiz is
        retired while its attempt history is kept.
        """
        fields = changes.model_dump(exclude_unset=True)
        problems = []
        if "title" in fields and (fields["title"] is None or not fields["title"].strip()):
            problems.append("Quiz title is required")
        score = fields.get("passing_score")
        if "passing_score" in fields and (score is None or score < 0 or score > 100):
            problems.append("Passing score must be between 0 and 100")
        if fields.get("is_active", True) is None:
            problems.append("isActive cannot be null")
        if problems:
            raise InvalidQuizData(problems)

        def _body() -> models.Quiz:
            quiz = self.quiz_repo.get_for_update(quiz_id)
            if quiz is None:
                raise QuizNotFound(quiz_id)
            for name, value in fields.items():
                setattr(quiz, name, value.strip() if name == "title" else value)
            quiz.updated_at = utcnow()
            self.session.add(quiz)
            return quiz

        quiz = run_in_transaction(self.session, _body)
        self.session.refresh(quiz)
        quiz_logger.info("quiz_updated %s", json.dumps({"quiz_id": quiz_id, "fields": sorted(fields)}))
        return quiz

    def delete(self, quiz_id: int) -> None:
        """Delete a quiz with its questions and options.

        Raises `QuizInUse` when any attempt references the quiz; such a
        quiz can only be deactivated.
        """
        def _body() -> None:
            quiz = self.quiz_repo.get_for_update(quiz_id)
            if quiz is None:
                raise QuizNotFound(quiz_id)
            if repositories.AttemptRepository(self.session).count_for_quiz(quiz_id):
                raise QuizInUse(quiz_id)
            self.quiz_repo.delete(quiz)

        run_in_transaction(self.session, _body)
        quiz_logger.info("quiz_deleted %s", json.dumps({"quiz_id": quiz_id}))

    def add_question(self, quiz_id: int, data: QuestionEdit) -> models.Question:
        """Add a question (and its options) to an existing quiz."""
        kind = self._checked_kind(data)

        def _body() -> models.Question:
            quiz = self.quiz_repo.get_for_update(quiz_id)
            if quiz is None:
                raise QuizNotFound(quiz_id)
            question = self.q_repo.add(models.Question(quiz_id=quiz_id, kind=kind, **self._question_fields(data)))
            if kind != QuestionKind.FREE_TEXT:
                self.o_repo.add_many([
                    models.AnswerOption(
                        question_id=question.id,
                        option_text=o.option_text or "",
                        is_correct=o.is_correct,
                        order_index=o.display_order,
                    )
                    for o in data.answer_options
                ])
            quiz.updated_at = utcnow()
            self.session.add(quiz)
            return question

        question = run_in_transaction(self.session, _body)
        self.session.refresh(question)
        quiz_logger.info("question_added %s", json.dumps({"quiz_id": quiz_id, "question_id": question.id}))
        return question

    def update_question(self, question_id: int, data: QuestionEdit) -> models.Question:
        """Replace a question's content and reconcile its options.

        Options that learners have already selected cannot be removed;
        `QuestionInUse` is raised instead.
        """
        kind = self._checked_kind(data)

        def _body() -> models.Question:
            question = self.q_repo.get(question_id)
            if question is None:
                raise QuestionNotFound(question_id)
            existing = {o.id: o for o in self.o_repo.list_for_question(question_id)}
            keep = {} if kind == QuestionKind.FREE_TEXT else {
                o.id: o for o in data.answer_options if o.id is not None
            }
            unknown = set(keep) - set(existing)
            if unknown:
                raise InvalidSelection(f"options {sorted(unknown)} do not belong to question {question_id}")
            removed = [o for oid, o in existing.items() if oid not in keep]
            in_use = self.o_repo.selected_among(o.id for o in removed)
            if in_use:
                raise QuestionInUse(question_id, f"options {sorted(in_use)} have been selected in recorded answers")

            for name, value in self._question_fields(data).items():
                setattr(question, name, value)
            question.kind = kind
            question.updated_at = utcnow()
            self.session.add(question)
            self.o_repo.delete_many(removed)
            if kind != QuestionKind.FREE_TEXT:
                for item in data.answer_options:
                    option = existing[item.id] if item.id is not None else models.AnswerOption(question_id=question_id)
                    option.option_text = item.option_text or ""
                    option.is_correct = item.is_correct
                    option.order_index = item.display_order
                    self.session.add(option)
            self._touch(question.quiz_id)
            self.session.flush()
            return question

        question = run_in_transaction(self.session, _body)
        self.session.refresh(question)
        quiz_logger.info("question_updated %s", json.dumps({"question_id": question_id}))
        return question

    def delete_question(self, question_id: int) -> None:
        """Delete a question unless answers to it have been recorded."""
        def _body() -> None:
            question = self.q_repo.get(question_id)
            if question is None:
                raise QuestionNotFound(question_id)
            if repositories.ResponseRepository(self.session).count_for_question(question_id):
                raise QuestionInUse(question_id)
            quiz_id = question.quiz_id
            self.q_repo.delete(question)
            self._touch(quiz_id)

        run_in_transaction(self.session, _body)
        quiz_logger.info("question_deleted %s", json.dumps({"question_id": question_id}))

    def reorder_questions(self, quiz_id: int, question_ids: List[int]) -> List[models.Question]:
        """Set each listed question's order index to its position in the list.

        Every id must belong to the quiz; questions left out keep their
        current index.
        """
        def _body() -> List[models.Question]:
            quiz = self.quiz_repo.get_for_update(quiz_id)
            if quiz is None:
                raise QuizNotFound(quiz_id)
            questions = {q.id: q for q in self.q_repo.list_for_quiz(quiz_id)}
            for qid in question_ids:
                if qid not in questions:
                    raise QuestionNotFound(qid, f"question {qid} is not part of quiz {quiz_id}")
            now = utcnow()
            for index, qid in enumerate(question_ids):
                questions[qid].order_index = index
                questions[qid].updated_at = now
                self.session.add(questions[qid])
            quiz.updated_at = now
            self.session.add(quiz)
            self.session.flush()
            return self.q_repo.list_for_quiz(quiz_id)

        questions = run_in_transaction(self.session, _body)
        quiz_logger.info("questions_reordered %s", json.dumps({"quiz_id": quiz_id, "order": list(question_ids)}))
        return questions

    def _touch(self, quiz_id: int) -> None:
        quiz = self.quiz_repo.get(quiz_id)
        if quiz is not None:
            quiz.updated_at = utcnow()
            self.session.add(quiz)

    @staticmethod
    def _checked_kind(data: QuestionEdit) -> QuestionKind:
        """Validate a question edit with the import rules; unknown types are hard errors here."""
        errors = validate_question(data)
        if errors:
            raise InvalidQuizData(str(e) for e in errors)
        kind, _ = resolve(data.question_type)
        return kind

    @staticmethod
    def _question_fields(data: QuestionEdit) -> dict:
        return {
            "question_text": data.question_text.strip(),
            "explanation": data.explanation,
            "explanation_image_url": data.explanation_image_url,
            "points": data.points,
            "order_index": data.display_order,
        }
