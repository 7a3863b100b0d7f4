import pytest
from sqlmodel import select

from quizcore import models, repositories
from quizcore.errors import InvalidQuizData, InvalidSelection, QuestionInUse, QuestionNotFound, QuizInUse, QuizNotFound
from quizcore.models import QuestionKind
from quizcore.schemas import QuestionEdit, QuizUpdate
from quizcore.services import AttemptService, QuizService, ResponseService


def _options(session, question_id):
    return repositories.AnswerOptionRepository(session).list_for_question(question_id)


def _new_question(**overrides):
    data = {
        "questionText": "Which tooth erupts first?",
        "questionType": "SingleCorrect",
        "points": 2,
        "displayOrder": 3,
        "answerOptions": [
            {"optionText": "Lower central incisor", "isCorrect": True, "displayOrder": 1},
            {"optionText": "Upper canine", "displayOrder": 2},
        ],
    }
    data.update(overrides)
    return QuestionEdit.model_validate(data)


def test_update_applies_only_sent_fields(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    updated = QuizService(session).update(
        quiz.quiz_id, QuizUpdate.model_validate({"passingScore": 80, "title": "  Renamed "}))
    assert updated.title == 'Renamed'
    assert updated.passing_score == 80
    assert updated.category == 'Anatomy'
    assert updated.description == 'Warm-up quiz'
    assert updated.is_active is True


def test_update_can_clear_optional_fields(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    updated = QuizService(session).update(quiz.quiz_id, QuizUpdate.model_validate({"category": None}))
    assert updated.category is None
    assert updated.title == 'Tooth Anatomy Basics'


@pytest.mark.parametrize("changes", [
    {"title": "   "},
    {"title": None},
    {"passingScore": 101},
    {"passingScore": -1},
    {"passingScore": None},
    {"isActive": None},
])
def test_update_rejects_invalid_values(session, seed_quiz, round_trip_doc, changes):
    quiz = seed_quiz(round_trip_doc)
    with pytest.raises(InvalidQuizData):
        QuizService(session).update(quiz.quiz_id, QuizUpdate.model_validate(changes))
    assert session.get(models.Quiz, quiz.quiz_id).passing_score == 70


def test_update_unknown_quiz(session):
    with pytest.raises(QuizNotFound):
        QuizService(session).update(404, QuizUpdate(title="x"))


def test_delete_removes_questions_and_options(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    other = seed_quiz(round_trip_doc)
    QuizService(session).delete(quiz.quiz_id)

    assert session.exec(select(models.Quiz.id)).all() == [other.quiz_id]
    remaining = session.exec(select(models.Question.quiz_id)).all()
    assert set(remaining) == {other.quiz_id}
    assert len(session.exec(select(models.AnswerOption)).all()) == 5


def test_delete_quiz_with_attempts_is_refused(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    AttemptService(session).start(quiz.quiz_id, 'learner-1')
    with pytest.raises(QuizInUse):
        QuizService(session).delete(quiz.quiz_id)
    assert session.get(models.Quiz, quiz.quiz_id) is not None
    with pytest.raises(QuizNotFound):
        QuizService(session).delete(9999)


def test_add_question(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    question = QuizService(session).add_question(quiz.quiz_id, _new_question())
    assert question.quiz_id == quiz.quiz_id
    assert question.kind is QuestionKind.SINGLE_CORRECT
    assert question.points == 2
    assert [o.option_text for o in _options(session, question.id)] == ['Lower central incisor', 'Upper canine']
    assert len(repositories.QuestionRepository(session).list_for_quiz(quiz.quiz_id)) == 3


def test_add_question_uses_import_rules(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    svc = QuizService(session)
    with pytest.raises(InvalidQuizData) as info:
        svc.add_question(quiz.quiz_id, _new_question(answerOptions=[{"optionText": "A"}]))
    assert "has no correct answer marked" in str(info.value)
    # an unknown type is a hard error outside of imports
    with pytest.raises(InvalidQuizData):
        svc.add_question(quiz.quiz_id, _new_question(questionType="Matching"))
    with pytest.raises(QuizNotFound):
        svc.add_question(9999, _new_question())
    assert len(repositories.QuestionRepository(session).list_for_quiz(quiz.quiz_id)) == 2


def test_update_question_reconciles_options(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    qid = quiz.question_id(0)
    edit = _new_question(
        questionText="Which option is right?",
        questionType="MultiCorrect",
        points=3,
        answerOptions=[
            {"id": quiz.option_id(0, 'A'), "optionText": "A2", "isCorrect": True, "displayOrder": 1},
            {"id": quiz.option_id(0, 'B'), "optionText": "B", "isCorrect": True, "displayOrder": 2},
            {"optionText": "D", "displayOrder": 3},
        ],
    )
    question = QuizService(session).update_question(qid, edit)
    assert question.question_text == 'Which option is right?'
    assert question.kind is QuestionKind.MULTI_CORRECT
    assert question.points == 3

    options = _options(session, qid)
    assert [o.option_text for o in options] == ['A2', 'B', 'D']
    assert options[0].id == quiz.option_id(0, 'A')
    assert session.get(models.AnswerOption, quiz.option_id(0, 'C')) is None
    assert repositories.AnswerOptionRepository(session).correct_ids(qid) == {
        quiz.option_id(0, 'A'), quiz.option_id(0, 'B')}


def test_update_question_to_free_text_drops_options(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    qid = quiz.question_id(1)
    question = QuizService(session).update_question(
        qid, _new_question(questionType="FreeText", answerOptions=[]))
    assert question.kind is QuestionKind.FREE_TEXT
    assert _options(session, qid) == []


def test_update_question_rejects_foreign_option_ids(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    edit = _new_question(answerOptions=[
        {"id": quiz.option_id(1, 'True'), "optionText": "True", "isCorrect": True},
    ])
    with pytest.raises(InvalidSelection):
        QuizService(session).update_question(quiz.question_id(0), edit)
    assert len(_options(session, quiz.question_id(0))) == 3
    with pytest.raises(QuestionNotFound):
        QuizService(session).update_question(9999, _new_question())


def test_selected_option_cannot_be_removed(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    attempt = AttemptService(session).start(quiz.quiz_id, 'learner-1')
    ResponseService(session).record_answer(attempt.id, quiz.question_id(0), [quiz.option_id(0, 'C')])

    edit = _new_question(answerOptions=[
        {"id": quiz.option_id(0, 'A'), "optionText": "A"},
        {"id": quiz.option_id(0, 'B'), "optionText": "B", "isCorrect": True},
    ])
    with pytest.raises(QuestionInUse):
        QuizService(session).update_question(quiz.question_id(0), edit)
    assert len(_options(session, quiz.question_id(0))) == 3

    # keeping every selected option is still allowed
    edit = _new_question(answerOptions=[
        {"id": quiz.option_id(0, 'B'), "optionText": "B", "isCorrect": True},
        {"id": quiz.option_id(0, 'C'), "optionText": "C"},
    ])
    QuizService(session).update_question(quiz.question_id(0), edit)
    assert [o.option_text for o in _options(session, quiz.question_id(0))] == ['B', 'C']


def test_delete_question(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    qid = quiz.question_id(1)
    QuizService(session).delete_question(qid)
    remaining = repositories.QuestionRepository(session).list_for_quiz(quiz.quiz_id)
    assert [q.id for q in remaining] == [quiz.question_id(0)]
    assert session.exec(select(models.AnswerOption).where(models.AnswerOption.question_id == qid)).all() == []
    with pytest.raises(QuestionNotFound):
        QuizService(session).delete_question(qid)


def test_answered_question_cannot_be_deleted(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    attempt = AttemptService(session).start(quiz.quiz_id, 'learner-1')
    ResponseService(session).record_answer(attempt.id, quiz.question_id(1), [quiz.option_id(1, 'True')])
    with pytest.raises(QuestionInUse):
        QuizService(session).delete_question(quiz.question_id(1))
    assert session.get(models.Question, quiz.question_id(1)) is not None


def test_reorder_questions(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    first, second = quiz.question_id(0), quiz.question_id(1)
    ordered = QuizService(session).reorder_questions(quiz.quiz_id, [second, first])
    assert [(q.id, q.order_index) for q in ordered] == [(second, 0), (first, 1)]
    display = QuizService(session).get_for_taking(quiz.quiz_id)
    assert [q.question_id for q in display.questions] == [second, first]


def test_reorder_rejects_questions_of_other_quizzes(session, seed_quiz, round_trip_doc):
    quiz = seed_quiz(round_trip_doc)
    other = seed_quiz(round_trip_doc)
    with pytest.raises(QuestionNotFound):
        QuizService(session).reorder_questions(quiz.quiz_id, [other.question_id(0), quiz.question_id(0)])
    assert [q.order_index for q in repositories.QuestionRepository(session).list_for_quiz(quiz.quiz_id)] == [1, 2]
    with pytest.raises(QuizNotFound):
        QuizService(session).reorder_questions(9999, [])


def test_learner_history_lists_completed_attempts_newest_first(session, seed_quiz, round_trip_doc):
    anatomy = seed_quiz(round_trip_doc)
    physiology = seed_quiz(dict(round_trip_doc, title="Saliva", category="Physiology"))
    attempts = AttemptService(session)
    responses = ResponseService(session)

    first = attempts.start(anatomy.quiz_id, 'learner-1')
    responses.record_answer(first.id, anatomy.question_id(0), [anatomy.option_id(0, 'B')])
    responses.record_answer(first.id, anatomy.question_id(1), [anatomy.option_id(1, 'False')])
    attempts.complete(first.id)

    second = attempts.start(physiology.quiz_id, 'learner-1')
    responses.record_answer(second.id, physiology.question_id(1), [physiology.option_id(1, 'True')])
    attempts.complete(second.id)

    # open attempts and other learners are left out
    attempts.start(anatomy.quiz_id, 'learner-1')
    other = attempts.start(anatomy.quiz_id, 'learner-2')
    attempts.complete(other.id)

    history = attempts.list_for_learner('learner-1')
    assert [h.attempt_id for h in history] == [second.id, first.id]
    latest, earlier = history
    assert latest.quiz_title == 'Saliva'
    assert latest.category == 'Physiology'
    assert latest.total_questions == 2
    assert latest.correct_answers == 1
    assert latest.passed is True
    assert earlier.correct_answers == 1
    assert earlier.score == pytest.approx(66.67)
    assert earlier.passed is False
    assert earlier.completed_at is not None

    filtered = attempts.list_for_learner('learner-1', category='ANATOMY')
    assert [h.attempt_id for h in filtered] == [first.id]
    assert attempts.list_for_learner('nobody') == []
