from quizcore.schemas import QuizImportDocument
from quizcore.utils.import_validator import blocking, validate


def _doc(data):
    return QuizImportDocument.model_validate(data)


def test_valid_document_has_no_errors(round_trip_doc):
    assert validate(_doc(round_trip_doc)) == []


def test_all_document_level_errors_are_collected():
    errors = validate(_doc({"title": "  ", "passingScore": 120, "questions": []}))
    messages = [str(e) for e in errors]
    assert "Quiz title is required" in messages
    assert "Passing score must be between 0 and 100" in messages
    assert "Quiz must have at least one question" in messages


def test_question_rules_do_not_short_circuit():
    doc = _doc({
        "title": "Quiz",
        "questions": [
            {"questionText": "", "questionType": "SingleCorrect", "displayOrder": 3,
             "answerOptions": [{"optionText": "A", "isCorrect": True}]},
            {"questionText": "No options", "questionType": "MultiCorrect", "answerOptions": []},
            {"questionText": "Nothing correct", "questionType": "SingleCorrect",
             "answerOptions": [{"optionText": "A"}, {"optionText": "B"}]},
        ],
    })
    errors = validate(doc)
    messages = [str(e) for e in errors]
    assert "Question at display order 3 has no text" in messages
    assert "Question 'No options' has no answer options" in messages
    assert "Question 'No options' has no correct answer marked" in messages
    assert "Question 'Nothing correct' has no correct answer marked" in messages
    assert {e.question_index for e in errors} == {0, 1, 2}


def test_unresolvable_type_is_soft_and_skips_other_rules():
    doc = _doc({
        "title": "Quiz",
        "questions": [
            {"questionText": "Odd one", "questionType": "Essay", "answerOptions": []},
        ],
    })
    errors = validate(doc)
    assert len(errors) == 1
    assert errors[0].soft is True
    assert "Invalid question type 'Essay'" in str(errors[0])
    assert blocking(errors) == []


def test_free_text_needs_no_options():
    doc = _doc({
        "title": "Quiz",
        "questions": [{"questionText": "Describe enamel.", "questionType": "ShortAnswer"}],
    })
    assert validate(doc) == []


def test_boolean_option_count_is_advisory():
    doc = _doc({
        "title": "Quiz",
        "questions": [{
            "questionText": "Pick", "questionType": "TrueFalse",
            "answerOptions": [
                {"optionText": "True", "isCorrect": True},
                {"optionText": "False"},
                {"optionText": "Maybe"},
            ],
        }],
    })
    assert validate(doc) == []


def test_non_positive_points_are_rejected():
    doc = _doc({
        "title": "Quiz",
        "questions": [{
            "questionText": "Free points?", "questionType": "SingleCorrect", "points": 0,
            "answerOptions": [{"optionText": "Yes", "isCorrect": True}],
        }],
    })
    errors = validate(doc)
    assert len(blocking(errors)) == 1
    assert "more than zero points" in str(errors[0])
