import pytest

from quizcore.utils.parsers import ImportDocumentError, parse_import_file, parse_json
from quizcore.utils.quiz_loader import find_quiz_files


def test_parse_json_defaults():
    doc = parse_json(b'{"title":"Q","questions":[{"questionText":"Q1","questionType":"TrueFalse"}]}')
    assert doc.title == 'Q'
    assert doc.passing_score == 70.0
    assert doc.is_active is True
    assert doc.questions[0].points == 1.0
    assert doc.questions[0].answer_options == []


def test_parse_json_field_names_are_case_insensitive():
    data = (
        '{"TITLE":"Q","PassingScore":55,"is_active":false,"Questions":['
        '{"QUESTIONTEXT":"Q1","questiontype":"SingleCorrect","Points":2,'
        '"AnswerOptions":[{"OptionText":"A","ISCORRECT":true,"displayorder":4}]}]}'
    )
    doc = parse_json(data)
    assert doc.passing_score == 55
    assert doc.is_active is False
    q = doc.questions[0]
    assert q.question_text == 'Q1'
    assert q.question_type == 'SingleCorrect'
    assert q.points == 2
    assert q.answer_options[0].is_correct is True
    assert q.answer_options[0].display_order == 4


def test_parse_json_tolerates_bom():
    doc = parse_json('\ufeff{"title":"Q"}'.encode('utf-8'))
    assert doc.title == 'Q'


@pytest.mark.parametrize("payload", [b'{not json', b'[1, 2]', b'{"title":"Q","passingScore":"lots"}'])
def test_parse_json_rejects_malformed(payload):
    with pytest.raises(ImportDocumentError):
        parse_json(payload)


@pytest.mark.parametrize("payload", [
    '{"title":"Q","passingScore":NaN}',
    '{"title":"Q","passingScore":Infinity}',
    '{"title":"Q","questions":[{"questionText":"Q1","points":NaN}]}',
    '{"title":"Q","questions":[{"questionText":"Q1","points":-Infinity}]}',
])
def test_parse_json_rejects_non_finite_numbers(payload):
    with pytest.raises(ImportDocumentError):
        parse_json(payload)


def test_parse_import_file_rejects_unknown_extension():
    with pytest.raises(ImportDocumentError):
        parse_import_file(b'Q?\nA1\nA2', 'q.txt')


def test_find_quiz_files_skips_drafts(tmp_path):
    (tmp_path / 'anatomy').mkdir()
    (tmp_path / 'anatomy' / 'week1.json').write_text('{}', encoding='utf-8')
    (tmp_path / 'week2.JSON').write_text('{}', encoding='utf-8')
    (tmp_path / 'week3_draft.json').write_text('{}', encoding='utf-8')
    (tmp_path / 'notes.txt').write_text('x', encoding='utf-8')
    names = [p.name for p in find_quiz_files(tmp_path)]
    assert names == ['week1.json', 'week2.JSON']
    assert 'week3_draft.json' not in names
    assert find_quiz_files(tmp_path / 'missing') == []
