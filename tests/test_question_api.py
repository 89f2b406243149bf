from fastapi.testclient import TestClient

from examprep.main import app

client = TestClient(app)


def test_exam_mode_hides_answers(bank, auth_headers):
    r = client.get('/questions', params={'subject_id': bank.math_id, 'year': 2023}, headers=auth_headers)
    assert r.status_code == 200
    questions = r.json()['questions']
    assert [q['id'] for q in questions] == bank.math_ids
    for q in questions:
        assert 'correct_answer' not in q
        assert 'explanation' not in q
        assert [o['label'] for o in q['options']] == ['A', 'B', 'C', 'D']
        assert q['subject']['code'] == 'MTH'


def test_practice_mode_includes_answers(bank, auth_headers):
    params = {'subject_id': bank.math_id, 'year': 2023, 'mode': 'practice'}
    questions = client.get('/questions', params=params, headers=auth_headers).json()['questions']
    assert [q['correct_answer'] for q in questions] == bank.math_keys
    assert questions[0]['explanation'] == 'Because A'


def test_inactive_questions_never_selected(bank, auth_headers):
    questions = client.get(
        '/questions', params={'subject_id': bank.math_id, 'year': 2023, 'limit': 50}, headers=auth_headers
    ).json()['questions']
    assert bank.inactive_id not in [q['id'] for q in questions]


def test_topic_and_limit_filters(bank, auth_headers):
    params = {'subject_id': bank.math_id, 'year': 2023, 'topic': 'Geometry'}
    geometry = client.get('/questions', params=params, headers=auth_headers).json()['questions']
    assert [q['id'] for q in geometry] == [bank.math_ids[2], bank.math_ids[4]]
    limited = client.get(
        '/questions', params={'subject_id': bank.math_id, 'year': 2023, 'limit': 2}, headers=auth_headers
    ).json()['questions']
    assert [q['id'] for q in limited] == bank.math_ids[:2]


def test_order_is_stable_across_requests(bank, auth_headers):
    params = {'subject_ids': f'{bank.eng_id},{bank.math_id}', 'year': 2023}
    first = client.get('/questions', params=params, headers=auth_headers).json()['questions']
    second = client.get('/questions', params=params, headers=auth_headers).json()['questions']
    assert [q['id'] for q in first] == [q['id'] for q in second]
    assert set(q['id'] for q in first) == set(bank.math_ids + bank.eng_ids)


def test_missing_subject_is_400(bank, auth_headers):
    r = client.get('/questions', params={'year': 2023}, headers=auth_headers)
    assert r.status_code == 400
    assert 'subject' in r.json()['message']


def test_bad_mode_is_422(bank, auth_headers):
    r = client.get('/questions', params={'subject_id': bank.math_id, 'year': 2023, 'mode': 'cheat'}, headers=auth_headers)
    assert r.status_code == 422


def test_no_matching_questions_returns_empty_list(bank, auth_headers):
    r = client.get('/questions', params={'subject_id': bank.math_id, 'year': 1999}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()['questions'] == []


def test_questions_require_token(bank):
    r = client.get('/questions', params={'subject_id': bank.math_id, 'year': 2023})
    assert r.status_code in (401, 403)


def test_years_newest_first_and_active_only(bank, db):
    from conftest import add_question
    add_question(db, bank.math_id, 2019, 'Algebra', 'Hidden year', 'A', is_active=False)
    r = client.get(f'/questions/{bank.math_id}/years')
    assert r.status_code == 200
    assert r.json()['years'] == [2023, 2021]


def test_topics_distinct_and_sorted(bank):
    r = client.get(f'/questions/{bank.math_id}/2023/topics')
    assert r.json()['topics'] == ['Algebra', 'Geometry', 'Statistics']


def test_subjects_listing(bank):
    subjects = client.get('/subjects').json()['subjects']
    assert [s['code'] for s in subjects] == ['ENG', 'MTH']
