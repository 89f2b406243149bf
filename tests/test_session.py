import pytest

from examprep.exceptions import InvalidNavigation, NoQuestionsAvailable, SessionStateError
from examprep.session import ExamSession, SessionState


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeTimer:
    def __init__(self):
        self.cancel_calls = 0

    def cancel(self):
        self.cancel_calls += 1


def _questions(n=5, with_answers=False):
    out = []
    for i in range(n):
        q = {'id': 100 + i, 'question_text': f'Q{i}', 'options': []}
        if with_answers:
            q['correct_answer'] = 'ABCD'[i % 4]
            q['explanation'] = f'why {i}'
        out.append(q)
    return out


@pytest.fixture
def clock():
    return FakeClock()


def _started(clock, n=5, mode='exam', duration=60, on_timeout=None, with_answers=False):
    s = ExamSession(mode, duration, clock=clock, on_timeout=on_timeout)
    s.load(_questions(n, with_answers=with_answers))
    return s


def test_load_enters_in_progress_at_first_question(clock):
    s = _started(clock)
    assert s.state is SessionState.IN_PROGRESS
    assert s.current_index == 0
    assert s.summary().unanswered == 5


def test_empty_question_set_stays_loading(clock):
    s = ExamSession('exam', 60, clock=clock)
    with pytest.raises(NoQuestionsAvailable):
        s.load([])
    assert s.state is SessionState.LOADING


def test_answers_persist_across_navigation(clock):
    s = _started(clock)
    s.select_answer(0, 'B')
    s.navigate(3)
    s.select_answer(3, 'D')
    s.navigate(0)
    assert s.answers[0] == 'B'
    assert s.answers[3] == 'D'
    s.select_answer(0, 'C')
    assert s.answers[0] == 'C'
    s.select_answer(0, None)
    assert s.answers[0] is None


def test_navigation_is_bounds_checked(clock):
    s = _started(clock)
    for bad in (-1, 5, 99):
        with pytest.raises(InvalidNavigation):
            s.navigate(bad)
    with pytest.raises(IndexError):
        s.select_answer(5, 'A')
    assert s.current_index == 0


def test_next_and_previous_stop_at_the_ends(clock):
    s = _started(clock, n=2)
    assert s.previous() is False
    assert s.next() is True
    assert s.current_index == 1
    assert s.next() is False


def test_invalid_label_rejected(clock):
    s = _started(clock)
    with pytest.raises(ValueError):
        s.select_answer(0, 'E')


def test_toggle_flag(clock):
    s = _started(clock)
    assert s.toggle_flag() is True
    assert s.toggle_flag(2) is True
    assert s.flagged == {0, 2}
    assert s.toggle_flag(0) is False
    assert s.flagged == {2}


def test_time_spent_accumulates_without_double_counting(clock):
    s = _started(clock)
    clock.advance(10)
    s.navigate(1)
    clock.advance(5)
    s.navigate(0)
    clock.advance(3)
    s.navigate(0)  # staying put does not split the slice
    clock.advance(2)
    s.navigate(1)
    assert s.time_spent[0] == 15
    assert s.time_spent[1] == 5
    clock.advance(4)
    assert s.time_spent_on(1) == 9
    s.begin_submit()
    assert s.time_spent[1] == 9
    assert sum(s.time_spent.values()) == 24


def test_tick_to_zero_times_out_exactly_once(clock):
    fired = []
    s = _started(clock, duration=3, on_timeout=fired.append)
    timer = FakeTimer()
    s.attach_timer(timer)
    assert s.tick() is SessionState.IN_PROGRESS
    assert s.tick() is SessionState.IN_PROGRESS
    assert s.tick() is SessionState.TIMED_OUT
    for _ in range(5):
        s.tick()
    assert s.state is SessionState.TIMED_OUT
    assert s.remaining_seconds == 0
    assert fired == [s]
    assert timer.cancel_calls == 1


def test_remaining_time_never_negative(clock):
    s = _started(clock, duration=1)
    s.tick()
    s.tick()
    assert s.remaining_seconds == 0


def test_actions_rejected_after_timeout(clock):
    s = _started(clock, duration=1)
    s.tick()
    with pytest.raises(SessionStateError):
        s.select_answer(0, 'A')
    with pytest.raises(SessionStateError):
        s.begin_submit()


def test_ticks_ignored_while_submitting(clock):
    s = _started(clock, duration=2)
    s.begin_submit()
    assert s.tick() is SessionState.SUBMITTING
    assert s.remaining_seconds == 2


def test_submit_flow_and_payload(clock):
    s = _started(clock, duration=100)
    timer = FakeTimer()
    s.attach_timer(timer)
    s.select_answer(0, 'A')
    s.select_answer(2, 'C')
    s.toggle_flag(4)
    clock.advance(7)
    for _ in range(30):
        s.tick()
    summary = s.begin_submit()
    assert (summary.answered, summary.unanswered, summary.flagged) == (2, 3, 1)
    assert s.state is SessionState.SUBMITTING
    payload = s.submission_payload(subject_id=9, year=2023)
    assert payload['subject_id'] == 9
    assert payload['exam_type'] == 'exam'
    assert payload['time_used'] == 30
    assert [a['question_id'] for a in payload['answers']] == [100, 101, 102, 103, 104]
    assert [a['selected_answer'] for a in payload['answers']] == ['A', None, 'C', None, None]
    assert payload['answers'][0]['time_spent'] == 7
    s.mark_submitted(55)
    assert s.state is SessionState.SUBMITTED
    assert s.result_id == 55
    assert timer.cancel_calls == 1
    with pytest.raises(SessionStateError):
        s.mark_submitted(56)


def test_time_spent_is_rounded_per_question(clock):
    s = _started(clock, n=3)
    for idx in (1, 2):
        clock.advance(1.4)
        s.navigate(idx)
    clock.advance(1.4)
    for _ in range(4):
        s.tick()
    s.begin_submit()
    payload = s.submission_payload(subject_id=9, year=2023)
    assert [a['time_spent'] for a in payload['answers']] == [1, 1, 1]
    assert payload['time_used'] == 4


def test_failed_submit_returns_to_in_progress(clock):
    s = _started(clock)
    s.select_answer(1, 'B')
    s.begin_submit()
    s.submit_failed()
    assert s.state is SessionState.IN_PROGRESS
    assert s.answers[1] == 'B'
    s.select_answer(2, 'A')


def test_timed_out_session_can_record_one_result(clock):
    s = _started(clock, duration=1)
    s.tick()
    payload = s.submission_payload(1, 2023)
    assert payload['time_used'] == 1
    s.mark_submitted(7)
    assert s.state is SessionState.TIMED_OUT
    assert s.result_id == 7
    with pytest.raises(SessionStateError):
        s.mark_submitted(8)


def test_abandon_cancels_timer_and_is_terminal(clock):
    s = _started(clock)
    timer = FakeTimer()
    s.attach_timer(timer)
    assert s.abandon() is True
    assert s.state is SessionState.ABANDONED
    assert timer.cancel_calls == 1
    assert s.abandon() is False
    assert s.tick() is SessionState.ABANDONED
    with pytest.raises(SessionStateError):
        s.submission_payload(1, 2023)


def test_timer_attached_after_terminal_is_cancelled_immediately(clock):
    s = _started(clock)
    s.abandon()
    timer = FakeTimer()
    s.attach_timer(timer)
    assert timer.cancel_calls == 1


def test_practice_feedback(clock):
    s = _started(clock, mode='practice', with_answers=True)
    s.select_answer(1, 'B')
    fb = s.feedback(1)
    assert fb == {'selected_answer': 'B', 'correct_answer': 'B', 'is_correct': True, 'explanation': 'why 1'}
    assert s.feedback(0)['is_correct'] is False


def test_feedback_unavailable_in_exam_mode(clock):
    s = _started(clock)
    with pytest.raises(SessionStateError):
        s.feedback()


def test_constructor_validation():
    with pytest.raises(ValueError):
        ExamSession('quiz', 10)
    with pytest.raises(ValueError):
        ExamSession('exam', 0)
