from __future__ import annotations

import pytest

from mock_test_engine.errors import (
    AlreadyFinishedError,
    CorruptStateError,
    InvalidConfigurationError,
    InvalidStateError,
    OutOfRangeError,
)
from mock_test_engine.models.result_model import ReviewFilter, ReviewStatus
from mock_test_engine.services.exam_engine import ExamPhase, NavigationSignal
from mock_test_engine.services.timer_service import TimerKind

from tests.conftest import RecordingListener, build_question_set


# ── 시작 ────────────────────────────────────────────────────────────────────

def test_start_enters_first_question(engine, listener, clock):
    state = engine.start(10)

    assert engine.phase is ExamPhase.IN_PROGRESS
    assert state.test_start == clock.now()
    assert engine.current_index == 0
    assert listener.changed == [0]
    assert engine.exam_remaining_ms() == 10 * 60 * 1000
    assert engine.question_remaining_ms() == 40_000


def test_start_twice_is_rejected(engine):
    engine.start(10)
    with pytest.raises(InvalidStateError):
        engine.start(10)


def test_start_again_after_submission(engine, listener):
    engine.start(10)
    engine.select_option(0)
    engine.submit()

    state = engine.start(20)

    assert engine.phase is ExamPhase.IN_PROGRESS
    assert engine.result is None
    assert state.answers == [None, None, None]
    assert state.test_duration_minutes == 20
    assert listener.changed == [0, 0]


def test_start_with_invalid_duration(engine):
    with pytest.raises(InvalidConfigurationError):
        engine.start(0)
    assert engine.phase is ExamPhase.LANDING


def test_commands_before_start_are_rejected(engine):
    with pytest.raises(InvalidStateError):
        engine.next()
    with pytest.raises(InvalidStateError):
        engine.select_option(0)
    with pytest.raises(InvalidStateError):
        engine.get_filtered_view()


def test_state_property_returns_copy(engine):
    engine.start(10)
    copy = engine.state
    copy.answers[0] = 3
    assert engine.state.answers[0] is None


# ── 이동 / 시간 기록 ───────────────────────────────────────────────────────────

def test_navigation_signals_at_boundaries(engine):
    engine.start(10)

    assert engine.previous() is NavigationSignal.AT_BOUNDARY
    assert engine.current_index == 0
    assert engine.next() is NavigationSignal.MOVED
    assert engine.next() is NavigationSignal.MOVED
    assert engine.next() is NavigationSignal.SUBMIT_REQUESTED
    assert engine.current_index == 2
    assert engine.phase is ExamPhase.IN_PROGRESS


def test_go_to_jumps_and_rejects_out_of_range(engine, listener):
    engine.start(10)
    assert engine.go_to(2) is NavigationSignal.MOVED
    assert engine.current_index == 2
    with pytest.raises(OutOfRangeError):
        engine.go_to(3)
    assert engine.current_index == 2
    assert listener.changed == [0, 2]


def test_leaving_question_flushes_elapsed_time(engine, scheduler):
    engine.start(10)

    scheduler.advance(12)
    engine.next()
    assert engine.state.time_spent_seconds == [12, 0, 0]

    scheduler.advance(3)
    engine.previous()
    assert engine.state.time_spent_seconds == [12, 3, 0]


def test_revisiting_accumulates_without_double_counting(engine, scheduler):
    engine.start(10)
    scheduler.advance(12)
    engine.next()
    scheduler.advance(2)
    engine.previous()

    scheduler.advance(5)
    engine.next()

    assert engine.state.time_spent_seconds[0] == 17


def test_flush_captures_time_between_ticks(engine, scheduler):
    engine.start(10)
    scheduler.advance(4.9)  # basic timer ticks every second
    engine.next()
    assert engine.state.time_spent_seconds[0] == 4


def test_ticks_update_active_question_time(engine, scheduler, listener):
    engine.start(10)
    scheduler.advance(3)

    assert engine.state.time_spent_seconds[0] == 3
    assert listener.tick_count(TimerKind.QUESTION) == 3
    assert listener.tick_count(TimerKind.EXAM) == 3


def test_enhanced_timer_ticks_every_100ms(engine, scheduler, listener):
    engine.start(10, enhanced_timer_enabled=True)
    scheduler.advance(1)

    assert engine.question_timer.interval == 0.1
    assert listener.tick_count(TimerKind.QUESTION) == 10


def test_question_expiry_does_not_advance(engine, scheduler, listener):
    engine.start(10)
    scheduler.advance(45)

    assert listener.expired == [TimerKind.QUESTION]
    assert engine.question_time_up
    assert engine.current_index == 0
    assert engine.phase is ExamPhase.IN_PROGRESS
    assert engine.state.time_spent_seconds[0] == 45

    engine.next()
    assert not engine.question_time_up
    assert engine.question_remaining_ms() == 40_000


def test_question_specific_time_limit(make_engine, listener):
    engine = make_engine(build_question_set(2, time_limits=[None, 15]), listener)
    engine.start(10)
    engine.next()
    assert engine.question_remaining_ms() == 15_000


# ── 답안 / 북마크 ───────────────────────────────────────────────────────────

def test_select_clear_and_bookmark(engine):
    engine.start(10)
    engine.select_option(2)
    assert engine.toggle_bookmark() is True
    engine.next()
    engine.select_option(1)
    engine.previous()
    engine.clear_answer()

    state = engine.state
    assert state.answers == [None, 1, None]
    assert state.bookmarked == [True, False, False]


def test_select_option_outside_question_options(engine):
    engine.start(10)
    with pytest.raises(OutOfRangeError):
        engine.select_option(4)
    assert engine.state.answers[0] is None


# ── 제출 ─────────────────────────────────────────────────────────────────────

def test_submit_scores_and_freezes(engine, scheduler, listener, clock):
    engine.start(10, negative_marking_enabled=True)
    engine.select_option(0)
    engine.next()
    engine.select_option(1)
    scheduler.advance(2)

    result = engine.submit()

    assert engine.phase is ExamPhase.SUBMITTED
    assert result.score == 0.67
    assert listener.submitted == [result]
    assert engine.state.test_end == clock.now()
    assert engine.state.time_spent_seconds == [0, 2, 0]
    assert scheduler.active_jobs == []
    with pytest.raises(InvalidStateError):
        engine.select_option(0)
    with pytest.raises(InvalidStateError):
        engine.next()


def test_submit_twice_raises_and_keeps_state(engine, scheduler):
    engine.start(10)
    engine.select_option(0)
    engine.submit()
    before = engine.state.serialize()
    first_result = engine.result

    scheduler.advance(5)
    with pytest.raises(AlreadyFinishedError):
        engine.submit()

    assert engine.state.serialize() == before
    assert engine.result is first_result


def test_submit_saves_finished_snapshot(engine, store):
    engine.start(10)
    engine.submit()
    assert store.load()["testEnd"] is not None


def test_exam_expiry_forces_submission(engine, scheduler, listener, clock):
    start = clock.now()
    engine.start(1)
    engine.select_option(0)

    scheduler.advance(90)

    assert engine.phase is ExamPhase.SUBMITTED
    assert TimerKind.EXAM in listener.expired
    assert len(listener.submitted) == 1
    assert engine.state.test_end == start + 60
    assert engine.result.score == 1
    assert scheduler.active_jobs == []


# ── 자동 저장 ─────────────────────────────────────────────────────────────────

def test_auto_save_runs_on_interval(engine, scheduler, store, clock):
    engine.start(10)
    assert store.load() is None

    engine.select_option(3)
    scheduler.advance(5)

    saved = store.load()
    assert saved["answers"][0] == 3
    assert engine.last_saved_at == clock.now()


def test_failed_save_is_retried_next_cycle(engine, scheduler, store):
    engine.start(10)
    store.fail = True
    scheduler.advance(10)

    assert engine.save_failures == 2
    assert engine.phase is ExamPhase.IN_PROGRESS

    store.fail = False
    scheduler.advance(5)
    assert engine.save_failures == 0
    assert store.load() is not None


# ── 이어하기 ─────────────────────────────────────────────────────────────────

def test_resume_without_snapshot(engine):
    assert engine.resume() is False
    assert engine.phase is ExamPhase.LANDING


def test_resume_in_progress_session(make_engine, scheduler, store, clock):
    first = make_engine()
    first.start(10)
    first.select_option(1)
    first.next()
    scheduler.advance(6)
    first.destroy()  # 탭을 닫음: 마지막 자동 저장만 남는다
    saved_seconds = store.load()["timeSpentSeconds"][1]

    clock.advance(30)
    listener = RecordingListener()
    second = make_engine(listener=listener)

    assert second.resume() is True
    assert second.phase is ExamPhase.IN_PROGRESS
    assert second.current_index == 1
    assert second.state.answers[0] == 1
    assert second.exam_remaining_ms() == (10 * 60 - 36) * 1000
    assert listener.changed == [1]

    scheduler.advance(4)
    second.previous()
    assert second.state.time_spent_seconds[1] == saved_seconds + 4


def test_resume_finished_session_shows_result(make_engine):
    first = make_engine()
    first.start(10)
    first.select_option(0)
    submitted = first.submit()

    listener = RecordingListener()
    second = make_engine(listener=listener)

    assert second.resume() is True
    assert second.phase is ExamPhase.SUBMITTED
    assert second.result == submitted
    assert second.review_view is not None
    assert listener.submitted == []


def test_resume_expired_session_submits(make_engine, clock):
    first = make_engine()
    first.start(1)
    first.suspend()

    clock.advance(120)
    listener = RecordingListener()
    second = make_engine(listener=listener)

    assert second.resume() is True
    assert second.phase is ExamPhase.SUBMITTED
    assert listener.expired == [TimerKind.EXAM]
    assert len(listener.submitted) == 1


def test_resume_corrupt_snapshot(engine, store):
    store.save({"questionCount": 3, "answers": [None]})
    with pytest.raises(CorruptStateError):
        engine.resume()
    assert engine.phase is ExamPhase.LANDING


def test_resume_rejects_answer_outside_question_options(make_engine, store):
    first = make_engine()
    first.start(10)
    first.suspend()
    snapshot = store.load()
    snapshot["answers"] = [9, None, None]
    store.save(snapshot)

    second = make_engine()
    with pytest.raises(CorruptStateError):
        second.resume()
    assert second.phase is ExamPhase.LANDING
    assert second.state is None


def test_resume_snapshot_of_other_question_set(make_engine):
    first = make_engine(build_question_set(3, set_id="other-set"))
    first.start(10)
    first.suspend()

    second = make_engine(build_question_set(3))
    with pytest.raises(CorruptStateError):
        second.resume()


# ── 초기화 / 다시 풀기 / 중단 / 종료 ─────────────────────────────────────────────

def test_reset_returns_to_landing_and_clears_store(engine, scheduler, store):
    engine.start(10)
    scheduler.advance(5)
    assert store.load() is not None

    engine.reset()

    assert engine.phase is ExamPhase.LANDING
    assert engine.state is None
    assert store.load() is None
    assert scheduler.active_jobs == []


def test_restart_reuses_previous_settings(engine, scheduler, clock):
    engine.start(15, negative_marking_enabled=True, enhanced_timer_enabled=True)
    engine.select_option(0)
    engine.submit()

    scheduler.advance(30)
    state = engine.restart()

    assert engine.phase is ExamPhase.IN_PROGRESS
    assert engine.result is None
    assert state.answers == [None, None, None]
    assert state.test_start == clock.now()
    assert state.test_duration_minutes == 15
    assert state.negative_marking_enabled
    assert state.enhanced_timer_enabled


def test_restart_without_previous_attempt(engine):
    with pytest.raises(InvalidStateError):
        engine.restart()


def test_suspend_saves_and_releases(engine, scheduler, store):
    engine.start(10)
    scheduler.advance(7)

    assert engine.suspend() is True
    assert engine.phase is ExamPhase.LANDING
    assert store.load()["timeSpentSeconds"] == [7, 0, 0]
    assert scheduler.active_jobs == []

    assert engine.resume() is True
    assert engine.current_index == 0


def test_suspend_reports_failed_save(engine, store):
    engine.start(10)
    store.fail = True
    assert engine.suspend() is False


def test_destroy_stops_everything(engine, scheduler, listener):
    engine.start(10)
    engine.destroy()
    engine.destroy()

    ticks = len(listener.ticks)
    scheduler.advance(60)

    assert scheduler.active_jobs == []
    assert len(listener.ticks) == ticks
    with pytest.raises(InvalidStateError):
        engine.next()
    with pytest.raises(InvalidStateError):
        engine.start(10)


def test_context_manager_destroys(make_engine, scheduler):
    with make_engine() as engine:
        engine.start(10)
    assert scheduler.active_jobs == []


# ── 오답 노트 ─────────────────────────────────────────────────────────────────

def test_review_views_after_submission(make_engine):
    engine = make_engine(build_question_set(5))
    engine.start(10)
    for answer in [0, 1, None, 2, 0]:
        if answer is not None:
            engine.select_option(answer)
        engine.next()
    engine.submit()

    view = engine.get_filtered_view(ReviewFilter(status=ReviewStatus.INCORRECT))
    assert [e.question_number for e in view.entries] == [2, 4]

    view = engine.navigate_review(1)
    assert view.current.question_number == 4
    assert engine.navigate_review(1) is view

    # 선택 중인 문항(4번)이 남아 있으므로 커서가 따라간다
    view = engine.get_filtered_view(ReviewFilter(status=ReviewStatus.ANSWERED))
    assert view.current.question_number == 4

    view = engine.jump_to_question(3)
    assert view.review_filter == ReviewFilter()
    assert view.current.question_number == 3
    assert engine.review_view is view
