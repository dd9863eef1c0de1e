"""
services/exam_engine.py — 시험 진행 엔진 (네비게이션 컨트롤러)

단계:
  LANDING --start--> IN_PROGRESS --submit / 시간 만료--> SUBMITTED

상태 관리:
  - ExamState 하나를 이 엔진만 소유하고 변경한다 (전역 상태 없음)
  - 모든 명령과 타이머 콜백은 하나의 RLock 아래에서 직렬화된다
  - 문항 이동 순서: 문항 타이머 정지/플러시 → 떠나는 문항에 시간 기록 → 이동 → 새 타이머 시작

화면 갱신은 ExamListener를 통해 바깥(UI 어댑터)에 알린다.
"""

import logging
import threading
from enum import Enum
from typing import Any, Dict, Optional

from mock_test_engine.config import (
    AUTO_SAVE_INTERVAL_SECONDS,
    DEFAULT_TEST_DURATION_MINUTES,
    NEGATIVE_MARKING_DEFAULT,
    QUESTION_TIME_LIMIT_SECONDS,
)
from mock_test_engine.errors import (
    AlreadyFinishedError,
    CorruptStateError,
    InvalidStateError,
    OutOfRangeError,
    StorageUnavailableError,
)
from mock_test_engine.models.question_model import Question, QuestionSet
from mock_test_engine.models.result_model import ExamResult, FilteredView, ReviewFilter
from mock_test_engine.models.session_state import ExamState
from mock_test_engine.services import review_service
from mock_test_engine.services.exam_service import calculate_result
from mock_test_engine.services.persistence import InMemorySessionStore, SessionStore
from mock_test_engine.services.scheduler import (
    Clock,
    ScheduledJob,
    Scheduler,
    SystemClock,
    ThreadScheduler,
)
from mock_test_engine.services.timer_service import CountdownTimer, TimerKind, TimerService

logger = logging.getLogger(__name__)


class ExamPhase(str, Enum):
    LANDING = "landing"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


class NavigationSignal(str, Enum):
    MOVED = "moved"
    AT_BOUNDARY = "at_boundary"            # 첫 문제에서 '이전': 아무 일도 없음
    SUBMIT_REQUESTED = "submit_requested"  # 마지막 문제에서 '다음': 제출 여부는 호출자가 결정


class ExamListener:
    """UI 어댑터가 상속해서 필요한 메서드만 재정의한다. 기본 구현은 아무것도 하지 않음."""

    def on_question_changed(self, index: int) -> None:
        pass

    def on_timer_tick(self, kind: TimerKind, remaining_ms: int) -> None:
        pass

    def on_timer_expired(self, kind: TimerKind) -> None:
        pass

    def on_submitted(self, result: ExamResult) -> None:
        pass


class ExamEngine:
    """
    한 번의 시험 응시(attempt)를 진행하는 상태 기계.

    Args:
        question_set: 정규화된 문제 세트 (응시 중 변경 없음).
        store:        세션 스냅샷 저장소. 기본은 인메모리.
        listener:     이벤트 수신자.
        clock:        현재 시각 공급자. 테스트에서는 ManualClock.
        scheduler:    주기 실행기. 테스트에서는 ManualScheduler.
    """

    def __init__(
        self,
        question_set: QuestionSet,
        store: Optional[SessionStore] = None,
        listener: Optional[ExamListener] = None,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        self.question_set = question_set
        self.store = store if store is not None else InMemorySessionStore()
        self.listener = listener or ExamListener()
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or ThreadScheduler()
        self.timers = TimerService(self.clock, self.scheduler)

        self._lock = threading.RLock()
        # 저장소 쓰기/삭제 직렬화. 순서는 항상 _lock -> _save_lock
        self._save_lock = threading.Lock()
        self._save_generation = 0
        self._phase = ExamPhase.LANDING
        self._state: Optional[ExamState] = None
        self._result: Optional[ExamResult] = None
        self._review_view: Optional[FilteredView] = None
        self._settings: Optional[Dict[str, Any]] = None
        self._auto_save_job: Optional[ScheduledJob] = None
        self._active_index: Optional[int] = None
        self._active_base_seconds = 0
        self._destroyed = False
        self.save_failures = 0
        self.last_saved_at: Optional[float] = None

    # ── 조회 ─────────────────────────────────────────────────────────────

    @property
    def phase(self) -> ExamPhase:
        return self._phase

    @property
    def state(self) -> Optional[ExamState]:
        """세션 사본. 엔진 밖에서 변경해도 엔진 상태에는 영향이 없다."""
        with self._lock:
            return self._state.model_copy(deep=True) if self._state else None

    @property
    def result(self) -> Optional[ExamResult]:
        return self._result

    @property
    def review_view(self) -> Optional[FilteredView]:
        return self._review_view

    @property
    def current_index(self) -> Optional[int]:
        return self._state.current_question if self._state else None

    @property
    def current_question(self) -> Optional[Question]:
        if self._state is None:
            return None
        return self.question_set[self._state.current_question]

    @property
    def exam_timer(self) -> Optional[CountdownTimer]:
        return self.timers.exam_timer

    @property
    def question_timer(self) -> Optional[CountdownTimer]:
        return self.timers.question_timer

    def exam_remaining_ms(self) -> Optional[int]:
        timer = self.timers.exam_timer
        return timer.remaining_ms if timer else None

    def question_remaining_ms(self) -> Optional[int]:
        timer = self.timers.question_timer
        return timer.remaining_ms if timer else None

    @property
    def question_time_up(self) -> bool:
        timer = self.timers.question_timer
        return bool(timer and timer.expired)

    # ── 시작 / 이어하기 ───────────────────────────────────────────────────

    def start(
        self,
        duration_minutes: float = DEFAULT_TEST_DURATION_MINUTES,
        *,
        negative_marking_enabled: bool = NEGATIVE_MARKING_DEFAULT,
        enhanced_timer_enabled: bool = False,
    ) -> ExamState:
        with self._lock:
            self._check_alive()
            if self._phase is ExamPhase.IN_PROGRESS:
                raise InvalidStateError("이미 진행 중인 시험이 있습니다.")

            state = ExamState.start(
                len(self.question_set),
                duration_minutes,
                negative_marking_enabled=negative_marking_enabled,
                enhanced_timer_enabled=enhanced_timer_enabled,
                question_set_id=self.question_set.id,
                now=self.clock.now(),
            )
            self._state = state
            self._result = None
            self._review_view = None
            self._settings = {
                "duration_minutes": duration_minutes,
                "negative_marking_enabled": negative_marking_enabled,
                "enhanced_timer_enabled": enhanced_timer_enabled,
            }
            self._phase = ExamPhase.IN_PROGRESS

            logger.info(
                f"시험 시작: 세트={self.question_set.id}, 문항={state.question_count}, "
                f"시간={duration_minutes}분, 감점={negative_marking_enabled}"
            )
            self._start_exam_timer()
            self._enter_question(0)
            self._start_auto_save()
            return state.model_copy(deep=True)

    def resume(self) -> bool:
        """
        저장소의 스냅샷으로 응시를 이어간다.

        Returns:
            True  — 복원 성공 (진행 중 또는 이미 제출된 상태로)
            False — 이어할 세션이 없거나 저장소를 읽을 수 없음 (새로 시작하면 됨)

        Raises:
            CorruptStateError: 스냅샷이 손상되었거나 다른 문제 세트의 것.
        """
        with self._lock:
            self._check_alive()
            if self._phase is ExamPhase.IN_PROGRESS:
                raise InvalidStateError("이미 진행 중인 시험이 있습니다.")

            try:
                snapshot = self.store.load()
            except StorageUnavailableError as e:
                logger.warning(f"저장소를 읽을 수 없어 이어하기를 건너뜁니다: {e}")
                return False
            if snapshot is None:
                logger.info("이어할 시험 세션이 없습니다.")
                return False

            state = ExamState.deserialize(snapshot)
            if state.question_set_id != self.question_set.id or state.question_count != len(self.question_set):
                raise CorruptStateError(
                    f"저장된 세션의 문제 세트({state.question_set_id}, {state.question_count}문항)가 "
                    f"현재 세트({self.question_set.id}, {len(self.question_set)}문항)와 다릅니다."
                )
            for i, answer in enumerate(state.answers):
                option_count = len(self.question_set[i].options)
                if answer is not None and answer >= option_count:
                    raise CorruptStateError(
                        f"저장된 {i + 1}번 답안({answer})이 보기 범위를 벗어납니다 (보기 {option_count}개)."
                    )

            self._state = state
            self._settings = {
                "duration_minutes": state.test_duration_minutes,
                "negative_marking_enabled": state.negative_marking_enabled,
                "enhanced_timer_enabled": state.enhanced_timer_enabled,
            }

            if state.is_finished:
                self._phase = ExamPhase.SUBMITTED
                self._result = calculate_result(self.question_set, state)
                self._review_view = review_service.project(self._result)
                logger.info("제출 완료된 세션을 복원했습니다.")
                return True

            self._phase = ExamPhase.IN_PROGRESS
            elapsed = self.clock.now() - state.test_start
            if elapsed >= state.test_duration_minutes * 60:
                logger.warning("복원한 시험의 제한 시간이 이미 지났습니다 - 자동 제출")
                self.listener.on_timer_expired(TimerKind.EXAM)
                self.submit()
                return True

            logger.info(f"시험 이어하기: {state.current_question + 1}번 문제부터, 경과 {int(elapsed)}초")
            self._start_exam_timer(started_at=state.test_start)
            self._enter_question(state.current_question)
            self._start_auto_save()
            return True

    # ── 문항 이동 ─────────────────────────────────────────────────────────

    def next(self) -> NavigationSignal:
        with self._lock:
            state = self._require_in_progress()
            if state.current_question >= state.question_count - 1:
                return NavigationSignal.SUBMIT_REQUESTED
            self._move_to(state.current_question + 1)
            return NavigationSignal.MOVED

    def previous(self) -> NavigationSignal:
        with self._lock:
            state = self._require_in_progress()
            if state.current_question <= 0:
                return NavigationSignal.AT_BOUNDARY
            self._move_to(state.current_question - 1)
            return NavigationSignal.MOVED

    def go_to(self, index: int) -> NavigationSignal:
        """문제 번호 그리드에서 바로 이동."""
        with self._lock:
            state = self._require_in_progress()
            if not 0 <= index < state.question_count:
                raise OutOfRangeError(f"문제 인덱스가 범위를 벗어납니다: {index}")
            self._move_to(index)
            return NavigationSignal.MOVED

    # ── 답안 / 북마크 ─────────────────────────────────────────────────────

    def select_option(self, option_index: int) -> None:
        with self._lock:
            state = self._require_in_progress()
            question = self.question_set[state.current_question]
            if not 0 <= option_index < len(question.options):
                raise OutOfRangeError(
                    f"보기 인덱스가 범위를 벗어납니다: {option_index} (보기 {len(question.options)}개)"
                )
            state.set_answer(state.current_question, option_index)

    def clear_answer(self) -> None:
        with self._lock:
            state = self._require_in_progress()
            state.clear_answer(state.current_question)

    def toggle_bookmark(self) -> bool:
        with self._lock:
            state = self._require_in_progress()
            return state.toggle_bookmark(state.current_question)

    # ── 제출 ─────────────────────────────────────────────────────────────

    def submit(self) -> ExamResult:
        """
        답안을 확정하고 채점한다. 두 번째 호출은 AlreadyFinishedError (상태 변화 없음).
        """
        with self._lock:
            self._check_alive()
            if self._phase is ExamPhase.SUBMITTED:
                raise AlreadyFinishedError("이미 제출된 시험입니다.")
            state = self._require_in_progress()

            self._flush_question_time()
            state.finish(now=self.clock.now())
            self._stop_background()
            self._phase = ExamPhase.SUBMITTED

            self._result = calculate_result(self.question_set, state)
            self._review_view = review_service.project(self._result)
            self._save_snapshot(state.serialize())

            logger.info(f"시험 제출 완료: 점수 {self._result.score} ({self._result.score_percentage}%)")
            self.listener.on_submitted(self._result)
            return self._result

    # ── 초기화 / 중단 / 종료 ──────────────────────────────────────────────

    def reset(self) -> None:
        """진행 상태와 저장된 스냅샷을 모두 버리고 첫 화면으로 돌아간다."""
        with self._lock:
            self._check_alive()
            self._stop_background()
            self._state = None
            self._result = None
            self._review_view = None
            self._active_index = None
            self._phase = ExamPhase.LANDING
            with self._save_lock:
                try:
                    self.store.clear()
                except StorageUnavailableError as e:
                    logger.warning(f"저장된 세션 삭제 실패: {e}")
            logger.info("시험 상태를 초기화했습니다.")

    def restart(self) -> ExamState:
        """같은 문제 세트와 설정으로 새 응시를 시작한다 (다시 풀기)."""
        with self._lock:
            self._check_alive()
            if self._settings is None:
                raise InvalidStateError("다시 시작할 이전 시험 설정이 없습니다.")
            settings = dict(self._settings)
            self.reset()
            return self.start(
                settings["duration_minutes"],
                negative_marking_enabled=settings["negative_marking_enabled"],
                enhanced_timer_enabled=settings["enhanced_timer_enabled"],
            )

    def suspend(self) -> bool:
        """
        시험을 잠시 나간다. 진행 상태는 저장소에 남겨 resume()으로 이어갈 수 있다.
        Returns: 저장 성공 여부.
        """
        with self._lock:
            state = self._require_in_progress()
            self._flush_question_time()
            self._stop_background()
            saved = self._save_snapshot(state.serialize())
            self._state = None
            self._phase = ExamPhase.LANDING
            logger.info(f"시험을 중단했습니다 (저장 {'성공' if saved else '실패'}).")
            return saved

    def destroy(self) -> None:
        """타이머와 자동 저장을 모두 멈춘 뒤 반환한다. 이후 명령은 InvalidStateError."""
        with self._lock:
            if self._destroyed:
                return
            if self._phase is ExamPhase.IN_PROGRESS:
                self._flush_question_time()
            self._stop_background()
            self._destroyed = True
            logger.info("시험 엔진을 종료했습니다.")

    def __enter__(self) -> 'ExamEngine':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.destroy()

    # ── 오답 노트 / 해설 ──────────────────────────────────────────────────

    def get_filtered_view(self, review_filter: Optional[ReviewFilter] = None) -> FilteredView:
        """필터를 적용한 새 뷰. 선택 중이던 문항이 남아 있으면 커서가 따라간다."""
        with self._lock:
            result = self._require_result()
            selected = None
            if self._review_view is not None and self._review_view.current is not None:
                selected = self._review_view.current.question_id
            self._review_view = review_service.project(result, review_filter, selected)
            return self._review_view

    def navigate_review(self, direction: int) -> FilteredView:
        with self._lock:
            result = self._require_result()
            view = self._review_view or review_service.project(result)
            self._review_view = review_service.navigate(view, direction)
            return self._review_view

    def jump_to_question(self, question_number: int) -> FilteredView:
        with self._lock:
            result = self._require_result()
            view = self._review_view or review_service.project(result)
            self._review_view = review_service.jump_to_question(result, view, question_number)
            return self._review_view

    # ── 내부: 문항 타이머 ─────────────────────────────────────────────────

    def _move_to(self, index: int) -> None:
        self._flush_question_time()
        self._enter_question(index)

    def _enter_question(self, index: int) -> None:
        state = self._state
        state.set_current_question(index)
        question = self.question_set[index]
        limit = question.per_question_time_limit_seconds or QUESTION_TIME_LIMIT_SECONDS
        base = state.time_spent_seconds[index]
        self._active_index = index
        self._active_base_seconds = base

        timer: Optional[CountdownTimer] = None

        def on_tick(remaining_ms: int) -> None:
            self._on_question_tick(timer, index, base, remaining_ms)

        def on_expire() -> None:
            self._on_question_expire(timer)

        # 이전 타이머가 만료되었더라도 새 문항에서는 항상 새 타이머
        timer = self.timers.start_question_timer(
            limit,
            on_tick=on_tick,
            on_expire=on_expire,
            enhanced=state.enhanced_timer_enabled,
        )
        self.listener.on_question_changed(index)

    def _flush_question_time(self) -> None:
        """문항 타이머를 멈추고 떠나는 문항에 누적 시간을 기록한다."""
        timer = self.timers.question_timer
        if timer is None or timer.stopped or self._active_index is None:
            return
        elapsed_ms = self.timers.stop_question_timer()
        self._state.update_time_spent(self._active_index, self._active_base_seconds + elapsed_ms // 1000)

    def _on_question_tick(self, timer: Optional[CountdownTimer], index: int, base: int, remaining_ms: int) -> None:
        with self._lock:
            if timer is None or timer.stopped or self._phase is not ExamPhase.IN_PROGRESS:
                return
            self._state.update_time_spent(index, base + timer.elapsed_ms // 1000)
            self.listener.on_timer_tick(TimerKind.QUESTION, remaining_ms)

    def _on_question_expire(self, timer: Optional[CountdownTimer]) -> None:
        with self._lock:
            if timer is None or timer.stopped or self._phase is not ExamPhase.IN_PROGRESS:
                return
            # 자동으로 넘어가지 않는다: 'Time Up' 표시만
            self.listener.on_timer_expired(TimerKind.QUESTION)

    # ── 내부: 시험 타이머 ─────────────────────────────────────────────────

    def _start_exam_timer(self, started_at: Optional[float] = None) -> None:
        timer: Optional[CountdownTimer] = None

        def on_tick(remaining_ms: int) -> None:
            with self._lock:
                if timer is None or timer.stopped or self._phase is not ExamPhase.IN_PROGRESS:
                    return
                self.listener.on_timer_tick(TimerKind.EXAM, remaining_ms)

        def on_expire() -> None:
            self._on_exam_expire(timer)

        timer = self.timers.start_exam_timer(
            self._state.test_duration_minutes,
            on_tick=on_tick,
            on_expire=on_expire,
            started_at=self._state.test_start if started_at is None else started_at,
        )

    def _on_exam_expire(self, timer: Optional[CountdownTimer]) -> None:
        with self._lock:
            if timer is None or timer.stopped or self._phase is not ExamPhase.IN_PROGRESS:
                return
            logger.warning("시험 시간이 종료되어 자동 제출합니다.")
            self.listener.on_timer_expired(TimerKind.EXAM)
            self.submit()

    # ── 내부: 자동 저장 ───────────────────────────────────────────────────

    def _start_auto_save(self) -> None:
        self._cancel_auto_save()
        self._auto_save_job = self.scheduler.call_every(
            AUTO_SAVE_INTERVAL_SECONDS, self._auto_save, name="auto-save"
        )

    def _cancel_auto_save(self) -> None:
        if self._auto_save_job is not None:
            self._auto_save_job.cancel()
            self._auto_save_job = None

    def _auto_save(self) -> None:
        with self._lock:
            if self._destroyed or self._phase is not ExamPhase.IN_PROGRESS or self._state is None:
                return
            snapshot = self._state.serialize()
            generation = self._save_generation
        # 저장은 엔진 락 밖에서: 느린 저장소가 타이머 틱을 막지 않도록
        self._save_snapshot(snapshot, generation)

    def _save_snapshot(self, snapshot: Dict[str, Any], generation: Optional[int] = None) -> bool:
        """
        generation이 주어지면 (자동 저장) 그 사이 제출/초기화/중단이 있었는지 확인하고,
        있었다면 오래된 스냅샷을 쓰지 않는다.
        """
        with self._save_lock:
            if generation is not None and generation != self._save_generation:
                logger.debug("응시 상태가 바뀌어 오래된 자동 저장을 건너뜁니다.")
                return False
            try:
                self.store.save(snapshot)
            except StorageUnavailableError as e:
                self.save_failures += 1
                logger.warning(f"세션 저장 실패 ({self.save_failures}회 연속), 다음 주기에 재시도: {e}")
                return False
            self.save_failures = 0
            self.last_saved_at = self.clock.now()
            return True

    def _stop_background(self) -> None:
        self.timers.stop_all()
        self._cancel_auto_save()
        # 진행 중인 자동 저장이 이후의 최종 저장/삭제를 덮어쓰지 못하게 한다
        self._save_generation += 1

    # ── 내부: 검사 ───────────────────────────────────────────────────────

    def _check_alive(self) -> None:
        if self._destroyed:
            raise InvalidStateError("종료된 시험 엔진입니다.")

    def _require_in_progress(self) -> ExamState:
        self._check_alive()
        if self._phase is ExamPhase.SUBMITTED:
            raise InvalidStateError("제출된 시험은 변경할 수 없습니다.")
        if self._phase is not ExamPhase.IN_PROGRESS or self._state is None:
            raise InvalidStateError("진행 중인 시험이 없습니다.")
        return self._state

    def _require_result(self) -> ExamResult:
        if self._result is None:
            raise InvalidStateError("채점 결과가 없습니다. 시험을 먼저 제출하세요.")
        return self._result
