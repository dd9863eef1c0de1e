"""
services/timer_service.py

시험 전체 타이머와 문항별 타이머.

남은 시간은 저장된 시작 시각과 현재 시각의 차이로 계산한다 (카운터 감소 방식 아님).
틱이 밀리거나 빠져도 (백그라운드 탭, 스레드 지연) 정확도에 영향이 없다.
"""

import logging
from enum import Enum
from typing import Callable, Optional

from mock_test_engine.config import (
    BASIC_QUESTION_TICK_INTERVAL_SECONDS,
    CUSTOM_MINUTES_MAX,
    CUSTOM_MINUTES_MIN,
    CUSTOM_SECONDS_MAX,
    EXAM_DANGER_MS,
    EXAM_TICK_INTERVAL_SECONDS,
    EXAM_WARNING_MS,
    QUESTION_DANGER_MS,
    QUESTION_TICK_INTERVAL_SECONDS,
    QUESTION_WARNING_MS,
)
from mock_test_engine.errors import InvalidConfigurationError
from mock_test_engine.services.scheduler import Clock, ScheduledJob, Scheduler

logger = logging.getLogger(__name__)


class TimerKind(str, Enum):
    EXAM = "exam"
    QUESTION = "question"


class CountdownTimer:
    """
    단일 카운트다운. TimerHandle 계약(stop())을 구현한다.

    on_tick(remaining_ms) 은 매 틱마다, on_expire() 는 남은 시간이 0이 된 뒤 정확히 한 번,
    on_stop(elapsed_ms) 는 stop() 시 동기적으로 한 번 호출된다.
    만료 후에도 stop() 전까지 틱은 계속된다 (문항 풀이 시간은 계속 누적).
    """

    def __init__(
        self,
        kind: TimerKind,
        duration_ms: int,
        clock: Clock,
        scheduler: Scheduler,
        interval: float,
        on_tick: Optional[Callable[[int], None]] = None,
        on_expire: Optional[Callable[[], None]] = None,
        on_stop: Optional[Callable[[int], None]] = None,
        started_at: Optional[float] = None,
    ):
        self.kind = kind
        self.duration_ms = int(duration_ms)
        self.interval = interval
        self._clock = clock
        self._scheduler = scheduler
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._on_stop = on_stop
        self.started_at = clock.now() if started_at is None else started_at
        self._job: Optional[ScheduledJob] = None
        self._expired = False
        self._stopped = False
        self._final_elapsed_ms: Optional[int] = None

    def start(self) -> 'CountdownTimer':
        self._job = self._scheduler.call_every(self.interval, self.tick, name=f"{self.kind.value}-timer")
        return self

    # ── 상태 ─────────────────────────────────────────────────────────────

    @property
    def elapsed_ms(self) -> int:
        if self._final_elapsed_ms is not None:
            return self._final_elapsed_ms
        return max(0, int(round((self._clock.now() - self.started_at) * 1000)))

    @property
    def remaining_ms(self) -> int:
        return max(0, self.duration_ms - self.elapsed_ms)

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def stopped(self) -> bool:
        return self._stopped

    # ── 동작 ─────────────────────────────────────────────────────────────

    def tick(self) -> None:
        if self._stopped:
            return
        remaining = self.remaining_ms
        if self._on_tick:
            self._on_tick(remaining)
        if remaining <= 0 and not self._expired and not self._stopped:
            self._expired = True
            logger.info(f"{self.kind.value} 타이머 만료 - Time Up!")
            if self._on_expire:
                self._on_expire()

    def stop(self) -> int:
        """타이머를 멈추고 마지막 경과 시간(ms)을 on_stop으로 넘긴 뒤 반환한다."""
        if self._stopped:
            return self.elapsed_ms
        elapsed = self.elapsed_ms
        self._final_elapsed_ms = elapsed
        self._stopped = True
        if self._job is not None:
            self._job.cancel()
        if self._on_stop:
            self._on_stop(elapsed)
        return elapsed


class TimerService:
    """
    종류별로 최대 하나의 타이머만 유지한다.
    같은 종류의 새 타이머를 시작하면 이전 타이머는 먼저 멈춘다.
    """

    def __init__(self, clock: Clock, scheduler: Scheduler):
        self.clock = clock
        self.scheduler = scheduler
        self.exam_timer: Optional[CountdownTimer] = None
        self.question_timer: Optional[CountdownTimer] = None

    def start_exam_timer(
        self,
        duration_minutes: float,
        on_tick: Optional[Callable[[int], None]] = None,
        on_expire: Optional[Callable[[], None]] = None,
        started_at: Optional[float] = None,
    ) -> CountdownTimer:
        """started_at을 넘기면 (이어하기) 그 시각 기준으로 남은 시간을 계산한다."""
        self.stop_exam_timer()
        self.exam_timer = CountdownTimer(
            TimerKind.EXAM,
            duration_ms=int(duration_minutes * 60 * 1000),
            clock=self.clock,
            scheduler=self.scheduler,
            interval=EXAM_TICK_INTERVAL_SECONDS,
            on_tick=on_tick,
            on_expire=on_expire,
            started_at=started_at,
        ).start()
        return self.exam_timer

    def start_question_timer(
        self,
        limit_seconds: int,
        on_tick: Optional[Callable[[int], None]] = None,
        on_expire: Optional[Callable[[], None]] = None,
        on_stop: Optional[Callable[[int], None]] = None,
        enhanced: bool = True,
    ) -> CountdownTimer:
        self.stop_question_timer()
        interval = QUESTION_TICK_INTERVAL_SECONDS if enhanced else BASIC_QUESTION_TICK_INTERVAL_SECONDS
        self.question_timer = CountdownTimer(
            TimerKind.QUESTION,
            duration_ms=int(limit_seconds * 1000),
            clock=self.clock,
            scheduler=self.scheduler,
            interval=interval,
            on_tick=on_tick,
            on_expire=on_expire,
            on_stop=on_stop,
        ).start()
        return self.question_timer

    def stop_exam_timer(self) -> Optional[int]:
        if self.exam_timer is None:
            return None
        return self.exam_timer.stop()

    def stop_question_timer(self) -> Optional[int]:
        if self.question_timer is None:
            return None
        return self.question_timer.stop()

    def stop_all(self) -> None:
        self.stop_question_timer()
        self.stop_exam_timer()


# ── 표시용 헬퍼 ──────────────────────────────────────────────────────────────

def format_countdown(milliseconds: Optional[int]) -> str:
    """남은 시간을 MM:SS (1시간 이상이면 H:MM:SS) 로 표시."""
    if milliseconds is None or milliseconds < 0:
        return "00:00"
    total_seconds = int(milliseconds // 1000)
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def warning_level(kind: TimerKind, remaining_ms: int) -> str:
    """'normal' | 'warning' | 'danger'"""
    if kind is TimerKind.QUESTION:
        danger, warning = QUESTION_DANGER_MS, QUESTION_WARNING_MS
        if remaining_ms <= danger:
            return "danger"
        if remaining_ms <= warning:
            return "warning"
        return "normal"
    if remaining_ms < EXAM_DANGER_MS:
        return "danger"
    if remaining_ms < EXAM_WARNING_MS:
        return "warning"
    return "normal"


def progress_fraction(timer: CountdownTimer) -> float:
    """경과 비율 0.0 ~ 1.0 (진행 바는 시간이 흐를수록 채워진다)."""
    if timer.duration_ms <= 0:
        return 1.0
    return min(1.0, timer.elapsed_ms / timer.duration_ms)


def duration_from_parts(minutes: int, seconds: int = 0) -> float:
    """사용자 지정 시험 시간 (분 + 초) → 분 단위 실수."""
    minutes_valid = CUSTOM_MINUTES_MIN <= minutes <= CUSTOM_MINUTES_MAX
    seconds_valid = 0 <= seconds <= CUSTOM_SECONDS_MAX
    if not (minutes_valid and seconds_valid):
        raise InvalidConfigurationError(
            f"시험 시간은 {CUSTOM_MINUTES_MIN}~{CUSTOM_MINUTES_MAX}분, "
            f"0~{CUSTOM_SECONDS_MAX}초 범위여야 합니다: {minutes}분 {seconds}초"
        )
    return minutes + seconds / 60
