"""
services/scheduler.py

시계(Clock)와 주기 실행기(Scheduler).

엔진은 time.time()이나 스레드를 직접 만지지 않고 이 두 추상화만 사용한다.
  - SystemClock / ThreadScheduler : 실제 실행용 (데몬 스레드 루프)
  - ManualClock / ManualScheduler : 테스트/시뮬레이션용 (advance()로 시간 이동)
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Protocol

logger = logging.getLogger(__name__)

_EPSILON = 1e-9


class Clock(Protocol):
    def now(self) -> float:
        """현재 시각 (Unix timestamp, 초)."""
        ...


class ScheduledJob(Protocol):
    def cancel(self) -> None:
        """반복 실행 중지. 여러 번 호출해도 안전해야 한다."""
        ...

    @property
    def cancelled(self) -> bool:
        ...


class Scheduler(Protocol):
    def call_every(self, interval: float, callback: Callable[[], None], name: str = "") -> ScheduledJob:
        ...


class SystemClock:
    def now(self) -> float:
        return time.time()


class ManualClock:
    """수동으로 움직이는 시계."""

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def set(self, value: float) -> None:
        self._now = float(value)

    def advance(self, seconds: float) -> None:
        self._now += seconds


# ── 스레드 기반 실행기 ───────────────────────────────────────────────────────

class _ThreadJob:
    def __init__(self, interval: float, callback: Callable[[], None], name: str):
        self.interval = interval
        self.callback = callback
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name or "exam-job", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception(f"주기 작업 실행 중 오류: {self._thread.name}")

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def cancel(self) -> None:
        # join 하지 않음: 콜백이 엔진 락을 기다리는 중일 수 있다
        self._stop.set()


class ThreadScheduler:
    """작업마다 데몬 스레드 하나를 띄워 interval 간격으로 콜백을 호출한다."""

    def call_every(self, interval: float, callback: Callable[[], None], name: str = "") -> _ThreadJob:
        if interval <= 0:
            raise ValueError(f"interval은 0보다 커야 합니다: {interval}")
        job = _ThreadJob(interval, callback, name)
        job.start()
        return job


# ── 수동 실행기 ──────────────────────────────────────────────────────────────

class _ManualJob:
    def __init__(self, interval: float, callback: Callable[[], None], name: str, created_at: float):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.created_at = created_at
        self.fired = 0
        self._cancelled = False

    @property
    def next_due(self) -> float:
        return self.created_at + (self.fired + 1) * self.interval

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class ManualScheduler:
    """
    ManualClock과 짝을 이루는 실행기.
    advance(seconds)는 시계를 앞으로 옮기면서 도래한 작업을 시각 순서대로 실행한다.
    """

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self._jobs: List[_ManualJob] = []

    def call_every(self, interval: float, callback: Callable[[], None], name: str = "") -> _ManualJob:
        if interval <= 0:
            raise ValueError(f"interval은 0보다 커야 합니다: {interval}")
        job = _ManualJob(interval, callback, name, self.clock.now())
        self._jobs.append(job)
        return job

    @property
    def active_jobs(self) -> List[_ManualJob]:
        return [j for j in self._jobs if not j.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.clock.now() + seconds
        while True:
            job = self._next_due_job(target)
            if job is None:
                break
            self.clock.set(max(self.clock.now(), job.next_due))
            job.fired += 1
            job.callback()
        self.clock.set(target)

    def _next_due_job(self, target: float) -> Optional[_ManualJob]:
        self._jobs = [j for j in self._jobs if not j.cancelled]
        due = [j for j in self._jobs if j.next_due <= target + _EPSILON]
        if not due:
            return None
        return min(due, key=lambda j: j.next_due)
