from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from mock_test_engine.errors import StorageUnavailableError
from mock_test_engine.models.question_model import Question, QuestionSet
from mock_test_engine.services.exam_engine import ExamEngine, ExamListener
from mock_test_engine.services.persistence import InMemorySessionStore
from mock_test_engine.services.scheduler import ManualClock, ManualScheduler
from mock_test_engine.services.timer_service import TimerKind


def build_question_set(
    count: int = 3,
    *,
    set_id: str = "test-set",
    topics: Optional[List[str]] = None,
    difficulties: Optional[List[str]] = None,
    time_limits: Optional[List[Optional[int]]] = None,
) -> QuestionSet:
    """Deterministic question set: every question has 4 options and correct index 0."""

    questions = []
    for idx in range(count):
        questions.append(
            Question(
                id=f"q{idx + 1}",
                text=f"Question #{idx + 1}",
                options=["A", "B", "C", "D"],
                correct_index=0,
                topic=topics[idx] if topics else "General",
                difficulty=difficulties[idx] if difficulties else "medium",
                per_question_time_limit_seconds=time_limits[idx] if time_limits else None,
            )
        )
    return QuestionSet(id=set_id, title="Test set", questions=questions)


class RecordingListener(ExamListener):
    def __init__(self) -> None:
        self.changed: List[int] = []
        self.ticks: List[tuple] = []
        self.expired: List[TimerKind] = []
        self.submitted: List[Any] = []

    def on_question_changed(self, index: int) -> None:
        self.changed.append(index)

    def on_timer_tick(self, kind: TimerKind, remaining_ms: int) -> None:
        self.ticks.append((kind, remaining_ms))

    def on_timer_expired(self, kind: TimerKind) -> None:
        self.expired.append(kind)

    def on_submitted(self, result: Any) -> None:
        self.submitted.append(result)

    def tick_count(self, kind: TimerKind) -> int:
        return sum(1 for k, _ in self.ticks if k is kind)


class FlakyStore(InMemorySessionStore):
    """In-memory store whose save() can be switched to fail."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.fail = False
        self.attempts = 0

    def save(self, snapshot: Dict[str, Any]) -> None:
        self.attempts += 1
        if self.fail:
            raise StorageUnavailableError("disk full")
        super().save(snapshot)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def scheduler(clock: ManualClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def store(clock: ManualClock) -> FlakyStore:
    return FlakyStore(time_fn=clock.now)


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def question_set() -> QuestionSet:
    return build_question_set(3)


@pytest.fixture
def make_engine(clock, scheduler, store):
    """Factory so a test can build a second engine over the same store (reload)."""

    engines: List[ExamEngine] = []

    def _make(qs: Optional[QuestionSet] = None, listener: Optional[ExamListener] = None) -> ExamEngine:
        engine = ExamEngine(
            qs or build_question_set(3),
            store=store,
            listener=listener,
            clock=clock,
            scheduler=scheduler,
        )
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.destroy()


@pytest.fixture
def engine(make_engine, question_set, listener) -> ExamEngine:
    return make_engine(question_set, listener)
