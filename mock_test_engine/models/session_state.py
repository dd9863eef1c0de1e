"""
models/session_state.py

시험 진행 상태를 담는 OMR 카드 모델.
Pydantic BaseModel 기반 — 직렬화/역직렬화 및 타입 안전성 확보.
UI 코드, 타이머, 저장소 접근 없음.
"""

import time
from typing import Any, Annotated, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from mock_test_engine.errors import (
    AlreadyFinishedError,
    CorruptStateError,
    InvalidConfigurationError,
    InvalidStateError,
    OutOfRangeError,
)

_SNAPSHOT_LISTS = ("answers", "bookmarked", "timeSpentSeconds")


class ExamState(BaseModel):
    """
    사용자의 시험 세션 전체 상태를 표현하는 모델.

    Attributes:
        question_set_id:          문제 세트 식별자 (복원 시 세트 일치 확인용).
        question_count:           문제 수 N. 모든 리스트의 길이.
        test_start:               시험 시작 시각 (Unix timestamp).
        test_end:                 제출 시각. 제출 전에는 None, 한 번만 설정된다.
        current_question:         현재 풀고 있는 문제의 인덱스 (0-based).
        answers:                  문항별 선택한 보기 인덱스. 미응답은 None.
        bookmarked:               문항별 북마크 여부.
        time_spent_seconds:       문항별 누적 풀이 시간 (초).
        test_duration_minutes:    시험 제한 시간 (분).
        negative_marking_enabled: 오답 감점 적용 여부.
        enhanced_timer_enabled:   향상된 타이머 표시 여부 (채점과 무관).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    question_set_id: Optional[str] = Field(
        default=None,
        description="문제 세트 식별자"
    )
    question_count: int = Field(
        ...,
        gt=0,
        description="문제 수"
    )
    test_start: float = Field(
        default_factory=time.time,
        description="시험 시작 시각 (Unix timestamp, time.time() 기준)"
    )
    test_end: Optional[float] = Field(
        default=None,
        description="제출 시각. 제출 전에는 None"
    )
    current_question: int = Field(
        default=0,
        ge=0,
        description="현재 풀고 있는 문제 인덱스 (0-based)"
    )
    answers: List[Optional[Annotated[int, Field(ge=0)]]] = Field(
        default_factory=list,
        description="문항별 선택 보기 인덱스. None이면 미응답"
    )
    bookmarked: List[bool] = Field(
        default_factory=list,
        description="문항별 북마크 여부"
    )
    time_spent_seconds: List[Annotated[int, Field(ge=0)]] = Field(
        default_factory=list,
        description="문항별 누적 풀이 시간 (초)"
    )
    test_duration_minutes: float = Field(
        ...,
        gt=0,
        description="시험 제한 시간 (분)"
    )
    negative_marking_enabled: bool = Field(
        default=False,
        description="오답 감점 적용 여부"
    )
    enhanced_timer_enabled: bool = Field(
        default=False,
        description="향상된 타이머 표시 여부"
    )

    @model_validator(mode='after')
    def validate_lengths(self) -> 'ExamState':
        """
        모든 문항별 리스트는 정확히 question_count 길이여야 하고,
        current_question은 [0, N) 범위 안에 있어야 한다.
        """
        n = self.question_count
        for name in ("answers", "bookmarked", "time_spent_seconds"):
            if len(getattr(self, name)) != n:
                raise ValueError(f"{name} 길이({len(getattr(self, name))})가 문제 수({n})와 다릅니다.")
        if self.current_question >= n:
            raise ValueError(f"current_question({self.current_question})이 범위를 벗어납니다.")
        if self.test_end is not None and self.test_end < self.test_start:
            raise ValueError("test_end가 test_start보다 빠릅니다.")
        return self

    # ── 생성 ─────────────────────────────────────────────────────────────

    @classmethod
    def start(
        cls,
        question_count: int,
        duration_minutes: float,
        *,
        negative_marking_enabled: bool = False,
        enhanced_timer_enabled: bool = False,
        question_set_id: Optional[str] = None,
        now: Optional[float] = None,
    ) -> 'ExamState':
        """새 시험 세션을 기본값으로 초기화한다. test_start = now."""
        if question_count <= 0:
            raise InvalidConfigurationError(f"문제 수는 1 이상이어야 합니다: {question_count}")
        if duration_minutes <= 0:
            raise InvalidConfigurationError(f"시험 시간은 0보다 커야 합니다: {duration_minutes}")

        return cls(
            question_set_id=question_set_id,
            question_count=question_count,
            test_start=time.time() if now is None else now,
            answers=[None] * question_count,
            bookmarked=[False] * question_count,
            time_spent_seconds=[0] * question_count,
            test_duration_minutes=duration_minutes,
            negative_marking_enabled=negative_marking_enabled,
            enhanced_timer_enabled=enhanced_timer_enabled,
        )

    # ── 조회 ─────────────────────────────────────────────────────────────

    @property
    def is_finished(self) -> bool:
        return self.test_end is not None

    @property
    def answered_count(self) -> int:
        return sum(1 for a in self.answers if a is not None)

    @property
    def unanswered_count(self) -> int:
        return self.question_count - self.answered_count

    def bookmarked_indices(self) -> List[int]:
        return [i for i, flag in enumerate(self.bookmarked) if flag]

    def question_status(self, index: int) -> Dict[str, bool]:
        """문제 번호 그리드 표시용 상태 플래그."""
        self._check_index(index)
        return {
            "current": index == self.current_question,
            "answered": self.answers[index] is not None,
            "unanswered": self.answers[index] is None,
            "bookmarked": self.bookmarked[index],
        }

    # ── 명령 ─────────────────────────────────────────────────────────────

    def set_current_question(self, index: int) -> None:
        self._check_open()
        self._check_index(index)
        self.current_question = index

    def set_answer(self, index: int, option_index: int) -> None:
        self._check_open()
        self._check_index(index)
        if option_index < 0:
            raise OutOfRangeError(f"보기 인덱스는 0 이상이어야 합니다: {option_index}")
        self.answers[index] = option_index

    def clear_answer(self, index: int) -> None:
        self._check_open()
        self._check_index(index)
        self.answers[index] = None

    def toggle_bookmark(self, index: int) -> bool:
        """북마크를 뒤집고 새 값을 반환한다."""
        self._check_open()
        self._check_index(index)
        self.bookmarked[index] = not self.bookmarked[index]
        return self.bookmarked[index]

    def update_time_spent(self, index: int, seconds: int) -> None:
        """
        누적 풀이 시간을 덮어쓴다 (더하지 않음).
        호출자가 해당 문항의 누적 경과 시간을 넘겨야 재방문 시 중복 집계가 없다.
        """
        self._check_open()
        self._check_index(index)
        if seconds < 0:
            raise OutOfRangeError(f"풀이 시간은 음수일 수 없습니다: {seconds}")
        self.time_spent_seconds[index] = int(seconds)

    def finish(self, now: Optional[float] = None) -> None:
        """제출 시각을 기록한다. 두 번째 호출은 AlreadyFinishedError."""
        if self.test_end is not None:
            raise AlreadyFinishedError("이미 제출된 시험입니다.")
        self.test_end = max(self.test_start, time.time() if now is None else now)

    # ── 직렬화 ───────────────────────────────────────────────────────────

    def serialize(self) -> Dict[str, Any]:
        """저장소에 넘길 camelCase 스냅샷."""
        return self.model_dump(by_alias=True)

    @classmethod
    def deserialize(cls, payload: Mapping[str, Any]) -> 'ExamState':
        """
        스냅샷을 ExamState로 복원한다.

        - 리스트 길이가 questionCount와 다르면 CorruptStateError
        - currentQuestion은 범위 안으로 보정
        - 음수 풀이 시간은 0으로 보정
        """
        if not isinstance(payload, Mapping):
            raise CorruptStateError("스냅샷 형식이 올바르지 않습니다.")

        data = dict(payload)
        try:
            count = int(data["questionCount"])
        except (KeyError, TypeError, ValueError) as e:
            raise CorruptStateError("questionCount가 없거나 올바르지 않습니다.") from e
        if count <= 0:
            raise CorruptStateError(f"questionCount가 올바르지 않습니다: {count}")

        for key in _SNAPSHOT_LISTS:
            values = data.get(key)
            if not isinstance(values, list):
                raise CorruptStateError(f"{key} 항목이 없거나 리스트가 아닙니다.")
            if len(values) != count:
                raise CorruptStateError(
                    f"{key} 길이({len(values)})가 questionCount({count})와 다릅니다."
                )

        data["timeSpentSeconds"] = [
            max(0, v) if isinstance(v, (int, float)) and not isinstance(v, bool) else v
            for v in data["timeSpentSeconds"]
        ]

        current = data.get("currentQuestion", 0)
        if not isinstance(current, int) or isinstance(current, bool):
            current = 0
        data["currentQuestion"] = max(0, min(current, count - 1))

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise CorruptStateError(f"스냅샷 검증 실패: {e.error_count()}개 오류") from e

    # ── 내부 검사 ────────────────────────────────────────────────────────

    def _check_open(self) -> None:
        if self.test_end is not None:
            raise InvalidStateError("제출된 시험은 변경할 수 없습니다.")

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.question_count:
            raise OutOfRangeError(f"문제 인덱스가 범위를 벗어납니다: {index} (0..{self.question_count - 1})")
