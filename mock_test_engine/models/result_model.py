"""
models/result_model.py

채점 결과 및 오답 노트(필터 뷰) 모델.
채점이 끝난 뒤에는 변경되지 않으므로 모두 frozen.
"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class QuestionStatus(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    UNANSWERED = "unanswered"


class ReviewStatus(str, Enum):
    """오답 노트 상태 필터. ANSWERED는 CORRECT + INCORRECT."""
    CORRECT = "correct"
    INCORRECT = "incorrect"
    UNANSWERED = "unanswered"
    ANSWERED = "answered"


class QuestionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    question_number: int = Field(..., ge=1, description="1-based 문제 번호")
    topic: str
    difficulty: str
    user_answer: Optional[int] = None
    correct_answer: int
    status: QuestionStatus
    time_spent_seconds: int = 0
    score_contribution: float = 0.0

    @property
    def is_answered(self) -> bool:
        return self.status is not QuestionStatus.UNANSWERED

    @property
    def is_correct(self) -> bool:
        return self.status is QuestionStatus.CORRECT


class CategoryStats(BaseModel):
    """주제별 / 난이도별 집계."""
    model_config = ConfigDict(frozen=True)

    total: int = 0
    attempted: int = 0
    correct: int = 0
    incorrect: int = 0
    unanswered: int = 0
    time_total: int = 0

    @property
    def accuracy(self) -> float:
        return self.correct / self.attempted if self.attempted else 0.0


class QuestionCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    answered: int = 0
    correct: int = 0
    incorrect: int = 0
    unanswered: int = 0

    def is_consistent(self) -> bool:
        return (
            self.answered + self.unanswered == self.total
            and self.correct + self.incorrect == self.answered
        )


class ExamResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float
    score_percentage: int
    total_questions: int
    total_time_ms: int
    negative_marking_enabled: bool = False
    per_question: Tuple[QuestionResult, ...]
    topic_stats: Mapping[str, CategoryStats]
    difficulty_stats: Mapping[str, CategoryStats]
    question_counts: QuestionCounts

    @field_validator("topic_stats", "difficulty_stats")
    @classmethod
    def freeze_rollups(cls, v: Mapping[str, CategoryStats]) -> Mapping[str, CategoryStats]:
        """집계 딕셔너리는 읽기 전용 뷰로 보관한다."""
        return MappingProxyType(dict(v))

    @field_serializer("topic_stats", "difficulty_stats", mode="wrap")
    def dump_rollups(self, v: Mapping[str, CategoryStats], handler: Any) -> Any:
        return handler(dict(v))


class ReviewFilter(BaseModel):
    """
    오답 노트 필터 조건. None인 항목은 '전체'.
    세 조건은 AND로 결합된다.
    """
    model_config = ConfigDict(frozen=True)

    status: Optional[ReviewStatus] = None
    topic: Optional[str] = None
    difficulty: Optional[str] = None

    def matches(self, entry: QuestionResult) -> bool:
        if self.status is ReviewStatus.ANSWERED:
            if not entry.is_answered:
                return False
        elif self.status is not None and entry.status.value != self.status.value:
            return False
        if self.topic is not None and entry.topic != self.topic:
            return False
        if self.difficulty is not None and entry.difficulty != self.difficulty:
            return False
        return True


class FilteredView(BaseModel):
    """
    결과의 부분 목록 + 커서. 필터가 바뀌면 새로 만든다.
    """
    model_config = ConfigDict(frozen=True)

    review_filter: ReviewFilter = Field(default_factory=ReviewFilter)
    entries: Tuple[QuestionResult, ...] = ()
    cursor: int = 0

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def current(self) -> Optional[QuestionResult]:
        if not self.entries:
            return None
        return self.entries[self.cursor]

    @property
    def has_previous(self) -> bool:
        return self.cursor > 0

    @property
    def has_next(self) -> bool:
        return self.cursor < len(self.entries) - 1

    @property
    def position_label(self) -> str:
        if not self.entries:
            return "0 of 0"
        return f"{self.cursor + 1} of {len(self.entries)}"
