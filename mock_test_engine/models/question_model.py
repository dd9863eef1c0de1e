from typing import Optional, List, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mock_test_engine.errors import InvalidConfigurationError


class Question(BaseModel):
    """
    모의고사 객관식 / OX 문제 모델
    Pydantic v2 적용. 수집(ingestion) 단계에서 이미 정규화된 데이터를 가정한다.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        description="문제 고유 식별자"
    )
    text: str = Field(
        ...,
        min_length=1,
        description="발문/문제 내용"
    )
    options: List[str] = Field(
        ...,
        description="보기 리스트 (OX 문제는 2개)"
    )
    correct_index: int = Field(
        ...,
        ge=0,
        description="정답 보기의 인덱스 (0-based)"
    )
    points: float = Field(
        default=1.0,
        description="배점 (표시용, 채점은 문항당 +1 고정)"
    )
    topic: str = Field(
        default="General",
        description="단원/주제. 집계 시 대소문자를 구분한다."
    )
    difficulty: str = Field(
        default="medium",
        description="난이도 라벨"
    )
    solution: str = Field(
        default="",
        description="해설"
    )
    per_question_time_limit_seconds: Optional[int] = Field(
        None,
        gt=0,
        description="문항별 제한 시간 (없으면 기본값 사용)"
    )
    pyq_year: Optional[int] = Field(
        None,
        description="기출 연도 (기출 문제가 아니면 None)"
    )

    @field_validator('options')
    @classmethod
    def validate_options_length(cls, v: List[str]) -> List[str]:
        """
        검증 로직 1: 보기는 최소 2개 이상이어야 한다.
        """
        if len(v) < 2:
            raise ValueError("보기(options)는 최소 2개 이상의 항목이 필요합니다.")
        return v

    @model_validator(mode='after')
    def validate_correct_index(self) -> 'Question':
        """
        검증 로직 2: 정답 인덱스는 보기 리스트 범위 안에 있어야 한다.
        """
        if self.correct_index >= len(self.options):
            raise ValueError(
                f"정답 인덱스({self.correct_index})가 보기 개수({len(self.options)})를 벗어납니다."
            )
        return self


class QuestionSet(BaseModel):
    """
    한 번의 시험에 사용되는 문제 묶음.
    시험 도중에는 변경되지 않는다.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="문제 세트 식별자 (스냅샷의 questionSetId)")
    title: str = Field(default="", description="표시용 제목")
    questions: List[Question] = Field(..., min_length=1)

    def __len__(self) -> int:
        return len(self.questions)

    def __getitem__(self, index: int) -> Question:
        return self.questions[index]

    def topics(self) -> List[str]:
        """등장 순서대로 중복 없는 주제 목록."""
        return list(dict.fromkeys(q.topic for q in self.questions))

    def difficulties(self) -> List[str]:
        """등장 순서대로 중복 없는 난이도 목록."""
        return list(dict.fromkeys(q.difficulty for q in self.questions))

    def pyq_only(self) -> 'QuestionSet':
        """기출 문제만 모은 새 세트 (기출 모드). 스냅샷이 섞이지 않도록 id를 바꾼다."""
        pyq = [q for q in self.questions if q.pyq_year]
        if not pyq:
            raise InvalidConfigurationError(f"기출 문제가 없는 세트입니다: {self.id}")
        return QuestionSet(id=f"{self.id}-pyq", title=self.title, questions=pyq)

    def pyq_stats(self) -> Dict[str, object]:
        """기출 문제 비율과 출제 연도."""
        pyq = [q for q in self.questions if q.pyq_year]
        total = len(self.questions)
        return {
            "total": len(pyq),
            "percentage": round(len(pyq) / total * 100) if total else 0,
            "years": sorted({q.pyq_year for q in pyq}),
        }
