"""
services/exam_service.py

시험 채점 및 결과 분석 비즈니스 로직.
순수 Python 함수로 구성 — UI 코드, 전역 상태 변경 없음.
같은 (문제 세트, 세션) 입력에는 항상 같은 결과를 낸다.
"""

import logging
import math
from typing import Dict, List, Optional

from mock_test_engine.config import (
    CORRECT_SCORE,
    FOCUS_ACCURACY,
    FOCUS_TOPIC_LIMIT,
    NEGATIVE_MARK,
    SLOW_TOPIC_AVG_SECONDS,
    SLOW_TOPIC_LIMIT,
    STRENGTH_ACCURACY,
    WEAKNESS_ACCURACY,
)
from mock_test_engine.models.question_model import QuestionSet
from mock_test_engine.models.result_model import (
    CategoryStats,
    ExamResult,
    QuestionCounts,
    QuestionResult,
    QuestionStatus,
)
from mock_test_engine.models.session_state import ExamState

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """0.5는 항상 위로 (음수는 0 방향으로) 반올림. 내장 round()의 은행가 반올림과 다르다."""
    return int(math.floor(value + 0.5))


def percentage(count: float, total: int) -> int:
    return round_half_up(count / total * 100) if total > 0 else 0


def score_contribution(status: QuestionStatus, negative_marking: bool,
                       negative_mark: float = NEGATIVE_MARK) -> float:
    """
    문항 하나의 점수 기여도.

    - 정답: +1
    - 오답: 감점 적용 시 -negative_mark, 아니면 0
    - 미응답: 0 (건너뛴 문제는 감점 없음)
    """
    if status is QuestionStatus.CORRECT:
        return CORRECT_SCORE
    if status is QuestionStatus.INCORRECT and negative_marking:
        return -negative_mark
    return 0.0


def calculate_result(
    question_set: QuestionSet,
    state: ExamState,
    negative_mark: float = NEGATIVE_MARK,
) -> ExamResult:
    """
    사용자 답안을 채점하여 ExamResult를 반환한다.

    총점은 음수가 될 수 있으며 0으로 자르지 않는다 (찍기의 실제 비용을 보여주기 위함).

    Args:
        question_set: 시험에 사용된 문제 세트.
        state:        답안이 기록된 세션 (제출 전이어도 채점은 가능).
        negative_mark: 오답 1개당 감점.

    Returns:
        문항별 결과, 주제/난이도별 집계, 문항 수 집계가 담긴 ExamResult.
    """
    questions = question_set.questions
    total = len(questions)
    if total != state.question_count:
        raise ValueError(
            f"문제 세트 크기({total})와 세션 문제 수({state.question_count})가 다릅니다."
        )

    per_question: List[QuestionResult] = []
    topic_totals: Dict[str, Dict[str, int]] = {}
    difficulty_totals: Dict[str, Dict[str, int]] = {}
    tally = {"total": total, "answered": 0, "correct": 0, "incorrect": 0, "unanswered": 0}
    score = 0.0

    for i, q in enumerate(questions):
        user_answer = state.answers[i]
        is_answered = user_answer is not None
        is_correct = is_answered and user_answer == q.correct_index
        time_spent = state.time_spent_seconds[i]

        if not is_answered:
            status = QuestionStatus.UNANSWERED
            tally["unanswered"] += 1
        elif is_correct:
            status = QuestionStatus.CORRECT
            tally["answered"] += 1
            tally["correct"] += 1
        else:
            status = QuestionStatus.INCORRECT
            tally["answered"] += 1
            tally["incorrect"] += 1

        contribution = score_contribution(status, state.negative_marking_enabled, negative_mark)
        score += contribution

        per_question.append(QuestionResult(
            question_id=q.id,
            question_number=i + 1,
            topic=q.topic,
            difficulty=q.difficulty,
            user_answer=user_answer,
            correct_answer=q.correct_index,
            status=status,
            time_spent_seconds=time_spent,
            score_contribution=contribution,
        ))

        _accumulate(topic_totals.setdefault(q.topic, _empty_totals()), status, time_spent)
        _accumulate(difficulty_totals.setdefault(q.difficulty, _empty_totals()), status, time_spent)

    counts = QuestionCounts(**tally)

    if not counts.is_consistent():
        # 집계 버그: 사용자 오류가 아니므로 예외 대신 기록만 남긴다
        logger.error(f"문항 수 집계 검증 실패: {counts.model_dump()}")

    score = round(score, 2)
    end = state.test_end if state.test_end is not None else state.test_start
    result = ExamResult(
        score=score,
        score_percentage=percentage(score, total),
        total_questions=total,
        total_time_ms=int(round((end - state.test_start) * 1000)),
        negative_marking_enabled=state.negative_marking_enabled,
        per_question=tuple(per_question),
        topic_stats={k: CategoryStats(**v) for k, v in topic_totals.items()},
        difficulty_stats={k: CategoryStats(**v) for k, v in difficulty_totals.items()},
        question_counts=counts,
    )

    logger.info(
        f"채점 완료: 점수 {score} / {total}, 정답 {counts.correct}, 오답 {counts.incorrect}, "
        f"미응답 {counts.unanswered}, 감점 {'적용' if state.negative_marking_enabled else '미적용'}"
    )
    return result


def _empty_totals() -> Dict[str, int]:
    return {"total": 0, "attempted": 0, "correct": 0, "incorrect": 0, "unanswered": 0, "time_total": 0}


def _accumulate(totals: Dict[str, int], status: QuestionStatus, time_spent: int) -> None:
    totals["total"] += 1
    if status is QuestionStatus.UNANSWERED:
        totals["unanswered"] += 1
    else:
        totals["attempted"] += 1
        if status is QuestionStatus.CORRECT:
            totals["correct"] += 1
        else:
            totals["incorrect"] += 1
    totals["time_total"] += time_spent


def question_tracking_stats(result: ExamResult, negative_mark: float = NEGATIVE_MARK) -> Dict[str, object]:
    """
    결과 화면 통계 카드용 수치.

    Returns:
        {"total", "answered", "correct", "incorrect", "unanswered",
         "answered_percentage", ..., "accuracy_percentage",
         "positive_score", "negative_score", "total_score", "max_possible_score",
         "score_percentage", "avg_time_per_answered_ms"}
    """
    c = result.question_counts
    negative = round(-c.incorrect * negative_mark, 2) if result.negative_marking_enabled else 0.0
    avg_time: Optional[int] = None
    if c.answered > 0 and result.total_time_ms > 0:
        avg_time = round_half_up(result.total_time_ms / c.answered)

    return {
        "total": c.total,
        "answered": c.answered,
        "correct": c.correct,
        "incorrect": c.incorrect,
        "unanswered": c.unanswered,
        "answered_percentage": percentage(c.answered, c.total),
        "correct_percentage": percentage(c.correct, c.total),
        "incorrect_percentage": percentage(c.incorrect, c.total),
        "unanswered_percentage": percentage(c.unanswered, c.total),
        "accuracy_percentage": percentage(c.correct, c.answered),
        "positive_score": c.correct * CORRECT_SCORE,
        "negative_score": negative,
        "total_score": result.score,
        "max_possible_score": c.total * CORRECT_SCORE,
        "score_percentage": result.score_percentage,
        "avg_time_per_answered_ms": avg_time,
    }


def analyze_topics(result: ExamResult) -> Dict[str, List[Dict[str, object]]]:
    """
    주제별 강점 / 약점 분석.

    시도한 문항이 있는 주제만 대상으로 정답률 내림차순 정렬 후:
      - strengths:    정답률 > 80%
      - weaknesses:   정답률 < 60%
      - focus:        가장 약한 3개 주제 중 정답률 < 70%
      - slow:         평균 풀이 시간 > 90초 (최대 2개)
    """
    topics = [
        {
            "topic": topic,
            "accuracy": stats.correct / stats.attempted,
            "avg_time": stats.time_total / stats.attempted,
            "score": percentage(stats.correct, stats.total),
        }
        for topic, stats in result.topic_stats.items()
        if stats.attempted > 0
    ]
    # 정렬은 안정적이므로 동률이면 출제 순서를 유지한다
    topics.sort(key=lambda t: t["accuracy"], reverse=True)

    weakest = list(reversed(topics[-FOCUS_TOPIC_LIMIT:]))
    return {
        "topics": topics,
        "strengths": [t for t in topics if t["accuracy"] > STRENGTH_ACCURACY],
        "weaknesses": [t for t in topics if t["accuracy"] < WEAKNESS_ACCURACY],
        "focus": [t for t in weakest if t["accuracy"] < FOCUS_ACCURACY],
        "slow": [t for t in topics if t["avg_time"] > SLOW_TOPIC_AVG_SECONDS][:SLOW_TOPIC_LIMIT],
    }
