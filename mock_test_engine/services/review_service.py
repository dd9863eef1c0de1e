"""
services/review_service.py

오답 노트 / 해설 화면용 필터 뷰.
결과(ExamResult)를 변경하지 않고 항상 새 FilteredView를 만든다.
"""

import logging
from typing import List, Optional

from mock_test_engine.models.result_model import ExamResult, FilteredView, ReviewFilter

logger = logging.getLogger(__name__)


def project(
    result: ExamResult,
    review_filter: Optional[ReviewFilter] = None,
    selected_question_id: Optional[str] = None,
) -> FilteredView:
    """
    필터 조건(상태 AND 주제 AND 난이도)에 맞는 문항만 원래 순서대로 모은다.

    selected_question_id가 새 뷰에 남아 있으면 커서가 그 문항을 따라가고,
    빠졌거나 없으면 커서는 0으로 초기화된다.
    """
    review_filter = review_filter or ReviewFilter()
    entries = tuple(e for e in result.per_question if review_filter.matches(e))

    cursor = 0
    if selected_question_id is not None:
        for i, entry in enumerate(entries):
            if entry.question_id == selected_question_id:
                cursor = i
                break

    return FilteredView(review_filter=review_filter, entries=entries, cursor=cursor)


def navigate(view: FilteredView, direction: int) -> FilteredView:
    """
    커서를 ±1 이동. 양 끝을 넘어가는 이동은 아무 일도 하지 않는다 (순환 없음).
    """
    if direction not in (-1, 1):
        raise ValueError(f"direction은 -1 또는 1이어야 합니다: {direction}")
    new_cursor = view.cursor + direction
    if not 0 <= new_cursor < len(view.entries):
        return view
    return view.model_copy(update={"cursor": new_cursor})


def select(view: FilteredView, position: int) -> FilteredView:
    """목록에서 특정 위치를 직접 선택."""
    if not 0 <= position < len(view.entries):
        return view
    return view.model_copy(update={"cursor": position})


def jump_to_question(result: ExamResult, view: FilteredView, question_number: int) -> FilteredView:
    """
    1-based 문제 번호로 이동.

    현재 필터에 해당 문항이 없으면 필터를 '전체'로 초기화한 뒤 다시 찾는다.
    그래도 없으면 초기화된 뷰의 첫 문항을 보여준다.
    """
    position = _find(view, question_number)
    if position is not None:
        return select(view, position)

    logger.info(f"문제 {question_number}번이 현재 필터에 없어 필터를 초기화합니다.")
    reset_view = project(result, ReviewFilter())
    position = _find(reset_view, question_number)
    if position is None:
        logger.warning(f"문제 {question_number}번을 찾을 수 없습니다.")
        return reset_view
    return select(reset_view, position)


def _find(view: FilteredView, question_number: int) -> Optional[int]:
    for i, entry in enumerate(view.entries):
        if entry.question_number == question_number:
            return i
    return None


def available_topics(result: ExamResult) -> List[str]:
    """주제 필터 드롭다운 항목."""
    return list(result.topic_stats.keys())


def available_difficulties(result: ExamResult) -> List[str]:
    return list(result.difficulty_stats.keys())
