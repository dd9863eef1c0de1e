"""
main.py — 시험 엔진 데모 실행 진입점

샘플 문제 세트로 한 번의 응시를 시뮬레이션한다.
시계는 수동(ManualClock)으로 돌려 즉시 끝나며, 진행 상태는 JSON 파일에 자동 저장된다.

Run: python main.py [--duration 10] [--negative-marking] [--resume]
"""

import argparse
import logging
import random
import sys

from mock_test_engine.config import LOG_FILE
from mock_test_engine.errors import CorruptStateError
from mock_test_engine.models.result_model import ReviewFilter, ReviewStatus
from mock_test_engine.sample_questions import SAMPLE_QUESTION_SET
from mock_test_engine.services.exam_engine import ExamEngine, ExamListener, ExamPhase, NavigationSignal
from mock_test_engine.services.exam_service import analyze_topics, question_tracking_stats
from mock_test_engine.services.persistence import JsonFileSessionStore
from mock_test_engine.services.scheduler import ManualClock, ManualScheduler
from mock_test_engine.services.timer_service import TimerKind, format_countdown

# ── 로깅 설정 ────────────────────────────────────────────────────────────────
try:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )
except PermissionError:
    # 로그 파일 점유 시 콘솔 출력만 사용
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)


class ConsoleListener(ExamListener):
    def on_question_changed(self, index: int) -> None:
        logger.info(f"문제 {index + 1}번 표시")

    def on_timer_expired(self, kind: TimerKind) -> None:
        if kind is TimerKind.QUESTION:
            logger.info("문항 시간 초과 - Time Up!")
        else:
            logger.warning("시험 시간 종료")


def _play(engine: ExamEngine, scheduler: ManualScheduler, rng: random.Random) -> None:
    """문항마다 몇 초 고민한 뒤 답하거나 건너뛴다."""
    while True:
        question = engine.current_question
        scheduler.advance(rng.uniform(5, 50))
        if engine.phase is not ExamPhase.IN_PROGRESS:
            return  # 시험 시간 만료로 자동 제출됨
        roll = rng.random()
        if roll < 0.6:
            engine.select_option(question.correct_index)
        elif roll < 0.85:
            engine.select_option((question.correct_index + 1) % len(question.options))
        if roll > 0.9:
            engine.toggle_bookmark()
        logger.info(f"남은 시간 {format_countdown(engine.exam_remaining_ms())}")
        if engine.next() is NavigationSignal.SUBMIT_REQUESTED:
            break


def main() -> None:
    parser = argparse.ArgumentParser(description="샘플 문제 세트로 모의고사 한 회를 시뮬레이션합니다.")
    parser.add_argument("--duration", type=float, default=10.0, help="시험 시간 (분, 기본 10)")
    parser.add_argument("--negative-marking", action="store_true", help="오답 감점 적용")
    parser.add_argument("--resume", action="store_true", help="저장된 세션이 있으면 이어서 진행")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    clock = ManualClock()
    scheduler = ManualScheduler(clock)
    store = JsonFileSessionStore()
    engine = ExamEngine(SAMPLE_QUESTION_SET, store=store, listener=ConsoleListener(),
                        clock=clock, scheduler=scheduler)

    logger.info("=== Mock Test Engine Demo Started ===")
    with engine:
        resumed = False
        if args.resume:
            try:
                resumed = engine.resume()
            except CorruptStateError as e:
                logger.warning(f"저장된 세션을 복원할 수 없어 새로 시작합니다: {e}")
                store.clear()
        if not resumed:
            engine.start(args.duration, negative_marking_enabled=args.negative_marking)

        if engine.result is None:
            _play(engine, scheduler, random.Random(args.seed))
            if engine.phase is ExamPhase.IN_PROGRESS:
                engine.submit()

        stats = question_tracking_stats(engine.result)
        logger.info(
            f"점수 {stats['total_score']} / {stats['max_possible_score']} ({stats['score_percentage']}%), "
            f"정답률 {stats['accuracy_percentage']}%"
        )
        analysis = analyze_topics(engine.result)
        for topic in analysis["weaknesses"]:
            logger.info(f"약점 주제: {topic['topic']} ({topic['accuracy'] * 100:.0f}%)")

        view = engine.get_filtered_view(ReviewFilter(status=ReviewStatus.INCORRECT))
        logger.info(f"오답 노트: {len(view)}문항")
        while view.current is not None:
            entry = view.current
            question = SAMPLE_QUESTION_SET[entry.question_number - 1]
            logger.info(f"[{view.position_label}] {question.text} → 정답: {question.options[entry.correct_answer]}")
            if not view.has_next:
                break
            view = engine.navigate_review(1)


if __name__ == "__main__":
    main()
