"""
errors.py

시험 엔진 예외 계층.
입력 오류는 ValueError, 환경(저장소) 오류는 RuntimeError 계열로 둔다.
"""


class ExamEngineError(Exception):
    """시험 엔진에서 발생하는 모든 예외의 기반 클래스."""


class InvalidConfigurationError(ExamEngineError, ValueError):
    """시작 파라미터가 잘못됨 (시험 시간 <= 0, 문제 수 <= 0 등)."""


class OutOfRangeError(ExamEngineError, ValueError):
    """문제/보기 인덱스가 허용 범위를 벗어남. 상태는 변경되지 않는다."""


class InvalidStateError(ExamEngineError):
    """현재 단계에서 허용되지 않는 명령 (제출 후 답안 변경 등)."""


class AlreadyFinishedError(InvalidStateError):
    """이미 제출된 시험을 다시 제출하려 함."""


class CorruptStateError(ExamEngineError, ValueError):
    """저장된 세션 스냅샷을 복원할 수 없음."""


class StorageUnavailableError(ExamEngineError, RuntimeError):
    """저장소에 쓰거나 읽을 수 없음. 시험 진행은 계속된다."""
