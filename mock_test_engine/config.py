import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


# 경로 설정
DATA_DIR = os.getenv("DATA_DIR", os.path.join(BASE_DIR, "data"))
SESSION_FILE = os.path.join(DATA_DIR, "exam_session.json")
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 타이머 설정
EXAM_TICK_INTERVAL_SECONDS = _env_float("EXAM_TICK_INTERVAL_SECONDS", 1.0)
QUESTION_TICK_INTERVAL_SECONDS = 0.1        # 향상된 타이머: 진행 바를 부드럽게
BASIC_QUESTION_TICK_INTERVAL_SECONDS = 1.0  # 기본 타이머
QUESTION_TIME_LIMIT_SECONDS = _env_int("QUESTION_TIME_LIMIT_SECONDS", 40)
DEFAULT_TEST_DURATION_MINUTES = _env_float("DEFAULT_TEST_DURATION_MINUTES", 60.0)

# 경고 구간 (밀리초)
QUESTION_WARNING_MS = 20_000
QUESTION_DANGER_MS = 10_000
EXAM_WARNING_MS = 10 * 60 * 1000
EXAM_DANGER_MS = 5 * 60 * 1000

# 사용자 지정 시험 시간 허용 범위
CUSTOM_MINUTES_MIN = 1
CUSTOM_MINUTES_MAX = 300
CUSTOM_SECONDS_MAX = 59

# 자동 저장 설정
AUTO_SAVE_INTERVAL_SECONDS = _env_float("AUTO_SAVE_INTERVAL_SECONDS", 5.0)
SESSION_TTL = _env_int("SESSION_TTL", 3600)  # 인메모리 저장소 만료 (초)

# 채점 설정
CORRECT_SCORE = 1.0
NEGATIVE_MARK = 0.33
NEGATIVE_MARKING_DEFAULT = _env_bool("NEGATIVE_MARKING_DEFAULT", False)

# 결과 분석 기준
STRENGTH_ACCURACY = 0.8
WEAKNESS_ACCURACY = 0.6
FOCUS_ACCURACY = 0.7
FOCUS_TOPIC_LIMIT = 3
SLOW_TOPIC_AVG_SECONDS = 90
SLOW_TOPIC_LIMIT = 2
