"""
services/persistence.py — 세션 스냅샷 저장소 (Persistence Port)

엔진은 SessionStore 프로토콜만 알고, 실제 저장 방식은 주입받는다.
  - InMemorySessionStore : 프로세스 메모리 (TTL 경과 시 자동 만료)
  - JsonFileSessionStore : 로컬 JSON 파일 (원자적 교체 쓰기)

save()가 실패하면 StorageUnavailableError를 던진다. 엔진은 이를 기록만 하고
다음 자동 저장 주기에 다시 시도한다.
"""

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

from mock_test_engine.config import SESSION_FILE, SESSION_TTL
from mock_test_engine.errors import CorruptStateError, StorageUnavailableError

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Any]


class SessionStore(Protocol):
    def save(self, snapshot: Snapshot) -> None:
        """스냅샷 저장. 실패 시 StorageUnavailableError."""
        ...

    def load(self) -> Optional[Snapshot]:
        """저장된 스냅샷. 없으면 None."""
        ...

    def clear(self) -> None:
        ...


class InMemorySessionStore:
    """
    메모리 저장소. 마지막 저장 후 ttl초가 지나면 없는 것으로 본다.
    """

    def __init__(self, ttl: int = SESSION_TTL, time_fn: Callable[[], float] = time.time):
        self._lock = threading.Lock()
        self._snapshot: Optional[Snapshot] = None
        self._timestamp: float = 0.0
        self._ttl = ttl
        self._time = time_fn

    def save(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._snapshot = json.loads(json.dumps(snapshot))  # 깊은 복사
            self._timestamp = self._time()

    def load(self) -> Optional[Snapshot]:
        with self._lock:
            if self._snapshot is None:
                return None
            if self._time() - self._timestamp > self._ttl:
                logger.info("저장된 세션이 만료되어 폐기합니다.")
                self._snapshot = None
                return None
            return json.loads(json.dumps(self._snapshot))

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None
            self._timestamp = 0.0


class JsonFileSessionStore:
    """
    스냅샷을 JSON 파일 하나에 저장한다.
    임시 파일에 쓴 뒤 교체하므로 쓰는 도중 중단되어도 기존 파일은 깨지지 않는다.
    """

    def __init__(self, path: str = SESSION_FILE):
        self.path = Path(path)
        self._lock = threading.Lock()

    def save(self, snapshot: Snapshot) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp.write_text(json.dumps(snapshot, ensure_ascii=False, indent=2), encoding="utf-8")
                os.replace(tmp, self.path)
            except (OSError, TypeError, ValueError) as e:
                raise StorageUnavailableError(f"세션 저장 실패: {self.path}: {e}") from e

    def load(self) -> Optional[Snapshot]:
        with self._lock:
            if not self.path.exists():
                return None
            try:
                raw = self.path.read_text(encoding="utf-8")
            except OSError as e:
                raise StorageUnavailableError(f"세션 파일을 읽을 수 없습니다: {self.path}: {e}") from e
        try:
            data = json.loads(raw or "null")
        except json.JSONDecodeError as e:
            raise CorruptStateError(f"세션 파일이 손상되었습니다: {self.path}") from e
        if data is None:
            return None
        if not isinstance(data, dict):
            raise CorruptStateError(f"세션 파일 형식이 올바르지 않습니다: {self.path}")
        return data

    def clear(self) -> None:
        with self._lock:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                raise StorageUnavailableError(f"세션 파일 삭제 실패: {self.path}: {e}") from e
