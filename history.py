# history.py
"""翻譯歷史：有上限、新到舊排列，每次變動都同步寫入 key-value store。"""
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from constants import HISTORY_KEY, HISTORY_LIMIT
from errors import StorageCorruption

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Exchange:
    id: int
    source_text: str
    target_code: str
    translated_text: str
    created_at: str   # ISO 8601 UTC

    def to_dict(self) -> dict:
        # 欄位名稱與舊前端的 localStorage 格式相同
        return {
            "id": self.id,
            "src": self.source_text,
            "target": self.target_code,
            "translated": self.translated_text,
            "at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Exchange":
        if not isinstance(data, dict):
            raise StorageCorruption(f"entry is not an object: {data!r:.80}")
        try:
            return cls(
                id=int(data["id"]),
                source_text=str(data["src"]),
                target_code=str(data["target"]),
                translated_text=str(data.get("translated") or ""),
                created_at=str(data.get("at") or ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StorageCorruption(f"bad entry {data!r:.80}: {e}") from e


# ---------------------------------------------------------------------------
# Key-value stores
# ---------------------------------------------------------------------------

class MemoryStore:
    """不落地的 store（測試、--no-history 用）。"""

    def __init__(self, data: dict | None = None):
        self.data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileStore:
    """
    單一 JSON 檔，內容為 {key: 字串}。
    寫入先寫暫存檔再 os.replace，避免寫到一半留下壞檔。
    """

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)

    def _read_all(self) -> dict:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            log.warning("[History] store %s unreadable, treated as empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            log.warning("[History] store %s has no object root, treated as empty", self.path)
            return {}
        return data

    def get(self, key: str) -> str | None:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".store-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class HistoryLedger:
    """
    新到舊排列的翻譯紀錄，最多 limit 筆（超過時丟棄最舊的）。

    使用方式：
        ledger = HistoryLedger(JsonFileStore("~/.config/voice-translator/store.json"))
        ledger.record("Hello", "hi", "नमस्ते")
        ledger.all()[0].translated_text
    """

    def __init__(self, store, key: str = HISTORY_KEY, limit: int = HISTORY_LIMIT, clock=time.time):
        self._store = store
        self._key = key
        self._limit = limit
        self._clock = clock
        self._entries: list[Exchange] = self._load()
        self._last_id = max((e.id for e in self._entries), default=0)

    def _load(self) -> list[Exchange]:
        raw = self._store.get(self._key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise StorageCorruption("history root is not a list")
            entries = [Exchange.from_dict(item) for item in data]
        except (ValueError, StorageCorruption) as e:
            log.warning("[History] stored history unparsable, starting empty: %s", e)
            return []
        log.info("[History] loaded %d entries", len(entries))
        return entries[:self._limit]

    def _persist(self) -> None:
        try:
            self._store.set(self._key, self.to_json(indent=None))
        except OSError as e:
            log.warning("[History] persist failed: %s", e)

    def next_id(self) -> int:
        """毫秒時間戳；同一毫秒內或時鐘倒退時遞增，保證不重複且單調遞增。"""
        self._last_id = max(int(self._clock() * 1000), self._last_id + 1)
        return self._last_id

    def record(self, source_text: str, target_code: str, translated_text: str) -> Exchange:
        exchange = Exchange(
            id=self.next_id(),
            source_text=source_text,
            target_code=target_code,
            translated_text=translated_text,
            created_at=datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat(),
        )
        self.append(exchange)
        return exchange

    def append(self, exchange: Exchange) -> None:
        self._entries.insert(0, exchange)
        del self._entries[self._limit:]
        self._last_id = max(self._last_id, exchange.id)
        self._persist()

    def all(self) -> list[Exchange]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries = []
        self._persist()
        log.info("[History] cleared")

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps([e.to_dict() for e in self._entries], ensure_ascii=False, indent=indent)

    def export(self, path: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.to_json(indent=2))
        log.info("[History] exported %d entries to %s", len(self._entries), path)

    def __len__(self) -> int:
        return len(self._entries)
