import asyncio

import pytest

from capture import CaptureHandle, RecognitionError, TranscriptSource
from errors import TranslationFailure, Unsupported
from history import HistoryLedger, MemoryStore
from pipeline import PipelineController


async def settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_until(predicate, rounds: int = 500) -> bool:
    for _ in range(rounds):
        if predicate():
            return True
        await asyncio.sleep(0)
    return predicate()


class StubTranscriptSource(TranscriptSource):
    """
    每次 begin() 取下一段腳本播放（字串 → FinalTranscript，RecognitionError → 錯誤），播完送 Ended。
    腳本用完後的 session 保持開啟，由測試自己操作 handle。
    """

    def __init__(self, scripts=None, unsupported: bool = False):
        self.scripts = list(scripts or [])
        self.unsupported = unsupported
        self.handles: list[CaptureHandle] = []
        self.begin_calls = 0
        self.overlap = False

    def begin(self, language_hint: str) -> CaptureHandle:
        self.begin_calls += 1
        if self.unsupported:
            raise Unsupported("no microphone")
        if any(h.active for h in self.handles):
            self.overlap = True
        handle = CaptureHandle(language_hint)
        self.handles.append(handle)
        if self.scripts:
            asyncio.get_running_loop().create_task(self._play(handle, self.scripts.pop(0)))
        return handle

    async def _play(self, handle: CaptureHandle, script) -> None:
        for item in script:
            await asyncio.sleep(0)
            if isinstance(item, RecognitionError):
                handle.emit_error(item.reason)
            else:
                handle.emit_transcript(item)
        await asyncio.sleep(0)
        handle.end()

    def cancel(self, handle: CaptureHandle) -> None:
        handle.cancel()
        asyncio.get_running_loop().call_soon(handle.end)


class FakeTranslator:
    """hold=True 時每個請求都等測試呼叫 release()。"""

    def __init__(self, fail: bool = False, hold: bool = False):
        self.fail = fail
        self.hold = hold
        self.calls: list[tuple[str, str]] = []
        self.pending: list[asyncio.Future] = []

    async def translate(self, text: str, target: str) -> str:
        self.calls.append((text, target))
        if self.hold:
            fut = asyncio.get_running_loop().create_future()
            self.pending.append(fut)
            await fut
        if self.fail:
            raise TranslationFailure("service down")
        return f"{target}:{text}"

    def release(self, index: int) -> None:
        self.pending[index].set_result(None)


class RecordingRenderer:
    def __init__(self):
        self.spoken: list[tuple[str, str]] = []
        self.closed = False

    def speak(self, text: str, locale: str) -> None:
        if text:
            self.spoken.append((text, locale))

    def shutdown(self) -> None:
        self.closed = True


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def ledger(store):
    return HistoryLedger(store)


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def make_controller(ledger, renderer):
    def _make(source=None, translator=None, **kwargs):
        return PipelineController(
            source or StubTranscriptSource(),
            translator or FakeTranslator(),
            renderer,
            ledger,
            **kwargs,
        )
    return _make
