# pipeline.py
"""
語音翻譯 pipeline controller：擷取 → 翻譯 → 顯示 / 歷史 / 朗讀，以及 live mode 的自動重啟。

全部狀態放在 PipelineState，只在 event loop thread 上讀寫，不需要 lock。

狀態機：
    Idle ──start_once──▶ ListeningOnce ──session 結束──▶ Idle
    Idle / ListeningOnce ──start_live──▶ ListeningContinuous ──session 正常結束──▶ 重新擷取
    任何狀態 ──stop──▶ Idle；擷取錯誤 ──▶ Idle（live mode 也不重啟）

翻譯競態：每次 dispatch 取得遞增的 sequence，並在 dispatch 當下快照目標語言。
每一筆都寫入歷史（完成順序）；顯示與朗讀只接受比已提交者更新的 sequence。
"""
import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Callable

from capture import CaptureHandle, Ended, FinalTranscript, RecognitionError, TranscriptSource
from errors import Unsupported
from history import Exchange, HistoryLedger
from languages import LanguageTag, find_language

log = logging.getLogger(__name__)


class SessionMode(enum.Enum):
    IDLE = "idle"
    LISTENING_ONCE = "listening-once"
    LISTENING_CONTINUOUS = "listening-continuous"


@dataclass
class PipelineState:
    input_language: LanguageTag
    target_language: LanguageTag
    mode: SessionMode = SessionMode.IDLE
    input_text: str = ""
    transcript_count: int = 0     # 收到幾次語音轉錄；UI 只在它變動時覆寫輸入框
    translated: str = ""
    active_handle: CaptureHandle | None = None
    capture_supported: bool = True
    dispatch_seq: int = 0
    committed_seq: int = 0

    @property
    def listening(self) -> bool:
        return self.mode is not SessionMode.IDLE

    @property
    def live(self) -> bool:
        return self.mode is SessionMode.LISTENING_CONTINUOUS


class PipelineController:
    """
    使用方式（需在 event loop 內）：
        controller = PipelineController(source, translator, renderer, ledger)
        controller.start_live()
        ...
        controller.stop()
        await controller.drain()
    """

    EDIT_DEBOUNCE_SEC = 0.8
    SHUTDOWN_GRACE_SEC = 2.0   # 結束程式時最多等進行中的翻譯這麼久

    def __init__(self, source: TranscriptSource, translator, renderer, ledger: HistoryLedger,
                 input_lang: str = "en", target_lang: str = "hi",
                 on_update: Callable[[PipelineState], None] | None = None,
                 on_notice: Callable[[str], None] | None = None):
        self._source = source
        self._translator = translator
        self._renderer = renderer
        self.ledger = ledger
        self.state = PipelineState(
            input_language=find_language(input_lang),
            target_language=find_language(target_lang),
        )
        self._on_update = on_update
        self._on_notice = on_notice
        self._translations: set[asyncio.Task] = set()
        self._consumers: set[asyncio.Task] = set()
        self._edit_timer: asyncio.TimerHandle | None = None
        self._last_edit_dispatched = ""

    # ------------------------------------------------------------------
    # 通知 UI
    # ------------------------------------------------------------------
    def set_listeners(self, on_update: Callable[[PipelineState], None] | None = None,
                      on_notice: Callable[[str], None] | None = None) -> None:
        self._on_update = on_update
        self._on_notice = on_notice

    def _notify(self) -> None:
        if self._on_update is not None:
            try:
                self._on_update(self.state)
            except Exception:
                log.exception("[Pipeline] on_update callback failed")

    def _notice(self, message: str) -> None:
        log.warning("[Pipeline] %s", message)
        if self._on_notice is not None:
            try:
                self._on_notice(message)
            except Exception:
                log.exception("[Pipeline] on_notice callback failed")

    def _set_mode(self, mode: SessionMode) -> None:
        if self.state.mode is not mode:
            log.info("[Pipeline] %s → %s", self.state.mode.value, mode.value)
            self.state.mode = mode
        self._notify()

    # ------------------------------------------------------------------
    # 選項
    # ------------------------------------------------------------------
    def select_target(self, code: str) -> None:
        self.state.target_language = find_language(code)
        self._notify()

    def select_input_language(self, code: str) -> None:
        """下一次 begin() 才生效；進行中的 session 保持原本的語言提示。"""
        self.state.input_language = find_language(code)
        self._notify()

    def set_input_text(self, text: str) -> None:
        self.state.input_text = text

    def edit_input_text(self, text: str) -> None:
        """
        手動編輯：debounce 後翻譯，不自動朗讀。
        每次呼叫都重設計時器，停止打字 EDIT_DEBOUNCE_SEC 後才送出。
        """
        self.state.input_text = text
        if self._edit_timer is not None:
            self._edit_timer.cancel()
        self._edit_timer = asyncio.get_running_loop().call_later(self.EDIT_DEBOUNCE_SEC, self._on_edit_timer)

    def _on_edit_timer(self) -> None:
        self._edit_timer = None
        text = self.state.input_text
        if not text.strip() or text == self._last_edit_dispatched:
            return
        self._last_edit_dispatched = text
        self._dispatch(text, auto_speak=False)

    # ------------------------------------------------------------------
    # 狀態轉移
    # ------------------------------------------------------------------
    def start_once(self) -> bool:
        if self.state.mode is not SessionMode.IDLE:
            log.debug("[Pipeline] start_once ignored in %s", self.state.mode.value)
            return False
        self._set_mode(SessionMode.LISTENING_ONCE)
        return self._begin_capture()

    def start_live(self) -> bool:
        if self.state.mode is SessionMode.LISTENING_CONTINUOUS:
            return True
        if self.state.mode is SessionMode.LISTENING_ONCE and self.state.active_handle is not None:
            # 沿用進行中的 session，結束時依 mode 自動重啟
            self._set_mode(SessionMode.LISTENING_CONTINUOUS)
            return True
        self._set_mode(SessionMode.LISTENING_CONTINUOUS)
        return self._begin_capture()

    def stop(self) -> None:
        handle = self.state.active_handle
        self.state.active_handle = None
        if handle is not None and handle.active:
            self._source.cancel(handle)
        self._set_mode(SessionMode.IDLE)

    def toggle_live(self) -> bool:
        if self.state.mode is SessionMode.LISTENING_CONTINUOUS:
            self.stop()
            return False
        return self.start_live()

    def _begin_capture(self) -> bool:
        if not self.state.capture_supported:
            self._set_mode(SessionMode.IDLE)
            return False
        try:
            handle = self._source.begin(self.state.input_language.synthesis_locale)
        except Unsupported as e:
            self.state.capture_supported = False
            self._set_mode(SessionMode.IDLE)
            self._notice(f"Speech recognition not supported: {e}")
            return False
        self.state.active_handle = handle
        task = asyncio.get_running_loop().create_task(self._consume(handle), name=f"consume-{handle.id}")
        self._consumers.add(task)
        task.add_done_callback(self._consumers.discard)
        return True

    async def _consume(self, handle: CaptureHandle) -> None:
        failed = False
        while True:
            event = await handle.events.get()
            if isinstance(event, FinalTranscript):
                self.state.input_text = event.text
                self.state.transcript_count += 1
                self._notify()
                self._dispatch(event.text, auto_speak=True)
            elif isinstance(event, RecognitionError):
                log.info("[Pipeline] capture #%d error: %s", handle.id, event.reason)
                failed = True
            elif isinstance(event, Ended):
                break
        self._on_session_end(handle, failed)

    def _on_session_end(self, handle: CaptureHandle, failed: bool) -> None:
        if self.state.active_handle is not handle:
            return  # 已被 stop() 取消，或已不是目前的 session
        self.state.active_handle = None
        if failed:
            self._set_mode(SessionMode.IDLE)
        elif self.state.mode is SessionMode.LISTENING_CONTINUOUS:
            self._begin_capture()
        else:
            self._set_mode(SessionMode.IDLE)

    # ------------------------------------------------------------------
    # 翻譯
    # ------------------------------------------------------------------
    def _dispatch(self, text: str, auto_speak: bool) -> asyncio.Task:
        """不等待翻譯完成，擷取可以立即重啟。"""
        task = asyncio.get_running_loop().create_task(self.translate_and_maybe_speak(text, auto_speak))
        self._translations.add(task)
        task.add_done_callback(self._translations.discard)
        return task

    async def translate_and_maybe_speak(self, text: str, auto_speak: bool = True) -> str:
        target = self.state.target_language   # dispatch 當下的快照
        self.state.dispatch_seq += 1
        seq = self.state.dispatch_seq
        try:
            translated = await self._translator.translate(text, target.code)
        except Exception as e:
            log.warning("[Pipeline] translation #%d failed: %s", seq, e)
            translated = ""
        translated = translated or ""

        self.ledger.record(text, target.code, translated)

        if seq > self.state.committed_seq:
            self.state.committed_seq = seq
            self.state.translated = translated
            self._notify()
            if auto_speak:
                self._renderer.speak(translated, target.synthesis_locale)
        else:
            log.debug("[Pipeline] translation #%d stale (committed #%d), display kept",
                      seq, self.state.committed_seq)
            self._notify()
        return translated

    async def handle_translate_click(self) -> str:
        return await self.translate_and_maybe_speak(self.state.input_text, auto_speak=True)

    # ------------------------------------------------------------------
    # 朗讀 / 歷史
    # ------------------------------------------------------------------
    def speak_translation(self) -> None:
        self._renderer.speak(self.state.translated, self.state.target_language.synthesis_locale)

    def speak_exchange(self, exchange: Exchange) -> None:
        self._renderer.speak(exchange.translated_text, find_language(exchange.target_code).synthesis_locale)

    def clear_history(self, confirm: Callable[[], bool]) -> bool:
        if not confirm():
            return False
        self.ledger.clear()
        self._notify()
        return True

    def export_history(self, path: str) -> None:
        self.ledger.export(path)

    # ------------------------------------------------------------------
    # 收尾
    # ------------------------------------------------------------------
    async def drain(self) -> None:
        """等待所有進行中的翻譯完成（stop() 不會取消它們）。"""
        while self._translations:
            await asyncio.gather(*list(self._translations), return_exceptions=True)

    async def shutdown(self) -> None:
        self.stop()
        if self._edit_timer is not None:
            self._edit_timer.cancel()
            self._edit_timer = None
        if self._translations:
            _, pending = await asyncio.wait(set(self._translations), timeout=self.SHUTDOWN_GRACE_SEC)
            if pending:
                log.warning("[Pipeline] shutdown: %d translation(s) still pending, cancelled", len(pending))
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
        for task in list(self._consumers):
            task.cancel()
        if self._consumers:
            await asyncio.gather(*list(self._consumers), return_exceptions=True)
        self._renderer.shutdown()
