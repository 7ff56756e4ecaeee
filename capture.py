# capture.py
"""
Transcript source：一次擷取 session 產生一個最終轉錄或一個錯誤，之後必定接著 Ended。

事件經由每個 CaptureHandle 自己的 asyncio.Queue 交給 controller：
    FinalTranscript(text) | RecognitionError(reason)  →  Ended()
"""
import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Union

import numpy as np
import requests

from asr import ASRClient
from audio import AudioSource, MicrophoneAudioSource, query_input_device
from constants import TARGET_SR
from errors import CaptureError, Unsupported

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalTranscript:
    text: str


@dataclass(frozen=True)
class RecognitionError:
    reason: str


@dataclass(frozen=True)
class Ended:
    pass


CaptureEvent = Union[FinalTranscript, RecognitionError, Ended]


class CaptureHandle:
    """
    單一擷取 session。

    保證：最多送出一個 FinalTranscript 或 RecognitionError，Ended 恰好一次且最後送出；
    cancel() 之後不再送出任何結果事件。
    """

    _ids = itertools.count(1)

    def __init__(self, language_hint: str):
        self.id = next(self._ids)
        self.language_hint = language_hint
        self.events: asyncio.Queue = asyncio.Queue()
        self.cancelled = False
        self.ended = False
        self._result_sent = False

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.ended)

    def _put_result(self, event: CaptureEvent) -> bool:
        if not self.active or self._result_sent:
            return False
        self._result_sent = True
        self.events.put_nowait(event)
        return True

    def emit_transcript(self, text: str) -> bool:
        return self._put_result(FinalTranscript(text))

    def emit_error(self, reason: str) -> bool:
        return self._put_result(RecognitionError(reason))

    def cancel(self) -> None:
        self.cancelled = True

    def end(self) -> None:
        if self.ended:
            return
        self.ended = True
        self.events.put_nowait(Ended())

    def __repr__(self) -> str:
        return f"<CaptureHandle #{self.id} hint={self.language_hint} cancelled={self.cancelled} ended={self.ended}>"


class TranscriptSource(ABC):
    """語音辨識能力的抽象介面。"""

    @abstractmethod
    def begin(self, language_hint: str) -> CaptureHandle:
        """開始一次擷取；能力不存在時立即丟出 Unsupported。需在 event loop 內呼叫。"""

    @abstractmethod
    def cancel(self, handle: CaptureHandle) -> None:
        """要求提前結束；之後該 handle 只會再收到 Ended。"""


class UtteranceEndpointer:
    """
    以 RMS 能量偵測一句話的起訖。

    - 能量 ≥ threshold 視為語音，第一次出現時開始累積（保留前一個 chunk 當 preroll）
    - 語音開始後靜音累積 ≥ silence_sec → 句子結束
    - 語音長度達 max_sec → 強制結束
    - no_speech_sec 內都沒有語音 → CaptureError("no-speech")
    """

    def __init__(self, threshold: float = 0.01, silence_sec: float = 0.8,
                 max_sec: float = 15.0, no_speech_sec: float = 8.0, sr: int = TARGET_SR):
        self.threshold = threshold
        self.silence_sec = silence_sec
        self.max_sec = max_sec
        self.no_speech_sec = no_speech_sec
        self.sr = sr
        self._buf: list[np.ndarray] = []
        self._preroll: np.ndarray | None = None
        self._started = False
        self._silence = 0.0
        self._waited = 0.0
        self._voiced = 0.0

    @staticmethod
    def rms(chunk: np.ndarray) -> float:
        if chunk.size == 0:
            return 0.0
        return float(np.sqrt(np.mean(np.square(chunk, dtype=np.float64))))

    def feed(self, chunk: np.ndarray) -> np.ndarray | None:
        """餵入一個 chunk；句子結束時回傳整段音訊，否則回傳 None。"""
        dur = len(chunk) / self.sr
        loud = self.rms(chunk) >= self.threshold

        if not self._started:
            if not loud:
                self._waited += dur
                self._preroll = chunk
                if self._waited >= self.no_speech_sec:
                    raise CaptureError("no-speech")
                return None
            self._started = True
            if self._preroll is not None:
                self._buf.append(self._preroll)

        self._buf.append(chunk)
        self._voiced += dur
        self._silence = 0.0 if loud else self._silence + dur

        if self._silence >= self.silence_sec or self._voiced >= self.max_sec:
            return np.concatenate(self._buf)
        return None


class MicrophoneTranscriptSource(TranscriptSource):
    """
    麥克風 + ASR server 的 transcript source。

    每次 begin() 開一個 asyncio task：
    mic chunk（audio thread）→ call_soon_threadsafe → endpointer → ASR（worker thread）→ 事件
    """

    MIN_SAMPLES = TARGET_SR // 8   # < 0.125s，視為沒聽到

    def __init__(self, asr: ASRClient, device=None, endpointer_kwargs: dict | None = None):
        self._asr = asr
        self._device = device or None
        self._endpointer_kwargs = endpointer_kwargs or {}
        self._tasks: dict[int, asyncio.Task] = {}

    def _check_available(self) -> None:
        try:
            query_input_device(self._device)
        except Exception as e:
            raise Unsupported(f"speech capture unavailable: {e}") from e

    def _make_audio_source(self) -> AudioSource:
        return MicrophoneAudioSource(device=self._device)

    def begin(self, language_hint: str) -> CaptureHandle:
        self._check_available()
        handle = CaptureHandle(language_hint)
        task = asyncio.get_running_loop().create_task(self._run(handle), name=f"capture-{handle.id}")
        # 即使 task 在開始執行前就被取消，Ended 也一定會送出
        task.add_done_callback(lambda t: self._on_task_done(handle, t))
        self._tasks[handle.id] = task
        log.info("[Capture] begin #%d hint=%s", handle.id, language_hint)
        return handle

    def cancel(self, handle: CaptureHandle) -> None:
        handle.cancel()
        task = self._tasks.get(handle.id)
        if task is not None:
            task.cancel()
        log.info("[Capture] cancel #%d", handle.id)

    def _on_task_done(self, handle: CaptureHandle, task: asyncio.Task) -> None:
        self._tasks.pop(handle.id, None)
        handle.end()

    async def _run(self, handle: CaptureHandle) -> None:
        loop = asyncio.get_running_loop()
        chunks: asyncio.Queue = asyncio.Queue()

        def on_chunk(audio: np.ndarray) -> None:
            """在 audio consumer thread 執行：只把 chunk 丟回 event loop。"""
            try:
                loop.call_soon_threadsafe(chunks.put_nowait, audio)
            except RuntimeError:
                pass  # event loop 已關閉

        endpointer = UtteranceEndpointer(**self._endpointer_kwargs)
        source = self._make_audio_source()
        try:
            await asyncio.to_thread(source.start, on_chunk)
            segment = None
            while segment is None:
                segment = endpointer.feed(await chunks.get())
            await asyncio.to_thread(source.stop)

            if len(segment) < self.MIN_SAMPLES:
                raise CaptureError("no-speech")
            language = handle.language_hint.split("-", 1)[0] or None
            result = await asyncio.to_thread(self._asr.transcribe, segment, language)
            text = (result.get("text") or "").strip() if isinstance(result, dict) else ""
            if not text:
                raise CaptureError("no-match")
            log.info("[Capture] #%d transcript=%r", handle.id, text)
            handle.emit_transcript(text)
        except CaptureError as e:
            log.info("[Capture] #%d %s", handle.id, e)
            handle.emit_error(str(e))
        except requests.RequestException as e:
            log.warning("[Capture] #%d ASR request failed: %s", handle.id, e)
            handle.emit_error(f"network: {e}")
        except Exception as e:
            # sounddevice.PortAudioError 不是 OSError 子類別
            log.exception("[Capture] #%d audio capture failed", handle.id)
            handle.emit_error(f"audio-capture: {e}")
        finally:
            # 裝置 I/O 不在 event loop thread 上做
            await asyncio.to_thread(source.stop)
