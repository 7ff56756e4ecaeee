# audio.py
"""音訊來源：麥克風擷取，resample 成 16kHz float32 mono。"""
import logging
import queue
import threading
from abc import ABC, abstractmethod
from typing import Callable

import numpy as np
import scipy.signal as signal

from constants import TARGET_SR, CHUNK_SAMPLES

log = logging.getLogger(__name__)

ChunkCallback = Callable[[np.ndarray], None]


class AudioSource(ABC):
    """
    音訊來源抽象介面。

    start() / stop() 會碰到裝置 I/O，呼叫端應在 worker thread 執行；
    兩者可能在不同 thread 上以任意順序被呼叫。
    """

    @abstractmethod
    def start(self, callback: ChunkCallback) -> None:
        """開始擷取音訊，每 CHUNK_SAMPLES 以 16kHz float32 mono ndarray 呼叫 callback。"""

    @abstractmethod
    def stop(self) -> None:
        """停止擷取。可重複呼叫。"""


def query_input_device(device=None) -> dict:
    """
    查詢輸入裝置資訊；PortAudio 不存在或沒有可用的輸入裝置時丟出例外。
    sounddevice 在 import 時就會載入 PortAudio，因此延遲到這裡才 import。
    """
    import sounddevice as sd
    return sd.query_devices(device or None, kind="input")


class MicrophoneAudioSource(AudioSource):
    """
    一次性的麥克風來源：一個 capture session 用一個。

    stop() 之後 start() 不再開啟裝置，所以 stop 比 start 先跑完（session 在開麥克風
    途中被取消）也不會留下一個沒人關的 stream。

    audio callback 只 enqueue；resample 與切 chunk 在 mic-consumer thread。
    """

    BLOCK_SEC = 0.05

    def __init__(self, device=None):
        self._device = device or None  # 空字串或 None 都視為系統預設麥克風
        self._lock = threading.Lock()
        self._closed = False
        self._stream = None
        self._native_sr = 0
        self._pending: queue.Queue = queue.Queue()
        self._consumer_thread: threading.Thread | None = None

    def start(self, callback: ChunkCallback) -> None:
        import sounddevice as sd
        with self._lock:
            if self._closed:
                log.debug("[Audio] start skipped, source already stopped")
                return
            if self._stream is not None:
                raise RuntimeError("MicrophoneAudioSource is already running")
            self._native_sr = int(query_input_device(self._device)["default_samplerate"])
            self._consumer_thread = threading.Thread(
                target=self._consume, args=(callback,), daemon=True, name="mic-consumer")
            self._consumer_thread.start()
            stream = sd.InputStream(
                samplerate=self._native_sr,
                channels=1,
                dtype="float32",
                blocksize=int(self._native_sr * self.BLOCK_SEC),
                device=self._device,
                callback=self._on_block,
            )
            stream.start()
            self._stream = stream
        log.debug("[Audio] mic open device=%r sr=%d", self._device, self._native_sr)

    def _on_block(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        if status:
            log.debug("[Audio] %s", status)
        self._pending.put(indata[:, 0].copy())

    def _to_target_rate(self, raw: np.ndarray) -> np.ndarray:
        n = int(len(raw) * TARGET_SR / self._native_sr)
        if n == 0:
            return np.zeros(0, dtype=np.float32)
        return signal.resample(raw, n).astype(np.float32)

    def _consume(self, callback: ChunkCallback) -> None:
        carry = np.zeros(0, dtype=np.float32)
        while not self._closed:
            try:
                raw = self._pending.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                carry = np.concatenate([carry, self._to_target_rate(raw)])
                while len(carry) >= CHUNK_SAMPLES and not self._closed:
                    callback(carry[:CHUNK_SAMPLES].copy())
                    carry = carry[CHUNK_SAMPLES:]
            except Exception:
                log.exception("[Audio] consumer error")

    def stop(self) -> None:
        with self._lock:
            self._closed = True
            stream, self._stream = self._stream, None
            consumer, self._consumer_thread = self._consumer_thread, None
        if stream is not None:
            stream.stop()
            stream.close()
            log.debug("[Audio] mic closed device=%r", self._device)
        if consumer is not None and consumer is not threading.current_thread():
            consumer.join(timeout=1.0)
