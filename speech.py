# speech.py
"""語音合成：依語言挑選 TTS 語音，新的朗讀一律取消正在播放的朗讀。"""
import logging
import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Voice:
    id: str
    name: str
    locales: tuple[str, ...] = ()


def normalize_locale(raw) -> str:
    """
    把各平台的語言標記統一成小寫 BCP-47。
    espeak 回傳 b'\\x05en-us'，SAPI 可能是 'en_US'。
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="ignore")
    text = "".join(ch for ch in str(raw) if ch.isprintable()).strip()
    return text.replace("_", "-").lower()


def pick_voice(voices: list[Voice], locale: str) -> Voice | None:
    """
    'hi-IN' → 先找完全相同的 locale，再找任何 'hi' 開頭的語音；都沒有回傳 None（平台預設語音）。
    voices 可以是空清單（語音列舉尚未完成）。
    """
    wanted = normalize_locale(locale)
    primary = wanted.split("-", 1)[0]
    if not primary:
        return None
    prefix_match = None
    for voice in voices:
        for loc in voice.locales:
            loc = normalize_locale(loc)
            if loc == wanted:
                return voice
            if prefix_match is None and loc.startswith(primary):
                prefix_match = voice
    return prefix_match


class SpeechBackend(ABC):
    """TTS 引擎介面。say() 不可阻塞呼叫端。"""

    @abstractmethod
    def voices(self) -> list[Voice]:
        """目前已知的語音；可能是空清單。"""

    @abstractmethod
    def say(self, text: str, voice_id: str | None) -> None:
        """排入朗讀；voice_id 為 None 時使用預設語音。"""

    @abstractmethod
    def stop(self) -> None:
        """中斷正在播放與尚未播放的朗讀。"""

    def shutdown(self) -> None:
        self.stop()


class Pyttsx3Backend(SpeechBackend):
    """
    pyttsx3 引擎跑在自己的 daemon thread（runAndWait 會阻塞）。

    取消方式：stop() 遞增 generation；播放中的 'started-word' callback 發現
    generation 已過時就呼叫 engine.stop()，佇列裡過時的項目直接略過。
    """

    def __init__(self, rate: int | None = None):
        self._rate = rate
        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._generation = 0
        self._playing_generation = -1
        self._voices: list[Voice] = []
        self._engine = None
        self._available = True
        self._thread = threading.Thread(target=self._loop, daemon=True, name="speech-thread")
        self._thread.start()

    def voices(self) -> list[Voice]:
        return list(self._voices)

    def say(self, text: str, voice_id: str | None) -> None:
        if not self._available:
            log.warning("[Speech] TTS unavailable, skipped %r", text)
            return
        with self._lock:
            gen = self._generation
        self._queue.put((gen, text, voice_id))

    def stop(self) -> None:
        with self._lock:
            self._generation += 1

    def shutdown(self) -> None:
        self.stop()
        self._queue.put(None)

    def _is_stale(self, gen: int) -> bool:
        with self._lock:
            return gen != self._generation

    def _on_word(self, name, location, length) -> None:
        if self._is_stale(self._playing_generation) and self._engine is not None:
            self._engine.stop()

    def _loop(self) -> None:
        try:
            import pyttsx3
            engine = pyttsx3.init()
        except Exception as e:
            self._available = False
            log.warning("[Speech] pyttsx3 init failed, speech disabled: %s", e)
            return
        self._engine = engine
        if self._rate:
            engine.setProperty("rate", self._rate)
        default_voice = engine.getProperty("voice")
        self._voices = [
            Voice(id=v.id, name=getattr(v, "name", "") or v.id,
                  locales=tuple(normalize_locale(loc) for loc in (getattr(v, "languages", None) or ())))
            for v in (engine.getProperty("voices") or [])
        ]
        engine.connect("started-word", self._on_word)
        log.info("[Speech] pyttsx3 ready, %d voices", len(self._voices))

        while True:
            item = self._queue.get()
            if item is None:
                break
            gen, text, voice_id = item
            if self._is_stale(gen):
                continue
            self._playing_generation = gen
            try:
                engine.setProperty("voice", voice_id or default_voice)
                engine.say(text)
                engine.runAndWait()
            except Exception:
                log.exception("[Speech] playback failed")


class SpeechRenderer:
    """
    speak(text, locale)：挑語音、取消目前朗讀、開始新的朗讀。fire-and-forget。
    """

    def __init__(self, backend: SpeechBackend):
        self._backend = backend

    def speak(self, text: str, locale: str) -> None:
        if not text:
            return
        voice = pick_voice(self._backend.voices(), locale)
        self._backend.stop()
        self._backend.say(text, voice.id if voice else None)
        log.debug("[Speech] speak locale=%s voice=%s text=%r", locale, voice.id if voice else "default", text)

    def shutdown(self) -> None:
        self._backend.shutdown()
