# asr.py
"""ASR HTTP client（語音辨識 server）。"""
import logging

import numpy as np
import requests

log = logging.getLogger(__name__)


class ASRClient:
    """HTTP client for the speech recognition server."""

    def __init__(self, base_url: str, timeout: float = 45):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def transcribe(self, audio_float32: np.ndarray, language: str | None = None) -> dict:
        """
        One-shot 轉錄：送出整段 16kHz float32 音訊，回傳 {"language": str, "text": str}。
        audio_float32: shape (N,), dtype float32
        language: 可選的語言代碼（如 "en", "hi"），傳給 server 可提升辨識準確度。
        """
        url = f"{self.base_url}/api/transcribe"
        params = {"language": language} if language else None
        r = requests.post(
            url,
            params=params,
            data=np.asarray(audio_float32, dtype=np.float32).tobytes(),
            headers={"Content-Type": "application/octet-stream"},
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()
