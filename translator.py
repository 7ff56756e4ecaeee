# translator.py
"""翻譯服務 HTTP client：POST /translate，失敗一律回傳空字串。"""
import asyncio
import logging
import threading

import requests

from errors import TranslationFailure

log = logging.getLogger(__name__)


class TranslationClient:
    """
    呼叫遠端翻譯服務。

    使用方式：
        client = TranslationClient("http://localhost:5000")
        text = await client.translate("Hello", "hi")   # 失敗時回傳 ""

    單次嘗試、不重試；網路或服務錯誤只記 log，不往外丟例外。
    """

    def __init__(self, base_url: str, timeout: float | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout   # None：不設逾時

    def translate_blocking(self, text: str, target: str) -> str:
        if not text or not text.strip():
            return ""
        try:
            r = requests.post(
                f"{self.base_url}/translate",
                json={"text": text, "target": target},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            r.raise_for_status()
            data = r.json()
            translated = data.get("translatedText") if isinstance(data, dict) else None
            if not isinstance(translated, str):
                raise TranslationFailure(f"malformed response: {data!r:.200}")
            log.info("[Translate] target=%s text=%r translated=%r", target, text, translated)
            return translated
        except (requests.RequestException, ValueError, TranslationFailure) as e:
            log.warning("[Translate error] target=%s %s", target, e)
            return ""

    async def translate(self, text: str, target: str) -> str:
        """
        requests 會阻塞，交給 daemon thread 執行，event loop 只 await 結果。
        沒有逾時的請求卡住時，程式結束不會等這個 thread。
        """
        if not text or not text.strip():
            return ""
        loop = asyncio.get_running_loop()
        fut = loop.create_future()

        def _resolve(result, error) -> None:
            if fut.done():
                return  # 呼叫端已取消
            if error is not None:
                fut.set_exception(error)
            else:
                fut.set_result(result)

        def _worker() -> None:
            result, error = "", None
            try:
                result = self.translate_blocking(text, target)
            except Exception as e:
                error = e
            try:
                loop.call_soon_threadsafe(_resolve, result, error)
            except RuntimeError:
                log.debug("[Translate] event loop closed, result dropped")

        threading.Thread(target=_worker, daemon=True, name="translate").start()
        return await fut
