# constants.py
"""共用常數：音訊取樣率、chunk 大小、歷史紀錄上限、log 設定。"""
import logging
import os
import sys

TARGET_SR     = 16000
CHUNK_SAMPLES = 1600   # 0.1 秒 @ 16kHz（端點偵測的最小單位）

HISTORY_KEY   = "vt_history"   # 歷史紀錄在 store 中的固定 key
HISTORY_LIMIT = 200            # 超過上限時丟棄最舊的紀錄

EXPORT_FILENAME = "translation_history.json"

# ---------------------------------------------------------------------------
# Logging：寫到程式旁的 log 檔 + stdout
# ---------------------------------------------------------------------------
_LOG_DIR  = (os.path.dirname(sys.executable)
             if getattr(sys, "frozen", False)
             else os.path.dirname(os.path.abspath(__file__)))
_LOG_PATH = os.path.join(_LOG_DIR, "voice_translator.log")


def configure_logging(level: int = logging.DEBUG) -> None:
    """主程式啟動時呼叫一次；測試不呼叫，避免產生 log 檔。"""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(threadName)s] %(levelname)s: %(message)s",
        handlers=[
            logging.FileHandler(_LOG_PATH, encoding="utf-8"),
            logging.StreamHandler(sys.stdout),
        ],
    )
