# config.py
"""設定檔讀寫（~/.config/voice-translator/config.json）與麥克風裝置列舉。"""
import json
import logging
import os
import sys

log = logging.getLogger(__name__)

_CONFIG_PATH = os.path.expanduser("~/.config/voice-translator/config.json")

_CONFIG_DEFAULTS = {
    "backend_url": "http://localhost:5000",
    "asr_server": "http://localhost:8000",
    "mic_device": "",
    "input_lang": "en",
    "target_lang": "hi",
    "history_path": os.path.expanduser("~/.config/voice-translator/store.json"),
    "translate_timeout": None,   # None：不設逾時
}


def _env_backend_url() -> str | None:
    """REACT_APP_API 沿用舊前端的環境變數名稱；VT_API 優先。"""
    return os.environ.get("VT_API") or os.environ.get("REACT_APP_API") or None


def load_config() -> dict:
    """讀取 ~/.config/voice-translator/config.json，不存在或損毀時回傳預設值。"""
    try:
        with open(_CONFIG_PATH, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("config root must be an object")
        cfg = {**_CONFIG_DEFAULTS, **data}
    except FileNotFoundError:
        cfg = dict(_CONFIG_DEFAULTS)
    except (json.JSONDecodeError, ValueError) as e:
        log.warning("[Config] %s 無法解析，改用預設值：%s", _CONFIG_PATH, e)
        cfg = dict(_CONFIG_DEFAULTS)
    env_url = _env_backend_url()
    if env_url:
        cfg["backend_url"] = env_url
    return cfg


def save_config(settings: dict) -> None:
    """儲存設定至 ~/.config/voice-translator/config.json（只寫已知的 key）。"""
    os.makedirs(os.path.dirname(_CONFIG_PATH), exist_ok=True)
    with open(_CONFIG_PATH, "w", encoding="utf-8") as f:
        json.dump({k: settings.get(k, _CONFIG_DEFAULTS[k]) for k in _CONFIG_DEFAULTS},
                  f, ensure_ascii=False, indent=2)


def list_mic_devices() -> list[str]:
    """
    回傳可用麥克風裝置名稱清單（排除 loopback）。
    Windows：pyaudiowpatch 列出輸入裝置，失敗則 fallback sounddevice。
    回傳空清單代表無法偵測（使用系統預設麥克風）。
    """
    devices: list[str] = []
    if sys.platform == "win32":
        try:
            import pyaudiowpatch as pyaudio
            pa = pyaudio.PyAudio()
            for i in range(pa.get_device_count()):
                dev = pa.get_device_info_by_index(i)
                if dev.get("maxInputChannels", 0) > 0 and not dev.get("isLoopbackDevice"):
                    devices.append(dev["name"])
            pa.terminate()
        except Exception as e:
            log.debug("[Config] pyaudiowpatch 列舉失敗：%s", e)
    if not devices:
        try:
            import sounddevice as sd
            for d in sd.query_devices():
                if d.get("max_input_channels", 0) > 0:
                    devices.append(d["name"])
        except Exception as e:
            log.debug("[Config] sounddevice 列舉失敗：%s", e)
    return devices
