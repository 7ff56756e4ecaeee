# errors.py
"""例外類別。全部在元件邊界被攔下並轉成無害的預設狀態，不會傳到 pipeline 呼叫端。"""


class VoiceTranslatorError(Exception):
    """所有自訂例外的基底。"""


class Unsupported(VoiceTranslatorError):
    """語音擷取能力不存在（無 PortAudio、無輸入裝置）。整個 session 停用該功能。"""


class CaptureError(VoiceTranslatorError):
    """辨識途中失敗（無語音、ASR server 錯誤）。回到 Idle，live mode 也不自動重啟。"""


class TranslationFailure(VoiceTranslatorError):
    """翻譯服務失敗或回應格式錯誤。降級為空字串，仍寫入歷史紀錄。"""


class StorageCorruption(VoiceTranslatorError):
    """儲存的歷史紀錄無法解析。視為空歷史。"""
