"""
Supported translation / speech languages.

Usage:
    from languages import LANGUAGES, LANG_LABELS, find_language, lang_label_to_code, synthesis_locale
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class LanguageTag:
    code: str               # 翻譯請求與歷史紀錄使用的代碼
    name: str               # 下拉選單顯示名稱
    synthesis_locale: str   # 選擇 TTS 語音 / ASR 提示用的 BCP-47 標籤

    @property
    def primary_subtag(self) -> str:
        """'hi-IN' → 'hi'"""
        return self.synthesis_locale.split("-", 1)[0].lower()


# Order determines dropdown order.
LANGUAGES: tuple[LanguageTag, ...] = (
    # Indian languages
    LanguageTag("en", "English", "en-US"),
    LanguageTag("hi", "Hindi", "hi-IN"),
    LanguageTag("te", "Telugu", "te-IN"),
    LanguageTag("ta", "Tamil", "ta-IN"),
    LanguageTag("ml", "Malayalam", "ml-IN"),
    LanguageTag("kn", "Kannada", "kn-IN"),
    LanguageTag("bn", "Bengali", "bn-IN"),
    LanguageTag("gu", "Gujarati", "gu-IN"),
    LanguageTag("mr", "Marathi", "mr-IN"),
    LanguageTag("pa", "Punjabi", "pa-IN"),
    LanguageTag("ur", "Urdu", "ur-IN"),
    # Asian
    LanguageTag("zh-CN", "Chinese (Simplified)", "zh-CN"),
    LanguageTag("zh-TW", "Chinese (Traditional)", "zh-TW"),
    LanguageTag("ja", "Japanese", "ja-JP"),
    LanguageTag("ko", "Korean", "ko-KR"),
    LanguageTag("th", "Thai", "th-TH"),
    LanguageTag("vi", "Vietnamese", "vi-VN"),
    # Middle East
    LanguageTag("ar", "Arabic", "ar-SA"),
    LanguageTag("fa", "Persian (Farsi)", "fa-IR"),
    LanguageTag("tr", "Turkish", "tr-TR"),
    # Europe
    LanguageTag("fr", "French", "fr-FR"),
    LanguageTag("es", "Spanish", "es-ES"),
    LanguageTag("de", "German", "de-DE"),
    LanguageTag("it", "Italian", "it-IT"),
    LanguageTag("pt", "Portuguese", "pt-PT"),
    LanguageTag("nl", "Dutch", "nl-NL"),
    LanguageTag("pl", "Polish", "pl-PL"),
    LanguageTag("sv", "Swedish", "sv-SE"),
    LanguageTag("no", "Norwegian", "no-NO"),
    LanguageTag("da", "Danish", "da-DK"),
    LanguageTag("fi", "Finnish", "fi-FI"),
    LanguageTag("ro", "Romanian", "ro-RO"),
    LanguageTag("cs", "Czech", "cs-CZ"),
    # African
    LanguageTag("sw", "Swahili", "sw-KE"),
    LanguageTag("am", "Amharic", "am-ET"),
    # Others
    LanguageTag("id", "Indonesian", "id-ID"),
    LanguageTag("ms", "Malay", "ms-MY"),
    LanguageTag("uk", "Ukrainian", "uk-UA"),
    LanguageTag("ru", "Russian", "ru-RU"),
)

_BY_CODE: dict[str, LanguageTag] = {lang.code: lang for lang in LANGUAGES}

# Flat list of display labels (for dropdowns).
LANG_LABELS: list[str] = [f"{lang.name} ({lang.code})" for lang in LANGUAGES]


def find_language(code: str) -> LanguageTag:
    """'hi' → LanguageTag('hi', 'Hindi', 'hi-IN')；未知代碼以代碼本身作為名稱與 locale。"""
    lang = _BY_CODE.get(code)
    if lang is not None:
        return lang
    return LanguageTag(code, code, code)


def synthesis_locale(code: str) -> str:
    """'hi' → 'hi-IN'"""
    return find_language(code).synthesis_locale


def lang_code_to_label(code: str) -> str:
    """'hi' → 'Hindi (hi)'"""
    lang = find_language(code)
    return f"{lang.name} ({lang.code})"


def lang_label_to_code(label: str) -> str:
    """'Hindi (hi)' → 'hi'"""
    if label.endswith(")") and "(" in label:
        return label.rsplit("(", 1)[1].rstrip(")")
    return label  # fallback: already a code
