"""UI 子套件：CustomTkinter 主視窗。"""
from ui.app_tk import TranslatorWindow

__all__ = ["TranslatorWindow"]
