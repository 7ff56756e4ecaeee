# ui/app_tk.py
"""CustomTkinter 主視窗：按鈕、語言選單、翻譯結果、歷史清單。"""
import asyncio
import logging
import tkinter as tk
from tkinter import filedialog, messagebox

import customtkinter as ctk

from constants import EXPORT_FILENAME
from history import Exchange
from languages import LANG_LABELS, lang_code_to_label, lang_label_to_code
from pipeline import PipelineController, PipelineState

log = logging.getLogger(__name__)


class TranslatorWindow:
    """
    主視窗。tkinter 的事件處理由 asyncio 驅動（run() 內定期呼叫 root.update()），
    所以 controller 與 UI 都在同一個 thread。

    使用方式：
        window = TranslatorWindow(controller)
        controller 的 on_update 設為 window.refresh
        await window.run()
    """

    ACCENT = "#7eb8f7"
    MUTED = "#9ca3af"
    _FONT_FAMILY = "Noto Sans"

    def __init__(self, controller: PipelineController, backend_url: str = ""):
        self._controller = controller
        self._closed = False
        self._tasks: set[asyncio.Task] = set()
        self._history_sig: tuple = ()
        self._transcripts_shown = controller.state.transcript_count

        ctk.set_appearance_mode("dark")
        ctk.set_default_color_theme("blue")
        root = ctk.CTk()
        root.title("Voice Translator")
        root.geometry("920x640")
        root.protocol("WM_DELETE_WINDOW", self._on_close)
        self._root = root

        f_sm = ctk.CTkFont(family=self._FONT_FAMILY, size=12)
        f_md = ctk.CTkFont(family=self._FONT_FAMILY, size=14)
        f_lg = ctk.CTkFont(family=self._FONT_FAMILY, size=20)
        self._f_sm = f_sm

        # ── 標題列 ─────────────────────────────────────────────────────
        header = ctk.CTkFrame(root, fg_color=("#1a1a2e", "#1a1a2e"), corner_radius=0)
        header.pack(fill="x")
        ctk.CTkLabel(header, text="Voice Translator", font=f_lg,
                     text_color=self.ACCENT).pack(side="left", pady=12, padx=20)
        self._live_btn = ctk.CTkButton(header, text="🔁 Live: OFF", width=120, font=f_md,
                                       command=self._controller.toggle_live)
        self._live_btn.pack(side="right", padx=(6, 20))
        self._stop_btn = ctk.CTkButton(header, text="⛔ Stop", width=90, font=f_md,
                                       fg_color="transparent", border_width=1,
                                       command=self._controller.stop)
        self._stop_btn.pack(side="right", padx=6)
        self._once_btn = ctk.CTkButton(header, text="🎤 Speak once", width=130, font=f_md,
                                       command=self._controller.start_once)
        self._once_btn.pack(side="right", padx=6)

        # ── 翻譯區 ─────────────────────────────────────────────────────
        body = ctk.CTkFrame(root, fg_color="transparent")
        body.pack(fill="x", padx=20, pady=(16, 8))
        body.columnconfigure(0, weight=1)

        self._input = ctk.CTkTextbox(body, height=120, font=f_md, wrap="word")
        self._input.grid(row=0, column=0, rowspan=6, sticky="nsew", padx=(0, 12))
        self._input.bind("<KeyRelease>", lambda e: self._on_input_edited())

        state = controller.state
        ctk.CTkLabel(body, text="Input Language", font=f_sm, text_color=self.MUTED,
                     anchor="w").grid(row=0, column=1, sticky="ew")
        self._input_lang_var = tk.StringVar(value=lang_code_to_label(state.input_language.code))
        ctk.CTkOptionMenu(body, variable=self._input_lang_var, values=LANG_LABELS, font=f_sm,
                          dynamic_resizing=False,
                          command=lambda label: controller.select_input_language(lang_label_to_code(label))
                          ).grid(row=1, column=1, sticky="ew", pady=(2, 8))

        ctk.CTkLabel(body, text="Translate To", font=f_sm, text_color=self.MUTED,
                     anchor="w").grid(row=2, column=1, sticky="ew")
        self._target_var = tk.StringVar(value=lang_code_to_label(state.target_language.code))
        ctk.CTkOptionMenu(body, variable=self._target_var, values=LANG_LABELS, font=f_sm,
                          dynamic_resizing=False,
                          command=lambda label: controller.select_target(lang_label_to_code(label))
                          ).grid(row=3, column=1, sticky="ew", pady=(2, 8))

        ctk.CTkButton(body, text="Translate & Speak", font=f_md,
                      command=self._on_translate_click).grid(row=4, column=1, sticky="ew", pady=(4, 0))
        self._as_you_type_var = tk.BooleanVar(value=False)
        ctk.CTkCheckBox(body, text="Translate as I type", variable=self._as_you_type_var,
                        font=f_sm).grid(row=5, column=1, sticky="w", pady=(8, 0))

        result = ctk.CTkFrame(root, fg_color="#0d0d1a", corner_radius=6)
        result.pack(fill="x", padx=20, pady=8)
        ctk.CTkLabel(result, text="Translated", font=f_sm, text_color=self.MUTED,
                     anchor="w").pack(fill="x", padx=12, pady=(8, 0))
        self._translated_label = ctk.CTkLabel(result, text="", font=f_lg, anchor="w",
                                              justify="left", wraplength=840)
        self._translated_label.pack(fill="x", padx=12, pady=4)
        actions = ctk.CTkFrame(result, fg_color="transparent")
        actions.pack(fill="x", padx=12, pady=(0, 8))
        ctk.CTkButton(actions, text="🔊 Listen", width=90, font=f_sm,
                      command=controller.speak_translation).pack(side="left")
        ctk.CTkButton(actions, text="📋 Copy", width=90, font=f_sm,
                      command=lambda: self._copy(controller.state.translated)).pack(side="left", padx=6)

        # ── 歷史 ───────────────────────────────────────────────────────
        hist_header = ctk.CTkFrame(root, fg_color="transparent")
        hist_header.pack(fill="x", padx=20, pady=(8, 0))
        ctk.CTkLabel(hist_header, text="History", font=f_md,
                     text_color=self.ACCENT).pack(side="left")
        ctk.CTkButton(hist_header, text="🗑 Clear", width=80, font=f_sm,
                      command=self._on_clear).pack(side="right")
        ctk.CTkButton(hist_header, text="💾 Export", width=80, font=f_sm,
                      command=self._on_export).pack(side="right", padx=6)
        self._history_frame = ctk.CTkScrollableFrame(root, fg_color="#0d0d1a")
        self._history_frame.pack(fill="both", expand=True, padx=20, pady=8)

        ctk.CTkLabel(root, text=f"Backend: {backend_url}", font=f_sm,
                     text_color="#606060").pack(pady=(0, 6))

        self.refresh(state)

    # ------------------------------------------------------------------
    # controller → UI
    # ------------------------------------------------------------------
    def refresh(self, state: PipelineState) -> None:
        if self._closed:
            return
        self._live_btn.configure(text="🔁 Live: ON" if state.live else "🔁 Live: OFF",
                                 fg_color="#2563eb" if state.live else ("#3a7ebf", "#1f538d"))
        self._once_btn.configure(state="disabled" if state.listening else "normal")
        self._stop_btn.configure(state="normal" if state.listening else "disabled")
        self._translated_label.configure(text=state.translated)
        if self._new_transcript(state):
            self._input.delete("1.0", "end")
            self._input.insert("1.0", state.input_text)
        self._render_history()

    def _new_transcript(self, state: PipelineState) -> bool:
        """只有新的語音轉錄才覆寫輸入框；其他 refresh 不動使用者正在打的字。"""
        if state.transcript_count == self._transcripts_shown:
            return False
        self._transcripts_shown = state.transcript_count
        return True

    def _render_history(self) -> None:
        entries = self._controller.ledger.all()
        sig = tuple(e.id for e in entries)
        if sig == self._history_sig:
            return
        self._history_sig = sig
        for child in self._history_frame.winfo_children():
            child.destroy()
        if not entries:
            ctk.CTkLabel(self._history_frame, text="No history yet", font=self._f_sm,
                         text_color=self.MUTED).pack(pady=12)
            return
        for entry in entries:
            self._history_row(entry)

    def _history_row(self, entry: Exchange) -> None:
        row = ctk.CTkFrame(self._history_frame, fg_color="transparent")
        row.pack(fill="x", pady=2)
        texts = ctk.CTkFrame(row, fg_color="transparent")
        texts.pack(side="left", fill="x", expand=True)
        ctk.CTkLabel(texts, text=entry.source_text, font=self._f_sm, text_color=self.MUTED,
                     anchor="w", justify="left", wraplength=700).pack(fill="x")
        ctk.CTkLabel(texts, text=f"[{entry.target_code}] {entry.translated_text}", font=self._f_sm,
                     anchor="w", justify="left", wraplength=700).pack(fill="x")
        ctk.CTkButton(row, text="📋", width=32, font=self._f_sm,
                      command=lambda: self._copy(entry.translated_text)).pack(side="right", padx=2)
        ctk.CTkButton(row, text="🔊", width=32, font=self._f_sm,
                      command=lambda: self._controller.speak_exchange(entry)).pack(side="right", padx=2)

    # ------------------------------------------------------------------
    # UI → controller
    # ------------------------------------------------------------------
    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _sync_input_text(self) -> None:
        self._controller.set_input_text(self._input.get("1.0", "end-1c"))

    def _on_input_edited(self) -> None:
        text = self._input.get("1.0", "end-1c")
        if self._as_you_type_var.get():
            self._controller.edit_input_text(text)
        else:
            self._controller.set_input_text(text)

    def _on_translate_click(self) -> None:
        self._sync_input_text()
        self._spawn(self._controller.handle_translate_click())

    def _copy(self, text: str) -> None:
        if not text:
            return
        self._root.clipboard_clear()
        self._root.clipboard_append(text)
        messagebox.showinfo("Voice Translator", "Copied!", parent=self._root)

    def _on_export(self) -> None:
        path = filedialog.asksaveasfilename(parent=self._root, initialfile=EXPORT_FILENAME,
                                            defaultextension=".json",
                                            filetypes=[("JSON", "*.json")])
        if not path:
            return
        try:
            self._controller.export_history(path)
        except OSError as e:
            log.warning("[UI] export failed: %s", e)
            messagebox.showerror("Voice Translator", f"Export failed: {e}", parent=self._root)

    def _on_clear(self) -> None:
        self._controller.clear_history(
            lambda: messagebox.askyesno("Voice Translator", "Clear history?", parent=self._root)
        )

    def show_notice(self, message: str) -> None:
        if not self._closed:
            messagebox.showwarning("Voice Translator", message, parent=self._root)

    # ------------------------------------------------------------------
    # 主迴圈
    # ------------------------------------------------------------------
    def _on_close(self) -> None:
        self._closed = True

    async def run(self, interval: float = 0.02) -> None:
        """以 asyncio 驅動 tkinter；視窗關閉時返回。"""
        try:
            while not self._closed:
                self._root.update()
                await asyncio.sleep(interval)
        except tk.TclError as e:
            log.info("[UI] window gone: %s", e)
        finally:
            self._closed = True
            try:
                self._root.destroy()
            except tk.TclError:
                pass
