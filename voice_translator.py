#!/usr/bin/env python3
"""
Voice translator：說話或打字 → 翻譯 → 朗讀，可切換 live（連續語音對語音）模式。

Usage:
    python voice_translator.py --backend-url http://localhost:5000 --asr-server http://localhost:8000
    python voice_translator.py --console --target-lang fr     # 終端機 live mode

Requirements:
    pip install sounddevice numpy scipy requests pyttsx3 customtkinter
"""
import argparse
import asyncio
import logging
import sys

from asr import ASRClient
from capture import MicrophoneTranscriptSource
from config import list_mic_devices, load_config, save_config
from constants import configure_logging
from history import HistoryLedger, JsonFileStore, MemoryStore
from languages import LANGUAGES
from pipeline import PipelineController, PipelineState
from speech import Pyttsx3Backend, SpeechRenderer
from translator import TranslationClient

log = logging.getLogger(__name__)

_LANG_CODES = [lang.code for lang in LANGUAGES]


def _parse_args(config: dict, argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Voice translator")
    parser.add_argument("--backend-url", default=config["backend_url"],
                        help="翻譯服務位址（POST /translate）")
    parser.add_argument("--asr-server", default=config["asr_server"],
                        help="語音辨識 server 位址（POST /api/transcribe）")
    parser.add_argument("--mic-device", default=config["mic_device"] or None,
                        help="麥克風裝置名稱或索引（預設：系統預設麥克風）")
    parser.add_argument("--input-lang", default=config["input_lang"], choices=_LANG_CODES,
                        help="說話的語言")
    parser.add_argument("--target-lang", default=config["target_lang"], choices=_LANG_CODES,
                        help="翻譯目標語言")
    parser.add_argument("--history-path", default=config["history_path"],
                        help="歷史紀錄檔案路徑")
    parser.add_argument("--no-history", action="store_true",
                        help="歷史紀錄只保留在記憶體")
    parser.add_argument("--list-devices", action="store_true",
                        help="列出音訊裝置後離開")
    parser.add_argument("--console", action="store_true",
                        help="不開視窗，在終端機執行 live mode")
    parser.add_argument("--save-config", action="store_true",
                        help="把目前的參數寫回設定檔")
    return parser.parse_args(argv)


def build_controller(args: argparse.Namespace, config: dict) -> PipelineController:
    store = MemoryStore() if args.no_history else JsonFileStore(args.history_path)
    source = MicrophoneTranscriptSource(ASRClient(args.asr_server), device=args.mic_device)
    translator = TranslationClient(args.backend_url, timeout=config.get("translate_timeout"))
    renderer = SpeechRenderer(Pyttsx3Backend())
    return PipelineController(
        source, translator, renderer, HistoryLedger(store),
        input_lang=args.input_lang, target_lang=args.target_lang,
    )


async def _run_console(controller: PipelineController) -> None:
    """終端機模式：直接進入 live mode，每次翻譯完成就印出來，Ctrl+C 結束。"""
    last_printed = [0]
    done = asyncio.Event()

    def on_update(state: PipelineState) -> None:
        if state.committed_seq != last_printed[0]:
            last_printed[0] = state.committed_seq
            print(f"> {state.input_text}\n  [{state.target_language.code}] {state.translated}", flush=True)
        if not state.listening and not done.is_set():
            # 擷取錯誤時 live mode 不會自動重啟
            print("Listening stopped.", file=sys.stderr, flush=True)
            done.set()

    def on_notice(message: str) -> None:
        print(message, file=sys.stderr, flush=True)

    controller.set_listeners(on_update, on_notice)
    print(f"Live: {controller.state.input_language.name} → {controller.state.target_language.name}"
          " (Ctrl+C to stop)", flush=True)
    try:
        if controller.start_live():
            await done.wait()
    finally:
        await controller.shutdown()


async def _run_window(controller: PipelineController, backend_url: str) -> None:
    from ui import TranslatorWindow

    window = TranslatorWindow(controller, backend_url=backend_url)
    controller.set_listeners(window.refresh, window.show_notice)
    try:
        await window.run()
    finally:
        await controller.shutdown()


def main(argv=None) -> None:
    configure_logging()
    config = load_config()
    args = _parse_args(config, argv)

    if args.list_devices:
        devices = list_mic_devices()
        if not devices:
            print("找不到可用的麥克風，將使用系統預設裝置")
        for name in devices:
            print(name)
        return

    if args.save_config:
        save_config({
            **config,
            "backend_url": args.backend_url,
            "asr_server": args.asr_server,
            "mic_device": args.mic_device or "",
            "input_lang": args.input_lang,
            "target_lang": args.target_lang,
            "history_path": args.history_path,
        })

    log.info("backend=%s asr=%s input=%s target=%s",
             args.backend_url, args.asr_server, args.input_lang, args.target_lang)

    async def _amain() -> None:
        controller = build_controller(args, config)
        if args.console:
            await _run_console(controller)
        else:
            await _run_window(controller, args.backend_url)

    try:
        asyncio.run(_amain())
    except KeyboardInterrupt:
        log.info("interrupted")


if __name__ == "__main__":
    main()
