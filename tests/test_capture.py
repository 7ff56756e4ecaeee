import asyncio
import threading
import time

import numpy as np
import pytest
import requests

import capture
from audio import AudioSource
from capture import (
    CaptureHandle, Ended, FinalTranscript, MicrophoneTranscriptSource,
    RecognitionError, UtteranceEndpointer,
)
from constants import CHUNK_SAMPLES
from errors import CaptureError, Unsupported

LOUD = np.full(CHUNK_SAMPLES, 0.1, dtype=np.float32)
QUIET = np.zeros(CHUNK_SAMPLES, dtype=np.float32)


async def collect(handle: CaptureHandle, timeout: float = 2.0) -> list:
    events = []
    while True:
        event = await asyncio.wait_for(handle.events.get(), timeout)
        events.append(event)
        if isinstance(event, Ended):
            return events


# ---------------------------------------------------------------------------
# CaptureHandle
# ---------------------------------------------------------------------------

def test_handle_emits_one_result_then_end():
    async def scenario():
        handle = CaptureHandle("en-US")
        assert handle.emit_transcript("first")
        assert not handle.emit_transcript("second")
        assert not handle.emit_error("late")
        handle.end()
        handle.end()
        return await collect(handle)

    assert asyncio.run(scenario()) == [FinalTranscript("first"), Ended()]


def test_cancelled_handle_delivers_only_end():
    async def scenario():
        handle = CaptureHandle("en-US")
        handle.cancel()
        assert not handle.active
        assert not handle.emit_transcript("too late")
        handle.end()
        return await collect(handle)

    assert asyncio.run(scenario()) == [Ended()]


# ---------------------------------------------------------------------------
# UtteranceEndpointer
# ---------------------------------------------------------------------------

def test_endpointer_returns_segment_after_trailing_silence():
    ep = UtteranceEndpointer(silence_sec=0.3)
    assert ep.feed(QUIET) is None
    for _ in range(4):
        assert ep.feed(LOUD) is None
    assert ep.feed(QUIET) is None
    assert ep.feed(QUIET) is None
    segment = ep.feed(QUIET)
    # preroll + 4 loud + 3 quiet
    assert segment is not None
    assert len(segment) == 8 * CHUNK_SAMPLES


def test_endpointer_forces_flush_at_max_length():
    ep = UtteranceEndpointer(max_sec=0.5)
    results = [ep.feed(LOUD) for _ in range(5)]
    assert results[:4] == [None] * 4
    assert len(results[4]) == 5 * CHUNK_SAMPLES


def test_endpointer_raises_when_nobody_speaks():
    ep = UtteranceEndpointer(no_speech_sec=0.3)
    ep.feed(QUIET)
    ep.feed(QUIET)
    with pytest.raises(CaptureError, match="no-speech"):
        ep.feed(QUIET)


# ---------------------------------------------------------------------------
# MicrophoneTranscriptSource
# ---------------------------------------------------------------------------

class FakeAudioSource(AudioSource):
    def __init__(self, chunks, stop_delay: float = 0.0):
        self.chunks = chunks
        self.stop_delay = stop_delay
        self.stopped = 0
        self.threads = []

    def start(self, callback):
        self.threads.append(threading.current_thread())
        for chunk in self.chunks:
            callback(chunk)

    def stop(self):
        self.threads.append(threading.current_thread())
        time.sleep(self.stop_delay)
        self.stopped += 1


class FakeASR:
    def __init__(self, result=None, exc=None):
        self.result = result if result is not None else {"language": "English", "text": " hello there "}
        self.exc = exc
        self.calls = []

    def transcribe(self, audio, language=None):
        self.calls.append((len(audio), language))
        if self.exc:
            raise self.exc
        return self.result


class FakeMicSource(MicrophoneTranscriptSource):
    def __init__(self, asr, chunks, stop_delay: float = 0.0, **kwargs):
        super().__init__(asr, **kwargs)
        self.audio = FakeAudioSource(chunks, stop_delay)

    def _check_available(self):
        pass

    def _make_audio_source(self):
        return self.audio


SPEECH = [QUIET, QUIET] + [LOUD] * 5 + [QUIET] * 9


def test_microphone_source_emits_transcript():
    asr = FakeASR()
    source = FakeMicSource(asr, SPEECH)

    async def scenario():
        handle = source.begin("hi-IN")
        return await collect(handle)

    assert asyncio.run(scenario()) == [FinalTranscript("hello there"), Ended()]
    assert asr.calls[0][1] == "hi"
    assert source.audio.stopped >= 1


def test_microphone_source_reports_empty_recognition():
    source = FakeMicSource(FakeASR(result={"text": "  "}), SPEECH)

    async def scenario():
        return await collect(source.begin("en-US"))

    assert asyncio.run(scenario()) == [RecognitionError("no-match"), Ended()]


def test_microphone_source_reports_asr_network_failure():
    source = FakeMicSource(FakeASR(exc=requests.ConnectionError("refused")), SPEECH)

    async def scenario():
        return await collect(source.begin("en-US"))

    events = asyncio.run(scenario())
    assert isinstance(events[0], RecognitionError)
    assert events[0].reason.startswith("network")
    assert events[-1] == Ended()


def test_microphone_source_times_out_without_speech():
    source = FakeMicSource(FakeASR(), [QUIET] * 5, endpointer_kwargs={"no_speech_sec": 0.3})

    async def scenario():
        return await collect(source.begin("en-US"))

    assert asyncio.run(scenario()) == [RecognitionError("no-speech"), Ended()]


def test_cancel_delivers_only_end():
    asr = FakeASR()
    source = FakeMicSource(asr, [])

    async def scenario():
        handle = source.begin("en-US")
        await asyncio.sleep(0)
        source.cancel(handle)
        return await collect(handle)

    assert asyncio.run(scenario()) == [Ended()]
    assert asr.calls == []
    assert source.audio.stopped == 1


def test_cancel_before_task_starts_still_ends():
    source = FakeMicSource(FakeASR(), SPEECH)

    async def scenario():
        handle = source.begin("en-US")
        source.cancel(handle)
        return await collect(handle)

    assert asyncio.run(scenario()) == [Ended()]


def test_device_start_and_stop_run_off_the_event_loop():
    source = FakeMicSource(FakeASR(), SPEECH)

    async def scenario():
        return await collect(source.begin("en-US"))

    asyncio.run(scenario())
    assert source.audio.threads
    assert threading.main_thread() not in source.audio.threads


def test_slow_device_stop_does_not_stall_the_loop():
    source = FakeMicSource(FakeASR(), [], stop_delay=0.3)
    ticks = []

    async def ticker():
        while True:
            ticks.append(None)
            await asyncio.sleep(0.01)

    async def scenario():
        handle = source.begin("en-US")
        await asyncio.sleep(0.02)
        tick_task = asyncio.create_task(ticker())
        source.cancel(handle)
        events = await collect(handle)
        tick_task.cancel()
        return events

    assert asyncio.run(scenario()) == [Ended()]
    assert source.audio.stopped == 1
    # stop() 睡 0.3s 的期間 ticker 仍持續執行
    assert len(ticks) >= 10


def test_begin_raises_unsupported_without_input_device(monkeypatch):
    def no_device(device=None):
        raise OSError("PortAudio library not found")

    monkeypatch.setattr(capture, "query_input_device", no_device)
    source = MicrophoneTranscriptSource(FakeASR())

    async def scenario():
        source.begin("en-US")

    with pytest.raises(Unsupported):
        asyncio.run(scenario())
