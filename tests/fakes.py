"""Fakes for the service boundaries: chat client, transcriber, capture device and timer."""

import threading
from types import SimpleNamespace
from typing import List

import numpy as np
import openai

from scribe.errors import TranscriptionFailure


class CharTokenizer:
    """One token per character; lossless and easy to count by hand."""

    def encode(self, text: str) -> List[int]:
        return [ord(c) for c in text]

    def decode(self, tokens: List[int]) -> str:
        return "".join(chr(t) for t in tokens)


class FakeChatClient:
    """Stands in for openai.OpenAI; replies "summary-<n>" and records each request."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, model, messages):
        self.requests.append({"model": model, "messages": [dict(m) for m in messages]})
        call = len(self.requests)
        if call in self.fail_on:
            raise openai.OpenAIError(f"call {call} rate limited")
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=f"summary-{call}"))])


class FakeTranscriber:
    """Returns "text-<n>" per call, or fails on the given call numbers."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []
        self._lock = threading.Lock()

    def transcribe(self, payload: bytes, filename: str = "clip.wav") -> str:
        with self._lock:
            self.calls.append((filename, payload))
            call = len(self.calls)
        if call in self.fail_on:
            raise TranscriptionFailure(f"call {call} failed")
        return f"text-{call}"


class FakeCapture:
    """Capture source that delivers whatever frames the test pushes."""

    def __init__(self, sample_rate=1000, channels=2, frames_per_buffer=100):
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames_per_buffer = frames_per_buffer
        self.callback = None
        self.events = []

    def set_callback(self, callback):
        self.callback = callback

    def open(self):
        self.events.append("open")

    def start(self):
        self.events.append("start")

    def stop(self):
        self.events.append("stop")

    def close(self):
        self.events.append("close")

    def push(self, frame: bytes):
        self.callback(frame)


class FakeTimer:
    """Timer that never fires on its own; tests call flush() directly."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True


def make_frame(amplitude: float, channels: int = 2, frame_size: int = 100, marker: int = 0) -> bytes:
    """Interleaved int16 frame at a constant peak amplitude; `marker` makes frames distinguishable."""
    samples = np.full(frame_size * channels, int(amplitude * 32767), dtype=np.int16)
    samples[0] = marker
    return samples.tobytes()
