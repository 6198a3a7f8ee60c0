"""Tests for the live recording session."""

import re
import threading

import numpy as np
import pytest
import soundfile as sf

from scribe.audio.segmenter import LiveTranscriber

from .fakes import FakeCapture, FakeTimer, FakeTranscriber


@pytest.fixture
def capture():
    return FakeCapture(sample_rate=1000, channels=2, frames_per_buffer=100)


def make_session(capture, transcriber, tmp_path, **kwargs):
    kwargs.setdefault("interval_seconds", 1.0)
    kwargs.setdefault("threshold", 0.02)
    kwargs.setdefault("window_seconds", 0.5)
    return LiveTranscriber(capture, transcriber, output_dir=str(tmp_path), timer_factory=FakeTimer, **kwargs)


def test_flush_transcribes_in_order_and_stop_saves_session(capture, tmp_path, loud_frame):
    transcriber = FakeTranscriber()
    session = make_session(capture, transcriber, tmp_path)
    session.start()

    for _ in range(10):
        capture.push(loud_frame)
    assert session.flush()
    for _ in range(3):
        capture.push(loud_frame)
    assert not session.flush()
    for _ in range(9):
        capture.push(loud_frame)
    assert session.flush()

    path = session.stop()

    assert session.transcript == ["text-1\n", "text-2\n"]
    assert session.text == "text-1\ntext-2\n"
    assert capture.events == ["open", "start", "stop", "close"]
    assert session.timer.started and session.timer.cancelled

    assert path.parent == tmp_path
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}-\d{2}-\d{2}\.wav", path.name)
    audio, rate = sf.read(str(path))
    assert rate == 1000
    assert audio.ndim == 1
    assert len(audio) == 22 * 100


def test_clips_are_mono_wav(capture, tmp_path, loud_frame):
    transcriber = FakeTranscriber()
    session = make_session(capture, transcriber, tmp_path)
    session.start()
    for _ in range(8):
        capture.push(loud_frame)
    session.flush()
    session.stop()

    filename, payload = transcriber.calls[0]
    assert filename == "clip.wav"
    assert payload[:4] == b"RIFF"
    assert payload[8:12] == b"WAVE"


def test_failed_fragment_is_dropped(capture, tmp_path, loud_frame):
    session = make_session(capture, FakeTranscriber(fail_on={1}), tmp_path)
    session.start()
    for _ in range(2):
        for _ in range(10):
            capture.push(loud_frame)
        session.flush()

    path = session.stop()

    assert session.transcript == ["text-2\n"]
    assert path.exists()


def test_fragments_reach_the_callback(capture, tmp_path, loud_frame):
    fragments = []
    session = make_session(capture, FakeTranscriber(), tmp_path, on_fragment=fragments.append)
    session.start()
    for _ in range(10):
        capture.push(loud_frame)
    session.flush()
    session.stop()

    assert fragments == ["text-1\n"]


def test_frames_after_stop_are_ignored(capture, tmp_path, loud_frame):
    session = make_session(capture, FakeTranscriber(), tmp_path)
    session.start()
    capture.push(loud_frame)
    session.stop()

    capture.push(loud_frame)
    assert session.segmenter.session_count == 0
    assert session.segmenter.active_count == 1


def test_stop_without_speech_saves_nothing(capture, tmp_path):
    session = make_session(capture, FakeTranscriber(), tmp_path)
    session.start()

    assert session.stop() is None
    assert list(tmp_path.iterdir()) == []
    assert "close" in capture.events


def test_stop_twice_is_harmless(capture, tmp_path):
    session = make_session(capture, FakeTranscriber(), tmp_path)
    session.start()
    session.stop()
    assert session.stop() is None


class BlockingTranscriber(FakeTranscriber):
    """Holds every call until released."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def transcribe(self, payload, filename="clip.wav"):
        self.started.set()
        self.release.wait(5)
        return super().transcribe(payload, filename)


def test_drop_policy_discards_clips_when_queue_is_full(capture, tmp_path, loud_frame):
    transcriber = BlockingTranscriber()
    session = make_session(capture, transcriber, tmp_path, queue_size=1, queue_policy="drop")
    session.start()

    def emit():
        for _ in range(10):
            capture.push(loud_frame)
        return session.flush()

    assert emit()
    assert transcriber.started.wait(5)
    assert emit()
    assert not emit()

    transcriber.release.set()
    session.stop()

    assert session.transcript == ["text-1\n", "text-2\n"]


def test_unknown_queue_policy_is_rejected(capture, tmp_path):
    with pytest.raises(ValueError):
        make_session(capture, FakeTranscriber(), tmp_path, queue_policy="spill")


def test_stereo_downmix_matches_channel_levels(capture, tmp_path):
    session = make_session(capture, FakeTranscriber(), tmp_path)
    session.start()
    t = np.arange(100) / 1000
    loud = (0.5 * np.sin(2 * np.pi * 50 * t) * 32767).astype(np.int16)
    quiet = (0.05 * np.sin(2 * np.pi * 50 * t) * 32767).astype(np.int16)
    frame = np.column_stack([loud, quiet]).ravel().tobytes()
    for _ in range(3):
        capture.push(frame)

    path = session.stop()
    audio, _ = sf.read(str(path), dtype="float32")

    expected = np.tile(loud.astype(np.float32) / 32768, 3)
    assert np.allclose(audio, expected, atol=5e-3)


class BrokenTranscriber(FakeTranscriber):
    """Fails every call with an error the transcription boundary does not map."""

    def transcribe(self, payload, filename="clip.wav"):
        super().transcribe(payload, filename)
        raise ModuleNotFoundError("No module named 'whisper'")


def test_unexpected_transcriber_error_still_saves_session(capture, tmp_path, loud_frame):
    transcriber = BrokenTranscriber()
    session = make_session(capture, transcriber, tmp_path, queue_size=1)
    session.start()
    for _ in range(3):
        for _ in range(10):
            capture.push(loud_frame)
        assert session.flush()

    path = session.stop()

    assert len(transcriber.calls) == 3
    assert session.transcript == []
    assert path.exists()
    assert not session.worker.is_alive()


def test_failing_callback_keeps_worker_running(capture, tmp_path, loud_frame):
    def callback(fragment):
        raise RuntimeError("display closed")

    session = make_session(capture, FakeTranscriber(), tmp_path, on_fragment=callback)
    session.start()
    for _ in range(2):
        for _ in range(10):
            capture.push(loud_frame)
        session.flush()
    session.stop()

    assert session.transcript == ["text-1\n", "text-2\n"]


def test_restart_begins_a_fresh_transcript(capture, tmp_path, loud_frame):
    session = make_session(capture, FakeTranscriber(), tmp_path)
    session.start()
    for _ in range(10):
        capture.push(loud_frame)
    session.flush()
    session.stop()
    assert session.transcript == ["text-1\n"]

    session.start()
    assert session.transcript == []
    for _ in range(10):
        capture.push(loud_frame)
    session.flush()
    session.stop()

    assert session.text == "text-2\n"
