"""
Live capture segmentation and streaming transcription.

The Segmenter is the voice-activity and buffering state machine. Every frame
from the capture callback updates a trailing volume history; frames that are
part of a silent stretch are dropped, all others are kept in two buffers:

- the active buffer, drained by the periodic emission flush and sent for
  transcription;
- the session buffer, drained once at stop and saved as the session's audio.

LiveTranscriber wires a CaptureSource, a Segmenter, a periodic timer and a
transcription worker together. Clips pass from the timer thread to the
worker through a bounded queue; the single worker keeps the transcript in
emission order.
"""

import logging
import math
import queue
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Deque, List, Optional

from ..config import ConfigManager
from ..errors import EmptyBufferError, TranscriptionFailure
from .transcription import Transcriber
from .utils import frames_to_wav, peak_amplitude, session_filename

logger = logging.getLogger(__name__)

# A flush needs at least this share of one interval's worth of frames
MIN_FILL_RATIO = 0.8


class VolumeHistory:
    """Fixed-capacity FIFO of per-frame peak amplitudes."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"Volume history capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._values: Deque[float] = deque(maxlen=capacity)

    def push(self, value: float):
        self._values.append(value)

    def __len__(self) -> int:
        return len(self._values)

    def recent(self, count: int) -> List[float]:
        return list(self._values)[-count:]


class Segmenter:
    """
    Classify frames as silent or active and hold the kept frames.

    A frame is silent when the history holds at least window_frames values
    and all of the most recent window_frames are below the threshold. Silent
    frames are never stored.

    on_frame() runs on the capture thread while the drains run on the timer
    and control threads; each buffer has its own lock and a drain swaps the
    whole list out under it, so a frame lands in exactly one drain.
    """

    def __init__(
        self,
        sample_rate: int,
        frame_size: int,
        channels: int,
        threshold: float = 0.02,
        window_seconds: float = 1.0,
    ):
        """
        Args:
            sample_rate: Capture sample rate in Hz
            frame_size: Samples per channel in each frame
            channels: Interleaved channel count
            threshold: Peak amplitude below which a frame counts as quiet
            window_seconds: Length of the trailing window that must be quiet
        """
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.channels = channels
        self.threshold = threshold
        self.window_frames = math.ceil(sample_rate / frame_size * window_seconds)

        self.history = VolumeHistory(self.window_frames)
        self._active: List[bytes] = []
        self._session: List[bytes] = []
        self._active_lock = threading.Lock()
        self._session_lock = threading.Lock()
        self._accepting = True

    @property
    def accepting(self) -> bool:
        return self._accepting

    def close(self):
        """Stop accepting frames."""
        self._accepting = False

    def is_silent(self) -> bool:
        """True when the whole trailing window is below the threshold."""
        if len(self.history) < self.window_frames:
            return False
        return all(level < self.threshold for level in self.history.recent(self.window_frames))

    def on_frame(self, frame: bytes) -> bool:
        """
        Process one captured frame.

        Returns:
            True if the frame was kept, False if it was dropped
        """
        if not self._accepting:
            return False

        with self._active_lock:
            self.history.push(peak_amplitude(frame))
            if self.is_silent():
                return False
            self._active.append(frame)

        with self._session_lock:
            self._session.append(frame)
        return True

    def frames_per_interval(self, interval_seconds: float) -> float:
        return self.sample_rate / self.frame_size * interval_seconds

    @property
    def active_count(self) -> int:
        with self._active_lock:
            return len(self._active)

    @property
    def session_count(self) -> int:
        with self._session_lock:
            return len(self._session)

    def drain_active(self) -> List[bytes]:
        """Take every frame in the active buffer and leave it empty."""
        with self._active_lock:
            frames, self._active = self._active, []
        return frames

    def take_ready(self, interval_seconds: float) -> Optional[List[bytes]]:
        """
        Drain the active buffer if it holds enough audio for one emission.

        Returns:
            The drained frames, or None if the buffer is below the fill ratio
            and was left to accumulate
        """
        needed = MIN_FILL_RATIO * self.frames_per_interval(interval_seconds)
        with self._active_lock:
            if len(self._active) < needed:
                return None
            frames, self._active = self._active, []
        return frames

    def drain_session(self) -> List[bytes]:
        """Take every frame in the session buffer and leave it empty."""
        with self._session_lock:
            frames, self._session = self._session, []
        return frames


class PeriodicTimer:
    """Call a function every `interval` seconds on a background thread until cancelled."""

    def __init__(self, interval: float, function: Callable[[], None]):
        self.interval = interval
        self.function = function
        self._cancelled = threading.Event()
        self._thread = threading.Thread(target=self._run, name="flush-timer", daemon=True)

    def start(self):
        self._thread.start()

    def cancel(self):
        """Stop ticking; returns after any running tick has finished."""
        self._cancelled.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join()

    def _run(self):
        while not self._cancelled.wait(self.interval):
            try:
                self.function()
            except Exception:
                logger.exception("Periodic flush failed")


class LiveTranscriber:
    """
    Record from a capture source and transcribe it while it is recording.

    Every interval the active buffer is flushed to a WAV clip (if it holds
    enough speech) and queued for transcription. The returned text, plus a
    newline, is appended to the transcript. A failed transcription is logged
    and its text is lost. On stop, the session buffer is saved as a WAV file
    named from the UTC stop time.
    """

    def __init__(
        self,
        capture,
        transcriber: Transcriber,
        output_dir: Optional[str] = None,
        interval_seconds: Optional[float] = None,
        threshold: Optional[float] = None,
        window_seconds: Optional[float] = None,
        queue_size: Optional[int] = None,
        queue_policy: Optional[str] = None,
        timer_factory: Callable[[float, Callable[[], None]], PeriodicTimer] = PeriodicTimer,
        on_fragment: Optional[Callable[[str], None]] = None,
    ):
        """
        Args:
            capture: CaptureSource (or anything with the same lifecycle)
            transcriber: Speech-to-text boundary
            output_dir: Where the session audio is saved (default: OUTPUT_DIR)
            interval_seconds: Emission flush interval (default: EMIT_INTERVAL_SECONDS)
            threshold: Silence threshold (default: SILENCE_THRESHOLD)
            window_seconds: Silence window (default: SILENCE_WINDOW_SECONDS)
            queue_size: Clips that may wait for transcription (default: CLIP_QUEUE_SIZE)
            queue_policy: "block" or "drop" when the clip queue is full
            timer_factory: Builds the periodic flush timer
            on_fragment: Called from the worker thread with each new fragment
        """
        self.capture = capture
        self.transcriber = transcriber
        self.output_dir = Path(ConfigManager.get("OUTPUT_DIR", output_dir))
        self.interval_seconds = ConfigManager.get_float("EMIT_INTERVAL_SECONDS", interval_seconds)
        self.threshold = ConfigManager.get_float("SILENCE_THRESHOLD", threshold)
        self.window_seconds = ConfigManager.get_float("SILENCE_WINDOW_SECONDS", window_seconds)
        self.queue_policy = str(ConfigManager.get("CLIP_QUEUE_POLICY", queue_policy)).lower()
        if self.queue_policy not in ("block", "drop"):
            raise ValueError(f"Unknown clip queue policy: {self.queue_policy}")

        self.segmenter: Optional[Segmenter] = None
        self.clips: queue.Queue = queue.Queue(maxsize=ConfigManager.get_int("CLIP_QUEUE_SIZE", queue_size))
        self.timer_factory = timer_factory
        self.on_fragment = on_fragment
        self.timer = None
        self.worker: Optional[threading.Thread] = None
        self.is_running = False

        self._transcript: List[str] = []
        self._transcript_lock = threading.Lock()

    @property
    def transcript(self) -> List[str]:
        """Transcript fragments received so far, in emission order."""
        with self._transcript_lock:
            return list(self._transcript)

    @property
    def text(self) -> str:
        return "".join(self.transcript)

    def start(self):
        """Open the device and begin recording."""
        if self.is_running:
            logger.warning("Live transcription is already running")
            return

        with self._transcript_lock:
            self._transcript = []
        self.capture.set_callback(self._on_frame)
        self.capture.open()
        self.segmenter = Segmenter(
            sample_rate=self.capture.sample_rate,
            frame_size=self.capture.frames_per_buffer,
            channels=self.capture.channels,
            threshold=self.threshold,
            window_seconds=self.window_seconds,
        )

        self.worker = threading.Thread(target=self._transcribe_worker, name="transcriber", daemon=True)
        self.worker.start()
        self.timer = self.timer_factory(self.interval_seconds, self.flush)
        self.timer.start()
        self.is_running = True
        self.capture.start()
        logger.info(f"Recording started, flushing every {self.interval_seconds:g}s")

    def _on_frame(self, frame: bytes):
        if self.segmenter is not None:
            self.segmenter.on_frame(frame)

    def flush(self) -> bool:
        """
        Emit the active buffer if it holds enough audio.

        Returns:
            True if a clip was queued for transcription
        """
        frames = self.segmenter.take_ready(self.interval_seconds)
        if frames is None:
            return False

        try:
            clip = frames_to_wav(frames, self.segmenter.channels, self.segmenter.sample_rate)
        except EmptyBufferError as e:
            logger.warning(f"Skipping clip: {e}")
            return False

        if self.queue_policy == "drop":
            try:
                self.clips.put_nowait(clip)
            except queue.Full:
                logger.warning(f"Transcription queue full, dropped a clip of {len(frames)} frames")
                return False
        else:
            self.clips.put(clip)
        return True

    def _transcribe_worker(self):
        """Transcribe queued clips in order until the stop sentinel arrives."""
        while True:
            clip = self.clips.get()
            if clip is None:
                break
            try:
                text = self.transcriber.transcribe(clip, filename="clip.wav")
            except TranscriptionFailure as e:
                logger.warning(f"Dropped transcript fragment: {e}")
                continue
            except Exception:
                logger.exception("Unexpected error transcribing fragment, dropped it")
                continue
            fragment = text + "\n"
            with self._transcript_lock:
                self._transcript.append(fragment)
            logger.debug(f"Transcribed fragment: {text}")
            if self.on_fragment is not None:
                try:
                    self.on_fragment(fragment)
                except Exception:
                    logger.exception("Fragment callback failed")

    def stop(self) -> Optional[Path]:
        """
        Stop recording and save the session audio.

        Frames stop being accepted and the timer is cancelled first. Clips
        already queued are still transcribed. The session audio is saved even
        if that fails.

        Returns:
            Path of the saved session audio, or None if nothing was kept
        """
        if not self.is_running:
            return None
        self.is_running = False

        try:
            self.segmenter.close()
            self.capture.stop()
            self.timer.cancel()
            self.clips.put(None)
            self.worker.join()
        finally:
            try:
                path = self._save_session()
            finally:
                self.capture.close()

        logger.info(f"Recording stopped with {len(self.transcript)} transcript fragment(s)")
        return path

    def _save_session(self) -> Optional[Path]:
        frames = self.segmenter.drain_session()
        if not frames:
            logger.warning("No speech was captured, session audio not saved")
            return None

        audio = frames_to_wav(frames, self.segmenter.channels, self.segmenter.sample_rate)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / session_filename()
        path.write_bytes(audio)
        logger.info(f"Saved session audio to {path}")
        return path
