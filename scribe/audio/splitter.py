"""
Offline transcription of long recordings.

A recording that may be larger than the speech service accepts is cut by
duration into equal segments, each short enough that its transcode at the
target bitrate fits the payload limit. Segments are transcoded and
transcribed in parallel; the texts are joined in segment order.

Probing and transcoding shell out to ffprobe/ffmpeg, which must be on PATH.
"""

import logging
import math
import shutil
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Protocol

from ..config import ConfigManager
from ..errors import SourceUnreadableError, TranscriptionFailure
from .transcription import Transcriber
from .utils import format_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Segment:
    """One time range of the source recording."""

    index: int
    start: float
    duration: float


class Transcoder(Protocol):
    """Probing and transcoding service."""

    def probe_duration(self, file_path: str) -> float: ...

    def transcode(self, file_path: str, start: float, duration: float, bitrate_kbps: int, fmt: str) -> bytes: ...


class FFmpegTranscoder:
    """Transcoder backed by the ffmpeg and ffprobe executables."""

    def __init__(self, ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe"):
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe

    def _ensure(self, executable: str):
        if shutil.which(executable) is None:
            raise SourceUnreadableError(f"{executable} not found in PATH. Install ffmpeg to process recordings.")

    def probe_duration(self, file_path: str) -> float:
        """
        Total duration of a media file in seconds.

        Raises:
            SourceUnreadableError: If the file cannot be probed
        """
        self._ensure(self.ffprobe)
        cmd = [
            self.ffprobe,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            file_path,
        ]
        try:
            result = subprocess.run(cmd, check=True, capture_output=True, text=True)
            return float(result.stdout.strip())
        except subprocess.CalledProcessError as e:
            raise SourceUnreadableError(f"Could not probe {file_path}: {e.stderr.strip()}") from e
        except ValueError as e:
            raise SourceUnreadableError(f"{file_path} has no readable duration") from e

    def transcode(self, file_path: str, start: float, duration: float, bitrate_kbps: int, fmt: str = "mp3") -> bytes:
        """
        Transcode a time range of a media file and return the encoded bytes.

        Raises:
            SourceUnreadableError: If ffmpeg fails
        """
        self._ensure(self.ffmpeg)
        cmd = [
            self.ffmpeg,
            "-v",
            "error",
            "-ss",
            f"{start:.3f}",
            "-t",
            f"{duration:.3f}",
            "-i",
            file_path,
            "-vn",
            "-b:a",
            f"{bitrate_kbps}k",
            "-f",
            fmt,
            "pipe:1",
        ]
        try:
            result = subprocess.run(cmd, check=True, capture_output=True)
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode("utf-8", errors="replace").strip()
            raise SourceUnreadableError(f"ffmpeg failed on {file_path} at {start:.1f}s: {stderr}") from e
        return result.stdout


def max_segment_seconds(payload_size_limit: int, bitrate_kbps: int) -> int:
    """Longest duration whose transcode at `bitrate_kbps` fits in the payload limit."""
    seconds = math.floor(payload_size_limit / (bitrate_kbps * 1024 / 8))
    if seconds < 1:
        raise ValueError(f"A {payload_size_limit} byte limit cannot hold one second at {bitrate_kbps} kbps")
    return seconds


def plan_segments(total_duration: float, payload_size_limit: int, bitrate_kbps: int) -> List[Segment]:
    """
    Divide a recording into equal segments that each fit the payload limit.

    Args:
        total_duration: Recording length in seconds
        payload_size_limit: Largest payload accepted by the speech service, in bytes
        bitrate_kbps: Transcode bitrate

    Returns:
        Segments in time order
    """
    if total_duration <= 0:
        return []
    count = math.ceil(total_duration / max_segment_seconds(payload_size_limit, bitrate_kbps))
    length = total_duration / count
    return [Segment(index=i, start=i * length, duration=length) for i in range(count)]


class RecordingSplitter:
    """Transcribe a recording of any length by splitting it into service-sized segments."""

    def __init__(
        self,
        transcriber: Transcriber,
        transcoder: Optional[Transcoder] = None,
        payload_size_limit: Optional[int] = None,
        bitrate_kbps: Optional[int] = None,
        fmt: str = "mp3",
        max_workers: Optional[int] = None,
    ):
        """
        Args:
            transcriber: Speech-to-text boundary
            transcoder: Probing/transcoding service (default: ffmpeg)
            payload_size_limit: Bytes per request (default: PAYLOAD_SIZE_LIMIT)
            bitrate_kbps: Segment bitrate (default: SEGMENT_BITRATE_KBPS)
            fmt: Segment container format
            max_workers: Segments transcribed at once (default: SPLITTER_MAX_WORKERS)
        """
        self.transcriber = transcriber
        self.transcoder = transcoder or FFmpegTranscoder()
        self.payload_size_limit = ConfigManager.get_int("PAYLOAD_SIZE_LIMIT", payload_size_limit)
        self.bitrate_kbps = ConfigManager.get_int("SEGMENT_BITRATE_KBPS", bitrate_kbps)
        self.fmt = fmt
        self.max_workers = ConfigManager.get_int("SPLITTER_MAX_WORKERS", max_workers)

    def plan(self, file_path: str) -> List[Segment]:
        """Probe the recording and lay out its segments."""
        total = self.transcoder.probe_duration(file_path)
        segments = plan_segments(total, self.payload_size_limit, self.bitrate_kbps)
        logger.info(f"{file_path}: {total:.1f}s in {len(segments)} segment(s)")
        return segments

    def _transcribe_segment(self, file_path: str, segment: Segment) -> str:
        payload = self.transcoder.transcode(file_path, segment.start, segment.duration, self.bitrate_kbps, self.fmt)
        try:
            text = self.transcriber.transcribe(payload, filename=f"segment-{segment.index:03d}.{self.fmt}")
        except TranscriptionFailure as e:
            logger.warning(f"Segment {segment.index} skipped: {e}")
            return ""
        logger.info(f"Segment {segment.index} at {format_timestamp(segment.start)} transcribed ({len(payload)} bytes)")
        return text

    def transcribe(self, file_path: str) -> str:
        """
        Transcribe a recording segment by segment.

        Returns:
            Segment texts joined by newlines, in time order

        Raises:
            SourceUnreadableError: If the recording cannot be probed or read
        """
        segments = self.plan(file_path)
        if not segments:
            return ""

        workers = max(1, min(self.max_workers, len(segments)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            texts = list(executor.map(lambda s: self._transcribe_segment(file_path, s), segments))
        return "\n".join(texts)
