"""
Utility functions for audio processing.

This module converts raw capture frames into the encoded clips handed to the
transcription service, and provides the small helpers shared by the live
and offline paths.

Key features:
- Peak amplitude of a PCM frame (voice-activity input)
- RMS gain-matched downmix of interleaved int16 PCM to mono float32
- Lossless float WAV encoding
- Timestamp and artifact file naming
"""

import io
from datetime import datetime, timezone
from typing import List, Optional

import numpy as np
import soundfile as sf

from ..errors import EmptyBufferError

INT16_SCALE = 32768.0


def format_timestamp(seconds: float) -> str:
    """
    Format seconds as MM:SS or HH:MM:SS.

    Args:
        seconds: Time in seconds

    Returns:
        Formatted time string
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def session_filename(stopped_at: Optional[datetime] = None, extension: str = "wav") -> str:
    """Name of the saved session audio, from the UTC stop time (YYYY-MM-DD-HH-mm)."""
    stopped_at = stopped_at or datetime.now(timezone.utc)
    return f"{stopped_at.astimezone(timezone.utc).strftime('%Y-%m-%d-%H-%M')}.{extension}"


def peak_amplitude(frame: bytes) -> float:
    """
    Peak normalized amplitude of an interleaved int16 frame.

    The peak is taken over every sample of every channel, so a frame counts
    as loud when any channel is loud.

    Returns:
        Value in [0, 1]
    """
    samples = np.frombuffer(frame, dtype=np.int16)
    if samples.size == 0:
        return 0.0
    # int32 so that abs(-32768) does not overflow
    return float(np.abs(samples.astype(np.int32)).max()) / INT16_SCALE


def split_channels(pcm: bytes, channels: int) -> np.ndarray:
    """
    Deinterleave int16 PCM into a (channels, samples) float32 array in [-1, 1].

    Raises:
        EmptyBufferError: If there are no complete sample frames
    """
    samples = np.frombuffer(pcm, dtype=np.int16)
    usable = samples.size - samples.size % channels
    if usable == 0:
        raise EmptyBufferError("Cannot convert an empty audio buffer")
    audio = samples[:usable].reshape(-1, channels).T
    return audio.astype(np.float32) / INT16_SCALE


def pcm_to_mono(frames: List[bytes], channels: int) -> np.ndarray:
    """
    Downmix interleaved int16 frames to a single mono float32 stream.

    Each channel is gain-matched to the loudest one before averaging: a
    channel's samples are scaled by max_rms / channel_rms. Naive averaging
    would attenuate a quiet input (a far microphone) relative to a loud one.

    The gain is not clamped. A channel that is nearly silent apart from a
    brief loud burst gets a very large gain and may clip. Channels with zero
    RMS are left as silence.

    Args:
        frames: Captured frames, in order
        channels: Number of interleaved channels

    Returns:
        Mono audio as float32 array

    Raises:
        EmptyBufferError: If no audio was captured
    """
    if channels < 1:
        raise ValueError(f"Channel count must be positive, got {channels}")

    audio = split_channels(b"".join(frames), channels)

    rms = np.sqrt(np.mean(np.square(audio, dtype=np.float64), axis=1))
    max_rms = rms.max()
    gains = np.ones_like(rms)
    nonzero = rms > 0
    gains[nonzero] = max_rms / rms[nonzero]

    scaled = audio * gains[:, np.newaxis].astype(np.float32)
    return scaled.mean(axis=0).astype(np.float32)


def encode_wav(audio: np.ndarray, sample_rate: int) -> bytes:
    """
    Encode a mono float stream as a 32-bit float WAV file.

    Args:
        audio: Mono audio (float32)
        sample_rate: Sample rate in Hz

    Returns:
        WAV file contents
    """
    if audio.size == 0:
        raise EmptyBufferError("Cannot encode an empty audio stream")

    buffer = io.BytesIO()
    sf.write(buffer, audio, sample_rate, format="WAV", subtype="FLOAT")
    return buffer.getvalue()


def frames_to_wav(frames: List[bytes], channels: int, sample_rate: int) -> bytes:
    """Convert captured frames straight to an encoded mono WAV clip."""
    return encode_wav(pcm_to_mono(frames, channels), sample_rate)


def decode_wav(payload: bytes) -> tuple[np.ndarray, int]:
    """
    Decode WAV bytes to a mono float32 array.

    Returns:
        Tuple of (audio, sample_rate)
    """
    audio, rate = sf.read(io.BytesIO(payload), dtype="float32", always_2d=False)
    if audio.ndim == 2:
        audio = audio.mean(axis=1)
    return audio, rate


def resample(audio: np.ndarray, rate: int, target_rate: int) -> np.ndarray:
    """Linear resampling, enough for feeding speech models."""
    if rate == target_rate or audio.size == 0:
        return audio
    target_length = int(len(audio) / rate * target_rate)
    return np.interp(
        np.linspace(0, len(audio), target_length, endpoint=False, dtype=np.float32),
        np.arange(len(audio), dtype=np.float32),
        audio,
    ).astype(np.float32)
