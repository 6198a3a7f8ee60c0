"""
Audio capture, transcription and summarization.

This package records speech from the default input device, transcribes it
through the OpenAI speech-to-text API while recording, transcribes long
recordings in service-sized segments, and summarizes transcripts of any
length with the chat completion API.

Main components:
- CaptureSource: Default input device as an open/start/stop/close handle
- Segmenter / LiveTranscriber: Silence gating, periodic emission, session audio
- RecordingSplitter: Duration-based splitting of long recordings
- AudioTranscriber: Speech-to-text boundary
- MeetingSummarizer: Chunked, context-carrying summarization

Example usage:
    from scribe.audio import AudioTranscriber, CaptureSource, LiveTranscriber

    session = LiveTranscriber(CaptureSource(), AudioTranscriber(language="en"))
    session.start()
    ...
    audio_path = session.stop()
    print(session.text)
"""

from .capture import CaptureSource, list_devices
from .segmenter import LiveTranscriber, PeriodicTimer, Segmenter, VolumeHistory
from .splitter import FFmpegTranscoder, RecordingSplitter, Segment, plan_segments
from .summarizer import MeetingSummarizer, split_text_into_prompts, summarize_transcript
from .transcription import AudioTranscriber, LocalWhisperTranscriber
from .utils import encode_wav, format_timestamp, frames_to_wav, peak_amplitude, pcm_to_mono

__all__ = [
    "CaptureSource",
    "list_devices",
    "LiveTranscriber",
    "PeriodicTimer",
    "Segmenter",
    "VolumeHistory",
    "FFmpegTranscoder",
    "RecordingSplitter",
    "Segment",
    "plan_segments",
    "MeetingSummarizer",
    "split_text_into_prompts",
    "summarize_transcript",
    "AudioTranscriber",
    "LocalWhisperTranscriber",
    "encode_wav",
    "format_timestamp",
    "frames_to_wav",
    "peak_amplitude",
    "pcm_to_mono",
]
