"""
Processing of uploaded recordings: transcription then summarization.

Transcription splits the recording into service-sized segments and is fatal
to the job if the recording cannot be read or the prompt is rejected.
Summarization is best-effort: a failure leaves the job complete with a
transcript and no summary.
"""

import logging
import time
from typing import Any, Callable, Dict

from ..audio import AudioTranscriber, MeetingSummarizer, RecordingSplitter
from ..config import ConfigManager
from ..errors import ScribeError
from .jobs import JobStage, JobStore

logger = logging.getLogger(__name__)

Options = Dict[str, Any]


def build_splitter(options: Options) -> RecordingSplitter:
    """Transcription pipeline for one job's options."""
    transcriber = AudioTranscriber(
        api_key=options.get("api_key"),
        prompt=options.get("prompt"),
        language=options.get("language"),
        translate=bool(options.get("translate", False)),
    )
    return RecordingSplitter(transcriber, bitrate_kbps=options.get("bitrate_kbps"))


def build_summarizer(options: Options) -> MeetingSummarizer:
    """Summarizer for one job's options."""
    kwargs = {
        "api_key": _summary_key(options),
        "model": options.get("llm_model"),
        "base_url": options.get("llm_api_base_url"),
    }
    if options.get("system_prompt"):
        kwargs["system_prompt"] = options["system_prompt"]
    return MeetingSummarizer(**kwargs)


def _summary_key(options: Options):
    return options.get("llm_api_key") or options.get("api_key")


class AudioProcessor:
    """Runs a job's recording through the transcription and summarization stages."""

    def __init__(
        self,
        store: JobStore,
        splitter_factory: Callable[[Options], RecordingSplitter] = build_splitter,
        summarizer_factory: Callable[[Options], MeetingSummarizer] = build_summarizer,
    ):
        self.store = store
        self.splitter_factory = splitter_factory
        self.summarizer_factory = summarizer_factory

    def process(self, job_id: str, recording_path: str, options: Options):
        """
        Transcribe a recording, then summarize the transcript unless disabled.

        Raises:
            ScribeError: If transcription cannot produce a transcript
        """
        started = time.monotonic()

        self.store.set_stage(job_id, JobStage.TRANSCRIBING, 10.0, "Transcribing recording")
        transcript = self.splitter_factory(options).transcribe(recording_path)
        self.store.save_transcript(job_id, transcript)

        if options.get("enable_summarization", True):
            self._summarize(job_id, transcript, options)

        self.store.set_stage(job_id, JobStage.COMPLETE, 100.0, "Done")
        logger.info(f"Job {job_id} completed in {time.monotonic() - started:.1f}s")

    def _summarize(self, job_id: str, transcript: str, options: Options):
        if not transcript.strip():
            self.store.report(job_id, 90.0, "Summary skipped: empty transcript")
            return
        if not (_summary_key(options) or ConfigManager.get("OPENAI_API_KEY")):
            logger.warning(f"No OpenAI API key, job {job_id} gets no summary")
            self.store.report(job_id, 90.0, "Summary skipped: no API key")
            return

        self.store.set_stage(job_id, JobStage.SUMMARIZING, 70.0, "Summarizing transcript")
        try:
            summary = self.summarizer_factory(options).summarize(transcript)
        except ScribeError as e:
            logger.error(f"Summarization failed for job {job_id}: {e}")
            self.store.report(job_id, 90.0, f"Summary failed: {e}")
            return

        if summary:
            self.store.save_summary(job_id, summary)
