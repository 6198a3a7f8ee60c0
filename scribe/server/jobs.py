"""
Filesystem-backed store for batch transcription jobs.

One directory per job:

    <jobs_dir>/<job_id>/
        job.json          identity, options, stage, status, progress
        recording.<ext>   the uploaded recording
        transcript.txt    written once transcription finishes
        summary.txt       written if summarization produced anything
        error.txt         the failure reason, if the job failed

The job's status is derived from its stage, so the two never disagree.
"""

import json
import shutil
import threading
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


class JobStage(Enum):
    """Processing stages for a job."""

    NOT_STARTED = "not_started"
    TRANSCRIBING = "transcribing"
    TRANSCRIPTION_COMPLETE = "transcription_complete"
    SUMMARIZING = "summarizing"
    COMPLETE = "complete"
    FAILED = "failed"


class JobStatus(Enum):
    """Overall job status, as reported to clients."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


STAGE_STATUS = {
    JobStage.NOT_STARTED: JobStatus.QUEUED,
    JobStage.TRANSCRIBING: JobStatus.PROCESSING,
    JobStage.TRANSCRIPTION_COMPLETE: JobStatus.PROCESSING,
    JobStage.SUMMARIZING: JobStatus.PROCESSING,
    JobStage.COMPLETE: JobStatus.COMPLETED,
    JobStage.FAILED: JobStatus.FAILED,
}

JOB_FILE = "job.json"
TRANSCRIPT_FILE = "transcript.txt"
SUMMARY_FILE = "summary.txt"
ERROR_FILE = "error.txt"

# Options that are never written to disk or returned to clients
CREDENTIAL_OPTIONS = ("api_key", "llm_api_key")


def _now() -> str:
    return datetime.now().isoformat()


def split_credentials(options: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Separate API keys from the rest of the upload options."""
    public = {key: value for key, value in options.items() if key not in CREDENTIAL_OPTIONS}
    credentials = {key: value for key, value in options.items() if key in CREDENTIAL_OPTIONS}
    return public, credentials


class JobStore:
    """Create, update and query jobs on disk. Safe to share between threads."""

    def __init__(self, jobs_dir: str = "server_jobs"):
        self.root = Path(jobs_dir)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def job_dir(self, job_id: str) -> Path:
        return self.root / job_id

    def exists(self, job_id: str) -> bool:
        return (self.job_dir(job_id) / JOB_FILE).is_file()

    def create(self, filename: str, size: int, options: Optional[Dict[str, Any]] = None) -> str:
        """Register a new queued job and return its id."""
        job_id = uuid.uuid4().hex
        self.job_dir(job_id).mkdir()
        created = _now()
        self._write_job(
            job_id,
            {
                "id": job_id,
                "filename": filename,
                "size": size,
                "options": split_credentials(options or {})[0],
                "stage": JobStage.NOT_STARTED.value,
                "status": JobStatus.QUEUED.value,
                "progress": 0.0,
                "message": "Queued",
                "created_at": created,
                "updated_at": created,
            },
        )
        return job_id

    def attach_recording(self, job_id: str, source_path: str) -> Path:
        """Copy an uploaded recording into the job, keeping its extension."""
        target = self.job_dir(job_id) / f"recording{Path(source_path).suffix.lower()}"
        shutil.copyfile(source_path, target)
        self._update(job_id, recording=target.name)
        return target

    def recording_path(self, job_id: str) -> Optional[Path]:
        job = self.get(job_id)
        if not job or not job.get("recording"):
            return None
        path = self.job_dir(job_id) / job["recording"]
        return path if path.is_file() else None

    def set_stage(self, job_id: str, stage: JobStage, progress: Optional[float] = None, message: str = ""):
        """Move a job to a stage; status and timestamps follow from it."""
        fields: Dict[str, Any] = {"stage": stage.value, "status": STAGE_STATUS[stage].value}
        if progress is not None:
            fields["progress"] = progress
        if message:
            fields["message"] = message
        if stage is JobStage.COMPLETE:
            fields["completed_at"] = _now()
        elif stage is JobStage.FAILED:
            fields["failed_at"] = _now()
        self._update(job_id, **fields)

    def report(self, job_id: str, progress: float, message: str):
        """Record progress without changing the stage."""
        self._update(job_id, progress=progress, message=message)

    def save_transcript(self, job_id: str, transcript: str):
        self._write_text(job_id, TRANSCRIPT_FILE, transcript)
        self.set_stage(job_id, JobStage.TRANSCRIPTION_COMPLETE, 60.0, "Transcription completed")

    def save_summary(self, job_id: str, summary: str):
        self._write_text(job_id, SUMMARY_FILE, summary)

    def fail(self, job_id: str, reason: str):
        """Mark a job failed and keep the reason."""
        self._write_text(job_id, ERROR_FILE, reason)
        self.set_stage(job_id, JobStage.FAILED, message=reason)

    def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        """The job record, or None if there is no such job."""
        text = self._read_text(job_id, JOB_FILE)
        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return None

    def transcript(self, job_id: str) -> Optional[str]:
        return self._read_text(job_id, TRANSCRIPT_FILE)

    def summary(self, job_id: str) -> Optional[str]:
        return self._read_text(job_id, SUMMARY_FILE)

    def error(self, job_id: str) -> Optional[str]:
        return self._read_text(job_id, ERROR_FILE)

    def result(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Job record plus its transcript, summary and error."""
        job = self.get(job_id)
        if job is None:
            return None
        return {
            "job": job,
            "transcript": self.transcript(job_id) or "",
            "summary": self.summary(job_id),
            "error": self.error(job_id),
        }

    def list(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """All jobs, newest first, optionally only those with the given status."""
        jobs = []
        for entry in self.root.iterdir():
            job = self.get(entry.name) if entry.is_dir() else None
            if job and (status is None or job["status"] == status):
                jobs.append(job)
        return sorted(jobs, key=lambda job: job["created_at"], reverse=True)

    def delete(self, job_id: str) -> bool:
        with self._lock:
            if not self.job_dir(job_id).is_dir():
                return False
            shutil.rmtree(self.job_dir(job_id))
        return True

    def _update(self, job_id: str, **fields: Any):
        with self._lock:
            job = self.get(job_id)
            if job is None:
                raise KeyError(f"Unknown job {job_id}")
            job.update(fields, updated_at=_now())
            self._write_job(job_id, job)

    def _write_job(self, job_id: str, job: Dict[str, Any]):
        self._write_text(job_id, JOB_FILE, json.dumps(job, ensure_ascii=False, indent=2))

    def _write_text(self, job_id: str, name: str, text: str):
        with self._lock:
            (self.job_dir(job_id) / name).write_text(text, encoding="utf-8")

    def _read_text(self, job_id: str, name: str) -> Optional[str]:
        path = self.job_dir(job_id) / name
        with self._lock:
            if not path.is_file():
                return None
            return path.read_text(encoding="utf-8")
