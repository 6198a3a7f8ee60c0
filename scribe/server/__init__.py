"""
Batch transcription server.

Uploaded recordings become jobs on disk; a pool of workers transcribes and
summarizes them; clients poll for the result.
"""

from .app import create_app, run_server
from .jobs import JobStage, JobStatus, JobStore
from .processor import AudioProcessor
from .runner import JobRunner

__all__ = ["create_app", "run_server", "JobStore", "JobStage", "JobStatus", "JobRunner", "AudioProcessor"]
