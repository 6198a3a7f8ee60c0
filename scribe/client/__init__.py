"""Client for the batch transcription server."""

from .api_client import APIClient, JobFailed, transcribe_remote

__all__ = ["APIClient", "JobFailed", "transcribe_remote"]
