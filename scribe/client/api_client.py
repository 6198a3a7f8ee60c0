"""
HTTP client for the batch transcription server.

    client = APIClient("http://localhost:5001")
    job = client.submit("standup.m4a", {"language": "en"})
    result = client.wait(job["job_id"])
    print(result["transcript"])
"""

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

import requests
from requests.exceptions import RequestException

from ..config import ConfigManager

Json = Dict[str, Any]


class JobFailed(RequestException):
    """The server reports that the job failed."""


class APIClient:
    """Thin wrapper over the server's JSON endpoints."""

    def __init__(self, base_url: Optional[str] = None, timeout: float = 30):
        """
        Args:
            base_url: Server root (default: API_BASE_URL)
            timeout: Seconds to wait for each request, uploads excepted
        """
        self.base_url = str(ConfigManager.get("API_BASE_URL", base_url)).rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def _call(self, method: str, path: str, **kwargs) -> Json:
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, self.base_url + path, **kwargs)
            response.raise_for_status()
        except RequestException as e:
            raise RequestException(f"{method} {path} failed: {e}") from e
        return response.json()

    def health(self) -> Json:
        return self._call("GET", "/health")

    def submit(self, file_path: str, options: Optional[Json] = None, timeout: float = 300) -> Json:
        """
        Upload a recording and schedule it.

        Returns:
            {"job_id": ..., "status": "queued"}

        Raises:
            FileNotFoundError: If the recording does not exist
            RequestException: If the upload is refused or fails
        """
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"Recording not found: {path}")

        data = {"options": json.dumps(options)} if options else {}
        with path.open("rb") as recording:
            return self._call("POST", "/jobs", files={"file": (path.name, recording)}, data=data, timeout=timeout)

    def job(self, job_id: str) -> Json:
        return self._call("GET", f"/jobs/{job_id}")

    def jobs(self, status: Optional[str] = None, limit: int = 100, offset: int = 0) -> Json:
        params: Json = {"limit": limit, "offset": offset}
        if status:
            params["status"] = status
        return self._call("GET", "/jobs", params=params)

    def result(self, job_id: str) -> Json:
        return self._call("GET", f"/jobs/{job_id}/result")

    def delete(self, job_id: str) -> Json:
        return self._call("DELETE", f"/jobs/{job_id}")

    def wait(self, job_id: str, poll_interval: float = 5, timeout: float = 3600) -> Json:
        """
        Poll a job until it completes and return its result.

        Raises:
            JobFailed: If the job failed or was cancelled
            TimeoutError: If it is still running after `timeout` seconds
        """
        deadline = time.monotonic() + timeout
        while True:
            job = self.job(job_id)
            if job["status"] == "completed":
                return self.result(job_id)
            if job["status"] == "failed":
                raise JobFailed(f"Job {job_id} failed: {job.get('error', 'unknown error')}")
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Job {job_id} still {job['status']} after {timeout}s")
            time.sleep(poll_interval)


def transcribe_remote(
    file_path: str,
    options: Optional[Json] = None,
    base_url: Optional[str] = None,
    wait: bool = True,
    poll_interval: float = 5,
) -> Json:
    """Submit a recording to the server and, by default, wait for its result."""
    client = APIClient(base_url)
    job = client.submit(file_path, options)
    return client.wait(job["job_id"], poll_interval) if wait else job
