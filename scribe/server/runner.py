"""
Background execution of transcription jobs.

Jobs run on a fixed ThreadPoolExecutor; jobs waiting for a free worker sit in
the executor's own work queue and can still be cancelled.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Optional

from .jobs import JobStore
from .processor import AudioProcessor

logger = logging.getLogger(__name__)


class JobRunner:
    """Runs jobs from a JobStore on a pool of worker threads."""

    def __init__(self, store: JobStore, max_workers: int = 2, processor: Optional[AudioProcessor] = None):
        """
        Args:
            store: Where jobs and their results live
            max_workers: Jobs processed at the same time
            processor: Runs one job's stages (default: AudioProcessor over store)
        """
        self.store = store
        self.max_workers = max_workers
        self.processor = processor or AudioProcessor(store)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._futures: Dict[str, Future] = {}
        self._credentials: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()

    @property
    def is_running(self) -> bool:
        return self._executor is not None

    def start(self):
        if self.is_running:
            return
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="job")
        logger.info(f"Job runner started with {self.max_workers} worker(s)")

    def shutdown(self):
        """Cancel jobs that have not started and wait for the running ones."""
        with self._lock:
            executor, self._executor = self._executor, None
            for future in self._futures.values():
                future.cancel()
        if executor is not None:
            executor.shutdown(wait=True)
            logger.info("Job runner stopped")

    def submit(self, job_id: str, credentials: Optional[Dict[str, Any]] = None) -> bool:
        """
        Schedule a job.

        Args:
            job_id: Job to run
            credentials: API keys for this job; held in memory only

        Returns:
            False if the runner is stopped or the job is already scheduled
        """
        with self._lock:
            if self._executor is None:
                logger.error(f"Job {job_id} not scheduled: runner is stopped")
                return False
            if job_id in self._futures:
                return False
            if credentials:
                self._credentials[job_id] = dict(credentials)
            future = self._executor.submit(self._run, job_id)
            self._futures[job_id] = future
        future.add_done_callback(lambda done, job_id=job_id: self._forget(job_id, done))
        return True

    def cancel(self, job_id: str) -> bool:
        """Cancel a job that is still waiting for a worker."""
        with self._lock:
            future = self._futures.get(job_id)
            if future is None or not future.cancel():
                return False
        if self.store.exists(job_id):
            self.store.fail(job_id, "Cancelled")
        logger.info(f"Job {job_id} cancelled")
        return True

    def wait(self, job_id: str, timeout: Optional[float] = None):
        """Block until a scheduled job has finished; returns at once for unknown jobs."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.exception(timeout=timeout)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            running = [job_id for job_id, future in self._futures.items() if future.running()]
            waiting = len(self._futures) - len(running)
        return {"is_running": self.is_running, "waiting": waiting, "running": running, "max_workers": self.max_workers}

    def _forget(self, job_id: str, future: Future):
        with self._lock:
            self._futures.pop(job_id, None)
            self._credentials.pop(job_id, None)
        if not future.cancelled() and future.exception() is None:
            logger.info(f"Job {job_id} finished")

    def _run(self, job_id: str):
        recording = self.store.recording_path(job_id)
        job = self.store.get(job_id)
        try:
            if job is None or recording is None:
                raise FileNotFoundError(f"Job {job_id} has no recording")
            with self._lock:
                credentials = self._credentials.get(job_id, {})
            options = {**job.get("options", {}), **credentials}
            self.processor.process(job_id, str(recording), options)
        except Exception as e:
            logger.exception(f"Job {job_id} failed")
            if self.store.exists(job_id):
                self.store.fail(job_id, str(e))
            raise
