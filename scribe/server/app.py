"""
Flask API for batch transcription of recordings.

    GET    /health            liveness and runner state
    POST   /jobs              upload a recording (multipart: file, options)
    GET    /jobs              list jobs (?status=&limit=&offset=)
    GET    /jobs/<id>         job record with stage, status and progress
    GET    /jobs/<id>/result  transcript and summary of a completed job
    DELETE /jobs/<id>         cancel if waiting, then delete

Recordings of any length are accepted; they are cut into segments that fit
the speech service's payload limit while the job runs.
"""

import atexit
import json
import logging
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import BadRequest, Conflict, HTTPException, NotFound
from werkzeug.utils import secure_filename

from ..config import configure_logging
from .jobs import JobStatus, JobStore, split_credentials
from .runner import JobRunner

logger = logging.getLogger(__name__)

RECORDING_EXTENSIONS = {"wav", "mp3", "mp4", "m4a", "flac", "aac", "ogg", "webm", "wma", "mkv", "mov"}

api = Blueprint("api", __name__)


def _store() -> JobStore:
    return current_app.extensions["scribe.store"]


def _runner() -> JobRunner:
    return current_app.extensions["scribe.runner"]


def _job_or_404(job_id: str) -> Dict[str, Any]:
    job = _store().get(job_id)
    if job is None:
        raise NotFound(f"No job {job_id}")
    return job


def recording_name(filename: Optional[str]) -> str:
    """Sanitized upload name, or BadRequest if it is not a recording we accept."""
    name = secure_filename(filename or "")
    if not name:
        raise BadRequest("No file selected")
    if Path(name).suffix.lower().lstrip(".") not in RECORDING_EXTENSIONS:
        raise BadRequest(f"Unsupported file type. Accepted: {', '.join(sorted(RECORDING_EXTENSIONS))}")
    return name


def parse_options(raw: Optional[str]) -> Dict[str, Any]:
    """Processing options from the multipart form; must be a JSON object."""
    if not raw:
        return {}
    try:
        options = json.loads(raw)
    except json.JSONDecodeError:
        options = None
    if not isinstance(options, dict):
        raise BadRequest("options must be a JSON object")
    return options


@api.errorhandler(HTTPException)
def http_error(e: HTTPException):
    return jsonify({"error": e.description}), e.code


@api.get("/health")
def health():
    state = _runner().status()
    return jsonify(
        {
            "status": "healthy",
            "time": datetime.now().isoformat(),
            "runner": state["is_running"],
            "waiting": state["waiting"],
            "running": len(state["running"]),
        }
    )


@api.post("/jobs")
def create_job():
    """
    Accept a recording and schedule it.

    Form fields:
    - file: the recording
    - options: JSON object (language, prompt, translate, bitrate_kbps,
      enable_summarization, llm_model, system_prompt, ...)
    """
    upload = request.files.get("file")
    if upload is None:
        raise BadRequest("No file provided")
    name = recording_name(upload.filename)
    options, credentials = split_credentials(parse_options(request.form.get("options")))

    with tempfile.TemporaryDirectory() as tmp:
        staged = Path(tmp) / name
        upload.save(staged)
        size = staged.stat().st_size
        if size == 0:
            raise BadRequest("Empty file not allowed")

        store = _store()
        job_id = store.create(name, size, options)
        store.attach_recording(job_id, str(staged))

    if not _runner().submit(job_id, credentials):
        store.fail(job_id, "Job runner is not accepting work")
        raise Conflict("Job runner is not accepting work")

    logger.info(f"Accepted {name} ({size} bytes) as job {job_id}")
    return jsonify({"job_id": job_id, "status": JobStatus.QUEUED.value}), 201


@api.get("/jobs")
def list_jobs():
    try:
        limit = int(request.args.get("limit", 100))
        offset = int(request.args.get("offset", 0))
    except ValueError:
        raise BadRequest("limit and offset must be integers")

    jobs = _store().list(status=request.args.get("status"))
    return jsonify({"jobs": jobs[offset : offset + limit], "total": len(jobs), "limit": limit, "offset": offset})


@api.get("/jobs/<job_id>")
def get_job(job_id: str):
    job = _job_or_404(job_id)
    error = _store().error(job_id)
    if error:
        job["error"] = error
    return jsonify(job)


@api.get("/jobs/<job_id>/result")
def get_result(job_id: str):
    job = _job_or_404(job_id)
    if job["status"] != JobStatus.COMPLETED.value:
        raise Conflict(f"Job is {job['status']}")
    return jsonify(_store().result(job_id))


@api.delete("/jobs/<job_id>")
def delete_job(job_id: str):
    _job_or_404(job_id)
    _runner().cancel(job_id)
    _store().delete(job_id)
    return jsonify({"deleted": job_id})


def create_app(store: Optional[JobStore] = None, runner: Optional[JobRunner] = None, jobs_dir: str = "server_jobs"):
    """
    Build the API application and start its job runner.

    Args:
        store: Job store (default: JobStore over jobs_dir)
        runner: Job runner (default: JobRunner over store)
        jobs_dir: Directory for job state when no store is given
    """
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = 2 * 1024 * 1024 * 1024
    CORS(app)

    store = store or JobStore(jobs_dir)
    runner = runner or JobRunner(store)
    runner.start()
    app.extensions["scribe.store"] = store
    app.extensions["scribe.runner"] = runner
    app.register_blueprint(api)
    return app


def run_server(host: str = "0.0.0.0", port: int = 5001, jobs_dir: str = "server_jobs", debug: bool = False):
    """Serve the API until interrupted."""
    configure_logging()
    app = create_app(jobs_dir=jobs_dir)
    atexit.register(app.extensions["scribe.runner"].shutdown)
    app.run(host=host, port=port, debug=debug, use_reloader=False)
