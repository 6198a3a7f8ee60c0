"""
Command-line entry point.

Usage:
    python -m scribe live [--language ja] [--prompt TEXT] [--summarize]
    python -m scribe transcribe recording.mp4 [--translate]
    python -m scribe summarize transcript.txt [--model gpt-4]
    python -m scribe serve [--port 5001]
    python -m scribe devices
    python -m scribe remote recording.mp4 [--server http://host:5001]
"""

import argparse
import logging
import sys
import threading
from pathlib import Path

from requests.exceptions import RequestException

from .audio import (
    AudioTranscriber,
    CaptureSource,
    LiveTranscriber,
    LocalWhisperTranscriber,
    MeetingSummarizer,
    RecordingSplitter,
    list_devices,
)
from .config import ConfigManager, configure_logging
from .errors import ScribeError

logger = logging.getLogger("scribe")


def _add_transcription_options(parser: argparse.ArgumentParser):
    parser.add_argument("--prompt", help="Priming prompt (at most 225 tokens)")
    parser.add_argument("--language", help="Source language hint, e.g. en or ja")
    parser.add_argument("--translate", action="store_true", help="Translate to English")
    parser.add_argument("--local", metavar="MODEL", help="Use a local Whisper model instead of the API")


def _build_transcriber(args):
    if args.local:
        return LocalWhisperTranscriber(args.local, language=args.language, translate=args.translate)
    return AudioTranscriber(prompt=args.prompt, language=args.language, translate=args.translate)


def _print_summary(text: str, model: str = None):
    summary = MeetingSummarizer(model=model).summarize(text)
    print("\n" + "=" * 50)
    print("SUMMARY:")
    print("=" * 50)
    print(summary or "(No summary)")


def cmd_live(args) -> int:
    transcriber = _build_transcriber(args)
    session = LiveTranscriber(
        CaptureSource(frames_per_buffer=ConfigManager.get_int("FRAMES_PER_BUFFER")),
        transcriber,
        output_dir=args.output_dir,
        interval_seconds=args.interval,
        threshold=args.threshold,
        on_fragment=lambda fragment: print(fragment, end="", flush=True),
    )
    session.start()
    print("Recording... press Ctrl+C to stop", file=sys.stderr)

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass

    path = session.stop()
    if path:
        print(f"Saved session audio to {path}", file=sys.stderr)
    if args.summarize and session.text.strip():
        _print_summary(session.text, args.model)
    return 0


def cmd_transcribe(args) -> int:
    splitter = RecordingSplitter(_build_transcriber(args), bitrate_kbps=args.bitrate)
    text = splitter.transcribe(args.file)
    print(text)
    if args.summarize and text.strip():
        _print_summary(text, args.model)
    return 0


def cmd_summarize(args) -> int:
    text = Path(args.file).read_text(encoding="utf-8")
    kwargs = {"model": args.model}
    if args.system:
        kwargs["system_prompt"] = args.system
    print(MeetingSummarizer(**kwargs).summarize(text))
    return 0


def cmd_devices(args) -> int:
    for device in list_devices():
        if device["maxInputChannels"] > 0:
            channels, rate = device["maxInputChannels"], device["defaultSampleRate"]
            print(f"[{device['index']}] {device['name']} ({channels} ch @ {rate:.0f} Hz)")
    return 0


def cmd_remote(args) -> int:
    from .client import transcribe_remote

    options = {"language": args.language, "prompt": args.prompt, "translate": args.translate}
    options = {key: value for key, value in options.items() if value}
    result = transcribe_remote(args.file, options, base_url=args.server, wait=not args.no_wait)
    if args.no_wait:
        print(result["job_id"])
        return 0
    print(result["transcript"])
    if result.get("summary"):
        print("\n" + result["summary"])
    return 0


def cmd_serve(args) -> int:
    from .server import run_server

    run_server(host=args.host, port=args.port, jobs_dir=args.jobs_dir)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scribe", description="Meeting transcription and summarization")
    parser.add_argument("--log-level", help="Logging level (default: LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    live = subparsers.add_parser("live", help="Transcribe the default microphone until Ctrl+C")
    _add_transcription_options(live)
    live.add_argument("--interval", type=float, help="Seconds between transcriptions")
    live.add_argument("--threshold", type=float, help="Silence threshold (0-1)")
    live.add_argument("--output-dir", help="Where to save the session audio")
    live.add_argument("--summarize", action="store_true", help="Summarize the transcript at the end")
    live.add_argument("--model", help="Chat model for the summary")
    live.set_defaults(func=cmd_live)

    transcribe = subparsers.add_parser("transcribe", help="Transcribe a recording of any length")
    transcribe.add_argument("file")
    _add_transcription_options(transcribe)
    transcribe.add_argument("--bitrate", type=int, help="Segment bitrate in kbps")
    transcribe.add_argument("--summarize", action="store_true", help="Summarize the transcript")
    transcribe.add_argument("--model", help="Chat model for the summary")
    transcribe.set_defaults(func=cmd_transcribe)

    summarize = subparsers.add_parser("summarize", help="Summarize a text file")
    summarize.add_argument("file")
    summarize.add_argument("--model", help="Chat model")
    summarize.add_argument("--system", help="System instruction")
    summarize.set_defaults(func=cmd_summarize)

    serve = subparsers.add_parser("serve", help="Run the batch transcription API server")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=5001)
    serve.add_argument("--jobs-dir", default="server_jobs")
    serve.set_defaults(func=cmd_serve)

    devices = subparsers.add_parser("devices", help="List audio input devices")
    devices.set_defaults(func=cmd_devices)

    remote = subparsers.add_parser("remote", help="Transcribe a recording on a batch server")
    remote.add_argument("file")
    remote.add_argument("--server", help="Server URL (default: API_BASE_URL)")
    remote.add_argument("--prompt", help="Priming prompt")
    remote.add_argument("--language", help="Source language hint")
    remote.add_argument("--translate", action="store_true", help="Translate to English")
    remote.add_argument("--no-wait", action="store_true", help="Print the job id and return")
    remote.set_defaults(func=cmd_remote)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return args.func(args)
    except (ScribeError, RequestException) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
