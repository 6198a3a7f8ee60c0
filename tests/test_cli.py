"""Tests for the command-line entry point."""

from unittest.mock import patch

from scribe.__main__ import build_parser, main
from scribe.errors import SourceUnreadableError


@patch("scribe.__main__.MeetingSummarizer")
def test_summarize_command_prints_summary(mock_summarizer, tmp_path, capsys):
    path = tmp_path / "transcript.txt"
    path.write_text("We agreed to ship on Friday.", encoding="utf-8")
    mock_summarizer.return_value.summarize.return_value = "- ship Friday"

    assert main(["summarize", str(path), "--model", "gpt-4-32k", "--system", "Be brief."]) == 0

    mock_summarizer.assert_called_once_with(model="gpt-4-32k", system_prompt="Be brief.")
    mock_summarizer.return_value.summarize.assert_called_once_with("We agreed to ship on Friday.")
    assert "- ship Friday" in capsys.readouterr().out


@patch("scribe.__main__.RecordingSplitter")
@patch("scribe.__main__.AudioTranscriber")
def test_transcribe_command(mock_transcriber, mock_splitter, capsys):
    mock_splitter.return_value.transcribe.return_value = "first\nsecond"

    assert main(["transcribe", "meeting.mp4", "--translate", "--bitrate", "32"]) == 0

    mock_transcriber.assert_called_once_with(prompt=None, language=None, translate=True)
    mock_splitter.assert_called_once_with(mock_transcriber.return_value, bitrate_kbps=32)
    assert capsys.readouterr().out == "first\nsecond\n"


@patch("scribe.__main__.RecordingSplitter")
@patch("scribe.__main__.AudioTranscriber")
def test_pipeline_errors_exit_nonzero(mock_transcriber, mock_splitter):
    mock_splitter.return_value.transcribe.side_effect = SourceUnreadableError("not media")
    assert main(["transcribe", "notes.txt"]) == 1


def test_live_options_parse():
    args = build_parser().parse_args(["live", "--language", "ja", "--interval", "15", "--summarize"])
    assert (args.language, args.interval, args.summarize, args.local) == ("ja", 15.0, True, None)


@patch("scribe.__main__.list_devices")
def test_devices_lists_inputs_only(mock_list_devices, capsys):
    mock_list_devices.return_value = [
        {"index": 0, "name": "Built-in Microphone", "maxInputChannels": 1, "defaultSampleRate": 48000.0},
        {"index": 1, "name": "Speakers", "maxInputChannels": 0, "defaultSampleRate": 48000.0},
    ]

    assert main(["devices"]) == 0
    assert capsys.readouterr().out == "[0] Built-in Microphone (1 ch @ 48000 Hz)\n"


@patch("scribe.client.transcribe_remote")
def test_remote_prints_transcript_and_summary(mock_remote, capsys):
    mock_remote.return_value = {"transcript": "hello", "summary": "- greeted"}

    assert main(["remote", "meeting.mp4", "--language", "ja", "--server", "http://gpu-box:5001"]) == 0

    mock_remote.assert_called_once_with(
        "meeting.mp4", {"language": "ja"}, base_url="http://gpu-box:5001", wait=True
    )
    assert capsys.readouterr().out == "hello\n\n- greeted\n"


@patch("scribe.client.transcribe_remote")
def test_remote_without_waiting_prints_job_id(mock_remote, capsys):
    mock_remote.return_value = {"job_id": "abc", "status": "queued"}

    assert main(["remote", "meeting.mp4", "--no-wait"]) == 0
    assert capsys.readouterr().out == "abc\n"
