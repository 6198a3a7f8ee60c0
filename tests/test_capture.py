"""Tests for the capture device handle, with PortAudio mocked out."""

from unittest.mock import MagicMock, patch

import pytest

from scribe.audio.capture import CaptureSource
from scribe.errors import DeviceUnavailableError


@pytest.fixture
def pyaudio():
    module = MagicMock()
    pa = module.PyAudio.return_value
    pa.get_default_input_device_info.return_value = {
        "index": 3,
        "name": "USB Microphone",
        "maxInputChannels": 2,
        "defaultSampleRate": 44100.0,
    }
    pa.is_format_supported.return_value = True
    with patch("scribe.audio.capture.load_pyaudio", return_value=module):
        yield module


def test_open_binds_default_input(pyaudio):
    source = CaptureSource(frames_per_buffer=1920)
    source.open()

    assert (source.device_name, source.channels, source.sample_rate) == ("USB Microphone", 2, 44100)
    kwargs = pyaudio.PyAudio.return_value.open.call_args.kwargs
    assert kwargs["frames_per_buffer"] == 1920
    assert kwargs["input_device_index"] == 3
    assert kwargs["start"] is False


def test_max_channels_caps_channel_count(pyaudio):
    source = CaptureSource(max_channels=1)
    source.open()
    assert source.channels == 1


def test_missing_device_is_reported(pyaudio):
    pa = pyaudio.PyAudio.return_value
    pa.get_default_input_device_info.side_effect = OSError("No Default Input Device Available")

    with pytest.raises(DeviceUnavailableError):
        CaptureSource().open()
    pa.terminate.assert_called_once()


def test_output_only_device_is_reported(pyaudio):
    pyaudio.PyAudio.return_value.get_default_input_device_info.return_value["maxInputChannels"] = 0

    with pytest.raises(DeviceUnavailableError, match="no input channels"):
        CaptureSource().open()


def test_falls_back_to_next_supported_rate(pyaudio):
    pa = pyaudio.PyAudio.return_value
    pa.is_format_supported.side_effect = lambda rate, **kwargs: rate == 48000

    source = CaptureSource()
    source.open()
    assert source.sample_rate == 48000


def test_frames_reach_callback(pyaudio):
    frames = []
    source = CaptureSource()
    source.set_callback(frames.append)

    result = source._on_audio(b"\x01\x00\x02\x00", 1, {}, 0)

    assert frames == [b"\x01\x00\x02\x00"]
    assert result == (None, pyaudio.paContinue)


def test_context_manager_releases_port_audio(pyaudio):
    pa = pyaudio.PyAudio.return_value
    with CaptureSource() as source:
        stream = source.stream
        source.start()

    stream.start_stream.assert_called_once()
    stream.close.assert_called_once()
    pa.terminate.assert_called_once()
    assert source.stream is None


def test_start_before_open_fails():
    with pytest.raises(RuntimeError):
        CaptureSource().start()
