"""
Audio capture functionality using pyaudiowpatch for Windows WASAPI support.

This module owns the capture device. A CaptureSource is an explicit resource
handle: open() binds the default input device and creates a callback-mode
stream, start()/stop() control frame delivery, close() releases PortAudio.
Frames are delivered as raw interleaved int16 bytes to a registered callback
running on the PortAudio thread.

Key features:
- Device enumeration and default input selection
- Callback-mode stream at the device's preferred rate and channel count
- Sample-rate probing for devices with picky formats
"""

import logging
import sys
from typing import Callable, Dict, List, Optional

from ..errors import DeviceUnavailableError

logger = logging.getLogger(__name__)

FrameCallback = Callable[[bytes], None]


def load_pyaudio():
    """
    Import the platform PortAudio binding.

    Imported on first use so that the rest of the package works on machines
    without PortAudio installed.
    """
    if sys.platform == "win32":
        import pyaudiowpatch as pyaudio
    else:
        import pyaudio
    return pyaudio


def list_devices() -> List[Dict]:
    """
    List all available audio devices.

    Returns:
        List of device information dictionaries
    """
    pa = load_pyaudio().PyAudio()
    devices = []

    try:
        for i in range(pa.get_device_count()):
            info = pa.get_device_info_by_index(i)
            devices.append(
                {
                    "index": i,
                    "name": info["name"],
                    "hostApi": info["hostApi"],
                    "maxInputChannels": info["maxInputChannels"],
                    "maxOutputChannels": info["maxOutputChannels"],
                    "defaultSampleRate": info["defaultSampleRate"],
                    "isLoopback": "loopback" in info["name"].lower(),
                }
            )
    finally:
        pa.terminate()

    return devices


class CaptureSource:
    """
    Handle on the default input device.

    Lifecycle: open() -> start() -> stop() -> close(). The object can also be
    used as a context manager, which opens on enter and closes on exit.
    """

    def __init__(self, frames_per_buffer: int = 1920, max_channels: Optional[int] = None):
        """
        Initialize audio capture.

        Args:
            frames_per_buffer: Samples per channel in each delivered frame
            max_channels: Upper bound on the channel count (default: all device inputs)
        """
        self.frames_per_buffer = frames_per_buffer
        self.max_channels = max_channels
        self.sample_rate: Optional[int] = None
        self.channels: Optional[int] = None
        self.device_name: Optional[str] = None
        self.pa = None
        self.stream = None
        self._callback: Optional[FrameCallback] = None

    def set_callback(self, callback: FrameCallback):
        """Register the function that receives each captured frame."""
        self._callback = callback

    def open(self):
        """
        Bind the default input device and create a paused stream.

        Raises:
            DeviceUnavailableError: If there is no usable default input device
        """
        if self.stream is not None:
            return

        pyaudio = load_pyaudio()
        self.pa = pyaudio.PyAudio()
        try:
            device_info = self.pa.get_default_input_device_info()
        except (IOError, OSError) as e:
            self.pa.terminate()
            self.pa = None
            raise DeviceUnavailableError(f"No default input device: {e}") from e

        channels = int(device_info["maxInputChannels"])
        if channels <= 0:
            self.pa.terminate()
            self.pa = None
            raise DeviceUnavailableError(f"Device {device_info['name']} has no input channels")
        if self.max_channels:
            channels = min(channels, self.max_channels)

        self.channels = channels
        self.sample_rate = self._supported_sample_rate(
            device_info["index"], channels, int(device_info["defaultSampleRate"])
        )
        self.device_name = device_info["name"]

        try:
            self.stream = self.pa.open(
                format=pyaudio.paInt16,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.frames_per_buffer,
                input_device_index=device_info["index"],
                stream_callback=self._on_audio,
                start=False,
            )
        except (IOError, OSError) as e:
            self.pa.terminate()
            self.pa = None
            raise DeviceUnavailableError(f"Failed to open stream for {self.device_name}: {e}") from e

        logger.info(f"Opened {self.device_name} ({self.channels} ch @ {self.sample_rate} Hz)")

    def start(self):
        """Begin delivering frames to the callback."""
        if self.stream is None:
            raise RuntimeError("Capture source is not open")
        self.stream.start_stream()

    def stop(self):
        """Stop delivering frames. The stream stays open."""
        if self.stream is not None and self.stream.is_active():
            self.stream.stop_stream()

    def close(self):
        """Release the stream and PortAudio."""
        if self.stream is not None:
            self.stop()
            self.stream.close()
            self.stream = None
        if self.pa is not None:
            self.pa.terminate()
            self.pa = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _on_audio(self, in_data, frame_count, time_info, status):
        """PortAudio stream callback."""
        if status:
            logger.debug(f"Capture status flags: {status}")
        if self._callback is not None and in_data:
            self._callback(bytes(in_data))
        return (None, load_pyaudio().paContinue)

    def _supported_sample_rate(self, device_index: int, channels: int, preferred_rate: int) -> int:
        """
        Find a supported sample rate for the device.

        Returns:
            The first accepted rate, or the preferred rate if none is confirmed
        """
        rates_to_try = list(dict.fromkeys([preferred_rate, 48000, 44100, 16000]))

        for rate in rates_to_try:
            try:
                if self.pa.is_format_supported(
                    rate,
                    input_device=device_index,
                    input_channels=channels,
                    input_format=load_pyaudio().paInt16,
                ):
                    return int(rate)
            except ValueError:
                continue

        return preferred_rate
