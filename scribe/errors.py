"""
Error taxonomy for the capture, transcription and summarization pipeline.

Fatal errors (device, source, prompt) stop the operation that raised them.
TranscriptionFailure and CompletionFailure are raised by the external-service
boundaries and handled as gaps in the output by the pipeline layers.
"""


class ScribeError(Exception):
    """Base class for all scribe errors."""


class DeviceUnavailableError(ScribeError):
    """No default input device could be opened."""


class EmptyBufferError(ScribeError):
    """Sample conversion was attempted on zero frames."""


class SourceUnreadableError(ScribeError):
    """The duration of a source recording could not be probed."""


class PromptTooLongError(ScribeError):
    """The priming prompt exceeds the transcription token ceiling."""

    def __init__(self, token_count: int, limit: int):
        super().__init__(f"Prompt is {token_count} tokens, limit is {limit}")
        self.token_count = token_count
        self.limit = limit


class TranscriptionFailure(ScribeError):
    """The speech-to-text call failed."""


class CompletionFailure(ScribeError):
    """The chat completion call failed."""
