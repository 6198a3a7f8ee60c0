"""
Audio transcription through the OpenAI speech-to-text API.

This module is the speech-to-text boundary. It accepts an encoded audio
payload and returns plain text, or raises TranscriptionFailure. Retries and
timeouts belong to the OpenAI client (max_retries); each call made here is a
single fallible operation.

Key features:
- Transcribe or translate-to-English mode
- Optional priming prompt, checked against the token ceiling up front
- Optional source-language hint
- Payload size check before upload
- Local Whisper backend for offline use
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

import openai

from ..config import ConfigManager
from ..errors import PromptTooLongError, TranscriptionFailure
from .tokenizer import Tokenizer, get_tokenizer
from .utils import decode_wav, resample

logger = logging.getLogger(__name__)

PROMPT_TOKEN_LIMIT = ConfigManager.DEFAULTS["PROMPT_TOKEN_LIMIT"]


class Transcriber(Protocol):
    """Speech-to-text boundary."""

    def transcribe(self, payload: bytes, filename: str = "clip.wav") -> str: ...


def check_prompt(prompt: Optional[str], limit: int = PROMPT_TOKEN_LIMIT, tokenizer: Optional[Tokenizer] = None):
    """
    Reject a priming prompt that exceeds the token ceiling.

    Raises:
        PromptTooLongError: If the prompt has more than `limit` tokens
    """
    if not prompt:
        return
    tokenizer = tokenizer or get_tokenizer()
    token_count = len(tokenizer.encode(prompt))
    if token_count > limit:
        raise PromptTooLongError(token_count, limit)


class AudioTranscriber:
    """
    Handle audio transcription using the OpenAI API.

    The prompt is validated at construction so an oversized prompt is
    reported before any audio is captured or read.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        prompt: Optional[str] = None,
        language: Optional[str] = None,
        translate: bool = False,
        payload_size_limit: Optional[int] = None,
        prompt_token_limit: Optional[int] = None,
        tokenizer: Optional[Tokenizer] = None,
        client=None,
    ):
        """
        Initialize transcriber.

        Args:
            api_key: OpenAI API key (default: OPENAI_API_KEY)
            model: Speech model (default: TRANSCRIPTION_MODEL)
            prompt: Priming prompt for vocabulary and style
            language: ISO-639-1 source language hint (ignored when translating)
            translate: Translate to English instead of transcribing
            payload_size_limit: Largest payload accepted, in bytes (default: PAYLOAD_SIZE_LIMIT)
            prompt_token_limit: Largest prompt accepted, in tokens (default: PROMPT_TOKEN_LIMIT)
            tokenizer: Tokenizer used for the prompt check
            client: Preconfigured OpenAI client
        """
        check_prompt(prompt, ConfigManager.get_int("PROMPT_TOKEN_LIMIT", prompt_token_limit), tokenizer)

        self.api_key = ConfigManager.get("OPENAI_API_KEY", api_key)
        self.model = ConfigManager.get("TRANSCRIPTION_MODEL", model)
        self.prompt = prompt
        self.language = language
        self.translate = translate
        self.payload_size_limit = ConfigManager.get_int("PAYLOAD_SIZE_LIMIT", payload_size_limit)
        self.client = client

    def _load_client(self):
        """Create the OpenAI client on first use."""
        if self.client is None:
            self.client = openai.OpenAI(
                api_key=self.api_key or None,
                max_retries=ConfigManager.get_int("OPENAI_MAX_RETRIES"),
            )
        return self.client

    def transcribe(self, payload: bytes, filename: str = "clip.wav") -> str:
        """
        Transcribe one encoded audio payload.

        Args:
            payload: Encoded audio (wav, mp3, ...)
            filename: Name sent with the upload; its extension tells the
                service the container format

        Returns:
            Transcribed text

        Raises:
            TranscriptionFailure: If the payload is too large or the call fails
        """
        if len(payload) > self.payload_size_limit:
            raise TranscriptionFailure(
                f"Payload of {len(payload)} bytes exceeds the {self.payload_size_limit} byte limit"
            )

        client = self._load_client()
        request = {"model": self.model, "file": (filename, payload), "response_format": "json"}
        if self.prompt:
            request["prompt"] = self.prompt

        try:
            if self.translate:
                result = client.audio.translations.create(**request)
            else:
                if self.language:
                    request["language"] = self.language
                result = client.audio.transcriptions.create(**request)
        except openai.OpenAIError as e:
            raise TranscriptionFailure(f"Transcription of {filename} failed: {e}") from e

        return result.text

    def transcribe_file(self, file_path: str) -> str:
        """Transcribe a file that already fits within the payload limit."""
        path = Path(file_path)
        return self.transcribe(path.read_bytes(), filename=path.name)


class LocalWhisperTranscriber:
    """
    Transcribe with a local Whisper model instead of the API.

    The model is loaded on first use so importing this module does not pull
    in torch.
    """

    SAMPLE_RATE = 16000

    def __init__(self, model_name: str = "base", language: Optional[str] = None, translate: bool = False):
        """
        Args:
            model_name: Whisper model size (tiny, base, small, medium, large)
            language: Language code (default: auto-detect)
            translate: Translate to English instead of transcribing
        """
        self.model_name = model_name
        self.language = language
        self.translate = translate
        self.model = None

    def load_model(self):
        """Load the Whisper model."""
        if self.model is None:
            try:
                import whisper
            except ImportError as e:
                raise TranscriptionFailure(
                    "Local transcription needs openai-whisper (pip install scribe[local])"
                ) from e

            logger.info(f"Loading Whisper model: {self.model_name}")
            self.model = whisper.load_model(self.model_name)

    def transcribe(self, payload: bytes, filename: str = "clip.wav") -> str:
        """Transcribe an encoded payload; non-WAV payloads are decoded by Whisper via ffmpeg."""
        self.load_model()
        task = "translate" if self.translate else "transcribe"

        try:
            if filename.lower().endswith(".wav"):
                audio, rate = decode_wav(payload)
                audio = resample(audio, rate, self.SAMPLE_RATE)
                result = self.model.transcribe(audio, language=self.language, task=task)
            else:
                suffix = os.path.splitext(filename)[1] or ".mp3"
                with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
                    tmp.write(payload)
                try:
                    result = self.model.transcribe(tmp.name, language=self.language, task=task)
                finally:
                    os.unlink(tmp.name)
        except (RuntimeError, ValueError, OSError) as e:
            raise TranscriptionFailure(f"Local transcription of {filename} failed: {e}") from e

        return result["text"].strip()
