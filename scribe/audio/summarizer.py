"""
Meeting summarization functionality using OpenAI API.

A transcript can be longer than any model's context window, so it is split
into token-bounded chunks and folded through the chat completion API one
chunk at a time. Each request carries the standing system instruction and
every summary produced so far, but not earlier transcript chunks, so the
request size stays bounded no matter how long the meeting was.

Key features:
- Sentence-aware chunking that round-trips the input exactly
- Serial, context-carrying summarization
- A failed chunk is skipped, never fatal
- Lazy loading of the OpenAI client
"""

import logging
import re
from typing import Dict, List, Optional

import openai

from ..config import ConfigManager
from ..errors import CompletionFailure
from .tokenizer import Tokenizer, get_tokenizer

logger = logging.getLogger(__name__)

# Context window sizes in tokens
MODEL_CONTEXT_WINDOWS = {
    "gpt-3.5-turbo": 4096,
    "gpt-4": 8192,
    "gpt-4-32k": 32768,
    "gpt-4o": 128000,
    "gpt-4o-mini": 128000,
}

DEFAULT_SYSTEM_PROMPT = (
    "You are an assistant creating concise meeting minutes. "
    "Summarize the following transcript clearly by topic, and extract the decisions and next actions."
)

SENTENCE_END = re.compile(r"(?<=[。！？.!?])")
WORD_END = re.compile(r"(?<=\s)")

Message = Dict[str, str]


def context_window(model: str) -> int:
    """Context window of a chat model; unknown models get the gpt-4 size."""
    return MODEL_CONTEXT_WINDOWS.get(model, MODEL_CONTEXT_WINDOWS["gpt-4"])


def _split_sentences(text: str, max_tokens: int, tokenizer: Tokenizer) -> List[str]:
    """
    Split after sentence terminators, keeping each terminator with its sentence.

    If the first sentence alone fills the budget (a long run with no
    terminator), it is split after whitespace instead. Both splits are
    zero-width, so joining the pieces gives back the input.
    """
    sentences = [s for s in SENTENCE_END.split(text) if s]
    if sentences and len(tokenizer.encode(sentences[0])) >= max_tokens:
        words = [w for w in WORD_END.split(sentences[0]) if w]
        sentences = words + sentences[1:]
    return sentences


def chunk_tokens(text: str, max_tokens: int, tokenizer: Optional[Tokenizer] = None) -> List[List[int]]:
    """
    Pack the sentences of `text` into token chunks below `max_tokens`.

    Sentences are tokenized one at a time and appended to the current chunk
    while current + new < max_tokens; otherwise the chunk is sealed and the
    sentence starts the next one. An empty text gives a single empty chunk.
    """
    if max_tokens < 1:
        raise ValueError(f"Token budget must be positive, got {max_tokens}")
    tokenizer = tokenizer or get_tokenizer()

    chunks: List[List[int]] = [[]]
    for sentence in _split_sentences(text, max_tokens, tokenizer):
        tokens = tokenizer.encode(sentence)
        current = chunks[-1]
        if not current or len(current) + len(tokens) < max_tokens:
            current.extend(tokens)
        else:
            chunks.append(list(tokens))
    return chunks


def split_text_into_prompts(text: str, max_tokens: int, tokenizer: Optional[Tokenizer] = None) -> List[str]:
    """
    Split text into prompts of fewer than `max_tokens` tokens each.

    Concatenating the returned prompts gives back `text` exactly. A single
    sentence longer than the budget (other than the first) becomes its own
    oversized prompt.

    Args:
        text: Text to split
        max_tokens: Token budget per prompt
        tokenizer: Tokenizer (default: the gpt-4 encoding)

    Returns:
        Prompts in order
    """
    tokenizer = tokenizer or get_tokenizer()
    return [tokenizer.decode(chunk) for chunk in chunk_tokens(text, max_tokens, tokenizer)]


class MeetingSummarizer:
    """
    Handle meeting summarization using OpenAI API.

    Summaries are built by a serial fold over transcript chunks; see
    fold() for how the conversation grows.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_tokens: Optional[int] = None,
        tokenizer: Optional[Tokenizer] = None,
        client=None,
    ):
        """
        Initialize summarizer.

        Args:
            api_key: OpenAI API key (default: OPENAI_API_KEY)
            model: Chat model (default: LLM_MODEL)
            base_url: OpenAI-compatible endpoint (default: LLM_API_BASE_URL)
            system_prompt: Standing instruction sent with every request
            max_tokens: Token budget per transcript chunk (default: half the
                model's context window, leaving room for carried summaries
                and the reply)
            tokenizer: Tokenizer for chunking (default: the model's encoding)
            client: Preconfigured OpenAI client
        """
        self.api_key = ConfigManager.get("OPENAI_API_KEY", api_key)
        self.model = ConfigManager.get("LLM_MODEL", model)
        self.base_url = ConfigManager.get("LLM_API_BASE_URL", base_url)
        self.system_prompt = system_prompt
        self.max_tokens = max_tokens or context_window(self.model) // 2
        self.tokenizer = tokenizer
        self.client = client

    def _load_client(self):
        """Create the OpenAI client on first use."""
        if self.client is None:
            logger.info(f"Loading OpenAI client (model: {self.model})")
            self.client = openai.OpenAI(
                api_key=self.api_key or None,
                base_url=self.base_url or None,
                max_retries=ConfigManager.get_int("OPENAI_MAX_RETRIES"),
            )
        return self.client

    def _get_tokenizer(self) -> Tokenizer:
        if self.tokenizer is None:
            self.tokenizer = get_tokenizer(self.model)
        return self.tokenizer

    def complete(self, messages: List[Message]) -> Message:
        """
        Send one chat completion request.

        Returns:
            The assistant reply as a message dict

        Raises:
            CompletionFailure: If the request fails
        """
        client = self._load_client()
        try:
            response = client.chat.completions.create(model=self.model, messages=messages)
        except openai.OpenAIError as e:
            raise CompletionFailure(f"Chat completion failed: {e}") from e

        if not response.choices:
            raise CompletionFailure("Chat completion returned no choices")
        return {"role": "assistant", "content": response.choices[0].message.content or ""}

    def fold(self, chunks: List[str]) -> List[Message]:
        """
        Summarize chunks serially, carrying earlier summaries forward.

        Each request holds the system message, every assistant reply so far
        and the current chunk as the only user message. A successful reply
        is appended to the conversation after its user message; a failed
        request leaves the conversation as it was and the fold moves on.
        Empty chunks are skipped.

        Returns:
            The full conversation
        """
        conversation: List[Message] = [{"role": "system", "content": self.system_prompt}]

        for index, chunk in enumerate(chunks):
            if not chunk:
                continue

            user = {"role": "user", "content": chunk}
            messages = [m for m in conversation if m["role"] in ("system", "assistant")] + [user]
            try:
                reply = self.complete(messages)
            except CompletionFailure as e:
                logger.warning(f"Chunk {index + 1}/{len(chunks)} skipped: {e}")
                continue

            conversation.extend([user, reply])
            logger.info(f"Summarized chunk {index + 1}/{len(chunks)}")

        return conversation

    def summarize(self, transcript_text: str) -> str:
        """
        Generate a meeting summary from transcript text.

        Returns:
            Assistant replies joined by newlines; empty if every chunk failed
            or the transcript was empty
        """
        if not transcript_text or transcript_text.strip() == "":
            logger.warning("Empty transcript provided")
            return ""

        chunks = split_text_into_prompts(transcript_text, self.max_tokens, self._get_tokenizer())
        logger.info(f"Generating summary using {self.model} over {len(chunks)} chunk(s)")
        return extract_summary(self.fold(chunks))


def extract_summary(conversation: List[Message]) -> str:
    """Join the assistant messages of a conversation, in order."""
    return "\n".join(m["content"] for m in conversation if m["role"] == "assistant")


def summarize_transcript(transcript_text: str, api_key: Optional[str] = None, model: Optional[str] = None) -> str:
    """
    Convenience function to summarize a transcript.

    Creates a MeetingSummarizer instance and generates a summary in one call.
    """
    summarizer = MeetingSummarizer(api_key=api_key, model=model)
    return summarizer.summarize(transcript_text)
