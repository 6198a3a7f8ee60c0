"""
Token counting for prompts and summarization chunks, backed by tiktoken.
"""

from functools import lru_cache
from typing import List, Protocol

import tiktoken


class Tokenizer(Protocol):
    """Anything that maps text to token ids and back without loss."""

    def encode(self, text: str) -> List[int]: ...

    def decode(self, tokens: List[int]) -> str: ...


class TiktokenTokenizer:
    """tiktoken encoding that treats special-token text as ordinary text."""

    def __init__(self, encoding: "tiktoken.Encoding"):
        self.encoding = encoding

    def encode(self, text: str) -> List[int]:
        return self.encoding.encode(text, disallowed_special=())

    def decode(self, tokens: List[int]) -> str:
        return self.encoding.decode(tokens)


@lru_cache(maxsize=None)
def get_tokenizer(model: str = "gpt-4") -> TiktokenTokenizer:
    """Tokenizer for a chat model, falling back to cl100k_base for unknown names."""
    try:
        encoding = tiktoken.encoding_for_model(model)
    except KeyError:
        encoding = tiktoken.get_encoding("cl100k_base")
    return TiktokenTokenizer(encoding)
