from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping, Sequence, Union

import tiktoken

from llm_costs.constants import (
    DEFAULT_ENCODING,
    REPLY_PRIMING_TOKENS,
    TOKENS_PER_MESSAGE,
)


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str


MessageLike = Union[ChatMessage, Mapping[str, Any]]


@lru_cache(maxsize=None)
def get_encoding(name: str) -> tiktoken.Encoding:
    return tiktoken.get_encoding(name)


def message_text(message: MessageLike) -> str:
    """Return the textual content of a chat message.

    Multi-part content is flattened to its text parts; image and tool parts
    carry no countable text.
    """
    if isinstance(message, ChatMessage):
        content: Any = message.content
    else:
        content = message.get("content")

    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return " ".join(
            str(part.get("text") or "")
            for part in content
            if isinstance(part, Mapping) and part.get("type", "text") == "text"
        )
    return str(content)


class TokenEstimator:
    """Approximate prompt/completion token counts from raw text.

    Counts use a fixed BPE encoding, so they are reproducible but only
    approximate the upstream provider's own tokenizer.
    """

    def __init__(self, encoding_name: str = DEFAULT_ENCODING) -> None:
        self._encoding_name = encoding_name

    @property
    def encoding_name(self) -> str:
        return self._encoding_name

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        encoding = get_encoding(self._encoding_name)
        return len(encoding.encode(text, disallowed_special=()))

    def count_message_tokens(self, messages: Sequence[MessageLike]) -> int:
        total = 0
        for message in messages:
            total += TOKENS_PER_MESSAGE + self.count_tokens(message_text(message))
        return total + REPLY_PRIMING_TOKENS

    def estimate(
        self,
        prompt: str | None = None,
        messages: Sequence[MessageLike] | None = None,
        completion: str | None = None,
    ) -> tuple[int | None, int | None]:
        """Return ``(prompt_tokens, completion_tokens)``.

        Messages take precedence over flat prompt text. A count stays
        ``None`` when there is no input to derive it from.
        """
        prompt_tokens: int | None = None
        if messages:
            prompt_tokens = self.count_message_tokens(messages)
        elif prompt:
            prompt_tokens = self.count_tokens(prompt)

        completion_tokens: int | None = None
        if completion:
            completion_tokens = self.count_tokens(completion)

        return prompt_tokens, completion_tokens
