"""Token counting for prompt budgets."""

from functools import cached_property

import tiktoken


class TokenCounter:
    """Count tokens the way the target model family tokenizes text."""

    def __init__(self, encoding_name: str = "cl100k_base"):
        self.encoding_name = encoding_name

    @cached_property
    def _encoding(self) -> tiktoken.Encoding:
        # Loading an encoding may download its ranks on first use
        return tiktoken.get_encoding(self.encoding_name)

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoding.encode(text, disallowed_special=()))

    __call__ = count
