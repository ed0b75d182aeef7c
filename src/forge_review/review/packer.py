"""
Token Budget Packer

Packs annotated hunks, in diff order, into the patches section of a review
prompt without exceeding the request token ceiling.
"""

from dataclasses import dataclass, field
from typing import Callable

import structlog

from .models import AnnotatedHunk, PatchInterval

logger = structlog.get_logger(__name__)

END_CHANGE_SECTION = "\n---end_change_section---\n"


@dataclass
class PackedPatches:
    """Result of packing one file's hunks."""

    text: str = ""
    packed: int = 0
    total: int = 0
    tokens: int = 0
    intervals: list[PatchInterval] = field(default_factory=list)

    @property
    def truncated(self) -> bool:
        return self.packed < self.total


class TokenBudgetPacker:
    """Greedy in-order packer for hunk blocks."""

    def __init__(self, count_tokens: Callable[[str], int], request_tokens: int):
        """
        Initialize packer.

        Args:
            count_tokens: Token counter for the target model family
            request_tokens: Ceiling for the whole request prompt
        """
        self.count_tokens = count_tokens
        self.request_tokens = request_tokens

    def block_tokens(self, hunk: AnnotatedHunk) -> int:
        """Tokens a hunk costs without any comment chain."""
        return self.count_tokens(hunk.render() + END_CHANGE_SECTION)

    def pack(
        self,
        hunks: list[AnnotatedHunk],
        preamble_tokens: int,
        comment_chain_for: Callable[[PatchInterval], str] | None = None,
    ) -> PackedPatches:
        """
        Pack as many leading hunks as fit.

        Stops at the first hunk that would overflow; later hunks are never
        pulled forward. A hunk's comment chain is added only when it fits too,
        otherwise the hunk goes in without it.
        """
        result = PackedPatches(total=len(hunks), tokens=preamble_tokens)
        parts: list[str] = []

        for hunk in hunks:
            hunk_tokens = self.block_tokens(hunk)
            if result.tokens + hunk_tokens > self.request_tokens:
                logger.info(
                    "Hunk does not fit in request budget",
                    packed=result.packed,
                    total=result.total,
                    tokens=result.tokens,
                    hunk_tokens=hunk_tokens,
                )
                break
            result.tokens += hunk_tokens

            parts.append(hunk.render())

            chain = comment_chain_for(hunk.interval) if comment_chain_for else ""
            if chain:
                chain_section = f"\n---comment_chains---\n```\n{chain}\n```\n"
                chain_tokens = self.count_tokens(chain_section)
                if result.tokens + chain_tokens <= self.request_tokens:
                    result.tokens += chain_tokens
                    parts.append(chain_section)

            parts.append(END_CHANGE_SECTION)
            result.packed += 1
            result.intervals.append(hunk.interval)

        result.text = "".join(parts)
        return result
