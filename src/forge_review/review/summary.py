"""
Summaries

Parses per-file summarize responses and folds them into one running summary
of the whole pull request.
"""

import re
from typing import Awaitable, Callable

import structlog

from ..errors import ModelCallError
from .inputs import Inputs
from .models import FileSummary
from .prompts import Prompts

logger = structlog.get_logger(__name__)

SYMBOLS_PATTERN = re.compile(r"SYMBOLS:\s*\[(.*?)\]", re.DOTALL)
TRIAGE_PATTERN = re.compile(r"\[TRIAGE\]:\s*(NEEDS_REVIEW|APPROVED)")


def parse_file_summary(
    filename: str, response: str, review_simple_changes: bool = False
) -> FileSummary:
    """
    Split a summarize response into summary text, symbols and triage.

    Both tags are removed from the visible summary. Files without a triage
    tag need review, as does every file when simple changes are reviewed too.
    """
    symbols: list[str] = []
    symbols_match = SYMBOLS_PATTERN.search(response)
    if symbols_match:
        for raw in symbols_match.group(1).split(","):
            symbol = raw.strip().strip("`'\"").strip()
            if symbol and symbol not in symbols:
                symbols.append(symbol)

    needs_review = True
    triage_match = TRIAGE_PATTERN.search(response)
    if triage_match and not review_simple_changes:
        needs_review = triage_match.group(1) == "NEEDS_REVIEW"

    summary = SYMBOLS_PATTERN.sub("", response)
    summary = TRIAGE_PATTERN.sub("", summary).strip()

    return FileSummary(
        filename=filename,
        summary=summary,
        needs_review=needs_review,
        symbols=symbols,
    )


class SummaryReducer:
    """Merge file summaries batch by batch into one deduplicated changeset list."""

    BATCH_SIZE = 10

    def __init__(
        self,
        chat: Callable[[str], Awaitable[str]],
        prompts: Prompts,
        batch_size: int = BATCH_SIZE,
    ):
        self.chat = chat
        self.prompts = prompts
        self.batch_size = batch_size

    async def reduce(self, summaries: list[FileSummary], inputs: Inputs) -> str:
        """
        Fold ``summaries`` into a raw summary.

        Batches run strictly in order because each merge starts from the
        previous batch's output. An empty or failed merge keeps the buffer.
        """
        raw_summary = inputs.raw_summary
        for offset in range(0, len(summaries), self.batch_size):
            batch = summaries[offset : offset + self.batch_size]
            for item in batch:
                raw_summary += f"---\n{item.filename}: {item.summary}\n"

            prompt = self.prompts.render_summarize_changesets(
                inputs.clone(raw_summary=raw_summary)
            )
            try:
                merged = await self.chat(prompt)
            except ModelCallError as e:
                logger.warning(
                    "Changeset merge failed", batch=offset // self.batch_size, error=str(e)
                )
                continue

            if merged:
                raw_summary = merged
            else:
                logger.warning("Changeset merge returned nothing", batch=offset // self.batch_size)

        return raw_summary
