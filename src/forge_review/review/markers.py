"""
Marker Blocks

Structured state embedded in comment and description bodies between HTML
comment sentinels. Hidden blocks escape ``&``, ``<`` and ``>`` so their content
can never close the surrounding comment or forge a sentinel; visible blocks
have stray sentinels removed from their content.

A body with a missing, duplicated or out-of-order sentinel decodes to None.
"""

from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

_TAG_PREFIX = "<!-- forge-review:"


def _escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _unescape(text: str) -> str:
    return text.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")


@dataclass(frozen=True)
class MarkerBlock:
    """A named start/end sentinel pair."""

    name: str
    hidden: bool = True

    @property
    def start_tag(self) -> str:
        return f"{_TAG_PREFIX}{self.name}_start -->"

    @property
    def end_tag(self) -> str:
        return f"{_TAG_PREFIX}{self.name}_end -->"

    def encode(self, content: str) -> str:
        """Render ``content`` as a complete block."""
        if self.hidden:
            inner = f"<!--\n{_escape(content)}\n-->"
        else:
            inner = content.replace(self.start_tag, "").replace(self.end_tag, "")
        return f"{self.start_tag}\n{inner}\n{self.end_tag}"

    def _span(self, body: str) -> tuple[int, int] | None:
        starts = body.count(self.start_tag)
        ends = body.count(self.end_tag)
        if starts == 0 and ends == 0:
            return None
        start = body.find(self.start_tag)
        end = body.find(self.end_tag)
        if starts != 1 or ends != 1 or end < start:
            logger.warning(
                "Ignoring malformed marker block",
                block=self.name,
                start_tags=starts,
                end_tags=ends,
            )
            return None
        return start, end + len(self.end_tag)

    def decode(self, body: str | None) -> str | None:
        """Content of the block in ``body``, or None if absent or malformed."""
        if not body:
            return None
        span = self._span(body)
        if span is None:
            return None
        inner = body[span[0] + len(self.start_tag) : span[1] - len(self.end_tag)]
        inner = inner.strip("\n")
        if not self.hidden:
            return inner
        if not (inner.startswith("<!--") and inner.endswith("-->")):
            logger.warning("Ignoring marker block without comment wrapper", block=self.name)
            return None
        return _unescape(inner[len("<!--") : -len("-->")].strip("\n"))

    def strip(self, body: str) -> str:
        """``body`` with the block and any stray sentinels removed."""
        span = self._span(body)
        if span is not None:
            body = body[: span[0]] + body[span[1] :]
        return body.replace(self.start_tag, "").replace(self.end_tag, "").strip("\n")

    def upsert(self, body: str, content: str) -> str:
        """Replace the block in ``body`` (or append it) with ``content``."""
        remainder = self.strip(body)
        block = self.encode(content)
        return f"{remainder}\n{block}" if remainder else block


SUMMARIZE_TAG = "<!-- This is an auto-generated comment: summarize by forge-review -->"

COMMIT_IDS_BLOCK = MarkerBlock("commit_ids_reviewed")
RAW_SUMMARY_BLOCK = MarkerBlock("raw_summary")
SHORT_SUMMARY_BLOCK = MarkerBlock("short_summary")
RELEASE_NOTES_BLOCK = MarkerBlock("release_notes", hidden=False)

COMMENT_TAG = "<!-- This is an auto-generated review comment by forge-review -->"
COMMENT_REPLY_TAG = "<!-- This is an auto-generated reply by forge-review -->"

# Mention that pulls the reviewer into a thread it did not start
BOT_MENTION = "@forge-review"
