"""
Commenter

Persisted review state and comment output for one pull request. The state
store contract is small: find a tagged comment, upsert it, append a comment,
list existing review comments and reply in a review thread. ``Commenter``
implements it on GitHub and ``InMemoryStateStore`` keeps everything in memory
for dry runs and tests.
"""

from typing import Protocol

import structlog

from ..errors import GitHubAPIError
from ..review.markers import (
    COMMENT_REPLY_TAG,
    COMMENT_TAG,
    RELEASE_NOTES_BLOCK,
    SUMMARIZE_TAG,
)
from ..review.models import PatchInterval, PullRequestContext, ReviewComment
from .github_client import GitHubClient, PullReviewComment

logger = structlog.get_logger(__name__)


class StateStore(Protocol):
    """Where review state and comments go."""

    async def find(self, tag: str) -> str | None: ...

    async def upsert(self, tag: str, body: str) -> None: ...

    async def append_comment(
        self, text: str, path: str | None = None, interval: PatchInterval | None = None
    ) -> None: ...

    async def list_review_comments(self) -> list[PullReviewComment]: ...

    async def submit_review(self) -> int: ...

    async def update_release_notes(self, notes: str) -> None: ...

    async def reply_to_comment(self, comment_id: int, text: str) -> None: ...


def _with_tag(tag: str, body: str) -> str:
    return body if tag in body else f"{tag}\n{body}"


def _anchor_line(comment: PullReviewComment) -> int | None:
    return comment.start_line or comment.line


def _render_thread(comments: list[PullReviewComment], root: PullReviewComment) -> str:
    thread = [root] + [c for c in comments if c.in_reply_to_id == root.id]
    return "\n".join(f"{c.author}: {c.body}" for c in thread)


def comment_chains_within_range(
    comments: list[PullReviewComment], path: str, interval: PatchInterval
) -> str:
    """
    Render existing discussion threads anchored inside ``interval``.

    Each thread is its root comment followed by its replies, one
    ``user: body`` entry per comment; threads are separated by ``---``.
    """
    roots = [
        c
        for c in comments
        if c.path == path
        and c.in_reply_to_id is None
        and _anchor_line(c) is not None
        and interval.contains(_anchor_line(c), _anchor_line(c))
    ]
    return "\n---\n".join(_render_thread(comments, root) for root in roots)


def thread_root(
    comments: list[PullReviewComment], comment: PullReviewComment
) -> PullReviewComment:
    """Top-level comment of the thread ``comment`` belongs to."""
    if comment.in_reply_to_id is None:
        return comment
    for candidate in comments:
        if candidate.id == comment.in_reply_to_id:
            return candidate
    return comment


def comment_chain(comments: list[PullReviewComment], comment: PullReviewComment) -> str:
    """Render the whole thread of ``comment``, including ``comment`` itself."""
    if all(c.id != comment.id for c in comments):
        comments = [*comments, comment]
    return _render_thread(comments, thread_root(comments, comment))


def is_duplicate(comments: list[PullReviewComment], path: str, body: str) -> bool:
    """True when the same text was already posted on ``path``."""
    text = body.replace(COMMENT_TAG, "").strip()
    return bool(text) and any(c.path == path and text in c.body for c in comments)


class Commenter:
    """GitHub-backed state store."""

    def __init__(self, client: GitHubClient, pr: PullRequestContext):
        self.client = client
        self.pr = pr
        self.pending: list[ReviewComment] = []
        self._review_comments: list[PullReviewComment] | None = None

    async def _find_comment(self, tag: str):
        for comment in await self.client.list_issue_comments(self.pr):
            if comment.body and tag in comment.body:
                return comment
        return None

    async def find(self, tag: str) -> str | None:
        comment = await self._find_comment(tag)
        return comment.body if comment else None

    async def upsert(self, tag: str, body: str) -> None:
        body = _with_tag(tag, body)
        existing = await self._find_comment(tag)
        if existing is not None:
            await self.client.update_issue_comment(self.pr, existing.id, body)
        else:
            await self.client.create_issue_comment(self.pr, body)

    async def append_comment(
        self, text: str, path: str | None = None, interval: PatchInterval | None = None
    ) -> None:
        """Buffer a line comment, or post a conversation comment right away."""
        if path is None or interval is None:
            await self.client.create_issue_comment(self.pr, text)
            return
        self.pending.append(
            ReviewComment(
                path=path,
                start_line=interval.start_line,
                end_line=interval.end_line,
                body=f"{text}\n\n{COMMENT_TAG}",
            )
        )

    async def list_review_comments(self) -> list[PullReviewComment]:
        if self._review_comments is None:
            self._review_comments = await self.client.list_review_comments(self.pr)
        return self._review_comments

    async def submit_review(self) -> int:
        """
        Post buffered line comments.

        Tries a single review first; if GitHub rejects it, posts comments one
        by one so a single bad anchor does not lose the rest.
        """
        if not self.pending:
            return 0

        comments, self.pending = self.pending, []
        try:
            await self.client.create_review(self.pr, comments)
            logger.info("Review submitted", comments=len(comments))
            return len(comments)
        except GitHubAPIError as e:
            logger.warning("Batch review rejected, posting comments one by one", error=str(e))

        posted = 0
        for comment in comments:
            try:
                await self.client.create_review_comment(self.pr, comment)
                posted += 1
            except GitHubAPIError as e:
                logger.error(
                    "Failed to post review comment",
                    path=comment.path,
                    line=comment.end_line,
                    error=str(e),
                )
        return posted

    async def update_release_notes(self, notes: str) -> None:
        body = RELEASE_NOTES_BLOCK.upsert(self.pr.description, notes)
        await self.client.update_description(self.pr, body)

    async def reply_to_comment(self, comment_id: int, text: str) -> None:
        await self.client.create_reply(self.pr, comment_id, f"{text}\n\n{COMMENT_REPLY_TAG}")


class InMemoryStateStore:
    """State store that never leaves the process."""

    def __init__(
        self,
        comments: dict[str, str] | None = None,
        review_comments: list[PullReviewComment] | None = None,
        description: str = "",
    ):
        self.comments: dict[str, str] = dict(comments or {})
        self.review_comments = list(review_comments or [])
        self.description = description
        self.pending: list[ReviewComment] = []
        self.posted: list[ReviewComment] = []
        self.issue_comments: list[str] = []
        self.replies: list[tuple[int, str]] = []

    async def find(self, tag: str) -> str | None:
        return self.comments.get(tag)

    async def upsert(self, tag: str, body: str) -> None:
        self.comments[tag] = _with_tag(tag, body)

    async def append_comment(
        self, text: str, path: str | None = None, interval: PatchInterval | None = None
    ) -> None:
        if path is None or interval is None:
            self.issue_comments.append(text)
            return
        self.pending.append(
            ReviewComment(path, interval.start_line, interval.end_line, f"{text}\n\n{COMMENT_TAG}")
        )

    async def list_review_comments(self) -> list[PullReviewComment]:
        return self.review_comments

    async def submit_review(self) -> int:
        posted, self.pending = self.pending, []
        self.posted.extend(posted)
        return len(posted)

    async def update_release_notes(self, notes: str) -> None:
        self.description = RELEASE_NOTES_BLOCK.upsert(self.description, notes)

    async def reply_to_comment(self, comment_id: int, text: str) -> None:
        self.replies.append((comment_id, f"{text}\n\n{COMMENT_REPLY_TAG}"))


async def open_state_store(
    client: GitHubClient, pr: PullRequestContext, dry_run: bool = False
) -> Commenter | InMemoryStateStore:
    """
    State store for ``pr``.

    A dry run reads the existing summary and review comments once and keeps
    every write in memory.
    """
    if not dry_run:
        return Commenter(client, pr)

    existing = await client.list_issue_comments(pr)
    comments = {
        SUMMARIZE_TAG: c.body for c in existing if c.body and SUMMARIZE_TAG in c.body
    }
    return InMemoryStateStore(
        comments=comments,
        review_comments=await client.list_review_comments(pr),
        description=pr.description,
    )
