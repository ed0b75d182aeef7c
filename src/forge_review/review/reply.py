"""
Review Comment Responder

Answers review comments addressed to the reviewer: replies inside threads the
reviewer started, or wherever someone mentions it. The prompt carries the
commented hunk, the file's diff when it fits, the short summary of the last
review run and the whole thread.
"""

from typing import Any, Callable

import structlog

from ..config import ReviewConfig
from ..services.commenter import comment_chain, open_state_store, thread_root
from ..services.github_client import GitHubClient, PullReviewComment
from ..services.llm_client import ModelClient
from ..services.tokens import TokenCounter
from .inputs import Inputs
from .markers import (
    BOT_MENTION,
    COMMENT_REPLY_TAG,
    COMMENT_TAG,
    RELEASE_NOTES_BLOCK,
    SHORT_SUMMARY_BLOCK,
    SUMMARIZE_TAG,
)
from .models import PullRequestContext, ReplyOutcome
from .prompts import Prompts

logger = structlog.get_logger(__name__)

DIFF_TOO_LARGE_REPLY = (
    "Cannot reply to this comment as the diff being commented on is too large "
    "and exceeds the token limit."
)
NO_DIFF_REPLY = "Cannot reply to this comment as the diff could not be retrieved."


def is_own_comment(comment: PullReviewComment) -> bool:
    return COMMENT_TAG in comment.body or COMMENT_REPLY_TAG in comment.body


class ReviewCommentResponder:
    """
    Replies to one review comment at a time.

    Collaborators are the same as the review agent's: a model, a change
    source with ``compare(pr, base, head)`` and a state store.
    """

    def __init__(
        self,
        config: ReviewConfig,
        model: Any,
        source: Any,
        store: Any,
        count_tokens: Callable[[str], int],
        prompts: Prompts | None = None,
    ):
        self.config = config
        self.model = model
        self.source = source
        self.store = store
        self.count_tokens = count_tokens
        self.prompts = prompts or Prompts()
        self.request_tokens = config.token_limits.request_tokens

    async def respond(
        self, pr: PullRequestContext, comment: PullReviewComment
    ) -> ReplyOutcome:
        if is_own_comment(comment):
            logger.debug("Skipping own comment", comment_id=comment.id)
            return ReplyOutcome.OWN_COMMENT

        thread = await self.store.list_review_comments()
        chain = comment_chain(thread, comment)
        root = thread_root(thread, comment)
        if COMMENT_TAG not in root.body and BOT_MENTION not in comment.body:
            logger.debug("Comment not addressed to the reviewer", comment_id=comment.id)
            return ReplyOutcome.NOT_ADDRESSED

        file_diff = await self._file_diff(pr, comment.path)
        diff = comment.diff_hunk or file_diff
        if not diff:
            await self.store.reply_to_comment(root.id, NO_DIFF_REPLY)
            return ReplyOutcome.NO_DIFF

        inputs = Inputs(
            system_message=self.config.system_message,
            title=pr.title,
            description=RELEASE_NOTES_BLOCK.strip(pr.description),
            filename=comment.path,
            diff=diff,
            comment_chain=chain,
            comment=f"{comment.author}: {comment.body}",
        )

        tokens = self.count_tokens(self.prompts.render_comment(inputs))
        if tokens > self.request_tokens:
            logger.info("Commented diff too large to reply", comment_id=comment.id, tokens=tokens)
            await self.store.reply_to_comment(root.id, DIFF_TOO_LARGE_REPLY)
            return ReplyOutcome.DIFF_TOO_LARGE

        if file_diff and tokens + self.count_tokens(file_diff) <= self.request_tokens:
            inputs.file_diff = file_diff

        summary = await self.store.find(SUMMARIZE_TAG)
        short_summary = SHORT_SUMMARY_BLOCK.decode(summary)
        if short_summary:
            inputs.short_summary = short_summary

        reply = await self.model.send(self.prompts.render_comment(inputs))
        if not reply:
            logger.warning("Nothing obtained from the model", comment_id=comment.id)
            return ReplyOutcome.NOTHING_OBTAINED

        await self.store.reply_to_comment(root.id, reply)
        logger.info("Replied to review comment", comment_id=comment.id, thread=root.id)
        return ReplyOutcome.REPLIED

    async def _file_diff(self, pr: PullRequestContext, path: str) -> str:
        for changed in await self.source.compare(pr, pr.base_sha, pr.head_sha):
            if changed.filename == path:
                return changed.patch or ""
        return ""


async def reply_to_review_comment(
    config: ReviewConfig,
    owner: str,
    repo: str,
    number: int,
    comment: PullReviewComment,
    dry_run: bool = False,
) -> ReplyOutcome:
    """
    Answer ``comment`` on ``owner/repo#number``.

    Raises:
        ConfigurationError: credentials are missing
    """
    config.validate()

    async with GitHubClient.from_config(config) as github, ModelClient.from_config(
        config
    ) as model:
        pr = await github.get_pull_request(owner, repo, number)
        store = await open_state_store(github, pr, dry_run=dry_run)
        responder = ReviewCommentResponder(
            config=config,
            model=model,
            source=github,
            store=store,
            count_tokens=TokenCounter(),
        )
        return await responder.respond(pr, comment)
