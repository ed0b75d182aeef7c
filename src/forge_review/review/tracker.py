"""
Incremental Review Tracker

Remembers which commits of a pull request were already reviewed so that each
run only diffs what changed since the last successful pass.
"""

import re
from dataclasses import dataclass

import structlog

from .markers import COMMIT_IDS_BLOCK, MarkerBlock
from .models import PullRequestContext

logger = structlog.get_logger(__name__)

_COMMIT_ID = re.compile(r"^[0-9A-Za-z._-]+$")


@dataclass(frozen=True)
class ReviewBase:
    """Where the next diff starts."""

    base_sha: str
    highest_reviewed: str | None = None

    @property
    def incremental(self) -> bool:
        return self.highest_reviewed is not None


class IncrementalReviewTracker:
    """Read and update the reviewed-commit marker block."""

    def __init__(self, block: MarkerBlock = COMMIT_IDS_BLOCK):
        self.block = block

    def reviewed_commits(self, body: str | None) -> list[str]:
        """Commit ids recorded in ``body``; empty when absent or corrupt."""
        content = self.block.decode(body)
        if content is None:
            return []

        commits: list[str] = []
        for line in content.splitlines():
            commit = line.strip()
            if not commit:
                continue
            if not _COMMIT_ID.match(commit):
                logger.warning("Reviewed commit block is corrupt", entry=commit[:40])
                return []
            if commit not in commits:
                commits.append(commit)
        return commits

    def highest_reviewed(self, commit_ids: list[str], reviewed: list[str]) -> str | None:
        """Last commit of the pull request's history that was reviewed."""
        reviewed_set = set(reviewed)
        for commit in reversed(commit_ids):
            if commit in reviewed_set:
                return commit
        return None

    def compute_base(
        self, pr: PullRequestContext, commit_ids: list[str], body: str | None
    ) -> ReviewBase:
        """
        Pick the commit to diff the head against.

        Falls back to the pull request base when nothing was reviewed yet or
        the head itself was the last commit reviewed.
        """
        highest = self.highest_reviewed(commit_ids, self.reviewed_commits(body))
        if highest is None or highest == pr.head_sha:
            logger.info("Reviewing from the base commit", base=pr.base_sha)
            return ReviewBase(base_sha=pr.base_sha)

        logger.info("Reviewing incrementally", base=highest, head=pr.head_sha)
        return ReviewBase(base_sha=highest, highest_reviewed=highest)

    def record(self, previous_body: str | None, new_body: str, commit_id: str) -> str:
        """
        Return ``new_body`` carrying the commits of ``previous_body`` plus
        ``commit_id``, each recorded exactly once.
        """
        commits = self.reviewed_commits(previous_body)
        if commit_id not in commits:
            commits.append(commit_id)
        return self.block.upsert(new_body, "\n".join(commits))
