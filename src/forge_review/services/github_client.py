"""
GitHub REST client

Fetches pull request metadata, commit lists and compare diffs, and reads and
writes the comments the review state lives in.
"""

import asyncio
from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from ..config import ReviewConfig
from ..errors import GitHubAPIError
from ..review.models import ChangedFile, PullRequestContext, ReviewComment

logger = structlog.get_logger(__name__)

PER_PAGE = 100


class CompareFile(BaseModel):
    """File entry of a compare response (subset of fields)."""

    filename: str
    status: str = "modified"
    patch: str | None = None


class CommentUser(BaseModel):
    login: str = "unknown"


class IssueComment(BaseModel):
    """Issue (conversation) comment on a pull request."""

    id: int
    body: str | None = None
    user: CommentUser | None = None


class PullReviewComment(BaseModel):
    """Line comment on a pull request diff."""

    id: int
    path: str
    body: str = ""
    line: int | None = None
    start_line: int | None = None
    in_reply_to_id: int | None = None
    diff_hunk: str | None = None
    user: CommentUser | None = None

    @property
    def author(self) -> str:
        return self.user.login if self.user else "unknown"


class GitHubClient:
    """Thin async wrapper over the endpoints the review run needs."""

    def __init__(
        self,
        token: str | None,
        api_url: str = "https://api.github.com",
        concurrency_limit: int = 6,
        client: httpx.AsyncClient | None = None,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "forge-review",
        }
        if token:
            headers["Authorization"] = f"token {token}"

        self._client = client or httpx.AsyncClient(
            base_url=api_url, headers=headers, timeout=30.0
        )
        self._owns_client = client is None
        self._semaphore = asyncio.Semaphore(max(1, concurrency_limit))

    @classmethod
    def from_config(cls, config: ReviewConfig) -> "GitHubClient":
        return cls(
            token=config.github_token,
            api_url=config.github_api_url,
            concurrency_limit=config.github_concurrency_limit,
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        async with self._semaphore:
            try:
                response = await self._client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                raise GitHubAPIError(f"{method} {path} failed: {e}") from e

        if response.is_error:
            raise GitHubAPIError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _paginate(self, path: str) -> list[dict]:
        items: list[dict] = []
        page = 1
        while True:
            batch = await self._request(
                "GET", path, params={"per_page": PER_PAGE, "page": page}
            )
            items.extend(batch or [])
            if not batch or len(batch) < PER_PAGE:
                return items
            page += 1

    # =========================================================================
    # Change request source
    # =========================================================================

    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequestContext:
        data = await self._request("GET", f"/repos/{owner}/{repo}/pulls/{number}")
        return PullRequestContext(
            owner=owner,
            repo=repo,
            number=number,
            title=data.get("title") or "",
            description=data.get("body") or "",
            base_sha=data["base"]["sha"],
            head_sha=data["head"]["sha"],
        )

    async def list_commits(self, pr: PullRequestContext) -> list[str]:
        """Commit shas of the pull request, oldest first."""
        commits = await self._paginate(f"/repos/{pr.full_name}/pulls/{pr.number}/commits")
        return [commit["sha"] for commit in commits]

    async def compare(self, pr: PullRequestContext, base: str, head: str) -> list[ChangedFile]:
        """Files changed between two commits, with their patches."""
        data = await self._request("GET", f"/repos/{pr.full_name}/compare/{base}...{head}")
        files = [CompareFile.model_validate(item) for item in (data or {}).get("files", [])]
        return [
            ChangedFile(filename=f.filename, patch=f.patch, status=f.status) for f in files
        ]

    async def update_description(self, pr: PullRequestContext, body: str) -> None:
        await self._request(
            "PATCH", f"/repos/{pr.full_name}/pulls/{pr.number}", json={"body": body}
        )

    # =========================================================================
    # Comments
    # =========================================================================

    async def list_issue_comments(self, pr: PullRequestContext) -> list[IssueComment]:
        items = await self._paginate(f"/repos/{pr.full_name}/issues/{pr.number}/comments")
        return [IssueComment.model_validate(item) for item in items]

    async def create_issue_comment(self, pr: PullRequestContext, body: str) -> None:
        await self._request(
            "POST", f"/repos/{pr.full_name}/issues/{pr.number}/comments", json={"body": body}
        )

    async def update_issue_comment(
        self, pr: PullRequestContext, comment_id: int, body: str
    ) -> None:
        await self._request(
            "PATCH", f"/repos/{pr.full_name}/issues/comments/{comment_id}", json={"body": body}
        )

    async def list_review_comments(self, pr: PullRequestContext) -> list[PullReviewComment]:
        items = await self._paginate(f"/repos/{pr.full_name}/pulls/{pr.number}/comments")
        return [PullReviewComment.model_validate(item) for item in items]

    async def create_review(
        self, pr: PullRequestContext, comments: list[ReviewComment], body: str = ""
    ) -> None:
        """Post all buffered comments as a single COMMENT review."""
        await self._request(
            "POST",
            f"/repos/{pr.full_name}/pulls/{pr.number}/reviews",
            json={
                "commit_id": pr.head_sha,
                "event": "COMMENT",
                "body": body,
                "comments": [_review_comment_payload(c) for c in comments],
            },
        )

    async def create_review_comment(self, pr: PullRequestContext, comment: ReviewComment) -> None:
        payload = _review_comment_payload(comment)
        payload["commit_id"] = pr.head_sha
        await self._request(
            "POST", f"/repos/{pr.full_name}/pulls/{pr.number}/comments", json=payload
        )

    async def create_reply(self, pr: PullRequestContext, comment_id: int, body: str) -> None:
        """Reply in the thread of review comment ``comment_id``."""
        await self._request(
            "POST",
            f"/repos/{pr.full_name}/pulls/{pr.number}/comments/{comment_id}/replies",
            json={"body": body},
        )


def _review_comment_payload(comment: ReviewComment) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "path": comment.path,
        "body": comment.body,
        "line": comment.end_line,
        "side": "RIGHT",
    }
    if comment.start_line < comment.end_line:
        payload["start_line"] = comment.start_line
        payload["start_side"] = "RIGHT"
    return payload
