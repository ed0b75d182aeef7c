"""
API Models

Pydantic models for the GitHub webhook payloads the server handles.
"""

from pydantic import BaseModel, Field

from ..services.github_client import PullReviewComment


class RepositoryOwner(BaseModel):
    login: str


class Repository(BaseModel):
    """Repository of a webhook event (subset of fields)."""

    name: str
    full_name: str
    owner: RepositoryOwner


class PullRequestRef(BaseModel):
    sha: str


class PullRequestPayload(BaseModel):
    number: int
    title: str = ""
    body: str | None = None
    head: PullRequestRef
    base: PullRequestRef


class PullRequestEvent(BaseModel):
    """GitHub ``pull_request`` webhook payload (subset of fields)."""

    action: str
    number: int
    pull_request: PullRequestPayload
    repository: Repository


class ReviewCommentEvent(BaseModel):
    """GitHub ``pull_request_review_comment`` webhook payload (subset of fields)."""

    action: str
    comment: PullReviewComment
    pull_request: PullRequestPayload
    repository: Repository


class WebhookResponse(BaseModel):
    status: str
    reason: str | None = None
    repository: str | None = None
    pull_request: int | None = None
    head: str | None = None
    comment: int | None = None


class WebhookStatus(BaseModel):
    status: str
    reviews_queued: int = 0
    reviews_completed: int = 0
    reviews_failed: int = 0
    replies_queued: int = 0
    replies_completed: int = 0
    replies_failed: int = 0
    signature_required: bool = False
    handled_actions: list[str] = Field(default_factory=list)
    handled_events: list[str] = Field(default_factory=list)
