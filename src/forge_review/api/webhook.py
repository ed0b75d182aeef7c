"""
Webhook handler for pull request events.

Provides a FastAPI router for GitHub webhooks that trigger a review pass when
a pull request is opened, reopened or receives new commits, and a reply when
a review comment is addressed to the reviewer. Work on one pull request runs
one task at a time.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
from typing import Awaitable, Callable, Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Request
from pydantic import ValidationError

from ..config import ReviewConfig
from ..review.agent import review_pull_request
from ..review.reply import reply_to_review_comment
from ..services.github_client import PullReviewComment
from .models import PullRequestEvent, ReviewCommentEvent, WebhookResponse, WebhookStatus

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

HANDLED_ACTIONS = ("opened", "synchronize", "reopened")
HANDLED_EVENTS = ("pull_request", "pull_request_review_comment")

# Global config instance (set by application)
_config: Optional[ReviewConfig] = None
_counters = {
    "reviews_queued": 0,
    "reviews_completed": 0,
    "reviews_failed": 0,
    "replies_queued": 0,
    "replies_completed": 0,
    "replies_failed": 0,
}
_locks: dict[tuple[str, str, int], asyncio.Lock] = {}


def set_config(config: ReviewConfig) -> None:
    """Set the global config instance."""
    global _config
    _config = config


def verify_signature(payload: bytes, signature: str, secret: str) -> bool:
    """
    Verify GitHub webhook signature.

    Args:
        payload: Raw request body
        signature: X-Hub-Signature-256 header value
        secret: Webhook secret

    Returns:
        True if signature is valid
    """
    if not signature.startswith("sha256="):
        return False

    expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", signature)


def pull_request_lock(owner: str, repo: str, number: int) -> asyncio.Lock:
    """Lock serializing every run against one pull request."""
    return _locks.setdefault((owner, repo, number), asyncio.Lock())


@router.post("/github", response_model=WebhookResponse, response_model_exclude_none=True)
async def handle_github_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_hub_signature_256: Optional[str] = Header(None),
    x_github_event: Optional[str] = Header(None),
):
    """
    Handle GitHub pull_request and pull_request_review_comment events.

    Args:
        request: FastAPI request
        background_tasks: Background task queue
        x_hub_signature_256: GitHub signature header
        x_github_event: GitHub event type header
    """
    if _config is None:
        raise HTTPException(status_code=503, detail="Reviewer not configured")

    body = await request.body()

    if _config.webhook_secret:
        if not x_hub_signature_256:
            raise HTTPException(status_code=401, detail="Missing signature")
        if not verify_signature(body, x_hub_signature_256, _config.webhook_secret):
            raise HTTPException(status_code=401, detail="Invalid signature")

    if x_github_event == "pull_request_review_comment":
        return _handle_review_comment(body, background_tasks)

    if x_github_event != "pull_request":
        logger.info("Ignoring webhook event", github_event=x_github_event)
        return WebhookResponse(
            status="ignored", reason=f"Event type '{x_github_event}' not handled"
        )

    try:
        event = PullRequestEvent.model_validate_json(body)
    except ValidationError as e:
        logger.error("Failed to parse webhook payload", error=str(e))
        raise HTTPException(status_code=400, detail="Invalid payload")

    if event.action not in HANDLED_ACTIONS:
        logger.info("Ignoring pull_request action", action=event.action)
        return WebhookResponse(
            status="ignored", reason=f"Action '{event.action}' not handled"
        )

    repository = event.repository
    logger.info(
        "Received pull_request webhook",
        repo=repository.full_name,
        pr=event.number,
        action=event.action,
        head=event.pull_request.head.sha[:8],
    )

    _counters["reviews_queued"] += 1
    background_tasks.add_task(
        trigger_review, repository.owner.login, repository.name, event.number
    )

    return WebhookResponse(
        status="queued",
        repository=repository.full_name,
        pull_request=event.number,
        head=event.pull_request.head.sha,
    )


def _handle_review_comment(body: bytes, background_tasks: BackgroundTasks) -> WebhookResponse:
    try:
        event = ReviewCommentEvent.model_validate_json(body)
    except ValidationError as e:
        logger.error("Failed to parse webhook payload", error=str(e))
        raise HTTPException(status_code=400, detail="Invalid payload")

    if event.action != "created":
        logger.info("Ignoring review comment action", action=event.action)
        return WebhookResponse(
            status="ignored", reason=f"Action '{event.action}' not handled"
        )

    repository = event.repository
    number = event.pull_request.number
    logger.info(
        "Received review comment webhook",
        repo=repository.full_name,
        pr=number,
        comment_id=event.comment.id,
    )

    _counters["replies_queued"] += 1
    background_tasks.add_task(
        trigger_reply, repository.owner.login, repository.name, number, event.comment
    )

    return WebhookResponse(
        status="queued",
        repository=repository.full_name,
        pull_request=number,
        comment=event.comment.id,
    )


async def _run_serialized(
    kind: str,
    owner: str,
    repo: str,
    number: int,
    work: Callable[[], Awaitable[object]],
) -> object | None:
    """Run ``work`` under the pull request lock; failures are counted, not raised."""
    async with pull_request_lock(owner, repo, number):
        try:
            result = await work()
        except Exception as e:
            _counters[f"{kind}_failed"] += 1
            logger.error(
                "Webhook task failed",
                kind=kind,
                repo=f"{owner}/{repo}",
                pr=number,
                error=str(e),
            )
            return None

    _counters[f"{kind}_completed"] += 1
    return result


async def trigger_review(owner: str, repo: str, number: int) -> None:
    """
    Run a review pass for a pull request (background task).

    Args:
        owner: Repository owner
        repo: Repository name
        number: Pull request number
    """
    if _config is None:
        logger.error("Reviewer not configured")
        return

    config = _config
    logger.info("Starting webhook-triggered review", repo=f"{owner}/{repo}", pr=number)

    report = await _run_serialized(
        "reviews",
        owner,
        repo,
        number,
        lambda: review_pull_request(config, owner, repo, number),
    )
    if report is None:
        return

    logger.info(
        "Webhook review complete",
        repo=f"{owner}/{repo}",
        pr=number,
        comments=report.review_comments,
        failures=len(report.summaries_failed) + len(report.reviews_failed),
    )


async def trigger_reply(
    owner: str, repo: str, number: int, comment: PullReviewComment
) -> None:
    """Answer a review comment (background task)."""
    if _config is None:
        logger.error("Reviewer not configured")
        return

    config = _config
    outcome = await _run_serialized(
        "replies",
        owner,
        repo,
        number,
        lambda: reply_to_review_comment(config, owner, repo, number, comment),
    )
    if outcome is not None:
        logger.info(
            "Webhook reply complete",
            repo=f"{owner}/{repo}",
            pr=number,
            comment_id=comment.id,
            outcome=outcome.value,
        )


@router.get("/status", response_model=WebhookStatus)
async def webhook_status():
    """Get webhook handler status."""
    if _config is None:
        return WebhookStatus(status="not_initialized")

    return WebhookStatus(
        status="ready",
        reviews_queued=_counters["reviews_queued"],
        reviews_completed=_counters["reviews_completed"],
        reviews_failed=_counters["reviews_failed"],
        replies_queued=_counters["replies_queued"],
        replies_completed=_counters["replies_completed"],
        replies_failed=_counters["replies_failed"],
        signature_required=bool(_config.webhook_secret),
        handled_actions=list(HANDLED_ACTIONS),
        handled_events=list(HANDLED_EVENTS),
    )
