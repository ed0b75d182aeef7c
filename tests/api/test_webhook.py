"""
Tests for the pull request webhook router.

Uses FastAPI's TestClient; the review and reply runs are replaced by mocks.
"""

import asyncio
import hashlib
import hmac
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from forge_review.api import webhook
from forge_review.api.server import create_app
from forge_review.config import ReviewConfig
from forge_review.errors import GitHubAPIError
from forge_review.review.models import ReplyOutcome, ReviewRunReport

SECRET = "hook-secret"

REPOSITORY = {
    "name": "widgets",
    "full_name": "acme/widgets",
    "owner": {"login": "acme"},
}

PULL_REQUEST = {
    "number": 7,
    "title": "Add retry",
    "body": None,
    "head": {"sha": "head002"},
    "base": {"sha": "base000"},
}


def pull_request_event(action: str = "opened") -> dict:
    return {
        "action": action,
        "number": 7,
        "pull_request": PULL_REQUEST,
        "repository": REPOSITORY,
    }


def review_comment_event(action: str = "created") -> dict:
    return {
        "action": action,
        "comment": {
            "id": 42,
            "path": "src/app.py",
            "body": "@forge-review why?",
            "line": 2,
            "in_reply_to_id": None,
            "diff_hunk": "@@ -1,2 +1,3 @@\n import os\n+import sys",
            "user": {"login": "alice"},
        },
        "pull_request": PULL_REQUEST,
        "repository": REPOSITORY,
    }


def sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def fresh_counters() -> dict:
    return {
        "reviews_queued": 0,
        "reviews_completed": 0,
        "reviews_failed": 0,
        "replies_queued": 0,
        "replies_completed": 0,
        "replies_failed": 0,
    }


@pytest.fixture(autouse=True)
def isolated_state(monkeypatch):
    monkeypatch.setattr(webhook, "_counters", fresh_counters())
    monkeypatch.setattr(webhook, "_locks", {})


@pytest.fixture
def review_mock(monkeypatch) -> AsyncMock:
    mock = AsyncMock(return_value=ReviewRunReport(review_comments=2))
    monkeypatch.setattr(webhook, "review_pull_request", mock)
    return mock


@pytest.fixture
def reply_mock(monkeypatch) -> AsyncMock:
    mock = AsyncMock(return_value=ReplyOutcome.REPLIED)
    monkeypatch.setattr(webhook, "reply_to_review_comment", mock)
    return mock


@pytest.fixture
def client(review_mock, reply_mock):
    config = ReviewConfig(
        model_access_token="erag-token", github_token="gh-token", webhook_secret=SECRET
    )
    with TestClient(create_app(config)) as test_client:
        yield test_client
    webhook.set_config(None)


def post_event(client, payload: dict, event: str = "pull_request", signature: str | None = None):
    body = json.dumps(payload).encode()
    headers = {
        "X-GitHub-Event": event,
        "X-Hub-Signature-256": signature if signature is not None else sign(body),
        "Content-Type": "application/json",
    }
    return client.post("/webhooks/github", content=body, headers=headers)


# =============================================================================
# UNIT TESTS: verify_signature()
# =============================================================================

class TestVerifySignature:
    def test_valid(self):
        assert webhook.verify_signature(b"payload", sign(b"payload"), SECRET)

    def test_wrong_secret(self):
        assert not webhook.verify_signature(b"payload", sign(b"payload", "other"), SECRET)

    def test_missing_prefix(self):
        digest = sign(b"payload").removeprefix("sha256=")
        assert not webhook.verify_signature(b"payload", digest, SECRET)


# =============================================================================
# ROUTER TESTS
# =============================================================================

class TestGitHubWebhook:
    """Tests for POST /webhooks/github."""

    @pytest.mark.parametrize("action", ["opened", "synchronize", "reopened"])
    def test_review_queued(self, client, review_mock, action):
        response = post_event(client, pull_request_event(action))

        assert response.status_code == 200
        assert response.json() == {
            "status": "queued",
            "repository": "acme/widgets",
            "pull_request": 7,
            "head": "head002",
        }
        review_mock.assert_awaited_once()
        assert review_mock.await_args.args[1:] == ("acme", "widgets", 7)

    def test_other_action_ignored(self, client, review_mock):
        response = post_event(client, pull_request_event("closed"))

        assert response.json()["status"] == "ignored"
        review_mock.assert_not_awaited()

    @pytest.mark.parametrize("event", ["ping", "push", "issue_comment"])
    def test_other_event_ignored(self, client, review_mock, reply_mock, event):
        response = post_event(client, {"zen": "hi"}, event=event)

        assert response.status_code == 200
        assert response.json() == {
            "status": "ignored",
            "reason": f"Event type '{event}' not handled",
        }
        review_mock.assert_not_awaited()
        reply_mock.assert_not_awaited()

    def test_invalid_signature(self, client, review_mock):
        response = post_event(client, pull_request_event(), signature="sha256=deadbeef")

        assert response.status_code == 401
        review_mock.assert_not_awaited()

    def test_missing_signature(self, client):
        response = client.post(
            "/webhooks/github",
            content=json.dumps(pull_request_event()).encode(),
            headers={"X-GitHub-Event": "pull_request"},
        )
        assert response.status_code == 401

    def test_invalid_payload(self, client):
        response = post_event(client, {"action": "opened"})
        assert response.status_code == 400


class TestReviewCommentWebhook:
    """Tests for pull_request_review_comment deliveries."""

    def test_reply_queued(self, client, reply_mock, review_mock):
        response = post_event(
            client, review_comment_event(), event="pull_request_review_comment"
        )

        assert response.status_code == 200
        assert response.json() == {
            "status": "queued",
            "repository": "acme/widgets",
            "pull_request": 7,
            "comment": 42,
        }
        reply_mock.assert_awaited_once()
        config, owner, repo, number, comment = reply_mock.await_args.args
        assert (owner, repo, number) == ("acme", "widgets", 7)
        assert comment.id == 42
        assert comment.author == "alice"
        assert comment.diff_hunk.endswith("+import sys")
        review_mock.assert_not_awaited()

    @pytest.mark.parametrize("action", ["edited", "deleted"])
    def test_other_action_ignored(self, client, reply_mock, action):
        response = post_event(
            client, review_comment_event(action), event="pull_request_review_comment"
        )

        assert response.json()["status"] == "ignored"
        reply_mock.assert_not_awaited()

    def test_invalid_payload(self, client, reply_mock):
        response = post_event(
            client, {"action": "created"}, event="pull_request_review_comment"
        )

        assert response.status_code == 400
        reply_mock.assert_not_awaited()


# =============================================================================
# BACKGROUND TASKS
# =============================================================================

@pytest.fixture
def configured(monkeypatch):
    config = ReviewConfig(model_access_token="erag-token", github_token="gh-token")
    monkeypatch.setattr(webhook, "_config", config)
    return config


def overlap_tracker():
    """Stubbed runs recording how many of them overlap at once."""
    state = {"running": 0, "max": 0}

    def stub(result):
        async def run(*args, **kwargs):
            state["running"] += 1
            state["max"] = max(state["max"], state["running"])
            await asyncio.sleep(0.01)
            state["running"] -= 1
            return result

        return run

    return stub, state


class TestSerializedRuns:
    """Runs against one pull request never overlap."""

    @pytest.mark.asyncio
    async def test_same_pull_request_runs_one_at_a_time(self, configured, monkeypatch):
        stub, state = overlap_tracker()
        monkeypatch.setattr(webhook, "review_pull_request", stub(ReviewRunReport()))

        await asyncio.gather(
            webhook.trigger_review("acme", "widgets", 7),
            webhook.trigger_review("acme", "widgets", 7),
        )

        assert state["max"] == 1
        assert webhook._counters["reviews_completed"] == 2

    @pytest.mark.asyncio
    async def test_reply_waits_for_review(self, configured, monkeypatch):
        stub, state = overlap_tracker()
        monkeypatch.setattr(webhook, "review_pull_request", stub(ReviewRunReport()))
        monkeypatch.setattr(webhook, "reply_to_review_comment", stub(ReplyOutcome.REPLIED))

        await asyncio.gather(
            webhook.trigger_review("acme", "widgets", 7),
            webhook.trigger_reply("acme", "widgets", 7, AsyncMock(id=42)),
        )

        assert state["max"] == 1

    @pytest.mark.asyncio
    async def test_different_pull_requests_run_together(self, configured, monkeypatch):
        stub, state = overlap_tracker()
        monkeypatch.setattr(webhook, "review_pull_request", stub(ReviewRunReport()))

        await asyncio.gather(
            webhook.trigger_review("acme", "widgets", 7),
            webhook.trigger_review("acme", "widgets", 8),
        )

        assert state["max"] == 2


class TestTaskFailures:
    """Failed background runs are counted, whatever they raise."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [GitHubAPIError("boom", 500), KeyError("sha"), ValueError("bad response")],
    )
    async def test_review_failure_counted(self, configured, monkeypatch, error):
        monkeypatch.setattr(webhook, "review_pull_request", AsyncMock(side_effect=error))

        await webhook.trigger_review("acme", "widgets", 7)

        assert webhook._counters["reviews_failed"] == 1
        assert webhook._counters["reviews_completed"] == 0

    @pytest.mark.asyncio
    async def test_reply_failure_counted(self, configured, monkeypatch):
        monkeypatch.setattr(
            webhook, "reply_to_review_comment", AsyncMock(side_effect=KeyError("user"))
        )

        await webhook.trigger_reply("acme", "widgets", 7, AsyncMock(id=42))

        assert webhook._counters["replies_failed"] == 1

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(self, configured, monkeypatch):
        monkeypatch.setattr(webhook, "review_pull_request", AsyncMock(side_effect=KeyError("x")))

        await webhook.trigger_review("acme", "widgets", 7)

        assert not webhook.pull_request_lock("acme", "widgets", 7).locked()


class TestWebhookStatus:
    """Tests for GET /webhooks/status."""

    def test_counts_runs(self, client, review_mock, reply_mock):
        post_event(client, pull_request_event())
        review_mock.side_effect = GitHubAPIError("boom", 500)
        post_event(client, pull_request_event("synchronize"))
        post_event(client, review_comment_event(), event="pull_request_review_comment")

        status = client.get("/webhooks/status").json()

        assert status["status"] == "ready"
        assert status["reviews_queued"] == 2
        assert status["reviews_completed"] == 1
        assert status["reviews_failed"] == 1
        assert status["replies_queued"] == 1
        assert status["replies_completed"] == 1
        assert status["signature_required"] is True
        assert status["handled_events"] == ["pull_request", "pull_request_review_comment"]

    def test_not_initialized(self, review_mock):
        webhook.set_config(None)
        app = FastAPI()
        app.include_router(webhook.router)
        with TestClient(app) as test_client:
            assert test_client.get("/webhooks/status").json()["status"] == "not_initialized"
