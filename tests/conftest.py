"""Pytest configuration and fixtures for forge-review tests."""

import pytest

from forge_review.config import ReviewConfig
from forge_review.review.models import PullRequestContext


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: Integration tests requiring external resources"
    )
    config.addinivalue_line(
        "markers",
        "e2e: End-to-end tests for full pipeline"
    )


@pytest.fixture
def pull_request() -> PullRequestContext:
    """Pull request under review in most tests."""
    return PullRequestContext(
        owner="acme",
        repo="widgets",
        number=7,
        title="Add retry to the fetcher",
        base_sha="base000",
        head_sha="head002",
        description="Retries failed fetches.",
    )


@pytest.fixture
def review_config() -> ReviewConfig:
    """Config with credentials set and release notes enabled."""
    return ReviewConfig(
        model="gpt-4o",
        model_access_token="erag-token",
        github_token="gh-token",
        model_concurrency_limit=2,
    )


@pytest.fixture
def count_tokens():
    """Deterministic stand-in for a tokenizer: one token per word."""
    return lambda text: len(text.split())
