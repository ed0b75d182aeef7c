"""
Shared fixtures for review pipeline tests.

Provides a fake change source and a scripted model.
"""

from unittest.mock import AsyncMock

import pytest

from forge_review.review.models import ChangedFile


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeSource:
    """Change source serving canned commit lists and compares."""

    def __init__(self, commits: list[str], files: dict[tuple[str, str], list[ChangedFile]]):
        self.commits = commits
        self.files = files
        self.compares: list[tuple[str, str]] = []

    async def list_commits(self, pr):
        return list(self.commits)

    async def compare(self, pr, base: str, head: str):
        self.compares.append((base, head))
        return list(self.files.get((base, head), []))


@pytest.fixture
def fake_source():
    return FakeSource


@pytest.fixture
def scripted_model():
    """
    Model double answering by prompt content.

    Summarize prompts get a triaged summary, review prompts a finding on the
    first hunk, merge and final prompts plain text.
    """

    async def respond(prompt: str) -> str:
        if "## Changes made to" in prompt:
            return "2-2:\nPrefer `sys.exit` with an explicit code.\n---\n31-32:\nLGTM!\n---"
        if "[TRIAGE]:" in prompt:
            return (
                "Adds an explicit exit code.\n"
                "SYMBOLS: [main]\n"
                "[TRIAGE]: NEEDS_REVIEW"
            )
        if "Deduplicate and group together" in prompt:
            return "---\nsrc/app.py: Adds an explicit exit code."
        if "Craft concise release notes" in prompt:
            return "- Bug Fix: exit code is explicit"
        if "Provide a concise summary" in prompt:
            return "short summary"
        return "final summary"

    model = AsyncMock()
    model.send = AsyncMock(side_effect=respond)
    return model
