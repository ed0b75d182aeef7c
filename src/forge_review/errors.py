"""Exceptions raised by forge-review."""


class ForgeReviewError(Exception):
    """Base class for all forge-review errors."""


class ConfigurationError(ForgeReviewError):
    """Required settings or credentials are missing."""


class ModelCallError(ForgeReviewError):
    """The model endpoint failed after all retry attempts."""


class GitHubAPIError(ForgeReviewError):
    """A GitHub REST call failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
