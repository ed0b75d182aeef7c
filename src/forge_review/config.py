"""Configuration management for forge-review.

Settings come from environment variables, optionally overridden by CLI flags.
"""

import os
from dataclasses import dataclass, field

from .errors import ConfigurationError

DEFAULT_SYSTEM_MESSAGE = """You are a highly experienced software engineer reviewing \
pull requests. Focus on correctness, security, performance, data races, error \
handling and maintainability. Do not comment on minor style issues or missing \
documentation unless they cause real problems."""


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> list[str]:
    value = os.getenv(name, "")
    return [item.strip() for item in value.replace(",", "\n").splitlines() if item.strip()]


@dataclass
class TokenLimits:
    """Context window split for a model."""

    model: str = "gpt-3.5-turbo"
    max_tokens: int = 4000
    response_tokens: int = 1000
    knowledge_cut_off: str = "2023-10-01"

    # Margin kept free between request and response
    REQUEST_MARGIN = 100

    def __post_init__(self) -> None:
        if self.model == "gpt-4-32k":
            self.max_tokens, self.response_tokens = 32600, 4000
        elif self.model == "gpt-3.5-turbo-16k":
            self.max_tokens, self.response_tokens = 16300, 3000
        elif self.model == "gpt-4":
            self.max_tokens, self.response_tokens = 8000, 2000
        elif self.model == "gpt-4o":
            # 128k window, capped to keep requests cheap
            self.max_tokens, self.response_tokens = 32600, 4000
        elif self.model == "bedrock-claude3.5-sonnet":
            self.max_tokens, self.response_tokens = 16000, 4000
        elif "o1-mini" in self.model:
            self.max_tokens, self.response_tokens = 128000, 65000

    @property
    def request_tokens(self) -> int:
        return self.max_tokens - self.response_tokens - self.REQUEST_MARGIN


@dataclass
class RetryPolicy:
    """How the model client retries failed calls."""

    attempts: int = 3
    backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 30.0
    retry_statuses: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})

    def delay(self, attempt: int) -> float:
        """Sleep before retry number ``attempt`` (1-based)."""
        return min(
            self.backoff_seconds * self.backoff_multiplier ** (attempt - 1),
            self.max_backoff_seconds,
        )

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in self.retry_statuses


@dataclass
class ReviewConfig:
    """Settings for one review run."""

    debug: bool = False
    disable_review: bool = False
    disable_release_notes: bool = False
    max_files: int = 150  # 0 means no limit
    review_simple_changes: bool = False
    review_comment_lgtm: bool = False
    path_filters: list[str] = field(default_factory=list)
    system_message: str = DEFAULT_SYSTEM_MESSAGE

    # Model endpoint
    model: str = "gpt-4o"
    model_retries: int = 3
    model_concurrency_limit: int = 6
    model_base_url: str = "https://erag.trilogy.com/api/v2"
    model_project_name: str = ""
    model_access_token: str | None = None
    model_timeout_seconds: float = 300.0

    # GitHub
    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    github_concurrency_limit: int = 6

    # Webhook server
    webhook_secret: str | None = None

    @property
    def token_limits(self) -> TokenLimits:
        return TokenLimits(self.model)

    @property
    def retry_policy(self) -> RetryPolicy:
        # Retries follow the first attempt
        return RetryPolicy(attempts=max(0, self.model_retries) + 1)

    def validate(self) -> None:
        """Fail fast when the run could not reach its collaborators."""
        missing = []
        if not self.model_access_token:
            missing.append("ERAG_ACCESS_TOKEN")
        if not self.github_token:
            missing.append("GITHUB_TOKEN")
        if not self.model_base_url:
            missing.append("FORGE_REVIEW_MODEL_BASE_URL")
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    @classmethod
    def from_env(cls) -> "ReviewConfig":
        """Create configuration from environment variables."""
        return cls(
            debug=_env_bool("FORGE_REVIEW_DEBUG"),
            disable_review=_env_bool("FORGE_REVIEW_DISABLE_REVIEW"),
            disable_release_notes=_env_bool("FORGE_REVIEW_DISABLE_RELEASE_NOTES"),
            max_files=int(os.getenv("FORGE_REVIEW_MAX_FILES", "150")),
            review_simple_changes=_env_bool("FORGE_REVIEW_SIMPLE_CHANGES"),
            review_comment_lgtm=_env_bool("FORGE_REVIEW_COMMENT_LGTM"),
            path_filters=_env_list("FORGE_REVIEW_PATH_FILTERS"),
            system_message=os.getenv("FORGE_REVIEW_SYSTEM_MESSAGE") or DEFAULT_SYSTEM_MESSAGE,
            model=os.getenv("FORGE_REVIEW_MODEL", "gpt-4o"),
            model_retries=int(os.getenv("FORGE_REVIEW_MODEL_RETRIES", "3")),
            model_concurrency_limit=int(os.getenv("FORGE_REVIEW_MODEL_CONCURRENCY", "6")),
            model_base_url=os.getenv(
                "FORGE_REVIEW_MODEL_BASE_URL", "https://erag.trilogy.com/api/v2"
            ),
            model_project_name=os.getenv("FORGE_REVIEW_PROJECT_NAME", ""),
            model_access_token=os.getenv("ERAG_ACCESS_TOKEN"),
            github_token=os.getenv("GITHUB_TOKEN"),
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            github_concurrency_limit=int(os.getenv("FORGE_REVIEW_GITHUB_CONCURRENCY", "6")),
            webhook_secret=os.getenv("FORGE_REVIEW_WEBHOOK_SECRET"),
        )
