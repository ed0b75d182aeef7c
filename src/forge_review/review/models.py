"""
Data models for the review pipeline.

Defines all types used between diff parsing, prompt packing, response parsing
and comment posting.
"""

from dataclasses import dataclass, field
from enum import Enum


class LineKind(str, Enum):
    """How a hunk body line relates to the two file versions."""

    CONTEXT = "context"
    ADDED = "added"
    REMOVED = "removed"


class SkipReason(str, Enum):
    """Why a file did not make it through a stage."""

    EMPTY_DIFF = "empty diff"
    DIFF_TOO_LARGE = "diff too large"
    NOTHING_OBTAINED = "nothing obtained from the model"
    MAX_FILES = "max files limit"
    TRIVIAL = "trivial changes"


class ReplyOutcome(str, Enum):
    """What happened to a review comment addressed to the reviewer."""

    REPLIED = "replied"
    OWN_COMMENT = "own comment"
    NOT_ADDRESSED = "not addressed to the reviewer"
    NO_DIFF = "no diff available"
    DIFF_TOO_LARGE = "diff too large"
    NOTHING_OBTAINED = "nothing obtained from the model"


@dataclass(frozen=True)
class PullRequestContext:
    """Identity of the change request under review."""

    owner: str
    repo: str
    number: int
    title: str
    base_sha: str
    head_sha: str
    description: str = ""

    @property
    def full_name(self) -> str:
        """owner/repo form used in API paths."""
        return f"{self.owner}/{self.repo}"


@dataclass
class ChangedFile:
    """One file touched by a compare between two commits."""

    filename: str
    patch: str | None = None
    status: str = "modified"  # added, removed, modified, renamed


@dataclass
class DiffHunk:
    """A single hunk within a diff."""

    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: list[tuple[LineKind, str]] = field(default_factory=list)

    @property
    def added_count(self) -> int:
        return sum(1 for kind, _ in self.lines if kind is LineKind.ADDED)


@dataclass(frozen=True)
class PatchInterval:
    """Line range of a hunk in new-file coordinates."""

    start_line: int
    end_line: int

    def overlap(self, start_line: int, end_line: int) -> int:
        """Number of lines shared with [start_line, end_line]."""
        return max(0, min(end_line, self.end_line) - max(start_line, self.start_line) + 1)

    def contains(self, start_line: int, end_line: int) -> bool:
        return self.start_line <= start_line and end_line <= self.end_line


@dataclass
class AnnotatedHunk:
    """Old/new renderings of a hunk, the new one carrying line numbers."""

    old_hunk: str
    new_hunk: str
    interval: PatchInterval

    def render(self) -> str:
        """Block layout the review prompt expects."""
        return (
            f"\n---new_hunk---\n```\n{self.new_hunk}\n```\n"
            f"\n---old_hunk---\n```\n{self.old_hunk}\n```\n"
        )


@dataclass
class Finding:
    """A line-ranged review comment produced from model output."""

    start_line: int
    end_line: int
    comment: str
    exact: bool = True
    original_range: tuple[int, int] | None = None

    def __post_init__(self) -> None:
        if self.start_line > self.end_line:
            self.start_line, self.end_line = self.end_line, self.start_line


@dataclass
class FileSummary:
    """Per-file summary produced by the summarize stage."""

    filename: str
    summary: str
    needs_review: bool = True
    symbols: list[str] = field(default_factory=list)


@dataclass
class ReviewComment:
    """A buffered comment waiting to be posted."""

    path: str
    start_line: int
    end_line: int
    body: str


@dataclass
class FileReviewResult:
    """Review output for a single file."""

    filename: str
    findings: list[Finding] = field(default_factory=list)
    approvals: int = 0
    hunks_packed: int = 0
    hunks_total: int = 0


@dataclass
class ReviewRunReport:
    """Everything a run skipped, failed, or produced, for the status comment."""

    base_sha: str = ""
    head_sha: str = ""
    selected_files: list[str] = field(default_factory=list)
    ignored_files: list[str] = field(default_factory=list)
    skipped_files: dict[str, str] = field(default_factory=dict)
    summaries_failed: dict[str, str] = field(default_factory=dict)
    reviews_failed: dict[str, str] = field(default_factory=dict)
    reviews_skipped: dict[str, str] = field(default_factory=dict)
    review_comments: int = 0
    lgtm_count: int = 0

    def render_status(self) -> str:
        """Markdown status block appended to the summary comment."""
        parts = [
            "<details>\n<summary>Commits</summary>\n"
            f"Files that changed from the base of the PR and between "
            f"{self.base_sha} and {self.head_sha} commits.\n</details>"
        ]
        sections = [
            ("Files selected", {name: "" for name in self.selected_files}),
            ("Files ignored due to filter", {name: "" for name in self.ignored_files}),
            ("Files not processed", self.skipped_files),
            ("Files not summarized due to errors", self.summaries_failed),
            ("Files not reviewed due to errors", self.reviews_failed),
            ("Files skipped from review", self.reviews_skipped),
        ]
        for title, entries in sections:
            if not entries:
                continue
            lines = [
                f"* {name} ({reason})" if reason else f"* {name}"
                for name, reason in entries.items()
            ]
            parts.append(
                f"<details>\n<summary>{title} ({len(entries)})</summary>\n\n"
                + "\n".join(lines)
                + "\n\n</details>"
            )
        if self.review_comments or self.lgtm_count:
            parts.append(
                f"<details>\n<summary>Review comments generated "
                f"({self.review_comments + self.lgtm_count})</summary>\n\n"
                f"* Review: {self.review_comments}\n* LGTM: {self.lgtm_count}\n\n</details>"
            )
        return "\n".join(parts)
