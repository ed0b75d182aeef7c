"""
Review Module

Patch segmentation, prompt packing and response parsing for pull request
review. The agent running a full pass lives in ``forge_review.review.agent``
and the review comment responder in ``forge_review.review.reply``.
"""

from .models import (
    AnnotatedHunk,
    ChangedFile,
    Finding,
    FileSummary,
    PatchInterval,
    PullRequestContext,
    ReplyOutcome,
    ReviewRunReport,
    SkipReason,
)
from .patches import HunkAnnotator, PatchSegmenter
from .packer import TokenBudgetPacker
from .response_parser import ResponseIntervalParser
from .reconciler import OverlapReconciler
from .tracker import IncrementalReviewTracker
from .summary import SummaryReducer

__all__ = [
    "AnnotatedHunk",
    "ChangedFile",
    "Finding",
    "FileSummary",
    "PatchInterval",
    "PullRequestContext",
    "ReplyOutcome",
    "ReviewRunReport",
    "SkipReason",
    "HunkAnnotator",
    "PatchSegmenter",
    "TokenBudgetPacker",
    "ResponseIntervalParser",
    "OverlapReconciler",
    "IncrementalReviewTracker",
    "SummaryReducer",
]
