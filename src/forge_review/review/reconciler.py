"""
Overlap Reconciler

Moves findings whose line range falls outside the supplied hunks onto a hunk
the hosting platform will accept as a comment anchor.
"""

from dataclasses import replace

import structlog

from .models import Finding, PatchInterval

logger = structlog.get_logger(__name__)

MAPPED_NOTE = (
    "> Note: This review was outside of the patch, so it was mapped to the "
    "patch with the greatest overlap. Original lines [{start}-{end}]"
)
UNMAPPED_NOTE = (
    "> Note: This review was outside of the patch, but no patch was found "
    "that overlapped with it. Original lines [{start}-{end}]"
)


class OverlapReconciler:
    """Snap findings to the best-overlapping patch interval."""

    def reconcile(self, finding: Finding, intervals: list[PatchInterval]) -> Finding:
        """
        Return the finding anchored inside one of ``intervals``.

        A finding fully inside an interval is returned as is. Otherwise its
        range becomes the interval with the largest overlap (first one wins on
        ties), or the first interval when nothing overlaps, and a note with the
        original range is prepended to the comment.
        """
        if not intervals:
            return finding

        span = finding.end_line - finding.start_line + 1
        best: PatchInterval | None = None
        best_overlap = 0
        for interval in intervals:
            overlap = interval.overlap(finding.start_line, finding.end_line)
            if overlap > best_overlap:
                best, best_overlap = interval, overlap
                if overlap == span:
                    return replace(finding, exact=True)

        if best is not None:
            note = MAPPED_NOTE
        else:
            best = intervals[0]
            note = UNMAPPED_NOTE

        logger.debug(
            "Finding outside patch remapped",
            start_line=finding.start_line,
            end_line=finding.end_line,
            mapped_start=best.start_line,
            mapped_end=best.end_line,
            overlap=best_overlap,
        )

        header = note.format(start=finding.start_line, end=finding.end_line)
        return Finding(
            start_line=best.start_line,
            end_line=best.end_line,
            comment=f"{header}\n\n{finding.comment}",
            exact=False,
            original_range=(finding.start_line, finding.end_line),
        )

    def reconcile_all(
        self, findings: list[Finding], intervals: list[PatchInterval]
    ) -> list[Finding]:
        return [self.reconcile(finding, intervals) for finding in findings]
