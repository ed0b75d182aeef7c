"""
Patch Parsing

Splits unified diffs into hunks and renders each hunk as an old view and a
line-numbered new view that a model can anchor comments to.
"""

import re

import structlog

from .models import AnnotatedHunk, DiffHunk, LineKind, PatchInterval

logger = structlog.get_logger(__name__)


class PatchSegmenter:
    """Split the patch of a single file into hunk strings."""

    # Any line opening a hunk; the annotator validates the exact shape
    HUNK_START = re.compile(r"^@@.*@@.*$", re.MULTILINE)

    def split(self, patch: str | None) -> list[str]:
        """
        Return hunks in diff order.

        Each hunk starts at its header line and runs to just before the next
        header. Anything ahead of the first header (file headers) is dropped.
        """
        if not patch:
            return []

        starts = [match.start() for match in self.HUNK_START.finditer(patch)]
        hunks = []
        for i, start in enumerate(starts):
            end = starts[i + 1] if i + 1 < len(starts) else len(patch)
            hunks.append(patch[start:end])
        return hunks


class HunkAnnotator:
    """Render hunks with new-file line numbers."""

    HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")

    # Body lines at each end of a hunk left without line numbers
    SKIP_START = 3
    SKIP_END = 3

    def parse(self, hunk_text: str) -> DiffHunk | None:
        """Parse header and body; None when the header is malformed."""
        header, _, body = hunk_text.partition("\n")
        match = self.HUNK_HEADER.match(header)
        if not match:
            return None

        hunk = DiffHunk(
            old_start=int(match.group(1)),
            old_lines=int(match.group(2) or "1"),
            new_start=int(match.group(3)),
            new_lines=int(match.group(4) or "1"),
        )

        lines = body.split("\n")
        if lines and lines[-1] == "":
            lines.pop()

        for line in lines:
            if line.startswith("\\"):
                # "\ No newline at end of file"
                continue
            if line.startswith("-"):
                hunk.lines.append((LineKind.REMOVED, line[1:]))
            elif line.startswith("+"):
                hunk.lines.append((LineKind.ADDED, line[1:]))
            else:
                hunk.lines.append(
                    (LineKind.CONTEXT, line[1:] if line.startswith(" ") else line)
                )
        return hunk

    def annotate(self, hunk_text: str) -> AnnotatedHunk | None:
        """Build old and new views for one hunk string."""
        hunk = self.parse(hunk_text)
        if hunk is None:
            logger.debug("Dropping hunk with unparsable header", header=hunk_text[:80])
            return None
        return self.annotate_hunk(hunk)

    def annotate_hunk(self, hunk: DiffHunk) -> AnnotatedHunk:
        old_lines: list[str] = []
        new_lines: list[str] = []

        total = len(hunk.lines)
        removal_only = hunk.added_count == 0
        # Short hunks would be entirely inside the window
        windowed = not removal_only and total > self.SKIP_START + self.SKIP_END

        line_number = hunk.new_start
        for position, (kind, content) in enumerate(hunk.lines, start=1):
            if kind is LineKind.REMOVED:
                old_lines.append(content)
            elif kind is LineKind.ADDED:
                new_lines.append(f"{line_number}: {content}")
                line_number += 1
            else:
                old_lines.append(content)
                in_window = self.SKIP_START < position <= total - self.SKIP_END
                if not windowed or in_window:
                    new_lines.append(f"{line_number}: {content}")
                else:
                    new_lines.append(content)
                line_number += 1

        end_line = max(hunk.new_start, hunk.new_start + hunk.new_lines - 1)
        return AnnotatedHunk(
            old_hunk="\n".join(old_lines),
            new_hunk="\n".join(new_lines),
            interval=PatchInterval(hunk.new_start, end_line),
        )


def annotate_patch(
    patch: str | None,
    segmenter: PatchSegmenter | None = None,
    annotator: HunkAnnotator | None = None,
) -> list[AnnotatedHunk]:
    """Segment and annotate a file patch, dropping malformed hunks."""
    segmenter = segmenter or PatchSegmenter()
    annotator = annotator or HunkAnnotator()

    annotated = []
    for hunk_text in segmenter.split(patch):
        hunk = annotator.annotate(hunk_text)
        if hunk is not None:
            annotated.append(hunk)
    return annotated
