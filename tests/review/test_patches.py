"""
Unit tests for PatchSegmenter and HunkAnnotator.

Tests hunk splitting and line-number annotation without external dependencies.
"""

import pytest

from forge_review.review.models import PatchInterval
from forge_review.review.patches import HunkAnnotator, PatchSegmenter, annotate_patch


# =============================================================================
# FIXTURES: Sample patches
# =============================================================================

SIMPLE_HUNK = "@@ -1,3 +1,4 @@\n a\n-b\n+b2\n+c\n d"

# Nine-line body with an addition in the middle
WINDOWED_HUNK = (
    "@@ -10,8 +10,9 @@ def fetch():\n"
    " one\n"
    " two\n"
    " three\n"
    " four\n"
    "+inserted\n"
    " five\n"
    " six\n"
    " seven\n"
    " eight"
)

REMOVAL_ONLY_HUNK = (
    "@@ -20,8 +20,6 @@\n"
    " one\n"
    " two\n"
    " three\n"
    "-gone1\n"
    "-gone2\n"
    " four\n"
    " five\n"
    " six"
)

TWO_HUNK_PATCH = (
    "@@ -1,3 +1,4 @@\n"
    " import os\n"
    "+import sys\n"
    " \n"
    " def main():\n"
    "@@ -30,3 +31,4 @@ def main():\n"
    "     run()\n"
    "+    sys.exit(0)\n"
    " \n"
    " # end\n"
)


@pytest.fixture
def annotator() -> HunkAnnotator:
    return HunkAnnotator()


# =============================================================================
# UNIT TESTS: PatchSegmenter
# =============================================================================

class TestPatchSegmenter:
    """Tests for splitting a file patch into hunks."""

    def test_empty_patch(self):
        """Empty or missing patches have no hunks."""
        segmenter = PatchSegmenter()
        assert segmenter.split("") == []
        assert segmenter.split(None) == []

    def test_single_hunk(self):
        assert PatchSegmenter().split(SIMPLE_HUNK) == [SIMPLE_HUNK]

    def test_segments_reproduce_patch(self):
        """N headers give N segments whose concatenation is the patch."""
        hunks = PatchSegmenter().split(TWO_HUNK_PATCH)

        assert len(hunks) == 2
        assert "".join(hunks) == TWO_HUNK_PATCH
        assert all(hunk.startswith("@@") for hunk in hunks)

    def test_file_headers_dropped(self):
        """Text ahead of the first hunk header is not a hunk."""
        patch = "--- a/app.py\n+++ b/app.py\n" + SIMPLE_HUNK
        assert PatchSegmenter().split(patch) == [SIMPLE_HUNK]

    def test_no_header(self):
        assert PatchSegmenter().split("just some text\n") == []


# =============================================================================
# UNIT TESTS: HunkAnnotator
# =============================================================================

class TestHunkAnnotator:
    """Tests for old/new views of a hunk."""

    def test_small_hunk_views(self, annotator):
        """Every line of a short hunk is numbered in the new view."""
        hunk = annotator.annotate(SIMPLE_HUNK)

        assert hunk.new_hunk.split("\n") == ["1: a", "2: b2", "3: c", "4: d"]
        assert hunk.old_hunk.split("\n") == ["a", "b", "d"]
        assert hunk.interval == PatchInterval(1, 4)

    def test_line_numbers_increase_from_new_start(self, annotator):
        hunk = annotator.annotate(TWO_HUNK_PATCH.split("@@ -30")[0])

        numbers = [int(line.split(":")[0]) for line in hunk.new_hunk.split("\n")]
        assert numbers == list(range(1, 1 + len(numbers)))

    def test_context_window_suppressed(self, annotator):
        """Leading and trailing context of a long hunk carries no numbers."""
        hunk = annotator.annotate(WINDOWED_HUNK)

        assert hunk.new_hunk.split("\n") == [
            "one",
            "two",
            "three",
            "13: four",
            "14: inserted",
            "15: five",
            "six",
            "seven",
            "eight",
        ]
        assert hunk.interval == PatchInterval(10, 18)

    def test_removal_only_numbers_all_context(self, annotator):
        hunk = annotator.annotate(REMOVAL_ONLY_HUNK)

        assert hunk.new_hunk.split("\n") == [
            "20: one",
            "21: two",
            "22: three",
            "23: four",
            "24: five",
            "25: six",
        ]
        assert "gone1" in hunk.old_hunk
        assert "gone1" not in hunk.new_hunk

    def test_missing_counts_default_to_one(self, annotator):
        hunk = annotator.parse("@@ -5 +5 @@\n-x\n+y")

        assert (hunk.old_start, hunk.old_lines) == (5, 1)
        assert (hunk.new_start, hunk.new_lines) == (5, 1)

    def test_empty_new_side_collapses_interval(self, annotator):
        """A hunk deleting everything still yields a one-line interval."""
        hunk = annotator.annotate("@@ -1,2 +0,0 @@\n-x\n-y")
        assert hunk.interval == PatchInterval(0, 0)

    def test_no_newline_marker_ignored(self, annotator):
        hunk = annotator.annotate("@@ -1 +1 @@\n-x\n+y\n\\ No newline at end of file")

        assert hunk.new_hunk == "1: y"
        assert hunk.old_hunk == "x"

    def test_malformed_header(self, annotator):
        assert annotator.annotate("@@ garbage @@\n+x") is None


class TestAnnotatePatch:
    """Tests for segment-then-annotate."""

    def test_two_hunks(self):
        hunks = annotate_patch(TWO_HUNK_PATCH)

        assert [h.interval for h in hunks] == [PatchInterval(1, 4), PatchInterval(31, 34)]

    def test_malformed_hunks_dropped(self):
        patch = "@@ bad @@\n+x\n" + SIMPLE_HUNK
        hunks = annotate_patch(patch)

        assert len(hunks) == 1
        assert hunks[0].interval == PatchInterval(1, 4)

    def test_render_layout(self):
        rendered = annotate_patch(SIMPLE_HUNK)[0].render()

        assert rendered.index("---new_hunk---") < rendered.index("---old_hunk---")
        assert "1: a" in rendered
