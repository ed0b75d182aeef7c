"""
Path Filter

Decides which changed files take part in a review run. User rules are globs;
rules starting with ``!`` exclude. Lock files and generated sources are always
excluded.
"""

import fnmatch
import re
from typing import Iterable

from .models import ChangedFile


class PathFilter:
    """Include/exclude changed files by path."""

    # Never worth a model call
    NOISE_PATTERNS = [
        r"(^|/)package-lock\.json$",
        r"(^|/)yarn\.lock$",
        r"(^|/)pnpm-lock\.yaml$",
        r"(^|/)[^/]*\.generated\.[^/]*$",
        r"(^|/)[^/]*\.g\.[^/]*$",
        r"(^|/)\.DS_Store$",
    ]

    def __init__(self, rules: Iterable[str] | None = None):
        """
        Initialize filter.

        Args:
            rules: Glob rules, one per entry; a leading ``!`` excludes
        """
        self.rules: list[tuple[str, bool]] = []
        for rule in rules or []:
            rule = rule.strip()
            if not rule:
                continue
            if rule.startswith("!"):
                self.rules.append((rule[1:].strip(), True))
            else:
                self.rules.append((rule, False))

        self._noise = [re.compile(p) for p in self.NOISE_PATTERNS]

    def is_noise(self, path: str) -> bool:
        return any(pattern.search(path) for pattern in self._noise)

    def check(self, path: str) -> bool:
        """True when ``path`` should be processed."""
        if self.is_noise(path):
            return False
        if not self.rules:
            return True

        included = False
        excluded = False
        inclusion_rule_exists = False
        for pattern, exclude in self.rules:
            if fnmatch.fnmatch(path, pattern):
                if exclude:
                    excluded = True
                else:
                    included = True
            if not exclude:
                inclusion_rule_exists = True

        return (not inclusion_rule_exists or included) and not excluded

    def partition(
        self, files: list[ChangedFile]
    ) -> tuple[list[ChangedFile], list[ChangedFile]]:
        """
        Split files by the filter.

        Returns:
            Tuple of (selected, ignored)
        """
        selected: list[ChangedFile] = []
        ignored: list[ChangedFile] = []
        for changed in files:
            (selected if self.check(changed.filename) else ignored).append(changed)
        return selected, ignored
