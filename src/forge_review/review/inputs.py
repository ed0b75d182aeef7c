"""Placeholder values for prompt templates."""

import re
from dataclasses import dataclass, fields, replace


@dataclass
class Inputs:
    """Values substituted for ``$name`` placeholders in prompt templates."""

    system_message: str = ""
    title: str = "no title provided"
    description: str = "no description provided"
    raw_summary: str = ""
    short_summary: str = ""
    filename: str = ""
    file_diff: str = "file diff cannot be provided"
    patches: str = ""
    diff: str = "no diff"
    comment_chain: str = "no other comments on this patch"
    comment: str = "no comment provided"
    symbols: str = "no symbols reported"

    def clone(self, **changes: str) -> "Inputs":
        return replace(self, **changes)

    def render(self, template: str) -> str:
        """
        Substitute placeholders in one pass.

        Substituted text is never scanned again, and placeholders whose value
        is empty are left untouched.
        """
        if not template:
            return ""

        values = {f.name: getattr(self, f.name) for f in fields(self)}

        def substitute(match: re.Match) -> str:
            return values[match.group(1)] or match.group(0)

        return _PLACEHOLDER.sub(substitute, template)


# Longest names first so $comment_chain wins over $comment
_PLACEHOLDER = re.compile(
    r"\$("
    + "|".join(sorted((f.name for f in fields(Inputs)), key=len, reverse=True))
    + r")"
)
