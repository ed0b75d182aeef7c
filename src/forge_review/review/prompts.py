"""
Prompt templates for the summarize, review and reply stages.

Templates use ``$name`` placeholders rendered by :class:`Inputs`.
"""

from dataclasses import dataclass

from .inputs import Inputs

SYSTEM_MESSAGE = """$system_message

"""

SUMMARIZE_FILE_DIFF = """## Pull request title

`$title`

## Description

```
$description
```

## Diff

```diff
$file_diff
```

## Instructions

Succinctly summarize the diff within 100 words. If applicable, mention changes
to the signatures of exported functions, global data structures and variables,
and anything that might affect the external interface or behavior of the code.

Then list the symbols (function names, class names, variable names) changed in
the diff. They are used to search for other occurrences in the codebase. The
list may be empty. Strictly follow this format for the list:
SYMBOLS: [symbol1, symbol2, ...]

Below the summary, triage the diff as `NEEDS_REVIEW` or `APPROVED`:

- Any modification to logic or functionality, however small, is `NEEDS_REVIEW`.
  This includes control structures, function calls and assignments that might
  change behavior.
- Only changes that cannot affect logic, such as typo fixes, formatting or
  renames for clarity, are `APPROVED`.

When in doubt, triage the diff as `NEEDS_REVIEW`. Strictly follow this format:
[TRIAGE]: <NEEDS_REVIEW or APPROVED>

Important:
- Do not mention in the summary that the file needs a thorough review.
- Do not explain why you chose the triage status.
"""

SUMMARIZE_CHANGESETS = """Provided below are the changesets of this pull request in \
chronological order; new changesets are appended to the end of the list. Each \
changeset consists of filename(s) and a summary of the changes to those files, \
and changesets are separated by `---` lines. Deduplicate and group together \
files with related or similar changes into a single changeset. Respond with the \
updated changesets using the same format as the input.

$raw_summary
"""

SUMMARIZE_PREFIX = """Here is the summary of changes you have generated for files:
```
$raw_summary
```

"""

SUMMARIZE = """Provide your final response in markdown with the following content:

- **Walkthrough**: A high-level summary of the overall change instead of
  specific files within 80 words.
- **Changes**: A markdown table of files and their summaries. Group files with
  similar changes together into a single row to save space.

Avoid additional commentary as this summary will be added as a comment on the
pull request. Use the titles "Walkthrough" and "Changes" as H2 headings.
"""

SUMMARIZE_SHORT = """Provide a concise summary of the changes. It will be used as \
context while reviewing each file, so it must be very clear for an AI reviewer.

Instructions:

- Summarize only the changes in the pull request and stick to the facts.
- Do not give the reviewer instructions on how to perform the review.
- Do not mention that files need a thorough review.
- The summary must not exceed 500 words.
"""

SUMMARIZE_RELEASE_NOTES = """Craft concise release notes for the pull request. Focus \
on the purpose and user impact, categorizing changes as "New Feature", "Bug Fix", \
"Documentation", "Refactor", "Style", "Test", "Chore" or "Revert". Provide a \
bullet-point list, e.g. "- New Feature: Added search functionality to the UI". \
Limit the response to 50-100 words and emphasize features visible to the end \
user while omitting code-level details.
"""

REVIEW_FILE_DIFF = """## Pull request title

`$title`

## Description

```
$description
```

## Summary of changes

```
$short_summary
```

## Symbols changed in this file

```
$symbols
```

## IMPORTANT Instructions

Input: new hunks annotated with line numbers and old hunks (replaced code).
Hunks are incomplete code fragments.
Additional context: title, description, summaries, changed symbols and
comment chains.
Task: review the new hunks for substantive issues and respond with comments
where needed.
Output: review comments in markdown with exact line number ranges in the new
hunks. Start and end line numbers must be within the same hunk. For single-line
comments start=end. Use the example response format below.
Use fenced code blocks with the relevant language identifier where applicable.
Do not annotate code snippets with line numbers. Format and indent code
correctly.
For fixes use `suggestion` code blocks. The line range of a comment with a fix
must exactly match the range to replace in the new hunk, and the replacement
must include any unchanged lines inside that range.

- Do NOT give general feedback, summaries, explanations of the changes or
  praise for good additions.
- Focus solely on specific, objective insights based on the given context.

If there are no issues on a line range, you MUST respond with the text `LGTM!`
for that range.

## Example

### Example changes

---new_hunk---
```
  z = x / y
    return z

15: def complex_function(x, y):
16:     a = x * 2
17:     b = y / 3
18:     return a + b
19:
20: def add(x, y):
21:     z = x + y
22:     retrn z
23:
24: def multiply(x, y):
25:     return x * y

def subtract(x, y):
  z = x - y
```

---old_hunk---
```
  z = x / y
    return z

def complex_function(x, y):
    return x + y

def add(x, y):
    return x + y

def subtract(x, y):
    z = x - y
```

---comment_chains---
```
Please review this change.
```

---end_change_section---

### Example response

15-18:
I suggest the following improvements:
```suggestion
def complex_function(x, y):
    a = x ** 2
    b = y ** 3
    c = a + b
    return c / 2
```
---
22-22:
There's a syntax error in the add function.
```suggestion
    return z
```
---
24-25:
LGTM!
---

## Changes made to `$filename` for your review

$patches
"""


COMMENT = """A comment was made on a GitHub pull request review for a diff hunk of \
`$filename`. Follow the instructions in that comment.

## Pull request title

`$title`

## Description

```
$description
```

## Summary of changes

```
$short_summary
```

## Entire diff

```diff
$file_diff
```

## Diff being commented on

```diff
$diff
```

## Instructions

Reply directly to the new comment instead of suggesting a reply; your reply is
posted as-is. If the comment asks for something, such as documentation comments
for the code, comply and include the requested code in your reply. Begin the
reply by tagging the user with "@user".

## Comment format

`user: comment`

## Comment chain (including the new comment)

```
$comment_chain
```

## The comment you need to reply to

```
$comment
```
"""


@dataclass
class Prompts:
    """Renderers for every prompt the pipeline sends."""

    summarize: str = SUMMARIZE
    summarize_release_notes: str = SUMMARIZE_RELEASE_NOTES

    def render_summarize_file_diff(self, inputs: Inputs) -> str:
        return inputs.render(SYSTEM_MESSAGE + SUMMARIZE_FILE_DIFF)

    def render_summarize_changesets(self, inputs: Inputs) -> str:
        return inputs.render(SYSTEM_MESSAGE + SUMMARIZE_CHANGESETS)

    def render_summarize(self, inputs: Inputs) -> str:
        return inputs.render(SYSTEM_MESSAGE + SUMMARIZE_PREFIX + self.summarize)

    def render_summarize_short(self, inputs: Inputs) -> str:
        return inputs.render(SYSTEM_MESSAGE + SUMMARIZE_PREFIX + SUMMARIZE_SHORT)

    def render_summarize_release_notes(self, inputs: Inputs) -> str:
        return inputs.render(
            SYSTEM_MESSAGE + SUMMARIZE_PREFIX + self.summarize_release_notes
        )

    def render_review_file_diff(self, inputs: Inputs) -> str:
        return inputs.render(SYSTEM_MESSAGE + REVIEW_FILE_DIFF)

    def render_comment(self, inputs: Inputs) -> str:
        return inputs.render(SYSTEM_MESSAGE + COMMENT)
