"""
Review Response Parser

Turns the model's review text into line-ranged findings.

The response grammar is line based:

    12-15:
    comment body, any number of lines
    ---

A range line opens a finding (closing any open one), a ``---`` line closes the
open finding, and everything else is body text. Parsing is a fold of a pure
``step`` function over the lines with two states, idle and in_finding.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

import structlog

from .models import Finding

logger = structlog.get_logger(__name__)

LGTM_SENTINEL = "LGTM"


class ParserMode(str, Enum):
    IDLE = "idle"
    IN_FINDING = "in_finding"


class TokenKind(str, Enum):
    RANGE = "range"
    SEPARATOR = "separator"
    TEXT = "text"


@dataclass(frozen=True)
class ParserState:
    """Immutable tokenizer state."""

    mode: ParserMode = ParserMode.IDLE
    start_line: int = 0
    end_line: int = 0
    body: tuple[str, ...] = ()


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    start_line: int = 0
    end_line: int = 0


@dataclass
class ParsedResponse:
    """Findings plus the number of LGTM approvals seen."""

    findings: list[Finding] = field(default_factory=list)
    approvals: int = 0


RANGE_PATTERN = re.compile(r"(?:^|\s)(\d+)-(\d+):\s*$")
SEPARATOR = "---"

# Line numbers copied from the annotated prompt into suggested code
_CODE_BLOCK = re.compile(r"(```(?:suggestion|diff))(.*?)(```)", re.DOTALL)
_LINE_NUMBER_PREFIX = re.compile(r"^ *\d+: ", re.MULTILINE)


def tokenize(line: str) -> Token:
    """Classify one response line."""
    match = RANGE_PATTERN.search(line)
    if match:
        return Token(
            TokenKind.RANGE,
            line,
            start_line=int(match.group(1)),
            end_line=int(match.group(2)),
        )
    if line.strip() == SEPARATOR:
        return Token(TokenKind.SEPARATOR, line)
    return Token(TokenKind.TEXT, line)


def _emit(state: ParserState) -> Finding | None:
    if state.mode is not ParserMode.IN_FINDING:
        return None
    return Finding(
        start_line=state.start_line,
        end_line=state.end_line,
        comment="\n".join(state.body).strip(),
    )


def _open(state: ParserState, token: Token) -> tuple[ParserState, Finding | None]:
    return (
        ParserState(ParserMode.IN_FINDING, token.start_line, token.end_line),
        _emit(state),
    )


def _close(state: ParserState, token: Token) -> tuple[ParserState, Finding | None]:
    return ParserState(), _emit(state)


def _append(state: ParserState, token: Token) -> tuple[ParserState, Finding | None]:
    return (
        ParserState(state.mode, state.start_line, state.end_line, state.body + (token.text,)),
        None,
    )


def _ignore(state: ParserState, token: Token) -> tuple[ParserState, Finding | None]:
    return state, None


Transition = Callable[[ParserState, Token], tuple[ParserState, Finding | None]]

TRANSITIONS: dict[tuple[ParserMode, TokenKind], Transition] = {
    (ParserMode.IDLE, TokenKind.RANGE): _open,
    (ParserMode.IDLE, TokenKind.SEPARATOR): _close,
    (ParserMode.IDLE, TokenKind.TEXT): _ignore,
    (ParserMode.IN_FINDING, TokenKind.RANGE): _open,
    (ParserMode.IN_FINDING, TokenKind.SEPARATOR): _close,
    (ParserMode.IN_FINDING, TokenKind.TEXT): _append,
}


def step(state: ParserState, line: str) -> tuple[ParserState, Finding | None]:
    """Advance the tokenizer by one line, possibly emitting a finding."""
    token = tokenize(line)
    return TRANSITIONS[(state.mode, token.kind)](state, token)


def strip_code_block_line_numbers(text: str) -> str:
    """Remove ``N: `` prefixes inside suggestion and diff fenced blocks."""
    return _CODE_BLOCK.sub(
        lambda m: m.group(1) + _LINE_NUMBER_PREFIX.sub("", m.group(2)) + m.group(3),
        text,
    )


class ResponseIntervalParser:
    """Parse a review response into findings and LGTM approvals."""

    def __init__(self, keep_approvals: bool = False):
        """
        Args:
            keep_approvals: Keep LGTM findings in the output (still counted)
        """
        self.keep_approvals = keep_approvals

    def parse(self, response: str) -> ParsedResponse:
        result = ParsedResponse()

        state = ParserState()
        emitted: list[Finding] = []
        for line in strip_code_block_line_numbers(response.strip()).split("\n"):
            state, finding = step(state, line)
            if finding is not None:
                emitted.append(finding)
        final = _emit(state)
        if final is not None:
            emitted.append(final)

        for finding in emitted:
            if not finding.comment:
                logger.debug(
                    "Dropping finding without a comment",
                    start_line=finding.start_line,
                    end_line=finding.end_line,
                )
                continue
            if LGTM_SENTINEL in finding.comment:
                result.approvals += 1
                if not self.keep_approvals:
                    continue
            result.findings.append(finding)

        return result
