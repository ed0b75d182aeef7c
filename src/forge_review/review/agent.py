"""
Code Review Agent

Runs one review pass over a pull request in three synchronous stages:

1. Summarize: per-file summaries with triage, in parallel
2. Reduce: merge summaries, write the summary comment inputs and release notes
3. Review: per-file packed prompts, parsed and reconciled into line comments
"""

import asyncio
import time
from typing import Any, Awaitable, Callable

import structlog

from ..config import ReviewConfig
from ..errors import ModelCallError
from ..services.commenter import (
    comment_chains_within_range,
    is_duplicate,
    open_state_store,
)
from ..services.github_client import GitHubClient
from ..services.llm_client import ModelClient
from ..services.tokens import TokenCounter
from .file_filter import PathFilter
from .inputs import Inputs
from .markers import (
    RAW_SUMMARY_BLOCK,
    RELEASE_NOTES_BLOCK,
    SHORT_SUMMARY_BLOCK,
    SUMMARIZE_TAG,
)
from .models import (
    AnnotatedHunk,
    ChangedFile,
    FileReviewResult,
    FileSummary,
    PatchInterval,
    PullRequestContext,
    ReviewRunReport,
    SkipReason,
)
from .packer import TokenBudgetPacker
from .patches import annotate_patch
from .prompts import Prompts
from .reconciler import OverlapReconciler
from .response_parser import ResponseIntervalParser
from .summary import SummaryReducer, parse_file_summary
from .tracker import IncrementalReviewTracker

logger = structlog.get_logger(__name__)


class CodeReviewAgent:
    """
    Review agent for a single pull request.

    Collaborators:
    - model: object with ``async send(prompt) -> str``
    - source: object with ``list_commits(pr)`` and ``compare(pr, base, head)``
    - store: a StateStore bound to the pull request
    - count_tokens: token counter for the model family
    """

    def __init__(
        self,
        config: ReviewConfig,
        model: Any,
        source: Any,
        store: Any,
        count_tokens: Callable[[str], int],
        prompts: Prompts | None = None,
    ):
        self.config = config
        self.model = model
        self.source = source
        self.store = store
        self.count_tokens = count_tokens
        self.prompts = prompts or Prompts()

        self.request_tokens = config.token_limits.request_tokens
        self.path_filter = PathFilter(config.path_filters)
        self.packer = TokenBudgetPacker(count_tokens, self.request_tokens)
        self.parser = ResponseIntervalParser(keep_approvals=config.review_comment_lgtm)
        self.reconciler = OverlapReconciler()
        self.tracker = IncrementalReviewTracker()
        self.reducer = SummaryReducer(self._chat, self.prompts)

        self._model_semaphore = asyncio.Semaphore(max(1, config.model_concurrency_limit))

    async def review(self, pr: PullRequestContext) -> ReviewRunReport:
        """
        Review what changed since the last reviewed commit.

        Returns:
            ReviewRunReport with every skip and failure of the run
        """
        start_time = time.time()
        report = ReviewRunReport(head_sha=pr.head_sha)

        # === Incremental base ===
        existing_summary = await self.store.find(SUMMARIZE_TAG)
        commit_ids = await self.source.list_commits(pr)
        base = self.tracker.compute_base(pr, commit_ids, existing_summary)
        report.base_sha = base.base_sha

        files = await self._changed_files(pr, base.base_sha, base.incremental)
        if not files:
            logger.warning("No files to review", pr=pr.number, base=base.base_sha)
            return report

        selected, ignored = self.path_filter.partition(files)
        report.ignored_files = [f.filename for f in ignored]
        if not selected:
            logger.warning("All changed files filtered out", pr=pr.number)
            return report

        if self.config.max_files > 0 and len(selected) > self.config.max_files:
            for changed in selected[self.config.max_files :]:
                report.skipped_files[changed.filename] = SkipReason.MAX_FILES.value
            selected = selected[: self.config.max_files]

        hunks_by_file: dict[str, list[AnnotatedHunk]] = {}
        for changed in selected:
            hunks = annotate_patch(changed.patch)
            if hunks:
                hunks_by_file[changed.filename] = hunks
            else:
                report.skipped_files[changed.filename] = SkipReason.EMPTY_DIFF.value
        selected = [f for f in selected if f.filename in hunks_by_file]
        report.selected_files = [f.filename for f in selected]
        if not selected:
            logger.warning("No reviewable hunks in changed files", pr=pr.number)
            return report

        inputs = Inputs(
            system_message=self.config.system_message,
            title=pr.title,
            description=RELEASE_NOTES_BLOCK.strip(pr.description),
            raw_summary=RAW_SUMMARY_BLOCK.decode(existing_summary) or "",
            short_summary=SHORT_SUMMARY_BLOCK.decode(existing_summary) or "",
        )

        # === Stage 1: summarize ===
        summaries = await self._run_stage(
            selected,
            lambda changed: self._summarize_file(inputs, changed, report),
            report.summaries_failed,
        )
        summaries_by_file = {s.filename: s for s in summaries if s is not None}

        # === Stage 2: reduce ===
        final_summary = await self._summarize_pull_request(
            inputs, list(summaries_by_file.values())
        )

        # === Stage 3: review ===
        if self.config.disable_review:
            logger.info("Review disabled, only summarizing", pr=pr.number)
        else:
            to_review = []
            for changed in selected:
                summary = summaries_by_file.get(changed.filename)
                if summary is not None and not summary.needs_review:
                    report.reviews_skipped[changed.filename] = SkipReason.TRIVIAL.value
                else:
                    to_review.append(changed)

            existing_comments = await self.store.list_review_comments()
            results = await self._run_stage(
                to_review,
                lambda changed: self._review_file(
                    inputs,
                    changed,
                    hunks_by_file[changed.filename],
                    summaries_by_file.get(changed.filename),
                    existing_comments,
                    report,
                ),
                report.reviews_failed,
            )
            await self._buffer_findings(
                [r for r in results if r is not None], existing_comments, report
            )
            report.review_comments = await self.store.submit_review()

        # === Persist state ===
        body = "\n".join(
            [
                final_summary,
                RAW_SUMMARY_BLOCK.encode(inputs.raw_summary),
                SHORT_SUMMARY_BLOCK.encode(inputs.short_summary),
                "---",
                report.render_status(),
            ]
        )
        body = self.tracker.record(existing_summary, body, pr.head_sha)
        await self.store.upsert(SUMMARIZE_TAG, body)

        logger.info(
            "Review run complete",
            pr=pr.number,
            files=len(selected),
            comments=report.review_comments,
            lgtm=report.lgtm_count,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        return report

    async def _changed_files(
        self, pr: PullRequestContext, base_sha: str, incremental: bool
    ) -> list[ChangedFile]:
        """Files changed since ``base_sha`` that are still part of the pull request."""
        files = await self.source.compare(pr, base_sha, pr.head_sha)
        if not incremental:
            return files

        target = await self.source.compare(pr, pr.base_sha, pr.head_sha)
        in_pull_request = {f.filename for f in target}
        return [f for f in files if f.filename in in_pull_request]

    async def _run_stage(
        self,
        files: list[ChangedFile],
        worker: Callable[[ChangedFile], Awaitable[Any]],
        failures: dict[str, str],
    ) -> list[Any]:
        """Run ``worker`` for every file; failures are recorded, not raised."""
        results = await asyncio.gather(
            *(worker(changed) for changed in files), return_exceptions=True
        )

        valid_results = []
        for changed, result in zip(files, results):
            if isinstance(result, Exception):
                logger.error(
                    "File task failed", filename=changed.filename, error=str(result)
                )
                failures[changed.filename] = str(result)
            else:
                valid_results.append(result)
        return valid_results

    async def _chat(self, prompt: str) -> str:
        async with self._model_semaphore:
            return await self.model.send(prompt)

    async def _chat_or_empty(self, prompt: str, purpose: str) -> str:
        try:
            response = await self._chat(prompt)
        except ModelCallError as e:
            logger.error("Model call failed", purpose=purpose, error=str(e))
            return ""
        if not response:
            logger.warning("Nothing obtained from the model", purpose=purpose)
        return response

    async def _summarize_file(
        self, inputs: Inputs, changed: ChangedFile, report: ReviewRunReport
    ) -> FileSummary | None:
        prompt = self.prompts.render_summarize_file_diff(
            inputs.clone(filename=changed.filename, file_diff=changed.patch or "")
        )
        if self.count_tokens(prompt) > self.request_tokens:
            logger.info("Diff too large to summarize", filename=changed.filename)
            report.skipped_files[changed.filename] = SkipReason.DIFF_TOO_LARGE.value
            return None

        response = await self._chat(prompt)
        if not response:
            report.summaries_failed[changed.filename] = SkipReason.NOTHING_OBTAINED.value
            return None

        return parse_file_summary(
            changed.filename, response, self.config.review_simple_changes
        )

    async def _summarize_pull_request(
        self, inputs: Inputs, summaries: list[FileSummary]
    ) -> str:
        """Merge file summaries, then derive the final, release and short summaries."""
        if summaries:
            inputs.raw_summary = await self.reducer.reduce(summaries, inputs)

        final_summary = await self._chat_or_empty(
            self.prompts.render_summarize(inputs), "summary"
        )

        if not self.config.disable_release_notes:
            release_notes = await self._chat_or_empty(
                self.prompts.render_summarize_release_notes(inputs), "release notes"
            )
            if release_notes:
                await self.store.update_release_notes(
                    "### Summary by forge-review\n\n" + release_notes
                )

        short_summary = await self._chat_or_empty(
            self.prompts.render_summarize_short(inputs), "short summary"
        )
        if short_summary:
            inputs.short_summary = short_summary

        return final_summary

    async def _review_file(
        self,
        inputs: Inputs,
        changed: ChangedFile,
        hunks: list[AnnotatedHunk],
        summary: FileSummary | None,
        existing_comments: list,
        report: ReviewRunReport,
    ) -> FileReviewResult | None:
        file_inputs = inputs.clone(filename=changed.filename, patches="")
        if summary is not None and summary.symbols:
            file_inputs.symbols = ", ".join(summary.symbols)

        preamble_tokens = self.count_tokens(
            self.prompts.render_review_file_diff(file_inputs)
        )
        packed = self.packer.pack(
            hunks,
            preamble_tokens,
            comment_chain_for=lambda interval: comment_chains_within_range(
                existing_comments, changed.filename, interval
            ),
        )
        if packed.packed == 0:
            report.reviews_skipped[changed.filename] = SkipReason.DIFF_TOO_LARGE.value
            return None
        if packed.truncated:
            logger.info(
                "Only part of the diff fits the request budget",
                filename=changed.filename,
                packed=packed.packed,
                total=packed.total,
            )

        file_inputs.patches = packed.text
        response = await self._chat(self.prompts.render_review_file_diff(file_inputs))
        if not response:
            report.reviews_skipped[changed.filename] = SkipReason.NOTHING_OBTAINED.value
            return None

        parsed = self.parser.parse(response)
        return FileReviewResult(
            filename=changed.filename,
            findings=self.reconciler.reconcile_all(parsed.findings, packed.intervals),
            approvals=parsed.approvals,
            hunks_packed=packed.packed,
            hunks_total=packed.total,
        )

    async def _buffer_findings(
        self,
        results: list[FileReviewResult],
        existing_comments: list,
        report: ReviewRunReport,
    ) -> None:
        for result in results:
            report.lgtm_count += result.approvals
            for finding in result.findings:
                if is_duplicate(existing_comments, result.filename, finding.comment):
                    logger.debug(
                        "Skipping duplicate finding",
                        filename=result.filename,
                        start_line=finding.start_line,
                    )
                    continue
                await self.store.append_comment(
                    finding.comment,
                    result.filename,
                    PatchInterval(finding.start_line, finding.end_line),
                )


async def create_code_review_agent(
    config: ReviewConfig,
    github: Any,
    model: Any,
    pr: PullRequestContext,
    dry_run: bool = False,
    count_tokens: Callable[[str], int] | None = None,
) -> CodeReviewAgent:
    """
    Create a code review agent wired to GitHub.

    Args:
        config: Review configuration
        github: GitHubClient used as change source (and state store unless dry run)
        model: ModelClient the prompts are sent to
        pr: Pull request under review
        dry_run: Keep comments in memory instead of posting them
        count_tokens: Token counter; defaults to the tiktoken encoding

    Returns:
        Configured CodeReviewAgent
    """
    store = await open_state_store(github, pr, dry_run=dry_run)

    return CodeReviewAgent(
        config=config,
        model=model,
        source=github,
        store=store,
        count_tokens=count_tokens or TokenCounter(),
    )


async def review_pull_request(
    config: ReviewConfig,
    owner: str,
    repo: str,
    number: int,
    dry_run: bool = False,
) -> ReviewRunReport:
    """
    Run one review pass over ``owner/repo#number``.

    Raises:
        ConfigurationError: credentials are missing
    """
    config.validate()

    async with GitHubClient.from_config(config) as github, ModelClient.from_config(
        config
    ) as model:
        pr = await github.get_pull_request(owner, repo, number)
        logger.info(
            "Starting review",
            pr=f"{pr.full_name}#{pr.number}",
            head=pr.head_sha[:8],
            dry_run=dry_run,
        )
        agent = await create_code_review_agent(config, github, model, pr, dry_run=dry_run)
        return await agent.review(pr)
