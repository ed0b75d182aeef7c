"""Forge Review command line.

Usage:
    forge-review review --repo owner/name --pr 42 [--dry-run]
    forge-review review                      # inside a GitHub Actions run
    forge-review reply                       # on a pull_request_review_comment event
    forge-review serve --host 0.0.0.0 --port 8765
"""

import argparse
import asyncio
import json
import os
import sys

import structlog
from pydantic import ValidationError

from .config import ReviewConfig
from .errors import ConfigurationError, ForgeReviewError
from .logging_setup import configure_logging

logger = structlog.get_logger(__name__)


def _read_event(event_path: str | None) -> dict:
    if not event_path:
        raise ConfigurationError("GITHUB_EVENT_PATH is not set")

    try:
        with open(event_path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot read event payload {event_path}: {e}") from e


def _pull_request_from_event(event_path: str | None) -> tuple[str, int]:
    """Read ``owner/name`` and the pull request number from an Actions event file."""
    if not event_path:
        raise ConfigurationError("--repo and --pr are required outside of GitHub Actions")
    event = _read_event(event_path)

    pull_request = event.get("pull_request") or {}
    repository = event.get("repository") or {}
    if "number" not in pull_request or "full_name" not in repository:
        raise ConfigurationError("Event payload is not a pull_request event")
    return repository["full_name"], int(pull_request["number"])


def _resolve_target(args: argparse.Namespace) -> tuple[str, str, int]:
    if args.repo and args.pr:
        full_name, number = args.repo, args.pr
    else:
        full_name, number = _pull_request_from_event(os.environ.get("GITHUB_EVENT_PATH"))

    owner, sep, repo = full_name.partition("/")
    if not sep or not owner or not repo:
        raise ConfigurationError(f"Repository must be owner/name, got '{full_name}'")
    return owner, repo, number


def _cmd_review(args: argparse.Namespace, config: ReviewConfig) -> int:
    from .review.agent import review_pull_request

    config.validate()
    owner, repo, number = _resolve_target(args)

    report = asyncio.run(
        review_pull_request(config, owner, repo, number, dry_run=args.dry_run)
    )
    print(report.render_status())
    return 0


def _cmd_reply(args: argparse.Namespace, config: ReviewConfig) -> int:
    from .api.models import ReviewCommentEvent
    from .review.reply import reply_to_review_comment

    config.validate()
    try:
        event = ReviewCommentEvent.model_validate(
            _read_event(os.environ.get("GITHUB_EVENT_PATH"))
        )
    except ValidationError as e:
        raise ConfigurationError(
            f"Event payload is not a pull_request_review_comment event: {e}"
        ) from e

    if event.action != "created":
        logger.info("Ignoring review comment action", action=event.action)
        return 0

    outcome = asyncio.run(
        reply_to_review_comment(
            config,
            event.repository.owner.login,
            event.repository.name,
            event.pull_request.number,
            event.comment,
            dry_run=args.dry_run,
        )
    )
    print(outcome.value)
    return 0


def _cmd_serve(args: argparse.Namespace, config: ReviewConfig) -> int:
    from .api.server import run

    config.validate()
    run(host=args.host, port=args.port, debug=config.debug)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forge-review", description="LLM-assisted pull request review"
    )
    parser.add_argument("--debug", action="store_true", help="Log prompts and responses")
    subparsers = parser.add_subparsers(dest="command", required=True)

    review = subparsers.add_parser("review", help="Review one pull request")
    review.add_argument("--repo", help="Repository as owner/name")
    review.add_argument("--pr", type=int, help="Pull request number")
    review.add_argument(
        "--dry-run", action="store_true", help="Do not post comments or edit the pull request"
    )
    review.set_defaults(handler=_cmd_review)

    reply = subparsers.add_parser(
        "reply", help="Answer the review comment of a GitHub Actions event"
    )
    reply.add_argument(
        "--dry-run", action="store_true", help="Keep the reply in memory instead of posting it"
    )
    reply.set_defaults(handler=_cmd_reply)

    serve = subparsers.add_parser("serve", help="Run the webhook server")
    serve.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    serve.add_argument("--port", type=int, default=8765, help="Port to listen on")
    serve.set_defaults(handler=_cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    config = ReviewConfig.from_env()
    if args.debug:
        config.debug = True
    configure_logging(config.debug)

    try:
        return args.handler(args, config)
    except ConfigurationError as e:
        logger.error("Invalid configuration", error=str(e))
        return 2
    except ForgeReviewError as e:
        logger.error("Review failed", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
