#!/usr/bin/env python3
"""
Approval Guard - Command Line Entry Point

Requests approval for a sensitive action from the approval service and
reports the decision.
"""

import argparse
import asyncio
import sys
from typing import Optional

from loguru import logger

from approval_guard import __version__
from approval_guard.client.exceptions import GuardError
from approval_guard.client.models import StateEvent
from approval_guard.config import Config, config
from approval_guard.orchestrator import ApprovalOrchestrator
from approval_guard.utils.formatting import (
    format_state_event,
    format_status_details,
    format_status_line,
)
from approval_guard.utils.validators import parse_params


def configure_logging(debug: bool) -> None:
    """Send logs to stderr, at DEBUG level when debug logging is enabled."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "INFO")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="approval-guard",
        description="Request approval for a sensitive action and wait for the decision.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-j", "--justification", help="Why the action is needed (prompted if omitted)")
    parser.add_argument("-a", "--action", help="Action identifier")
    parser.add_argument("-s", "--scope", help="Scope used to derive the action identifier")
    parser.add_argument(
        "-p",
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Action parameter (repeatable)",
    )
    parser.add_argument("--no-wait", action="store_true", help="Return right after creating the request")
    parser.add_argument(
        "--follow",
        action="store_true",
        help="Print live status updates until the request is decided",
    )
    parser.add_argument("--base-url", help="Approval service base URL")
    parser.add_argument("--details", action="store_true", help="Print full request details")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def prompt_justification() -> Optional[str]:
    try:
        return input("Justification for this action (required): ")
    except EOFError:
        return None


async def main(argv: Optional[list[str]] = None, settings: Optional[Config] = None) -> int:
    """Main application entry point."""
    args = build_parser().parse_args(argv)

    settings = settings or config
    if args.base_url:
        settings = settings.model_copy(update={"APPROVAL_GUARD_BASE_URL": args.base_url})

    configure_logging(args.debug or settings.DEBUG_LOGGING)

    errors = settings.validate_required()
    if errors:
        logger.error("Configuration errors:")
        for error in errors:
            logger.error(f"  - {error}")
        return 1

    ok, params = parse_params(args.param)
    if not ok:
        print(f"Approval Guard error: {params}", file=sys.stderr)
        return 1

    justification = args.justification
    if justification is None:
        justification = prompt_justification()
        if not justification:
            return 0

    def print_event(event: StateEvent) -> None:
        print(format_state_event(event))

    async with ApprovalOrchestrator(settings=settings) as orchestrator:
        if args.follow:
            orchestrator.on_state(print_event)
        try:
            result = await orchestrator.submit_and_track(
                action=args.action,
                justification=justification,
                params=params,
                wait=not args.no_wait,
                scope=args.scope,
            )
        except GuardError as e:
            print(f"Approval Guard error: {e}", file=sys.stderr)
            return 1

        print(format_status_details(result) if args.details else format_status_line(result))

        if args.follow and orchestrator.tracker.active:
            await orchestrator.tracker.wait_closed()

    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
