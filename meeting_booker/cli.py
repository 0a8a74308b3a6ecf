# meeting_booker/cli.py
"""Command-line entry point.

    meeting-booker "Doodle Bookings.xlsx"   book every eligible row, save in place
    meeting-booker --check-graph            verify the Graph tenant credentials
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from meeting_booker.core.config import get_settings
from meeting_booker.core.logging import configure_logging
from meeting_booker.schemas.booking import BookingBatchResult, RowState
from meeting_booker.services.booking_service import run_booking_batch
from meeting_booker.services.graph_client import get_graph_client
from meeting_booker.services.header_resolver import MissingColumnsError
from meeting_booker.services.oauth_client import ApiClientError
from meeting_booker.services.workbook import DocumentError

logger = logging.getLogger("meeting_booker.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meeting-booker",
        description="Book Zoom meetings and Outlook invites from a Doodle bookings workbook.",
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help="Workbook to process (default: DEFAULT_WORKBOOK_PATH).",
    )
    parser.add_argument(
        "--check-graph",
        action="store_true",
        help="Obtain a Graph token, print the tenant name and exit.",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL.")
    return parser


def print_result(result: BookingBatchResult) -> None:
    for outcome in result.outcomes:
        if outcome.state == RowState.BOOKED:
            print(f"✔ {outcome.topic}")
        elif outcome.state == RowState.BOOKED_NOT_INVITED:
            print(f"! {outcome.topic}: booked, invite not sent", file=sys.stderr)
        elif outcome.state == RowState.FAILED:
            print(f"✘ {outcome.topic}: {outcome.error}", file=sys.stderr)


async def check_graph() -> str:
    client = get_graph_client()
    await client.get_access_token()
    return await client.get_organization_name() or "(unnamed tenant)"


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.LOG_LEVEL)

    if args.check_graph:
        try:
            tenant = asyncio.run(check_graph())
        except ApiClientError as exc:
            logger.error("Graph check failed: %s", exc)
            return 1
        print(f"Token OK. Tenant: {tenant}")
        return 0

    path = args.path or settings.DEFAULT_WORKBOOK_PATH
    try:
        result = asyncio.run(run_booking_batch(path))
    except (DocumentError, MissingColumnsError) as exc:
        logger.error("%s", exc)
        return 1
    except ApiClientError as exc:
        logger.error("Cannot start booking run: %s", exc)
        return 1

    print_result(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
