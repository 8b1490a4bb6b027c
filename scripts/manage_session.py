#!/usr/bin/env python3
"""
Operator CLI for the Meeting Interview Bot

Sends the bot into a meeting, starts or stops the interview, and shows
session status through the bot service's management API.

Usage (run from the repository root):

    # Dry run (test without making requests)
    python scripts/manage_session.py join --meeting-id 85746065 --topic "Backend" --dry-run

    # Join, then start the interview once the bot is in the meeting
    python scripts/manage_session.py join --meeting-id 85746065
    python scripts/manage_session.py start-interview --meeting-id 85746065

    # Status and stop
    python scripts/manage_session.py status
    python scripts/manage_session.py status --meeting-id 85746065
    python scripts/manage_session.py stop --meeting-id 85746065

Note: This script requires httpx.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

import httpx

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Default endpoint
DEFAULT_BOT_ENDPOINT = "http://localhost:8080"

# HTTP timeout settings
HTTP_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


async def call_api(
    method: str,
    url: str,
    payload: Optional[dict[str, Any]] = None,
    dry_run: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[dict[str, Any]]:
    """
    Call one management API endpoint.

    Args:
        method: HTTP method
        url: Full endpoint URL
        payload: Optional JSON body
        dry_run: If True, only log what would be done
        transport: Optional httpx transport (tests)

    Returns:
        Decoded JSON body (empty dict for no body), or None on failure
    """
    if dry_run:
        logger.info("[DRY RUN] Would %s %s", method, url)
        if payload is not None:
            logger.info("[DRY RUN] Payload: %s", payload)
        return {}

    logger.debug("%s %s payload=%s", method, url, payload)

    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT, transport=transport) as client:
            response = await client.request(method, url, json=payload)
            response.raise_for_status()
            return response.json() if response.content else {}

    except httpx.ConnectError as e:
        logger.error("Failed to connect to bot service: %s", e)
        logger.error("Ensure the bot service is running (python python/bot_service.py)")
        return None
    except httpx.HTTPStatusError as e:
        logger.error("Bot service returned error status: %s", e.response.status_code)
        try:
            logger.error("Error details: %s", e.response.json())
        except ValueError:
            logger.error("Response body: %s", e.response.text)
        return None
    except httpx.HTTPError as e:
        logger.error("HTTP error calling %s: %s", url, e)
        return None
    except ValueError as e:
        logger.error("Bot service returned invalid JSON: %s", e)
        return None


def build_request(args: argparse.Namespace) -> tuple[str, str, Optional[dict[str, Any]]]:
    """Map a parsed CLI command to (method, url, payload)."""
    base = args.endpoint.rstrip("/")

    if args.command == "join":
        payload: dict[str, Any] = {"meetingId": args.meeting_id}
        if args.topic:
            payload["topic"] = args.topic
        return "POST", f"{base}/sessions", payload

    if args.command == "start-interview":
        return "POST", f"{base}/sessions/{args.meeting_id}/interview/start", None

    if args.command == "stop":
        return "POST", f"{base}/sessions/{args.meeting_id}/stop", {"reason": args.reason}

    if args.command == "status":
        if args.meeting_id:
            return "GET", f"{base}/sessions/{args.meeting_id}", None
        return "GET", f"{base}/sessions", None

    raise ValueError(f"Unknown command '{args.command}'")


async def run_command(
    args: argparse.Namespace,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """Execute one CLI command. Returns True on success."""
    method, url, payload = build_request(args)

    logger.info("=" * 60)
    logger.info("Meeting Interview Bot - %s", args.command)
    logger.info("=" * 60)
    logger.info("Bot Endpoint: %s", args.endpoint)
    if args.dry_run:
        logger.info("MODE: DRY RUN (no actual requests will be made)")
    logger.info("-" * 60)

    result = await call_api(method, url, payload, dry_run=args.dry_run, transport=transport)
    if result is None:
        return False

    if not args.dry_run:
        print(json.dumps(result, indent=2))
    return True


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Manage meeting interview bot sessions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/manage_session.py join --meeting-id 85746065 --dry-run
  python scripts/manage_session.py start-interview --meeting-id 85746065
  python scripts/manage_session.py stop --meeting-id 85746065 --reason "candidate left"
  python scripts/manage_session.py status --endpoint http://localhost:8080
        """,
    )

    parser.add_argument(
        "--endpoint",
        default=DEFAULT_BOT_ENDPOINT,
        help=f"Bot service endpoint (default: {DEFAULT_BOT_ENDPOINT})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print what would be done without making actual requests",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    join = subparsers.add_parser("join", help="Open a session and send the bot into a meeting")
    join.add_argument("--meeting-id", required=True, help="Platform meeting id (required)")
    join.add_argument("--topic", default=None, help="Optional meeting label")

    start = subparsers.add_parser("start-interview", help="Start the question sequence")
    start.add_argument("--meeting-id", required=True, help="Platform meeting id (required)")

    stop = subparsers.add_parser("stop", help="Stop a session")
    stop.add_argument("--meeting-id", required=True, help="Platform meeting id (required)")
    stop.add_argument("--reason", default="operator stop", help="Reason recorded on the session")

    status = subparsers.add_parser("status", help="Show all sessions or one session")
    status.add_argument("--meeting-id", default=None, help="Show only this meeting")

    return parser.parse_args(argv)


def main() -> int:
    """Main entry point."""
    args = parse_args()

    # Set logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    success = asyncio.run(run_command(args))
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
