#!/usr/bin/env python3
"""
Launch a bot service instance for a specific profile + instance id.
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path

import uvicorn


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a meeting interview bot service instance for a specific bot profile.",
    )
    parser.add_argument("--instance", default="default", help="Instance id (e.g. zoom-a).")
    parser.add_argument("--host", default="0.0.0.0", help="Service bind host.")
    parser.add_argument("--port", type=int, default=8080, help="Service bind port.")
    parser.add_argument(
        "--profile",
        default=None,
        help="Path to bot profile JSON (e.g. ./bot_platform/profiles/remote.json). "
        "Default: BOT_PROFILE_PATH or the bundled default profile.",
    )
    parser.add_argument("--log-level", default="info", help="Uvicorn log level.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()

    os.environ["INSTANCE_ID"] = args.instance
    os.environ["BOT_HOST"] = args.host
    os.environ["BOT_PORT"] = str(args.port)
    if args.profile:
        os.environ["BOT_PROFILE_PATH"] = str(Path(args.profile).expanduser())

    from bot_service import BOT_PROFILE, BOT_PROFILE_PATH, app  # Import after env config

    print(
        f"Starting interview bot profile={BOT_PROFILE.profile_id} instance={args.instance} "
        f"bind=http://{args.host}:{args.port} profile_path={BOT_PROFILE_PATH}"
    )
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
