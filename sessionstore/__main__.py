#!/usr/bin/env python3
"""
Session Store maintenance entry point.

Usage:
    python -m sessionstore count
    python -m sessionstore gc

    # Against a local SQLite file
    SESSIONSTORE_BACKEND=sqlite SESSIONSTORE_SQLITE_PATH=sessions.db python -m sessionstore gc

Configuration is read from SESSIONSTORE_* environment variables.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import Optional, Sequence

from sessionstore.core.config import SessionStoreConfig
from sessionstore.observability.logging import LogLevel, log_context, setup_logging
from sessionstore.session.dao import SessionDao

logger = logging.getLogger("sessionstore")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sessionstore",
        description="Session table maintenance",
    )
    parser.add_argument(
        "--table",
        help="Override SESSIONSTORE_TABLE",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("count", help="Print the number of stored sessions")
    sub.add_parser("gc", help="Delete expired sessions and print how many were removed")
    return parser


async def run(command: str, config: SessionStoreConfig) -> int:
    """Execute one command. Returns the process exit code."""
    connected = await SessionDao.connect(config)
    if connected.is_err():
        logger.error("Connection failed", extra={"error": str(connected.error)})
        return 1

    async with connected.unwrap() as dao:
        with log_context(command=command, table=dao.table_name):
            if command == "count":
                print(await dao.count_sessions())
                return 0

            swept = await dao.delete_expired_sessions()
            if swept.is_err():
                logger.error("Expiration sweep failed", extra={"error": str(swept.error)})
                return 1
            logger.info("Expiration sweep finished", extra={"deleted": swept.unwrap()})
            print(swept.unwrap())
            return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    loaded = SessionStoreConfig.from_env()
    if loaded.is_err():
        print(f"Configuration error: {loaded.error}", file=sys.stderr)
        return 2

    config = loaded.unwrap()
    if args.table:
        config = replace(config, table_name=args.table)

    validation = config.validate()
    if validation.is_err():
        print(f"Validation error: {validation.error}", file=sys.stderr)
        return 2

    setup_logging(
        LogLevel.from_name(config.observability.log_level),
        json_output=config.observability.log_json,
    )
    return asyncio.run(run(args.command, config))


if __name__ == "__main__":
    sys.exit(main())
