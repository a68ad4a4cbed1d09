"""
harvest-compile

Run one compile over the window [end - duration, end].

Usage:
    harvest-compile [--duration 24h] [--end 2024-01-02T00:00:00Z] [--workspace ID] [--verbose]
"""

import argparse
import json
import logging
import re
import sys
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from dotenv import load_dotenv

from ..common.config import ensure_directories, load_config
from ..common.errors import CompileError, ConfigError, RepositoryError
from ..common.log import setup_logging

logger = logging.getLogger("harvest.compiler.cli")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration like "24h", "90m", "1h30m" or "7d".

    A trailing "d" reads the number as days.

    Raises:
        ValueError: if the string is not a duration
    """
    s = (value or "").strip()
    if len(s) > 1 and s.endswith("d"):
        return parse_duration(s[:-1] + "h") * 24

    if s == "0":
        return timedelta(0)

    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(s):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if not s or pos != len(s):
        raise ValueError(f"invalid duration: {value!r}")
    return timedelta(seconds=seconds)


def parse_end_time(value: Optional[str]) -> datetime:
    """RFC 3339 end of the window; now when empty"""
    if not value:
        return datetime.now(timezone.utc)
    try:
        end = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"invalid end time: {value!r}") from e
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    return end


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="harvest-compile",
        description="Compile knowledge from configured sources",
    )
    parser.add_argument(
        "--duration", "-d",
        default=None,
        help="Collection period, e.g. 24h, 7d (default: compile.duration from config)",
    )
    parser.add_argument(
        "--end", "-e",
        default=None,
        help="Collection end time, RFC 3339 (default: now)",
    )
    parser.add_argument(
        "--workspace", "-w",
        default=None,
        help="Only compile this workspace id",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    load_dotenv()

    config = load_config()
    ensure_directories()

    try:
        until = parse_end_time(args.end)
        duration = parse_duration(args.duration or config.compile.duration)
    except ValueError as e:
        logger.error("%s", e)
        return 2

    since = until - duration
    logger.info("Compile window: %s .. %s (duration=%s)", since.isoformat(), until.isoformat(), duration)

    from .bootstrap import build_compiler

    try:
        compiler = build_compiler(config)
        result = compiler.compile(since, workspace_id=args.workspace)
    except (CompileError, ConfigError, RepositoryError) as e:
        logger.error("Compile failed: %s", e, exc_info=e.__cause__ is not None)
        return 1

    totals = result.totals()
    logger.info(
        "Compile completed (workspaces=%d, sources=%d, pages=%d, knowledge=%d, notifications=%d, errors=%d)",
        len(result.workspace_results),
        totals["sources_processed"],
        totals["pages_processed"],
        totals["knowledge_created"],
        totals["notifications"],
        totals["errors"],
    )
    print(json.dumps(result.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
