#!/usr/bin/env python3
"""CLI shim that serves the scrape, analysis and cleanup triggers."""
from __future__ import annotations

import asyncio
import sys

from adlib_scraper.config import get_scraper_version
from adlib_scraper.logging import configure_logging, logging_context, set_global_context
from adlib_scraper.runner import CliArgs, parse_args, run

SCRIPT_NAME = "scheduler"


def main() -> None:
    configure_logging()
    set_global_context(app="adlib_scraper", pipeline=SCRIPT_NAME)
    version = get_scraper_version()
    with logging_context(script=SCRIPT_NAME, scraper_version=version):
        args: CliArgs = parse_args(["scheduler", *sys.argv[1:]])
        asyncio.run(run(args))


if __name__ == "__main__":
    main()
