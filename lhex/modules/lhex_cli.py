#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex CLI — extract libhoudini from the latest Windows Subsystem for Android package.

  lhex <output directory> [options]

Exit codes: 0 success/help/version, 1 usage error or non-Linux host,
2 pipeline failure.

NOTE: needs bsdtar, and root (or sudo) to loop-mount vendor.img.
"""

from __future__ import annotations
import sys
import argparse
from pathlib import Path
from typing import List, Optional

from lhex import __version__
from lhex.modules.lhex_config import get_config_manager
from lhex.modules.lhex_errors import ConfigError, LhexError
from lhex.modules.lhex_logger import cleanup_old_logs, close_session, get_logger, log_exception, setup_logging
from lhex.modules.lhex_pipeline import AcquisitionPipeline

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_FAILURE = 2

log = get_logger("cli")


def print_err(*args, **kwargs):
    print(*args, file=sys.stderr, **kwargs)


class _Parser(argparse.ArgumentParser):
    """Usage errors exit with 1 (argparse default is 2, which is reserved for pipeline failures)."""

    def error(self, message):
        self.print_usage(sys.stderr)
        print_err(f"{self.prog}: error: {message}")
        raise SystemExit(EXIT_USAGE)


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="lhex",
        description="lhex - extract libhoudini from latest Windows Subsystem for Android package",
    )
    parser.add_argument("output", metavar="<output directory>", help="directory that receives system/{bin,lib,lib64}")
    parser.add_argument("-v", "--version", action="version", version=f"lhex {__version__}", help="Show version")
    parser.add_argument("-c", "--config", help="extra TOML config file")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], type=str.upper)
    parser.add_argument("--no-progress", action="store_true", help="disable the download progress bar")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # --help / --version exit 0, usage errors exit 1
        return int(e.code or 0)

    if not sys.platform.startswith("linux"):
        print_err("lhex only works on Linux")
        return EXIT_USAGE

    try:
        cfg = get_config_manager(extra_config=Path(args.config) if args.config else None)
    except ConfigError as e:
        print_err(f"Error: {e}")
        return EXIT_USAGE
    cfg.apply_cli_overrides(args)
    setup_logging(level=cfg.get("logging", "level"))
    log.debug("config: %s", cfg.summary())
    removed = cleanup_old_logs()
    if removed:
        log.debug("removed %d old log sessions", removed)

    try:
        # bad resolver settings surface here as ConfigError
        outcome = AcquisitionPipeline.from_config(cfg).execute(args.output)
        if not outcome.ok:
            err = outcome.error
            log_exception("cli", err.stage, err)
            print_err(f"Error: {err.stage} failed: {err}")
            if outcome.cleanup_error is None:
                print_err("Cleaned up workspace")
            elif outcome.cleanup_error is not err:
                print_err(f"Cleanup also failed: {outcome.cleanup_error}")
            return EXIT_FAILURE
    except LhexError as e:
        log_exception("cli", e.stage, e)
        print_err(f"Error: {e.stage} failed: {e}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print_err("aborted by user")
        return 130
    finally:
        close_session()

    print(f"Success! output directory: {outcome.result.output_dir}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
