#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex_archive.py — single-member extraction with bsdtar

bsdtar reads zip-based containers (.msixbundle, .msix) as well as tarballs, so
one tool covers both nesting levels.
"""

from __future__ import annotations
from pathlib import Path, PurePosixPath
from typing import Optional, Union

from lhex.modules.lhex_errors import ExtractError, ProcessError
from lhex.modules.lhex_logger import get_logger, log_event
from lhex.modules.lhex_runner import ProcessRunner

LOG = get_logger("archive")

PathLike = Union[str, Path]


def extract_member(archive: PathLike, member: str, dest_dir: PathLike,
                   runner: Optional[ProcessRunner] = None, archiver: str = "bsdtar") -> Path:
    """
    Extract exactly one named member of `archive` into `dest_dir`.
    Returns the path of the extracted file. Missing archive, missing member or a
    non-zero tool exit raise ExtractError; a partial output file is removed.
    """
    runner = runner or ProcessRunner()
    archive = Path(archive)
    dest = Path(dest_dir)
    if not archive.is_file():
        raise ExtractError(f"archive not found: {archive}")
    if PurePosixPath(member).is_absolute() or ".." in PurePosixPath(member).parts:
        raise ExtractError(f"refusing unsafe member path: {member}")
    try:
        dest.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ExtractError(f"cannot create {dest}: {e}") from e
    target = dest / member
    existed = target.exists()

    try:
        runner.run_ok(archiver, ["-xf", str(archive), "-C", str(dest), member])
    except ProcessError as e:
        if target.exists() and not existed:
            LOG.debug("removing partial output %s", target)
            try:
                target.unlink()
            except OSError as rm_err:
                LOG.warning("cannot remove partial output %s: %s", target, rm_err)
        raise ExtractError(f"cannot extract {member} from {archive}: {e}") from e

    if not target.exists():
        raise ExtractError(f"{member} not found in {archive}")
    log_event("archive", "extract", f"extracted {member} from {archive.name}")
    return target


__all__ = ["extract_member"]
