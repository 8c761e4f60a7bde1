#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex_checksum.py — integrity verification of downloaded packages
"""

from __future__ import annotations
import hashlib
from pathlib import Path
from typing import Union

from lhex.modules.lhex_errors import IntegrityError, UnreadableFileError
from lhex.modules.lhex_logger import get_logger

LOG = get_logger("checksum")

DEFAULT_ALGORITHM = "sha1"
CHUNK_SIZE = 1024 * 1024


def digest(path: Union[str, Path], algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Hex digest of the whole file. Unreadable file -> UnreadableFileError."""
    try:
        h = hashlib.new(algorithm.lower())
    except ValueError:
        raise IntegrityError(f"unsupported checksum algorithm: {algorithm}")
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                h.update(chunk)
    except OSError as e:
        raise UnreadableFileError(f"cannot read {path}: {e}") from e
    return h.hexdigest()


def verify(path: Union[str, Path], expected_hex: str, algorithm: str = DEFAULT_ALGORITHM) -> bool:
    got = digest(path, algorithm)
    ok = got.lower() == expected_hex.strip().lower()
    if not ok:
        LOG.debug("checksum mismatch for %s: %s != %s", path, got, expected_hex)
    return ok


__all__ = ["digest", "verify", "DEFAULT_ALGORITHM"]
