#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex_errors.py — error taxonomy for lhex

Every pipeline stage raises a subclass of LhexError. The `stage` label is what
the CLI prints when a run aborts ("Error: <stage> failed: <cause>").
"""

from __future__ import annotations
from typing import Optional, Sequence


class LhexError(Exception):
    stage = "lhex"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage:
            self.stage = stage


class ConfigError(LhexError):
    stage = "config"


class ProcessError(LhexError):
    """External command exited non-zero (or could not be spawned: returncode None)."""
    stage = "process"

    def __init__(self, command: str, args: Sequence[str], returncode: Optional[int]):
        self.command = command
        self.args_list = list(args)
        self.returncode = returncode
        cmdline = " ".join([command] + self.args_list)
        if returncode is None:
            msg = f"could not execute: {cmdline}"
        else:
            msg = f"command exited with status {returncode}: {cmdline}"
        super().__init__(msg)


class NetworkError(LhexError):
    stage = "download"


class MetadataNotFoundError(LhexError):
    stage = "resolve"


class IntegrityError(LhexError):
    stage = "verify"


class ChecksumMismatchError(IntegrityError):
    def __init__(self, path, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"checksum mismatch for {path}: expected {expected}, got {actual}")


class UnreadableFileError(IntegrityError):
    pass


class ExtractError(LhexError):
    stage = "extract"


class MountError(LhexError):
    stage = "mount"


class PermissionNormalizationError(LhexError):
    stage = "chmod"


class CopyError(LhexError):
    stage = "copy"


class WorkspaceError(LhexError):
    stage = "workspace"


class CleanupError(LhexError):
    stage = "cleanup"


__all__ = [
    "LhexError",
    "ConfigError",
    "ProcessError",
    "NetworkError",
    "MetadataNotFoundError",
    "IntegrityError",
    "ChecksumMismatchError",
    "UnreadableFileError",
    "ExtractError",
    "MountError",
    "PermissionNormalizationError",
    "CopyError",
    "WorkspaceError",
    "CleanupError",
]
