#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex_runner.py — external command execution for lhex

Every interaction with the host (bsdtar, mountpoint, mount, umount, chmod)
goes through ProcessRunner so tests can substitute a fake. Only the exit
status matters; stdout/stderr are either inherited (so sudo can prompt) or
discarded with quiet=True.
"""

from __future__ import annotations
import os
import subprocess
from typing import List, Optional, Sequence

from lhex.modules.lhex_errors import ProcessError
from lhex.modules.lhex_logger import get_logger

log = get_logger("runner")


def is_root() -> bool:
    try:
        return os.geteuid() == 0
    except AttributeError:
        # non-unix environment
        return False


class ProcessRunner:
    def __init__(self, escalate: Optional[str] = "sudo"):
        # privileged commands are wrapped with `escalate` unless already root
        self.escalate = escalate or None

    def privileged(self, command: str, args: Sequence[str]) -> tuple:
        """Return (command, args) wrapped with the escalation tool when needed."""
        if self.escalate and not is_root():
            return self.escalate, [command] + list(args)
        return command, list(args)

    def run(self, command: str, args: Sequence[str], quiet: bool = False) -> int:
        """Run `command args...` synchronously and return its exit status.

        Raises ProcessError(returncode=None) if the executable cannot be started.
        """
        cmd: List[str] = [command] + [str(a) for a in args]
        log.debug("exec: %s", " ".join(cmd))
        stream = subprocess.DEVNULL if quiet else None
        try:
            proc = subprocess.run(cmd, stdout=stream, stderr=stream, check=False)
        except OSError as e:
            log.error("cannot execute %s: %s", command, e)
            raise ProcessError(command, args, None) from e
        if proc.returncode != 0:
            log.debug("exit %d: %s", proc.returncode, " ".join(cmd))
        return proc.returncode

    def run_ok(self, command: str, args: Sequence[str], quiet: bool = False) -> None:
        code = self.run(command, args, quiet=quiet)
        if code != 0:
            raise ProcessError(command, args, code)


__all__ = ["ProcessRunner", "is_root"]
