#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex_workspace.py — temporary working directory and its teardown

A Workspace is the temp root plus the mount point nested inside it; both are
owned together. destroy_workspace() always removes the root, even when the
unmount before it failed, and is safe to call any number of times.
"""

from __future__ import annotations
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from lhex.modules.lhex_errors import CleanupError, MountError, WorkspaceError
from lhex.modules.lhex_logger import get_logger, log_event
from lhex.modules.lhex_mount import MountController
from lhex.modules.lhex_types import Workspace

logger = get_logger("workspace")

WORKSPACE_PREFIX = "lhex-"
MOUNT_SUBDIR = Path("mnt") / "lhex"


def create_workspace(parent: Optional[Path] = None) -> Workspace:
    """Allocate a unique root dir. The mount point dir is created later, right before mounting."""
    try:
        if parent is not None:
            Path(parent).mkdir(parents=True, exist_ok=True)
        root = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=str(parent) if parent else None))
    except OSError as e:
        raise WorkspaceError(f"cannot create working directory under {parent or tempfile.gettempdir()}: {e}") from e
    ws = Workspace(root_dir=root, mount_point=root / MOUNT_SUBDIR)
    logger.debug("workspace created at %s", root)
    return ws


def destroy_workspace(workspace: Workspace, mounts: MountController) -> None:
    """
    Unmount (if mounted) then remove the root. Raises CleanupError after removal if unmount failed.

    The live mount query is skipped when the mount point directory does not
    exist: nothing can be mounted on a missing path, and the status tool would
    fail on it.
    """
    error: Optional[CleanupError] = None
    if workspace.mount_point.exists():
        try:
            mounts.unmount(workspace.mount_point)
        except MountError as e:
            logger.error("unmount of %s failed: %s", workspace.mount_point, e)
            error = CleanupError(f"failed to unmount {workspace.mount_point}: {e}")
    if workspace.root_dir.exists():
        try:
            shutil.rmtree(workspace.root_dir)
        except OSError as e:
            logger.error("failed to remove %s: %s", workspace.root_dir, e)
            if error is None:
                error = CleanupError(f"failed to remove {workspace.root_dir}: {e}")
        else:
            log_event("workspace", "cleanup", f"removed {workspace.root_dir}")
    if error is not None:
        raise error


@contextmanager
def scoped_workspace(mounts: MountController, parent: Optional[Path] = None,
                     cleanup_errors: Optional[List[CleanupError]] = None) -> Iterator[Workspace]:
    """
    Yield a fresh Workspace and tear it down exactly once on every exit path.
    If the body raised, a teardown failure is logged (and appended to
    cleanup_errors when given) and the body's exception wins.
    """
    ws = create_workspace(parent)
    try:
        yield ws
    except BaseException:
        try:
            destroy_workspace(ws, mounts)
        except CleanupError as e:
            log_event("workspace", "cleanup", f"teardown after failure also failed: {e}", level="error")
            if cleanup_errors is not None:
                cleanup_errors.append(e)
        raise
    destroy_workspace(ws, mounts)


__all__ = ["create_workspace", "destroy_workspace", "scoped_workspace", "WORKSPACE_PREFIX", "MOUNT_SUBDIR"]
