#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex_mount.py — loop mount handling for the extracted vendor image

State machine over one mount point: Unmounted <-> Mounted. Nothing is cached:
every transition asks `mountpoint -q` first, so a mount that vanished behind
our back (or was never made) is handled correctly.

IMPORTANT: mount/chmod/umount require root. Commands are wrapped with the
configured escalation tool (sudo) unless the process already runs as root.
"""

from __future__ import annotations
from pathlib import Path
from typing import Optional, Union

from lhex.modules.lhex_errors import MountError, PermissionNormalizationError, ProcessError
from lhex.modules.lhex_logger import get_logger, log_event
from lhex.modules.lhex_runner import ProcessRunner

logger = get_logger("mount")

PathLike = Union[str, Path]


class MountController:
    def __init__(self, runner: Optional[ProcessRunner] = None,
                 mountpoint_tool: str = "mountpoint",
                 mount_tool: str = "mount",
                 umount_tool: str = "umount",
                 chmod_tool: str = "chmod",
                 mount_options: str = "loop"):
        self.runner = runner or ProcessRunner()
        self.mountpoint_tool = mountpoint_tool
        self.mount_tool = mount_tool
        self.umount_tool = umount_tool
        self.chmod_tool = chmod_tool
        self.mount_options = mount_options

    @classmethod
    def from_config(cls, cfg, runner: Optional[ProcessRunner] = None) -> "MountController":
        tools = cfg.section("tools")
        return cls(
            runner=runner or ProcessRunner(escalate=tools.get("escalate", "sudo")),
            mountpoint_tool=tools.get("mountpoint", "mountpoint"),
            mount_tool=tools.get("mount", "mount"),
            umount_tool=tools.get("umount", "umount"),
            chmod_tool=tools.get("chmod", "chmod"),
            mount_options=cfg.get("mount", "options", default="loop"),
        )

    def is_mounted(self, mount_point: PathLike) -> bool:
        """Live query. A status tool that cannot be run is a MountError."""
        try:
            code = self.runner.run(self.mountpoint_tool, ["-q", str(mount_point)], quiet=True)
        except ProcessError as e:
            raise MountError(f"cannot query mount status of {mount_point}: {e}") from e
        return code == 0

    def mount(self, image_path: PathLike, mount_point: PathLike) -> None:
        if self.is_mounted(mount_point):
            raise MountError(f"{mount_point} is already mounted")
        cmd, args = self.runner.privileged(
            self.mount_tool, ["-o", self.mount_options, str(image_path), str(mount_point)])
        try:
            self.runner.run_ok(cmd, args)
        except ProcessError as e:
            raise MountError(f"failed to mount {image_path} to {mount_point}: {e}") from e
        log_event("mount", "mount", f"mounted {image_path} at {mount_point}")

    def chmod_recursive(self, path: PathLike, mode: Union[str, int] = "777") -> None:
        """Relax permissions on the whole mounted tree so the copy step can read it."""
        if not self.is_mounted(path):
            raise MountError(f"{path} is not mounted; refusing to chmod")
        cmd, args = self.runner.privileged(self.chmod_tool, ["-R", str(mode), str(path)])
        try:
            self.runner.run_ok(cmd, args)
        except ProcessError as e:
            raise PermissionNormalizationError(f"failed to chmod {path}: {e}") from e
        logger.debug("chmod -R %s %s", mode, path)

    def unmount(self, mount_point: PathLike) -> bool:
        """Unmount if mounted. Returns True if an unmount was performed."""
        if not self.is_mounted(mount_point):
            logger.debug("%s not mounted, nothing to unmount", mount_point)
            return False
        cmd, args = self.runner.privileged(self.umount_tool, [str(mount_point)])
        try:
            self.runner.run_ok(cmd, args)
        except ProcessError as e:
            raise MountError(f"failed to unmount {mount_point}: {e}") from e
        log_event("mount", "umount", f"unmounted {mount_point}")
        return True


__all__ = ["MountController"]
