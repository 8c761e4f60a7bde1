#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex_pipeline.py — libhoudini acquisition pipeline

Stages (each gated on the previous one):
  resolve -> download -> verify -> extract bundle -> extract image
  -> mount + chmod -> copy payload
and, on every exit path, workspace teardown (unmount if mounted, remove temp dir).

A failing stage raises its LhexError subclass; the error is re-raised after
teardown. A teardown failure after a stage failure is only logged.
"""

from __future__ import annotations
import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from lhex.modules.lhex_archive import extract_member
from lhex.modules.lhex_checksum import DEFAULT_ALGORITHM, digest
from lhex.modules.lhex_checksum import verify as verify_checksum
from lhex.modules.lhex_config import ConfigManager
from lhex.modules.lhex_downloader import Downloader
from lhex.modules.lhex_errors import ChecksumMismatchError, CleanupError, ConfigError, CopyError, LhexError, MountError
from lhex.modules.lhex_logger import get_logger, log_event, perf_timer
from lhex.modules.lhex_mount import MountController
from lhex.modules.lhex_resolver import MetadataResolver
from lhex.modules.lhex_runner import ProcessRunner
from lhex.modules.lhex_types import OUTPUT_SUBDIRS, PAYLOAD_MANIFEST, PackageMetadata, Workspace
from lhex.modules.lhex_workspace import scoped_workspace

log = get_logger("pipeline")


@dataclass
class AcquisitionResult:
    metadata: PackageMetadata
    output_dir: Path
    copied: List[Path] = field(default_factory=list)


@dataclass
class RunOutcome:
    """What execute() hands back instead of raising."""
    result: Optional[AcquisitionResult] = None
    error: Optional[LhexError] = None
    cleanup_error: Optional[CleanupError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _copy_entry(src: Path, dst: Path) -> Path:
    if not src.exists():
        raise CopyError(f"{src} does not exist in the mounted image")
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        if src.is_dir():
            shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)
        else:
            shutil.copy2(src, dst)
    except OSError as e:
        raise CopyError(f"failed to copy {src} -> {dst}: {e}") from e
    return dst


def copy_payload(source_root: Path, output_dir: Path,
                 manifest: Sequence[str] = PAYLOAD_MANIFEST,
                 subdirs: Sequence[str] = OUTPUT_SUBDIRS,
                 max_workers: int = 4) -> List[Path]:
    """
    Copy every manifest entry from source_root/<p> to output_dir/system/<p>.
    The system/{bin,lib,lib64} dirs are created first. Copies run in parallel;
    the first failure is raised once all workers have finished. Already copied
    files are left in place.
    """
    system_dir = Path(output_dir) / "system"
    try:
        for sub in subdirs:
            (system_dir / sub).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise CopyError(f"failed to create output directory {system_dir}: {e}") from e

    copied: List[Path] = []
    errors: List[CopyError] = []
    with ThreadPoolExecutor(max_workers=max(1, int(max_workers))) as ex:
        futures = {ex.submit(_copy_entry, Path(source_root) / rel, system_dir / rel): rel for rel in manifest}
        for fut in as_completed(futures):
            rel = futures[fut]
            try:
                copied.append(fut.result())
            except CopyError as e:
                log_event("pipeline", "copy", f"failed to copy {rel}: {e}", level="error")
                errors.append(e)
    if errors:
        raise errors[0]
    return copied


class AcquisitionPipeline:
    def __init__(self,
                 resolver: MetadataResolver,
                 downloader: Downloader,
                 mounts: MountController,
                 runner: Optional[ProcessRunner] = None,
                 algorithm: str = DEFAULT_ALGORITHM,
                 release_channel: str = "Nightly",
                 arch: str = "x64",
                 image_name: str = "vendor.img",
                 chmod_mode: str = "777",
                 archiver: str = "bsdtar",
                 work_dir: Optional[Path] = None,
                 max_workers: int = 4,
                 manifest: Sequence[str] = PAYLOAD_MANIFEST):
        self.resolver = resolver
        self.downloader = downloader
        self.mounts = mounts
        self.runner = runner or mounts.runner
        self.algorithm = algorithm
        self.release_channel = release_channel
        self.arch = arch
        self.image_name = image_name
        self.chmod_mode = chmod_mode
        self.archiver = archiver
        self.work_dir = work_dir
        self.max_workers = max_workers
        self.manifest = tuple(manifest)

    @classmethod
    def from_config(cls, cfg: ConfigManager) -> "AcquisitionPipeline":
        runner = ProcessRunner(escalate=cfg.get("tools", "escalate", default="sudo"))
        pkg = cfg.section("package")
        try:
            max_workers = int(cfg.get("copy", "max_workers", default=4))
            pipeline = cls(
                resolver=MetadataResolver.from_config(cfg),
                downloader=Downloader.from_config(cfg),
                mounts=MountController.from_config(cfg, runner=runner),
                runner=runner,
                algorithm=cfg.get("checksum", "algorithm", default=DEFAULT_ALGORITHM),
                release_channel=pkg.get("release_channel", "Nightly"),
                arch=pkg.get("arch", "x64"),
                image_name=pkg.get("image_name", "vendor.img"),
                chmod_mode=str(cfg.get("mount", "chmod_mode", default="777")),
                archiver=cfg.get("tools", "archiver", default="bsdtar"),
                work_dir=cfg.get_work_dir(),
                max_workers=max_workers,
            )
        except (TypeError, ValueError) as e:
            # non-numeric timeouts, chunk sizes or worker counts
            raise ConfigError(f"invalid setting: {e}") from e
        if max_workers < 1:
            raise ConfigError(f"copy.max_workers must be at least 1, got {max_workers}")
        return pipeline

    # ---------------------
    # stages
    # ---------------------
    def resolve(self) -> PackageMetadata:
        log_event("pipeline", "resolve", "fetching package info")
        meta = self.resolver.resolve()
        for key, value in meta.as_dict().items():
            log.info("  %s: %s", key, value)
        return meta

    def download(self, meta: PackageMetadata, ws: Workspace) -> Path:
        log_event("pipeline", "download", f"fetching {meta.filename}; this may take a while")
        return self.downloader.fetch(meta.url, ws.root_dir / meta.filename)

    def verify(self, meta: PackageMetadata, package: Path) -> None:
        log_event("pipeline", "verify", f"comparing {self.algorithm} checksum")
        if not verify_checksum(package, meta.checksum, self.algorithm):
            actual = digest(package, self.algorithm)
            # corrupted download is not kept around
            try:
                package.unlink(missing_ok=True)
            except OSError as e:
                log.warning("cannot remove corrupted download %s: %s", package, e)
            raise ChecksumMismatchError(package, meta.checksum, actual)
        log_event("pipeline", "verify", "checksum matched")

    def extract(self, meta: PackageMetadata, package: Path, ws: Workspace) -> Path:
        inner = meta.inner_package_name(self.release_channel, self.arch)
        log_event("pipeline", "extract", f"extracting {inner}")
        msix = extract_member(package, inner, ws.root_dir, runner=self.runner, archiver=self.archiver)
        log_event("pipeline", "extract", f"extracting {self.image_name}")
        return extract_member(msix, self.image_name, ws.root_dir, runner=self.runner, archiver=self.archiver)

    def mount(self, image: Path, ws: Workspace) -> None:
        try:
            ws.mount_point.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise MountError(f"cannot create mount point {ws.mount_point}: {e}") from e
        self.mounts.mount(image, ws.mount_point)
        self.mounts.chmod_recursive(ws.mount_point, self.chmod_mode)
        log_event("pipeline", "mount", f"image mounted at {ws.mount_point}")

    def copy(self, ws: Workspace, output_dir: Path) -> List[Path]:
        log_event("pipeline", "copy", f"copying libhoudini to {output_dir}")
        return copy_payload(ws.mount_point, output_dir, self.manifest, max_workers=self.max_workers)

    @perf_timer("pipeline", "run")
    def run(self, output_dir: Union[str, Path],
            cleanup_errors: Optional[List[CleanupError]] = None) -> AcquisitionResult:
        output_dir = Path(output_dir)
        with scoped_workspace(self.mounts, parent=self.work_dir, cleanup_errors=cleanup_errors) as ws:
            log.debug("workspace: %s", ws.root_dir)
            meta = self.resolve()
            package = self.download(meta, ws)
            self.verify(meta, package)
            image = self.extract(meta, package, ws)
            self.mount(image, ws)
            copied = self.copy(ws, output_dir)
        log_event("pipeline", "done", f"copied {len(copied)} entries to {output_dir}")
        return AcquisitionResult(metadata=meta, output_dir=output_dir, copied=copied)

    def execute(self, output_dir: Union[str, Path]) -> RunOutcome:
        """
        Like run(), but failures come back as a RunOutcome. A teardown failure
        that followed a stage failure is reported in cleanup_error.
        """
        cleanup_errors: List[CleanupError] = []
        try:
            result = self.run(output_dir, cleanup_errors=cleanup_errors)
        except CleanupError as e:
            return RunOutcome(error=e, cleanup_error=e)
        except LhexError as e:
            return RunOutcome(error=e, cleanup_error=cleanup_errors[0] if cleanup_errors else None)
        return RunOutcome(result=result)


__all__ = ["AcquisitionPipeline", "AcquisitionResult", "RunOutcome", "copy_payload"]
