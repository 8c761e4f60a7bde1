#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex_downloader.py — package downloader for lhex

Features:
 - streaming download with requests
 - atomic downloads (.part renamed on success, removed on failure)
 - progress bar with tqdm
 - no retries: any failure is a NetworkError
"""

from __future__ import annotations
import shutil
from pathlib import Path
from typing import Optional

import requests
from tqdm import tqdm

from lhex.modules.lhex_errors import NetworkError
from lhex.modules.lhex_logger import get_logger, log_event, perf_timer

LOG = get_logger("downloader")

DEFAULT_TIMEOUT = 60
DEFAULT_CHUNK = 1024 * 64


def _atomic_move(src: Path, dest: Path):
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        src.replace(dest)
    except OSError:
        # cross-device: copy then unlink
        shutil.copy2(src, dest)
        src.unlink()


class Downloader:
    def __init__(self, session: Optional[requests.Session] = None, timeout: int = DEFAULT_TIMEOUT,
                 chunk_size: int = DEFAULT_CHUNK, progress: bool = True):
        self.session = session or requests.Session()
        self.timeout = int(timeout)
        self.chunk_size = int(chunk_size)
        self.progress = progress

    @classmethod
    def from_config(cls, cfg, session: Optional[requests.Session] = None) -> "Downloader":
        d = cfg.section("download")
        return cls(session=session,
                   timeout=d.get("timeout", DEFAULT_TIMEOUT),
                   chunk_size=d.get("chunk_size", DEFAULT_CHUNK),
                   progress=bool(d.get("progress", True)))

    @perf_timer("downloader", "fetch")
    def fetch(self, url: str, dest: Path) -> Path:
        """Download `url` to `dest`. Raises NetworkError on transport failure, non-2xx or empty body."""
        dest = Path(dest)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise NetworkError(f"cannot create download directory {dest.parent}: {e}") from e
        part = dest.with_name(dest.name + ".part")
        written = 0
        LOG.debug("fetch: %s -> %s", url, dest)
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as r:
                if not r.ok:
                    raise NetworkError(f"server returned {r.status_code} for {url}")
                total = int(r.headers.get("Content-Length") or 0)
                pbar = tqdm(total=total or None, unit="B", unit_scale=True, desc=dest.name) if self.progress else None
                try:
                    with open(part, "wb") as f:
                        for chunk in r.iter_content(chunk_size=self.chunk_size):
                            if not chunk:
                                continue
                            f.write(chunk)
                            written += len(chunk)
                            if pbar:
                                pbar.update(len(chunk))
                finally:
                    if pbar:
                        pbar.close()
            if written == 0:
                raise NetworkError(f"server returned no body for {url}")
            _atomic_move(part, dest)
        except requests.RequestException as e:
            part.unlink(missing_ok=True)
            raise NetworkError(f"failed to fetch {url}: {e}") from e
        except OSError as e:
            part.unlink(missing_ok=True)
            raise NetworkError(f"cannot write to {dest}: {e}") from e
        except NetworkError:
            part.unlink(missing_ok=True)
            raise
        log_event("downloader", "download", f"fetched {url} ({written} bytes)", extra={"path": str(dest)})
        return dest


__all__ = ["Downloader"]
