#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex_logger.py — logging for lhex

Features:
 - Configurable log level via lhex_config
 - Session-based logging (session-YYYYmmdd-HHMMSS)
 - Console (with colors) + file logging
 - JSON event log per session (gzip-compressed on close)
 - Performance measurement decorator
 - Cleanup of old logs
"""

from __future__ import annotations
import sys
import json
import time
import gzip
import shutil
import logging
import datetime
import atexit
import traceback
from pathlib import Path
from typing import Optional, Dict, Any, Callable
from functools import wraps

from lhex.modules.lhex_config import get_config_manager

ROOT_LOGGER = "lhex"

LEVEL_COLORS = {
    "DEBUG": "\033[36m",   # cyan
    "INFO": "\033[32m",    # green
    "WARNING": "\033[33m", # yellow
    "ERROR": "\033[31m",   # red
    "CRITICAL": "\033[41m" # red bg
}
RESET_COLOR = "\033[0m"


def _colorize(level: str, text: str, enabled: bool) -> str:
    if not enabled:
        return text
    color = LEVEL_COLORS.get(level.upper(), "")
    return f"{color}{text}{RESET_COLOR}" if color else text


class AnsiFormatter(logging.Formatter):
    def __init__(self, fmt: str, stream=None):
        super().__init__(fmt)
        isatty = getattr(stream, "isatty", None)
        self.ansi = bool(isatty and isatty())

    def format(self, record):
        return _colorize(record.levelname, super().format(record), self.ansi)


# -------------------------
# Logger Manager
# -------------------------
class LhexLoggerManager:
    def __init__(self, log_dir: Optional[Path] = None, level: Optional[str] = None):
        mgr = get_config_manager()
        cfg = mgr.section("logging")
        self.log_dir = Path(log_dir) if log_dir else mgr.get_log_dir()
        self.level = getattr(logging, str(level or cfg.get("level", "INFO")).upper(), logging.INFO)
        self.compress = str(cfg.get("compress", "gzip")).lower()
        self.json_events = bool(cfg.get("json_events", True))
        self.max_age_days = int(cfg.get("max_age_days", 30))
        self.session_id: Optional[str] = None
        self.session_dir: Optional[Path] = None
        self.text_log_path: Optional[Path] = None
        self.json_log_path: Optional[Path] = None
        self.handlers: list = []
        self.closed = False
        self._open_session()

    def _open_session(self):
        ts = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%d-%H%M%S")
        self.session_id = f"session-{ts}"
        root = logging.getLogger(ROOT_LOGGER)
        root.setLevel(self.level)
        root.propagate = False

        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(self.level)
        ch.setFormatter(AnsiFormatter("%(asctime)s %(levelname)s [%(name)s] %(message)s", stream=sys.stdout))
        self.handlers.append(ch)

        try:
            self.session_dir = self.log_dir / self.session_id
            self.session_dir.mkdir(parents=True, exist_ok=True)
            self.text_log_path = self.session_dir / f"{self.session_id}.log"
            self.json_log_path = self.session_dir / f"{self.session_id}.json"
            fh = logging.FileHandler(self.text_log_path, encoding="utf-8")
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
            self.handlers.append(fh)
            root.setLevel(logging.DEBUG)
        except OSError as e:
            # console-only session
            print(f"[lhex_logger] cannot open log dir {self.log_dir}: {e}", file=sys.stderr)
            self.session_dir = None
            self.text_log_path = None
            self.json_log_path = None

        for h in self.handlers:
            root.addHandler(h)

    def emit_json(self, record: Dict[str, Any]):
        if not self.json_events or self.json_log_path is None or self.closed:
            return
        try:
            with open(self.json_log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            print(f"[lhex_logger] json write failed: {e}", file=sys.stderr)

    def close_session(self, compress: Optional[str] = None):
        if self.closed:
            return
        self.closed = True
        root = logging.getLogger(ROOT_LOGGER)
        for h in self.handlers:
            root.removeHandler(h)
            h.close()
        self.handlers = []
        compress = (compress or self.compress).lower()
        if compress != "gzip":
            return
        for path in (self.json_log_path, self.text_log_path):
            if not path or not path.exists():
                continue
            try:
                with open(path, "rb") as f_in:
                    with gzip.open(str(path) + ".gz", "wb") as f_out:
                        shutil.copyfileobj(f_in, f_out)
                path.unlink(missing_ok=True)
            except OSError as e:
                # best-effort; do not raise
                print(f"[lhex_logger] compress failed: {e}", file=sys.stderr)

    def cleanup_old_logs(self, max_age_days: Optional[int] = None) -> int:
        """Remove session directories older than max_age_days (best-effort). Returns count removed."""
        max_age_days = max_age_days if max_age_days is not None else self.max_age_days
        cutoff = time.time() - (max_age_days * 86400)
        removed = 0
        if not self.log_dir.exists():
            return 0
        for d in self.log_dir.iterdir():
            if not d.is_dir() or d == self.session_dir:
                continue
            try:
                if d.stat().st_mtime < cutoff:
                    shutil.rmtree(d)
                    removed += 1
            except OSError as e:
                get_logger("logger").warning("failed to remove old log dir %s: %s", d, e)
        return removed


_manager: Optional[LhexLoggerManager] = None


def _get_manager() -> LhexLoggerManager:
    global _manager
    if _manager is None or _manager.closed:
        _manager = LhexLoggerManager()
    return _manager


# -------------------------
# Public API
# -------------------------
def get_logger(name: str) -> logging.Logger:
    """
    Return a logger in the "lhex" hierarchy. Use like:
        log = get_logger("pipeline")
        log.info("Mounting image")
    Handlers are attached once a session is opened (setup_logging or first log_event),
    so this is safe to call at import time.
    """
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(log_dir: Optional[Path] = None, level: Optional[str] = None) -> str:
    """Open a fresh session (closing any previous one). Returns the session id."""
    global _manager
    if _manager is not None:
        _manager.close_session()
    _manager = LhexLoggerManager(log_dir=log_dir, level=level)
    return _manager.session_id


def log_event(component: str, stage: str, message: str, level: str = "info", extra: Optional[Dict[str, Any]] = None):
    """
    High-level event logging (text log + JSON event line).
    component: module name (pipeline/mount/archive...)
    stage: stage name (download/verify/extract/mount/copy/cleanup)
    """
    mgr = _get_manager()
    lvl = getattr(logging, level.upper(), logging.INFO)
    get_logger(component).log(lvl, f"[{stage}] {message}")
    mgr.emit_json({
        "ts": int(time.time()),
        "session": mgr.session_id,
        "component": component,
        "stage": stage,
        "level": level.upper(),
        "message": message,
        "extra": extra or {},
    })


def log_exception(component: str, stage: str, exc: BaseException, level: str = "error", extra: Optional[Dict[str, Any]] = None):
    msg = f"{exc}"
    tb = getattr(exc, "__traceback__", None)
    if tb:
        msg += "\n" + "".join(traceback.format_tb(tb))
    log_event(component, stage, msg, level=level, extra=extra)


def record_perf(name: str, op: str, duration_s: float, meta: Optional[Dict[str, Any]] = None):
    mgr = _get_manager()
    mgr.emit_json({"perf": {
        "ts": int(time.time()),
        "session": mgr.session_id,
        "component": name,
        "operation": op,
        "duration_s": duration_s,
        "meta": meta or {},
    }})


def perf_timer(name: str, op: str):
    """
    Decorator to measure execution time and record_perf automatically.
        @perf_timer("downloader", "fetch")
        def fetch(...): ...
    """
    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.time()
            try:
                return func(*args, **kwargs)
            finally:
                record_perf(name, op, time.time() - start,
                            meta={"args": str(args)[:200], "kwargs": str(kwargs)[:200]})
        return wrapper
    return decorator


def close_session(compress: Optional[str] = None):
    if _manager is not None:
        _manager.close_session(compress=compress)


def cleanup_old_logs(max_age_days: Optional[int] = None) -> int:
    return _get_manager().cleanup_old_logs(max_age_days)


def reset_logging():
    """Close the current session (without compression) and forget it."""
    global _manager
    if _manager is not None:
        _manager.close_session(compress="none")
    _manager = None


def _close_at_exit():
    if _manager is not None:
        _manager.close_session()


atexit.register(_close_at_exit)
