#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
lhex_config.py — Config loader for lhex

Features:
 - hierarchical config load (defaults, system file, user file, --config file, env)
 - TOML files parsed with tomllib
 - env overrides: LHEX_<SECTION>__<KEY>=value (e.g. LHEX_TOOLS__ESCALATE=doas)
 - typed helpers for the values the pipeline reads
"""

from __future__ import annotations
import copy
import os
import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

from lhex.modules.lhex_errors import ConfigError

# logs through the "lhex" hierarchy; handlers are attached by lhex_logger
log = logging.getLogger("lhex.config")

DEFAULT_SYS_CONFIG = Path("/etc/lhex/config.toml")
DEFAULT_USER_CONFIG = Path.home() / ".config" / "lhex" / "config.toml"
DEFAULT_LOGDIR = Path.home() / ".local" / "state" / "lhex" / "logs"
ENV_PREFIX = "LHEX_"

DEFAULT_CONFIG: Dict[str, Any] = {
    "paths": {
        "log_dir": str(DEFAULT_LOGDIR),
        "work_dir": "",          # parent of the temporary workspace; "" = system temp dir
    },
    "resolver": {
        "endpoint": "https://store.rg-adguard.net/api/GetFiles",
        "url_type": "ProductId",
        "product_id": "9P3395VX91NR",
        "ring": "Retail",
        "target_app": "MicrosoftCorporationII.WindowsSubsystemForAndroid",
        "trusted_domain": "microsoft.com",
        "timeout": 30,
    },
    "package": {
        "arch": "x64",
        "release_channel": "Nightly",
        "image_name": "vendor.img",
    },
    "checksum": {
        # upstream listing publishes SHA-1 digests
        "algorithm": "sha1",
    },
    "download": {
        "timeout": 60,
        "chunk_size": 1024 * 64,
        "progress": True,
    },
    "tools": {
        "archiver": "bsdtar",
        "mountpoint": "mountpoint",
        "mount": "mount",
        "umount": "umount",
        "chmod": "chmod",
        "escalate": "sudo",
    },
    "mount": {
        "options": "loop",
        "chmod_mode": "777",
    },
    "copy": {
        "max_workers": 4,
    },
    "logging": {
        "level": "INFO",
        "json_events": True,
        "compress": "gzip",   # gzip or none
        "max_age_days": 30,
    },
}


def _load_toml_file(path: Path) -> Dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


# merge deep util
def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    for k, v in b.items():
        if k in a and isinstance(a[k], dict) and isinstance(v, dict):
            a[k] = _deep_merge(a[k], v)
        else:
            a[k] = v
    return a


def _coerce(value: str, current: Any) -> Any:
    """Env values are strings; follow the type of the default they replace."""
    if isinstance(current, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"expected an integer, got {value!r}")
    return value


class ConfigManager:
    def __init__(self, sys_config: Optional[Path] = None, user_config: Optional[Path] = None,
                 extra_config: Optional[Path] = None, environ: Optional[Dict[str, str]] = None):
        self.sys_config = Path(sys_config) if sys_config else DEFAULT_SYS_CONFIG
        self.user_config = Path(user_config) if user_config else DEFAULT_USER_CONFIG
        self.extra_config = Path(extra_config) if extra_config else None
        self.environ = environ if environ is not None else os.environ
        self.config: Dict[str, Any] = {}
        self.loaded_from: List[Path] = []
        self.load()

    def load(self) -> Dict[str, Any]:
        """
        Load config from:
          1) built-in defaults
          2) system config (/etc/lhex/config.toml)
          3) user config (~/.config/lhex/config.toml)
          4) explicit file passed with --config (must exist and parse)
          5) env overrides (LHEX_SECTION__KEY)
        """
        cfg = copy.deepcopy(DEFAULT_CONFIG)
        self.loaded_from = []

        for path in (self.sys_config, self.user_config):
            try:
                if path.exists():
                    log.debug("loading config: %s", path)
                    cfg = _deep_merge(cfg, _load_toml_file(path) or {})
                    self.loaded_from.append(path)
            except (OSError, tomllib.TOMLDecodeError) as e:
                log.warning("failed to load config %s: %s", path, e)

        if self.extra_config is not None:
            try:
                cfg = _deep_merge(cfg, _load_toml_file(self.extra_config) or {})
            except FileNotFoundError:
                raise ConfigError(f"config file not found: {self.extra_config}")
            except (OSError, tomllib.TOMLDecodeError) as e:
                raise ConfigError(f"cannot load config {self.extra_config}: {e}")
            self.loaded_from.append(self.extra_config)

        for k, v in self.environ.items():
            if not k.startswith(ENV_PREFIX) or "__" not in k:
                continue
            parts = k[len(ENV_PREFIX):].lower().split("__")
            d = cfg
            for p in parts[:-1]:
                if p not in d or not isinstance(d[p], dict):
                    d[p] = {}
                d = d[p]
            d[parts[-1]] = _coerce(v, d.get(parts[-1]))

        self.config = cfg
        log.debug("config loaded (from %s)", [str(p) for p in self.loaded_from] or "defaults")
        return self.config

    def reload(self) -> Dict[str, Any]:
        return self.load()

    def apply_cli_overrides(self, args: Any):
        """args: argparse Namespace; supports --log-level and --no-progress."""
        if not args:
            return
        if getattr(args, "log_level", None):
            self.config.setdefault("logging", {})["level"] = str(args.log_level).upper()
        if getattr(args, "no_progress", False):
            self.config.setdefault("download", {})["progress"] = False

    # helpers
    def get(self, *keys, default=None):
        cfg = self.config
        for k in keys:
            if not isinstance(cfg, dict) or k not in cfg:
                return default
            cfg = cfg[k]
        return cfg

    def section(self, name: str) -> Dict[str, Any]:
        return dict(self.config.get(name, {}))

    def get_log_dir(self) -> Path:
        return Path(self.get("paths", "log_dir", default=str(DEFAULT_LOGDIR))).expanduser()

    def get_work_dir(self) -> Optional[Path]:
        wd = self.get("paths", "work_dir", default="")
        return Path(wd).expanduser() if wd else None

    def summary(self) -> Dict[str, Any]:
        return {
            "loaded_from": [str(p) for p in self.loaded_from],
            "log_dir": str(self.get_log_dir()),
            "work_dir": str(self.get_work_dir() or ""),
            "checksum_algorithm": self.get("checksum", "algorithm"),
            "escalate": self.get("tools", "escalate"),
        }


# single instance convenience
_DEFAULT_MANAGER: Optional[ConfigManager] = None


def get_config_manager(extra_config: Optional[Path] = None, force_reload: bool = False) -> ConfigManager:
    global _DEFAULT_MANAGER
    if _DEFAULT_MANAGER is None or force_reload or extra_config is not None:
        _DEFAULT_MANAGER = ConfigManager(extra_config=extra_config)
    return _DEFAULT_MANAGER


def reset_config_manager():
    global _DEFAULT_MANAGER
    _DEFAULT_MANAGER = None


def load_config() -> Dict[str, Any]:
    return get_config_manager().config


# simple CLI for config inspection
def _cli():
    import argparse
    p = argparse.ArgumentParser(prog="lhex-config", description="lhex configuration inspector")
    p.add_argument("--config", help="extra TOML file to merge")
    p.add_argument("--show", action="store_true", help="Print final merged config as JSON")
    args = p.parse_args()
    mgr = get_config_manager(extra_config=Path(args.config) if args.config else None)
    if args.show:
        print(json.dumps(mgr.config, indent=2, ensure_ascii=False))
    else:
        print(json.dumps(mgr.summary(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    _cli()
