from __future__ import annotations

import argparse

import pytest

from lhex.modules import lhex_config
from lhex.modules.lhex_config import ConfigManager, get_config_manager
from lhex.modules.lhex_errors import ConfigError


def test_defaults_without_files():
    cfg = ConfigManager(environ={})
    assert cfg.loaded_from == []
    assert cfg.get("checksum", "algorithm") == "sha1"
    assert cfg.get("tools", "escalate") == "sudo"
    assert cfg.get("package", "release_channel") == "Nightly"
    assert cfg.get("resolver", "ring") == "Retail"
    assert cfg.get_work_dir() is None


def test_layering_system_then_user(tmp_path):
    sys_cfg = tmp_path / "etc" / "config.toml"
    user_cfg = tmp_path / "home" / "config.toml"
    sys_cfg.parent.mkdir()
    user_cfg.parent.mkdir()
    sys_cfg.write_text('[tools]\nescalate = "doas"\narchiver = "bsdtar3"\n')
    user_cfg.write_text('[tools]\narchiver = "bsdtar-static"\n')

    cfg = ConfigManager(environ={})

    assert cfg.loaded_from == [sys_cfg, user_cfg]
    assert cfg.get("tools", "escalate") == "doas"
    assert cfg.get("tools", "archiver") == "bsdtar-static"
    # untouched keys in the same section survive the merge
    assert cfg.get("tools", "mountpoint") == "mountpoint"


def test_broken_system_file_is_skipped(tmp_path):
    sys_cfg = tmp_path / "etc" / "config.toml"
    sys_cfg.parent.mkdir()
    sys_cfg.write_text("[tools\nescalate=")

    cfg = ConfigManager(environ={})
    assert cfg.loaded_from == []
    assert cfg.get("tools", "escalate") == "sudo"


def test_missing_extra_file_is_an_error(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        ConfigManager(extra_config=tmp_path / "nope.toml", environ={})


def test_unparsable_extra_file_is_an_error(tmp_path):
    bad = tmp_path / "bad.toml"
    bad.write_text("= nope")
    with pytest.raises(ConfigError) as exc:
        ConfigManager(extra_config=bad, environ={})
    assert exc.value.stage == "config"


def test_env_overrides_follow_default_types():
    cfg = ConfigManager(environ={
        "LHEX_TOOLS__ESCALATE": "doas",
        "LHEX_COPY__MAX_WORKERS": "8",
        "LHEX_DOWNLOAD__PROGRESS": "no",
        "LHEX_NOSECTION": "ignored",
        "OTHER_TOOLS__ESCALATE": "ignored",
    })
    assert cfg.get("tools", "escalate") == "doas"
    assert cfg.get("copy", "max_workers") == 8
    assert cfg.get("download", "progress") is False
    assert "nosection" not in cfg.config


def test_env_bad_integer():
    with pytest.raises(ConfigError, match="integer"):
        ConfigManager(environ={"LHEX_DOWNLOAD__TIMEOUT": "soon"})


def test_cli_overrides():
    cfg = ConfigManager(environ={})
    cfg.apply_cli_overrides(argparse.Namespace(log_level="debug", no_progress=True))
    assert cfg.get("logging", "level") == "DEBUG"
    assert cfg.get("download", "progress") is False


def test_get_and_section_helpers():
    cfg = ConfigManager(environ={})
    assert cfg.get("nope", "missing", default=42) == 42
    section = cfg.section("mount")
    section["chmod_mode"] = "700"
    assert cfg.get("mount", "chmod_mode") == "777"
    assert set(cfg.summary()) >= {"loaded_from", "log_dir", "checksum_algorithm"}


def test_shared_manager_is_cached(tmp_path):
    a = get_config_manager()
    assert get_config_manager() is a
    assert get_config_manager(force_reload=True) is not a
    assert lhex_config.load_config() is get_config_manager().config
    assert get_config_manager().get_log_dir() == tmp_path / "logs"
