"""Shared pytest fixtures for the lhex suite."""

from __future__ import annotations

import os

import pytest

from fakes import FakeRunner
from lhex.modules import lhex_config, lhex_logger


@pytest.fixture(autouse=True)
def isolated_lhex(tmp_path, monkeypatch):
    """Keep config files, env overrides and log sessions inside tmp_path."""
    for key in list(os.environ):
        if key.startswith("LHEX_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr(lhex_config, "DEFAULT_SYS_CONFIG", tmp_path / "etc" / "config.toml")
    monkeypatch.setattr(lhex_config, "DEFAULT_USER_CONFIG", tmp_path / "home" / "config.toml")
    monkeypatch.setenv("LHEX_PATHS__LOG_DIR", str(tmp_path / "logs"))
    lhex_config.reset_config_manager()
    lhex_logger.reset_logging()
    yield
    lhex_logger.reset_logging()
    lhex_config.reset_config_manager()


@pytest.fixture
def fake_runner():
    return FakeRunner()
