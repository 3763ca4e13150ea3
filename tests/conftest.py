from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner

from src.config_loader import fresh_app_config
from src.datatypes import AppConfig
from tests.helpers.render_env import FakeRunner, install_which_map


@pytest.fixture
def runner() -> CliRunner:
    """Provide a Click runner configured for CLI smoke tests."""

    return CliRunner()


@pytest.fixture
def which_map(monkeypatch: pytest.MonkeyPatch) -> Callable[[set[str] | None], None]:
    """Return a helper that flags specific CLI tools as missing (others resolved under /usr/bin)."""

    def _apply(missing: set[str] | None = None) -> None:
        install_which_map(monkeypatch, missing=missing)

    return _apply


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Defaults with a short debounce and the cache rooted under tmp_path."""

    cfg = fresh_app_config()
    cfg.preview.debounce_ms = 20
    cfg.cache.root = str(tmp_path / "cache-root")
    return cfg
