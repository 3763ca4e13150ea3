from __future__ import annotations

import logging
from pathlib import Path

import pytest

from src.config_loader import ConfigError, fresh_app_config, load_config


def _write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "filter-preview.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_match_export_and_preview_settings() -> None:
    cfg = fresh_app_config()
    assert cfg.preview.debounce_ms == 100
    assert cfg.render.binary == "ffmpeg"
    assert cfg.render.kill_superseded is False
    assert cfg.export.crf == 16
    assert cfg.export.video_codec == "libx264"
    assert cfg.export.profile == "baseline"
    assert cfg.export.suffix == "-encoded.mp4"
    assert cfg.cache.root == ""


def test_empty_file_loads_defaults(tmp_path: Path) -> None:
    cfg = load_config(str(_write_config(tmp_path, "")))
    assert cfg == fresh_app_config()


def test_sections_override_defaults_with_coercion(tmp_path: Path) -> None:
    path = _write_config(
        tmp_path,
        """
[preview]
debounce_ms = "250"

[render]
binary = "  /opt/ffmpeg/bin/ffmpeg "
timeout_seconds = 30
kill_superseded = 1

[export]
crf = 20.0
x264opts = ""

[cache]
keep_on_exit = "true"
""",
    )
    cfg = load_config(str(path))
    assert cfg.preview.debounce_ms == 250
    assert cfg.render.binary == "/opt/ffmpeg/bin/ffmpeg"
    assert cfg.render.timeout_seconds == 30.0
    assert cfg.render.kill_superseded is True
    assert cfg.export.crf == 20
    assert cfg.export.x264opts == ""
    assert cfg.cache.keep_on_exit is True


def test_unknown_section_is_ignored_with_warning(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = _write_config(tmp_path, "[slowpics]\nauto_upload = true\n")
    with caplog.at_level(logging.WARNING, logger="src.config_loader"):
        cfg = load_config(str(path))
    assert cfg == fresh_app_config()
    assert "Ignoring unknown configuration section [slowpics]" in caplog.text


def test_cache_root_expands_user(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = load_config(str(_write_config(tmp_path, '[cache]\nroot = "~/frames"\n')))
    assert cfg.cache.root == str(tmp_path / "frames")


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("[preview]\ndebounce_ms = -1\n", "preview.debounce_ms must be >= 0"),
        ("[preview]\ndebounce_ms = true\n", "preview.debounce_ms must be an integer"),
        ('[render]\nbinary = "  "\n', "render.binary must be a non-empty string"),
        ("[render]\ntimeout_seconds = -2\n", "render.timeout_seconds must be >= 0"),
        ("[render]\ntimeout_seconds = true\n", "render.timeout_seconds must be a number"),
        ('[render]\ntimeout_seconds = "soon"\n', "render.timeout_seconds must be a number"),
        ("[render]\ntimeout_seconds = inf\n", "render.timeout_seconds must be a finite number"),
        ("[render]\ncapture_quality = 1\n", "render.capture_quality must be between 2 and 31"),
        ('[render]\nkill_superseded = "maybe"\n', "render.kill_superseded must be a boolean"),
        ("[export]\ncrf = 52\n", "export.crf must be between 0 and 51"),
        ("[export]\nthreads = -1\n", "export.threads must be >= 0"),
        ('[export]\nsuffix = "/out.mp4"\n', "export.suffix may not contain path separators"),
        ("[export]\nbitrate = 5\n", "Invalid keys in [export]"),
        ("preview = 3\n", "[preview] must be a table"),
    ],
)
def test_invalid_values_raise_config_error(tmp_path: Path, text: str, message: str) -> None:
    with pytest.raises(ConfigError) as excinfo:
        load_config(str(_write_config(tmp_path, text)))
    assert message in str(excinfo.value)


def test_cache_root_pointing_at_file_is_rejected(tmp_path: Path) -> None:
    target = tmp_path / "not-a-dir"
    target.write_text("x", encoding="utf-8")
    path = _write_config(tmp_path, f'[cache]\nroot = "{target.as_posix()}"\n')
    with pytest.raises(ConfigError, match="cache.root must point to a directory"):
        load_config(str(path))


def test_malformed_toml_raises_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Failed to parse TOML"):
        load_config(str(_write_config(tmp_path, "[preview\n")))


def test_non_utf8_file_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "latin1.toml"
    path.write_bytes('[render]\nbinary = "ff\xe9"\n'.encode("latin-1"))
    with pytest.raises(ConfigError, match="UTF-8"):
        load_config(str(path))


def test_missing_file_raises_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Unable to read configuration file"):
        load_config(str(tmp_path / "absent.toml"))
