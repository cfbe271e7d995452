from pathlib import Path

import config


def _write_config(path: Path, text: str) -> None:
    path.write_text(text, encoding="utf-8")


def _use_config_dir(monkeypatch, config_dir: Path) -> Path:
    config_path = config_dir / "config.toml"
    monkeypatch.setattr(config, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config, "CONFIG_PATH", config_path)
    for name in (
        "VERSECOACH_API_URL",
        "VERSECOACH_API_TIMEOUT",
        "VERSECOACH_SESSION_TIMEOUT_MINUTES",
        "VERSECOACH_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return config_path


def test_load_config_copies_example_on_first_run(tmp_path, monkeypatch):
    config_path = _use_config_dir(monkeypatch, tmp_path / ".versecoach")

    loaded = config.load_config()

    assert config_path.exists()
    assert loaded["api"]["base_url"] == config.DEFAULT_API_URL
    assert loaded["sync"]["debounce_ms"] == 1000
    assert loaded["sync"]["batch_size"] == 10
    assert loaded["mastery"]["min_attempts"] == 5
    assert loaded["session"]["timeout_minutes"] == 180
    assert loaded["achievements"]["min_streak"] == 50


def test_missing_sections_fall_back_to_defaults(tmp_path, monkeypatch):
    config_dir = tmp_path / ".versecoach"
    config_dir.mkdir()
    config_path = _use_config_dir(monkeypatch, config_dir)
    _write_config(config_path, "[sync]\nbatch_size = 4\n")

    loaded = config.load_config()

    assert loaded["sync"]["batch_size"] == 4
    assert loaded["sync"]["points_refresh_ms"] == 5000
    assert loaded["mastery"]["min_accuracy"] == 0.95
    assert loaded["logging"]["level"] == "INFO"


def test_environment_overrides_file_values(tmp_path, monkeypatch):
    config_dir = tmp_path / ".versecoach"
    config_dir.mkdir()
    config_path = _use_config_dir(monkeypatch, config_dir)
    _write_config(config_path, "[api]\nbase_url = \"http://file.example/api\"\n")
    monkeypatch.setenv("VERSECOACH_API_URL", "https://env.example/api/")
    monkeypatch.setenv("VERSECOACH_SESSION_TIMEOUT_MINUTES", "30")
    monkeypatch.setenv("VERSECOACH_LOG_LEVEL", "debug")

    loaded = config.load_config()

    assert loaded["api"]["base_url"] == "https://env.example/api"
    assert loaded["session"]["timeout_minutes"] == 30
    assert loaded["logging"]["level"] == "DEBUG"
