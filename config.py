import tomllib
import shutil
from pathlib import Path
from typing import Any, Dict
from dotenv import load_dotenv
import os

CONFIG_DIR = Path.home() / ".versecoach"
CONFIG_PATH = CONFIG_DIR / "config.toml"
PROJECT_CONFIG_EXAMPLE = Path(__file__).parent / "config.toml"

DEFAULT_API_URL = "http://127.0.0.1:8787/api"


def load_config() -> Dict[str, Any]:
    """Load config from ~/.versecoach/config.toml, copy example if missing, load .env overrides."""
    load_dotenv()  # Load .env for overrides (e.g., VERSECOACH_API_URL env var)
    if not CONFIG_PATH.exists():
        CONFIG_DIR.mkdir(exist_ok=True)
        shutil.copy(PROJECT_CONFIG_EXAMPLE, CONFIG_PATH)
    with open(CONFIG_PATH, "rb") as f:
        config = tomllib.load(f)

    api_cfg = config.get("api", {})
    config["api"] = {
        "base_url": os.getenv("VERSECOACH_API_URL", api_cfg.get("base_url", DEFAULT_API_URL)).rstrip("/"),
        "timeout": float(os.getenv("VERSECOACH_API_TIMEOUT", api_cfg.get("timeout", 10))),
    }
    sync_cfg = config.get("sync", {})
    config["sync"] = {
        "debounce_ms": int(sync_cfg.get("debounce_ms", 1000)),
        "batch_size": int(sync_cfg.get("batch_size", 10)),
        "points_refresh_ms": int(sync_cfg.get("points_refresh_ms", 5000)),
        "pending_poll_seconds": int(sync_cfg.get("pending_poll_seconds", 5)),
        "retry_after_failure_seconds": float(sync_cfg.get("retry_after_failure_seconds", 0)),
    }
    mastery_cfg = config.get("mastery", {})
    config["mastery"] = {
        "cache_seconds": int(mastery_cfg.get("cache_seconds", 300)),
        "min_attempts": int(mastery_cfg.get("min_attempts", 5)),
        "min_accuracy": float(mastery_cfg.get("min_accuracy", 0.95)),
        "required_perfect": int(mastery_cfg.get("required_perfect", 3)),
        "min_perfect_spacing_hours": float(mastery_cfg.get("min_perfect_spacing_hours", 24)),
    }
    session_cfg = config.get("session", {})
    config["session"] = {
        "timeout_minutes": int(os.getenv(
            "VERSECOACH_SESSION_TIMEOUT_MINUTES",
            session_cfg.get("timeout_minutes", 180),
        )),
        "warning_seconds": int(session_cfg.get("warning_seconds", 120)),
        "tick_seconds": float(session_cfg.get("tick_seconds", 1)),
    }
    achievements_cfg = config.get("achievements", {})
    config["achievements"] = {
        "min_streak": int(achievements_cfg.get("min_streak", 50)),
        "max_verse_words": int(achievements_cfg.get("max_verse_words", 10)),
    }
    logging_cfg = config.get("logging", {})
    config["logging"] = {
        "level": os.getenv("VERSECOACH_LOG_LEVEL", logging_cfg.get("level", "INFO")).upper(),
        "mask_sensitive_data": bool(logging_cfg.get("mask_sensitive_data", True)),
    }
    return config
