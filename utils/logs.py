from __future__ import annotations

import logging
import re

_BEARER_RE = re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+")
_FIELD_RE = re.compile(r"((?:token|email|password|secret|authorization)['\"]?\s*[:=]\s*['\"]?)[^\s,'\"}]+", re.IGNORECASE)

MASK = "***MASKED***"


def mask_sensitive(text: str) -> str:
    text = _BEARER_RE.sub(rf"\g<1>{MASK}", text)
    return _FIELD_RE.sub(rf"\g<1>{MASK}", text)


class SensitiveDataFilter(logging.Filter):
    """Mask bearer tokens and credential fields before records are emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_sensitive(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def configure_logging(config: dict) -> None:
    logging_cfg = config.get("logging", {})
    level = getattr(logging, logging_cfg.get("level", "INFO"), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if logging_cfg.get("mask_sensitive_data", True):
        for handler in logging.getLogger().handlers:
            if not any(isinstance(f, SensitiveDataFilter) for f in handler.filters):
                handler.addFilter(SensitiveDataFilter())
