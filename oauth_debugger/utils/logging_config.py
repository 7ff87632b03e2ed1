"""Logging setup shared by the CLI, the relay server and the callback receiver.

Every handler installed here carries a ``SecretRedactingFilter`` so bearer
tokens, PKCE verifiers and client secrets never reach a log line in full.
"""

import logging
import os
import re
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Libraries that log every request at INFO; the flow history already has them
NOISY_LOGGERS = ("httpx", "httpcore", "aiohttp.access")

_SECRET_PATTERNS = (
    re.compile(r"(Bearer\s+)([A-Za-z0-9\-._~+/]+=*)", re.IGNORECASE),
    re.compile(
        r"((?:access_token|refresh_token|client_secret|code_verifier)[\"']?\s*[:=]\s*[\"']?)"
        r"([^\s\"'&,}]+)"
    ),
)


def truncate_secret(value: str | None, keep: int = 20) -> str | None:
    """Shorten a secret for display, keeping only its prefix."""
    if value is None or len(value) <= keep:
        return value
    return f"{value[:keep]}..."


def redact(text: str, keep: int = 8) -> str:
    """Mask token-like values in free text."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: m.group(1) + truncate_secret(m.group(2), keep), text)
    return text


class SecretRedactingFilter(logging.Filter):
    """Rewrites records so secrets appear only as a short prefix."""

    def __init__(self, keep: int = 8):
        super().__init__()
        self.keep = keep

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact(message, self.keep)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    name: str = "oauth_debugger",
    level: str | None = None,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure root logging for a debugger process.

    Args:
        name: Logger to return (typically the package or module name)
        level: Log level name (defaults to LOG_LEVEL env var or INFO)
        log_file: Optional file that also receives every record

    Returns:
        The named logger
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    numeric_level = logging.getLevelName(level_name)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level_name}")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    redacting = SecretRedactingFilter()
    for handler in handlers:
        handler.addFilter(redacting)

    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, handlers=handlers, force=True)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(numeric_level, logging.WARNING))

    return logging.getLogger(name)
