"""Structured logging configuration for Pagesmith.

JSON lines in production, readable text in development. Two context
variables tag every record emitted while they are set:

- ``request_id_var``: set per webhook delivery by the request context
  middleware. Background runs scheduled by that delivery inherit it.
- ``repository_var``: set by the generation runner for the duration of a run,
  so section and refinement logs say which repository they belong to.
"""

import contextvars
import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Optional

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
repository_var: contextvars.ContextVar[str] = contextvars.ContextVar("repository", default="")


def _context_fields() -> dict[str, str]:
    fields = {}
    rid = request_id_var.get()
    if rid:
        fields["request_id"] = rid
    repo = repository_var.get()
    if repo:
        fields["repository"] = repo
    return fields


class _JsonFormatter(logging.Formatter):
    """One JSON object per record.

    ``extra`` fields are merged into the top level, so
    ``logger.info("Site published", extra={"url": url})`` yields
    ``{"message": "Site published", "url": ...}``.
    """

    _RESERVED = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys())

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context_fields(),
        }
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in self._RESERVED and key not in payload
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class _TextFormatter(logging.Formatter):
    """Human-readable lines, suffixed with the request and repository when known."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context_fields()
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        return line


# ---------------------------------------------------------------------------
# Secret redaction: provider keys and GitHub tokens never reach the output
# ---------------------------------------------------------------------------

_SECRET_PATTERNS = [
    re.compile(r'\b(sk-[a-zA-Z0-9_\-]{20,})\b'),         # OpenAI / Anthropic keys
    re.compile(r'\b(gh[pousr]_[a-zA-Z0-9]{20,})\b'),     # GitHub tokens
    re.compile(r'\b(github_pat_[a-zA-Z0-9_]{20,})\b'),   # GitHub fine-grained tokens
    re.compile(r'\b(AIza[a-zA-Z0-9_\-]{20,})\b'),        # Google API keys
    re.compile(r'(?i)(bearer\s+)[a-zA-Z0-9._\-]{20,}'),
    re.compile(
        r'(?i)((?:api_key|api_base|secret|password|token|authorization)[=:]\s*)[^\s,\'"]{8,}'
    ),
]

_REDACTED = "***REDACTED***"


def redact(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(_replace_secret, text)
    return text


def _replace_secret(match: re.Match) -> str:
    """Keep a ``key=`` / ``Bearer `` prefix group, drop the secret itself."""
    prefix = match.group(1) if match.lastindex else ""
    if prefix and prefix[-1] in "=: \t":
        return prefix + _REDACTED
    return _REDACTED


class _SecretFilter(logging.Filter):
    """Redact secrets from the rendered message and any exception text.

    Provider and HTTP errors are often logged as ``%s`` arguments, so the
    message is rendered with its args before redaction.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = ()
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = redact(record.exc_text)
        return True


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure application-wide logging.

    Args:
        log_level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL. Defaults to INFO.
        log_format: ``"json"`` for structured output, ``"text"`` for human-readable.
                    Defaults to ``"json"``.
    """
    level = (log_level or "INFO").upper()
    fmt = (log_format or "json").lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_SecretFilter())
    handler.setFormatter(_JsonFormatter() if fmt == "json" else _TextFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Per-request client logs duplicate our own access and retry logs.
    for noisy in ("uvicorn.access", "httpx", "LiteLLM"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Logging configured", extra={"level": level, "format": fmt})
