"""Secret redaction for log output and error messages.

``redact_secrets(msg)`` strips Gemini keys and credential-looking
fragments from free text, ``sanitize_url(url)`` masks key/token query
parameters, and ``LogRedactionFilter`` applies the former to every log
record passing through a handler.

Usage::

    from georisk.log_redaction import apply_global_log_redaction
    apply_global_log_redaction()  # call once at startup, after basicConfig
"""
from __future__ import annotations

import logging
import re

# (name, compiled regex)
_SENSITIVE_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    # Google API keys (Gemini)
    ("google_key", re.compile(r"AIza[0-9A-Za-z_\-]{35}")),
    # x-goog-api-key header echoes
    (
        "goog_header",
        re.compile(r"x-goog-api-key\s*[:=]\s*[\"']?[^\s'\"]+[\"']?", re.IGNORECASE),
    ),
    # key=value / key: value credentials
    (
        "api_token",
        re.compile(
            r"(?:api[_-]?key|token|secret|password)\s*[:=]\s*[\"']?([^\s'\"]+)[\"']?",
            re.IGNORECASE,
        ),
    ),
    # Bearer credentials; short words such as "Bearer bonds" are left alone
    ("bearer_token", re.compile(r"\bBearer\s+[A-Za-z0-9._~+/\-]{8,}=*")),
    # Authorization: ... headers; a separator is required
    (
        "auth_header",
        re.compile(r"(?:Authorization|Bearer|Token)\s*[:=]\s*\S+", re.IGNORECASE),
    ),
]

_URL_KEY_RE = re.compile(r"(apikey|api_key|token|key)=[^&\s]+", re.IGNORECASE)

_REPLACEMENT = "***REDACTED***"


def redact_secrets(msg: str, replacement: str = _REPLACEMENT) -> str:
    """Return *msg* with all recognised secret patterns replaced."""
    if not msg:
        return msg
    result = msg
    for _name, pattern in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def sanitize_url(url: str) -> str:
    """Mask key/token query parameters, keeping the parameter names."""
    return _URL_KEY_RE.sub(r"\1=***", url)


class LogRedactionFilter(logging.Filter):
    """Logging filter that redacts the message and its string arguments.

    Attach to a handler (not a logger) so records propagated from
    child loggers are filtered too::

        handler.addFilter(LogRedactionFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if record.msg and isinstance(record.msg, str):
            record.msg = redact_secrets(record.msg)
        if isinstance(record.args, dict):
            record.args = {
                k: redact_secrets(v) if isinstance(v, str) else v
                for k, v in record.args.items()
            }
        elif isinstance(record.args, tuple):
            record.args = tuple(
                redact_secrets(v) if isinstance(v, str) else v
                for v in record.args
            )
        return True


def apply_global_log_redaction() -> None:
    """Attach :class:`LogRedactionFilter` to the **root** logger's handlers."""
    filt = LogRedactionFilter()
    for handler in logging.getLogger().handlers:
        handler.addFilter(filt)
