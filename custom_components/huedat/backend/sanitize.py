"""Shared sanitisation helpers for bridge clients."""

from __future__ import annotations

import re

_APP_KEY_HEADER_RE = re.compile(
    r"(?i)(hue-application-key['\"]?\s*[:=]\s*['\"]?)([A-Za-z0-9\-_]+)"
)
_USERNAME_PATH_RE = re.compile(r"(/api/)([A-Za-z0-9\-_]{16,})")
_IPV4_RE = re.compile(r"\b(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})\b")


def redact_text(value: str | None) -> str:
    """Return ``value`` with application keys and bridge addresses removed."""

    if not value:
        return ""
    text = str(value)
    if not text:
        return ""
    redacted = _APP_KEY_HEADER_RE.sub(lambda match: f"{match.group(1)}***", text)
    redacted = _USERNAME_PATH_RE.sub(lambda match: f"{match.group(1)}***", redacted)
    return _IPV4_RE.sub(lambda match: f"{match.group(1)}.***.***.{match.group(4)}", redacted)


def redact_token_fragment(value: str | None) -> str:
    """Return a shortened representation of a token-like string."""

    if value is None:
        return ""
    trimmed = str(value).strip()
    if not trimmed:
        return ""
    if len(trimmed) <= 4:
        return "***"
    if len(trimmed) <= 8:
        return f"{trimmed[:2]}***{trimmed[-2:]}"
    return f"{trimmed[:4]}...{trimmed[-4:]}"


def mask_identifier(value: str | None) -> str:
    """Return a masked identifier suitable for log output."""

    if value is None:
        return ""
    trimmed = str(value).strip()
    if not trimmed:
        return ""
    if len(trimmed) <= 4:
        return "***"
    if len(trimmed) <= 8:
        return f"{trimmed[:2]}...{trimmed[-2:]}"
    prefix = trimmed[:6]
    suffix = trimmed[-4:]
    return f"{prefix}...{suffix}"


__all__ = [
    "mask_identifier",
    "redact_text",
    "redact_token_fragment",
]
