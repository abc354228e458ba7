"""Redaction of credentials before anything is logged or written to the ledger."""

from __future__ import annotations

import re
from collections.abc import Iterable

DISCORD_TOKEN_MASK = "***DISCORD_TOKEN_MASKED***"
API_KEY_MASK = "***API_KEY_MASKED***"
SECRET_MASK = "***"

# <base64 user id>.<timestamp>.<hmac>
_DISCORD_TOKEN_RE = re.compile(
    r"[A-Za-z0-9_-]{23,}\.[A-Za-z0-9_-]{6}\.[A-Za-z0-9_-]{27,}"
)
# Long opaque runs look like API keys unless they sit next to a path separator
_OPAQUE_RE = re.compile(r"[A-Za-z0-9]{20,}")
_PATH_CONTEXT = 20


def _mask_opaque(match: re.Match[str]) -> str:
    start = max(0, match.start() - _PATH_CONTEXT)
    context = match.string[start : start + 2 * _PATH_CONTEXT]
    if "/" in context:
        return match.group(0)
    return API_KEY_MASK


def redact_secrets(text: str, secrets: Iterable[str] = ()) -> str:
    """Replace exact secret values only, longest first.

    For text such as channel names, where long alphanumeric runs are
    ordinary words rather than credentials.
    """
    for secret in sorted((s for s in secrets if s), key=len, reverse=True):
        text = text.replace(secret, SECRET_MASK)
    return text


def mask_sensitive_info(text: str, secrets: Iterable[str] = ()) -> str:
    """Mask Discord tokens, API-key-like strings and known secrets in text.

    Args:
        text: Text that may contain credentials
        secrets: Exact secret values to redact wherever they appear

    Returns:
        The text with credentials replaced by mask markers
    """
    if not text:
        return text

    masked = redact_secrets(text, secrets)
    masked = _DISCORD_TOKEN_RE.sub(DISCORD_TOKEN_MASK, masked)
    return _OPAQUE_RE.sub(_mask_opaque, masked)
