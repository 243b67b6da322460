"""
Utilities for redacting sensitive data from logs and output.

Push tokens, service-account keys and bearer credentials must never
reach the logs in full.
"""

from __future__ import annotations

import re
from typing import Any

SENSITIVE_PATTERNS = {
    "private_key": r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
    "bearer": r"(bearer\s+)[A-Za-z0-9._~+/=-]{16,}",
    "assertion": r"(assertion=)[A-Za-z0-9._-]+",
}

SENSITIVE_KEYS = {
    "firebase_private_key",
    "private_key",
    "supabase_service_role_key",
    "service_role_key",
    "auth_token",
    "access_token",
    "assertion",
    "apikey",
    "authorization",
    "password",
    "secret",
}


def mask_token(token: str | None, visible: int = 6) -> str:
    """
    Shorten a push token for logging.

    Args:
        token: Provider-issued device token
        visible: Number of trailing characters to keep

    Returns:
        ``...`` followed by the last ``visible`` characters
    """
    if not token:
        return "<empty>"
    return f"...{token[-visible:]}"


def redact_sensitive_data(text: str) -> str:
    """
    Redact sensitive data from string using pattern matching.

    Args:
        text: String potentially containing sensitive data

    Returns:
        String with sensitive patterns replaced with [REDACTED_*] placeholders
    """
    result = text
    for name, pattern in SENSITIVE_PATTERNS.items():
        placeholder = f"[REDACTED_{name.upper()}]"
        result = re.sub(
            pattern,
            lambda m, p=placeholder: (m.group(1) if m.groups() else "") + p,
            result,
            flags=re.DOTALL | re.IGNORECASE,
        )
    return result


def redact_dict(data: dict[str, Any]) -> dict[str, Any]:
    """
    Create a redacted copy of dictionary, hiding sensitive keys.

    Args:
        data: Dictionary potentially containing sensitive values

    Returns:
        New dictionary with sensitive values replaced with [REDACTED]
    """
    redacted: dict[str, Any] = {}
    for key, value in data.items():
        if key.lower() in SENSITIVE_KEYS:
            redacted[key] = "[REDACTED]" if value else value
        elif isinstance(value, dict):
            redacted[key] = redact_dict(value)
        elif isinstance(value, (list, tuple)):
            redacted[key] = [
                redact_dict(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            redacted[key] = value
    return redacted
