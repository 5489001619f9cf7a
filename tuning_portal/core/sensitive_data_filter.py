"""
Sanitizing and redaction helpers for security logging.

Two distinct concerns live here:

* ``sanitize_log_data`` strips characters that allow log injection (line
  breaks, Unicode line/paragraph separators, angle brackets) from every string
  in an event detail payload before it is persisted.
* ``SensitiveDataFilter`` masks secrets (passwords, tokens, keys) before a
  payload is echoed to the operational log.
"""

import re
from typing import Any

_LOG_INJECTION_CHARS = re.compile("[\n\r\u2028\u2029<>]")


def sanitize_log_data(data: Any) -> Any:
    """
    Recursively remove log-injection characters from strings.

    Dict keys and values, list items and tuple items are all sanitized;
    non-string scalars are returned unchanged.

    Args:
        data: Arbitrary JSON-like value

    Returns:
        Sanitized copy of the value
    """
    if isinstance(data, str):
        return _LOG_INJECTION_CHARS.sub("", data)
    if isinstance(data, dict):
        return {
            sanitize_log_data(str(key)): sanitize_log_data(value) for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [sanitize_log_data(item) for item in data]
    return data


class SensitiveDataFilter:
    """Filter for removing sensitive data from operational logs."""

    SENSITIVE_PATTERNS = [
        r"password",
        r"passwd",
        r"secret",
        r"token",
        r"api_key",
        r"apikey",
        r"access_key",
        r"authorization",
        r"credential",
        r"private_key",
        r"cookie",
        r"session_id",
        r"otp",
        r"card_number",
        r"cvv",
    ]

    SENSITIVE_REGEX = re.compile("|".join(SENSITIVE_PATTERNS), re.IGNORECASE)

    # JWTs keep only their header segment
    _JWT_REGEX = re.compile(r"eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+")

    def __init__(self, additional_patterns: list[str] | None = None):
        """
        Initialize the filter with optional additional patterns.

        Args:
            additional_patterns: Extra regex patterns for sensitive key names
        """
        if additional_patterns:
            combined = self.SENSITIVE_PATTERNS + list(additional_patterns)
            self.sensitive_regex = re.compile("|".join(combined), re.IGNORECASE)
        else:
            self.sensitive_regex = self.SENSITIVE_REGEX

    def is_sensitive_key(self, key: str) -> bool:
        """Check if a key name indicates sensitive data."""
        return bool(self.sensitive_regex.search(str(key)))

    def mask_value(self, value: Any) -> str:
        """Mask a sensitive value, keeping only its rough shape."""
        if value is None:
            return "null"
        if isinstance(value, str):
            if len(value) <= 4:
                return "***"
            return f"{value[0]}***{value[-1]}"
        if isinstance(value, (list, tuple)):
            return f"[*** {len(value)} items ***]"
        if isinstance(value, dict):
            return f"{{*** {len(value)} fields ***}}"
        return "***"

    def filter_dict(self, data: dict[str, Any], max_depth: int = 5) -> dict[str, Any]:
        """
        Filter sensitive data from a dictionary.

        Args:
            data: Dictionary to filter
            max_depth: Maximum depth to recurse

        Returns:
            Filtered dictionary with sensitive values masked
        """
        if max_depth <= 0:
            return {"_truncated": "max_depth_reached"}

        filtered: dict[str, Any] = {}
        for key, value in data.items():
            if self.is_sensitive_key(key):
                filtered[key] = self.mask_value(value)
            elif isinstance(value, dict):
                filtered[key] = self.filter_dict(value, max_depth - 1)
            elif isinstance(value, (list, tuple)):
                filtered[key] = [
                    self.filter_dict(item, max_depth - 1) if isinstance(item, dict) else item
                    for item in value
                ]
            elif isinstance(value, str):
                filtered[key] = self._JWT_REGEX.sub(
                    lambda m: f"{m.group().split('.')[0]}.***", value
                )
            else:
                filtered[key] = value
        return filtered


_default_filter = SensitiveDataFilter()


def filter_for_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    """Mask secrets in ``data`` with the default filter."""
    if not data:
        return {}
    return _default_filter.filter_dict(data)
