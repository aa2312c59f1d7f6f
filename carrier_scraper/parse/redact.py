"""Redaction module to mask secrets in error messages and logs."""
import re
from typing import Any, Dict

REDACTED = "[REDACTED]"

_PATTERNS = [
    # Provider CDP endpoints carry the API token as a query parameter
    (re.compile(r'([?&](?:token|access_token|api_key|apikey)=)[^&\s"\']+', re.IGNORECASE), rf"\1{REDACTED}"),
    (re.compile(r'(Authorization["\']?\s*[:=]\s*["\']?Bearer\s+)[^\s"\']+', re.IGNORECASE), rf"\1{REDACTED}"),
    (re.compile(r'(Bearer\s+)[A-Za-z0-9\-_\.=]{16,}'), rf"\1{REDACTED}"),
    (re.compile(r'("?(?:password|service_role|apikey)"?\s*[:=]\s*)"[^"]*"', re.IGNORECASE), rf'\1"{REDACTED}"'),
    # US social security numbers
    (re.compile(r'\b\d{3}-\d{2}-\d{4}\b'), REDACTED),
]

_SECRET_KEYS = {"token", "password", "api_key", "apikey", "service_role", "authorization", "ssn"}


def redact_string(text: str) -> str:
    """Redact secrets from a string."""
    if not text:
        return text
    result = text
    for pattern, replacement in _PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def redact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively redact secrets from a dictionary."""
    if not isinstance(data, dict):
        return data

    redacted = {}
    for key, value in data.items():
        if key.lower() in _SECRET_KEYS:
            redacted[key] = REDACTED
        else:
            redacted[key] = redact_json(value)
    return redacted


def redact_json(data: Any) -> Any:
    """Redact secrets from JSON-serializable data."""
    if isinstance(data, dict):
        return redact_dict(data)
    elif isinstance(data, list):
        return [redact_json(item) for item in data]
    elif isinstance(data, str):
        return redact_string(data)
    else:
        return data
