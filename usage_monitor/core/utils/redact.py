from __future__ import annotations

import re

_SESSION_COOKIE_PATTERN = re.compile(r"sessionKey=[^;\s]+", re.IGNORECASE)
_TOKEN_PATTERN = re.compile(r"(sk-ant-(?:sid|oat|api)\d{2}-)[A-Za-z0-9_-]+")


def redact_secrets(message: str) -> str:
    redacted = _SESSION_COOKIE_PATTERN.sub("sessionKey=REDACTED", message)
    return _TOKEN_PATTERN.sub(r"\1REDACTED", redacted)
