"""Parser for the terminal output of the Claude CLI ``/usage`` command.

The output is a set of cards decorated with ANSI escape sequences. After
stripping them, each card looks like::

    Current session
    ███████▌                     8% used
    Resets 11:59am (America/Sao_Paulo)

and the weekly cards use the labels ``Current week (all models)`` and
``Current week (<Model> only)``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from usage_monitor.core.usage.types import (
    ModelUsage,
    ParsedUsage,
    TextParseErrorKind,
    TextParseFailure,
    TextParseResult,
    TextParseSuccess,
)

SESSION_LABEL = "Current session"
WEEKLY_LABEL = "Current week (all models)"
MODEL_LABELS = (
    ("Current week (Sonnet only)", "Sonnet"),
    ("Current week (Opus only)", "Opus"),
    ("Current week (Haiku only)", "Haiku"),
)
BLOCK_WINDOW_CHARS = 500

REAUTH_MESSAGE = "Claude CLI authentication expired. Please re-authenticate with `claude /login`."
LOAD_FAILURE_MARKER = "Error: Failed to load usage data"

_ANSI_PATTERN = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
_AUTH_MARKERS = ("permission_error", "OAuth token")
_LOAD_FAILURE_PATTERN = re.compile(re.escape(LOAD_FAILURE_MARKER) + r"[:\s]*(.+?)(?:\n|$)")
_PERCENT_PATTERN = re.compile(r"(\d+)%\s*used")
_RESETS_PATTERN = re.compile(r"Resets\s+([^(\n]+(?:\([^)]+\))?)")


@dataclass(frozen=True, slots=True)
class _UsageBlock:
    percent: int
    resets_at: str | None


def strip_ansi(text: str) -> str:
    return _ANSI_PATTERN.sub("", text)


def parse_cli_usage_output(raw_output: str) -> TextParseResult:
    text = strip_ansi(raw_output)

    if any(marker in text for marker in _AUTH_MARKERS):
        return TextParseFailure(kind=TextParseErrorKind.UNAUTHORIZED, message=REAUTH_MESSAGE)

    if LOAD_FAILURE_MARKER in text:
        # Generic load failures share the unauthorized kind with real auth errors.
        match = _LOAD_FAILURE_PATTERN.search(text)
        reason = match.group(1).strip() if match else ""
        return TextParseFailure(
            kind=TextParseErrorKind.UNAUTHORIZED,
            message=reason or "Failed to load usage data from Claude CLI.",
        )

    session = _parse_usage_block(text, SESSION_LABEL)
    if session is None:
        return TextParseFailure(
            kind=TextParseErrorKind.PARSE_ERROR,
            message="Could not parse Claude CLI session usage output.",
        )

    weekly = _parse_usage_block(text, WEEKLY_LABEL)
    if weekly is None:
        return TextParseFailure(
            kind=TextParseErrorKind.PARSE_ERROR,
            message="Could not parse Claude CLI weekly usage output.",
        )

    models: list[ModelUsage] = []
    for label, name in MODEL_LABELS:
        block = _parse_usage_block(text, label)
        if block is None:
            continue
        models.append(ModelUsage(name=name, percent=block.percent, resets_at=block.resets_at))

    return TextParseSuccess(
        data=ParsedUsage(
            session_percent=session.percent,
            session_resets_at=session.resets_at,
            weekly_percent=weekly.percent,
            weekly_resets_at=weekly.resets_at,
            models=tuple(models),
        )
    )


def _parse_usage_block(text: str, label: str) -> _UsageBlock | None:
    start = text.find(label)
    if start == -1:
        return None
    block = text[start : start + BLOCK_WINDOW_CHARS]

    percent_match = _PERCENT_PATTERN.search(block)
    if percent_match is None:
        return None
    try:
        percent = int(percent_match.group(1), 10)
    except ValueError:
        return None

    resets_match = _RESETS_PATTERN.search(block)
    resets_at = resets_match.group(1).strip() if resets_match else None
    return _UsageBlock(percent=percent, resets_at=resets_at or None)
