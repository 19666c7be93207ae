from __future__ import annotations

from dataclasses import dataclass

from usage_monitor.core.auth.credentials import (
    CliCredentialsProvider,
    CredentialProvider,
    SessionKeyProvider,
    StaticCredentialProvider,
)
from usage_monitor.core.clients.base import UsageSourceClient
from usage_monitor.core.clients.claude_cli import ClaudeCliUsageClient
from usage_monitor.core.clients.claude_oauth import ClaudeOAuthUsageClient
from usage_monitor.core.clients.claude_web import ClaudeWebUsageClient
from usage_monitor.core.config.settings import Settings


@dataclass(frozen=True, slots=True)
class UsageSource:
    name: str
    client: UsageSourceClient
    credentials: CredentialProvider


def build_usage_source(settings: Settings) -> UsageSource:
    if settings.source == "oauth":
        return UsageSource(
            name="oauth",
            client=ClaudeOAuthUsageClient(
                base_url=settings.oauth_base_url,
                beta=settings.oauth_beta,
                timeout_seconds=settings.request_timeout_seconds,
                max_retries=settings.request_max_retries,
            ),
            credentials=CliCredentialsProvider(credentials_file=settings.oauth_credentials_file),
        )
    if settings.source == "cli":
        return UsageSource(
            name="cli",
            client=ClaudeCliUsageClient(
                command=settings.cli_command,
                args=settings.cli_args,
                timeout_seconds=settings.request_timeout_seconds,
            ),
            credentials=StaticCredentialProvider(),
        )
    return UsageSource(
        name="web",
        client=ClaudeWebUsageClient(
            base_url=settings.web_base_url,
            timeout_seconds=settings.request_timeout_seconds,
            max_retries=settings.request_max_retries,
        ),
        credentials=SessionKeyProvider(key_file=settings.session_key_file, override=settings.session_key),
    )
