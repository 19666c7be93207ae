from __future__ import annotations

import logging
from dataclasses import dataclass

import aiohttp
from aiohttp_retry import ExponentialRetry, RetryClient

RETRYABLE_STATUS = {500, 502, 503, 504}
RETRY_START_TIMEOUT = 0.5
RETRY_MAX_TIMEOUT = 2.0

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HttpClient:
    session: aiohttp.ClientSession
    retry_client: RetryClient


_http_client: HttpClient | None = None


async def init_http_client() -> HttpClient:
    global _http_client
    if _http_client is not None and not _http_client.session.closed:
        return _http_client
    session = aiohttp.ClientSession()
    retry_client = RetryClient(client_session=session, raise_for_status=False)
    _http_client = HttpClient(session=session, retry_client=retry_client)
    logger.debug("HTTP client initialized")
    return _http_client


async def close_http_client() -> None:
    global _http_client
    client = _http_client
    _http_client = None
    if client is None:
        return
    await client.retry_client.close()
    if not client.session.closed:
        await client.session.close()


def get_http_client() -> HttpClient:
    if _http_client is None:
        raise RuntimeError("HTTP client is not initialized; call init_http_client() first")
    return _http_client


def retry_options(attempts: int) -> ExponentialRetry:
    # 401/403/429 carry meaning for the poll controller and are never retried here.
    return ExponentialRetry(
        attempts=max(1, attempts),
        start_timeout=RETRY_START_TIMEOUT,
        max_timeout=RETRY_MAX_TIMEOUT,
        factor=2.0,
        statuses=RETRYABLE_STATUS,
        exceptions={aiohttp.ClientConnectionError},
        retry_all_server_errors=False,
    )
