"""Shared async HTTP helpers used by the registry handle.

Encapsulates session construction, DEBUG traces and status handling so the
registry modules avoid duplicating them. Transport errors propagate as
``aiohttp.ClientError``; callers translate them into their own error types.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

HEADERS_PACKUMENT = {
    "Accept": "application/json",
}


def build_headers(token: Optional[str] = None, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Default request headers plus optional bearer auth."""
    headers = {"User-Agent": Constants.USER_AGENT}
    if extra:
        headers.update(extra)
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def create_session(timeout: Optional[float] = None) -> aiohttp.ClientSession:
    """Create a client session; ``timeout=None`` disables the total timeout."""
    return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout))


async def get_json(
    session: aiohttp.ClientSession,
    url: str,
    *,
    context: str,
    headers: Optional[Dict[str, str]] = None,
) -> Any:
    """GET ``url`` and decode the JSON body.

    Raises:
        aiohttp.ClientResponseError: on non-2xx responses.
        aiohttp.ClientError: on transport failures.
        ValueError: when the body is not JSON.
    """
    safe_target = safe_url(url)
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action="GET",
                    target=safe_target,
                    context=context,
                ),
            )
        async with session.get(url, headers=headers) as res:
            if res.status >= 400:
                logger.warning(
                    "HTTP non-2xx received",
                    extra=extra_context(
                        event="http_response",
                        component="http_client",
                        outcome="error_status",
                        status_code=res.status,
                        target=safe_target,
                        context=context,
                    ),
                )
            res.raise_for_status()
            data = await res.json(content_type=None)
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response ok",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success",
                    status_code=res.status,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context,
                ),
            )
    return data


@asynccontextmanager
async def open_stream(
    session: aiohttp.ClientSession,
    url: str,
    *,
    context: str,
    headers: Optional[Dict[str, str]] = None,
    chunk_size: Optional[int] = None,
) -> AsyncIterator[AsyncIterator[bytes]]:
    """Open a streaming GET and yield an async iterator over body chunks."""
    size = chunk_size or Constants.CHUNK_SIZE
    safe_target = safe_url(url)
    if is_debug_enabled(logger):
        logger.debug(
            "HTTP stream open",
            extra=extra_context(
                event="http_request",
                component="http_client",
                action="GET",
                target=safe_target,
                context=context,
            ),
        )
    async with session.get(url, headers=headers) as res:
        res.raise_for_status()
        yield res.content.iter_chunked(size)
