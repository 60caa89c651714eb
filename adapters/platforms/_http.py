"""
Minimal JSON-over-HTTPS transport shared by the platform and LLM adapters.

Blocking urllib calls run in a worker thread so the event loop keeps
serving other conversations. Every failure surfaces as TransportError
carrying the HTTP status (None for network errors and timeouts).
"""

import asyncio
import json
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime, timezone
from typing import Callable, Optional

from candor.errors.exceptions import TransportError
from candor.retry import retry_async


DEFAULT_TIMEOUT_SECONDS = 30


def request_json(
    method: str,
    url: str,
    body: Optional[dict] = None,
    headers: Optional[dict] = None,
    form: Optional[dict] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    source: str = "",
) -> dict:
    """Blocking JSON request. `form` sends application/x-www-form-urlencoded."""
    data = None
    req_headers = dict(headers or {})
    if form is not None:
        data = urllib.parse.urlencode(form).encode()
        req_headers.setdefault("Content-Type", "application/x-www-form-urlencoded")
    elif body is not None:
        data = json.dumps(body).encode()
        req_headers.setdefault("Content-Type", "application/json; charset=utf-8")

    req = urllib.request.Request(url, data=data, method=method)
    for key, value in req_headers.items():
        req.add_header(key, value)

    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode()
    except urllib.error.HTTPError as e:
        detail = e.read().decode(errors="replace")[:500]
        raise TransportError(
            f"{source or url} returned HTTP {e.code}: {detail}",
            status=e.code,
            source=source,
        ) from e
    except (urllib.error.URLError, TimeoutError, ConnectionError) as e:
        raise TransportError(f"{source or url} unreachable: {e}", source=source) from e

    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise TransportError(f"{source or url} returned non-JSON body", source=source) from e


async def call_json(
    method: str,
    url: str,
    check: Optional[Callable[[dict], None]] = None,
    **kwargs,
) -> dict:
    """
    request_json in a worker thread, retried on transient failures.
    `check` inspects a 200 body and raises for in-band API errors, so
    those get the same retry treatment as HTTP failures.
    """

    async def attempt() -> dict:
        result = await asyncio.to_thread(request_json, method, url, **kwargs)
        if check is not None:
            check(result)
        return result

    return await retry_async(attempt)


def parse_timestamp(value: Optional[str]) -> datetime:
    """RFC 3339 timestamp from a platform payload; now() when absent or unparseable."""
    if not value:
        return datetime.now(timezone.utc)
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.now(timezone.utc)
