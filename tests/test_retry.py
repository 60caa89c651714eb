"""
Retry executor tests. Sleep and jitter are injected so nothing waits.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from candor.errors.exceptions import TransportError
from candor.retry import error_status, is_transient, retry_async


class Flaky:
    """Fails with the given errors in order, then returns "ok"."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def _no_jitter(low, high):
    return 1.0


async def test_two_transient_failures_then_success():
    op = Flaky(TransportError("boom", status=503), TransportError("timeout"))
    sleep = Sleeps()

    result = await retry_async(op, attempts=3, sleep=sleep, jitter=_no_jitter)

    assert result == "ok"
    assert op.calls == 3
    assert sleep.delays == [0.5, 1.0]


async def test_client_error_not_retried():
    op = Flaky(TransportError("Unauthorized", status=401))
    sleep = Sleeps()

    with pytest.raises(TransportError):
        await retry_async(op, attempts=3, sleep=sleep)

    assert op.calls == 1
    assert sleep.delays == []


async def test_auth_message_not_retried_without_status():
    op = Flaky(RuntimeError("invalid api key"))
    with pytest.raises(RuntimeError):
        await retry_async(op, sleep=Sleeps())
    assert op.calls == 1


async def test_exhausted_attempts_reraise_last_error():
    last = TransportError("third", status=502)
    op = Flaky(TransportError("first", status=500), TransportError("second", status=500), last)

    with pytest.raises(TransportError) as exc_info:
        await retry_async(op, attempts=3, sleep=Sleeps(), jitter=_no_jitter)

    assert exc_info.value is last
    assert op.calls == 3


async def test_single_attempt_never_sleeps():
    op = Flaky(TransportError("down", status=503))
    sleep = Sleeps()
    with pytest.raises(TransportError):
        await retry_async(op, attempts=1, sleep=sleep)
    assert sleep.delays == []


async def test_attempts_must_be_positive():
    with pytest.raises(ValueError):
        await retry_async(Flaky(), attempts=0)


async def test_jitter_scales_delay():
    op = Flaky(TransportError("down", status=503))
    sleep = Sleeps()
    await retry_async(op, base_delay_ms=1000, sleep=sleep, jitter=lambda low, high: low)
    assert sleep.delays == [0.5]


async def test_throttling_not_retried():
    op = Flaky(TransportError("slow down", status=429))
    with pytest.raises(TransportError):
        await retry_async(op, sleep=Sleeps())
    assert op.calls == 1


async def test_invalid_message_not_retried_even_with_server_status():
    op = Flaky(TransportError("invalid upstream response", status=500))
    with pytest.raises(TransportError):
        await retry_async(op, sleep=Sleeps())
    assert op.calls == 1


def test_server_error_is_transient():
    assert is_transient(TransportError("Service Unavailable", status=503))
    assert not is_transient(TransportError("Request Timeout", status=408))


def test_error_status_from_response_attribute():
    class Response:
        status_code = 404

    class HTTPError(Exception):
        response = Response()

    assert error_status(HTTPError()) == 404
    assert not is_transient(HTTPError())
