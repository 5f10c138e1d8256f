"""Unit tests for the rate-limited request queue."""
from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from watchfolio.errors import HttpStatusError, MarketDataError, ThrottledError, TransportError
from watchfolio.market.request_queue import RequestQueue
from watchfolio.models import HttpResponse


def _sequence(*responses):
    """Handler replaying ``responses`` in order, repeating the last one."""
    remaining = list(responses)

    def handler(url: str):
        if len(remaining) > 1:
            return remaining.pop(0)
        return remaining[0]

    return handler


def _ok(url: str) -> HttpResponse:
    return HttpResponse(200, "OK", {"url": url})


# ---------------------------------------------------------------------------
# Dispatch pacing
# ---------------------------------------------------------------------------


class TestQueuePacing:
    @pytest.mark.asyncio
    async def test_dispatches_spaced_by_min_interval(
        self, clock, transport_factory, rate_limit_config
    ) -> None:
        transport = transport_factory(_ok)
        queue = RequestQueue(transport, rate_limit_config, clock=clock, sleep=clock.sleep)

        results = await asyncio.gather(
            queue.enqueue("a"), queue.enqueue("b"), queue.enqueue("c")
        )

        assert [r.data["url"] for r in results] == ["a", "b", "c"]
        assert transport.calls == ["a", "b", "c"]
        assert transport.call_times == [1000.0, 1006.0, 1012.0]

    @pytest.mark.asyncio
    async def test_later_request_waits_remaining_interval(
        self, clock, transport_factory, rate_limit_config
    ) -> None:
        transport = transport_factory(_ok)
        queue = RequestQueue(transport, rate_limit_config, clock=clock, sleep=clock.sleep)

        await queue.enqueue("a")
        clock.advance(2.0)
        await queue.enqueue("b")

        assert clock.sleeps == [4.0]
        assert transport.call_times == [1000.0, 1006.0]

    @pytest.mark.asyncio
    async def test_no_wait_after_quiet_period(
        self, clock, transport_factory, rate_limit_config
    ) -> None:
        transport = transport_factory(_ok)
        queue = RequestQueue(transport, rate_limit_config, clock=clock, sleep=clock.sleep)

        await queue.enqueue("a")
        clock.advance(30.0)
        await queue.enqueue("b")

        assert clock.sleeps == []
        assert queue.pending == 0

    @pytest.mark.asyncio
    async def test_failure_only_rejects_its_own_caller(
        self, clock, transport_factory, rate_limit_config
    ) -> None:
        def handler(url: str) -> HttpResponse:
            return HttpResponse(500, "Server Error") if url == "b" else _ok(url)

        transport = transport_factory(handler)
        queue = RequestQueue(transport, rate_limit_config, clock=clock, sleep=clock.sleep)

        a, b, c = await asyncio.gather(
            queue.enqueue("a"),
            queue.enqueue("b"),
            queue.enqueue("c"),
            return_exceptions=True,
        )

        assert a.data == {"url": "a"}
        assert isinstance(b, HttpStatusError)
        assert b.status == 500
        assert c.data == {"url": "c"}


# ---------------------------------------------------------------------------
# Retry / backoff
# ---------------------------------------------------------------------------


class TestFetchWithRetry:
    @pytest.mark.asyncio
    async def test_429_backs_off_exponentially_with_jitter(
        self, clock, transport_factory, rate_limit_config
    ) -> None:
        transport = transport_factory(
            _sequence(HttpResponse(429), HttpResponse(429), HttpResponse(200, "OK", [1]))
        )
        queue = RequestQueue(
            transport, rate_limit_config, clock=clock, sleep=clock.sleep, jitter=lambda: 0.5
        )

        response = await queue.fetch_with_retry("u")

        assert response.data == [1]
        assert clock.sleeps == [3.0, 5.0]
        assert len(transport.calls) == 3

    @pytest.mark.asyncio
    async def test_429_exhaustion_raises_throttled(
        self, clock, transport_factory, rate_limit_config
    ) -> None:
        transport = transport_factory(lambda url: HttpResponse(429, "Too Many Requests"))
        queue = RequestQueue(
            transport, rate_limit_config, clock=clock, sleep=clock.sleep, jitter=lambda: 0.0
        )

        with pytest.raises(ThrottledError) as excinfo:
            await queue.fetch_with_retry("u")

        assert excinfo.value.attempts == 3
        assert len(transport.calls) == 3
        assert clock.sleeps == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_429_sets_rate_limited_window(
        self, clock, transport_factory, rate_limit_config
    ) -> None:
        transport = transport_factory(_sequence(HttpResponse(429), HttpResponse(200)))
        queue = RequestQueue(
            transport, rate_limit_config, clock=clock, sleep=clock.sleep, jitter=lambda: 0.0
        )
        assert not queue.recently_rate_limited

        await queue.fetch_with_retry("u")
        assert queue.recently_rate_limited

        clock.advance(60.0)
        assert not queue.recently_rate_limited

    @pytest.mark.asyncio
    async def test_network_error_backoff(
        self, clock, transport_factory, rate_limit_config
    ) -> None:
        transport = transport_factory(
            _sequence(
                TransportError("reset"),
                TransportError("reset"),
                HttpResponse(200, "OK", "done"),
            )
        )
        queue = RequestQueue(transport, rate_limit_config, clock=clock, sleep=clock.sleep)

        response = await queue.fetch_with_retry("u")

        assert response.data == "done"
        assert clock.sleeps == [2.0, 3.0]
        assert not queue.recently_rate_limited

    @pytest.mark.asyncio
    async def test_network_error_exhaustion_reraises(
        self, clock, transport_factory, rate_limit_config
    ) -> None:
        transport = transport_factory(lambda url: TransportError("down"))
        queue = RequestQueue(transport, rate_limit_config, clock=clock, sleep=clock.sleep)

        with pytest.raises(TransportError, match="down"):
            await queue.fetch_with_retry("u")
        assert len(transport.calls) == 3

    @pytest.mark.asyncio
    async def test_other_status_not_retried(
        self, clock, transport_factory, rate_limit_config
    ) -> None:
        transport = transport_factory(lambda url: HttpResponse(404, "Not Found"))
        queue = RequestQueue(transport, rate_limit_config, clock=clock, sleep=clock.sleep)

        with pytest.raises(HttpStatusError) as excinfo:
            await queue.fetch_with_retry("u")

        assert excinfo.value.status == 404
        assert len(transport.calls) == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_zero_retries_single_attempt(
        self, clock, transport_factory, rate_limit_config
    ) -> None:
        transport = transport_factory(lambda url: HttpResponse(429))
        queue = RequestQueue(
            transport,
            replace(rate_limit_config, max_retries=0),
            clock=clock,
            sleep=clock.sleep,
        )

        with pytest.raises(ThrottledError) as excinfo:
            await queue.fetch_with_retry("u")
        assert excinfo.value.attempts == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_malformed_body_not_retried(
        self, clock, transport_factory, rate_limit_config
    ) -> None:
        transport = transport_factory(lambda url: MarketDataError("Malformed JSON body"))
        queue = RequestQueue(transport, rate_limit_config, clock=clock, sleep=clock.sleep)

        with pytest.raises(MarketDataError, match="Malformed"):
            await queue.fetch_with_retry("u")
        assert len(transport.calls) == 1
        assert clock.sleeps == []
