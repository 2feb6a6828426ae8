"""Tests for the client navigation engine state machine."""

import asyncio

import httpx
import pytest

from relay.client.loader import GatewayErrorPayload, HttpLoadSurface
from relay.client.navigator import NavigationEngine, Phase
from relay.client.retry import LOAD_FAILED, RetryPolicy
from relay.client.scheduler import AsyncioScheduler
from relay.client.sites import ALTERNATIVE_SITES, HOME_URL, build_proxy_url

SITE_A = "https://a.example"
SITE_B = "https://b.example"
SITE_C = "https://c.example"


@pytest.fixture
def states():
    return []


@pytest.fixture
def engine(surface, scheduler, states) -> NavigationEngine:
    return NavigationEngine(surface, scheduler, on_change=states.append)


def rate_limited(retry_after=5, kind="client_rate_limited") -> GatewayErrorPayload:
    return GatewayErrorPayload(kind=kind, message="Too many requests", retry_after=retry_after)


class TestExplicitNavigation:
    """Address bar, presets, home and history moves."""

    def test_mount_loads_home(self, engine, surface):
        engine.mount()

        assert surface.loads == [(build_proxy_url(HOME_URL), 1)]
        assert engine.history.entries == [HOME_URL]
        assert engine.state.phase is Phase.LOADING

    def test_mount_is_noop_after_navigation(self, engine, surface):
        engine.open(SITE_A)
        engine.mount()
        assert len(surface.loads) == 1

    def test_submit_resolves_input(self, engine, surface):
        assert engine.submit("example.com") == "https://example.com"
        assert surface.loads[-1][0] == "/api/proxy?url=https%3A%2F%2Fexample.com"

    def test_submit_blank_is_ignored(self, engine, surface):
        assert engine.submit("   ") is None
        assert surface.loads == []
        assert engine.state.phase is Phase.IDLE

    def test_successful_load(self, engine, surface):
        engine.open(SITE_A)
        surface.succeed()

        assert engine.state.phase is Phase.LOADED
        assert engine.state.attempt_count == 0
        assert engine.state.last_error is None

    def test_back_and_forward_reload_without_changing_entries(self, engine, surface):
        for url in (SITE_A, SITE_B, SITE_C):
            engine.open(url)

        assert engine.back() is True
        assert engine.current_url == SITE_B
        assert engine.back() is True
        assert engine.current_url == SITE_A
        assert engine.back() is False
        assert engine.forward() is True
        assert engine.current_url == SITE_B

        assert engine.history.entries == [SITE_A, SITE_B, SITE_C]
        assert [url for url, _ in surface.loads[-3:]] == [
            build_proxy_url(SITE_B),
            build_proxy_url(SITE_A),
            build_proxy_url(SITE_B),
        ]

    def test_navigation_after_back_truncates_forward_history(self, engine):
        for url in (SITE_A, SITE_B, SITE_C):
            engine.open(url)
        engine.back()
        engine.back()

        engine.open("https://d.example")

        assert engine.history.entries == [SITE_A, "https://d.example"]
        assert engine.history.can_go_forward is False

    def test_home_does_not_duplicate_entry(self, engine, surface):
        engine.mount()
        engine.home()

        assert engine.history.entries == [HOME_URL]
        assert len(surface.loads) == 2

    def test_home_pushes_when_elsewhere(self, engine):
        engine.open(SITE_A)
        engine.home()
        assert engine.history.entries == [SITE_A, HOME_URL]

    def test_refresh_reloads_current_url(self, engine, surface):
        assert engine.refresh() is False

        engine.open(SITE_A)
        surface.succeed()
        assert engine.refresh() is True

        assert surface.loads[-1] == (build_proxy_url(SITE_A), 2)
        assert engine.history.entries == [SITE_A]

    def test_every_load_gets_a_new_token(self, engine, surface):
        engine.open(SITE_A)
        engine.open(SITE_B)
        engine.refresh()

        assert [token for _, token in surface.loads] == [1, 2, 3]


class TestRetries:
    """Exponential retries on transport failures."""

    def test_failure_schedules_retry_after_one_second(self, engine, surface, scheduler):
        engine.open(SITE_A)
        surface.fail()

        assert engine.state.phase is Phase.RETRYING
        assert engine.state.attempt_count == 1
        assert engine.state.last_error.kind == LOAD_FAILED
        assert engine.retry_remaining() == 1.0

        scheduler.advance(0.5)
        assert len(surface.loads) == 1

        scheduler.advance(0.5)
        assert surface.loads[-1] == (build_proxy_url(SITE_A), 2)
        assert engine.state.phase is Phase.LOADING
        assert engine.state.attempt_count == 1

    def test_exactly_three_retries_then_failed(self, engine, surface, scheduler):
        engine.open(SITE_A)
        delays = []

        for _ in range(3):
            surface.fail()
            assert engine.state.phase is Phase.RETRYING
            delays.append(engine.retry_remaining())
            scheduler.advance(delays[-1])

        surface.fail()

        assert delays == [1.0, 2.0, 4.0]
        assert len(surface.loads) == 4
        assert engine.state.phase is Phase.FAILED
        assert engine.state.suggestions == ALTERNATIVE_SITES[:3]
        assert SITE_A in engine.state.last_error.message
        assert scheduler.pending == []

    def test_success_resets_attempts(self, engine, surface, scheduler):
        engine.open(SITE_A)
        surface.fail()
        scheduler.advance(1)
        surface.succeed()

        assert engine.state.phase is Phase.LOADED
        assert engine.state.attempt_count == 0

    def test_retryable_gateway_error_uses_backoff(self, engine, surface, scheduler):
        engine.open(SITE_A)
        surface.succeed(GatewayErrorPayload(kind="gateway_unreachable", details="refused"))

        assert engine.state.phase is Phase.RETRYING
        assert engine.state.attempt_count == 1
        assert engine.retry_remaining() == 1.0

    @pytest.mark.parametrize("kind", ["missing_target", "request_setup_failed", "internal_error"])
    def test_non_retryable_gateway_error_fails_immediately(self, engine, surface, scheduler, kind):
        engine.open(SITE_A)
        surface.succeed(GatewayErrorPayload(kind=kind, details="nope"))

        assert engine.state.phase is Phase.FAILED
        assert engine.state.last_error.kind == kind
        assert scheduler.pending == []

    def test_retry_after_failure_keeps_history(self, engine, surface, scheduler):
        engine.open(SITE_A)
        surface.fail()
        scheduler.advance(1)

        assert engine.history.entries == [SITE_A]


class TestRateLimitCooldown:
    """Gateway 429 errors wait for the server-provided cooldown."""

    def test_waits_retry_after_then_resumes(self, engine, surface, scheduler):
        engine.open(SITE_A)
        surface.succeed(rate_limited(5))

        assert engine.state.phase is Phase.RETRYING
        assert engine.state.attempt_count == 0
        assert engine.countdown_label() == "5s"

        scheduler.advance(4.2)
        assert engine.countdown_label() == "1s"
        assert len(surface.loads) == 1

        scheduler.advance(1)
        assert len(surface.loads) == 2
        assert engine.state.phase is Phase.LOADING
        assert engine.countdown_label() is None

    def test_cooldown_does_not_consume_attempts(self, engine, surface, scheduler):
        engine.open(SITE_A)
        surface.fail()
        scheduler.advance(1)
        surface.succeed(rate_limited(5, kind="upstream_rate_limited"))

        assert engine.state.attempt_count == 1

        scheduler.advance(5)
        surface.fail()
        assert engine.state.attempt_count == 2
        assert engine.retry_remaining() == 2.0

    def test_cooldown_is_capped(self, engine, surface):
        engine.open(SITE_A)
        surface.succeed(rate_limited(3600, kind="domain_rate_limited"))

        assert engine.retry_remaining() == 60.0

    def test_rate_limit_without_retry_after_fails(self, engine, surface):
        engine.open(SITE_A)
        surface.succeed(rate_limited(None))

        assert engine.state.phase is Phase.FAILED


class TestStaleSignals:
    """Only the latest navigation's signals count."""

    def test_signal_for_superseded_load_is_ignored(self, engine, surface):
        engine.open(SITE_A)
        receiver, stale_token = surface.receiver, surface.last_token
        engine.open(SITE_B)

        receiver.handle_loaded(stale_token)
        receiver.handle_load_failed(stale_token, "boom")

        assert engine.state.phase is Phase.LOADING
        assert engine.current_url == SITE_B

    def test_duplicate_signal_is_ignored(self, engine, surface, scheduler):
        engine.open(SITE_A)
        surface.fail()
        surface.fail()

        assert engine.state.attempt_count == 1
        assert len(scheduler.pending) == 1

    def test_navigation_cancels_pending_retry(self, engine, surface, scheduler):
        engine.open(SITE_A)
        surface.fail()
        engine.open(SITE_B)

        scheduler.advance(10)

        assert [url for url, _ in surface.loads] == [build_proxy_url(SITE_A), build_proxy_url(SITE_B)]
        assert engine.state.attempt_count == 0

    def test_refresh_during_cooldown_starts_fresh(self, engine, surface, scheduler):
        engine.open(SITE_A)
        surface.fail()
        scheduler.advance(1)
        surface.fail()

        engine.refresh()

        assert engine.state.phase is Phase.LOADING
        assert engine.state.attempt_count == 0
        assert scheduler.pending == []

    def test_close_cancels_timer_and_ignores_signals(self, engine, surface, scheduler):
        engine.open(SITE_A)
        surface.fail()
        engine.close()

        assert scheduler.pending == []
        scheduler.advance(10)
        assert len(surface.loads) == 1

        engine.open(SITE_B)
        assert len(surface.loads) == 1
        assert engine.closed is True

    def test_closed_engine_leaves_history_alone(self, engine, surface):
        for url in (SITE_A, SITE_B):
            engine.open(url)
        engine.back()
        engine.close()

        engine.open(SITE_C)
        engine.home()
        assert engine.submit("example.com") is None
        assert engine.back() is False
        assert engine.forward() is False
        assert engine.refresh() is False

        assert engine.history.entries == [SITE_A, SITE_B]
        assert engine.history.index == 0
        assert len(surface.loads) == 3


class TestStateSnapshots:
    def test_states_are_replaced_not_mutated(self, engine, surface):
        engine.open(SITE_A)
        loading = engine.state
        surface.succeed()

        assert loading.phase is Phase.LOADING
        assert engine.state is not loading

    def test_on_change_sees_every_transition(self, engine, surface, scheduler, states):
        engine.open(SITE_A)
        surface.fail()
        scheduler.advance(1)
        surface.succeed()

        assert [s.phase for s in states] == [
            Phase.LOADING,
            Phase.RETRYING,
            Phase.LOADING,
            Phase.LOADED,
        ]


class TestAgainstHttpSurface:
    """The engine driven by real HTTP loads on the event loop."""

    @pytest.mark.asyncio
    async def test_retries_until_gateway_succeeds(self):
        responses = iter([
            httpx.Response(
                503,
                json={"error": "upstream_error", "details": "Service Unavailable"},
                headers={"X-Proxy-Error": "upstream_error"},
            ),
            httpx.Response(200, content=b"<html>ok</html>", headers={"Content-Type": "text/html"}),
        ])
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url.params.get("url"))
            return next(responses)

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://relay.test"
        ) as http_client:
            surface = HttpLoadSurface(http_client)
            engine = NavigationEngine(
                surface,
                AsyncioScheduler(),
                policy=RetryPolicy(base_delay=0.01),
            )

            engine.open(SITE_A)
            await surface.wait()
            assert engine.state.phase is Phase.RETRYING

            await asyncio.sleep(0.05)
            await surface.wait()

        assert engine.state.phase is Phase.LOADED
        assert requested == [SITE_A, SITE_A]
        assert surface.last_response.content == b"<html>ok</html>"

    @pytest.mark.asyncio
    async def test_undecodable_response_schedules_retry(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.DecodingError("bad gzip", request=request)

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://relay.test"
        ) as http_client:
            surface = HttpLoadSurface(http_client)
            engine = NavigationEngine(surface, AsyncioScheduler())

            engine.open("https://example.com")
            await surface.wait()

            assert engine.state.phase is Phase.RETRYING
            assert engine.state.last_error.kind == LOAD_FAILED
            assert engine.state.last_error.details == "bad gzip"
            engine.close()
