"""Circuit breaker state transitions, driven by a fake clock."""
import asyncio

import pytest

from ..utils.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpenError, CircuitState


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


async def fail():
    raise ConnectionError("down")


async def succeed():
    return "ok"


class TestCircuitBreaker:
    def make(self, clock, **overrides):
        settings = dict(name="test", failure_threshold=2, recovery_timeout=10.0, success_threshold=1)
        settings.update(overrides)
        return CircuitBreaker(CircuitBreakerConfig(**settings), clock=clock)

    def test_opens_after_threshold(self):
        breaker = self.make(FakeClock())

        async def scenario():
            for _ in range(2):
                with pytest.raises(ConnectionError):
                    await breaker.call(fail)
            with pytest.raises(CircuitBreakerOpenError) as exc_info:
                await breaker.call(succeed)
            return exc_info.value

        error = asyncio.run(scenario())
        assert breaker.state == CircuitState.OPEN
        assert error.retry_after == pytest.approx(10.0)
        assert breaker.get_status()["rejected_calls"] == 1

    def test_half_open_probe_closes(self):
        clock = FakeClock()
        breaker = self.make(clock)

        async def scenario():
            for _ in range(2):
                with pytest.raises(ConnectionError):
                    await breaker.call(fail)
            clock.now += 11
            return await breaker.call(succeed)

        assert asyncio.run(scenario()) == "ok"
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_admits_calls_until_threshold(self):
        clock = FakeClock()
        breaker = self.make(clock, success_threshold=3)

        async def scenario():
            for _ in range(2):
                with pytest.raises(ConnectionError):
                    await breaker.call(fail)
            clock.now += 11
            states = []
            for _ in range(3):
                await breaker.call(succeed)
                states.append(breaker.state)
            return states

        assert asyncio.run(scenario()) == [CircuitState.HALF_OPEN, CircuitState.HALF_OPEN, CircuitState.CLOSED]

    def test_half_open_failure_reopens(self):
        clock = FakeClock()
        breaker = self.make(clock)

        async def scenario():
            for _ in range(2):
                with pytest.raises(ConnectionError):
                    await breaker.call(fail)
            clock.now += 11
            with pytest.raises(ConnectionError):
                await breaker.call(fail)

        asyncio.run(scenario())
        assert breaker.state == CircuitState.OPEN

    def test_success_resets_failure_count(self):
        breaker = self.make(FakeClock())

        async def scenario():
            with pytest.raises(ConnectionError):
                await breaker.call(fail)
            await breaker.call(succeed)
            with pytest.raises(ConnectionError):
                await breaker.call(fail)

        asyncio.run(scenario())
        assert breaker.state == CircuitState.CLOSED

    def test_ignored_exceptions(self):
        breaker = self.make(FakeClock(), failure_exceptions=(ConnectionError,))

        async def bad_input():
            raise ValueError("bad input")

        async def scenario():
            for _ in range(3):
                with pytest.raises(ValueError):
                    await breaker.call(bad_input)

        asyncio.run(scenario())
        assert breaker.state == CircuitState.CLOSED

    def test_reset(self):
        breaker = self.make(FakeClock())

        async def scenario():
            for _ in range(2):
                with pytest.raises(ConnectionError):
                    await breaker.call(fail)

        asyncio.run(scenario())
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_status()["consecutive_failures"] == 0
