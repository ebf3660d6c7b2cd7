"""Tests for engine wiring."""
import pytest

from courier.config import CourierConfig
from courier.engine import build_engine
from courier.errors import UnknownChannelError, UnknownServiceError
from courier.resilience.circuit_breaker import CircuitState
from courier.resilience.redis_cache import RedisCache


class TestBuildEngine:
    @pytest.mark.asyncio
    async def test_rejects_unknown_channel(self, courier_config, db, sms_sender) -> None:
        with pytest.raises(UnknownChannelError, match="fax"):
            build_engine(courier_config, db, {"fax": sms_sender})

    @pytest.mark.asyncio
    async def test_breakers_exist_for_every_provider(self, engine) -> None:
        statuses = await engine.circuit_status()
        assert [s.service for s in statuses] == ["sendgrid", "twilio"]
        assert all(s.state is CircuitState.CLOSED for s in statuses)

    @pytest.mark.asyncio
    async def test_single_circuit_status(self, engine) -> None:
        [status] = await engine.circuit_status("twilio")
        assert status.service == "twilio"
        assert status.failure_count == 0

    @pytest.mark.asyncio
    async def test_unknown_service_status(self, engine) -> None:
        with pytest.raises(UnknownServiceError):
            await engine.circuit_status("no-such-provider")
        assert engine.breakers.services() == ["sendgrid", "twilio"]

    @pytest.mark.asyncio
    async def test_redis_url_selects_shared_cache(self, courier_config, db, sms_sender) -> None:
        config = CourierConfig(
            retry=courier_config.retry,
            circuit_breaker=courier_config.circuit_breaker,
            redis_url="redis://localhost:6379/0",
        )
        engine = build_engine(config, db, {"sms": sms_sender})
        breaker = engine.breakers.get("twilio")
        assert isinstance(breaker._cache, RedisCache)
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_aclose_without_redis(self, engine) -> None:
        await engine.aclose()
