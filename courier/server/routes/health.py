"""GET /health and circuit breaker endpoints."""
from datetime import datetime, timezone

from fastapi import APIRouter, status

from courier.engine import CourierEngine
from courier.errors import UnknownServiceError
from courier.resilience.circuit_breaker import CircuitState
from courier.server.models.responses import (
    CircuitListResponse, CircuitStatusResponse, HealthResponse,
)


def create_health_router(engine: CourierEngine) -> APIRouter:
    """Create health router with injected dependencies."""
    router = APIRouter()

    @router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK, tags=["status"])
    async def health_check() -> HealthResponse:
        """Report degraded while any provider circuit is not closed."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        statuses = await engine.circuit_status()
        circuits = {s.service: s.state.value for s in statuses}
        messages = await engine.messages.count_by_status()
        tripped = sorted(s.service for s in statuses if s.state is not CircuitState.CLOSED)
        if tripped:
            return HealthResponse(
                status="degraded", timestamp=timestamp, circuits=circuits, messages=messages,
                message=f"Providers unavailable: {', '.join(tripped)}",
            )
        return HealthResponse(status="healthy", timestamp=timestamp, circuits=circuits, messages=messages)

    @router.get("/circuits", response_model=CircuitListResponse, tags=["status"])
    async def list_circuits() -> CircuitListResponse:
        statuses = await engine.circuit_status()
        return CircuitListResponse(circuits=[CircuitStatusResponse.from_status(s) for s in statuses])

    @router.post("/circuits/{service}/reset", response_model=CircuitStatusResponse, tags=["status"])
    async def reset_circuit(service: str) -> CircuitStatusResponse:
        """Force a provider's circuit closed."""
        if service not in engine.breakers.services():
            raise UnknownServiceError(f"No circuit for service '{service}'")
        await engine.breakers.reset(service)
        return CircuitStatusResponse.from_status(await engine.breakers.get(service).status())

    return router
