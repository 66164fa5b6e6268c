"""Health check endpoints."""

import time

from fastapi import APIRouter, Depends

from ...node.engine import NodeEngine, NodeState
from ..dependencies import get_engine
from ..schemas import HealthCheckResponse

router = APIRouter()

# Track application start time
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Overall health check",
    description="Check broker connectivity and the lifecycle state of the edge node",
)
async def health_check(engine: NodeEngine = Depends(get_engine)) -> HealthCheckResponse:
    """
    Get overall application health status.

    Returns:
        Health check response with connection status, node state and uptime
    """
    transport_connected = await engine.transport.is_connected()
    overall_status = (
        "healthy" if transport_connected and engine.state == NodeState.ONLINE else "unhealthy"
    )

    return HealthCheckResponse(
        status=overall_status,
        transport_connected=transport_connected,
        node_state=engine.state.value,
        uptime_seconds=time.time() - _start_time,
        commands_received=engine.dispatcher.delivered_count,
    )
