"""Edge node status and publishing endpoints."""

import logging

from fastapi import APIRouter, Depends

from ...node.engine import NodeEngine
from ...transport.interface import PublishResult
from ..dependencies import check_write_enabled, get_engine
from ..schemas import NodeStatusResponse, PublishMetricsRequest, PublishResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def publish_response(engine: NodeEngine, result: PublishResult) -> PublishResponse:
    """Build a PublishResponse from a transport result and the engine counters."""
    return PublishResponse(
        success=result.success,
        reason=result.reason,
        session_number=engine.session.current_session(),
        sequence_number=engine.sequence.current(),
    )


@router.get(
    "/node",
    response_model=NodeStatusResponse,
    summary="Edge node status",
    description="Lifecycle state, session and sequence numbers, declared metrics and devices",
)
async def get_node(engine: NodeEngine = Depends(get_engine)) -> NodeStatusResponse:
    return NodeStatusResponse(**engine.status())


@router.post(
    "/node/data",
    response_model=PublishResponse,
    summary="Publish node data",
    description=(
        "Publish an NDATA. Metrics not declared for the node are dropped silently; "
        "reserved names such as bdSeq are stripped."
    ),
    dependencies=[Depends(check_write_enabled)],
)
async def publish_node_data(
    request: PublishMetricsRequest,
    engine: NodeEngine = Depends(get_engine),
) -> PublishResponse:
    """
    Publish node metrics.

    Raises:
        InvalidMetricType: Mapped to 400
        NodeNotOnline: Mapped to 409
    """
    # Resolve datatypes against the node declarations
    metrics = request.to_metrics(engine.known_metrics)
    result = await engine.publish_data(metrics)
    logger.info(f"NDATA with {len(metrics)} requested metric(s): success={result.success}")
    return publish_response(engine, result)


@router.post(
    "/node/rebirth",
    response_model=PublishResponse,
    summary="Republish the node birth",
    description="Reset the sequence counter and republish NBIRTH and all device births",
    dependencies=[Depends(check_write_enabled)],
)
async def rebirth_node(engine: NodeEngine = Depends(get_engine)) -> PublishResponse:
    result = await engine.rebirth()
    return publish_response(engine, result)
