"""Device birth, data and death endpoints."""

import logging

from fastapi import APIRouter, Depends

from ...node.engine import NodeEngine
from ...sparkplug.errors import UnknownDevice
from ..dependencies import check_write_enabled, get_engine
from ..schemas import (
    DeviceListResponse,
    DeviceResponse,
    PublishMetricsRequest,
    PublishResponse,
)
from .node import publish_response

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get(
    "/devices",
    response_model=DeviceListResponse,
    summary="List devices",
    description="Devices birthed in this node with their last-known metric values",
)
async def list_devices(engine: NodeEngine = Depends(get_engine)) -> DeviceListResponse:
    devices = [DeviceResponse(**record.to_dict()) for record in engine.devices()]
    return DeviceListResponse(devices=devices, total=len(devices))


@router.get(
    "/devices/{device_id}",
    response_model=DeviceResponse,
    summary="Get device",
)
async def get_device(device_id: str, engine: NodeEngine = Depends(get_engine)) -> DeviceResponse:
    record = engine.get_device(device_id)
    if record is None:
        raise UnknownDevice(f"Device {device_id!r} has not been birthed")
    return DeviceResponse(**record.to_dict())


@router.post(
    "/devices/{device_id}/birth",
    response_model=PublishResponse,
    summary="Publish device birth",
    description="Publish a DBIRTH; its metrics become the device's declared metric set",
    dependencies=[Depends(check_write_enabled)],
)
async def publish_device_birth(
    device_id: str,
    request: PublishMetricsRequest,
    engine: NodeEngine = Depends(get_engine),
) -> PublishResponse:
    # No declaration to resolve against yet; datatypes are explicit or inferred
    result = await engine.publish_device_birth(device_id, request.to_metrics())
    logger.info(f"DBIRTH for {device_id}: success={result.success}")
    return publish_response(engine, result)


@router.post(
    "/devices/{device_id}/data",
    response_model=PublishResponse,
    summary="Publish device data",
    description="Publish a DDATA; metrics not declared in the device birth are dropped",
    dependencies=[Depends(check_write_enabled)],
)
async def publish_device_data(
    device_id: str,
    request: PublishMetricsRequest,
    engine: NodeEngine = Depends(get_engine),
) -> PublishResponse:
    # Resolve datatypes against the device birth
    record = engine.get_device(device_id)
    if record is None:
        raise UnknownDevice(f"Device {device_id!r} has not been birthed")
    result = await engine.publish_device_data(device_id, request.to_metrics(record.known))
    return publish_response(engine, result)


@router.post(
    "/devices/{device_id}/death",
    response_model=PublishResponse,
    summary="Publish device death",
    dependencies=[Depends(check_write_enabled)],
)
async def publish_device_death(
    device_id: str, engine: NodeEngine = Depends(get_engine)
) -> PublishResponse:
    result = await engine.publish_device_death(device_id)
    logger.info(f"DDEATH for {device_id}: success={result.success}")
    return publish_response(engine, result)
