"""Dashboard routes claiming pairing codes and managing device locations."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..domain.models import Identity, PairingRecord
from ..exceptions import AdcastError
from ..pairing.linker import PairingLinker
from .dependencies import get_linker, require_identity
from .errors import to_http_error
from .schemas import LinkDeviceRequest, LinkDeviceResponse, LocationSubmitRequest

router = APIRouter(prefix="/api/devices", tags=["devices"])


def _link_response(record: PairingRecord) -> LinkDeviceResponse:
    return LinkDeviceResponse(
        code=record.code,
        status=record.status.value,
        device_id=record.device_id,
        location_id=record.location_id,
        owner_id=record.owner_id,
    )


@router.post("/link", status_code=status.HTTP_201_CREATED, response_model=LinkDeviceResponse)
async def link_device(
    payload: LinkDeviceRequest,
    identity: Identity = Depends(require_identity),
    linker: PairingLinker = Depends(get_linker),
) -> LinkDeviceResponse:
    try:
        record = await linker.claim(payload.code, owner=identity, location_id=payload.location_id)
    except AdcastError as exc:
        raise to_http_error(exc) from exc
    return _link_response(record)


@router.post("/link/{code}/location", response_model=LinkDeviceResponse)
async def assign_link_location(
    code: str,
    payload: LocationSubmitRequest,
    identity: Identity = Depends(require_identity),
    linker: PairingLinker = Depends(get_linker),
) -> LinkDeviceResponse:
    try:
        record = await linker.assign_location(code, payload.location_id, owner=identity)
    except AdcastError as exc:
        raise to_http_error(exc) from exc
    return _link_response(record)


@router.post("/{device_id}/location", status_code=status.HTTP_204_NO_CONTENT)
async def relocate_device(
    device_id: str,
    payload: LocationSubmitRequest,
    identity: Identity = Depends(require_identity),
    linker: PairingLinker = Depends(get_linker),
) -> None:
    try:
        await linker.relocate_device(device_id, payload.location_id, owner=identity)
    except AdcastError as exc:
        raise to_http_error(exc) from exc


__all__ = ["router"]
