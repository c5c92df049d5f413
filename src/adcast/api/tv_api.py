"""Routes consumed by the TV screen: setup (pairing) and display (playback)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.responses import Response

from ..auth.identity import InvalidTokenError, SessionIdentityProvider, TokenExpiredError
from ..device import DeviceRuntime
from ..exceptions import AdcastError
from ..pairing.codes import render_qr_svg
from ..playback.client import PlaybackClient
from .dependencies import get_device_runtime, get_identity_provider
from .errors import http_error, to_http_error
from .schemas import (
    LocationSubmitRequest,
    PairingViewResponse,
    PlaybackViewResponse,
    SessionResponse,
    SessionSignInRequest,
)

router = APIRouter(prefix="/tv", tags=["tv"])


def _pairing_response(runtime: DeviceRuntime) -> PairingViewResponse:
    return PairingViewResponse.model_validate(runtime.pairing_view.to_dict())


def _require_playback(runtime: DeviceRuntime) -> PlaybackClient:
    if runtime.playback is None:
        raise http_error(status.HTTP_409_CONFLICT, "device_not_paired")
    return runtime.playback


@router.get("/setup", response_model=PairingViewResponse, response_model_exclude_none=True)
async def get_setup(runtime: DeviceRuntime = Depends(get_device_runtime)) -> PairingViewResponse:
    return _pairing_response(runtime)


@router.get("/setup/qr.svg")
async def get_setup_qr(runtime: DeviceRuntime = Depends(get_device_runtime)) -> Response:
    link_url = runtime.pairing_view.link_url
    if not link_url:
        raise http_error(status.HTTP_404_NOT_FOUND, "pairing_code_unavailable")
    return Response(content=render_qr_svg(link_url), media_type="image/svg+xml")


@router.post(
    "/setup/location",
    response_model=PairingViewResponse,
    response_model_exclude_none=True,
)
async def submit_location(
    payload: LocationSubmitRequest,
    runtime: DeviceRuntime = Depends(get_device_runtime),
) -> PairingViewResponse:
    try:
        await runtime.acceptor.submit_location(payload.location_id)
    except AdcastError as exc:
        raise to_http_error(exc) from exc
    await runtime.settle()
    return _pairing_response(runtime)


@router.post("/setup/retry", response_model=PairingViewResponse, response_model_exclude_none=True)
async def retry_setup(runtime: DeviceRuntime = Depends(get_device_runtime)) -> PairingViewResponse:
    try:
        await runtime.acceptor.retry()
    except AdcastError as exc:
        raise to_http_error(exc) from exc
    return _pairing_response(runtime)


@router.get("/display", response_model=PlaybackViewResponse, response_model_exclude_none=True)
async def get_display(runtime: DeviceRuntime = Depends(get_device_runtime)) -> PlaybackViewResponse:
    playback = _require_playback(runtime)
    return PlaybackViewResponse.model_validate(playback.view.to_dict())


@router.post(
    "/display/refresh",
    response_model=PlaybackViewResponse,
    response_model_exclude_none=True,
)
async def refresh_display(
    runtime: DeviceRuntime = Depends(get_device_runtime),
) -> PlaybackViewResponse:
    playback = _require_playback(runtime)
    view = await playback.refresh()
    return PlaybackViewResponse.model_validate(view.to_dict())


@router.get("/session", response_model=SessionResponse, response_model_exclude_none=True)
async def get_session(
    provider: SessionIdentityProvider = Depends(get_identity_provider),
) -> SessionResponse:
    identity = provider.current_identity()
    if identity is None:
        return SessionResponse(signed_in=False)
    return SessionResponse(signed_in=True, uid=identity.uid, email=identity.email)


@router.post("/session", response_model=SessionResponse, response_model_exclude_none=True)
async def sign_in(
    payload: SessionSignInRequest,
    provider: SessionIdentityProvider = Depends(get_identity_provider),
) -> SessionResponse:
    """Sign an operator in on the device; new pairing codes are stamped with their uid."""
    try:
        identity = provider.sign_in(payload.token)
    except TokenExpiredError as exc:
        raise http_error(status.HTTP_401_UNAUTHORIZED, "token_expired") from exc
    except InvalidTokenError as exc:
        raise http_error(status.HTTP_401_UNAUTHORIZED, "invalid_token") from exc
    return SessionResponse(signed_in=True, uid=identity.uid, email=identity.email)


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(provider: SessionIdentityProvider = Depends(get_identity_provider)) -> None:
    provider.sign_out()


__all__ = ["router"]
