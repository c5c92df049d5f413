"""Liveness endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request

from .schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/healthz", response_model=HealthResponse, response_model_exclude_none=True)
async def healthz(request: Request) -> HealthResponse:
    runtime = getattr(request.app.state, "device_runtime", None)
    if runtime is None:
        return HealthResponse(status="ok")
    device = {"paired": runtime.is_paired, "pairingPhase": runtime.pairing_view.phase.value}
    playback = runtime.playback_view
    if playback is not None:
        device["playbackPhase"] = playback.phase.value
        device["offline"] = playback.offline
    return HealthResponse(status="ok", device=device)


__all__ = ["router"]
