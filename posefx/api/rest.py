from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from posefx.api.auth import require_http_token
from posefx.models.api import EffectSetRequest, PersonCountRequest, SessionActionResponse
from posefx.models.config import ConfigUpdate
from posefx.services.runtime import apply_tracking_config

router = APIRouter(prefix="/api")


def _runtime(request: Request):
    runtime = request.app.state.runtime
    require_http_token(request, runtime.config_store.config.server.token)
    return runtime


def _effects_payload(runtime) -> dict:
    snapshot = runtime.graph.snapshot()
    snapshot["requested"] = runtime.control_loop.desired_effects()
    return snapshot


@router.get("/config")
def get_config(request: Request):
    runtime = _runtime(request)
    return runtime.config_store.config.maybe_masked_dump(mask_token=True)


@router.put("/config")
def put_config(request: Request, payload: ConfigUpdate):
    runtime = _runtime(request)
    cfg = runtime.config_store.update(payload)
    # Effect list changes take effect on the next process start.
    apply_tracking_config(runtime, cfg)
    return cfg.maybe_masked_dump(mask_token=True)


@router.get("/effects")
def list_effects(request: Request):
    return _effects_payload(_runtime(request))


@router.put("/effects")
def set_effects(request: Request, payload: EffectSetRequest):
    runtime = _runtime(request)
    try:
        runtime.control_loop.set_enabled(payload.enabled)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
    return _effects_payload(runtime)


@router.post("/effects/{name}/enable")
def enable_effect(request: Request, name: str):
    runtime = _runtime(request)
    try:
        runtime.control_loop.enable(name)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
    return _effects_payload(runtime)


@router.post("/effects/{name}/disable")
def disable_effect(request: Request, name: str):
    runtime = _runtime(request)
    try:
        runtime.control_loop.disable(name)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
    return _effects_payload(runtime)


@router.post("/persons")
def set_person_count(request: Request, payload: PersonCountRequest):
    runtime = _runtime(request)
    runtime.control_loop.set_expected_persons(payload.count)
    return {"expected_persons": runtime.control_loop.throttle.expected_persons}


@router.post("/session/start", response_model=SessionActionResponse)
def start_session(request: Request):
    out = _runtime(request).session_manager.start()
    return SessionActionResponse(**out)


@router.post("/session/stop", response_model=SessionActionResponse)
def stop_session(request: Request):
    out = _runtime(request).session_manager.stop()
    return SessionActionResponse(**out)


@router.get("/session/status")
def session_status(request: Request):
    return _runtime(request).session_manager.status()
