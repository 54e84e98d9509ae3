from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException
from typing import List
import logging

from reflector_server.core.api_key import require_shared_api_key
from reflector_server.runtime.plan import PlanStep, apply_step
from reflector_server.runtime.descriptors import ConstructorDescriptor, MethodDescriptor, TypeDescriptor
from reflector_server.runtime.signatures import type_label
from reflector_server.schemas.session import (
    ArgsRequest,
    ConstructorRequest,
    MethodRequest,
    SessionCreated,
    SessionDetail,
    SessionSummary,
    StepResponse,
    TypeRequest,
    jsonable,
)
from reflector_server.sessions.registry import SessionEntry, SessionLimitError, SessionRegistry, registry

router = APIRouter(prefix='/sessions', tags=['sessions'], dependencies=[Depends(require_shared_api_key)])
logger = logging.getLogger(__name__)

# Dependency

def get_registry() -> SessionRegistry:
    return registry


def _require_entry(reg: SessionRegistry, session_id: str) -> SessionEntry:
    entry = reg.get(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail={'code': 'SESSION_NOT_FOUND', 'message': f"no session {session_id}"})
    return entry


def _render_value(value):
    if isinstance(value, TypeDescriptor):
        return value.qualified_name
    if isinstance(value, ConstructorDescriptor):
        return {'params': [type_label(t) for t in value.param_types]}
    if isinstance(value, MethodDescriptor):
        return {'name': value.name, 'kind': value.kind.value, 'params': [type_label(t) for t in value.param_types]}
    return jsonable(value)


def _run_step(reg: SessionRegistry, session_id: str, step: PlanStep) -> StepResponse:
    entry = _require_entry(reg, session_id)
    with entry.lock:
        result = apply_step(entry.session, step)
        state = entry.session.state.name
    return StepResponse(
        ok=result.ok,
        state=state,
        value=_render_value(result.value) if result.ok else None,
        error=result.error.to_dict() if result.error else None,
    )


@router.post('', response_model=SessionCreated)
def create_session(reg: SessionRegistry = Depends(get_registry)):
    try:
        entry = reg.create()
    except SessionLimitError as exc:
        raise HTTPException(status_code=409, detail=exc.to_dict())
    return SessionCreated(id=entry.id, state=entry.session.state.name)


@router.get('', response_model=List[SessionSummary])
def list_sessions(reg: SessionRegistry = Depends(get_registry)):
    out = []
    for entry in reg.list():
        descriptor = entry.session.type_descriptor
        out.append(SessionSummary(
            id=entry.id,
            state=entry.session.state.name,
            type=descriptor.qualified_name if descriptor else None,
            created_at=entry.created_at,
        ))
    return out


@router.get('/{session_id}', response_model=SessionDetail)
def get_session(session_id: str, reg: SessionRegistry = Depends(get_registry)):
    entry = _require_entry(reg, session_id)
    with entry.lock:
        payload = entry.session.describe()
    return SessionDetail(id=entry.id, **payload)


@router.delete('/{session_id}')
def delete_session(session_id: str, reg: SessionRegistry = Depends(get_registry)):
    if not reg.discard(session_id):
        raise HTTPException(status_code=404, detail={'code': 'SESSION_NOT_FOUND', 'message': f"no session {session_id}"})
    return {'status': 'deleted', 'id': session_id}


@router.post('/{session_id}/type', response_model=StepResponse)
def load_type(session_id: str, body: TypeRequest, reg: SessionRegistry = Depends(get_registry)):
    return _run_step(reg, session_id, PlanStep(kind='type', name=body.name, locations=list(body.locations)))


@router.post('/{session_id}/constructor', response_model=StepResponse)
def load_constructor(session_id: str, body: ConstructorRequest, reg: SessionRegistry = Depends(get_registry)):
    return _run_step(reg, session_id, PlanStep(kind='constructor', params=list(body.params)))


@router.post('/{session_id}/instance', response_model=StepResponse)
def load_instance(session_id: str, body: ArgsRequest, reg: SessionRegistry = Depends(get_registry)):
    return _run_step(reg, session_id, PlanStep(kind='instance', args=list(body.args)))


@router.post('/{session_id}/method', response_model=StepResponse)
def load_method(session_id: str, body: MethodRequest, reg: SessionRegistry = Depends(get_registry)):
    return _run_step(reg, session_id, PlanStep(kind='method', name=body.name, params=list(body.params)))


@router.post('/{session_id}/invoke', response_model=StepResponse)
def invoke(session_id: str, body: ArgsRequest, reg: SessionRegistry = Depends(get_registry)):
    return _run_step(reg, session_id, PlanStep(kind='invoke', args=list(body.args)))
