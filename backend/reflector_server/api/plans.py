from __future__ import annotations
from fastapi import APIRouter, Body, Depends
from typing import Any, Dict

from reflector_server.core.api_key import require_shared_api_key
from reflector_server.runtime.plan import parse_plan, run_plan
from reflector_server.schemas.session import PlanResponse, PlanStepModel, jsonable

router = APIRouter(prefix='/plans', tags=['plans'], dependencies=[Depends(require_shared_api_key)])


@router.post('/run', response_model=PlanResponse)
def run(plan: Dict[str, Any] = Body(...)):
    """Run a call plan in a throwaway session and report every step."""
    report = run_plan(parse_plan(plan))
    return PlanResponse(
        ok=report.ok,
        results=[jsonable(v) for v in report.results],
        steps=[
            PlanStepModel(index=o.index, kind=o.kind, ok=o.ok, value=jsonable(o.value), error=o.error)
            for o in report.outcomes
        ],
    )
