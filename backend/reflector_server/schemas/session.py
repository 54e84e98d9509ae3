from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    code: str
    message: str
    cause: Optional[str] = None
    missing_receiver: Optional[bool] = None


class SessionCreated(BaseModel):
    id: str
    state: str


class SessionSummary(BaseModel):
    id: str
    state: str
    type: Optional[str] = None
    created_at: float


class SessionDetail(BaseModel):
    id: str
    state: str
    scope: Optional[Dict[str, Any]] = None
    type: Optional[str] = None
    constructor: Optional[List[str]] = None
    instance: Optional[str] = None
    method: Optional[Dict[str, Any]] = None
    last_error: Optional[ErrorDetail] = None


class TypeRequest(BaseModel):
    name: str
    locations: List[str] = Field(default_factory=list)


class ConstructorRequest(BaseModel):
    params: List[str] = Field(default_factory=list)


class ArgsRequest(BaseModel):
    args: List[Any] = Field(default_factory=list)


class MethodRequest(BaseModel):
    name: str
    params: List[str] = Field(default_factory=list)


class StepResponse(BaseModel):
    ok: bool
    state: str
    value: Any = None
    error: Optional[ErrorDetail] = None


class PlanStepModel(BaseModel):
    index: int
    kind: str
    ok: bool
    value: Any = None
    error: Optional[ErrorDetail] = None


class PlanResponse(BaseModel):
    ok: bool
    results: List[Any] = Field(default_factory=list)
    steps: List[PlanStepModel] = Field(default_factory=list)


def jsonable(value: Any) -> Any:
    """Render a call result for a JSON response; anything else becomes its repr."""
    if isinstance(value, float) and not math.isfinite(value):
        return repr(value)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    if isinstance(value, dict) and all(isinstance(k, str) for k in value):
        return {k: jsonable(v) for k, v in value.items()}
    return repr(value)
