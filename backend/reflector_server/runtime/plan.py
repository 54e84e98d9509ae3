from __future__ import annotations
"""Call plans: a session's chain of steps described as data.

A plan is a YAML (or already parsed) mapping::

    type: calc.ops.Calculator
    locations: [file:///opt/targets/calc.zip]
    steps:
      - constructor: []
      - instance: []
      - method: add
        params: [int, int]
      - invoke: [2, 3]

Parameter types are written as names ("int", "calc.ops.Money", "Any") and
resolved within the scope of the loaded type. A ``type`` step may appear in
``steps`` to pivot to another class; its ``locations`` are optional.
"""
import logging
import pathlib
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

import yaml

from reflector_server.core.errors import ConfigurationError, MemberResolutionError, PreconditionError
from reflector_server.runtime.descriptors import InvokeResult, LoadResult
from reflector_server.runtime.session import ReflectionSession
from reflector_server.runtime.signatures import resolve_type_refs

_log = logging.getLogger(__name__)

STEP_KINDS = ('type', 'constructor', 'instance', 'method', 'invoke')


@dataclass
class PlanStep:
    kind: str
    name: Optional[str] = None
    params: List[Any] = field(default_factory=list)
    args: List[Any] = field(default_factory=list)
    locations: List[str] = field(default_factory=list)


@dataclass
class CallPlan:
    steps: List[PlanStep]


@dataclass
class StepOutcome:
    index: int
    kind: str
    ok: bool
    value: Any = None
    error: Optional[dict] = None


@dataclass
class PlanReport:
    outcomes: List[StepOutcome] = field(default_factory=list)
    results: List[Any] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)


def _as_list(value: Any, what: str, index: int) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    raise ConfigurationError(f"plan step {index}: {what} must be a list, got {type(value).__name__}")


def _parse_step(raw: Any, index: int) -> PlanStep:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"plan step {index}: expected a mapping, got {type(raw).__name__}")
    kinds = [k for k in STEP_KINDS if k in raw]
    if len(kinds) != 1:
        raise ConfigurationError(f"plan step {index}: expected exactly one of {', '.join(STEP_KINDS)}")
    kind = kinds[0]
    body = raw[kind]
    if kind in ('type', 'method'):
        if not isinstance(body, str) or not body.strip():
            raise ConfigurationError(f"plan step {index}: {kind} needs a name")
        return PlanStep(
            kind=kind,
            name=body.strip(),
            params=_as_list(raw.get('params'), 'params', index),
            locations=_as_list(raw.get('locations'), 'locations', index),
        )
    if kind == 'constructor':
        return PlanStep(kind=kind, params=_as_list(body, 'constructor', index))
    return PlanStep(kind=kind, args=_as_list(body, kind, index))


def parse_plan(data: Any) -> CallPlan:
    if not isinstance(data, dict):
        raise ConfigurationError("plan must be a mapping")
    steps: List[PlanStep] = []
    type_name = data.get('type')
    if type_name is not None:
        steps.append(_parse_step({'type': type_name, 'locations': data.get('locations')}, 0))
    elif data.get('locations'):
        raise ConfigurationError("plan locations given without a type")
    for raw in _as_list(data.get('steps'), 'steps', 0):
        steps.append(_parse_step(raw, len(steps)))
    if not steps:
        raise ConfigurationError("plan has no steps")
    return CallPlan(steps=steps)


def load_plan(source: Union[str, pathlib.Path]) -> CallPlan:
    """Parse a plan from a YAML file path or YAML text."""
    if isinstance(source, pathlib.Path):
        try:
            text = source.read_text()
        except OSError as exc:
            raise ConfigurationError(f"unable to read plan {source}: {exc}") from exc
    else:
        text = source
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid plan YAML: {exc}") from exc
    return parse_plan(data)


def _param_types(session: ReflectionSession, refs: List[Any]):
    descriptor = session.type_descriptor
    if descriptor is None:
        raise PreconditionError("no type loaded")
    return resolve_type_refs(descriptor.scope, refs)


def apply_step(session: ReflectionSession, step: PlanStep) -> Union[LoadResult, InvokeResult]:
    """Run one step against session, resolving named parameter types first."""
    if step.kind == 'type':
        return session.load_type(step.name, *step.locations)
    if step.kind == 'instance':
        return session.load_instance(*step.args)
    if step.kind == 'invoke':
        return session.invoke(*step.args)
    if step.kind not in ('constructor', 'method'):
        raise ConfigurationError(f"unknown plan step kind {step.kind!r}")
    try:
        params = _param_types(session, step.params)
    except MemberResolutionError as exc:
        return session.record_failure(exc)
    if step.kind == 'constructor':
        return session.load_constructor(*params)
    return session.load_method(step.name, *params)


def run_plan(plan: CallPlan, session: Optional[ReflectionSession] = None) -> PlanReport:
    """Execute plan steps in order, stopping at the first failed step.

    A session created here is closed afterwards; a caller-supplied session
    is left open with whatever the plan loaded into it.
    """
    owned = session is None
    if session is None:
        session = ReflectionSession()
    report = PlanReport()
    try:
        for index, step in enumerate(plan.steps):
            result = apply_step(session, step)
            value = result.value if step.kind in ('invoke', 'instance') else None
            report.outcomes.append(StepOutcome(
                index=index,
                kind=step.kind,
                ok=result.ok,
                value=value,
                error=result.error.to_dict() if result.error else None,
            ))
            if not result.ok:
                _log.info("plan stopped at step %d (%s): %s", index, step.kind, result.error.message)
                break
            if step.kind == 'invoke':
                report.results.append(result.value)
    finally:
        if owned:
            session.close()
    return report
