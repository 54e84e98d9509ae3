from __future__ import annotations
"""Reflection session: a stateful cursor over one call target.

The session walks the stages of a reflective call and keeps whatever it
resolved so later calls can reuse it::

    session = ReflectionSession()
    session.load_type('calc.ops.Calculator', 'file:///opt/targets/calc.zip')
    session.load_constructor()
    session.load_instance()
    session.load_method('add', int, int)
    session.invoke(2, 3).value         # 5
    session.load_method('negate', int)
    session.invoke(4).value            # -4, same instance as receiver

Constructor and instance steps may be skipped when the method is static.
Lookup and call failures come back inside ``LoadResult``/``InvokeResult``;
calling a step out of order raises ``PreconditionError`` and a bad location
raises ``ConfigurationError``.

A session is not safe for concurrent use; give each thread its own session
or serialize access externally. Scopes may be shared freely.
"""
import enum
import logging
from dataclasses import dataclass, replace
from typing import Any, List, Optional

import httpx

from reflector_server.core.errors import (
    ConfigurationError,
    InvocationError,
    MemberResolutionError,
    PreconditionError,
    ReflectorError,
    TypeResolutionError,
)
from reflector_server.runtime.descriptors import (
    ConstructorDescriptor,
    InvokeResult,
    LoadResult,
    MethodDescriptor,
    TypeDescriptor,
)
from reflector_server.runtime.loader import SYSTEM_SCOPE, IsolatedScope, LookupScope, build_scope, resolve_type
from reflector_server.runtime.signatures import check_arguments, find_constructor, find_method, type_label

_log = logging.getLogger(__name__)


class SessionState(enum.IntEnum):
    EMPTY = 0
    TYPE_LOADED = 1
    CONSTRUCTOR_LOADED = 2
    INSTANCE_READY = 3
    METHOD_LOADED = 4


@dataclass(frozen=True)
class _Held:
    """Descriptors currently held; replaced as a whole so updates are atomic."""

    type: Optional[TypeDescriptor] = None
    constructor: Optional[ConstructorDescriptor] = None
    instance: Any = None
    method: Optional[MethodDescriptor] = None

    @property
    def state(self) -> SessionState:
        if self.method is not None:
            return SessionState.METHOD_LOADED
        if self.instance is not None:
            return SessionState.INSTANCE_READY
        if self.constructor is not None:
            return SessionState.CONSTRUCTOR_LOADED
        if self.type is not None:
            return SessionState.TYPE_LOADED
        return SessionState.EMPTY


_EMPTY = _Held()


class ReflectionSession:
    def __init__(self, scope: Optional[LookupScope] = None):
        if scope is not None and not isinstance(scope, LookupScope):
            raise ConfigurationError(f"scope must be a LookupScope, got {type(scope).__name__}")
        self._scope = scope
        self._held = _EMPTY
        self._owned_scopes: List[IsolatedScope] = []
        self._last_error: Optional[ReflectorError] = None

    # -- read-only accessors ------------------------------------------------

    @property
    def scope(self) -> Optional[LookupScope]:
        return self._scope

    @property
    def type_descriptor(self) -> Optional[TypeDescriptor]:
        return self._held.type

    @property
    def constructor(self) -> Optional[ConstructorDescriptor]:
        return self._held.constructor

    @property
    def instance(self) -> Any:
        return self._held.instance

    @property
    def state(self) -> SessionState:
        return self._held.state

    @property
    def last_error(self) -> Optional[ReflectorError]:
        return self._last_error

    # -- transitions ----------------------------------------------------------

    def record_failure(self, error: ReflectorError, result_cls=LoadResult):
        """Remember error as the last failure and wrap it in a result."""
        self._last_error = error
        if isinstance(error, InvocationError):
            _log.warning("reflection call failed: %s", error.message)
        else:
            _log.info("reflection lookup failed: %s", error.message)
        return result_cls(error=error)

    def _require_type(self) -> _Held:
        held = self._held
        if held.type is None:
            raise PreconditionError("no type loaded")
        return held

    def _replace_scope(self, new_scope: LookupScope) -> None:
        """Hold new_scope and close owned scopes it no longer delegates to."""
        self._scope = new_scope
        keep = set()
        current: Optional[LookupScope] = new_scope
        while current is not None:
            keep.add(id(current))
            current = current.parent
        for old in [s for s in self._owned_scopes if id(s) not in keep]:
            self._owned_scopes.remove(old)
            old.close()

    def load_type(
        self,
        qualified_name: str,
        *locations,
        scope: Optional[LookupScope] = None,
        parent: Optional[LookupScope] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> LoadResult:
        """Resolve a class and make it the session's call target.

        With ``locations`` a new isolated scope is built (delegating to
        ``parent``, default the system scope) and kept for later loads. With
        ``scope`` that scope is used and kept. With neither, the held scope is
        reused, falling back to the system scope.

        All held descriptors are cleared before resolution starts, so a failed
        load leaves the session empty.
        """
        self._held = _EMPTY
        self._last_error = None
        if locations and scope is not None:
            raise ConfigurationError("pass either locations or a scope, not both")
        if locations:
            new_scope = build_scope(locations, parent=parent, http_client=http_client)
            self._owned_scopes.append(new_scope)
            self._replace_scope(new_scope)
        elif scope is not None:
            if not isinstance(scope, LookupScope):
                raise ConfigurationError(f"scope must be a LookupScope, got {type(scope).__name__}")
            self._replace_scope(scope)
        elif parent is not None:
            raise ConfigurationError("a parent scope only applies when locations are given")

        try:
            descriptor = resolve_type(self._scope or SYSTEM_SCOPE, qualified_name)
        except TypeResolutionError as exc:
            return self.record_failure(exc)
        self._held = _Held(type=descriptor)
        _log.debug("loaded type %s", descriptor.qualified_name)
        return LoadResult(value=descriptor)

    def load_constructor(self, *param_types) -> LoadResult:
        held = self._require_type()
        try:
            descriptor = find_constructor(held.type, param_types)
        except MemberResolutionError as exc:
            return self.record_failure(exc)
        self._held = replace(held, constructor=descriptor)
        self._last_error = None
        _log.debug("loaded constructor %s(%s)", held.type.qualified_name, ', '.join(map(type_label, param_types)))
        return LoadResult(value=descriptor)

    def load_instance(self, *args) -> LoadResult:
        held = self._held
        if held.constructor is None:
            raise PreconditionError("no constructor loaded")
        member = f"{held.type.qualified_name}()"
        error = check_arguments(held.constructor.param_types, args, member)
        if error is not None:
            return self.record_failure(error)
        try:
            instance = held.constructor.new_instance(args)
        except Exception as exc:  # noqa: BLE001 - target code may raise anything
            return self.record_failure(InvocationError(f"{member} raised {type(exc).__name__}: {exc}", cause=exc))
        self._held = replace(held, instance=instance)
        self._last_error = None
        _log.debug("created instance of %s", held.type.qualified_name)
        return LoadResult(value=instance)

    def adopt_instance(self, instance: Any) -> LoadResult:
        """Use an instance created elsewhere as the receiver for instance methods."""
        held = self._require_type()
        if not isinstance(instance, held.type.target):
            return self.record_failure(InvocationError(
                f"receiver must be an instance of {held.type.qualified_name}, got {type(instance).__name__}"
            ))
        self._held = replace(held, instance=instance)
        self._last_error = None
        return LoadResult(value=instance)

    def load_method(self, name: str, *param_types) -> LoadResult:
        held = self._require_type()
        try:
            descriptor = find_method(held.type, name, param_types)
        except MemberResolutionError as exc:
            return self.record_failure(exc)
        self._held = replace(held, method=descriptor)
        self._last_error = None
        _log.debug("loaded %s method %s.%s", descriptor.kind.value, held.type.qualified_name, name)
        return LoadResult(value=descriptor)

    def invoke(self, *args) -> InvokeResult:
        """Call the loaded method; the held instance is the receiver when present.

        Failures, including an instance method with no instance to call it
        on, produce an ``InvokeResult`` with ``value`` None and the error set;
        the held descriptors are left as they were.
        """
        held = self._held
        method = held.method
        if method is None:
            raise PreconditionError("no method loaded")
        member = f"{held.type.qualified_name}.{method.name}"
        if method.kind.needs_receiver and held.instance is None:
            return self.record_failure(InvocationError(
                f"{member} is an instance method but no instance is loaded", missing_receiver=True,
            ), InvokeResult)
        error = check_arguments(method.param_types, args, member)
        if error is not None:
            return self.record_failure(error, InvokeResult)
        try:
            value = method.bind(held.instance)(*args)
        except Exception as exc:  # noqa: BLE001 - target code may raise anything
            return self.record_failure(InvocationError(f"{member} raised {type(exc).__name__}: {exc}", cause=exc), InvokeResult)
        self._last_error = None
        return InvokeResult(value=value)

    # -- lifecycle ------------------------------------------------------------

    def describe(self) -> dict:
        held = self._held
        return {
            'state': held.state.name,
            'scope': self._scope.describe() if self._scope is not None else None,
            'type': held.type.qualified_name if held.type else None,
            'constructor': [type_label(t) for t in held.constructor.param_types] if held.constructor else None,
            'instance': repr(held.instance) if held.instance is not None else None,
            'method': {
                'name': held.method.name,
                'params': [type_label(t) for t in held.method.param_types],
                'kind': held.method.kind.value,
            } if held.method else None,
            'last_error': self._last_error.to_dict() if self._last_error else None,
        }

    def close(self) -> None:
        """Drop held descriptors and close the scopes this session built."""
        self._held = _EMPTY
        self._scope = None
        while self._owned_scopes:
            self._owned_scopes.pop().close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
