from __future__ import annotations

import enum
import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional, Tuple

from reflector_server.core.errors import ReflectorError

if TYPE_CHECKING:  # pragma: no cover
    from reflector_server.runtime.loader import LookupScope


class MemberKind(str, enum.Enum):
    INSTANCE = 'instance'
    STATIC = 'static'
    CLASS = 'class'

    @property
    def needs_receiver(self) -> bool:
        return self is MemberKind.INSTANCE


@dataclass(frozen=True)
class TypeDescriptor:
    qualified_name: str
    target: type
    scope: 'LookupScope' = field(repr=False, compare=False)

    @property
    def module(self) -> str:
        return getattr(self.target, '__module__', '') or ''


@dataclass(frozen=True)
class ConstructorDescriptor:
    type: TypeDescriptor
    param_types: Tuple[Any, ...]
    signature: inspect.Signature = field(repr=False, compare=False)

    def new_instance(self, args: Tuple[Any, ...]) -> Any:
        return self.type.target(*args)


@dataclass(frozen=True)
class MethodDescriptor:
    type: TypeDescriptor
    name: str
    param_types: Tuple[Any, ...]
    kind: MemberKind
    signature: inspect.Signature = field(repr=False, compare=False)

    @property
    def is_static(self) -> bool:
        return not self.kind.needs_receiver

    def bind(self, receiver: Any) -> Callable[..., Any]:
        """Return the callable for this member, bound to receiver when it needs one."""
        if self.kind.needs_receiver:
            # resolved on the class so instance attributes cannot shadow the member
            return getattr(type(receiver), self.name).__get__(receiver, type(receiver))
        return getattr(self.type.target, self.name)


@dataclass
class LoadResult:
    """Outcome of a session load step; the descriptor on success."""

    value: Any = None
    error: Optional[ReflectorError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value

    def to_dict(self) -> dict:
        return {'ok': self.ok, 'error': self.error.to_dict() if self.error else None}


@dataclass
class InvokeResult(LoadResult):
    """Outcome of invoke; value is None when the call failed or returned nothing."""
