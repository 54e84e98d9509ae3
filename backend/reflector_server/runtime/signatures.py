from __future__ import annotations
"""Member lookup by exact parameter-type signature.

A member's signature is the ordered list of its positional parameters after
``self``/``cls``. Lookup never widens or picks a most specific overload:
every requested parameter type must match the declared annotation exactly.
String identifiers (used by the HTTP and plan surfaces, and produced by
unevaluated string annotations) are compared by simple or dotted name.
"""
import inspect
import typing
from typing import Any, Callable, Iterable, Optional, Sequence, Set, Tuple

from reflector_server.core.errors import InvocationError, MemberResolutionError, TypeResolutionError
from reflector_server.runtime.descriptors import (
    ConstructorDescriptor,
    MemberKind,
    MethodDescriptor,
    TypeDescriptor,
)

_ANY_NAMES = frozenset({'object', 'builtins.object', 'Any', 'typing.Any'})
_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
_EMPTY = inspect.Parameter.empty

# PEP 484 numeric tower: an int is acceptable where a float or complex is declared.
_NUMERIC_PROMOTIONS = {float: (int,), complex: (int, float)}


def type_label(value: Any) -> str:
    if isinstance(value, str):
        return value
    if inspect.isclass(value):
        if value.__module__ == 'builtins':
            return value.__qualname__
        return f"{value.__module__}.{value.__qualname__}"
    if value is _EMPTY:
        return 'Any'
    return repr(value).replace('typing.', '')


def _names(value: Any) -> Set[str]:
    if isinstance(value, str):
        text = value.strip()
        names = {text}
        for prefix in ('builtins.', 'typing.'):
            if text.startswith(prefix):
                names.add(text[len(prefix):])
        return names
    if value is typing.Any:
        return {'Any', 'typing.Any'}
    if inspect.isclass(value):
        qualname = getattr(value, '__qualname__', value.__name__)
        return {qualname, f"{value.__module__}.{qualname}"}
    return {type_label(value)}


def _is_any(wanted: Any) -> bool:
    if wanted is object or wanted is typing.Any:
        return True
    return isinstance(wanted, str) and wanted.strip() in _ANY_NAMES


def type_matches(annotation: Any, wanted: Any) -> bool:
    """Exact comparison of one declared parameter type with a requested one."""
    if annotation is _EMPTY or annotation is typing.Any:
        return _is_any(wanted)
    if isinstance(annotation, str) or isinstance(wanted, str):
        return bool(_names(annotation) & _names(wanted))
    if annotation is wanted:
        return True
    if inspect.isclass(annotation) or inspect.isclass(wanted):
        return False
    try:
        return bool(annotation == wanted)
    except Exception:  # noqa: BLE001 - exotic annotation objects
        return False


def member_signature(func: Callable[..., Any]) -> inspect.Signature:
    try:
        return inspect.signature(func, eval_str=True)
    except (ValueError, TypeError):
        raise
    except Exception:  # noqa: BLE001 - annotations referring to names that no longer resolve
        return inspect.signature(func)


def positional_annotations(sig: inspect.Signature, *, skip_first: bool = False) -> Optional[Tuple[Any, ...]]:
    """Return the positional parameter annotations, or None when the member can never match.

    Required keyword-only parameters make a member uncallable with positional
    arguments alone.
    """
    params = list(sig.parameters.values())
    if skip_first and params and params[0].kind in _POSITIONAL:
        params = params[1:]
    annotations = []
    for param in params:
        if param.kind in _POSITIONAL:
            annotations.append(param.annotation)
        elif param.kind is inspect.Parameter.KEYWORD_ONLY and param.default is _EMPTY:
            return None
    return tuple(annotations)


def signature_matches(annotations: Optional[Sequence[Any]], wanted: Sequence[Any]) -> bool:
    if annotations is None or len(annotations) != len(wanted):
        return False
    return all(type_matches(a, w) for a, w in zip(annotations, wanted))


def _describe(name: str, wanted: Sequence[Any]) -> str:
    return f"{name}({', '.join(type_label(w) for w in wanted)})"


def _constructor_signature(cls: type) -> Tuple[inspect.Signature, bool]:
    if cls.__init__ is object.__init__:
        if cls.__new__ is object.__new__:
            return inspect.Signature(), False
        return member_signature(cls.__new__), True
    return member_signature(cls.__init__), True


def find_constructor(descriptor: TypeDescriptor, param_types: Sequence[Any]) -> ConstructorDescriptor:
    wanted = tuple(param_types)
    cls = descriptor.target
    label = _describe(descriptor.qualified_name, wanted)
    try:
        sig, has_receiver = _constructor_signature(cls)
    except (ValueError, TypeError) as exc:
        raise MemberResolutionError(f"constructor of {descriptor.qualified_name} is not introspectable: {exc}", member=label) from exc
    declared = positional_annotations(sig, skip_first=has_receiver)
    if not signature_matches(declared, wanted):
        found = _describe(descriptor.qualified_name, declared) if declared is not None else 'keyword-only constructor'
        raise MemberResolutionError(f"no constructor {label}; declared {found}", member=label)
    return ConstructorDescriptor(type=descriptor, param_types=wanted, signature=sig)


def _lookup_raw(cls: type, name: str) -> Any:
    for klass in inspect.getmro(cls):
        namespace = vars(klass)
        if name in namespace:
            return namespace[name]
    return _EMPTY


def _is_public(name: str) -> bool:
    if name.startswith('__') and name.endswith('__'):
        return True
    return not name.startswith('_')


def find_method(descriptor: TypeDescriptor, name: str, param_types: Sequence[Any]) -> MethodDescriptor:
    wanted = tuple(param_types)
    cls = descriptor.target
    label = _describe(f"{descriptor.qualified_name}.{name}", wanted)
    if not isinstance(name, str) or not name.isidentifier():
        raise MemberResolutionError(f"invalid method name: {name!r}", member=label)
    if not _is_public(name):
        raise MemberResolutionError(f"method {label} is not public", member=label)
    raw = _lookup_raw(cls, name)
    if raw is _EMPTY:
        raise MemberResolutionError(f"no method {label}", member=label)

    if isinstance(raw, staticmethod):
        kind = MemberKind.STATIC
    elif isinstance(raw, classmethod) or type(raw).__name__ == 'classmethod_descriptor':
        kind = MemberKind.CLASS
    elif inspect.isfunction(raw) or inspect.ismethoddescriptor(raw):
        kind = MemberKind.INSTANCE
    else:
        raise MemberResolutionError(f"{descriptor.qualified_name}.{name} is not a method", member=label)

    try:
        if kind is MemberKind.INSTANCE:
            sig = member_signature(raw)
        else:
            # bound through the class, so cls is already gone from the signature
            sig = member_signature(getattr(cls, name))
    except (ValueError, TypeError) as exc:
        raise MemberResolutionError(f"method {label} is not introspectable: {exc}", member=label) from exc
    declared = positional_annotations(sig, skip_first=kind is MemberKind.INSTANCE)
    if not signature_matches(declared, wanted):
        found = _describe(name, declared) if declared is not None else 'keyword-only parameters'
        raise MemberResolutionError(f"no method {label}; declared {found}", member=label)
    return MethodDescriptor(type=descriptor, name=name, param_types=wanted, kind=kind, signature=sig)


def _accepts(expected: Any, value: Any) -> bool:
    if not inspect.isclass(expected) or expected is object:
        return True
    if isinstance(value, expected):
        return True
    promoted = _NUMERIC_PROMOTIONS.get(expected, ())
    return isinstance(value, promoted) and not isinstance(value, bool)


def check_arguments(param_types: Sequence[Any], args: Sequence[Any], member: str) -> Optional[InvocationError]:
    """Validate call arguments against a loaded signature; returns the error instead of raising."""
    if len(args) != len(param_types):
        return InvocationError(f"{member} expects {len(param_types)} argument(s), got {len(args)}")
    for index, (expected, value) in enumerate(zip(param_types, args)):
        if not _accepts(expected, value):
            return InvocationError(
                f"argument {index} of {member}: expected {type_label(expected)}, got {type(value).__name__}"
            )
    return None


def resolve_type_refs(scope, refs: Iterable[Any]) -> Tuple[Any, ...]:
    """Turn string type identifiers into types resolved within scope.

    ``Any``/``None`` are understood; single names resolve against builtins and
    dotted names through the scope. Non-string entries pass through.
    """
    from reflector_server.runtime.loader import resolve_type

    resolved = []
    for ref in refs:
        if not isinstance(ref, str):
            resolved.append(ref)
            continue
        text = ref.strip()
        if text in ('Any', 'typing.Any'):
            resolved.append(typing.Any)
        elif text in ('None', 'NoneType'):
            resolved.append(type(None))
        else:
            try:
                resolved.append(resolve_type(scope, text).target)
            except TypeResolutionError as exc:
                raise MemberResolutionError(f"unknown parameter type {text!r}: {exc.message}", member=text) from exc
    return tuple(resolved)
