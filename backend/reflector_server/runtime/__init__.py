"""Runtime resolution and reflective invocation of dynamically located code.

Typical use::

    session = ReflectionSession()
    session.load_type('calc.ops.Calculator', 'file:///opt/targets/calc.zip')
    session.load_constructor()
    session.load_instance()
    session.load_method('add', int, int)
    total = session.invoke(2, 3).value
"""
from reflector_server.runtime.descriptors import (
    ConstructorDescriptor,
    InvokeResult,
    LoadResult,
    MemberKind,
    MethodDescriptor,
    TypeDescriptor,
)
from reflector_server.runtime.loader import (
    SYSTEM_SCOPE,
    IsolatedScope,
    LookupScope,
    SystemScope,
    build_scope,
    parse_location,
    resolve_type,
)
from reflector_server.runtime.session import ReflectionSession, SessionState

__all__ = [
    'ConstructorDescriptor',
    'InvokeResult',
    'IsolatedScope',
    'LoadResult',
    'LookupScope',
    'MemberKind',
    'MethodDescriptor',
    'ReflectionSession',
    'SYSTEM_SCOPE',
    'SessionState',
    'SystemScope',
    'TypeDescriptor',
    'build_scope',
    'parse_location',
    'resolve_type',
]
