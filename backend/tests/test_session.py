"""
Tests for the reflection session state machine.

Exercises every transition, the reset-before-resolve behaviour of
load_type, and how recoverable failures are reported.
"""

import pytest

from reflector_server.core.errors import (
    ConfigurationError,
    InvocationError,
    MemberResolutionError,
    PreconditionError,
    TypeResolutionError,
)
from reflector_server.runtime.descriptors import MemberKind
from reflector_server.runtime.loader import SYSTEM_SCOPE, build_scope
from reflector_server.runtime.session import ReflectionSession, SessionState


def _assert_empty(session: ReflectionSession):
    assert session.state is SessionState.EMPTY
    assert session.type_descriptor is None
    assert session.constructor is None
    assert session.instance is None


@pytest.fixture
def session():
    s = ReflectionSession()
    yield s
    s.close()


@pytest.fixture
def calc_session(session, targets_uri):
    """Session holding a constructed Calculator instance."""
    assert session.load_type('calcpkg.ops.Calculator', targets_uri).ok
    assert session.load_constructor().ok
    assert session.load_instance().ok
    return session


class TestPreconditions:
    """Steps called before a successful load_type raise PreconditionError."""

    def test_load_constructor_without_type(self, session):
        with pytest.raises(PreconditionError, match='no type loaded'):
            session.load_constructor()
        _assert_empty(session)

    def test_load_method_without_type(self, session):
        with pytest.raises(PreconditionError, match='no type loaded'):
            session.load_method('add', int, int)
        _assert_empty(session)

    def test_load_instance_without_constructor(self, session):
        with pytest.raises(PreconditionError, match='no constructor loaded'):
            session.load_instance()
        _assert_empty(session)

    def test_load_instance_with_type_but_no_constructor(self, session, targets_uri):
        session.load_type('calcpkg.ops.Calculator', targets_uri)
        with pytest.raises(PreconditionError):
            session.load_instance()
        assert session.state is SessionState.TYPE_LOADED

    def test_invoke_without_method(self, calc_session):
        with pytest.raises(PreconditionError, match='no method loaded'):
            calc_session.invoke()

    def test_preconditions_after_failed_load_type(self, session):
        result = session.load_type('nosuchpkg.Thing')
        assert not result.ok
        with pytest.raises(PreconditionError):
            session.load_method('anything')
        _assert_empty(session)


class TestLoadType:
    """load_type clears every descriptor before it resolves."""

    def test_success(self, session, targets_uri):
        result = session.load_type('calcpkg.ops.Calculator', targets_uri)
        assert result.ok
        assert result.value is session.type_descriptor
        assert session.state is SessionState.TYPE_LOADED
        assert session.scope is result.value.scope

    def test_reload_same_name_clears_downstream(self, calc_session):
        calc_session.load_method('add', int, int)
        scope = calc_session.scope
        result = calc_session.load_type('calcpkg.ops.Calculator')
        assert result.ok
        assert calc_session.scope is scope
        assert calc_session.constructor is None
        assert calc_session.instance is None
        assert calc_session.state is SessionState.TYPE_LOADED
        with pytest.raises(PreconditionError):
            calc_session.invoke(1, 2)

    def test_failure_leaves_session_empty(self, calc_session):
        result = calc_session.load_type('calcpkg.ops.DoesNotExist')
        assert not result.ok
        assert isinstance(result.error, TypeResolutionError)
        assert calc_session.last_error is result.error
        _assert_empty(calc_session)

    def test_failure_is_not_raised(self, session):
        result = session.load_type('calcpkg.ops.Calculator')
        assert isinstance(result.error, TypeResolutionError)
        with pytest.raises(TypeResolutionError):
            result.unwrap()

    def test_bad_location_raises_configuration_error(self, calc_session):
        with pytest.raises(ConfigurationError):
            calc_session.load_type('calcpkg.ops.Calculator', 'no scheme here')
        _assert_empty(calc_session)

    def test_locations_and_scope_are_exclusive(self, session, targets_uri, targets_scope):
        with pytest.raises(ConfigurationError):
            session.load_type('calcpkg.ops.Calculator', targets_uri, scope=targets_scope)

    def test_parent_without_locations(self, session, targets_scope):
        with pytest.raises(ConfigurationError):
            session.load_type('calcpkg.ops.Calculator', parent=targets_scope)

    def test_shared_scope(self, targets_scope):
        one, two = ReflectionSession(), ReflectionSession()
        assert one.load_type('calcpkg.ops.Calculator', scope=targets_scope).ok
        assert two.load_type('calcpkg.ops.Calculator', scope=targets_scope).ok
        assert one.type_descriptor.target is two.type_descriptor.target
        one.close()
        two.close()
        assert not targets_scope.closed

    def test_system_scope_default(self, session):
        assert session.load_type('collections.Counter').ok
        assert session.type_descriptor.scope is SYSTEM_SCOPE

    def test_session_constructed_with_scope(self, targets_scope):
        s = ReflectionSession(scope=targets_scope)
        assert s.load_type('calcpkg.ops.Money').ok
        assert s.scope is targets_scope

    def test_parent_scope(self, session, targets_scope, ext_targets_uri):
        assert session.load_type('extpkg.Extension', ext_targets_uri, parent=targets_scope).ok
        session.load_constructor()
        session.load_instance()
        session.load_method('total', int, int)
        assert session.invoke(1, 2).value == 30

    def test_new_locations_close_replaced_scope(self, session, targets_uri):
        session.load_type('calcpkg.ops.Calculator', targets_uri)
        old_scope = session.scope
        assert session.load_type('calcpkg.ops.Calculator', targets_uri).ok
        assert old_scope.closed
        assert not session.scope.closed
        assert session._owned_scopes == [session.scope]

    def test_owned_parent_stays_open_for_child(self, session, targets_uri, ext_targets_uri):
        session.load_type('calcpkg.ops.Calculator', targets_uri)
        parent = session.scope
        assert session.load_type('extpkg.Extension', ext_targets_uri, parent=parent).ok
        assert not parent.closed
        assert len(session._owned_scopes) == 2

    def test_borrowed_scope_closes_owned_ones(self, session, targets_uri, targets_scope):
        session.load_type('calcpkg.ops.Calculator', targets_uri)
        owned = session.scope
        assert session.load_type('calcpkg.ops.Money', scope=targets_scope).ok
        assert owned.closed
        assert session._owned_scopes == []
        assert not targets_scope.closed


class TestConstructorAndInstance:
    def test_default_constructor(self, session, targets_uri):
        session.load_type('calcpkg.ops.Plain', targets_uri)
        result = session.load_constructor()
        assert result.ok
        assert result.value.param_types == ()
        assert session.state is SessionState.CONSTRUCTOR_LOADED

    def test_constructor_with_signature(self, session, targets_uri):
        session.load_type('calcpkg.ops.Money', targets_uri)
        assert session.load_constructor(int, str).ok
        result = session.load_instance(5, 'EUR')
        assert result.ok
        assert session.instance is result.value
        assert session.state is SessionState.INSTANCE_READY
        assert session.instance.amount == 5

    def test_constructor_signature_mismatch(self, session, targets_uri):
        session.load_type('calcpkg.ops.Money', targets_uri)
        result = session.load_constructor(str, int)
        assert isinstance(result.error, MemberResolutionError)
        assert session.constructor is None
        assert session.state is SessionState.TYPE_LOADED

    def test_failed_constructor_keeps_previous(self, session, targets_uri):
        session.load_type('calcpkg.ops.Money', targets_uri)
        session.load_constructor(int, str)
        previous = session.constructor
        assert not session.load_constructor(int).ok
        assert session.constructor is previous

    def test_constructor_raises(self, session, targets_uri):
        session.load_type('calcpkg.ops.Money', targets_uri)
        session.load_constructor(int, str)
        result = session.load_instance(-1, 'EUR')
        assert isinstance(result.error, InvocationError)
        assert isinstance(result.error.cause, ValueError)
        assert session.instance is None

    def test_instance_wrong_arity(self, session, targets_uri):
        session.load_type('calcpkg.ops.Money', targets_uri)
        session.load_constructor(int, str)
        result = session.load_instance(5)
        assert isinstance(result.error, InvocationError)
        assert 'expects 2 argument(s)' in result.error.message

    def test_instance_wrong_type(self, session, targets_uri):
        session.load_type('calcpkg.ops.Money', targets_uri)
        session.load_constructor(int, str)
        result = session.load_instance('5', 'EUR')
        assert isinstance(result.error, InvocationError)

    def test_failed_instance_keeps_previous(self, session, targets_uri):
        session.load_type('calcpkg.ops.Money', targets_uri)
        session.load_constructor(int, str)
        session.load_instance(5, 'EUR')
        held = session.instance
        assert not session.load_instance(-5, 'EUR').ok
        assert session.instance is held

    def test_adopt_instance(self, session, targets_uri):
        session.load_type('calcpkg.ops.Calculator', targets_uri)
        calc = session.type_descriptor.target()
        calc.remember(9)
        assert session.adopt_instance(calc).ok
        session.load_method('recall')
        assert session.invoke().value == 9

    def test_adopt_wrong_instance(self, session, targets_uri):
        session.load_type('calcpkg.ops.Calculator', targets_uri)
        result = session.adopt_instance(object())
        assert isinstance(result.error, InvocationError)
        assert session.instance is None


class TestMethodsAndInvoke:
    def test_round_trip_add(self, calc_session):
        result = calc_session.load_method('add', int, int)
        assert result.ok
        assert calc_session.state is SessionState.METHOD_LOADED
        assert calc_session.invoke(2, 3).value == 5

    def test_static_method_without_instance(self, session, targets_uri):
        session.load_type('calcpkg.ops.Calculator', targets_uri)
        result = session.load_method('square', int)
        assert result.value.kind is MemberKind.STATIC
        outcome = session.invoke(7)
        assert outcome.ok
        assert outcome.value == 49
        assert session.constructor is None

    def test_class_method_without_instance(self, session, targets_uri):
        session.load_type('calcpkg.ops.Calculator', targets_uri)
        session.load_method('create')
        created = session.invoke().value
        assert isinstance(created, session.type_descriptor.target)

    def test_builtin_types(self, session):
        session.load_type('int')
        assert session.load_method('from_bytes', bytes, str).ok is False
        session.load_type('str')
        assert session.adopt_instance('abc').ok
        assert session.load_method('upper').ok
        assert session.invoke().value == 'ABC'

    def test_instance_method_without_instance(self, session, targets_uri):
        session.load_type('calcpkg.ops.Calculator', targets_uri)
        session.load_method('add', int, int)
        result = session.invoke(2, 3)
        assert result.value is None
        assert isinstance(result.error, InvocationError)
        assert result.error.missing_receiver
        assert session.last_error is result.error
        # still usable afterwards
        session.load_method('square', int)
        assert session.invoke(3).value == 9

    def test_exact_signature(self, calc_session):
        result = calc_session.load_method('f', float)
        assert isinstance(result.error, MemberResolutionError)
        assert calc_session.load_method('f', int).ok

    def test_pivot_method_reuses_instance(self, calc_session):
        instance = calc_session.instance
        calc_session.load_method('remember', int)
        calc_session.invoke(11)
        calc_session.load_method('recall')
        assert calc_session.instance is instance
        assert calc_session.invoke().value == 11
        calc_session.load_method('negate', int)
        assert calc_session.invoke(4).value == -4

    def test_instance_attribute_does_not_shadow_method(self, calc_session):
        calc_session.load_method('recall')
        calc_session.instance.recall = lambda: 'shadow'
        assert calc_session.invoke().value == 0

    def test_subclass_override_is_used(self, session, targets_uri):
        session.load_type('calcpkg.ops.Calculator', targets_uri)
        base = session.type_descriptor.target

        class Loud(base):
            def negate(self, value: int) -> int:
                return -value * 10

        assert session.adopt_instance(Loud()).ok
        session.load_method('negate', int)
        assert session.invoke(2).value == -20

    def test_failed_method_keeps_previous(self, calc_session):
        calc_session.load_method('add', int, int)
        assert not calc_session.load_method('missing').ok
        assert calc_session.invoke(1, 1).value == 2

    def test_invoke_failure_keeps_descriptors(self, calc_session):
        calc_session.load_method('divide', int, int)
        result = calc_session.invoke(1, 0)
        assert isinstance(result.error, InvocationError)
        assert isinstance(result.error.cause, ZeroDivisionError)
        assert calc_session.state is SessionState.METHOD_LOADED
        assert calc_session.invoke(6, 3).value == 2

    def test_invoke_wrong_arity(self, calc_session):
        calc_session.load_method('add', int, int)
        result = calc_session.invoke(1)
        assert isinstance(result.error, InvocationError)
        assert result.value is None

    def test_int_accepted_for_float(self, calc_session):
        calc_session.load_method('scale', float)
        assert calc_session.invoke(2).value == 3.0

    def test_private_method_not_resolvable(self, calc_session):
        assert isinstance(calc_session.load_method('_hidden').error, MemberResolutionError)

    def test_keyword_only_method_not_resolvable(self, calc_session):
        assert not calc_session.load_method('configure').ok
        assert not calc_session.load_method('configure', bool).ok

    def test_property_is_not_a_method(self, calc_session):
        result = calc_session.load_method('doubled_memory')
        assert isinstance(result.error, MemberResolutionError)

    def test_reload_constructor_to_rewrap(self, session, targets_uri):
        session.load_type('calcpkg.ops.Money', targets_uri)
        session.load_constructor(int, str)
        session.load_instance(2, 'EUR')
        session.load_method('plus', 'Money')
        other = session.type_descriptor.target(3, 'EUR')
        total = session.invoke(other).value
        assert total.amount == 5
        session.load_constructor(int, str)
        assert session.instance is not None
        session.load_instance(total.amount, total.currency)
        assert session.instance.amount == 5


class TestLifecycle:
    def test_describe(self, calc_session):
        calc_session.load_method('add', int, int)
        info = calc_session.describe()
        assert info['state'] == 'METHOD_LOADED'
        assert info['type'] == 'calcpkg.ops.Calculator'
        assert info['constructor'] == []
        assert info['method'] == {'name': 'add', 'params': ['int', 'int'], 'kind': 'instance'}

    def test_success_clears_last_error(self, calc_session):
        assert not calc_session.load_method('missing').ok
        assert calc_session.describe()['last_error']['code'] == 'MEMBER_RESOLUTION_ERROR'
        assert calc_session.load_method('add', int, int).ok
        assert calc_session.last_error is None
        assert calc_session.describe()['last_error'] is None

        assert not calc_session.load_constructor(int).ok
        assert calc_session.load_constructor().ok
        assert calc_session.last_error is None

        assert not calc_session.load_instance(1).ok
        assert calc_session.load_instance().ok
        assert calc_session.last_error is None

        assert not calc_session.adopt_instance(object()).ok
        assert calc_session.adopt_instance(calc_session.instance).ok
        assert calc_session.last_error is None

    def test_close_closes_owned_scopes(self, targets_uri):
        with ReflectionSession() as s:
            s.load_type('calcpkg.ops.Calculator', targets_uri)
            scope = s.scope
        assert scope.closed
        _assert_empty(s)
        assert s.scope is None

    def test_close_leaves_borrowed_scope_open(self, targets_uri):
        scope = build_scope([targets_uri])
        with ReflectionSession() as s:
            s.load_type('calcpkg.ops.Calculator', scope=scope)
        assert not scope.closed
        scope.close()
