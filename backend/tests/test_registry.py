import pytest

from reflector_server.runtime.session import SessionState
from reflector_server.sessions.registry import SessionLimitError, SessionRegistry


class TestSessionRegistry:
    """Test the in-memory session registry."""

    def test_create_and_get(self):
        reg = SessionRegistry(max_sessions=2)
        entry = reg.create()
        assert reg.get(entry.id) is entry
        assert entry.session.state is SessionState.EMPTY
        assert len(reg) == 1

    def test_limit(self):
        reg = SessionRegistry(max_sessions=1)
        reg.create()
        with pytest.raises(SessionLimitError) as info:
            reg.create()
        assert info.value.to_dict()['code'] == 'SESSION_LIMIT'

    def test_list_is_ordered_by_creation(self):
        reg = SessionRegistry(max_sessions=3)
        ids = [reg.create().id for _ in range(3)]
        assert [e.id for e in reg.list()] == ids

    def test_discard_closes_owned_scope(self, targets_uri):
        reg = SessionRegistry()
        entry = reg.create()
        assert entry.session.load_type('calcpkg.ops.Calculator', targets_uri).ok
        scope = entry.session.scope
        assert reg.discard(entry.id)
        assert scope.closed
        assert reg.get(entry.id) is None
        assert not reg.discard(entry.id)

    def test_clear(self):
        reg = SessionRegistry()
        reg.create()
        reg.create()
        reg.clear()
        assert len(reg) == 0
