import sys
import pathlib
import pytest
from fastapi.testclient import TestClient

# Ensure backend root (containing the reflector_server package) is on sys.path
BACKEND_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from reflector_server.main import app
from reflector_server.api.sessions import get_registry
from reflector_server.runtime.loader import build_scope
from reflector_server.sessions.registry import SessionRegistry
from tests.test_targets import TARGETS_DIR, EXT_TARGETS_DIR, build_target_archive, location_for


@pytest.fixture
def targets_uri() -> str:
    """File URI of the directory holding the sample target packages."""
    return location_for(TARGETS_DIR)


@pytest.fixture
def ext_targets_uri() -> str:
    return location_for(EXT_TARGETS_DIR)


@pytest.fixture
def calc_archive(tmp_path) -> pathlib.Path:
    return build_target_archive(tmp_path / 'calc.zip', ['calcpkg'])


@pytest.fixture
def calc_archive_uri(calc_archive) -> str:
    return location_for(calc_archive)


@pytest.fixture
def targets_scope(targets_uri):
    scope = build_scope([targets_uri])
    yield scope
    scope.close()


@pytest.fixture
def session_registry():
    registry = SessionRegistry(max_sessions=4)
    app.dependency_overrides[get_registry] = lambda: registry
    yield registry
    app.dependency_overrides.pop(get_registry, None)
    registry.clear()


@pytest.fixture
def client(session_registry):
    with TestClient(app) as c:
        yield c
