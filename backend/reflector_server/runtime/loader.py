from __future__ import annotations
"""Dynamic module loader.

Builds lookup scopes from location URIs and resolves fully qualified type
names inside them. An ``IsolatedScope`` searches its own directories and
zip archives first and only then delegates to its parent. The root of every
chain is ``SYSTEM_SCOPE``, the interpreter's regular import system.

Modules loaded by an isolated scope are cached on the scope and never left
in ``sys.modules``: two scopes built over the same archive hold separate
module objects, and module-level code runs once per scope.
"""
import builtins, importlib, importlib.abc, importlib.machinery, importlib.util
import inspect, logging, pathlib, sys, tempfile, threading, types
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Union
from urllib.parse import unquote, urlparse

import httpx

from reflector_server.core.config import settings
from reflector_server.core.errors import ConfigurationError, PreconditionError, TypeResolutionError
from reflector_server.runtime.descriptors import TypeDescriptor

_log = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ('file', 'http', 'https')

# sys.modules and sys.meta_path are process-wide, so scope activation is serialized.
_IMPORT_LOCK = threading.RLock()
_active_scopes: List["IsolatedScope"] = []

LocationLike = Union[str, pathlib.PurePath]


@dataclass(frozen=True)
class Location:
    uri: str
    scheme: str
    path: str

    @property
    def remote(self) -> bool:
        return self.scheme in ('http', 'https')


def parse_location(location: LocationLike) -> Location:
    """Validate one location reference and split it into scheme and path.

    ``pathlib`` paths are accepted and converted to ``file`` URIs. Strings
    must carry one of the supported schemes.
    """
    if isinstance(location, pathlib.PurePath):
        location = pathlib.Path(location).expanduser().resolve().as_uri()
    if not isinstance(location, str):
        raise ConfigurationError(f"malformed location: expected a URI string, got {type(location).__name__}")
    text = location.strip()
    if not text:
        raise ConfigurationError("malformed location: empty string")
    try:
        parsed = urlparse(text)
    except ValueError as exc:
        raise ConfigurationError(f"malformed location: {location!r} ({exc})") from exc
    scheme = parsed.scheme.lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise ConfigurationError(
            f"malformed location: {location!r} (scheme must be one of {', '.join(SUPPORTED_SCHEMES)})"
        )
    if scheme == 'file':
        if parsed.netloc not in ('', 'localhost'):
            raise ConfigurationError(f"malformed location: {location!r} (file URIs must be local)")
        path = unquote(parsed.path)
        if not path:
            raise ConfigurationError(f"malformed location: {location!r} (empty path)")
        return Location(uri=text, scheme=scheme, path=path)
    if not parsed.netloc:
        raise ConfigurationError(f"malformed location: {location!r} (missing host)")
    return Location(uri=text, scheme=scheme, path=text)


class LookupScope:
    """A namespace able to produce modules by dotted name."""

    parent: Optional['LookupScope'] = None

    def load_module(self, module_name: str) -> types.ModuleType:
        raise NotImplementedError

    def provides_locally(self, module_name: str) -> bool:
        return False

    def describe(self) -> dict:
        return {'kind': 'scope'}

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class SystemScope(LookupScope):
    """The engine's own defining scope: the interpreter's import system."""

    def load_module(self, module_name: str) -> types.ModuleType:
        return importlib.import_module(module_name)

    def describe(self) -> dict:
        return {'kind': 'system'}

    def __repr__(self) -> str:
        return 'SystemScope()'


SYSTEM_SCOPE = SystemScope()


class _PreloadedLoader(importlib.abc.Loader):
    """Hands an already loaded module (owned by another scope) to the import system."""

    def __init__(self, module: types.ModuleType):
        self._module = module
        self._spec = getattr(module, '__spec__', None)

    def create_module(self, spec):
        return self._module

    def exec_module(self, module):
        # the import system stamps its own spec on the module; put the owner's back
        module.__spec__ = self._spec


class _ScopeFinder(importlib.abc.MetaPathFinder):
    """Meta path finder installed while an isolated scope is importing."""

    def __init__(self, scope: 'IsolatedScope'):
        self._scope = scope
        self.delegated: Dict[str, types.ModuleType] = {}

    def find_spec(self, fullname, path=None, target=None):
        scope = self._scope
        if not _active_scopes or _active_scopes[-1] is not scope:
            return None
        if '.' not in fullname:
            spec = importlib.machinery.PathFinder.find_spec(fullname, scope.search_paths)
            if spec is not None:
                scope._local_roots.add(fullname)
                return spec
        elif fullname.partition('.')[0] in scope._local_roots:
            return importlib.machinery.PathFinder.find_spec(fullname, path)
        owner = scope._delegate_owner(fullname)
        if owner is None:
            return None
        module = owner.load_module(fullname)
        self.delegated[fullname] = module
        return importlib.util.spec_from_loader(
            fullname, _PreloadedLoader(module), is_package=hasattr(module, '__path__')
        )


class IsolatedScope(LookupScope):
    def __init__(
        self,
        locations: Sequence[Location],
        search_paths: Sequence[str],
        parent: LookupScope,
        workdir: Optional[tempfile.TemporaryDirectory] = None,
    ):
        self.locations = tuple(locations)
        self.search_paths: List[str] = list(search_paths)
        self.parent = parent
        self._workdir = workdir
        self._modules: Dict[str, types.ModuleType] = {}
        self._local_roots: Set[str] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def loaded_modules(self) -> List[str]:
        return sorted(self._modules)

    def provides_locally(self, module_name: str) -> bool:
        root = module_name.partition('.')[0]
        if root in self._local_roots:
            return True
        return importlib.machinery.PathFinder.find_spec(root, self.search_paths) is not None

    def _delegate_owner(self, module_name: str) -> Optional['IsolatedScope']:
        scope = self.parent
        while isinstance(scope, IsolatedScope):
            if scope.provides_locally(module_name):
                return scope
            scope = scope.parent
        return None

    def load_module(self, module_name: str) -> types.ModuleType:
        if self._closed:
            raise PreconditionError("lookup scope has been closed")
        cached = self._modules.get(module_name)
        if cached is not None:
            return cached
        if not self.provides_locally(module_name):
            return self.parent.load_module(module_name)
        with self._activated(module_name.partition('.')[0]):
            cached = self._modules.get(module_name)
            if cached is not None:
                return cached
            _log.debug("scope import module=%s paths=%s", module_name, self.search_paths)
            return importlib.import_module(module_name)

    @contextmanager
    def _activated(self, root: str) -> Iterator[_ScopeFinder]:
        """Temporarily expose this scope's modules through the global import state."""
        with _IMPORT_LOCK:
            roots = self._local_roots | {root}
            displaced = {
                name: sys.modules.pop(name)
                for name in list(sys.modules)
                if name.partition('.')[0] in roots
            }
            sys.modules.update(self._modules)
            finder = _ScopeFinder(self)
            sys.meta_path.insert(0, finder)
            _active_scopes.append(self)
            try:
                yield finder
            finally:
                _active_scopes.pop()
                try:
                    sys.meta_path.remove(finder)
                except ValueError:  # pragma: no cover
                    pass
                roots = self._local_roots | {root}
                for name in list(sys.modules):
                    if name.partition('.')[0] in roots:
                        self._modules[name] = sys.modules.pop(name)
                for name, module in finder.delegated.items():
                    if sys.modules.get(name) is module:
                        del sys.modules[name]
                sys.modules.update(displaced)

    def describe(self) -> dict:
        return {
            'kind': 'isolated',
            'locations': [loc.uri for loc in self.locations],
            'closed': self._closed,
            'parent': self.parent.describe() if self.parent is not None else None,
        }

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._modules.clear()
        for path in self.search_paths:
            sys.path_importer_cache.pop(path, None)
        if self._workdir is not None:
            self._workdir.cleanup()
            self._workdir = None
        _log.debug("closed scope locations=%s", [loc.uri for loc in self.locations])

    def __repr__(self) -> str:
        return f"IsolatedScope(locations={[loc.uri for loc in self.locations]!r})"


def _fetch_remote(location: Location, dest_dir: pathlib.Path, index: int, client: httpx.Client) -> pathlib.Path:
    name = pathlib.PurePosixPath(urlparse(location.uri).path).name or 'archive.zip'
    target = dest_dir / f'{index}_{name}'
    try:
        resp = client.get(location.uri)
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        raise ConfigurationError(f"unable to fetch location {location.uri}: {exc}") from exc
    target.write_bytes(resp.content)
    _log.info("fetched remote location url=%s bytes=%d", location.uri, len(resp.content))
    return target


def build_scope(
    locations: Union[LocationLike, Iterable[LocationLike]],
    parent: Optional[LookupScope] = None,
    *,
    http_client: Optional[httpx.Client] = None,
) -> IsolatedScope:
    """Build an isolated lookup scope over one or more locations.

    ``parent`` receives lookups for names the new scope cannot resolve
    itself; it defaults to ``SYSTEM_SCOPE``. Remote locations are fetched
    once into a temporary directory owned by the scope.
    """
    if isinstance(locations, (str, pathlib.PurePath)):
        locations = [locations]
    items = list(locations or [])
    if not items:
        raise ConfigurationError("at least one location required")
    parsed = [parse_location(item) for item in items]
    if parent is None:
        parent = SYSTEM_SCOPE
    elif not isinstance(parent, LookupScope):
        raise ConfigurationError(f"parent scope must be a LookupScope, got {type(parent).__name__}")

    workdir: Optional[tempfile.TemporaryDirectory] = None
    search_paths: List[str] = []
    owns_client = False
    try:
        for index, loc in enumerate(parsed):
            if not loc.remote:
                search_paths.append(str(pathlib.Path(loc.path).expanduser().resolve()))
                continue
            if workdir is None:
                workdir = tempfile.TemporaryDirectory(prefix='reflector_', dir=str(settings.download_dir))
            if http_client is None:
                http_client = httpx.Client(timeout=settings.fetch_timeout, follow_redirects=True)
                owns_client = True
            search_paths.append(str(_fetch_remote(loc, pathlib.Path(workdir.name), index, http_client)))
    except BaseException:
        if workdir is not None:
            workdir.cleanup()
        raise
    finally:
        if owns_client and http_client is not None:
            http_client.close()

    importlib.invalidate_caches()
    scope = IsolatedScope(parsed, search_paths, parent, workdir)
    _log.debug("built scope locations=%s parent=%r", [loc.uri for loc in parsed], parent)
    return scope


def _import_longest_prefix(scope: LookupScope, name: str, parts: List[str]):
    for cut in range(len(parts) - 1, 0, -1):
        module_name = '.'.join(parts[:cut])
        try:
            module = scope.load_module(module_name)
        except ModuleNotFoundError as exc:
            missing = exc.name or ''
            if missing and (module_name == missing or module_name.startswith(missing + '.')):
                continue
            raise TypeResolutionError(
                f"failed loading module {module_name} for {name}: {exc}", qualified_name=name
            ) from exc
        except PreconditionError:
            raise
        except Exception as exc:  # noqa: BLE001 - module-level code may raise anything
            raise TypeResolutionError(
                f"failed loading module {module_name} for {name}: {type(exc).__name__}: {exc}",
                qualified_name=name,
            ) from exc
        return module, parts[cut:]
    raise TypeResolutionError(f"type {name} not found: no importable module", qualified_name=name)


def resolve_type(scope: LookupScope, qualified_name: str) -> TypeDescriptor:
    """Resolve a fully qualified class name within scope (or its ancestors)."""
    name = (qualified_name or '').strip() if isinstance(qualified_name, str) else ''
    parts = name.split('.')
    if not name or not all(part.isidentifier() for part in parts):
        raise TypeResolutionError(f"invalid type name: {qualified_name!r}", qualified_name=str(qualified_name))
    if len(parts) == 1:
        target, attrs = builtins, parts
    else:
        target, attrs = _import_longest_prefix(scope, name, parts)
    for attr in attrs:
        try:
            target = getattr(target, attr)
        except AttributeError:
            raise TypeResolutionError(f"type {name} not found: no attribute {attr!r}", qualified_name=name) from None
    if not inspect.isclass(target):
        raise TypeResolutionError(f"{name} is not a class (found {type(target).__name__})", qualified_name=name)
    _log.debug("resolved type name=%s scope=%r", name, scope)
    return TypeDescriptor(qualified_name=name, target=target, scope=scope)
