"""Records every execution of its module body."""
import builtins

_registry = builtins.__dict__.setdefault('_reflector_probe_loads', [])
_registry.append(__name__)


class Probe:
    loads = len(_registry)

    @staticmethod
    def load_count() -> int:
        return len(_registry)
