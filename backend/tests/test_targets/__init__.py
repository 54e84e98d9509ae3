"""Sample target packages for the reflection engine tests.

Available targets:
- calcpkg: instance, static and class methods, nested classes, intra-package imports
- brokenpkg: modules that fail while loading (syntax error, raising body, missing import)
- probepkg: counts how often its module body runs

Key utilities:
- target_archives: zip targets into temporary archives and build location URIs
"""

from .target_archives import (
    TARGETS_DIR,
    EXT_TARGETS_DIR,
    available_targets,
    build_target_archive,
    isolated_target_archive,
    location_for,
)

__all__ = [
    'TARGETS_DIR',
    'EXT_TARGETS_DIR',
    'available_targets',
    'build_target_archive',
    'isolated_target_archive',
    'location_for',
]
