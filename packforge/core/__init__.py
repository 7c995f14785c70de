from .enums import PackKind, FileChangeKind, BuildState, WatchEventKind
from .models import ScriptOptions, PackConfig, ArchiveOptions, BuildConfig, FileChange
from .exceptions import (
    PackforgeError,
    ConfigurationError,
    TransformError,
    BundlerError,
    PublishError,
    ArchiveError,
    BuildSystemClosedError,
    BuildCancelledError,
)

__all__ = [
    'PackKind',
    'FileChangeKind',
    'BuildState',
    'WatchEventKind',
    'ScriptOptions',
    'PackConfig',
    'ArchiveOptions',
    'BuildConfig',
    'FileChange',
    'PackforgeError',
    'ConfigurationError',
    'TransformError',
    'BundlerError',
    'PublishError',
    'ArchiveError',
    'BuildSystemClosedError',
    'BuildCancelledError',
]
