"""
packforge - An incremental build orchestrator for behavior and resource packs

Main modules:
- core: Core data models, enums and exceptions
- utils: Inclusion rules and relaxed JSON conversion
- config: Configuration loading and validation
- build: Change detection, pack builders, archives and the build system
- cli: Command-line interface
"""

from .core.models import BuildConfig, PackConfig, ScriptOptions, ArchiveOptions, FileChange
from .core.exceptions import PackforgeError, ConfigurationError, BuildCancelledError
from .config.config_loader import ConfigLoader
from .build.build_system import BuildSystem
from .build.pack_builder import PackBuilder

__version__ = "0.1.0"

__all__ = [
    'BuildConfig',
    'PackConfig',
    'ScriptOptions',
    'ArchiveOptions',
    'FileChange',
    'PackforgeError',
    'ConfigurationError',
    'BuildCancelledError',
    'ConfigLoader',
    'BuildSystem',
    'PackBuilder',
]
