from .context import CancellationToken, BuildSystemContext, BuildExecutionContext
from .change_cache import ChangeCache
from .scripts import ScriptBundler, SCRIPT_FILE_EXTENSIONS, is_script_file
from .archive import ArchiveSource, create_archive
from .pack_builder import PackBuilder
from .watcher import FileWatcher
from .build_system import BuildSystem

__all__ = [
    'CancellationToken',
    'BuildSystemContext',
    'BuildExecutionContext',
    'ChangeCache',
    'ScriptBundler',
    'SCRIPT_FILE_EXTENSIONS',
    'is_script_file',
    'ArchiveSource',
    'create_archive',
    'PackBuilder',
    'FileWatcher',
    'BuildSystem',
]
