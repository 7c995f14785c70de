"""
Models for the build orchestrator domain.
"""
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List, Dict, Optional, Any

from .enums import PackKind, FileChangeKind


@dataclass(frozen=True)
class ScriptOptions:
    """Options forwarded to the script bundler"""
    bundle: bool = False
    entry: Optional[str] = None  # relative to the pack source root
    minify: bool = False
    source_map: bool = False
    tsconfig: Optional[str] = None
    root: str = "scripts"  # script subtree of the pack
    esbuild_path: str = "esbuild"
    extra_args: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return asdict(self)


@dataclass(frozen=True)
class PackConfig:
    """Resolved configuration of a single pack"""
    kind: PackKind
    source_root: Path
    target_roots: List[Path] = field(default_factory=list)
    include: Optional[List[str]] = None
    exclude: Optional[List[str]] = None
    scripts: Optional[ScriptOptions] = None
    manifest: Optional[Dict[str, Any]] = None
    generate_texture_list: bool = False

    @property
    def name(self) -> str:
        """Staging subdirectory name"""
        return f"{self.kind.value}_pack"


@dataclass(frozen=True)
class ArchiveOptions:
    """Archive output definition"""
    out_file: Path
    compression_level: int = 9


@dataclass(frozen=True)
class BuildConfig:
    """Resolved build configuration, immutable for one invocation"""
    behavior_pack: Optional[PackConfig] = None
    resource_pack: Optional[PackConfig] = None
    archives: List[ArchiveOptions] = field(default_factory=list)
    temp_dir_root: Optional[Path] = None
    watch: bool = False
    log_level: str = "info"  # "debug" | "info" | "warning" | "error" | "silent"
    debounce_interval: float = 0.1

    @property
    def packs(self) -> List[PackConfig]:
        return [p for p in (self.behavior_pack, self.resource_pack) if p is not None]


@dataclass(frozen=True)
class FileChange:
    """A change to one source file, transient within one build attempt"""
    kind: FileChangeKind
    path: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {'kind': self.kind.value, 'path': self.path}
