"""Pytest configuration and fixtures for packforge tests."""

import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Union

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from packforge.build.context import BuildExecutionContext, BuildSystemContext
from packforge.core.enums import PackKind
from packforge.core.models import BuildConfig, PackConfig, ScriptOptions

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def write_files(root: Path, files: Dict[str, Union[str, bytes]]) -> None:
    """Create files under root from a {relative path: content} mapping"""
    for rel_path, content in files.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding='utf-8')


def set_mtime(path: Path, mtime_ns: int) -> None:
    os.utime(path, ns=(mtime_ns, mtime_ns))


def list_tree(root: Path) -> List[str]:
    """Sorted relative POSIX paths of every file under root"""
    if not root.exists():
        return []
    return sorted(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())


class FakeBundler:
    """Stands in for ScriptBundler; writes one output file per script source"""

    def __init__(self, fail_with: Exception = None):
        self.calls = []
        self.fail_with = fail_with

    async def bundle(self, source_root, out_dir, options, pack_root):
        self.calls.append((Path(source_root), Path(out_dir), options))
        if self.fail_with is not None:
            raise self.fail_with

        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        for src in sorted(Path(source_root).rglob("*")):
            if src.is_file():
                rel = src.relative_to(source_root).with_suffix(".js")
                (out_dir / rel).parent.mkdir(parents=True, exist_ok=True)
                (out_dir / rel).write_text(f"// built from {src.name}\n", encoding='utf-8')


@pytest.fixture
def src_dir(tmp_path) -> Path:
    path = tmp_path / "src"
    path.mkdir()
    return path


@pytest.fixture
def target_dir(tmp_path) -> Path:
    return tmp_path / "target"


@pytest.fixture
def temp_root(tmp_path) -> Path:
    path = tmp_path / "tmp"
    path.mkdir()
    return path


@pytest.fixture
def fake_bundler() -> FakeBundler:
    return FakeBundler()


@pytest.fixture
def resource_pack(src_dir, target_dir) -> PackConfig:
    return PackConfig(
        kind=PackKind.RESOURCE,
        source_root=src_dir,
        target_roots=[target_dir],
    )


@pytest.fixture
def behavior_pack_with_scripts(src_dir, target_dir) -> PackConfig:
    return PackConfig(
        kind=PackKind.BEHAVIOR,
        source_root=src_dir,
        target_roots=[target_dir],
        scripts=ScriptOptions(),
    )


@pytest.fixture
def system_context(tmp_path, resource_pack) -> BuildSystemContext:
    temp_dir = tmp_path / "staging-root"
    temp_dir.mkdir()
    return BuildSystemContext(
        config=BuildConfig(resource_pack=resource_pack),
        id="test",
        temp_dir=temp_dir,
    )


@pytest.fixture
def execution_context(system_context) -> BuildExecutionContext:
    return BuildExecutionContext(system=system_context)
