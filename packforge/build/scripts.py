"""
Script bundling through the external esbuild executable.
"""
import asyncio
import json
import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

from ..core.exceptions import BundlerError
from ..core.models import ScriptOptions

SCRIPT_FILE_EXTENSIONS = (
    # JavaScript
    ".js",
    ".cjs",
    ".mjs",
    ".jsx",
    # TypeScript
    ".ts",
    ".cts",
    ".mts",
    ".tsx",
)


def is_script_file(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in SCRIPT_FILE_EXTENSIONS


def _source_to_path(value: str, map_dir: str) -> str:
    """Absolute path of a source map `sources` entry"""
    if value.startswith("file:"):
        return os.path.abspath(url2pathname(urlparse(value).path))
    return os.path.abspath(os.path.join(map_dir, value))


def rewrite_source_map(map_path: Path, source_root: Path) -> None:
    """Rewrite `sources` of a source map relative to the script source root"""
    with open(map_path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    map_dir = str(map_path.parent)
    data['sources'] = [
        os.path.relpath(_source_to_path(value, map_dir), str(source_root)).replace(os.sep, "/")
        for value in data.get('sources', [])
    ]

    with open(map_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)


class ScriptBundler:
    """Runs esbuild over a pack's script subtree"""

    def __init__(self, timeout: float = 300):
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def build_command(
        self,
        source_root: Path,
        out_dir: Path,
        options: ScriptOptions,
        pack_root: Path,
        entry_points: Optional[List[Path]] = None,
    ) -> List[str]:
        """
        Assemble the esbuild command line.

        Args:
            source_root: Script subtree of the pack source
            out_dir: Directory that receives the output
            options: Script options of the pack
            pack_root: Pack source root (the bundle entry is relative to it)
            entry_points: Files to transpile when not bundling (collected from source_root when None)
        """
        cmd = [
            options.esbuild_path,
            f"--outdir={out_dir}",
            "--format=esm",
            "--platform=node",
            "--log-level=warning",
        ]

        if options.bundle:
            entry = Path(options.entry)
            if not entry.is_absolute():
                entry = pack_root / entry
            cmd.append(str(entry))
            cmd.append("--bundle")
            cmd.append("--external:@minecraft/*")
            if options.minify:
                cmd.append("--minify")
        else:
            cmd.append(f"--outbase={source_root}")
            if entry_points is None:
                entry_points = self.collect_entry_points(source_root)
            cmd.extend(str(p) for p in entry_points)

        if options.source_map:
            cmd.append("--sourcemap=linked")
            cmd.append(f"--source-root={source_root}")

        if options.tsconfig:
            tsconfig = Path(options.tsconfig)
            if not tsconfig.is_absolute():
                tsconfig = pack_root / tsconfig
            cmd.append(f"--tsconfig={tsconfig}")

        cmd.extend(options.extra_args)
        return cmd

    def collect_entry_points(self, source_root: Path) -> List[Path]:
        entries = []
        for root, dirs, files in os.walk(source_root):
            dirs.sort()
            for file in sorted(files):
                if is_script_file(file):
                    entries.append(Path(root) / file)
        return entries

    async def bundle(self, source_root: Path, out_dir: Path, options: ScriptOptions, pack_root: Path) -> None:
        """
        Bundle or transpile scripts into out_dir.

        Raises:
            BundlerError: If esbuild is missing, times out or exits with an error
        """
        source_root = Path(source_root)
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        entry_points = None
        if not options.bundle:
            entry_points = await asyncio.to_thread(self.collect_entry_points, source_root)
            if not entry_points:
                self.logger.debug(f"No script files under {source_root}, skipping esbuild")
                return

        cmd = self.build_command(source_root, out_dir, options, Path(pack_root), entry_points)
        self.logger.debug(f"Running: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError:
            raise BundlerError(f"esbuild executable not found: {options.esbuild_path}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise BundlerError(f"esbuild timed out after {self.timeout}s")
        except asyncio.CancelledError:
            process.kill()
            raise

        if process.returncode != 0:
            raise BundlerError(
                f"esbuild exited with code {process.returncode}",
                stderr.decode('utf-8', errors='replace'),
            )

        if stderr:
            self.logger.warning(stderr.decode('utf-8', errors='replace').strip())

        if options.source_map:
            for map_path in list(out_dir.rglob("*.map")):
                await asyncio.to_thread(rewrite_source_map, map_path, source_root)

        self.logger.info(f"Scripts built from {source_root}")
