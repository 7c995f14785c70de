"""Tests for esbuild command construction and source map rewriting."""

import json
import sys

import pytest

from conftest import write_files
from packforge.build.scripts import ScriptBundler, is_script_file, rewrite_source_map
from packforge.core.exceptions import BundlerError
from packforge.core.models import ScriptOptions


class TestBuildCommand:
    """esbuild command line assembly."""

    @pytest.fixture
    def bundler(self):
        return ScriptBundler()

    def test_bundle_mode(self, bundler, tmp_path):
        options = ScriptOptions(bundle=True, entry="scripts/main.ts", minify=True)

        cmd = bundler.build_command(tmp_path / "bp" / "scripts", tmp_path / "out", options, tmp_path / "bp")

        assert cmd[0] == "esbuild"
        assert f"--outdir={tmp_path / 'out'}" in cmd
        assert str(tmp_path / "bp" / "scripts" / "main.ts") in cmd
        assert "--bundle" in cmd
        assert "--external:@minecraft/*" in cmd
        assert "--minify" in cmd
        assert "--format=esm" in cmd
        assert not any(arg.startswith("--sourcemap") for arg in cmd)

    def test_transpile_mode_lists_every_script(self, bundler, tmp_path):
        root = tmp_path / "bp" / "scripts"
        write_files(root, {"main.ts": "", "lib/util.js": "", "data.json": "{}"})

        cmd = bundler.build_command(root, tmp_path / "out", ScriptOptions(), tmp_path / "bp")

        assert f"--outbase={root}" in cmd
        assert str(root / "lib" / "util.js") in cmd
        assert str(root / "main.ts") in cmd
        assert str(root / "data.json") not in cmd
        assert "--bundle" not in cmd

    def test_source_map_tsconfig_and_extra_args(self, bundler, tmp_path):
        options = ScriptOptions(
            source_map=True,
            tsconfig="tsconfig.json",
            esbuild_path="/opt/esbuild",
            extra_args=["--target=es2020"],
        )

        cmd = bundler.build_command(tmp_path / "scripts", tmp_path / "out", options, tmp_path, entry_points=[])

        assert cmd[0] == "/opt/esbuild"
        assert "--sourcemap=linked" in cmd
        assert f"--tsconfig={tmp_path / 'tsconfig.json'}" in cmd
        assert cmd[-1] == "--target=es2020"


class TestBundle:
    """Process handling."""

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path):
        options = ScriptOptions(bundle=True, entry="main.ts", esbuild_path=str(tmp_path / "no-esbuild"))

        with pytest.raises(BundlerError) as exc_info:
            await ScriptBundler().bundle(tmp_path, tmp_path / "out", options, tmp_path)

        assert "not found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_nothing_to_transpile(self, tmp_path):
        options = ScriptOptions(esbuild_path=str(tmp_path / "no-esbuild"))
        (tmp_path / "scripts").mkdir()

        await ScriptBundler().bundle(tmp_path / "scripts", tmp_path / "out", options, tmp_path)

        assert (tmp_path / "out").is_dir()

    @pytest.mark.skipif(sys.platform == "win32", reason="requires an executable script")
    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_with_stderr(self, tmp_path):
        fake = tmp_path / "fake-esbuild"
        fake.write_text(f"#!{sys.executable}\nimport sys\nsys.stderr.write('syntax error')\nsys.exit(1)\n")
        fake.chmod(0o755)
        options = ScriptOptions(bundle=True, entry="main.ts", esbuild_path=str(fake))

        with pytest.raises(BundlerError) as exc_info:
            await ScriptBundler().bundle(tmp_path, tmp_path / "out", options, tmp_path)

        assert "syntax error" in exc_info.value.stderr


class TestSourceMaps:

    def test_rewrite_sources_relative_to_script_root(self, tmp_path):
        root = tmp_path / "scripts"
        map_path = tmp_path / "out" / "lib" / "util.js.map"
        map_path.parent.mkdir(parents=True)
        map_path.write_text(json.dumps({
            "version": 3,
            "sources": [
                (root / "lib" / "util.ts").as_uri(),
                "../../scripts/main.ts",
            ],
            "mappings": "AAAA",
        }))

        rewrite_source_map(map_path, root)

        data = json.loads(map_path.read_text())
        assert data["sources"] == ["lib/util.ts", "main.ts"]
        assert data["mappings"] == "AAAA"


@pytest.mark.parametrize("path,expected", [
    ("main.ts", True),
    ("lib/a.MJS", True),
    ("a.tsx", True),
    ("a.json", False),
    ("a.d", False),
])
def test_is_script_file(path, expected):
    assert is_script_file(path) is expected
