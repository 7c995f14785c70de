"""Tests for build configuration loading and validation."""

import logging

import pytest
import yaml

from packforge.config.config_loader import ConfigLoader, LOG_LEVELS, resolve_env_vars
from packforge.core.enums import PackKind
from packforge.core.exceptions import ConfigurationError


class TestConfigLoader:
    """Test suite for ConfigLoader."""

    @pytest.fixture
    def project_dir(self, tmp_path):
        (tmp_path / "packs" / "BP").mkdir(parents=True)
        (tmp_path / "packs" / "RP").mkdir(parents=True)
        return tmp_path

    @pytest.fixture
    def sample_config(self):
        return {
            'behavior_pack': {
                'src_dir': 'packs/BP',
                'target_dir': 'out/BP',
                'scripts': {'bundle': True, 'entry': 'scripts/main.ts', 'source_map': True},
                'manifest': {'format_version': 2},
            },
            'resource_pack': {
                'src_dir': 'packs/RP',
                'target_dir': ['out/RP', 'out/RP-copy'],
                'exclude': ['private/**/*'],
                'generate_texture_list': True,
            },
            'archive': {'out_file': 'dist/addon.mcaddon', 'compression_level': 6.7},
            'log_level': 'DEBUG',
            'debounce_interval': 0.25,
        }

    def test_load_from_yaml_resolves_relative_paths(self, project_dir, sample_config):
        config_file = project_dir / "packforge.yaml"
        config_file.write_text(yaml.safe_dump(sample_config))

        config = ConfigLoader.load_from_yaml(config_file)

        bp = config.behavior_pack
        rp = config.resource_pack
        assert bp.kind == PackKind.BEHAVIOR
        assert bp.source_root == project_dir / "packs" / "BP"
        assert bp.target_roots == [project_dir / "out" / "BP"]
        assert bp.scripts.bundle is True
        assert bp.scripts.entry == 'scripts/main.ts'
        assert bp.manifest == {'format_version': 2}
        assert rp.target_roots == [project_dir / "out" / "RP", project_dir / "out" / "RP-copy"]
        assert rp.exclude == ['private/**/*']
        assert rp.generate_texture_list is True
        assert config.archives[0].out_file == project_dir / "dist" / "addon.mcaddon"
        assert config.archives[0].compression_level == 6
        assert config.log_level == 'debug'
        assert config.debounce_interval == 0.25
        assert config.watch is False

    def test_load_from_dict_uses_base_dir(self, project_dir):
        config = ConfigLoader.load_from_dict(
            {'resource_pack': {'src_dir': 'packs/RP', 'target_dir': 'out'}},
            base_dir=project_dir,
        )

        assert config.behavior_pack is None
        assert config.packs == [config.resource_pack]
        assert config.archives == []

    def test_env_var_substitution(self, project_dir, monkeypatch):
        monkeypatch.setenv('PACK_TARGET', str(project_dir / "dev_packs"))
        config = ConfigLoader.load_from_dict(
            {'resource_pack': {'src_dir': 'packs/RP', 'target_dir': '${PACK_TARGET}'},
             'log_level': '${PACK_LOG:warning}'},
            base_dir=project_dir,
        )

        assert config.resource_pack.target_roots == [project_dir / "dev_packs"]
        assert config.log_level == 'warning'

    def test_scripts_true_uses_defaults(self, project_dir):
        config = ConfigLoader.load_from_dict(
            {'behavior_pack': {'src_dir': 'packs/BP', 'target_dir': 'out', 'scripts': True}},
            base_dir=project_dir,
        )

        assert config.behavior_pack.scripts.root == 'scripts'
        assert config.behavior_pack.scripts.bundle is False

    @pytest.mark.parametrize("config_dict,message", [
        ({}, "Neither behavior pack nor resource pack"),
        ({'resource_pack': {'target_dir': 'out'}}, "src_dir is required"),
        ({'resource_pack': {'src_dir': 'packs/RP'}}, "target_dir is required"),
        ({'resource_pack': {'src_dir': 'missing', 'target_dir': 'out'}}, "does not exist"),
        ({'resource_pack': {'src_dir': 'packs/RP', 'target_dir': 'out', 'scripts': True}},
         "scripts can only be configured"),
        ({'behavior_pack': {'src_dir': 'packs/BP', 'target_dir': 'out', 'generate_texture_list': True}},
         "generate_texture_list can only be enabled"),
        ({'behavior_pack': {'src_dir': 'packs/BP', 'target_dir': 'out', 'scripts': {'bundle': True}}},
         "scripts.entry is required"),
        ({'behavior_pack': {'src_dir': 'packs/BP', 'target_dir': 'out', 'scripts': {'outfile': 'x'}}},
         "invalid keys"),
        ({'behavior_pack': {'src_dir': 'packs/BP', 'target_dir': 'packs/BP/out'}},
         "must not be inside the source directory"),
        ({'behavior_pack': {'src_dir': 'packs/BP', 'target_dir': 'out'},
          'archive': {'out_file': 'a.zip', 'compression_level': 12}}, "compression_level must be between"),
        ({'behavior_pack': {'src_dir': 'packs/BP', 'target_dir': 'out'}, 'archive': {}}, "out_file"),
        ({'behavior_pack': {'src_dir': 'packs/BP', 'target_dir': 'out'}, 'log_level': 'verbose'},
         "Invalid log_level"),
        ({'behavior_pack': {'src_dir': 'packs/BP', 'target_dir': 'out'}, 'debounce_interval': -1},
         "debounce_interval must not be negative"),
    ])
    def test_invalid_configurations(self, project_dir, config_dict, message):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigLoader.load_from_dict(config_dict, base_dir=project_dir)

        assert message in str(exc_info.value)

    def test_missing_yaml_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigLoader.load_from_yaml(tmp_path / "packforge.yaml")

    def test_empty_yaml_file(self, tmp_path):
        config_file = tmp_path / "packforge.yaml"
        config_file.write_text("")

        with pytest.raises(ConfigurationError):
            ConfigLoader.load_from_yaml(config_file)


class TestResolveEnvVars:

    def test_nested_values(self, monkeypatch):
        monkeypatch.setenv('PF_A', 'a')
        monkeypatch.delenv('PF_MISSING', raising=False)

        assert resolve_env_vars({'x': ['${PF_A}', '${PF_MISSING:d}', 'plain'], 'y': 3}) == {
            'x': ['a', 'd', 'plain'],
            'y': 3,
        }

    def test_silent_level_is_above_critical(self):
        assert LOG_LEVELS['silent'] > logging.CRITICAL
