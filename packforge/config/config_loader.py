import logging
import math
import os
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

import yaml

from ..core.enums import PackKind
from ..core.exceptions import ConfigurationError
from ..core.models import BuildConfig, PackConfig, ScriptOptions, ArchiveOptions

DEFAULT_CONFIG_FILE = "packforge.yaml"

LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'silent': logging.CRITICAL + 1,
}


def resolve_env_vars(value: Any) -> Any:
    """Substitute "${VAR}" / "${VAR:default}" values from the environment"""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]  # Remove ${ and }
        default_value = ""
        if ":" in env_var:
            env_var, default_value = env_var.split(":", 1)
        return os.getenv(env_var, default_value)
    elif isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [resolve_env_vars(item) for item in value]
    return value


class ConfigLoader:
    """Load, resolve and validate build configurations"""

    @staticmethod
    def load_from_yaml(file_path: Union[str, Path]) -> BuildConfig:
        """Load configuration from YAML file. Relative paths resolve against the file's directory."""
        path = Path(file_path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        with open(path, 'r') as file:
            config_dict = yaml.safe_load(file)

        if config_dict is None:
            raise ConfigurationError(f"Empty or invalid YAML file: {path}")
        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Config root must be a mapping: {path}")

        return ConfigLoader.load_from_dict(config_dict, base_dir=path.resolve().parent)

    @staticmethod
    def load_from_dict(config_dict: Dict[str, Any], base_dir: Optional[Path] = None) -> BuildConfig:
        """
        Resolve a raw configuration mapping into a BuildConfig.

        Args:
            config_dict: Raw configuration
            base_dir: Directory that relative paths are resolved against (cwd when None)

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        data = resolve_env_vars(config_dict)
        base = Path(base_dir) if base_dir else Path.cwd()

        bp_input = data.get('behavior_pack')
        rp_input = data.get('resource_pack')

        if not bp_input and not rp_input:
            raise ConfigurationError("Neither behavior pack nor resource pack is configured.")

        behavior_pack = ConfigLoader._process_pack(PackKind.BEHAVIOR, bp_input, base) if bp_input else None
        resource_pack = ConfigLoader._process_pack(PackKind.RESOURCE, rp_input, base) if rp_input else None

        archive_input = data.get('archive')
        if archive_input is None:
            archive_list = []
        elif isinstance(archive_input, list):
            archive_list = archive_input
        else:
            archive_list = [archive_input]

        archives = [ConfigLoader._process_archive(a, base) for a in archive_list]

        temp_dir_root = data.get('temp_dir_root')

        log_level = str(data.get('log_level', 'info')).lower()
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid log_level '{log_level}'. Valid levels are: {', '.join(LOG_LEVELS)}"
            )

        try:
            debounce_interval = float(data.get('debounce_interval', 0.1))
        except (TypeError, ValueError):
            raise ConfigurationError("debounce_interval must be a number of seconds")

        config = BuildConfig(
            behavior_pack=behavior_pack,
            resource_pack=resource_pack,
            archives=archives,
            temp_dir_root=ConfigLoader._resolve_path(temp_dir_root, base) if temp_dir_root else None,
            watch=bool(data.get('watch', False)),
            log_level=log_level,
            debounce_interval=debounce_interval,
        )

        issues = ConfigLoader.validate_config(config)
        if issues:
            raise ConfigurationError("Configuration validation failed: " + "; ".join(issues))

        return config

    @staticmethod
    def _resolve_path(value: Union[str, Path], base: Path) -> Path:
        path = Path(os.path.expanduser(str(value)))
        if not path.is_absolute():
            path = base / path
        return Path(os.path.abspath(path))

    @staticmethod
    def _process_pack(kind: PackKind, pack_dict: Dict[str, Any], base: Path) -> PackConfig:
        """Resolve one pack section"""
        if not isinstance(pack_dict, dict):
            raise ConfigurationError(f"{kind.value} pack config must be a mapping")

        if 'src_dir' not in pack_dict:
            raise ConfigurationError(f"src_dir is required for the {kind.value} pack")
        if 'target_dir' not in pack_dict:
            raise ConfigurationError(f"target_dir is required for the {kind.value} pack")

        target_input = pack_dict['target_dir']
        target_list = target_input if isinstance(target_input, list) else [target_input]

        scripts_input = pack_dict.get('scripts')
        scripts = None
        if scripts_input is not None:
            if kind != PackKind.BEHAVIOR:
                raise ConfigurationError("scripts can only be configured for the behavior pack")
            scripts = ConfigLoader._process_scripts(scripts_input)

        generate_texture_list = bool(pack_dict.get('generate_texture_list', False))
        if generate_texture_list and kind != PackKind.RESOURCE:
            raise ConfigurationError("generate_texture_list can only be enabled for the resource pack")

        manifest = pack_dict.get('manifest')
        if manifest is not None and not isinstance(manifest, dict):
            raise ConfigurationError(f"manifest of the {kind.value} pack must be a mapping")

        return PackConfig(
            kind=kind,
            source_root=ConfigLoader._resolve_path(pack_dict['src_dir'], base),
            target_roots=[ConfigLoader._resolve_path(t, base) for t in target_list],
            include=ConfigLoader._process_patterns(pack_dict.get('include'), 'include'),
            exclude=ConfigLoader._process_patterns(pack_dict.get('exclude'), 'exclude'),
            scripts=scripts,
            manifest=manifest,
            generate_texture_list=generate_texture_list,
        )

    @staticmethod
    def _process_patterns(patterns: Any, key: str) -> Optional[List[str]]:
        if patterns is None:
            return None
        if isinstance(patterns, str):
            return [patterns]
        if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
            raise ConfigurationError(f"{key} must be a list of glob patterns")
        return list(patterns)

    @staticmethod
    def _process_scripts(scripts_dict: Any) -> ScriptOptions:
        if scripts_dict is True:
            return ScriptOptions()
        if not isinstance(scripts_dict, dict):
            raise ConfigurationError("scripts must be a mapping")

        valid_keys = set(ScriptOptions.__dataclass_fields__)
        invalid_keys = set(scripts_dict) - valid_keys
        if invalid_keys:
            raise ConfigurationError(
                f"scripts contains invalid keys: {sorted(invalid_keys)}. Valid keys are: {sorted(valid_keys)}"
            )

        return ScriptOptions(**scripts_dict)

    @staticmethod
    def _process_archive(archive_dict: Any, base: Path) -> ArchiveOptions:
        if not isinstance(archive_dict, dict) or 'out_file' not in archive_dict:
            raise ConfigurationError("Each archive entry requires out_file")

        level = archive_dict.get('compression_level', 9)
        try:
            level = math.floor(float(level))
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid compression_level: {level}")

        return ArchiveOptions(
            out_file=ConfigLoader._resolve_path(archive_dict['out_file'], base),
            compression_level=level,
        )

    @staticmethod
    def validate_config(config: BuildConfig) -> List[str]:
        """Validate a resolved configuration and return list of issues"""
        issues = []

        if not config.packs:
            issues.append("At least one pack must be configured")

        for pack in config.packs:
            if not pack.source_root.is_dir():
                issues.append(f"Source directory of the {pack.kind.value} pack does not exist: {pack.source_root}")

            if not pack.target_roots:
                issues.append(f"At least one target directory is required for the {pack.kind.value} pack")

            for target in pack.target_roots:
                if target == pack.source_root or pack.source_root in target.parents:
                    issues.append(f"Target directory must not be inside the source directory: {target}")

            if pack.scripts and pack.scripts.bundle and not pack.scripts.entry:
                issues.append("scripts.entry is required when scripts.bundle is enabled")

        for archive in config.archives:
            if not 0 <= archive.compression_level <= 9:
                issues.append(f"compression_level must be between 0 and 9: {archive.out_file}")

        if config.debounce_interval < 0:
            issues.append("debounce_interval must not be negative")

        return issues
