from .config_loader import ConfigLoader, DEFAULT_CONFIG_FILE, LOG_LEVELS

__all__ = ['ConfigLoader', 'DEFAULT_CONFIG_FILE', 'LOG_LEVELS']
