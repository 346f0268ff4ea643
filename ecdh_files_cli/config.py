"""
Configuration Module

Settings for the command line: file extensions, the key deriver, digest
buffer size and output options. Values come from built-in defaults, then a
TOML, YAML or JSON file, then ECDH_FILES_CLI_* environment variables.
"""

import os
import copy
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import toml
import yaml

from .key_derivation import DEFAULT_KEY_DERIVER, list_key_derivers


logger = logging.getLogger(__name__)

ENV_PREFIX = "ECDH_FILES_CLI_"
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
CONFIG_BASENAME = 'ecdh-files-cli'
MIN_BUFFER_SIZE = 1024


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or written."""
    pass


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes', 'on')


def _dump_yaml(data: Dict[str, Any], stream) -> None:
    yaml.safe_dump(data, stream, default_flow_style=False)


def _dump_json(data: Dict[str, Any], stream) -> None:
    json.dump(data, stream, indent=2)


_LOADERS: Dict[str, Callable] = {
    '.toml': toml.load,
    '.yaml': yaml.safe_load,
    '.yml': yaml.safe_load,
    '.json': json.load,
}

_DUMPERS: Dict[str, Callable] = {
    '.toml': toml.dump,
    '.yaml': _dump_yaml,
    '.yml': _dump_yaml,
    '.json': _dump_json,
}


def _format_of(file_path: str) -> str:
    extension = os.path.splitext(file_path)[1].lower()
    if extension not in _LOADERS:
        raise ConfigError(f"Unsupported config file format: {file_path}")
    return extension


class Config:
    """
    Layered configuration with dotted-key access.

    ``Config()`` searches the config directory and the working directory for
    the first existing file; ``Config(path)`` reads exactly that file.
    """

    DEFAULT_CONFIG = {
        'encryption': {
            'kdf': DEFAULT_KEY_DERIVER,
            'encrypted_extension': '.enc',
            'decrypted_extension': '.dec',
            'nonce_extension': '.nonce',
        },
        'digest': {
            'extension': '.sha512',
            'buffer_size': 65536,
        },
        'keys': {
            'public_suffix': '.pub',
            'private_suffix': '.priv',
        },
        'output': {
            'verbose': False,
            'color_output': True,
            'log_level': 'WARNING',
        },
        'paths': {
            'config_directory': '~/.ecdh-files-cli',
        },
    }

    ENV_MAPPINGS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
        ENV_PREFIX + 'KDF': ('encryption.kdf', str),
        ENV_PREFIX + 'DIGEST_BUFFER_SIZE': ('digest.buffer_size', int),
        ENV_PREFIX + 'VERBOSE': ('output.verbose', _parse_bool),
        ENV_PREFIX + 'COLOR_OUTPUT': ('output.color_output', _parse_bool),
        ENV_PREFIX + 'LOG_LEVEL': ('output.log_level', str),
        ENV_PREFIX + 'CONFIG_DIR': ('paths.config_directory', str),
    }

    # Checked by validate(): non-empty string settings
    _EXTENSION_KEYS = (
        'encryption.encrypted_extension',
        'encryption.decrypted_extension',
        'encryption.nonce_extension',
        'digest.extension',
        'keys.public_suffix',
        'keys.private_suffix',
    )

    def __init__(
        self,
        config_file: Optional[str] = None,
        use_environment: bool = True,
        search: bool = True
    ):
        """
        Args:
            config_file: Configuration file to read instead of searching
            use_environment: Apply ECDH_FILES_CLI_* overrides
            search: Look for a config file when none is given

        Raises:
            ConfigError: If the file is missing, unreadable or malformed
        """
        self.config_file = config_file
        self._config = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_file is None and search:
            config_file = self._find_config_file()
        if config_file is not None:
            self.config_file = self.expand_path(config_file)
            self._merge(self._config, self._read_file(self.config_file))

        if use_environment:
            self._apply_environment()

    @staticmethod
    def expand_path(path: str) -> str:
        """Expand user home directory and environment variables."""
        return os.path.abspath(os.path.expandvars(os.path.expanduser(path)))

    def search_paths(self) -> List[str]:
        """Files looked for, in order, when no config file is given."""
        config_dir = os.environ.get(ENV_PREFIX + 'CONFIG_DIR') or \
            self.DEFAULT_CONFIG['paths']['config_directory']
        config_dir = self.expand_path(config_dir)

        paths = [os.path.join(config_dir, 'config' + ext) for ext in _LOADERS]
        paths += [os.path.abspath(CONFIG_BASENAME + ext) for ext in _LOADERS]
        return paths

    def _find_config_file(self) -> Optional[str]:
        for path in self.search_paths():
            if os.path.isfile(path):
                logger.debug("Using configuration file %s", path)
                return path
        return None

    @staticmethod
    def _read_file(file_path: str) -> Dict[str, Any]:
        loader = _LOADERS[_format_of(file_path)]

        try:
            with open(file_path, 'r') as f:
                data = loader(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {file_path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {file_path} must contain a mapping")
        return data

    def _apply_environment(self) -> None:
        for env_var, (key, convert) in self.ENV_MAPPINGS.items():
            raw = os.environ.get(env_var)
            if raw is None:
                continue

            try:
                self.set(key, convert(raw))
            except ValueError:
                logger.warning("Ignoring invalid value for %s: %r", env_var, raw)

    @classmethod
    def _merge(cls, target: Dict[str, Any], source: Dict[str, Any]) -> None:
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                cls._merge(target[key], value)
            else:
                target[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a value by dotted key, e.g. ``config.get('digest.buffer_size')``.

        Returns default when any part of the key is missing.
        """
        node: Any = self._config
        for part in key.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """
        Set a value by dotted key, creating sections as needed.

        Raises:
            ConfigError: If part of the key already holds a value, not a section
        """
        *sections, name = key.split('.')
        node = self._config
        for section in sections:
            node = node.setdefault(section, {})
            if not isinstance(node, dict):
                raise ConfigError(f"Cannot set {key}: {section} is not a section")
        node[name] = value

    def save(self, file_path: Optional[str] = None) -> None:
        """
        Write the configuration to file_path (default: the loaded file).

        Raises:
            ConfigError: If there is no path, the format is unknown or the
                file cannot be written
        """
        save_path = file_path or self.config_file
        if not save_path:
            raise ConfigError("No configuration file specified")

        save_path = self.expand_path(save_path)
        dumper = _DUMPERS[_format_of(save_path)]

        try:
            os.makedirs(os.path.dirname(save_path), exist_ok=True)
            with open(save_path, 'w') as f:
                dumper(self._config, f)
        except OSError as e:
            raise ConfigError(f"Failed to save config to {save_path}: {e}")

        self.config_file = save_path

    def reset_to_defaults(self) -> None:
        """Discard loaded and overridden values."""
        self._config = copy.deepcopy(self.DEFAULT_CONFIG)

    def validation_errors(self) -> List[str]:
        """Describe every invalid setting; empty when the configuration is usable."""
        errors = []

        kdf = self.get('encryption.kdf')
        if not isinstance(kdf, str) or kdf.lower() not in list_key_derivers():
            errors.append(f"encryption.kdf: unknown key derivation function {kdf!r}")

        buffer_size = self.get('digest.buffer_size')
        if isinstance(buffer_size, bool) or not isinstance(buffer_size, int) or buffer_size < MIN_BUFFER_SIZE:
            errors.append(f"digest.buffer_size: must be an integer >= {MIN_BUFFER_SIZE}")

        log_level = self.get('output.log_level')
        if not isinstance(log_level, str) or log_level.upper() not in LOG_LEVELS:
            errors.append(f"output.log_level: must be one of {', '.join(LOG_LEVELS)}")

        for key in self._EXTENSION_KEYS:
            value = self.get(key)
            if not isinstance(value, str) or not value:
                errors.append(f"{key}: must be a non-empty string")

        return errors

    def validate(self) -> bool:
        """True if every setting is usable."""
        return not self.validation_errors()

    def to_dict(self) -> Dict[str, Any]:
        """Return a copy of the configuration."""
        return copy.deepcopy(self._config)

    def __getitem__(self, key: str) -> Any:
        return self.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


def load_config(config_file: Optional[str] = None) -> Config:
    """Load configuration from config_file, or search the default locations."""
    return Config(config_file)


def create_default_config(config_file: str) -> None:
    """
    Write the built-in defaults to config_file.

    Raises:
        ConfigError: If the file cannot be written
    """
    config = Config(use_environment=False, search=False)
    config.save(config_file)
