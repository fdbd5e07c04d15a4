"""
Configuration management for envclone.

Environments and settings come from a YAML file. Secrets are usually kept
out of it as ``${VAR}`` placeholders resolved from the process environment,
which is first populated from a ``.env`` file when one is found.
"""

import logging
import os
import re
from typing import Any, Dict, List, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from envclone.exceptions import ConfigurationError
from envclone.models import Credentials, Environment, EnvironmentType

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

DEFAULT_SETTINGS = {
    'batch_size': 1000,
    'dump_timeout': 3600,
    'phase_timeout': 7200,
    'temp_dir': None,
    'backup_dir': 'backups',
    'log_file': None,
}


def substitute_placeholders(value: Any, field_name: str = '') -> Any:
    """Replace ``${VAR}`` in strings with the environment value of VAR."""
    if not isinstance(value, str):
        return value

    def replace(match):
        name = match.group(1)
        resolved = os.getenv(name)
        if resolved is None:
            raise ConfigurationError(f"Environment variable {name} required for {field_name or 'config'}")
        return resolved

    return PLACEHOLDER_RE.sub(replace, value)


class EnvcloneConfig:
    """Configuration loader for envclone."""

    def __init__(self, config_file: Optional[str] = None, load_env: bool = True):
        self.config_file = config_file
        if load_env:
            self._load_env()
        self._load_yaml()

    def _load_env(self):
        """Load environment variables from .env file."""
        env_file = find_dotenv(usecwd=True)
        load_dotenv(env_file)
        logger.debug(f"Loaded environment from {env_file or '(no .env found)'}")

    def _load_yaml(self):
        if self.config_file is None:
            self.yaml_config = {}
        elif not os.path.exists(self.config_file):
            raise ConfigurationError(f"Config file not found: {self.config_file}")
        else:
            with open(self.config_file, 'r') as f:
                try:
                    self.yaml_config = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigurationError(f"Invalid YAML in {self.config_file}: {e}") from e
            logger.debug(f"Loaded config from {self.config_file}")

        if not isinstance(self.yaml_config, dict):
            raise ConfigurationError(f"Top level of {self.config_file} must be a mapping")

        self.settings = dict(DEFAULT_SETTINGS)
        self.settings.update(self.yaml_config.get('settings') or {})
        self.environments: Dict[str, Dict[str, Any]] = self.yaml_config.get('environments') or {}

    def environment_names(self) -> List[str]:
        return sorted(self.environments)

    def environment(self, name: str) -> Environment:
        """Build the Environment called ``name``, resolving placeholders."""
        if name not in self.environments:
            known = ', '.join(self.environment_names()) or 'none configured'
            raise ConfigurationError(f"Unknown environment '{name}' (known: {known})")

        raw = self.environments[name] or {}

        def field(key, default=None):
            return substitute_placeholders(raw.get(key, default), f"{name}.{key}")

        url = field('url')
        if not url:
            raise ConfigurationError(f"Environment '{name}' has no url")

        port = field('port')
        try:
            env_type = EnvironmentType(field('type', 'development'))
            port = int(port) if port not in (None, '') else None
        except ValueError as e:
            raise ConfigurationError(f"Environment '{name}': {e}") from e

        credentials = Credentials(
            url=url,
            anon_key=field('anon_key', '') or '',
            service_key=field('service_key', '') or '',
            password=field('password'),
            host=field('host'),
            port=port,
        )
        return Environment(
            id=str(raw.get('id', name)),
            name=name,
            type=env_type,
            credentials=credentials,
            description=raw.get('description'),
        )


def load_config(config_file: Optional[str] = None) -> EnvcloneConfig:
    return EnvcloneConfig(config_file)
