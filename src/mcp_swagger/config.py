"""
Bridge configuration loaded from YAML.

Example::

    spec: ./petstore.yaml
    base_url: https://petstore.example.com/v1
    server:
      name: petstore
    transform:
      include_deprecated: false
      custom_headers:
        X-Client: mcp-swagger
    filter:
      methods:
        include: [GET]
    auth:
      type: bearer
      bearer:
        source: env
        env_name: PETSTORE_TOKEN

``${VAR}`` and ``${VAR:-default}`` in string values are replaced from the
environment.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigError
from .filters import normalize_operation_filter, validate_operation_filter
from .loader import is_url
from .models import AuthConfig, ServerConfig, TransformOptions

logger = logging.getLogger(__name__)

ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class BridgeConfig(BaseModel):
    spec: str
    base_url: Optional[str] = None
    server: ServerConfig = Field(default_factory=lambda: ServerConfig(name="mcp-swagger"))
    transform: TransformOptions = Field(default_factory=TransformOptions)
    filter: Optional[Dict[str, Any]] = None
    auth: Optional[AuthConfig] = None

    def to_transform_options(self) -> TransformOptions:
        """Merge the top-level sections into one set of transform options."""
        update: Dict[str, Any] = {}
        if self.base_url:
            update["base_url"] = self.base_url
        if self.auth is not None:
            update["auth"] = self.auth
        if self.filter:
            update["operation_filter"] = normalize_operation_filter(self.filter)
        return self.transform.model_copy(update=update)


def expand_env(value: Any) -> Any:
    """Recursively substitute environment references in strings.

    Raises:
        ConfigError: If a referenced variable is unset and has no default
    """
    if isinstance(value, dict):
        return {key: expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    if not isinstance(value, str):
        return value

    def substitute(match: "re.Match[str]") -> str:
        name, default = match.group(1), match.group(2)
        if name in os.environ:
            return os.environ[name]
        if default is not None:
            return default
        raise ConfigError(f"Environment variable {name} is not set")

    return ENV_PATTERN.sub(substitute, value)


def load_config(path: Union[str, Path]) -> BridgeConfig:
    """Load a bridge configuration file.

    A relative ``spec`` path is resolved against the config file's directory.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error loading {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    try:
        config = BridgeConfig.model_validate(expand_env(raw))
    except ValidationError as e:
        raise ConfigError(f"Invalid config {path}: {e}") from e

    if config.filter is not None:
        result = validate_operation_filter(config.filter)
        if not result.valid:
            raise ConfigError(f"Invalid filter in {path}: {'; '.join(result.errors)}")
        for warning in result.warnings:
            logger.warning("Filter in %s: %s", path, warning)

    if not is_url(config.spec) and not Path(config.spec).is_absolute():
        config.spec = str(path.parent / config.spec)
    return config

