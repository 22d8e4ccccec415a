"""
Configuration and logging setup.

Settings come from an optional YAML file (either flat or under a top-level
``taiga:`` key) and are then overridden by ``TAIGA_*`` environment variables,
e.g. ``TAIGA_API_URL`` or ``TAIGA_QUERY_TIMEOUT``.
"""

import logging
import os
import sys
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


DEFAULT_API_URL = 'https://api.taiga.io/api/v1'
ENV_PREFIX = 'TAIGA_'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class Settings(BaseModel):
    """Runtime settings for the Taiga client and query service."""
    api_url: str = DEFAULT_API_URL
    username: Optional[str] = None
    password: Optional[str] = None
    auth_token: Optional[str] = None
    page_size: int = Field(default=100, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)
    query_timeout: float = Field(default=30.0, gt=0)
    max_complexity: float = Field(default=10.0, gt=0)
    task_fetch_concurrency: int = Field(default=5, gt=0)
    log_level: str = 'INFO'

    @field_validator('api_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip('/')

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level


def load_settings(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from a YAML file and the environment.

    Args:
        path: Optional YAML config file
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Validated Settings

    Raises:
        pydantic.ValidationError: If a value is invalid
        ValueError: If the YAML file does not contain a mapping
    """
    values: Dict[str, Any] = {}

    if path:
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
        if not isinstance(config, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        section = config.get('taiga', config)
        if not isinstance(section, dict):
            raise ValueError(f"'taiga' section in {path} must be a mapping")
        values.update({k: v for k, v in section.items() if k in Settings.model_fields})

    env = os.environ if environ is None else environ
    for name in Settings.model_fields:
        key = ENV_PREFIX + name.upper()
        if key in env and env[key] != '':
            values[name] = env[key]

    return Settings(**values)


def configure_logging(level: str = 'INFO', debug: bool = False) -> None:
    """Install a stream handler on the root logger."""
    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    logging.getLogger('taiga_query').setLevel(log_level)
