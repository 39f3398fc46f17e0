"""
Configuration

Optional YAML file, overridden by SF_* environment variables, overridden
by command line flags.

    salesforce:
      target_org: my-sandbox
      api_version: "59.0"
    upload:
      max_parallel_jobs: 4
      output_dir: ./results
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import yaml

from .auth.oauth import AuthConfig

DEFAULT_CONFIG_PATH = "~/.chipps/config.yaml"
DEFAULT_API_VERSION = "59.0"

ENV_OVERRIDES = {
    "SF_USERNAME": ("salesforce", "username"),
    "SF_PASSWORD": ("salesforce", "password"),
    "SF_SECURITY_TOKEN": ("salesforce", "security_token"),
    "SF_CLIENT_ID": ("salesforce", "client_id"),
    "SF_CLIENT_SECRET": ("salesforce", "client_secret"),
    "SF_DOMAIN": ("salesforce", "domain"),
    "SF_INSTANCE_URL": ("salesforce", "instance_url"),
    "SF_ACCESS_TOKEN": ("salesforce", "access_token"),
    "SF_TARGET_ORG": ("salesforce", "target_org"),
    "SF_API_VERSION": ("salesforce", "api_version"),
}

_API_VERSION = re.compile(r"^v?\d+\.\d$")


@dataclass
class UploadConfig:
    """Batch upload settings"""
    max_parallel_jobs: int = 1
    max_pending: Optional[int] = None
    output_dir: str = "."


@dataclass
class AppConfig:
    auth: AuthConfig = field(default_factory=AuthConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    api_version: str = DEFAULT_API_VERSION

    def validate(self) -> 'AppConfig':
        if self.upload.max_parallel_jobs < 1:
            raise ConfigError(f"max_parallel_jobs must be at least 1, got {self.upload.max_parallel_jobs}")
        if self.upload.max_pending is not None and self.upload.max_pending < 1:
            raise ConfigError(f"max_pending must be at least 1, got {self.upload.max_pending}")
        if not _API_VERSION.match(self.api_version):
            raise ConfigError(f"Invalid API version '{self.api_version}' (expected e.g. 59.0)")
        self.api_version = self.api_version.lstrip('v')
        return self


def load_config(config_path: Optional[str] = None) -> dict:
    """Load configuration from YAML file"""
    if config_path:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
    else:
        path = Path(DEFAULT_CONFIG_PATH).expanduser()

    config: Dict[str, Any] = {}
    if path.exists():
        try:
            with open(path) as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

        if not isinstance(config, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")

    # Override with environment variables
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            if not isinstance(config.get(section), dict):
                config[section] = {}
            config[section][key] = value

    return config


def create_app_config(config: dict, overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
    """
    Build AppConfig from loaded configuration.

    ``overrides`` holds command line values; None entries are ignored.
    """
    sf = dict(config.get("salesforce") or {})
    upload = dict(config.get("upload") or {})
    flags = {k: v for k, v in (overrides or {}).items() if v is not None}

    for key in ("target_org", "instance_url", "access_token", "username"):
        if key in flags:
            sf[key] = flags[key]
    for key in ("max_parallel_jobs", "max_pending", "output_dir"):
        if key in flags:
            upload[key] = flags[key]

    try:
        app_config = AppConfig(
            auth=AuthConfig(
                username=sf.get("username"),
                password=sf.get("password"),
                security_token=sf.get("security_token", "") or "",
                client_id=sf.get("client_id"),
                client_secret=sf.get("client_secret"),
                domain=sf.get("domain", "login"),
                instance_url=sf.get("instance_url"),
                access_token=sf.get("access_token"),
                target_org=sf.get("target_org"),
                sf_executable=sf.get("sf_executable", "sf"),
            ),
            upload=UploadConfig(
                max_parallel_jobs=int(upload.get("max_parallel_jobs", 1)),
                max_pending=int(upload["max_pending"]) if upload.get("max_pending") is not None else None,
                output_dir=str(upload.get("output_dir", ".")),
            ),
            api_version=str(flags.get("api_version") or sf.get("api_version") or DEFAULT_API_VERSION),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    return app_config.validate()


class ConfigError(Exception):
    """Configuration is missing or invalid"""
    pass
