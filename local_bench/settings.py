"""Configuration for a bench run.

Settings are resolved once per CLI invocation and handed to each component,
from lowest to highest precedence: model defaults, the YAML settings file,
``LOCALBENCH_*`` environment variables and command line flags.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from local_bench.exceptions import ConfigurationError
from local_bench.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_SETTINGS_FILE = Path("~/.local-bench.yaml")
ENV_PREFIX = "LOCALBENCH_"


class Settings(BaseModel):
    """Settings for one bench run."""

    cluster_name: str = "local-bench"
    directory: Path = Path(".")
    kind_config: Path | None = None
    kubeconfig_path: Path | None = None
    domain: str = "k8s-bench.local"
    ingress_namespace: str = "haproxy-ingress"
    service_hosts: list[str] = Field(default_factory=lambda: ["argocd", "headlamp"])
    address_timeout: float = 300.0
    poll_interval: float = 5.0
    start_balancer: bool = True
    balancer_foreground: bool = False
    reuse_running_balancer: bool = False
    dnsmasq_config: Path | None = None
    debug: bool = False

    @field_validator("cluster_name", "domain", "ingress_namespace")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Validate required names are not empty."""
        if not v:
            raise ValueError("value cannot be empty")
        return v

    @field_validator("address_timeout", "poll_interval")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate durations are positive."""
        if v <= 0:
            raise ValueError("duration must be positive")
        return v

    @field_validator("service_hosts", mode="before")
    @classmethod
    def split_hosts(cls, v: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [h.strip() for h in v.split(",") if h.strip()]
        return v

    def resolved_kubeconfig(self) -> Path:
        """Path the kind kubeconfig is written to."""
        if self.kubeconfig_path:
            return self.kubeconfig_path.expanduser()
        return (self.directory.expanduser() / f"{self.cluster_name}.kubeconfig").absolute()

    def service_urls(self) -> list[str]:
        """URLs of the hostnames routed through the bench domain."""
        return [f"http://{host}.{self.domain}" for host in self.service_hosts]

    @classmethod
    def load(cls, path: Path | None = None, overrides: dict[str, Any] | None = None) -> "Settings":
        """Load settings from file, environment and explicit overrides.

        Args:
            path: Settings file; when None the default file is used if present
            overrides: Values from the command line; None values are ignored

        Returns:
            Validated settings

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid
        """
        data: dict[str, Any] = {}

        if path is not None:
            data.update(_read_settings_file(Path(path), required=True))
        else:
            data.update(_read_settings_file(DEFAULT_SETTINGS_FILE.expanduser(), required=False))

        data.update(_read_environment())
        data.update({k: v for k, v in (overrides or {}).items() if v is not None})

        try:
            settings = cls(**data)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError("Invalid settings", problems)

        logger.debug(f"Settings resolved: {settings.model_dump()}")
        return settings


def _read_settings_file(path: Path, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(
                f"Settings file not found: {path}",
                "Create the file or drop the --config option to use defaults",
            )
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read settings file: {path}", str(e))

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Settings file must contain a mapping: {path}",
            f"Found {type(data).__name__} at the top level",
        )

    logger.debug(f"Loaded settings file {path} with keys {sorted(data)}")
    return {k.replace("-", "_"): v for k, v in data.items()}


def _read_environment() -> dict[str, Any]:
    values = {}
    for name in Settings.model_fields:
        env_name = f"{ENV_PREFIX}{name.upper()}"
        if env_name in os.environ:
            values[name] = os.environ[env_name]
    return values
