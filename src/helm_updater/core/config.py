"""Configuration management for the Helm updater."""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from helm_updater.core.exceptions import ConfigurationError
from helm_updater.core.models import UpdateStrategy, UpdateType


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class _ConfigModel(BaseModel):
    """Accepts both ``snake_case`` and the ``kebab-case`` keys of .argocd-updater.yml."""

    model_config = ConfigDict(alias_generator=_kebab, populate_by_name=True)


class RegistryCredential(_ConfigModel):
    """Credential for a private Helm repository or OCI registry."""

    registry: str = Field(..., description="Registry host or URL fragment to match")
    auth_type: Literal["basic", "bearer"] = "basic"
    username: str | None = None
    password: str

    @field_validator("password")
    @classmethod
    def expand_env(cls, value: str) -> str:
        """Expand ``$VAR`` / ``${VAR}`` references so secrets stay out of the file."""
        return os.path.expandvars(value)

    @model_validator(mode="after")
    def require_username_for_basic(self) -> "RegistryCredential":
        """Basic auth needs a username."""
        if self.auth_type == "basic" and not self.username:
            raise ValueError(f"Registry credential for '{self.registry}' uses basic auth without a username")
        return self

    def matches(self, url: str) -> bool:
        """Check whether this credential applies to a URL."""
        return self.registry.lower() in url.lower()


class IgnoreRule(_ConfigModel):
    """Rule excluding a dependency, some of its versions, or some update types."""

    dependency_name: str
    versions: list[str] | None = None
    update_types: list[UpdateType] | None = None

    @field_validator("dependency_name")
    @classmethod
    def name_not_empty(cls, value: str) -> str:
        """Reject blank dependency names."""
        if not value.strip():
            raise ValueError("Ignore rule must include dependency-name")
        return value

    @field_validator("versions")
    @classmethod
    def versions_not_empty(cls, value: list[str] | None) -> list[str] | None:
        """Reject blank version patterns."""
        if value and any(not pattern.strip() for pattern in value):
            raise ValueError("Ignore rule version patterns must not be empty strings")
        return value

    @property
    def ignores_dependency(self) -> bool:
        """A rule with neither versions nor update types ignores the dependency entirely."""
        return not self.versions and not self.update_types


class DependencyGroup(_ConfigModel):
    """Named set of chart name patterns batched together."""

    patterns: list[str] = Field(..., min_length=1)
    update_types: list[UpdateType] | None = None

    @field_validator("patterns")
    @classmethod
    def patterns_not_empty(cls, value: list[str]) -> list[str]:
        """Reject blank patterns."""
        if any(not pattern.strip() for pattern in value):
            raise ValueError("Dependency group contains an empty pattern")
        return value


class HttpConfig(_ConfigModel):
    """Registry HTTP client configuration."""

    timeout_seconds: float = Field(30.0, gt=0)
    max_retries: int = Field(3, ge=1)
    max_concurrency: int = Field(10, ge=1)


class LoggingConfig(_ConfigModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"
    output: str = "stderr"


class UpdaterConfig(_ConfigModel):
    """Main Helm updater configuration."""

    include_paths: list[str] = Field(default_factory=lambda: ["**/*.yaml", "**/*.yml"])
    exclude_paths: list[str] = Field(default_factory=lambda: ["node_modules/**", ".git/**"])
    update_strategy: UpdateStrategy = UpdateStrategy.ALL
    registry_credentials: list[RegistryCredential] = Field(default_factory=list)
    ignore: list[IgnoreRule] = Field(default_factory=list)
    groups: dict[str, DependencyGroup] = Field(default_factory=dict)
    http: HttpConfig = Field(default_factory=HttpConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("include_paths", "exclude_paths", mode="before")
    @classmethod
    def split_patterns(cls, value: Any) -> Any:
        """Accept a single pattern or a comma/newline separated string."""
        if isinstance(value, str):
            return [p.strip() for p in value.replace("\n", ",").split(",") if p.strip()]
        return value

    @field_validator("include_paths")
    @classmethod
    def include_not_empty(cls, value: list[str]) -> list[str]:
        """At least one include pattern is required."""
        if not value:
            raise ValueError("include-paths must not be empty")
        return value

    @classmethod
    def from_file(cls, path: str | Path) -> "UpdaterConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            UpdaterConfig instance

        Raises:
            ConfigurationError: If file cannot be loaded or parsed
        """
        config_path = Path(path).expanduser()

        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with config_path.open() as f:
                data = yaml.safe_load(f)
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        try:
            return cls.model_validate(data or {})
        except Exception as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary representation
        """
        return self.model_dump()
