"""
Application configuration module using Pydantic Settings.

Centralizes the deployment orchestrator settings: release branch, compose
command variants, environment template names, metrics endpoint and
timeouts. All settings can be overridden via environment variables with the
RELEASEGATE_ prefix.

Example:
    RELEASEGATE_RELEASE_BRANCH=production
    RELEASEGATE_METRICS_HOST=http://10.0.0.12:9090
    RELEASEGATE_COMPOSE_LEGACY='["docker-compose"]'
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Deployment orchestrator settings with validation.

    Deliberately not read from `.env`: that file is the deployed stack's
    runtime configuration, produced by the materialize-env stage.
    """

    model_config = SettingsConfigDict(
        env_prefix="RELEASEGATE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Source control
    release_branch: str = Field(
        default="main",
        description="Only pushes to this branch build, deploy and health-check",
    )
    working_dir: Path = Field(
        default=Path("."),
        description="Working-tree checkout the pipeline operates on",
    )

    # Container runtime
    project_name: str | None = Field(
        default=None,
        description="Compose project name (passed as COMPOSE_PROJECT_NAME)",
    )
    compose_modern: list[str] = Field(
        default_factory=lambda: ["docker", "compose"],
        description="Unified compose command (probed first)",
    )
    compose_legacy: list[str] = Field(
        default_factory=lambda: ["docker-compose"],
        description="Legacy standalone compose command (fallback)",
    )
    prune_command: list[str] = Field(
        default_factory=lambda: ["docker", "system", "prune", "-af"],
        description="Prune of unused container resources run during cleanup",
    )

    # Environment template
    env_template: str = Field(
        default="environments",
        description="Checked-in template, relative to working_dir",
    )
    env_file_name: str = Field(
        default=".env",
        description="Runtime config filename consumed by the container stack",
    )

    # Test stage
    test_command: list[str] | None = Field(
        default=None,
        description="Command run by the test stage (no-op when unset)",
    )

    # Health gate
    metrics_host: str = Field(
        default="http://localhost:9090",
        description="Prometheus-compatible metrics backend base URL",
    )
    health_query: str = Field(
        default="up",
        description="Instant query whose samples decide the health verdict",
    )
    health_timeout_seconds: float = Field(default=10.0, gt=0)

    # Timeouts
    probe_timeout_seconds: float = Field(default=10.0, gt=0)
    command_timeout_seconds: float = Field(default=1800.0, gt=0)

    # Observability
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False
    metrics_textfile: Path | None = Field(
        default=None,
        description="Write Prometheus metrics here after each run (textfile collector)",
    )

    @field_validator("release_branch")
    @classmethod
    def validate_release_branch(cls, v: str) -> str:
        """Reject an empty release branch, which would gate every stage off."""
        v = v.strip()
        if not v:
            raise ValueError("release_branch must not be empty")
        return v

    @field_validator("compose_modern", "compose_legacy", "prune_command")
    @classmethod
    def validate_command(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("command must contain at least one element")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

