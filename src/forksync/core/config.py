"""Application state and configuration."""

from __future__ import annotations

import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from forksync.core.base import BaseConfig, BaseState
from forksync.core.errors import ConfigurationError
from forksync.core.log import Logger
from forksync.core.yaml_settings import YamlWithIncludesSettingsSource
from forksync.protection.registry import (
    ProtectedPathSet,
    build_protected_paths,
    load_protected_paths,
)

# ============================================================
# TEMPLATE SUBSTITUTION NAMESPACE
# ============================================================

# Usage in YAML: {platformdirs.user_state_dir}, {os.getcwd}, {Path.cwd}
TEMPLATE_NAMESPACE = {
    'os': os,
    'platformdirs': platformdirs,
    'Path': Path,
}

# ============================================================
# CONFIG MODELS (loaded from YAML/env/CLI)
# ============================================================

class GitConfig(BaseConfig):
    """Fork working copy and upstream source."""

    workdir: Path = Field(
        default=Path("."),
        description="Path to the fork's git working copy",
    )
    primary_branch: str = Field(
        default="main",
        description="Fork branch that receives upstream merges",
    )
    upstream_remote: str = Field(
        default="upstream",
        description="Name of the remote tracking the upstream repository",
    )
    upstream_branch: str = Field(
        default="main",
        description="Upstream branch to synchronize from",
    )
    upstream_url: str | None = Field(
        default=None,
        description=(
            "Upstream repository URL; when set the remote is added or "
            "repointed before each fetch"
        ),
    )
    trial_prefix: str = Field(
        default="forksync/trial",
        description="Branch namespace for disposable trial merges",
    )
    commit_message_template: str | None = Field(
        default=None,
        description=(
            "Override for the merge commit message. Fields: {source}, "
            "{commit}, {risk}, {file_count}, {files}, {run_id}, "
            "{timestamp}"
        ),
    )
    author_name: str | None = Field(
        default=None, description="Author/committer name for merge commits"
    )
    author_email: str | None = Field(
        default=None, description="Author/committer email for merge commits"
    )


class ProtectionConfig(BaseConfig):
    """Where the protected feature lives.

    Either point ``document`` at a protected-area YAML file inside the
    working copy, or list the paths inline.
    """

    document: Path | None = Field(
        default=Path(".github/fork-sync-protection.yml"),
        description=(
            "Protected-area document, relative to git.workdir; "
            "replaces the inline lists when it exists"
        ),
    )
    protected_paths: list[str] = Field(default_factory=list)
    critical_files: list[str] = Field(default_factory=list)
    fork_specific_urls: list[Any] = Field(
        default_factory=list,
        description="Fork URL markers: strings or {pattern, description}",
    )
    dependency_paths: list[str] = Field(
        default_factory=list,
        description="Files outside the feature that it depends on",
    )
    min_fork_url_count: int = Field(
        default=0,
        description="Fewer fork URL matches than this flags a warning",
    )

    def resolve(self, workdir: Path) -> ProtectedPathSet:
        """Load the ProtectedPathSet for this run.

        Raises:
            ConfigurationError: Neither source yields a valid set
        """
        if self.document:
            document = self.document
            if not document.is_absolute():
                document = Path(workdir) / document
            if document.is_file():
                return load_protected_paths(document)

        return build_protected_paths(
            self.model_dump(exclude={"document"})
        )


class NetworkConfig(BaseConfig):
    timeout: int = Field(
        default=120, description="Seconds before a fetch is abandoned"
    )
    max_attempts: int = Field(
        default=4, ge=1, description="Fetch attempts before giving up"
    )
    backoff_factor: float = Field(
        default=2.0, description="Base of the exponential retry delay"
    )
    max_backoff: float = Field(
        default=60.0, description="Upper bound of one retry delay (seconds)"
    )


class LockConfig(BaseConfig):
    filename: str = Field(
        default="forksync.lock",
        description="Lock file name inside the repository's git directory",
    )


class ReportConfig(BaseConfig):
    """Status report export."""

    output_dir: Path = Field(
        default=Path("reports"),
        description="Directory for saved JSON reports "
                    "(supports {config.*} templates)",
    )
    save: bool = Field(default=True, description="Write the JSON report")
    github_output: Path | None = Field(
        default_factory=lambda: (
            Path(os.environ["GITHUB_OUTPUT"])
            if os.environ.get("GITHUB_OUTPUT") else None
        ),
        description="File receiving key=value action outputs",
    )


class Config(BaseConfig):
    """Run configuration loaded from YAML/env/CLI."""

    logger: Logger = Field(
        default=None,
        description="Logger configuration and runtime instance",
    )
    git: GitConfig = Field(default_factory=GitConfig)
    protection: ProtectionConfig = Field(default_factory=ProtectionConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)

    log_level: str = Field(
        default="info",
        alias="log-level",
        description=(
            "Console log level: 'trace', 'debug', 'info', "
            "'warn', 'error', 'fatal'"
        ),
    )
    log_root: Path = Field(
        default_factory=(
            lambda: Path(platformdirs.user_state_dir()) / "forksync"
        ),
        description=(
            "Root directory for log files and reports "
            "(supports {platformdirs.*} templates)"
        ),
    )
    run_name: str = Field(
        default_factory=lambda: datetime.now().strftime("sync-%Y%m%d-%H%M%S"),
        description="Per-run log subdirectory name",
    )
    commands: dict[str, dict[str, str]] = Field(
        default_factory=dict,
        description="Command templates organized by category (git, ...)",
    )

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode='after')
    def _setup_logger(self) -> 'Config':
        """Initialize the global logger once settings are loaded."""
        from forksync.core.log import setup_logger
        from forksync.core.yaml_settings import _cleanup_bootstrap_logger

        if self.logger is None:
            self.logger = Logger()

        # log-level always governs the console sink
        console = self.logger.console
        console.level = self.log_level

        setup_logger(
            log_root=self.log_root,
            run_name=self.run_name,
            level=self.logger.level,
            console=console,
            otlp=self.logger.otlp,
            file=self.logger.file,
            logfire=self.logger.logfire,
        )
        _cleanup_bootstrap_logger()
        return self

    def protected_paths(self) -> ProtectedPathSet:
        return self.protection.resolve(self.git.workdir)

    def close(self):
        """Close the global logger, then the remaining sections."""
        from forksync.core.log import logger
        logger.close()
        super().close()


# ============================================================
# RUNTIME STATE MODELS (mutable during workflow execution)
# ============================================================

class SyncState(BaseState):
    """Stage outputs of the sync pipeline, filled in as it runs."""

    dry_run: bool = False
    gateway: Any = Field(default=None, description="RepositoryGateway")
    protected_paths: Any = None
    upstream: Any = None
    divergence: Any = None
    changed_files: list[str] = Field(default_factory=list)
    simulation: Any = None
    feature_status: Any = None
    analysis: Any = None
    decision: Any = None
    outcome: Any = None
    report: Any = None
    status: str = Field(
        default="pending",
        description="pending, running, complete, failed",
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ResetState(BaseState):
    break_lock: bool = False
    lock_broken: bool = False
    status: str = "pending"


class Runtime(BaseModel):
    """All runtime state organized by command."""

    sync: SyncState = Field(default_factory=SyncState)
    reset: ResetState = Field(default_factory=ResetState)


# ============================================================
# STATE (config + runtime combined)
# ============================================================

class State(BaseSettings):
    """Configuration plus runtime state; flows through every graph node.

    Being a pydantic BaseSettings, State loads from YAML files,
    environment variables and CLI arguments, validates everything on
    load, and substitutes ``{config.*}`` templates afterwards.
    """

    config: Config = Field(default_factory=Config)
    runtime: Runtime = Field(default_factory=Runtime)
    include: list[str] | None = Field(
        default=None,
        description=(
            "Additional YAML files to include and merge "
            "(--include on the command line)"
        ),
    )

    model_config = SettingsConfigDict(
        yaml_file="forksync.yaml",
        env_file=".env",
        env_prefix="FORKSYNC_",
        env_nested_delimiter="__",
        cli_implicit_flags=True,
        cli_use_class_docs_for_groups=True,
        arbitrary_types_allowed=True,
        extra='ignore',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init args, YAML, .env, environment, secrets."""
        return (
            init_settings,
            YamlWithIncludesSettingsSource(settings_cls),
            dotenv_settings,
            env_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def substitute_templates(self) -> "State":
        """Replace {config.x.y} style templates in every string field."""
        self._substitute_recursive(self.config)
        return self

    def _substitute_recursive(self, obj: Any) -> None:
        if isinstance(obj, BaseModel):
            for field_name in obj.__class__.model_fields:
                value = getattr(obj, field_name)
                new_value = self._substitute_value(value)
                if new_value is not value:
                    setattr(obj, field_name, new_value)
        elif isinstance(obj, dict):
            for key in obj:
                obj[key] = self._substitute_value(obj[key])
        elif isinstance(obj, list):
            for i in range(len(obj)):
                obj[i] = self._substitute_value(obj[i])

    def _substitute_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self._substitute_string(value)
        if isinstance(value, Path):
            return Path(self._substitute_string(str(value)))
        if isinstance(value, (BaseModel, dict, list)):
            self._substitute_recursive(value)
        return value

    def _substitute_string(self, value: str) -> str:
        """Replace ``{field.path}`` templates with resolved values.

        Unknown references are left untouched, so command templates
        such as ``{ref}`` survive for RepositoryGateway to fill in.

        Examples:
            "{config.log_root}/reports" -> "/home/me/.local/state/forksync/reports"
            "{platformdirs.user_state_dir}" -> "/home/me/.local/state/forksync"
        """
        def replace_template(match):
            parts = match.group(1).split(".")
            module = parts[0]
            if module in TEMPLATE_NAMESPACE:
                obj = TEMPLATE_NAMESPACE[parts[0]]
                parts = parts[1:]
            elif module == "config":
                obj = self
            else:
                return match.group(0)

            try:
                for part in parts:
                    obj = getattr(obj, part)
                if callable(obj) and module == "platformdirs":
                    obj = obj("forksync", appauthor=False)
                elif callable(obj):
                    obj = obj()
                return str(obj)
            except (AttributeError, TypeError):
                return match.group(0)

        return re.sub(r'\{([a-z._]+)\}', replace_template, value)


def load_state(**overrides) -> State:
    """Build a State from files and environment (no CLI parsing).

    Raises:
        ConfigurationError: Settings failed validation
    """
    from pydantic import ValidationError

    try:
        return State(**overrides)
    except ValidationError as e:
        raise ConfigurationError("Invalid configuration", detail=str(e)) from e


__all__ = [
    "State",
    "Config",
    "GitConfig",
    "ProtectionConfig",
    "NetworkConfig",
    "LockConfig",
    "ReportConfig",
    "Runtime",
    "SyncState",
    "ResetState",
    "load_state",
]
