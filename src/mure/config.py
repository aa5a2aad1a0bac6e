"""Configuration for mure.

Two layers:

- `MureSettings` / `GitHubSettings`: process settings from environment
  variables and a local `.env` file (pydantic-settings).
- `MureConfig`: the user's TOML config file, usually `~/.mure.toml`
  (override the location with `MURE_CONFIG_PATH`).

Nothing here is global state; the CLI loads both once and passes them into
every component explicitly.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mure.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.mure.toml")


class MureSettings(BaseSettings):
    """Process-level settings.

    Environment variables:
    - MURE_CONFIG_PATH    (optional)
    - LOG_LEVEL           (optional)
    - GITHUB_BASE_URL     (optional, REST API)
    - GITHUB_GRAPHQL_URL  (optional)
    """

    config_path: Path = Field(
        default=DEFAULT_CONFIG_PATH,
        validation_alias="MURE_CONFIG_PATH",
        description="Location of the TOML configuration file",
    )
    log_level: str = Field(
        default="WARNING",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )
    github_base_url: str = Field(
        default="https://api.github.com",
        validation_alias="GITHUB_BASE_URL",
        description="GitHub REST API base URL (useful for GitHub Enterprise)",
    )
    github_graphql_url: str | None = Field(
        default=None,
        validation_alias="GITHUB_GRAPHQL_URL",
        description="GitHub GraphQL endpoint (derived from GITHUB_BASE_URL when unset)",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @property
    def resolved_config_path(self) -> Path:
        return self.config_path.expanduser()


class GitHubSettings(BaseSettings):
    """Credentials for the GitHub API. Only built by commands that need it."""

    token: str = Field(
        default="",
        validation_alias="GH_TOKEN",
        description="GitHub token used for API authentication",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _require_token(self) -> GitHubSettings:
        if not self.token.strip():
            raise ValueError("GH_TOKEN is not set")
        return self


class SearchQuery(BaseModel):
    """A repository search query and the label its results are grouped under."""

    query: str
    label: str = ""

    @model_validator(mode="after")
    def _default_label(self) -> SearchQuery:
        if not self.query.strip():
            raise ValueError("query must not be empty")
        if not self.label:
            self.label = self.query
        return self


class CoreConfig(BaseModel):
    base_dir: str = Field(default="~/.dev", description="Root of the workspace")
    alias_style: Literal["owner", "name"] = Field(
        default="owner",
        description="'owner' links <base>/<owner>/<name>, 'name' links <base>/<name>",
    )
    concurrency: int = Field(default=8, gt=0, description="Parallel repositories/queries")
    prune_merged_branches: bool = Field(
        default=False,
        description="Delete local branches already merged into the default branch on refresh",
    )
    editor: str | None = Field(default=None, description="Editor command for `mure edit`")


class GitHubConfig(BaseModel):
    username: str = Field(default="")
    query: SearchQuery | None = Field(default=None)
    queries: list[SearchQuery] | None = Field(default=None)
    page_size: int = Field(default=100, gt=0, le=100)
    max_pages: int = Field(default=100, gt=0, description="Hard ceiling on pages per query")
    timeout_seconds: float | None = Field(
        default=None, gt=0, description="Run-level timeout for aggregation"
    )

    @field_validator("query", mode="before")
    @classmethod
    def _coerce_query(cls, value: object) -> object:
        if isinstance(value, str):
            return {"query": value}
        return value

    @field_validator("queries", mode="before")
    @classmethod
    def _coerce_queries(cls, value: object) -> object:
        if isinstance(value, list):
            return [{"query": v} if isinstance(v, str) else v for v in value]
        return value

    @property
    def is_both_query_and_queries_set(self) -> bool:
        return self.query is not None and self.queries is not None

    def get_queries(self) -> list[SearchQuery]:
        """Configured queries, falling back to the user's public repositories."""

        if self.is_both_query_and_queries_set:
            raise ConfigError("Both query and queries are set. Please set only one of them.")
        if self.queries:
            return list(self.queries)
        if self.query is not None:
            return [self.query]
        if not self.username.strip():
            raise ConfigError("github.username or github.query must be configured")
        return [
            SearchQuery(
                query=f"user:{self.username} is:public fork:false archived:false",
                label=self.username,
            )
        ]


class ShellConfig(BaseModel):
    cd_shims: str = Field(default="mucd")


class MureConfig(BaseModel):
    """Contents of the TOML configuration file."""

    core: CoreConfig = Field(default_factory=CoreConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    shell: ShellConfig = Field(default_factory=ShellConfig)

    @property
    def base_path(self) -> Path:
        return Path(os.path.expanduser(self.core.base_dir)).resolve()

    @property
    def repos_store_path(self) -> Path:
        return self.base_path / "repo"

    def require_base_path(self) -> Path:
        """Return the base directory, creating it when missing.

        Raises:
            ConfigError: the base directory cannot be used.
        """

        path = self.base_path
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"cannot use base_dir {path}: {e}") from e
        if not path.is_dir():
            raise ConfigError(f"base_dir {path} is not a directory")
        return path


def load_config(path: Path) -> MureConfig:
    """Read and validate the TOML config file.

    Raises:
        ConfigError: the file is missing, not valid TOML, or fails validation.
    """

    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {path} (run `mure init`)") from e
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {path}: {e}") from e

    try:
        config = MureConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration in {path}:\n{e}") from e

    logger.debug("Loaded configuration", extra={"path": str(path)})
    return config


DEFAULT_CONFIG_TEMPLATE = """\
[core]
base_dir = "~/.dev"
alias_style = "owner"

[github]
username = ""

[shell]
cd_shims = "mucd"
"""


def init_config(path: Path) -> MureConfig:
    """Write the default config file.

    Raises:
        ConfigError: a config file already exists at `path`.
    """

    if path.exists():
        raise ConfigError("config file already exists")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
    logger.info("Wrote default configuration", extra={"path": str(path)})
    return MureConfig.model_validate(tomllib.loads(DEFAULT_CONFIG_TEMPLATE))
