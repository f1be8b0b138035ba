"""
Configuration loader for PATCHWRIGHT.
Merges built-in defaults with per-repo .patchwright/config.yaml overrides
and the environment the workflow runner hands us.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"


class ConfigError(Exception):
    """The repository's .patchwright/config.yaml could not be used."""


class ProviderConfig(BaseModel):
    api_key: str | None = Field(default=None, repr=False)
    base_url: str = DEFAULT_BASE_URL
    api_version: str | None = None
    model: str = DEFAULT_MODEL
    timeout_seconds: float = 120.0


class LimitsConfig(BaseModel):
    max_listed_files: int = 200
    max_prompt_files: int = 80
    max_diff_chars: int = 15_000
    patch_max_tokens: int = 8192
    review_max_tokens: int = 4096
    max_changes: int = 50
    max_file_bytes: int = 1_000_000
    max_attempts: int = 3
    retry_min_wait: float = 1.0
    retry_max_wait: float = 10.0


class CollectorConfig(BaseModel):
    skip_dirs: list[str] = Field(
        default_factory=lambda: ["node_modules", ".git", "dist", "build"]
    )


class BoundaryConfig(BaseModel):
    protected_paths: list[str] = Field(default_factory=lambda: [".git"])


class AgentConfig(BaseModel):
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    boundaries: BoundaryConfig = Field(default_factory=BoundaryConfig)
    repo_root: Path = Field(default_factory=Path.cwd)
    output_dir: Path = Path("/tmp")


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

# Sections a target repository may override. Provider settings stay out of
# reach so a checked-out repo cannot redirect the endpoint (and the key).
_REPO_OVERRIDABLE = ("limits", "collector", "boundaries")


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    """Map the runner's environment onto config keys. Empty values count as unset."""
    provider: dict[str, Any] = {}
    for key, field in (
        ("OPENAI_API_KEY", "api_key"),
        ("OPENAI_BASE_URL", "base_url"),
        ("OPENAI_API_VERSION", "api_version"),
        ("OPENAI_MODEL", "model"),
    ):
        if env.get(key):
            provider[field] = env[key]

    overrides: dict[str, Any] = {"provider": provider}

    repo_root = env.get("GITHUB_WORKSPACE")
    if repo_root:
        overrides["repo_root"] = repo_root

    output_dir = env.get("RUNNER_TEMP") or env.get("TMPDIR")
    if output_dir:
        overrides["output_dir"] = output_dir

    return overrides


def load_config(
    repo_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> AgentConfig:
    """
    Load config by merging:
      1. Built-in defaults (patchwright/config.yaml)
      2. Repo-level overrides (<repo>/.patchwright/config.yaml), limits/collector/boundaries only
      3. Environment overrides (OPENAI_*, GITHUB_WORKSPACE, RUNNER_TEMP/TMPDIR)

    An explicit repo_path wins over GITHUB_WORKSPACE.
    """
    env = os.environ if env is None else env

    # 1. Built-in defaults
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    # 3 is computed first so the repo root is known before reading overrides
    env_layer = _env_overrides(env)
    if repo_path is not None:
        env_layer["repo_root"] = str(repo_path)
    root = Path(env_layer.get("repo_root") or Path.cwd())

    # 2. Repo overrides
    repo_config = root / ".patchwright" / "config.yaml"
    if repo_config.is_file():
        try:
            with open(repo_config, "r") as f:
                overrides = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read {repo_config}: {e}") from e
        if not isinstance(overrides, dict):
            raise ConfigError(f"{repo_config} must be a mapping, got {type(overrides).__name__}")
        allowed = {k: v for k, v in overrides.items() if k in _REPO_OVERRIDABLE}
        base = _deep_merge(base, allowed)

    base = _deep_merge(base, env_layer)
    try:
        return AgentConfig(**base)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration ({repo_config}): {e}") from e
