"""Configuration loading and validation.

Usage:
    config = load()                             # defaults + environment
    config = load("sentinel-index.yaml")        # raises ConfigError on bad config
    generate_template("sentinel-index.yaml")    # writes example file to disk
"""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_CONFIG_PATH = "sentinel-index.yaml"

# Environment variable -> Config attribute
_ENV_OVERRIDES = {
    "SENTINEL_REPO_OWNER":     "owner",
    "SENTINEL_REPO_NAME":      "name",
    "SENTINEL_REPO_BRANCH":    "branch",
    "SENTINEL_SOLUTIONS_PATH": "solutions_path",
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""


# ---------------------------------------------------------------------------
# Config dataclass
# ---------------------------------------------------------------------------

@dataclass
class Config:
    owner: str = "Azure"
    name: str = "Azure-Sentinel"
    branch: str = "master"
    solutions_path: str = "Solutions"
    max_workers: int = 8
    timeout: int = 30

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.name}"


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load(config_path: str | None = None) -> Config:
    """Load and validate configuration.

    With no *config_path* the built-in defaults are used. Environment
    variables SENTINEL_REPO_OWNER, SENTINEL_REPO_NAME, SENTINEL_REPO_BRANCH
    and SENTINEL_SOLUTIONS_PATH override file values.

    Raises:
        ConfigError: if the file is missing, malformed, or values are invalid.
    """
    raw: dict = {}
    if config_path is not None:
        raw = _read_yaml(config_path)

    repository = raw.get("repository") or {}
    fetch = raw.get("fetch") or {}
    if not isinstance(repository, dict) or not isinstance(fetch, dict):
        raise ConfigError("'repository' and 'fetch' must be YAML mappings.")

    defaults = Config()
    values = {
        "owner":          repository.get("owner", defaults.owner),
        "name":           repository.get("name", defaults.name),
        "branch":         repository.get("branch", defaults.branch),
        "solutions_path": repository.get("solutions_path", defaults.solutions_path),
    }
    for env_var, attr in _ENV_OVERRIDES.items():
        if os.environ.get(env_var):
            values[attr] = os.environ[env_var]

    config = Config(
        owner=str(values["owner"] or "").strip(),
        name=str(values["name"] or "").strip(),
        branch=str(values["branch"] or "").strip(),
        solutions_path=str(values["solutions_path"] or "").strip().strip("/"),
        max_workers=_as_int(fetch.get("max_workers", defaults.max_workers), "fetch.max_workers"),
        timeout=_as_int(fetch.get("timeout", defaults.timeout), "fetch.timeout"),
    )
    _validate(config)
    return config


def _read_yaml(config_path: str) -> dict:
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(
            f"Config file not found: '{config_path}'\n"
            "Run `python -m sentinel_index init` to generate a template."
        )

    try:
        with path.open(encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse '{config_path}': {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'{config_path}' must be a YAML mapping at the top level.")
    return raw


def _as_int(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"'{name}' must be an integer, got {value!r}") from exc


def _validate(config: Config) -> None:
    """Raise ConfigError if required fields are missing."""
    errors: list[str] = []

    if not config.owner:
        errors.append(
            "  - 'repository.owner' is empty (or set the SENTINEL_REPO_OWNER environment variable)"
        )
    if not config.name:
        errors.append(
            "  - 'repository.name' is empty (or set the SENTINEL_REPO_NAME environment variable)"
        )
    if not config.branch:
        errors.append(
            "  - 'repository.branch' is empty (or set the SENTINEL_REPO_BRANCH environment variable)"
        )
    if not config.solutions_path:
        errors.append(
            "  - 'repository.solutions_path' is empty "
            "(or set the SENTINEL_SOLUTIONS_PATH environment variable)"
        )
    if config.max_workers < 1:
        errors.append("  - 'fetch.max_workers' must be at least 1")
    if config.timeout < 1:
        errors.append("  - 'fetch.timeout' must be at least 1 second")

    if errors:
        raise ConfigError("Invalid configuration:\n" + "\n".join(errors))


# ---------------------------------------------------------------------------
# Template generator (used by `init` command)
# ---------------------------------------------------------------------------

TEMPLATE = """\
repository:
  owner: "Azure"
  name: "Azure-Sentinel"
  branch: "master"
  solutions_path: "Solutions"     # Directory holding one sub-directory per solution

fetch:
  max_workers: 8                  # Concurrent file downloads
  timeout: 30                     # Per-request timeout in seconds
"""


def generate_template(output_path: str = DEFAULT_CONFIG_PATH) -> None:
    """Write a template sentinel-index.yaml to *output_path*.

    Raises:
        ConfigError: if the file already exists.
    """
    path = Path(output_path)
    if path.exists():
        raise ConfigError(
            f"'{output_path}' already exists. Remove it first or choose a different path."
        )
    path.write_text(TEMPLATE, encoding="utf-8")
