"""YAML config loading with env var expansion."""

import os
import re
from collections.abc import Iterator
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import MirrorConfig

PROJECT_CONFIG = Path("digestmirror.yaml")

# ${VAR} or ${VAR:-fallback}; the fallback applies when VAR is unset or empty
_ENV_REF = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def _candidates(cli_path: str | None) -> Iterator[tuple[Path, bool]]:
    """Yield (path, required) in resolution order."""
    if cli_path:
        yield Path(cli_path), True
    yield PROJECT_CONFIG, False
    yield Path.home() / ".digestmirror" / "config.yaml", False


def load_config(cli_path: str | None = None) -> MirrorConfig:
    """Load config with resolution order: CLI > project-local > user-global > defaults.

    An explicit ``cli_path`` must exist. Files that parse to nothing are
    skipped so an empty digestmirror.yaml does not mask the user-global one.
    """
    for path, required in _candidates(cli_path):
        if not path.is_file():
            if required:
                raise ValueError(f"Config file not found: {path}")
            continue
        try:
            raw = yaml.safe_load(path.read_text())
        except OSError as e:
            raise ValueError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if raw is None:
            continue
        try:
            return MirrorConfig.model_validate(_expand_env_vars(raw))
        except ValidationError as e:
            raise ValueError(f"Invalid config in {path}: {e}") from e
    return MirrorConfig()


def _expand_env_vars(obj: object) -> object:
    """Expand env references in every string of a parsed YAML tree."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    if isinstance(obj, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1)) or m.group(2) or "", obj)
    return obj


# Default YAML template for `digestmirror config init`
DEFAULT_CONFIG_TEMPLATE = """\
# digestmirror.yaml

# Object store
store:
  provider: "s3"
  region: "${AWS_REGION:-us-east-1}"
  # endpoint_url: "http://localhost:9000"   # S3-compatible endpoints
  # profile: "default"
  connect_timeout: 5
  read_timeout: 30
  max_attempts: 3

# What to mirror
target:
  bucket: ""
  key: ""
  local_path: ""
  metadata_field: "sha512"

# Backups of replaced local content
backup:
  policy: "rotate"             # rotate | overwrite | fail

chunk_size: 65536

# Logging
log_level: "info"              # debug | info | warn | error
log_format: "text"             # text | json
"""
