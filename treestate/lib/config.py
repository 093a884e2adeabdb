"""
Engine configuration.

Loads treestate.yaml when present and overlays it on the defaults below.
The file is validated against schemas/config.schema.json before use, so a
typo in a key fails loudly instead of being silently ignored.
"""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

import yaml

from . import validate

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TREESTATE_CONFIG"

# GUI-launched processes inherit a minimal PATH; these are appended to it
# when resolving executables. "~" expands to the user's home directory.
DEFAULT_EXTRA_PATHS = (
    "/usr/local/bin",
    "/opt/homebrew/bin",
    "/usr/local/sbin",
    "~/bin",
    "~/.local/bin",
    "~/.npm-global/bin",
    "~/.yarn/bin",
    "~/.bun/bin",
    "~/.cargo/bin",
    "~/.asdf/bin",
    "~/.asdf/shims",
    "~/.pyenv/bin",
    "~/.pyenv/shims",
)


@dataclass(frozen=True)
class EngineConfig:
    """Timeouts are seconds, sizes are bytes."""
    git_command: str = "git"
    extra_paths: tuple[str, ...] = field(default=DEFAULT_EXTRA_PATHS)

    status_ttl: float = 1.2  # staging must feel immediate
    ahead_behind_ttl: float = 1.2
    activity_ttl: float = 30.0
    activity_days: int = 365

    query_timeout: float = 10.0
    patch_timeout: float = 30.0
    log_timeout: float = 15.0
    index_timeout: float = 60.0  # whole-tree add/reset on large repos
    network_timeout: float = 120.0
    commit_timeout: float = 300.0  # hooks can be slow

    max_output_bytes: int = 1024 * 1024
    large_output_bytes: int = 10 * 1024 * 1024
    history_output_bytes: int = 5 * 1024 * 1024
    max_patch_bytes: int = 1024 * 1024
    max_resolved_bytes: int = 5 * 1024 * 1024
    max_message_length: int = 10000

    sync_log_limit: int = 50
    local_commit_limit: int = 20
    graph_max_count: int = 200


DEFAULT_CONFIG = EngineConfig()


def load_config(path: Path | None = None) -> EngineConfig:
    """Load engine config from YAML.

    Falls back to $TREESTATE_CONFIG when path is None. Returns defaults if no
    file exists or the YAML cannot be parsed.

    Raises:
        SchemaError: if the file parses but does not match the schema
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if not env_path:
            return DEFAULT_CONFIG
        path = Path(env_path)

    if not path.exists():
        return DEFAULT_CONFIG

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {path}: {e}")
        return DEFAULT_CONFIG

    if not data:
        return DEFAULT_CONFIG

    validate.validate(data, "config")

    known = {f.name for f in fields(EngineConfig)}
    overrides = {k: v for k, v in data.items() if k in known}
    if "extra_paths" in overrides:
        overrides["extra_paths"] = tuple(overrides["extra_paths"])
    return replace(DEFAULT_CONFIG, **overrides)
