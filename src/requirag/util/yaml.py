import os
import re
from pathlib import Path
from typing import Any, cast

import structlog
import yaml  # type: ignore[import-untyped]

_logger = structlog.get_logger()

# $(VAR) or $(VAR:-fallback)
_ENV_PATTERN = re.compile(r"\$\(([A-Za-z_][A-Za-z0-9_]*)(?::-([^)]*))?\)")


def resolve_env_vars(
    value: Any,
    required_vars: set[str] | None = None,
) -> Any:
    """Recursively substitute ``$(VAR)`` placeholders with environment values.

    ``$(VAR:-fallback)`` uses *fallback* when the variable is unset. A variable
    listed in *required_vars* that is unset and has no fallback raises
    :class:`ValueError`; any other unset variable becomes an empty string.
    """

    def _replace(match: re.Match[str]) -> str:
        var_name, fallback = match.group(1), match.group(2)
        env_value = os.getenv(var_name)
        if env_value is not None:
            return env_value
        if fallback is not None:
            return fallback
        if required_vars and var_name in required_vars:
            raise ValueError(f"Missing required environment variable: {var_name}")
        return ""

    if isinstance(value, str):
        return _ENV_PATTERN.sub(_replace, value)
    if isinstance(value, dict):
        return {k: resolve_env_vars(v, required_vars) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_env_vars(item, required_vars) for item in value]
    return value


def load_yaml_config(
    config_path: Path,
    defaults: dict[str, Any] | None = None,
    required_vars: set[str] | None = None,
) -> dict[str, Any]:
    """Load a YAML file and resolve its environment placeholders.

    Args:
        config_path: Path to the YAML file.
        defaults: Returned as-is when the file does not exist.
        required_vars: Environment variables that must be set (or carry a
            fallback in the placeholder).
    """
    if not config_path.exists():
        _logger.warning("config_not_found", path=str(config_path))
        return defaults or {}

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping at the top level")

    return cast(dict[str, Any], resolve_env_vars(raw, required_vars))
