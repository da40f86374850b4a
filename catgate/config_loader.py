"""Gateway configuration: a YAML file plus ``$VAR`` placeholders.

Placeholders are filled from the ``.env`` file paired with the config
(``config_<name>.yaml`` pairs with ``.env_<name>``), then from the process
environment. Cookie values usually arrive this way, so an unset variable is
left in place for the backend settings to recognise and discard.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import dotenv_values

logger = logging.getLogger("catgate")

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"
CONFIG_PATH_ENV = "CATGATE_CONFIG"

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def env_file_for(config_path: Path) -> Path:
    """The ``.env`` file that belongs next to ``config_path``."""
    name = config_path.stem
    if name.startswith("config_"):
        return config_path.with_name(".env_" + name[len("config_"):])
    return config_path.with_name(".env")


def load_config(path: str | None = None) -> dict:
    """Read the gateway configuration.

    Args:
        path: Config file; relative paths are taken from the project root.
            Defaults to ``$CATGATE_CONFIG`` or ``configs/config_default.yaml``.

    Raises:
        RuntimeError: If the file does not exist.
    """
    config_path = Path(path or os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    if not config_path.is_absolute():
        config_path = PROJECT_ROOT / config_path
    if not config_path.exists():
        logger.error(f"Config file not found: {config_path}")
        raise RuntimeError(f"Config file not found: {config_path}")

    env_file = env_file_for(config_path)
    dotenv: dict[str, str] = {}
    if env_file.exists():
        logger.info(f"Reading cookie and endpoint variables from {env_file}")
        dotenv = {k: v for k, v in dotenv_values(env_file).items() if v is not None}

    with config_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    logger.info(f"Loaded gateway configuration from {config_path}")
    return fill_placeholders(raw, dotenv)


def is_unresolved_placeholder(value: Any) -> bool:
    """True when a config string is still a literal ``$VAR`` placeholder."""
    return isinstance(value, str) and bool(_PLACEHOLDER.fullmatch(value.strip()))


def fill_placeholders(node: Any, dotenv: Mapping[str, str] | None = None) -> Any:
    """Replace ``${VAR}`` / ``$VAR`` in every string of a parsed config tree."""
    dotenv = dotenv or {}

    def lookup(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        value = dotenv.get(name, os.getenv(name))
        if value is None:
            logger.warning(f"Config variable ${name} is not set; keeping the placeholder")
            return match.group(0)
        return value

    if isinstance(node, dict):
        return {key: fill_placeholders(value, dotenv) for key, value in node.items()}
    if isinstance(node, list):
        return [fill_placeholders(item, dotenv) for item in node]
    if isinstance(node, str):
        return _PLACEHOLDER.sub(lookup, node)
    return node
