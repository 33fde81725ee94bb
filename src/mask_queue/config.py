import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .models import MaskQueueConfig

DEFAULT_CONFIG_PATH = Path("config/default.yaml")
LOCAL_CONFIG_PATH = Path("config/local.yaml")


def get_config_value(config: Union[MaskQueueConfig, Dict], path: str, default=None):
    """
    Safely get a config value from either Pydantic model or dict.

    Args:
        config: MaskQueueConfig model or dict
        path: Dot-separated path like "backoff.max_delay_s"
        default: Default value if not found

    Returns:
        The config value or default
    """
    if isinstance(config, MaskQueueConfig):
        config = config.model_dump()

    keys = path.split(".")
    value = config
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file, returning empty dict if not found."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def merge_dicts(base: Dict, override: Dict) -> Dict:
    """Recursive merge of two dictionaries."""
    result = base.copy()
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


def resolve_config(
    overrides: Optional[Dict[str, Any]] = None,
    default_path: Path = DEFAULT_CONFIG_PATH,
    local_path: Path = LOCAL_CONFIG_PATH,
) -> MaskQueueConfig:
    """
    Resolve config: Defaults < default.yaml < local.yaml < overrides
    Returns validated Pydantic MaskQueueConfig model.

    Raises pydantic.ValidationError if the merged values are invalid.
    """
    overrides = overrides or {}

    config_data = load_yaml(Path(default_path))
    config_data = merge_dicts(config_data, load_yaml(Path(local_path)))

    config = MaskQueueConfig.from_dict(config_data)
    return config.merge_overrides(overrides)


def setup_logging(level: str = "INFO") -> None:
    """Configure a plain stream handler on the root logger."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )
