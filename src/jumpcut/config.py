import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .models import JumpcutConfig

DEFAULT_CONFIG_PATH = Path("config/default.yaml")
LOCAL_CONFIG_PATH = Path("config/local.yaml")
CONFIG_ENV_VAR = "JUMPCUT_CONFIG"


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


def resolve_config(overrides: Optional[Dict[str, Any]] = None) -> JumpcutConfig:
    """
    Resolve config: Default < Local < $JUMPCUT_CONFIG < overrides.

    ``overrides`` is a nested dict in the same shape as the YAML files.
    Raises pydantic.ValidationError if the merged result is invalid.
    """
    config_data = load_yaml(DEFAULT_CONFIG_PATH)
    config_data = merge_dicts(config_data, load_yaml(LOCAL_CONFIG_PATH))

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        config_data = merge_dicts(config_data, load_yaml(Path(env_path)))

    if overrides:
        config_data = merge_dicts(config_data, overrides)

    return JumpcutConfig.from_dict(config_data)
