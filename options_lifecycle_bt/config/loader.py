"""
Configuration loader: YAML/JSON files, OLBT__ environment overrides and section.key=value overrides.

Precedence, lowest to highest: schema defaults, config file, environment, explicit overrides.
Every step re-validates through RunConfig, so an override can never produce a config the
schemas would reject.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import yaml

from .schemas import RunConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "OLBT__"

# (section, key) pairs holding filesystem paths; relative values in a file are taken
# relative to that file
_PATH_FIELDS = (("checkpoint", "directory"), ("logging", "run_log_dir"))


def read_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a YAML or JSON config file into a plain dict (no validation).

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file format is unsupported or the top level is not a mapping
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    suffix = config_path.suffix.lower()
    with open(config_path, "r", encoding="utf-8") as f:
        if suffix in (".yaml", ".yml"):
            raw = yaml.safe_load(f)
        elif suffix == ".json":
            raw = json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {suffix}. Use .yaml, .yml, or .json")

    raw = raw or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(raw).__name__}")
    return raw


def load_config(path: Union[str, Path]) -> RunConfig:
    """
    Load and validate a RunConfig from a YAML or JSON file.

    Relative checkpoint/log directories given in the file resolve against the file's folder.
    """
    config_path = Path(path)
    raw = read_config_file(config_path)
    for section, key in _PATH_FIELDS:
        value = (raw.get(section) or {}).get(key)
        if value and not Path(value).is_absolute():
            raw[section][key] = str((config_path.parent / value).resolve())
    return RunConfig(**raw)


def parse_override_value(raw: str) -> Any:
    """JSON first (numbers, lists, null, true/false), then case-insensitive booleans/null, else the string."""
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        pass
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("null", "none"):
        return None
    return raw


def _put(tree: Dict[str, Any], keys: List[str], value: Any) -> None:
    section = keys[0]
    if section not in RunConfig.model_fields:
        raise ValueError(f"Unknown config section '{section}' (known: {', '.join(RunConfig.model_fields)})")
    node = tree
    for key in keys[:-1]:
        node = node.setdefault(key, {})
    node[keys[-1]] = value


def overrides_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect OLBT__section__key[__nested] variables into a nested override dict (keys lowercased)."""
    env = os.environ if environ is None else environ
    tree: Dict[str, Any] = {}
    for name, value in env.items():
        if not name.startswith(ENV_PREFIX):
            continue
        keys = name[len(ENV_PREFIX):].lower().split("__")
        if len(keys) < 2 or not all(keys):
            logger.warning(f"Ignoring malformed override variable {name}")
            continue
        _put(tree, keys, parse_override_value(value))
    return tree


def overrides_from_pairs(pairs: Iterable[str]) -> Dict[str, Any]:
    """Collect 'section.key=value' strings into a nested override dict."""
    tree: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Invalid override: {pair}. Expected 'key=value'")
        dotted, value = pair.split("=", 1)
        keys = dotted.strip().split(".")
        if len(keys) < 2 or not all(keys):
            raise ValueError(f"Invalid override key: {dotted}. Expected 'section.key' or 'section.nested.key'")
        _put(tree, keys, parse_override_value(value))
    return tree


def merge_overrides(cfg: RunConfig, overrides: Mapping[str, Any]) -> RunConfig:
    """Deep-merge overrides into cfg and re-validate."""
    if not overrides:
        return cfg
    merged = _deep_merge(cfg.model_dump(), overrides)
    return RunConfig(**merged)


def apply_env_overrides(cfg: RunConfig, environ: Optional[Mapping[str, str]] = None) -> RunConfig:
    """
    Apply OLBT__{section}__{key} environment overrides.

    Example: OLBT__realism__max_spread_pct=0.10, OLBT__exits__dte_floor=null
    """
    return merge_overrides(cfg, overrides_from_env(environ))


def apply_cli_overrides(cfg: RunConfig, sets: Optional[Iterable[str]]) -> RunConfig:
    """
    Apply section.key=value overrides, e.g. realism.min_open_interest=500 or
    strategy.params.put_credit_spread.width=2.5
    """
    return merge_overrides(cfg, overrides_from_pairs(sets or ()))


def load_run_config(
    path: Union[str, Path],
    sets: Optional[Iterable[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RunConfig:
    """File, then environment, then explicit overrides."""
    cfg = apply_env_overrides(load_config(path), environ)
    return apply_cli_overrides(cfg, sets)


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
