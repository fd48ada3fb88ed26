"""
Configuration loader for the FHIR BMI analysis.

Loads config.yaml and turns it into validated AnalysisSettings for the
runner script. The CLI can override values per run.

Precedence (lowest to highest):
    1. Hardcoded Python fallbacks (always present)
    2. config.yaml analysis: section (project-level settings)
    3. Environment variables FHIR_BMI_* (container-level overrides)
    4. Command line flags of run_analysis.py
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from core.exceptions import ConfigurationError
from core.models import AnalysisSettings, DEFAULT_SERVER_URL, HYPERTENSION_PREFIXES
from core.utils import merge_configs, resolve_env_vars


# Search order for config file
_CONFIG_SEARCH_PATHS = [
    os.environ.get("FHIR_BMI_CONFIG", ""),
    "config/config.yaml",
    str(Path(__file__).parent / "config.yaml"),
]

_cached_config: Optional[Dict] = None


def _find_config_file() -> Optional[Path]:
    """Find config.yaml from search paths."""
    for path_str in _CONFIG_SEARCH_PATHS:
        if not path_str:
            continue
        p = Path(path_str)
        if p.is_file():
            return p
    return None


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and cache the full config.yaml.

    Args:
        config_path: Optional explicit path. If None, uses search order.

    Returns:
        Full parsed YAML dict with ${VAR} values resolved. Returns empty
        dict if no config is found on the search paths.

    Raises:
        ConfigurationError: If an explicit config_path does not exist.
    """
    global _cached_config

    if _cached_config is not None and config_path is None:
        return _cached_config

    if config_path:
        p = Path(config_path)
        if not p.is_file():
            raise ConfigurationError(
                f"Config file not found: {p}", config_key="config_path"
            )
    else:
        p = _find_config_file()

    if p is None or not p.is_file():
        _cached_config = {}
        return _cached_config

    with open(p, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {p}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Top level of {p} must be a mapping")

    _cached_config = resolve_env_vars(raw)
    return _cached_config


def get_analysis_defaults() -> Dict[str, Any]:
    """
    Return a flat dict of analysis settings.

    Values come from config.yaml with hardcoded fallbacks if YAML is
    unavailable, then from FHIR_BMI_* environment variables.

    Returns:
        Dict with all AnalysisSettings keys.
    """
    cfg = load_config()

    analysis = cfg.get("analysis", {})
    server = analysis.get("server", {})
    codes = analysis.get("codes", {})
    comorbidity = analysis.get("comorbidity", {})
    flattening = analysis.get("flattening", {})

    # Hardcoded fallback defaults
    defaults = {
        "server_url": DEFAULT_SERVER_URL,
        "auth_token": None,
        "max_bundles": None,
        "timeout_seconds": 60.0,
        "code_system": "http://loinc.org",
        "weight_code": "3142-7",
        "height_code": "8302-2",
        "bmi_upper_limit": 150.0,
        "hypertension_prefixes": list(HYPERTENSION_PREFIXES),
        "comorbidity_use": "CM",
        "brackets": ("[", "]"),
        "sep": ":::",
        "plot_seed": 42,
    }

    # Override from YAML (only keys that exist)
    yaml_mapping = {
        "server_url": server.get("url"),
        "auth_token": server.get("auth_token"),
        "max_bundles": server.get("max_bundles"),
        "timeout_seconds": server.get("timeout_seconds"),
        "code_system": codes.get("system"),
        "weight_code": codes.get("body_weight"),
        "height_code": codes.get("body_height"),
        "bmi_upper_limit": analysis.get("bmi_upper_limit"),
        "hypertension_prefixes": comorbidity.get("code_prefixes"),
        "comorbidity_use": comorbidity.get("use"),
        "brackets": flattening.get("brackets"),
        "sep": flattening.get("sep"),
        "plot_seed": analysis.get("plot_seed"),
    }

    for key, value in yaml_mapping.items():
        if value is not None:
            defaults[key] = value

    # Override from environment variables
    env_mapping = {
        "FHIR_BMI_SERVER_URL": ("server_url", str),
        "FHIR_BMI_AUTH_TOKEN": ("auth_token", str),
        "FHIR_BMI_MAX_BUNDLES": ("max_bundles", int),
        "FHIR_BMI_TIMEOUT": ("timeout_seconds", float),
        "FHIR_BMI_UPPER_LIMIT": ("bmi_upper_limit", float),
    }

    for env_var, (key, converter) in env_mapping.items():
        val = os.environ.get(env_var)
        if val is not None:
            try:
                defaults[key] = converter(val)
            except (ValueError, TypeError) as e:
                raise ConfigurationError(
                    f"Invalid value for {env_var}: {val!r}", config_key=key
                ) from e

    return defaults


def get_analysis_settings(overrides: Optional[Dict[str, Any]] = None) -> AnalysisSettings:
    """
    Build validated AnalysisSettings.

    Args:
        overrides: Values taking precedence over config and environment,
            e.g. from command line flags. None values are ignored.

    Returns:
        AnalysisSettings instance.
    """
    values = get_analysis_defaults()
    if overrides:
        values = merge_configs(
            values, {k: v for k, v in overrides.items() if v is not None}
        )

    try:
        return AnalysisSettings(**values)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigurationError(
            f"Invalid analysis setting '{key}': {first.get('msg')}", config_key=key
        ) from e


def get_logging_config() -> Dict[str, Any]:
    """Get logging configuration (level, format, file)."""
    cfg = load_config()
    logging_cfg = cfg.get("logging", {})
    return {
        "level": os.environ.get("FHIR_BMI_LOG_LEVEL", logging_cfg.get("level", "INFO")),
        "format": logging_cfg.get("format", "console"),
        "file": logging_cfg.get("file"),
    }


def reload_config():
    """Force reload of config (clears cache)."""
    global _cached_config
    _cached_config = None
