"""Configuration loading and environment variable parsing for bhyve-vm-runner."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from vmrunner.constants import ENV_KEYS, KEY_FIELDS
from vmrunner.exceptions import ManagerError
from vmrunner.models import VMConfig
from vmrunner.utils import (
    generate_uuid,
    get_env,
    log,
    parse_bool,
    parse_int,
    validate_size,
    validate_uuid,
)

_FIELD_DEFAULTS = VMConfig(uuid="").to_dict()


def _field_for(key: str) -> Optional[str]:
    """Accept both config keys (``vmname``) and field names (``name``)."""
    if key in KEY_FIELDS:
        return KEY_FIELDS[key]
    if key in _FIELD_DEFAULTS:
        return key
    return None


def load_config_file(config_path: Path) -> Dict[str, Any]:
    """Read a YAML or JSON mapping of guest settings, keyed by field name."""
    if not config_path.exists():
        raise ManagerError(f"VM config file missing: {config_path}")
    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as exc:
        raise ManagerError(f"VM config file {config_path} contains invalid YAML: {exc}")
    except OSError as exc:
        raise ManagerError(f"Cannot read VM config file {config_path}: {exc}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManagerError(f"VM config file {config_path} must contain a mapping, got {type(data).__name__}")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        field = _field_for(str(key))
        if field is None:
            log("WARN", f"Ignoring unknown key '{key}' in {config_path}")
            continue
        values[field] = value
    return values


def _env_values() -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for env_name, key in ENV_KEYS.items():
        raw = get_env(env_name)
        if raw is None:
            continue
        values[KEY_FIELDS[key]] = raw.strip()
    return values


def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for field, raw in values.items():
        default = _FIELD_DEFAULTS[field]
        if isinstance(default, bool):
            result[field] = parse_bool(field, raw)
        elif field == "vcpus":
            result[field] = parse_int("vcpus", raw, min_val=1)
        elif field == "pool":
            result[field] = str(raw).strip() if raw is not None else ""
            result[field] = result[field] or None
        else:
            result[field] = "" if raw is None else str(raw).strip()
    return result


def parse_env(overrides: Optional[Dict[str, Any]] = None, config_path: Optional[Path] = None) -> VMConfig:
    """Resolve a VMConfig from defaults, a config file, the environment and CLI overrides."""
    if config_path is None:
        env_path = (get_env("VM_CONFIG_FILE") or "").strip()
        config_path = Path(env_path) if env_path else None

    values: Dict[str, Any] = {}
    if config_path is not None:
        values.update(load_config_file(config_path))
    values.update(_env_values())
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        field = _field_for(key)
        if field is None:
            raise ManagerError(f"Unknown setting '{key}'")
        values[field] = value

    values = _coerce(values)

    if not values.get("uuid"):
        values["uuid"] = generate_uuid()
        log("INFO", f"No UUID given; generated {values['uuid']}")
    validate_uuid(values["uuid"])
    if "ram" in values:
        validate_size("RAM", values["ram"])
    if "disk_size" in values:
        validate_size("disk size", values["disk_size"])

    return VMConfig(**values)
