"""Guest config.json persistence shared between create and start."""

from __future__ import annotations

import dataclasses
import json

from vmrunner.constants import SIZE_RE
from vmrunner.exceptions import ConfigLoadError, ManagerError
from vmrunner.models import VMConfig
from vmrunner.storage import GuestLayout
from vmrunner.utils import log


def save_config(cfg: VMConfig, layout: GuestLayout) -> None:
    config_path = layout.config_file
    payload = json.dumps(cfg.to_dict(), indent=2, sort_keys=True)
    try:
        config_path.write_text(payload + "\n", encoding="utf-8")
    except OSError as exc:
        raise ManagerError(f"unable to write config {config_path}: {exc}") from exc
    log("INFO", f"Wrote VM config: {config_path}")


def load_config(layout: GuestLayout) -> VMConfig:
    config_path = layout.config_file
    try:
        raw = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config {config_path}: {exc}") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigLoadError(f"malformed config {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigLoadError(f"malformed config {config_path}: expected a JSON object, got {type(data).__name__}")

    unknown = sorted(set(data) - set(VMConfig.field_names()))
    if unknown:
        log("WARN", f"Ignoring unknown keys in {config_path}: {', '.join(unknown)}")

    try:
        cfg = VMConfig.from_dict(data)
    except TypeError as exc:
        raise ConfigLoadError(f"incomplete config {config_path}: {exc}") from exc
    bad = _mistyped_fields(cfg) or _invalid_values(cfg)
    if bad:
        raise ConfigLoadError(f"malformed config {config_path}: invalid values for {', '.join(bad)}")
    if cfg.uuid != layout.uuid:
        raise ConfigLoadError(f"config {config_path} belongs to guest {cfg.uuid}, expected {layout.uuid}")

    log("INFO", f"Read VM config: {config_path}")
    return cfg


def _mistyped_fields(cfg: VMConfig) -> list:
    bad = []
    for field in dataclasses.fields(cfg):
        value = getattr(cfg, field.name)
        if field.name == "pool":
            ok = value is None or isinstance(value, str)
        elif isinstance(field.default, bool):
            ok = isinstance(value, bool)
        elif field.name == "vcpus":
            ok = isinstance(value, int) and not isinstance(value, bool)
        else:
            ok = isinstance(value, str)
        if not ok:
            bad.append(field.name)
    return bad


def _invalid_values(cfg: VMConfig) -> list:
    bad = []
    if cfg.vcpus < 1:
        bad.append("vcpus")
    for name in ("ram", "disk_size"):
        if not SIZE_RE.match(getattr(cfg, name)):
            bad.append(name)
    return bad
