from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Any, MutableMapping, Sequence

import yaml
from dotenv import load_dotenv

from prayer_schedule.config.models import AppConfig, ConfigLoadRequest

DEFAULT_CONFIG_TEMPLATE = Path("examples/config.yaml")
DATA_SUBDIRS = ("config", "cache", "logs")


def _read_yaml_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        _ensure_default_config(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Top-level YAML must be a mapping, got: {type(data).__name__}")
    return data


def _ensure_default_config(target_path: Path) -> None:
    if not DEFAULT_CONFIG_TEMPLATE.exists():
        return
    target_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(DEFAULT_CONFIG_TEMPLATE, target_path)


def _ensure_default_data_layout(yaml_path: Path) -> None:
    # Only the conventional data/config/<file>.yaml layout gets sibling dirs.
    if yaml_path.parent.name != "config":
        return
    data_root = yaml_path.parent.parent
    for name in DATA_SUBDIRS:
        (data_root / name).mkdir(parents=True, exist_ok=True)


def _env_override_segments(env_var_name: str, prefix: str) -> Sequence[str]:
    parts = [p.lower() for p in env_var_name[len(prefix) :].split("__") if p]
    if not parts:
        raise ValueError(f"Invalid environment variable override name: {env_var_name}")
    return parts


def _section_for(config: MutableMapping[str, Any], path: Sequence[str]) -> MutableMapping[str, Any]:
    cur: MutableMapping[str, Any] = config
    for segment in path[:-1]:
        # Sections with model defaults may be absent from the YAML file.
        next_value = cur.setdefault(segment, {})
        if not isinstance(next_value, dict):
            raise TypeError(f"Configuration key path does not point to a mapping: {'.'.join(path)}")
        cur = next_value
    return cur


def _known_leaf(path: Sequence[str]) -> bool:
    model: Any = AppConfig
    for segment in path:
        fields = getattr(model, "model_fields", None)
        if fields is None or segment not in fields:
            return False
        model = fields[segment].annotation
    return True


def _apply_env_overrides(config: MutableMapping[str, Any], env_prefix: str) -> None:
    for name, value in os.environ.items():
        if not name.startswith(env_prefix):
            continue
        segments = _env_override_segments(name, env_prefix)
        if not _known_leaf(segments):
            raise KeyError(f"Unknown configuration key path: {'.'.join(segments)}")
        # Pydantic coerces and validates the raw string afterwards.
        _section_for(config, segments)[segments[-1]] = value


def load_config_from_mapping(data: MutableMapping[str, Any], env_prefix: str = "APP__") -> AppConfig:
    _apply_env_overrides(data, env_prefix)
    return AppConfig.model_validate(data)


class YamlConfigLoader:
    async def load(self, request: ConfigLoadRequest = ConfigLoadRequest()) -> AppConfig:
        yaml_path = Path(request.yaml_path)
        _ensure_default_data_layout(yaml_path)
        config = _read_yaml_config(yaml_path)

        if request.dotenv_path is not None and Path(request.dotenv_path).exists():
            load_dotenv(dotenv_path=request.dotenv_path, override=False)

        return load_config_from_mapping(config, request.env_prefix)
