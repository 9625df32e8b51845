"""Load export configs from Python references."""

from __future__ import annotations

import importlib
import importlib.util
from pathlib import Path
from types import ModuleType
from typing import Any

from pckaudio.config.schema import EncoderConfig, ExportConfig, ToolsConfig
from pckaudio.storage.atomic import read_json


def _load_module(module_ref: str) -> ModuleType:
    path_candidate = Path(module_ref).expanduser()
    if path_candidate.exists():
        module_name = f"_pckaudio_cfg_{path_candidate.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path_candidate)
        if spec is None or spec.loader is None:
            raise RuntimeError(f"Could not load module from path: {path_candidate}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module
    return importlib.import_module(module_ref)


def _resolve_attr(obj: Any, attr_path: str) -> Any:
    value = obj
    for part in attr_path.split("."):
        value = getattr(value, part)
    return value


def load_object(reference: str) -> Any:
    """Load object by `module_or_path:attribute` reference."""

    if ":" not in reference:
        raise ValueError("Config reference must be in form 'module_or_path:attribute'.")
    module_ref, attr = reference.rsplit(":", maxsplit=1)
    module = _load_module(module_ref)
    return _resolve_attr(module, attr)


def load_export_config(config_ref: str | None) -> ExportConfig:
    """Load an ExportConfig from a reference or JSON file, or create a default."""

    if config_ref is None:
        return ExportConfig()

    json_candidate = Path(config_ref).expanduser()
    if json_candidate.suffix == ".json" and json_candidate.is_file():
        payload = read_json(json_candidate)
        if not isinstance(payload, dict):
            raise TypeError(f"Config file must contain a JSON object: {json_candidate}")
        return export_config_from_dict(payload)

    loaded = load_object(config_ref)
    if not isinstance(loaded, ExportConfig):
        type_name = type(loaded).__name__
        raise TypeError(
            f"Config reference must resolve to ExportConfig, got {type_name}."
        )
    return loaded


def _as_path(value: Any) -> Path | None:
    if value is None:
        return None
    return Path(value)


def export_config_from_dict(payload: dict[str, Any]) -> ExportConfig:
    """Reconstruct an ExportConfig from a plain dictionary."""

    tools = dict(payload.get("tools", {}))
    encoder = payload.get("encoder", {})
    if "tools_dir" in tools:
        tools["tools_dir"] = Path(tools["tools_dir"])
    if "bundle" in tools:
        tools["bundle"] = _as_path(tools["bundle"])

    config = ExportConfig(
        tools=ToolsConfig(**tools),
        encoder=EncoderConfig(**encoder),
    )
    if "scratch_root" in payload:
        config.scratch_root = Path(payload["scratch_root"])
    if "log_level" in payload:
        config.log_level = str(payload["log_level"])
    return config
