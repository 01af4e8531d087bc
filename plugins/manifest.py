"""Loading and validation of plugin manifests and the repository registry."""

from __future__ import annotations

import ast
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from packaging import version

from config import CONFIG
from plugins.errors import ManifestError

logger = logging.getLogger(__name__)

_CONFIG_TYPES = {"string": str, "number": (int, float), "boolean": bool}


@dataclass(frozen=True, slots=True)
class ConfigOption:
    """One entry of a manifest ``config`` schema."""

    key: str
    type: str = "string"
    default: Any = None
    description: str = ""


@dataclass(frozen=True, slots=True)
class PluginManifest:
    """Parsed ``plugin.json``."""

    id: str
    api_version: str
    config: tuple[ConfigOption, ...] = ()

    def defaults(self) -> dict[str, Any]:
        """Return the schema defaults as a flat config mapping."""

        return {option.key: option.default for option in self.config if option.default is not None}


@dataclass(frozen=True, slots=True)
class RegistryEntry:
    """Repository-level metadata describing one plugin."""

    id: str
    name: str
    version: str
    description: str = ""


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ManifestError(f"Cannot read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Invalid JSON in {path}: {exc}") from exc


def parse_manifest(data: Any) -> PluginManifest:
    """Build a `PluginManifest` from decoded JSON, raising `ManifestError` when invalid."""

    if not isinstance(data, dict):
        raise ManifestError("Manifest must be a JSON object")

    plugin_id = data.get("id")
    if not isinstance(plugin_id, str) or not plugin_id.strip():
        raise ManifestError("Manifest is missing 'id'")

    api_version = data.get("api_version")
    if not isinstance(api_version, str) or not api_version.strip():
        raise ManifestError(f"Manifest for {plugin_id} is missing 'api_version'")

    schema = data.get("config") or {}
    if not isinstance(schema, dict):
        raise ManifestError(f"Manifest for {plugin_id} has a non-object 'config'")

    options: list[ConfigOption] = []
    for key, spec in schema.items():
        if not isinstance(spec, dict):
            raise ManifestError(f"Config option {key!r} of {plugin_id} must be an object")
        option_type = spec.get("type", "string")
        expected = _CONFIG_TYPES.get(option_type)
        if expected is None:
            raise ManifestError(f"Config option {key!r} of {plugin_id} has unknown type {option_type!r}")
        default = spec.get("default")
        if default is not None and not isinstance(default, expected):
            raise ManifestError(f"Default for {key!r} of {plugin_id} is not a {option_type}")
        options.append(
            ConfigOption(
                key=key,
                type=option_type,
                default=default,
                description=str(spec.get("description", "")),
            )
        )

    return PluginManifest(id=plugin_id.strip(), api_version=api_version.strip(), config=tuple(options))


def load_manifest(path: Path) -> PluginManifest:
    return parse_manifest(_read_json(path))


def load_registry(path: Path) -> dict[str, RegistryEntry]:
    """Return registry entries keyed by plugin id."""

    data = _read_json(path)
    plugins = data.get("plugins") if isinstance(data, dict) else None
    if not isinstance(plugins, list):
        raise ManifestError(f"Registry {path} must contain a 'plugins' list")

    entries: dict[str, RegistryEntry] = {}
    for item in plugins:
        if not isinstance(item, dict):
            continue
        plugin_id = item.get("id")
        if not isinstance(plugin_id, str) or not plugin_id:
            logger.debug("Registry entry without id ignored: %s", item)
            continue
        entries[plugin_id] = RegistryEntry(
            id=plugin_id,
            name=str(item.get("name") or plugin_id),
            version=str(item.get("version") or "0.0.0"),
            description=str(item.get("description") or ""),
        )
    return entries


def is_api_compatible(api_version: str, supported: str | None = None) -> bool:
    """Return ``True`` when ``api_version`` shares the major version the host supports."""

    supported = supported or CONFIG.plugin.supported_api_version
    try:
        return version.parse(api_version).major == version.parse(supported).major
    except version.InvalidVersion:
        return False


def validate_plugin_dir(path: Path) -> list[str]:
    """Return a list of problems found in the plugin directory at ``path``."""

    errors: list[str] = []
    manifest_path = path / CONFIG.plugin.manifest_name
    init_path = path / "__init__.py"

    if not manifest_path.exists():
        errors.append(f"Missing {CONFIG.plugin.manifest_name}")
    else:
        try:
            manifest = load_manifest(manifest_path)
        except ManifestError as exc:
            errors.append(str(exc))
        else:
            if manifest.id != path.name.lstrip("_"):
                errors.append(f"Manifest id {manifest.id!r} does not match directory name {path.name!r}")
            if not is_api_compatible(manifest.api_version):
                errors.append(f"Unsupported api_version {manifest.api_version}")

    if not init_path.exists():
        errors.append("Missing __init__.py")
        return errors

    content = init_path.read_text(encoding="utf-8")
    if not content.startswith('"""'):
        errors.append("Plugin module must start with a docstring")
    try:
        tree = ast.parse(content)
    except SyntaxError as exc:
        errors.append(f"Syntax error: {exc}")
        return errors

    adapter_classes = [
        node.name
        for node in ast.walk(tree)
        if isinstance(node, ast.ClassDef)
        and any(isinstance(base, ast.Name) and base.id == "SourceAdapter" for base in node.bases)
    ]
    if not adapter_classes:
        errors.append("No class inheriting SourceAdapter found")
        return errors

    for cls_node in (n for n in tree.body if isinstance(n, ast.ClassDef) and n.name in adapter_classes):
        methods = {n.name for n in cls_node.body if isinstance(n, ast.FunctionDef)}
        for required in ("search", "get_chapters", "get_page_urls"):
            if required not in methods:
                errors.append(f"{cls_node.name} does not implement {required}()")
    return errors


__all__ = [
    "ConfigOption",
    "is_api_compatible",
    "load_manifest",
    "load_registry",
    "parse_manifest",
    "PluginManifest",
    "RegistryEntry",
    "validate_plugin_dir",
]
