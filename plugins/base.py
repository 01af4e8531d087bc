"""Source adapter contract, shared helpers and dynamic plugin loader."""

from __future__ import annotations

import importlib.util
import inspect
import logging
import math
import re
import sys
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import ModuleType
from typing import Any, ClassVar

import requests  # type: ignore[import-untyped]
from bs4 import BeautifulSoup

from config import CONFIG
from plugins.errors import ManifestError, UpstreamHTTPError
from plugins.manifest import PluginManifest, RegistryEntry, is_api_compatible, load_manifest, load_registry
from utils.http_client import create_requests_session

logger = logging.getLogger(__name__)

_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)")


@dataclass(frozen=True, slots=True)
class SearchResult:
    """A series returned by ``SourceAdapter.search``."""

    title: str
    cover_url: str
    identifier: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class ChapterResult:
    """A chapter returned by ``SourceAdapter.get_chapters``."""

    identifier: str
    title: str = ""
    volume: str = ""
    chapter: str = ""
    pages: int = 0
    language: str = ""
    group_id: str = ""
    published_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SourceAdapter(ABC):
    """Abstract base class for source adapters.

    An adapter translates one website or API into three operations: search for
    series, list the chapters of a series, and resolve the page images of a
    chapter. Identifiers returned by one operation are opaque to the host and
    only meaningful to the adapter that produced them.
    """

    plugin_id: ClassVar[str] = ""
    display_name: ClassVar[str] = ""
    version: ClassVar[str] = "1.0.0"

    def __init__(
        self,
        session: requests.Session | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> None:
        self._session = session if session is not None else self._create_session()
        self._config: dict[str, Any] = dict(config or {})

    # --- Contract -------------------------------------------------------
    @abstractmethod
    def search(self, query: str) -> list[SearchResult]:
        """Return series matching ``query`` in source order."""

    @abstractmethod
    def get_chapters(self, series_identifier: str) -> list[ChapterResult]:
        """Return every chapter of a series, ascending by chapter number."""

    @abstractmethod
    def get_page_urls(self, chapter_identifier: str) -> list[str]:
        """Return the ordered page image URLs of a chapter."""

    def get_info(self) -> dict[str, str]:
        return {"id": self.plugin_id, "name": self.display_name, "version": self.version}

    def on_load(self) -> None:  # pragma: no cover - optional hook
        """Hook executed after the adapter instance has been created."""
        return None

    def on_unload(self) -> None:  # pragma: no cover - optional hook
        """Hook executed right before the adapter is disabled."""
        return None

    # --- Helpers for subclasses -----------------------------------------
    @property
    def proxy_base(self) -> str:
        """Origin of the host resource proxy used to wrap image URLs."""

        return self._config_str("proxy_base_url", CONFIG.proxy.base_url)

    def _create_session(self) -> requests.Session:
        return create_requests_session()

    def _config_str(self, key: str, default: str) -> str:
        value = self._config.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return default

    def _ensure_success(self, response: requests.Response, error_cls: type[UpstreamHTTPError]) -> None:
        if response.status_code != 200:
            raise error_cls(response.status_code, response.reason or "", source=self.plugin_id)

    @staticmethod
    def _parse_html(markup: str) -> BeautifulSoup:
        return BeautifulSoup(markup, "html.parser")

    @contextmanager
    def _logged_failure(self, operation: str) -> Iterator[None]:
        """Log any failure raised inside the block at error level, then re-raise it."""

        try:
            yield
        except Exception as exc:
            logging.getLogger(type(self).__module__).error("%s %s failed: %s", self.display_name, operation, exc)
            raise


def first_present(item: Mapping[str, Any], keys: Sequence[str], default: Any = "") -> Any:
    """Return the first value in ``item`` under ``keys`` that is not empty."""

    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return default


def parse_chapter_number(value: Any) -> float:
    """Parse the leading number of ``value``, returning 0 when there is none."""

    if value is None:
        return 0.0
    match = _FLOAT_PREFIX.match(str(value))
    if match is None:
        return 0.0
    number = float(match.group(1))
    return number if math.isfinite(number) else 0.0


def sort_chapters(chapters: Iterable[ChapterResult]) -> list[ChapterResult]:
    """Return ``chapters`` ordered by numeric chapter, keeping source order for ties."""

    return sorted(chapters, key=lambda item: parse_chapter_number(item.chapter))


def clean_chapter_number(value: str) -> str:
    """Strip leading zeros from a chapter number; an all-zero string becomes ``"0"``."""

    return value.lstrip("0") or "0"


def to_iso8601(moment: datetime) -> str:
    """Format ``moment`` in UTC as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return f"{moment:%Y-%m-%dT%H:%M:%S}.{moment.microsecond // 1000:03d}Z"


def normalize_timestamp(value: Any) -> str:
    """Return ``value`` re-formatted by `to_iso8601`, or unchanged when it does not parse."""

    if not isinstance(value, str) or not value.strip():
        return ""
    try:
        return to_iso8601(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except ValueError:
        return value.strip()


@dataclass(slots=True)
class PluginSource:
    """Description of a discovered adapter class."""

    manifest: PluginManifest
    module_name: str
    cls: type[SourceAdapter]

    @property
    def class_name(self) -> str:
        return self.cls.__name__


class PluginLoader:
    """Discover adapter classes from plugin directories carrying a manifest."""

    def __init__(self, plugin_dir: Path) -> None:
        self._plugin_dir = plugin_dir

    @property
    def plugin_dir(self) -> Path:
        return self._plugin_dir

    def discover(self) -> Iterator[PluginSource]:
        """Yield a `PluginSource` for every loadable plugin directory."""

        for target_path in self._iter_plugin_targets():
            manifest = self._read_manifest(target_path)
            if manifest is None:
                continue
            module = self.load_module(target_path)
            if module is None:
                continue
            adapter_cls = self._find_adapter_class(module)
            if adapter_cls is None:
                logger.warning("Plugin %s defines no SourceAdapter subclass", target_path.name)
                continue
            yield PluginSource(manifest, module.__name__, adapter_cls)

    def _iter_plugin_targets(self) -> Iterator[Path]:
        if not self._plugin_dir.exists():
            logger.warning("Plugin directory %s does not exist", self._plugin_dir)
            return

        for dir_path in sorted(self._plugin_dir.iterdir()):
            if not dir_path.is_dir():
                continue
            if dir_path.name.startswith("_") or dir_path.name.startswith("."):
                continue
            if not (dir_path / "__init__.py").exists():
                continue
            if not (dir_path / CONFIG.plugin.manifest_name).exists():
                continue
            yield dir_path

    def _read_manifest(self, path: Path) -> PluginManifest | None:
        try:
            manifest = load_manifest(path / CONFIG.plugin.manifest_name)
        except ManifestError as exc:
            logger.warning("Skipping plugin %s: %s", path.name, exc)
            return None
        if not is_api_compatible(manifest.api_version):
            logger.warning(
                "Skipping plugin %s: api_version %s is not supported (expected %s)",
                manifest.id,
                manifest.api_version,
                CONFIG.plugin.supported_api_version,
            )
            return None
        return manifest

    def load_module(self, path: Path) -> ModuleType | None:
        """Import the plugin package at ``path``, reusing an already imported copy."""

        module_name = f"{self._plugin_dir.name}.{path.name}"
        init_file = path / "__init__.py"
        existing = sys.modules.get(module_name)
        if existing is not None and Path(getattr(existing, "__file__", "") or "").resolve() == init_file.resolve():
            return existing

        spec = importlib.util.spec_from_file_location(
            module_name, init_file, submodule_search_locations=[str(path)]
        )
        if spec is None or spec.loader is None:
            logger.warning("Skipping plugin %s: unable to create module spec", path)
            return None

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:  # noqa: BLE001 - surface plugin loader errors
            sys.modules.pop(module_name, None)
            logger.exception("Failed to load plugin module %s", path)
            return None
        return module

    @staticmethod
    def _find_adapter_class(module: ModuleType) -> type[SourceAdapter] | None:
        for _, obj in inspect.getmembers(module, inspect.isclass):
            if obj.__module__ != module.__name__ or inspect.isabstract(obj):
                continue
            if issubclass(obj, SourceAdapter):
                return obj
        return None


@dataclass(slots=True)
class PluginRecord:
    """Container describing a loaded adapter instance."""

    plugin_id: str
    name: str
    version: str
    description: str
    instance: SourceAdapter
    config: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    module_name: str = ""
    class_name: str = ""


class PluginManager:
    """Discover, configure and manage source adapters."""

    def __init__(
        self,
        plugin_dir: Path | None = None,
        loader: PluginLoader | None = None,
        overrides: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> None:
        plugin_dir = plugin_dir or Path(__file__).resolve().parent
        self._loader = loader or PluginLoader(plugin_dir)
        self._plugin_dir = self._loader.plugin_dir
        self._overrides = {key: dict(value) for key, value in (overrides or {}).items()}
        self._records: list[PluginRecord] = []
        self._record_index: dict[str, PluginRecord] = {}

    @property
    def plugin_dir(self) -> Path:
        """Return the directory used for plugin discovery."""

        return self._plugin_dir

    def load_plugins(self) -> None:
        """Discover adapters via the configured loader and instantiate them."""

        if self._records:
            self.shutdown()
        registry = self._load_registry()
        for source in self._loader.discover():
            self._register_plugin(source, registry.get(source.manifest.id))

    def _load_registry(self) -> dict[str, RegistryEntry]:
        registry_path = self._plugin_dir / CONFIG.plugin.registry_name
        if not registry_path.exists():
            return {}
        try:
            return load_registry(registry_path)
        except ManifestError as exc:
            logger.warning("Ignoring plugin registry %s: %s", registry_path, exc)
            return {}

    def _register_plugin(self, source: PluginSource, entry: RegistryEntry | None) -> None:
        plugin_id = source.manifest.id
        if plugin_id in self._record_index:
            logger.warning("Duplicate plugin detected: %s. Keeping the first instance.", plugin_id)
            return

        config = source.manifest.defaults()
        config.update(self._overrides.get(plugin_id, {}))
        try:
            instance = source.cls(config=config)
        except Exception:  # noqa: BLE001 - plugin constructors may raise
            logger.exception("Failed to instantiate plugin %s.%s", source.module_name, source.class_name)
            return

        record = PluginRecord(
            plugin_id=plugin_id,
            name=entry.name if entry else (source.cls.display_name or plugin_id),
            version=entry.version if entry else source.cls.version,
            description=entry.description if entry else "",
            instance=instance,
            config=config,
            module_name=source.module_name,
            class_name=source.class_name,
        )
        self._records.append(record)
        self._record_index[plugin_id] = record

        try:
            instance.on_load()
        except Exception:  # noqa: BLE001 - plugin hooks may raise
            logger.exception("Plugin %s failed during on_load", plugin_id)

    def get_records(self) -> list[PluginRecord]:
        """Return metadata about every loaded adapter."""

        return list(self._records)

    def get_record(self, plugin_id: str) -> PluginRecord | None:
        return self._record_index.get(plugin_id)

    def get_adapter(self, plugin_id: str) -> SourceAdapter | None:
        """Return the enabled adapter registered under ``plugin_id``."""

        record = self._record_index.get(plugin_id)
        if record is None or not record.enabled:
            return None
        return record.instance

    def iter_enabled_adapters(self) -> Iterator[SourceAdapter]:
        for record in self._records:
            if record.enabled:
                yield record.instance

    def set_enabled(self, plugin_id: str, enabled: bool) -> None:
        """Update the enabled state of the specified adapter."""

        record = self._record_index.get(plugin_id)
        if record is None:
            logger.warning("Attempted to toggle unknown plugin %s", plugin_id)
            return

        if record.enabled == enabled:
            return

        record.enabled = enabled
        hook = record.instance.on_load if enabled else record.instance.on_unload
        try:
            hook()
        except Exception:  # noqa: BLE001 - plugin hooks may raise
            logger.exception(
                "Plugin %s raised an exception during %s", plugin_id, "on_load" if enabled else "on_unload"
            )

    def shutdown(self) -> None:
        """Invoke ``on_unload`` for all active adapters."""

        for record in self._records:
            if not record.enabled:
                continue
            try:
                record.instance.on_unload()
            except Exception:  # noqa: BLE001
                logger.exception("Plugin %s failed during shutdown", record.plugin_id)

        self._records.clear()
        self._record_index.clear()


__all__ = [
    "ChapterResult",
    "clean_chapter_number",
    "first_present",
    "normalize_timestamp",
    "parse_chapter_number",
    "PluginLoader",
    "PluginManager",
    "PluginRecord",
    "PluginSource",
    "SearchResult",
    "sort_chapters",
    "SourceAdapter",
    "to_iso8601",
]
