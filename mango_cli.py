"""Command-line host for the Mango source plugins."""

from __future__ import annotations

import argparse
import json
import sys
import tomllib
from collections.abc import Sequence
from importlib import metadata
from pathlib import Path
from typing import Any

import requests  # type: ignore[import-untyped]

from config import CONFIG
from plugins.base import PluginManager, SourceAdapter
from plugins.errors import SourceError
from plugins.manifest import validate_plugin_dir
from utils.logging_utils import configure_logging

DISTRIBUTION_NAME = "mango-source-plugins"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mango",
        description="Run Mango source plugins (search, chapters, pages) from the command line.",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        default=None,
        metavar="LEVEL",
        help="Set logging level: debug, info, warning, error, or critical.",
    )
    parser.add_argument("--version", "-v", action="store_true", help="Display version information and exit.")
    parser.add_argument("--config-info", action="store_true", help="Display current configuration settings and exit.")
    parser.add_argument("--plugin-dir", type=Path, default=None, help="Directory to discover plugins from.")
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="PLUGIN.KEY=VALUE",
        help="Override a plugin config value, e.g. mangadex.timeout=5000 (repeatable).",
    )

    subparsers = parser.add_subparsers(dest="command")

    plugins_parser = subparsers.add_parser("plugins", help="Inspect discovered plugins.")
    plugins_subparsers = plugins_parser.add_subparsers(dest="plugins_command", required=True)
    plugins_subparsers.add_parser("list", help="List discovered plugins.")

    search_parser = subparsers.add_parser("search", help="Search a source for series.")
    search_parser.add_argument("plugin", help="Plugin id, e.g. mangadex.")
    search_parser.add_argument("query", help="Free-text search query.")

    chapters_parser = subparsers.add_parser("chapters", help="List the chapters of a series.")
    chapters_parser.add_argument("plugin", help="Plugin id.")
    chapters_parser.add_argument("series", help="Series identifier returned by 'search'.")

    pages_parser = subparsers.add_parser("pages", help="Resolve the page image URLs of a chapter.")
    pages_parser.add_argument("plugin", help="Plugin id.")
    pages_parser.add_argument("chapter", help="Chapter identifier returned by 'chapters'.")

    validate_parser = subparsers.add_parser("validate", help="Validate plugin directories.")
    validate_parser.add_argument("paths", nargs="+", type=Path, help="Plugin directories to check.")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        return show_version()

    if args.config_info:
        return show_config_info()

    configure_logging(args.log_level.upper() if args.log_level else None)

    if args.command == "validate":
        return _cmd_validate(args.paths)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        overrides = parse_overrides(args.overrides)
    except ValueError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 2

    manager = _get_plugin_manager(args.plugin_dir, overrides)
    try:
        if args.command == "plugins":
            return _cmd_plugins_list(manager)
        return _run_operation(manager, args)
    finally:
        manager.shutdown()


def parse_overrides(values: Sequence[str]) -> dict[str, dict[str, Any]]:
    """Turn ``plugin.key=value`` strings into per-plugin config mappings.

    Values are decoded as JSON when possible so numbers and booleans keep their
    type; anything else is kept as a string.
    """

    overrides: dict[str, dict[str, Any]] = {}
    for raw in values:
        target, sep, value = raw.partition("=")
        plugin_id, dot, key = target.partition(".")
        if not sep or not dot or not plugin_id or not key:
            raise ValueError(f"Invalid override {raw!r}; expected PLUGIN.KEY=VALUE")
        try:
            parsed: Any = json.loads(value)
        except json.JSONDecodeError:
            parsed = value
        overrides.setdefault(plugin_id, {})[key] = parsed
    return overrides


def _get_plugin_manager(plugin_dir: Path | None, overrides: dict[str, dict[str, Any]]) -> PluginManager:
    manager = PluginManager(plugin_dir, overrides=overrides)
    manager.load_plugins()
    return manager


def _run_operation(manager: PluginManager, args: argparse.Namespace) -> int:
    adapter = manager.get_adapter(args.plugin)
    if adapter is None:
        print(f"✗ Unknown or disabled plugin: {args.plugin}", file=sys.stderr)
        return 1

    try:
        payload = _dispatch(adapter, args)
    except (SourceError, requests.RequestException) as exc:
        print(f"✗ {adapter.display_name}: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


def _dispatch(adapter: SourceAdapter, args: argparse.Namespace) -> Any:
    if args.command == "search":
        return [result.to_dict() for result in adapter.search(args.query)]
    if args.command == "chapters":
        return [chapter.to_dict() for chapter in adapter.get_chapters(args.series)]
    if args.command == "pages":
        return adapter.get_page_urls(args.chapter)
    raise ValueError(f"Unknown command {args.command}")


def _cmd_plugins_list(manager: PluginManager) -> int:
    records = manager.get_records()
    if not records:
        print("No plugins discovered.")
        return 0

    header = f"{'Id':14} {'Name':16} {'Version':10} Description"
    print(header)
    print("-" * len(header))
    for record in records:
        print(f"{record.plugin_id[:14]:14} {record.name[:16]:16} {record.version[:10]:10} {record.description}")
    return 0


def _cmd_validate(paths: Sequence[Path]) -> int:
    failed = False
    for path in paths:
        issues = validate_plugin_dir(path)
        if issues:
            failed = True
            print(f"✗ {path}:")
            for issue in issues:
                print(f"  - {issue}")
        else:
            print(f"✓ {path}")
    return 1 if failed else 0


def show_version() -> int:
    """Display version information."""
    print(f"Mango source plugins v{_get_version()}")
    print(f"Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")
    print(f"Plugin API {CONFIG.plugin.supported_api_version}")
    return 0


def show_config_info() -> int:
    """Display current configuration settings."""
    print("Mango source plugins configuration")
    print("=" * 60)

    print("\n[Request Configuration]")
    print(f"  Request timeout: {CONFIG.download.request_timeout}s")
    print(f"  Search timeout: {CONFIG.download.search_timeout}s")
    print(f"  Default plugin timeout: {CONFIG.download.default_plugin_timeout_ms}ms")

    print("\n[Service Configuration]")
    print(f"  WeebCentral: {CONFIG.service.weebcentral_base_url}")
    print(f"  Webtoons: {CONFIG.service.webtoons_base_url} (API {CONFIG.service.webtoons_mobile_url})")
    print(f"  MangaDex API: {CONFIG.service.mangadex_api_base}")
    print(f"  MangaDex language: {CONFIG.service.mangadex_language}")

    print("\n[Image Proxy]")
    print(f"  Base URL: {CONFIG.proxy.base_url}{CONFIG.proxy.resource_path}")
    print(f"  Relative cover URLs: {CONFIG.proxy.relative_cover_urls}")

    print("\n" + "=" * 60)
    return 0


def _get_version() -> str:
    pyproject_version = _load_version_from_pyproject()
    try:
        installed_version = metadata.version(DISTRIBUTION_NAME)
        if pyproject_version and pyproject_version != installed_version:
            return pyproject_version
        return installed_version
    except metadata.PackageNotFoundError:
        if pyproject_version:
            return pyproject_version
        return f"{DISTRIBUTION_NAME} (uninstalled workspace copy)"


def _load_version_from_pyproject() -> str | None:
    """Read the version from pyproject.toml when running from a checkout."""
    pyproject_path = Path(__file__).resolve().parent / "pyproject.toml"
    try:
        data: dict[str, Any] = tomllib.loads(pyproject_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError):
        return None

    project = data.get("project")
    if isinstance(project, dict):
        version = project.get("version")
        if isinstance(version, str):
            return version.strip()
    return None


if __name__ == "__main__":
    raise SystemExit(main())
