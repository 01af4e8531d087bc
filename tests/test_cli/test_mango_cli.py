"""CLI tests for the plugin host commands."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

import mango_cli
from plugins.base import ChapterResult, SearchResult
from plugins.errors import NoPagesFound

PLUGIN_DIR = Path(__file__).resolve().parents[2] / "plugins"


class StubAdapter:
    plugin_id = "stub"
    display_name = "Stub"

    def search(self, query: str) -> list[SearchResult]:
        return [SearchResult(title=f"Result for {query}", cover_url="", identifier="s1")]

    def get_chapters(self, series_identifier: str) -> list[ChapterResult]:
        return [ChapterResult(identifier=f"{series_identifier}-c1", title="Ch. 1", chapter="1")]

    def get_page_urls(self, chapter_identifier: str) -> list[str]:
        raise NoPagesFound(self.plugin_id)


class StubManager:
    def __init__(self) -> None:
        self.adapter = StubAdapter()
        self.shutdown_calls = 0

    def get_records(self) -> list[Any]:
        return [
            SimpleNamespace(
                plugin_id="stub",
                name="Stub Source",
                version="1.2.3",
                description="A stubbed source",
            )
        ]

    def get_adapter(self, plugin_id: str) -> StubAdapter | None:
        return self.adapter if plugin_id == "stub" else None

    def shutdown(self) -> None:
        self.shutdown_calls += 1


@pytest.fixture
def stub_manager(monkeypatch: pytest.MonkeyPatch) -> StubManager:
    stub = StubManager()
    captured: dict[str, Any] = {}

    def factory(plugin_dir: Path | None, overrides: dict[str, dict[str, Any]]) -> StubManager:
        captured["plugin_dir"] = plugin_dir
        captured["overrides"] = overrides
        return stub

    monkeypatch.setattr(mango_cli, "_get_plugin_manager", factory)
    stub.captured = captured  # type: ignore[attr-defined]
    return stub


def test_cli_plugins_list(stub_manager: StubManager, capsys: pytest.CaptureFixture[str]) -> None:
    result = mango_cli.main(["plugins", "list"])

    assert result == 0
    output = capsys.readouterr().out
    assert "Stub Source" in output
    assert "1.2.3" in output
    assert stub_manager.shutdown_calls == 1


def test_cli_search_prints_json(stub_manager: StubManager, capsys: pytest.CaptureFixture[str]) -> None:
    result = mango_cli.main(["search", "stub", "solo leveling"])

    assert result == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload == [{"title": "Result for solo leveling", "cover_url": "", "identifier": "s1"}]


def test_cli_chapters_prints_json(stub_manager: StubManager, capsys: pytest.CaptureFixture[str]) -> None:
    result = mango_cli.main(["chapters", "stub", "series-9"])

    assert result == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload[0]["identifier"] == "series-9-c1"
    assert payload[0]["chapter"] == "1"


def test_cli_reports_source_errors(stub_manager: StubManager, capsys: pytest.CaptureFixture[str]) -> None:
    result = mango_cli.main(["pages", "stub", "c1"])

    assert result == 1
    captured = capsys.readouterr()
    assert "✗ Stub: No pages found" in captured.err
    assert stub_manager.shutdown_calls == 1


def test_cli_unknown_plugin(stub_manager: StubManager, capsys: pytest.CaptureFixture[str]) -> None:
    result = mango_cli.main(["search", "missing", "x"])

    assert result == 1
    assert "Unknown or disabled plugin: missing" in capsys.readouterr().err


def test_cli_passes_overrides(stub_manager: StubManager) -> None:
    mango_cli.main(["--set", "mangadex.timeout=5000", "--set", "mangadex.language=fr", "plugins", "list"])

    assert stub_manager.captured["overrides"] == {  # type: ignore[attr-defined]
        "mangadex": {"timeout": 5000, "language": "fr"}
    }


def test_cli_rejects_malformed_override(stub_manager: StubManager, capsys: pytest.CaptureFixture[str]) -> None:
    result = mango_cli.main(["--set", "timeout", "plugins", "list"])

    assert result == 2
    assert "expected PLUGIN.KEY=VALUE" in capsys.readouterr().err


def test_parse_overrides_keeps_strings_and_json_values() -> None:
    overrides = mango_cli.parse_overrides(["a.flag=true", "a.url=https://x.example", "b.n=1.5"])

    assert overrides == {"a": {"flag": True, "url": "https://x.example"}, "b": {"n": 1.5}}


def test_cli_validate_bundled_plugins(capsys: pytest.CaptureFixture[str]) -> None:
    result = mango_cli.main(["validate", str(PLUGIN_DIR / "mangadex"), str(PLUGIN_DIR / "webtoons")])

    assert result == 0
    assert capsys.readouterr().out.count("✓") == 2


def test_cli_validate_reports_failures(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    result = mango_cli.main(["validate", str(tmp_path)])

    assert result == 1
    assert "Missing plugin.json" in capsys.readouterr().out


def test_cli_version_and_config_info(capsys: pytest.CaptureFixture[str]) -> None:
    assert mango_cli.main(["--version"]) == 0
    assert "Mango source plugins v" in capsys.readouterr().out

    assert mango_cli.main(["--config-info"]) == 0
    output = capsys.readouterr().out
    assert "[Image Proxy]" in output
    assert "/api/proxy/resource" in output


def test_get_version_prefers_pyproject(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(mango_cli, "_load_version_from_pyproject", lambda: "9.9.9")

    assert mango_cli._get_version() == "9.9.9"
