"""Unit tests for the JSON catalog loader."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from procurement_bot.catalog import CatalogError, JsonCatalog, parse_entry
from procurement_bot.config import DEFAULT_CATALOG_TEMPLATE_PATH


def _write(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.mark.unit
class TestJsonCatalog:
    def test_bundled_catalog_loads(self) -> None:
        entries = JsonCatalog(DEFAULT_CATALOG_TEMPLATE_PATH).load()

        assert entries[0].code == "26.20.14.000-00000190"
        assert entries[0].name == "Сервер"
        assert [c.name for c in entries[0].required_characteristics] == [
            "max_processors",
            "installed_processors",
            "server_type",
            "memory",
        ]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(CatalogError, match="not found"):
            JsonCatalog(tmp_path / "absent.json").load()

    def test_empty_entries(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "catalog.json", {"entries": []})

        with pytest.raises(CatalogError, match="no entries"):
            JsonCatalog(path).load()

    def test_bare_list_is_accepted(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "catalog.json", [{"code": "X-1", "name": "Ноутбук"}])

        entries = JsonCatalog(path).load()

        assert entries[0].code == "X-1"
        assert entries[0].required_characteristics == []

    def test_malformed_characteristics_are_skipped(self) -> None:
        entry = parse_entry(
            {
                "code": "X-1",
                "name": "Ноутбук",
                "required_characteristics": [{"type": "number"}, {"name": "ram", "values": [8, 16]}],
            }
        )

        assert [c.name for c in entry.required_characteristics] == ["ram"]
        assert entry.required_characteristics[0].type == "select"

    def test_entry_without_code(self) -> None:
        with pytest.raises(CatalogError):
            parse_entry({"name": "Сервер"})
