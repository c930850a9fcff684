from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .models import CatalogCharacteristic, CatalogEntry

logger = logging.getLogger(__name__)


class CatalogError(RuntimeError):
    pass


def _load_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _parse_characteristics(raw: Any) -> list[CatalogCharacteristic]:
    if not isinstance(raw, list):
        return []

    characteristics: list[CatalogCharacteristic] = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("name"):
            logger.warning("Skip malformed catalog characteristic: %r", item)
            continue
        characteristics.append(
            CatalogCharacteristic(
                name=str(item["name"]),
                type=str(item.get("type", "select")),
                constraint=item.get("constraint"),
                values=list(item.get("values", [])),
            )
        )
    return characteristics


def parse_entry(payload: dict[str, Any]) -> CatalogEntry:
    code = str(payload.get("code", "")).strip()
    name = str(payload.get("name", "")).strip()
    if not code or not name:
        raise CatalogError(f"Catalog entry needs both code and name: {payload!r}")

    return CatalogEntry(
        code=code,
        name=name,
        required_characteristics=_parse_characteristics(payload.get("required_characteristics")),
        optional_characteristics=_parse_characteristics(payload.get("optional_characteristics")),
    )


class JsonCatalog:
    """Read-only catalog lookup backed by a JSON file with an ``entries`` list."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> list[CatalogEntry]:
        if not self.path.exists():
            raise CatalogError(f"Catalog file not found: {self.path}")

        payload = _load_json(self.path)
        raw_entries = payload.get("entries") if isinstance(payload, dict) else payload
        if not isinstance(raw_entries, list):
            raise CatalogError(f"Catalog JSON must hold a list of entries: {self.path}")

        entries = [parse_entry(item) for item in raw_entries if isinstance(item, dict)]
        if not entries:
            raise CatalogError(f"Catalog has no entries: {self.path}")

        logger.info("Loaded %s catalog entries from %s", len(entries), self.path)
        return entries
