from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .constants import (
    CHARACTERISTIC_DEFAULTS,
    CHARACTERISTIC_DISPLAY,
    DOCUMENT_STATUS_DISPLAY,
    SERVER_TYPE_DISPLAY,
)
from .models import Characteristics, DocumentStub, ReportArtifacts, Session


class ReportBuilder:
    def __init__(self, exports_dir: Path, currency: str = "₽") -> None:
        self.exports_dir = exports_dir
        self.currency = currency

    @staticmethod
    def _characteristic_value(key: str, value: Any) -> str:
        if key == "server_type":
            return SERVER_TYPE_DISPLAY.get(str(value), str(value))
        if key == "memory":
            return f"≥ {value} ГБ"
        if isinstance(value, bool):
            return "да" if value else "нет"
        if isinstance(value, int):
            return f"≥ {value}"
        return str(value)

    def _document_line(self, doc: DocumentStub) -> str:
        status = DOCUMENT_STATUS_DISPLAY.get(doc.status, doc.status)
        if doc.document_type == "nmck":
            return f"{doc.title}: {doc.value} {self.currency} - {status}"
        if doc.document_type == "suppliers":
            return f"{doc.title}: найдено {doc.count} - {status}"
        return f"{doc.title} - {status}"

    def build_markdown(
        self,
        session: Session,
        characteristics: Characteristics,
        documents: list[DocumentStub],
    ) -> str:
        chars = dict(CHARACTERISTIC_DEFAULTS)
        chars.update({k: v for k, v in characteristics.items() if v})

        lines: list[str] = []
        lines.append("## Пакет документов закупки")
        lines.append("")
        lines.append(f"**Предмет закупки:** {session.item_name or 'не указан'}")
        if session.selected_catalog_code:
            lines.append(f"**Код КТРУ:** {session.selected_catalog_code}")
        lines.append("")

        lines.append("### Документы")
        for doc in documents:
            lines.append(f"- {self._document_line(doc)}")
        lines.append("")

        lines.append("### Характеристики")
        for key, value in chars.items():
            label = CHARACTERISTIC_DISPLAY.get(key, key)
            lines.append(f"- {label}: {self._characteristic_value(key, value)}")
        lines.append("")

        lines.append("_Полный JSON сохранен локально._")
        return "\n".join(lines).strip()

    def build_report_json(
        self,
        session: Session,
        characteristics: Characteristics,
        documents: list[DocumentStub],
    ) -> dict[str, Any]:
        return {
            "version": "1.0",
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "telegram_user_id": session.telegram_user_id,
            "session_id": session.id,
            "item_name": session.item_name,
            "catalog_code": session.selected_catalog_code,
            "characteristics": characteristics,
            "documents": [
                {"document_type": doc.document_type, "content": doc.content()}
                for doc in documents
            ],
        }

    def export_report(
        self,
        session: Session,
        characteristics: Characteristics,
        documents: list[DocumentStub],
    ) -> ReportArtifacts:
        generated_at = datetime.now(timezone.utc)
        timestamp = generated_at.strftime("%Y%m%d_%H%M%S")
        export_path = self.exports_dir / f"{session.telegram_user_id}_{session.id}_{timestamp}.json"

        report_json = self.build_report_json(session, characteristics, documents)
        markdown = self.build_markdown(session, characteristics, documents)

        with export_path.open("w", encoding="utf-8") as f:
            json.dump(report_json, f, indent=2, ensure_ascii=False)

        return ReportArtifacts(
            report_json=report_json,
            markdown=markdown,
            export_path=str(export_path),
            generated_at=generated_at,
        )
