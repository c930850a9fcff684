"""Shared fixtures for procurement bot tests.

Supplier counts come from a seeded ``random.Random`` so document bundles are
reproducible; databases live in ``tmp_path``.
"""

from __future__ import annotations

import random
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from procurement_bot.database import Database
from procurement_bot.dialogue import ConversationEngine
from procurement_bot.documents import DocumentSynthesizer
from procurement_bot.intake import IntakeService
from procurement_bot.models import CatalogCharacteristic, CatalogEntry
from procurement_bot.openai_service import OpenAIService
from procurement_bot.reporting import ReportBuilder
from procurement_bot.usage import UsageGate

SUPPLIER_SEED = 1234

WALKTHROUGH_ANSWERS = [
    "сервер",
    "для хранения документов",
    "20-50 человек",
    "повышенная надежность",
    "оставить как есть",
]


@pytest.fixture
def catalog() -> list[CatalogEntry]:
    return [
        CatalogEntry(
            code="26.20.14.000-00000190",
            name="Сервер",
            required_characteristics=[
                CatalogCharacteristic(name="memory", type="number", constraint=">=", values=[16, 32, 64, 128]),
            ],
            optional_characteristics=[],
        )
    ]


@pytest.fixture
def synthesizer() -> DocumentSynthesizer:
    return DocumentSynthesizer(rng=random.Random(SUPPLIER_SEED))


@pytest.fixture
def engine(catalog: list[CatalogEntry], synthesizer: DocumentSynthesizer) -> ConversationEngine:
    return ConversationEngine(catalog=catalog, synthesizer=synthesizer)


@pytest.fixture
def db(tmp_path: Path) -> Database:
    database = Database(tmp_path / "test.db")
    database.init()
    return database


@pytest.fixture
def exports_dir(tmp_path: Path) -> Path:
    path = tmp_path / "exports"
    path.mkdir()
    return path


@pytest.fixture
def fake_openai_client() -> SimpleNamespace:
    create = AsyncMock(return_value=SimpleNamespace(output_text="Сначала рассчитайте НМЦК методом сопоставимых цен."))
    return SimpleNamespace(responses=SimpleNamespace(create=create))


@pytest.fixture
def intake(
    db: Database,
    engine: ConversationEngine,
    exports_dir: Path,
    fake_openai_client: SimpleNamespace,
) -> IntakeService:
    return IntakeService(
        sessions=db,
        usage=db,
        subscriptions=db,
        engine=engine,
        gate=UsageGate(),
        reporter=ReportBuilder(exports_dir=exports_dir),
        consultant=OpenAIService(api_key="test-key", model="test-model", client=fake_openai_client),
    )
