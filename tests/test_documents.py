"""Unit tests for DocumentSynthesizer."""

from __future__ import annotations

import random

import pytest

from procurement_bot.constants import DOCUMENT_TYPES
from procurement_bot.documents import DocumentSynthesizer, format_amount

from .conftest import SUPPLIER_SEED


@pytest.mark.unit
class TestPrice:
    @pytest.mark.parametrize(
        ("characteristics", "expected"),
        [
            ({"installed_processors": 2, "memory": 32}, 150000),
            ({"installed_processors": 4, "memory": 128}, 1200000),
            ({"installed_processors": 2, "memory": 64}, 300000),
            ({"installed_processors": 1, "memory": 16}, 37500),
            ({}, 150000),
        ],
    )
    def test_price_formula(self, characteristics: dict, expected: int) -> None:
        assert DocumentSynthesizer.calculate_price(characteristics) == expected

    def test_half_values_round_up(self) -> None:
        # 150000 * 1 * 2 / 64 = 4687.5
        assert DocumentSynthesizer.calculate_price({"installed_processors": 1, "memory": 2}) == 4688

    def test_amount_uses_no_break_space_groups(self) -> None:
        assert format_amount(1200000) == "1\u00a0200\u00a0000"
        assert format_amount(999) == "999"

    def test_price_display_carries_currency(self) -> None:
        synthesizer = DocumentSynthesizer(currency="₽")
        assert synthesizer.price_display(150000) == "150\u00a0000 ₽"


@pytest.mark.unit
class TestBundle:
    def test_exactly_five_documents_one_per_type(self, synthesizer: DocumentSynthesizer) -> None:
        bundle = synthesizer.generate({"installed_processors": 2, "memory": 64})

        assert [doc.document_type for doc in bundle.documents] == DOCUMENT_TYPES

    def test_document_statuses(self, synthesizer: DocumentSynthesizer) -> None:
        bundle = synthesizer.generate({"installed_processors": 4, "memory": 128})
        docs = {doc.document_type: doc for doc in bundle.documents}

        assert docs["technical_task"].status == "ready"
        assert docs["notice"].status == "ready"
        assert docs["contract"].status == "ready"
        assert docs["nmck"].status == "calculated"
        assert docs["nmck"].amount == 1200000
        assert docs["nmck"].value == "1\u00a0200\u00a0000"
        assert docs["suppliers"].status == "ready to bid"
        assert docs["suppliers"].count == bundle.supplier_count

    def test_supplier_count_stays_in_range(self) -> None:
        synthesizer = DocumentSynthesizer(rng=random.Random(0))
        counts = {synthesizer.count_suppliers() for _ in range(500)}

        assert min(counts) >= 10
        assert max(counts) <= 19

    def test_same_seed_same_bundle(self) -> None:
        characteristics = {"installed_processors": 2, "memory": 64}
        first = DocumentSynthesizer(rng=random.Random(SUPPLIER_SEED)).generate(characteristics)
        second = DocumentSynthesizer(rng=random.Random(SUPPLIER_SEED)).generate(characteristics)

        assert first == second

    def test_repeat_generation_keeps_price_and_statuses(self, synthesizer: DocumentSynthesizer) -> None:
        characteristics = {"installed_processors": 2, "memory": 64}
        first = synthesizer.generate(characteristics)
        second = synthesizer.generate(characteristics)

        assert first.price_amount == second.price_amount
        assert [d.status for d in first.documents] == [d.status for d in second.documents]

    def test_document_content_shape(self, synthesizer: DocumentSynthesizer) -> None:
        bundle = synthesizer.generate({})
        contents = {doc.document_type: doc.content() for doc in bundle.documents}

        assert contents["notice"] == {"title": "Извещение о закупке", "status": "ready"}
        assert set(contents["nmck"]) == {"title", "status", "amount", "value"}
        assert set(contents["suppliers"]) == {"title", "status", "count"}
