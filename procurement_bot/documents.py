from __future__ import annotations

import logging
import math
import random

from .constants import (
    BASE_PRICE,
    CHARACTERISTIC_DEFAULTS,
    DOCUMENT_TITLES,
    PRICE_BASELINE_UNITS,
    SUPPLIER_COUNT_RANGE,
)
from .models import Characteristics, DocumentStub, ProcurementBundle

logger = logging.getLogger(__name__)


def format_amount(amount: int) -> str:
    """Group thousands the way ru-RU locale does: 1 200 000 with no-break spaces."""
    return f"{amount:,}".replace(",", "\u00a0")


class DocumentSynthesizer:
    def __init__(self, currency: str = "₽", rng: random.Random | None = None) -> None:
        self.currency = currency
        self.rng = rng or random.Random()

    @staticmethod
    def calculate_price(characteristics: Characteristics) -> int:
        installed = characteristics.get("installed_processors") or CHARACTERISTIC_DEFAULTS["installed_processors"]
        memory = characteristics.get("memory") or CHARACTERISTIC_DEFAULTS["memory"]
        multiplier = int(installed) * int(memory) / PRICE_BASELINE_UNITS
        # Half-up rounding, not banker's rounding.
        return int(math.floor(BASE_PRICE * multiplier + 0.5))

    def price_display(self, amount: int) -> str:
        return f"{format_amount(amount)} {self.currency}"

    def count_suppliers(self) -> int:
        low, high = SUPPLIER_COUNT_RANGE
        return self.rng.randint(low, high)

    def generate(self, characteristics: Characteristics) -> ProcurementBundle:
        price_amount = self.calculate_price(characteristics)
        supplier_count = self.count_suppliers()
        value = format_amount(price_amount)

        documents = [
            DocumentStub("technical_task", DOCUMENT_TITLES["technical_task"], "ready"),
            DocumentStub("notice", DOCUMENT_TITLES["notice"], "ready"),
            DocumentStub("contract", DOCUMENT_TITLES["contract"], "ready"),
            DocumentStub(
                "nmck",
                DOCUMENT_TITLES["nmck"],
                "calculated",
                amount=price_amount,
                value=value,
            ),
            DocumentStub(
                "suppliers",
                DOCUMENT_TITLES["suppliers"],
                "ready to bid",
                count=supplier_count,
            ),
        ]

        logger.info("Generated document bundle: price=%s suppliers=%s", price_amount, supplier_count)

        return ProcurementBundle(
            price_amount=price_amount,
            price_display=self.price_display(price_amount),
            supplier_count=supplier_count,
            documents=documents,
        )
