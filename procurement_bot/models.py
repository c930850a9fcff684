from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

Characteristics = dict[str, int | str | bool]


@dataclass(slots=True)
class Session:
    id: int
    telegram_user_id: int
    status: str
    step: int
    item_name: str | None
    characteristics_json: str
    selected_catalog_code: str | None
    started_at: str
    updated_at: str
    completed_at: str | None
    export_path: str | None


@dataclass(slots=True)
class Turn:
    id: int
    session_id: int
    turn_index: int
    role: str
    content: str
    created_at: str


@dataclass(slots=True)
class ConversationState:
    step: int = 0
    characteristics: Characteristics = field(default_factory=dict)
    answers: dict[str, str] = field(default_factory=dict)
    done: bool = False


@dataclass(slots=True)
class DocumentStub:
    document_type: str
    title: str
    status: str
    amount: int | None = None
    value: str | None = None
    count: int | None = None

    def content(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"title": self.title, "status": self.status}
        if self.amount is not None:
            payload["amount"] = self.amount
        if self.value is not None:
            payload["value"] = self.value
        if self.count is not None:
            payload["count"] = self.count
        return payload


@dataclass(slots=True)
class ProcurementBundle:
    price_amount: int
    price_display: str
    supplier_count: int
    documents: list[DocumentStub]


@dataclass(slots=True)
class StepResult:
    reply: str
    done: bool
    bundle: ProcurementBundle | None = None


@dataclass(slots=True)
class CatalogCharacteristic:
    name: str
    type: str
    constraint: str | None = None
    values: list[Any] = field(default_factory=list)


@dataclass(slots=True)
class CatalogEntry:
    code: str
    name: str
    required_characteristics: list[CatalogCharacteristic]
    optional_characteristics: list[CatalogCharacteristic]


@dataclass(slots=True, frozen=True)
class UsageIdentity:
    user_id: int | None = None
    session_id: str | None = None

    def key(self) -> str:
        if self.user_id is not None:
            return f"user:{self.user_id}"
        if self.session_id:
            return f"session:{self.session_id}"
        raise ValueError("Usage identity needs a user id or a session id")


@dataclass(slots=True)
class UsageRecord:
    identity: UsageIdentity
    question_text: str
    is_free_question: bool
    answer_text: str | None = None
    created_at: str | None = None


@dataclass(slots=True)
class SubscriptionPlan:
    id: int
    name: str
    price_rub: int
    billing_period: str
    question_limit: int | None
    is_active: bool


@dataclass(slots=True)
class SubscriptionSnapshot:
    status: str
    current_period_end: datetime
    auto_renew: bool
    plan_id: int | None = None


@dataclass(slots=True)
class GateDecision:
    allowed: bool
    free_remaining: int
    subscribed: bool


@dataclass(slots=True)
class IntakeReply:
    messages: list[str]
    done: bool = False
    blocked: bool = False
    session_id: int | None = None


@dataclass(slots=True)
class ReportArtifacts:
    report_json: dict[str, Any]
    markdown: str
    export_path: str
    generated_at: datetime
