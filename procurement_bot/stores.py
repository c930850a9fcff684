from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import (
    CatalogEntry,
    Characteristics,
    DocumentStub,
    Session,
    SubscriptionPlan,
    SubscriptionSnapshot,
    Turn,
    UsageIdentity,
    UsageRecord,
)


@runtime_checkable
class CatalogLookup(Protocol):
    def load(self) -> list[CatalogEntry]: ...


@runtime_checkable
class SessionStore(Protocol):
    """Append-only transcript, last-write-wins characteristics, one-time completion."""

    def create_session(self, telegram_user_id: int) -> Session: ...
    def get_session(self, session_id: int) -> Session | None: ...
    def get_active_session(self, telegram_user_id: int) -> Session | None: ...
    def get_latest_session(self, telegram_user_id: int) -> Session | None: ...
    def append_turn(self, session_id: int, role: str, content: str) -> Turn: ...
    def list_turns(self, session_id: int) -> list[Turn]: ...
    def set_characteristics(
        self,
        session_id: int,
        characteristics: Characteristics,
        step: int,
        expected_step: int,
        item_name: str | None = None,
    ) -> bool: ...
    def complete(
        self,
        session_id: int,
        characteristics: Characteristics,
        catalog_code: str,
        documents: list[DocumentStub],
        step: int,
        expected_step: int,
    ) -> bool: ...
    def cancel(self, session_id: int) -> bool: ...
    def set_export_path(self, session_id: int, export_path: str) -> None: ...
    def list_documents(self, session_id: int) -> list[DocumentStub]: ...


@runtime_checkable
class UsageRecordStore(Protocol):
    def insert_question(self, record: UsageRecord) -> int: ...
    def set_answer(self, question_id: int, answer_text: str) -> None: ...
    def count_free(self, identity: UsageIdentity) -> int: ...
    def count_total(self, identity: UsageIdentity) -> int: ...


@runtime_checkable
class SubscriptionStore(Protocol):
    def get_active(self, telegram_user_id: int) -> SubscriptionSnapshot | None: ...
    def list_plans(self) -> list[SubscriptionPlan]: ...
    def grant(self, telegram_user_id: int, plan_id: int, days: int) -> SubscriptionSnapshot: ...
    def set_auto_renew(self, telegram_user_id: int, enabled: bool) -> bool: ...
