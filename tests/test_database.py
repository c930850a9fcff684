"""SQLite store tests: sessions, documents, usage records and subscriptions."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

import pytest

from procurement_bot.database import Database, StoreError
from procurement_bot.documents import DocumentSynthesizer
from procurement_bot.models import Session, UsageIdentity, UsageRecord
from procurement_bot.stores import SessionStore, SubscriptionStore, UsageRecordStore


def _session_at_last_step(db: Database, user_id: int = 100) -> Session:
    session = db.create_session(user_id)
    db.set_characteristics(session.id, {}, step=4, expected_step=0)
    return session


@pytest.mark.unit
class TestProtocols:
    def test_database_satisfies_store_protocols(self, db: Database) -> None:
        assert isinstance(db, SessionStore)
        assert isinstance(db, UsageRecordStore)
        assert isinstance(db, SubscriptionStore)


@pytest.mark.unit
class TestSessions:
    def test_create_and_fetch_active(self, db: Database) -> None:
        session = db.create_session(100)

        active = db.get_active_session(100)
        assert active is not None
        assert active.id == session.id
        assert active.status == "active"
        assert active.step == 0

    def test_turns_are_appended_in_order(self, db: Database) -> None:
        session = db.create_session(100)
        db.append_turn(session.id, "assistant", "Привет! Что вам нужно купить?")
        db.append_turn(session.id, "user", "сервер")

        turns = db.list_turns(session.id)
        assert [t.turn_index for t in turns] == [1, 2]
        assert [t.role for t in turns] == ["assistant", "user"]

    def test_step_write_is_optimistic(self, db: Database) -> None:
        session = db.create_session(100)

        assert db.set_characteristics(session.id, {}, step=1, expected_step=0, item_name="сервер")
        assert not db.set_characteristics(session.id, {"memory": 64}, step=1, expected_step=0)

        stored = db.get_session(session.id)
        assert stored.step == 1
        assert stored.item_name == "сервер"
        assert stored.characteristics_json == "{}"

    def test_item_name_is_kept_on_later_steps(self, db: Database) -> None:
        session = db.create_session(100)
        db.set_characteristics(session.id, {}, step=1, expected_step=0, item_name="сервер")
        db.set_characteristics(session.id, {"max_processors": 2}, step=2, expected_step=1)

        assert db.get_session(session.id).item_name == "сервер"

    def test_completion_is_one_time_and_atomic(self, db: Database, synthesizer: DocumentSynthesizer) -> None:
        session = _session_at_last_step(db)
        bundle = synthesizer.generate({"memory": 64})

        assert db.complete(session.id, {"memory": 64}, "26.20.14.000-00000190", bundle.documents, step=5, expected_step=4)
        assert not db.complete(session.id, {"memory": 128}, "26.20.14.000-00000190", bundle.documents, step=5, expected_step=4)

        stored = db.get_session(session.id)
        assert stored.status == "completed"
        assert stored.step == 5
        assert stored.selected_catalog_code == "26.20.14.000-00000190"
        assert '"memory": 64' in stored.characteristics_json
        assert len(db.list_documents(session.id)) == 5
        assert db.get_active_session(100) is None

    def test_completion_requires_expected_cursor(self, db: Database, synthesizer: DocumentSynthesizer) -> None:
        session = db.create_session(100)
        bundle = synthesizer.generate({})

        assert not db.complete(session.id, {}, "code", bundle.documents, step=5, expected_step=4)

        stored = db.get_session(session.id)
        assert stored.status == "active"
        assert stored.step == 0
        assert db.list_documents(session.id) == []

    def test_failed_document_insert_rolls_back_status(self, db: Database, synthesizer: DocumentSynthesizer) -> None:
        session = _session_at_last_step(db)
        bundle = synthesizer.generate({})
        with sqlite3.connect(db.db_path) as conn:
            conn.execute(
                "INSERT INTO documents (session_id, document_type, content_json, created_at) VALUES (?, ?, '{}', '')",
                (session.id, "technical_task"),
            )

        with pytest.raises(StoreError):
            db.complete(session.id, {"memory": 64}, "code", bundle.documents, step=5, expected_step=4)

        stored = db.get_session(session.id)
        assert stored.status == "active"
        assert stored.step == 4
        assert stored.characteristics_json == "{}"
        assert len(db.list_documents(session.id)) == 1

    def test_partial_document_set_is_rejected(self, db: Database, synthesizer: DocumentSynthesizer) -> None:
        session = _session_at_last_step(db)
        bundle = synthesizer.generate({})

        with pytest.raises(StoreError):
            db.complete(session.id, {}, "code", bundle.documents[:4], step=5, expected_step=4)

        assert db.list_documents(session.id) == []
        assert db.get_session(session.id).status == "active"

    def test_documents_round_trip_content(self, db: Database, synthesizer: DocumentSynthesizer) -> None:
        session = _session_at_last_step(db)
        bundle = synthesizer.generate({"installed_processors": 4, "memory": 128})
        db.complete(session.id, {}, "code", bundle.documents, step=5, expected_step=4)

        assert db.list_documents(session.id) == bundle.documents

    def test_cancel_only_active(self, db: Database) -> None:
        session = db.create_session(100)

        assert db.cancel(session.id)
        assert not db.cancel(session.id)
        assert db.get_latest_session(100).status == "cancelled"


@pytest.mark.unit
class TestUsageRecords:
    def test_free_and_total_counts_per_identity(self, db: Database) -> None:
        user = UsageIdentity(user_id=1)
        other = UsageIdentity(user_id=2)
        db.insert_question(UsageRecord(identity=user, question_text="a", is_free_question=True))
        db.insert_question(UsageRecord(identity=user, question_text="b", is_free_question=False))
        db.insert_question(UsageRecord(identity=other, question_text="c", is_free_question=True))

        assert db.count_free(user) == 1
        assert db.count_total(user) == 2
        assert db.count_free(other) == 1

    def test_anonymous_session_identity(self, db: Database) -> None:
        anon = UsageIdentity(session_id="browser-1")
        db.insert_question(UsageRecord(identity=anon, question_text="a", is_free_question=True))

        assert db.count_free(anon) == 1
        assert db.count_free(UsageIdentity(session_id="browser-2")) == 0

    def test_identity_without_keys_is_rejected(self, db: Database) -> None:
        with pytest.raises(StoreError):
            db.count_free(UsageIdentity())


@pytest.mark.unit
class TestSubscriptions:
    def test_default_plan_is_seeded_once(self, db: Database) -> None:
        db.init()
        plans = db.list_plans()

        assert len(plans) == 1
        assert plans[0].price_rub == 199
        assert plans[0].question_limit is None

    def test_grant_creates_active_snapshot(self, db: Database) -> None:
        plan = db.list_plans()[0]
        snapshot = db.grant(100, plan.id, days=30)

        assert snapshot.status == "active"
        assert snapshot.auto_renew is True
        assert snapshot.current_period_end > datetime.now(timezone.utc)
        assert db.get_active(100) == snapshot

    def test_regrant_expires_previous_subscription(self, db: Database) -> None:
        plan = db.list_plans()[0]
        db.grant(100, plan.id, days=5)
        latest = db.grant(100, plan.id, days=60)

        assert db.get_active(100) == latest

    def test_grant_unknown_plan(self, db: Database) -> None:
        with pytest.raises(StoreError):
            db.grant(100, 999, days=30)

    def test_auto_renew_toggle(self, db: Database) -> None:
        plan = db.list_plans()[0]
        db.grant(100, plan.id, days=30)

        assert db.set_auto_renew(100, False)
        assert db.get_active(100).auto_renew is False
        assert db.set_auto_renew(100, True)
        assert db.get_active(100).auto_renew is True

    def test_auto_renew_without_subscription(self, db: Database) -> None:
        assert not db.set_auto_renew(100, False)
        assert db.get_active(100) is None
